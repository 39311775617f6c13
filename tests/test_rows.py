from __future__ import annotations

import numpy as np
import pytest

from incsvd.errors import UnsupportedOperationError
from incsvd.rows import remove_zero_rows, row_weights


def record():
    changes = []
    return changes, lambda source, target: changes.append((source, target))


def test_row_weights_use_absolute_weights():
    U = np.array([[1.0, 0.0], [0.0, 2.0], [1.0, 1.0]])
    np.testing.assert_allclose(row_weights(U, np.array([3.0, -1.0])), [3.0, 4.0, 4.0])


def test_zero_rows_are_filled_from_the_end():
    U = np.array([[1.0], [0.0], [0.0], [2.0], [3.0]])
    changes, listener = record()
    new_rows = remove_zero_rows(U, np.ones(1), 5, listener)

    assert new_rows == 3
    assert changes == [(4, 1), (3, 2)]
    np.testing.assert_array_equal(U[:3, 0], [1.0, 3.0, 2.0])


def test_trailing_zero_rows_are_deleted():
    U = np.array([[1.0], [0.0], [2.0], [0.0]])
    changes, listener = record()
    new_rows = remove_zero_rows(U, np.ones(1), 4, listener)

    assert new_rows == 2
    assert changes == [(-1, 3), (2, 1)]
    np.testing.assert_array_equal(U[:2, 0], [1.0, 2.0])


def test_all_rows_zero():
    U = np.zeros((3, 2))
    changes, listener = record()
    assert remove_zero_rows(U, np.ones(2), 3, listener) == 0
    assert sorted(changes) == [(-1, 0), (-1, 1), (-1, 2)]


def test_max_value():
    U = np.array([[1.0], [1e-3], [1.0]])
    changes, listener = record()
    assert remove_zero_rows(U, np.ones(1), 3, listener, max_value=1e-4) == 2
    assert changes == [(2, 1)]


def test_only_rows_in_use_are_considered():
    U = np.array([[1.0], [2.0], [0.0]])
    changes, listener = record()
    assert remove_zero_rows(U, np.ones(1), 2, listener) == 2
    assert changes == []


def test_relocation_can_be_forbidden():
    U = np.array([[0.0], [1.0], [0.0]])
    changes, listener = record()
    with pytest.raises(UnsupportedOperationError):
        remove_zero_rows(U, np.ones(1), 3, listener, relocate=False)
    assert changes == []
    np.testing.assert_array_equal(U[:, 0], [0.0, 1.0, 0.0])

    U = np.array([[1.0], [0.0], [0.0]])
    assert remove_zero_rows(U, np.ones(1), 3, listener, relocate=False) == 1
    assert sorted(changes) == [(-1, 1), (-1, 2)]
