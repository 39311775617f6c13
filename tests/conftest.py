from __future__ import annotations

import numpy as np
import pytest

from incsvd.utils import set_seed


@pytest.fixture
def rng() -> np.random.Generator:
    return set_seed(1234)
