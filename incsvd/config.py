"""Configuration of the incremental decompositions.

Tunables can be given directly to the constructors or collected in a
:class:`DecompositionConfig`, typically loaded from a YAML file::

    incsvd:
      gamma: 10.0
      min_ratio: 0.5
      recycle_memory: true
      max_rank: 50
      order: C
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields

import yaml

from .errors import ConfigError
from .secular import DEFAULT_GAMMA


@dataclass
class DecompositionConfig:
    """Numeric tunables shared by the incremental engines.

    Parameters
    ----------
    gamma : float
        Safety factor of the deflation and stopping thresholds
        ``gamma * eps * scale``.  Too small a value risks deflating distinct
        eigenvalues, too large a value loses precision.
    min_ratio : float
        ``U = U1 U2`` is collapsed into ``U1`` when ``cols(U2) / rows(U2)``
        drops below this ratio.
    recycle_memory : bool
        Reuse the previous ``U2`` as the output buffer of the next product.
    max_rank : int, optional
        Maximum rank of the decomposition (``None`` for no cap).
    order : {"C", "F"}
        Storage order of the allocated matrices.
    want_v : bool
        Track the row space (``V``) in :class:`~incsvd.incremental_svd.IncrementalSVD`.
    """

    gamma: float = DEFAULT_GAMMA
    min_ratio: float = 0.5
    recycle_memory: bool = True
    max_rank: int | None = None
    order: str = "C"
    want_v: bool = False

    def __post_init__(self) -> None:
        self.gamma = float(self.gamma)
        self.min_ratio = float(self.min_ratio)
        if self.gamma <= 0:
            raise ConfigError(f"gamma must be positive, got {self.gamma}")
        if self.min_ratio < 0:
            raise ConfigError(f"min_ratio must be non-negative, got {self.min_ratio}")
        if self.max_rank is not None:
            self.max_rank = int(self.max_rank)
            if self.max_rank < 1:
                raise ConfigError(f"max_rank must be at least 1, got {self.max_rank}")
        if self.order not in ("C", "F"):
            raise ConfigError(f"order must be 'C' or 'F', got {self.order!r}")

    @classmethod
    def from_dict(cls, cfg: dict | None) -> "DecompositionConfig":
        cfg = dict(cfg or {})
        known = {f.name for f in fields(cls)}
        unknown = set(cfg) - known
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**cfg)

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(config_path: str) -> DecompositionConfig:
    """Load a YAML configuration file.

    Parameters
    ----------
    config_path : str
        Path to a YAML file.  The keys may be at the top level or inside an
        ``incsvd`` section.

    Returns
    -------
    cfg : DecompositionConfig
        Configuration object.
    """
    with open(config_path, 'r', encoding='utf-8') as f:
        cfg = yaml.safe_load(f)
    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ConfigError(f"{config_path}: expected a mapping at the top level")
    if "incsvd" in cfg:
        cfg = cfg["incsvd"]
    return DecompositionConfig.from_dict(cfg)


def save_config(path: str, config: DecompositionConfig) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"incsvd": config.to_dict()}, f)
