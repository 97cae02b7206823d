"""Engine configuration loaded from TOML with built-in defaults."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, cast

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Tunable parameters of the APY engine."""

    # snapshot access
    snapshot_timeout_s: float = 10.0
    history_limit_days: int = 5 * 365
    period_tolerance_ratio: float = 0.5
    history_window: int = 30
    # request validation
    max_future_days: int = 1
    max_past_years: int = 5
    # rewards-based branch
    rewards_min_days: float = 7.0
    rewards_max_days: float = 30.0
    rewards_apy_cap: float = 200.0
    stable_value_threshold: float = 0.01
    # cache
    ttl_long_s: int = 3600
    ttl_medium_s: int = 1800
    ttl_short_s: int = 900
    ttl_error_s: int = 60
    sweep_interval_s: float = 60.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "EngineConfig":
        """Build a config from a flat mapping, ignoring unknown keys."""

        if not raw:
            return cls()
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in raw.items():
            if key not in known:
                logger.warning("Ignoring unknown engine option %r", key)
                continue
            values[key] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _default_config() -> dict[str, Any]:
    return {
        "snapshots": {
            "path": str(Path(__file__).resolve().parents[1] / "sample_snapshots.json"),
            "format": "json",
        },
        "user_id": None,
        "target_date": None,
        "engine": EngineConfig().to_dict(),
        "output": {"outdir": None},
    }


def load_config(path: str | Path | None) -> dict[str, Any]:
    """Load configuration from a TOML file and merge with defaults.

    Parameters
    ----------
    path:
        Optional path to a configuration file. When ``None`` or missing, the
        built-in defaults are used.

    Returns
    -------
    dict[str, Any]
        Configuration dictionary with any file overrides applied. The
        ``engine`` table can be passed to :meth:`EngineConfig.from_mapping`.
    """

    default = _default_config()
    cfg_path = Path(path) if path else None

    if cfg_path and cfg_path.is_file():
        with open(cfg_path, "rb") as f:
            file_cfg = tomllib.load(f)
        for k, v in file_cfg.items():
            if isinstance(v, dict) and k in default and isinstance(default[k], dict):
                cast(dict, default[k]).update(v)
            else:
                default[k] = v
    elif cfg_path:
        logger.warning("Config file not found at %s. Using defaults.", cfg_path)

    return default


__all__ = ["EngineConfig", "load_config"]
