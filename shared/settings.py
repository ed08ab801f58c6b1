from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

CLOCK_TICK_S = 20e-9
MIN_CLOCK_PERIOD = 500
MAX_CLOCK_PERIOD = 2_147_483_647
MAX_BATCH_LENGTH = 262_144

# Environment variable -> ScanSettings field
_ENV_KEYS: Dict[str, str] = {
    "DATA_POST_URL": "post_url",
    "RAPIDSCAN_DEVICE": "device_kind",
    "RAPIDSCAN_DEVICE_LIBRARY": "device_library",
    "RAPIDSCAN_PUBLISH_INTERVAL_S": "publish_interval_s",
    "RAPIDSCAN_START_POLL_INTERVAL_S": "start_poll_interval_s",
    "RAPIDSCAN_MAX_BATCH": "max_batch",
    "RAPIDSCAN_POSITION_RESOLUTION": "position_resolution",
    "RAPIDSCAN_CLOCK_PERIOD": "clock_period",
    "RAPIDSCAN_LOWPASS_CUTOFF_HZ": "lowpass_cutoff_hz",
    "RAPIDSCAN_LOWPASS_TRANSITION": "lowpass_transition",
    "RAPIDSCAN_HTTP_TIMEOUT_S": "http_timeout_s",
    "RAPIDSCAN_LOG_LEVEL": "log_level",
}


@dataclass(frozen=True)
class ScanSettings:
    post_url: Optional[str] = None
    device_kind: str = "simulated"
    device_library: Optional[str] = None
    publish_interval_s: float = 0.3
    start_poll_interval_s: float = 0.001
    max_batch: int = 100_000
    position_resolution: float = 1.0
    clock_period: Optional[int] = MIN_CLOCK_PERIOD
    lowpass_cutoff_hz: float = 1_000.0
    lowpass_transition: float = 0.02
    http_timeout_s: float = 5.0
    log_level: str = "INFO"

    @property
    def sample_rate_hz(self) -> float:
        """Sampling rate implied by the device clock period."""
        period = self.clock_period if self.clock_period is not None else MIN_CLOCK_PERIOD
        return 1.0 / (period * CLOCK_TICK_S)

    def validate(self) -> None:
        if self.publish_interval_s <= 0:
            raise ValueError("publish_interval_s must be positive")
        if self.start_poll_interval_s <= 0:
            raise ValueError("start_poll_interval_s must be positive")
        if not 1 <= self.max_batch <= MAX_BATCH_LENGTH:
            raise ValueError(f"max_batch must be between 1 and {MAX_BATCH_LENGTH}")
        if self.position_resolution <= 0:
            raise ValueError("position_resolution must be positive")
        if self.clock_period is not None and not (
            MIN_CLOCK_PERIOD <= self.clock_period <= MAX_CLOCK_PERIOD
        ):
            raise ValueError(
                f"clock_period must be between {MIN_CLOCK_PERIOD} and {MAX_CLOCK_PERIOD}"
            )
        nyquist = self.sample_rate_hz / 2.0
        if not 0 < self.lowpass_cutoff_hz < nyquist:
            raise ValueError("lowpass_cutoff_hz must be between 0 and Nyquist")
        if not 0 < self.lowpass_transition < 0.5:
            raise ValueError("lowpass_transition must be between 0 and 0.5")
        if self.http_timeout_s <= 0:
            raise ValueError("http_timeout_s must be positive")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ValueError(f"Unknown log level: {self.log_level!r}")

    def with_updates(self, **kwargs: Any) -> "ScanSettings":
        updated = replace(self, **kwargs)
        updated.validate()
        return updated


def _coerce(name: str, raw: str) -> Any:
    """Convert an environment string to the type of the ScanSettings field."""
    if name in ("max_batch", "clock_period"):
        if name == "clock_period" and raw.strip().lower() in ("", "none"):
            return None
        return int(raw)
    if name in (
        "publish_interval_s",
        "start_poll_interval_s",
        "position_resolution",
        "lowpass_cutoff_hz",
        "lowpass_transition",
        "http_timeout_s",
    ):
        return float(raw)
    return raw


def settings_from_mapping(values: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    """Extract ScanSettings keyword arguments from an environment-style mapping."""
    kwargs: Dict[str, Any] = {}
    for env_key, field_name in _ENV_KEYS.items():
        raw = values.get(env_key)
        if raw is None:
            continue
        try:
            kwargs[field_name] = _coerce(field_name, raw)
        except ValueError:
            raise ValueError(f"{env_key}={raw!r} is not a valid {field_name}") from None
    return kwargs


def load_settings(
    env_file: Optional[Union[str, Path]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ScanSettings:
    """
    Build ScanSettings from a dotenv file, the process environment and overrides.

    Later sources win: `.env` values are overlaid by the environment, which is
    overlaid by explicit keyword overrides. Overrides set to None are ignored.
    """
    merged: Dict[str, Optional[str]] = {}
    if env_file is not None:
        path = Path(env_file)
        if not path.is_file():
            raise FileNotFoundError(f"Settings file not found: {path}")
        merged.update(dotenv_values(path))
        logger.debug("Loaded settings file %s", path)
    elif Path(".env").is_file():
        merged.update(dotenv_values(".env"))
    merged.update(os.environ if environ is None else environ)

    kwargs = settings_from_mapping(merged)
    known = {f.name for f in fields(ScanSettings)}
    for name, value in overrides.items():
        if name not in known:
            raise TypeError(f"Unknown setting: {name}")
        if value is not None:
            kwargs[name] = value

    settings = ScanSettings(**kwargs)
    settings.validate()
    return settings


__all__ = ["ScanSettings", "load_settings", "settings_from_mapping"]
