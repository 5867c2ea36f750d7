"""Configuration helpers for the curation pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional
import tomllib

from .curation_types import SCORE_KEYS

logger = logging.getLogger(__name__)

_CONFIG_ENV_PREFIX = "CURATORWORKS_CURATION__"
_GATE_CAPS = ("MAYBE", "EXCLUDE")
_PAIRING_STRATEGIES = ("round_robin", "random", "bracket")


def _find_pyproject(start: Optional[Path] = None) -> Optional[Path]:
    """Locate the nearest ``pyproject.toml`` relative to *start*."""

    current = (start or Path.cwd()).resolve()
    for candidate in [current, *current.parents]:
        pyproject = candidate / "pyproject.toml"
        if pyproject.exists():
            return pyproject
    return None


def _coerce_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


def _coerce_int(value: object, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_float(value: object, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _coerce_str(value: object, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _coerce_weights(
    value: object, default: Optional[Dict[str, float]]
) -> Optional[Dict[str, float]]:
    """Accept a TOML table or ``key=value,key=value`` from the environment."""

    if value is None:
        return default
    pairs: Dict[str, object] = {}
    if isinstance(value, dict):
        pairs = dict(value)
    elif isinstance(value, str):
        for chunk in value.split(","):
            if "=" not in chunk:
                continue
            key, raw = chunk.split("=", 1)
            pairs[key.strip()] = raw.strip()
    else:
        return default

    weights: Dict[str, float] = {}
    for key in SCORE_KEYS:
        if key not in pairs:
            logger.warning("Ignoring critic weights override missing '%s'", key)
            return default
        weight = _coerce_float(pairs[key], -1.0)
        if weight < 0:
            logger.warning("Ignoring critic weights override with bad '%s'", key)
            return default
        weights[key] = weight
    if sum(weights.values()) <= 0:
        return default
    return weights


@dataclass(frozen=True)
class CurationSettings:
    """Default configuration values sourced from project metadata."""

    base_url: str = "http://localhost:8100/v1"
    model: str = "qwen2.5-vl-7b-instruct"
    api_key: str = "EMPTY"
    timeout: int = 120
    max_new_tokens: int = 768
    temperature: float = 0.1
    top_p: float = 0.9

    triage_enabled: bool = True
    triage_sample_rate: float = 1.0
    triage_daily_budget_usd: float = 5.0
    triage_cost_estimate_usd: float = 0.002
    critic_cost_estimate_usd: float = 0.02
    tagger_version: str = "tagger-1.0"

    default_persona: str = "nina"
    critic_weights: Optional[Dict[str, float]] = None
    band_masterwork: int = 90
    band_include: int = 75
    band_maybe: int = 60
    penalty_major: int = 10
    penalty_minor: int = 5
    gate_cap: str = "MAYBE"

    max_concurrency: int = 3
    wave_size: int = 6
    cooldown_seconds: float = 2.0
    pairing_strategy: str = "random"
    pairing_rounds: int = 0

    api_host: str = "127.0.0.1"
    api_port: int = 8300

    art_curation_enabled: bool = True
    batch_enabled: bool = True
    tournament_enabled: bool = True
    store_path: Path = Path("outputs/curation/store.json")
    summary_path: Path = Path("outputs/summaries/curation_session.md")


def _load_pyproject_settings(start: Optional[Path]) -> Dict[str, object]:
    pyproject = _find_pyproject(start)
    if not pyproject:
        return {}
    try:
        with pyproject.open("rb") as handle:
            data = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Unable to read %s: %s", pyproject, exc)
        return {}

    tool_cfg = data.get("tool", {}).get("curatorworks", {})
    if not isinstance(tool_cfg, dict):
        return {}
    curation_cfg = tool_cfg.get("curation")
    return curation_cfg if isinstance(curation_cfg, dict) else {}


def _load_env_settings() -> Dict[str, object]:
    values: Dict[str, object] = {}
    for env_key, env_value in os.environ.items():
        if not env_key.startswith(_CONFIG_ENV_PREFIX):
            continue
        key = env_key[len(_CONFIG_ENV_PREFIX) :].lower()
        values[key] = env_value
    return values


def _coerce_field(name: str, value: object, default: object) -> object:
    if name == "critic_weights":
        return _coerce_weights(value, default)
    if isinstance(default, bool):
        return _coerce_bool(value, default)
    if isinstance(default, int):
        return _coerce_int(value, default)
    if isinstance(default, float):
        return _coerce_float(value, default)
    if isinstance(default, Path):
        text = _coerce_str(value, "")
        return Path(text).expanduser() if text else default
    return _coerce_str(value, default)


def load_settings(
    start: Optional[Path] = None, **overrides: object
) -> CurationSettings:
    """Resolve settings: dataclass defaults, then pyproject, then environment.

    Keyword *overrides* win over everything; ``None`` values are ignored so CLI
    options can be passed straight through.
    """

    defaults = CurationSettings()
    merged: Dict[str, object] = {}
    for layer in (_load_pyproject_settings(start), _load_env_settings(), overrides):
        for key, value in layer.items():
            if value is not None:
                merged[key] = value

    known = {item.name for item in fields(CurationSettings)}
    unknown = sorted(set(merged) - known)
    if unknown:
        logger.debug("Ignoring unknown curation settings: %s", ", ".join(unknown))

    resolved = {
        name: _coerce_field(name, merged[name], getattr(defaults, name))
        for name in known
        if name in merged
    }
    settings = replace(defaults, **resolved)
    return _validated(settings, defaults)


def _validated(settings: CurationSettings, defaults: CurationSettings) -> CurationSettings:
    fixes: Dict[str, object] = {}
    if not 0.0 <= settings.triage_sample_rate <= 1.0:
        fixes["triage_sample_rate"] = min(1.0, max(0.0, settings.triage_sample_rate))
    if settings.gate_cap.upper() not in _GATE_CAPS:
        fixes["gate_cap"] = defaults.gate_cap
    elif settings.gate_cap != settings.gate_cap.upper():
        fixes["gate_cap"] = settings.gate_cap.upper()
    if settings.pairing_strategy not in _PAIRING_STRATEGIES:
        fixes["pairing_strategy"] = defaults.pairing_strategy
    if not (0 < settings.band_maybe < settings.band_include < settings.band_masterwork <= 100):
        fixes.update(
            band_maybe=defaults.band_maybe,
            band_include=defaults.band_include,
            band_masterwork=defaults.band_masterwork,
        )
    if settings.max_concurrency < 1:
        fixes["max_concurrency"] = 1
    if settings.wave_size < 1:
        fixes["wave_size"] = 1
    if settings.cooldown_seconds < 0:
        fixes["cooldown_seconds"] = 0.0
    if fixes:
        logger.warning("Adjusted invalid curation settings: %s", sorted(fixes))
        settings = replace(settings, **fixes)
    return settings


__all__ = ["CurationSettings", "load_settings"]
