"""Configuration loading for the buddy app."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass(frozen=True)
class AppConfig:
    """Runtime configuration values."""

    gemini_api_key: str
    gemini_model: str
    gemini_base_url: str
    gemini_timeout_sec: Optional[float]
    gemini_trace_log: Optional[str]
    buddy_ids: List[str]
    buddies_path: Optional[str]
    state_dir: str
    interval_sec: float
    fingerprint_chars: int
    min_activity: float
    single_flight: bool
    max_in_flight: int
    screencapture_display: Optional[int]
    ocr_lang: str
    verbose: bool
    timeline: bool
    timeline_path: Optional[str]


DEFAULT_GEMINI_MODEL = "gemini-1.5-flash-latest"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_BUDDY_IDS = ["leo", "zenbunny", "spacecat"]
DEFAULT_INTERVAL_SEC = 8.0
DEFAULT_FINGERPRINT_CHARS = 350
DEFAULT_MIN_ACTIVITY = 0.0
DEFAULT_SINGLE_FLIGHT = True
DEFAULT_MAX_IN_FLIGHT = 3
DEFAULT_OCR_LANG = "eng"

CONFIG_DIR = Path.home() / ".buddy"
CONFIG_PATH = CONFIG_DIR / "config.yaml"
SECRETS_PATH = CONFIG_DIR / "secrets.yaml"


def _load_yaml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load YAML config file. Returns empty dict if not found."""
    p = path or CONFIG_PATH
    if not p.exists():
        return {}
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (yaml.YAMLError, OSError):
        return {}


def _split_list(value: str) -> List[str]:
    items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


def _read_positive_float(value: str, default: float, name: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        return default
    if parsed <= 0:
        raise ValueError(f"{name} must be > 0.")
    return parsed


def _read_positive_int(value: str, default: int, name: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        return default
    if parsed <= 0:
        raise ValueError(f"{name} must be > 0.")
    return parsed


def _read_nonnegative_float(value: str, default: float, name: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        return default
    if parsed < 0:
        raise ValueError(f"{name} must be >= 0.")
    return parsed


def _read_optional_int(value: str, name: str) -> Optional[int]:
    stripped = value.strip()
    if not stripped:
        return None
    try:
        parsed = int(stripped)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc
    if parsed < 0:
        raise ValueError(f"{name} must be >= 0.")
    return parsed


def _read_optional_float(value: str, name: str) -> Optional[float]:
    stripped = value.strip()
    if not stripped:
        return None
    try:
        parsed = float(stripped)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number.") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be > 0.")
    return parsed


def _read_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_api_key(secrets_path: Optional[Path] = None) -> str:
    """Return the Gemini key from the environment or the local secrets file."""
    api_key = os.getenv("GEMINI_API_KEY", "").strip()
    if not api_key:
        api_key = os.getenv("GOOGLE_API_KEY", "").strip()
    if api_key:
        return api_key
    secrets = _load_yaml_config(secrets_path or SECRETS_PATH)
    return str(secrets.get("GEMINI_API_KEY", "") or "").strip()


def load_config(
    config_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load configuration from ~/.buddy/config.yaml + environment variables.

    YAML provides defaults; env vars override everything. A Gemini API key is
    mandatory: without one no reaction cycle may run, so this raises.
    """
    yaml_cfg = _load_yaml_config(config_path)
    yaml_defaults: Dict[str, Any] = yaml_cfg.get("defaults", {}) or {}

    gemini_api_key = _resolve_api_key(secrets_path)
    if not gemini_api_key:
        raise ValueError(
            "Missing GEMINI_API_KEY. Set it in your environment, .env file, "
            f"or {SECRETS_PATH}."
        )

    def _default(key: str, fallback: Any) -> str:
        value = yaml_defaults.get(key)
        return str(fallback if value is None else value)

    gemini_model = os.getenv(
        "GEMINI_MODEL", _default("model", DEFAULT_GEMINI_MODEL)
    ).strip()
    gemini_base_url = os.getenv(
        "BUDDY_GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL
    ).strip().rstrip("/")
    gemini_timeout_sec = _read_optional_float(
        os.getenv("BUDDY_GEMINI_TIMEOUT_SEC", ""),
        "BUDDY_GEMINI_TIMEOUT_SEC",
    )
    gemini_trace_log = os.getenv("BUDDY_GEMINI_TRACE_LOG", "").strip() or None

    yaml_ids = yaml_defaults.get("buddies")
    if isinstance(yaml_ids, list):
        default_ids = [str(item).strip() for item in yaml_ids if str(item).strip()]
    else:
        default_ids = list(DEFAULT_BUDDY_IDS)
    buddy_ids = _split_list(os.getenv("BUDDY_IDS", "")) or default_ids

    buddies_path = os.getenv(
        "BUDDY_DIRECTORY", _default("directory", "")
    ).strip() or None
    if buddies_path:
        buddies_path = os.path.expanduser(buddies_path)
    state_dir = os.path.expanduser(
        os.getenv("BUDDY_STATE_DIR", _default("state_dir", CONFIG_DIR)).strip()
    )

    interval_sec = _read_positive_float(
        os.getenv("BUDDY_INTERVAL_SEC", _default("interval", DEFAULT_INTERVAL_SEC)),
        DEFAULT_INTERVAL_SEC,
        "BUDDY_INTERVAL_SEC",
    )
    fingerprint_chars = _read_positive_int(
        os.getenv("BUDDY_FINGERPRINT_CHARS", str(DEFAULT_FINGERPRINT_CHARS)),
        DEFAULT_FINGERPRINT_CHARS,
        "BUDDY_FINGERPRINT_CHARS",
    )
    min_activity = _read_nonnegative_float(
        os.getenv("BUDDY_MIN_ACTIVITY", str(DEFAULT_MIN_ACTIVITY)),
        DEFAULT_MIN_ACTIVITY,
        "BUDDY_MIN_ACTIVITY",
    )
    single_flight_env = os.getenv("BUDDY_SINGLE_FLIGHT", "").strip()
    single_flight = (
        DEFAULT_SINGLE_FLIGHT if not single_flight_env else _read_bool(single_flight_env)
    )
    max_in_flight = _read_positive_int(
        os.getenv("BUDDY_MAX_IN_FLIGHT", str(DEFAULT_MAX_IN_FLIGHT)),
        DEFAULT_MAX_IN_FLIGHT,
        "BUDDY_MAX_IN_FLIGHT",
    )
    screencapture_display = _read_optional_int(
        os.getenv("BUDDY_SCREENCAPTURE_DISPLAY", ""),
        "BUDDY_SCREENCAPTURE_DISPLAY",
    )
    ocr_lang = os.getenv("BUDDY_OCR_LANG", _default("ocr_lang", DEFAULT_OCR_LANG)).strip()

    verbose = _read_bool(os.getenv("BUDDY_VERBOSE", ""))
    timeline = _read_bool(os.getenv("BUDDY_TIMELINE", ""))
    timeline_path = os.getenv("BUDDY_TIMELINE_PATH", "").strip() or None

    return AppConfig(
        gemini_api_key=gemini_api_key,
        gemini_model=gemini_model,
        gemini_base_url=gemini_base_url,
        gemini_timeout_sec=gemini_timeout_sec,
        gemini_trace_log=gemini_trace_log,
        buddy_ids=buddy_ids,
        buddies_path=buddies_path,
        state_dir=state_dir,
        interval_sec=interval_sec,
        fingerprint_chars=fingerprint_chars,
        min_activity=min_activity,
        single_flight=single_flight,
        max_in_flight=max_in_flight,
        screencapture_display=screencapture_display,
        ocr_lang=ocr_lang or DEFAULT_OCR_LANG,
        verbose=verbose,
        timeline=timeline,
        timeline_path=timeline_path,
    )
