import os
from pathlib import Path
from typing import Any, Dict
import yaml
from dotenv import load_dotenv

from ledger.errors import ConfigError
from utils.logger import logger
from utils.paths import default_app_dir

BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_CFG: Dict[str, Any] = {
    "blinkit": {
        "base_url": "https://blinkit.com",
        "paths": {
            "order_history": "/v1/layout/order_history",
            "order_count": "/v1/order_count",
            "auth_key": "/v2/accounts/auth_key/",
        },
        "user_agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
        ),
    },
    "timeouts": {"rest_ms": 20000, "bootstrap_ms": 15000},
    "retries": {"rest_max_attempts": 1, "backoff_ms": 200},
    "sync": {"pages": 1, "page_size": 0, "sleep_ms": 350, "persist_each_page": True},
    "storage": {"app_dir": "", "session_file": "config.json", "ledger_file": "orders.json"},
    "login": {"timeout_s": 480, "poll_s": 2.0},
}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def resolve_env(obj):
    if isinstance(obj, dict):
        return {k: resolve_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [resolve_env(v) for v in obj]
    if isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
        varname = obj[2:-1]
        return os.getenv(varname, "")
    return obj


def load_cfg(cfg_path: str | None = None) -> Dict[str, Any]:
    """
    Load config.yaml (or cfg_path / $BLINK_LEDGER_CONFIG), overlay it on DEFAULT_CFG
    and resolve "${VAR}" strings from the environment (.env is loaded first).
    """
    load_dotenv(BASE_DIR / ".env")

    cfg_path = cfg_path or os.getenv("BLINK_LEDGER_CONFIG")
    cfg_file = Path(cfg_path) if cfg_path else (BASE_DIR / "config.yaml")

    raw_cfg: Dict[str, Any] = {}
    if cfg_file.exists():
        try:
            with open(cfg_file, "r", encoding="utf-8") as f:
                raw_cfg = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read config {cfg_file}: {e}") from e
        if not isinstance(raw_cfg, dict):
            raise ConfigError(f"config {cfg_file} must be a mapping")
    elif cfg_path:
        raise ConfigError(f"config file not found: {cfg_file}")
    else:
        logger.debug(f"No config.yaml at {cfg_file}, using defaults")

    return resolve_env(_deep_merge(DEFAULT_CFG, raw_cfg))


def app_dir(cfg: Dict[str, Any]) -> Path:
    configured = (cfg.get("storage") or {}).get("app_dir") or ""
    return Path(configured).expanduser() if configured else default_app_dir()


def session_path(cfg: Dict[str, Any]) -> Path:
    return app_dir(cfg) / cfg["storage"]["session_file"]


def ledger_path(cfg: Dict[str, Any]) -> Path:
    return app_dir(cfg) / cfg["storage"]["ledger_file"]
