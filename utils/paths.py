# utils/paths.py
import os
import sys
from pathlib import Path

APP_DIR_NAME = "blink-ledger"


def user_config_dir() -> Path:
    """
    OS config root:
      - Linux/BSD: $XDG_CONFIG_HOME or ~/.config
      - macOS:     ~/Library/Application Support
      - Windows:   %APPDATA%
    """
    if sys.platform.startswith("win"):
        base = os.getenv("APPDATA")
        if base:
            return Path(base)
        return Path.home() / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def default_app_dir() -> Path:
    override = os.getenv("BLINK_LEDGER_HOME")
    if override:
        return Path(override)
    return user_config_dir() / APP_DIR_NAME
