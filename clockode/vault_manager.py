import os
import sys
from typing import Optional

from . import config


def get_data_dir() -> str:
    """
    Per-platform application data directory (not created).

    Windows uses %APPDATA%, macOS ~/Library/Application Support, and other
    systems $XDG_DATA_HOME or ~/.local/share.
    """
    home = os.path.expanduser("~")
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.path.join(home, "AppData", "Roaming")
    elif sys.platform == "darwin":
        base = os.path.join(home, "Library", "Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.join(home, ".local", "share")
    return os.path.join(base, config.APP_ID)


def default_vault_path() -> str:
    """Path where the vault is kept unless the caller chooses another one."""
    return os.path.join(get_data_dir(), config.DEFAULT_VAULT_FILE)


def find_vault(path: Optional[str] = None) -> Optional[str]:
    """
    Return the vault path if a vault file exists there, else None.
    Checks the default location when no path is given.
    """
    path = path or default_vault_path()
    return path if os.path.isfile(path) else None
