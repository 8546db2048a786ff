"""Centralized path computations for hostdrive.

All local state lives under a single home directory (``~/.hostdrive`` by
default).  The ``HOSTDRIVE_HOME`` environment variable overrides the
default for testing.
"""

import os
from pathlib import Path

_DEFAULT_HOME = Path.home() / ".hostdrive"


def home(override: Path | None = None) -> Path:
    """Return the hostdrive home directory.

    Resolution order:
    1. *override* argument (used in tests)
    2. ``HOSTDRIVE_HOME`` environment variable
    3. ``~/.hostdrive``
    """
    if override is not None:
        return override
    env = os.environ.get("HOSTDRIVE_HOME")
    if env:
        return Path(env)
    return _DEFAULT_HOME


def config_path(hc_home: Path) -> Path:
    return hc_home / "config.yaml"


def log_path(hc_home: Path) -> Path:
    return hc_home / "hostdrive.log"
