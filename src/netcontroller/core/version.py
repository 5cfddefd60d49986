"""Resolve the controller build version."""

import os
from importlib import metadata
from pathlib import Path

VERSION_FILE = Path("config/VERSION")
DISTRIBUTION = "network-controller"


def _read_version_file(path: Path) -> str | None:
    try:
        return path.read_text().strip() or None
    except OSError:
        return None


def get_version() -> str:
    """Return the controller version sent to the store at login.

    Lookup order: ``config/VERSION`` (written by the build), the
    ``APP_VERSION`` environment variable, the installed distribution
    metadata, and finally ``"unknown"``.
    """
    version = _read_version_file(VERSION_FILE) or os.environ.get("APP_VERSION")
    if version:
        return version
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "unknown"
