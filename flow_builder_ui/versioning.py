"""Version and build details of the installed Flow Builder UI.

The version comes from the package metadata; revision and build date are
injected into the environment at deploy time.
"""

import os
from importlib.metadata import PackageNotFoundError, version

PKG_NAME = "flow-builder-ui"  # matches pyproject.toml
UNKNOWN_VERSION = "0.0.0+unknown"


def get_app_version() -> str:
    """Returns the installed package version, or ``0.0.0+unknown``."""
    try:
        return version(PKG_NAME)
    except PackageNotFoundError:
        return UNKNOWN_VERSION


def get_build_info() -> dict[str, str]:
    """Returns the version, git revision and build date of this deployment."""
    return {
        "app_version": get_app_version(),
        "git_sha": os.environ.get("APP_GIT_SHA", "unknown"),
        "build_date": os.environ.get("APP_BUILD_DATE", "unknown"),
    }
