"""
errors.py
=========
Exception hierarchy shared by the registry, installer and launcher.

User-actionable failures (no runtime, unsupported version, download
problems) and internal inconsistencies (persistence, directory cleanup)
both derive from RuntimeManagerError so the CLI can report them in one place.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class RuntimeManagerError(Exception):
    """Base class for every error raised by the runtime manager."""


# ──────────────────────────────────────────────
#  Registry
# ──────────────────────────────────────────────

class RuntimeNotFoundError(RuntimeManagerError):
    """Raised when an operation targets a runtime that is not registered."""


class RuntimeConflictError(RuntimeManagerError, ValueError):
    """
    Raised when a registry operation is not allowed for the given runtime.

    Examples: removing a managed runtime, deleting an unmanaged one,
    changing javaHome in ``replace`` or adding a duplicate identity.
    """


class RuntimeHomeMissingError(RuntimeManagerError, ValueError):
    """Raised when a runtime is registered with a javaHome that does not exist."""


class RegistryPersistenceError(RuntimeManagerError):
    """Raised when the runtime cache cannot be written to or read from disk."""


class RuntimeDeletionError(RuntimeManagerError):
    """Raised when the home directory of a managed runtime cannot be deleted."""

    def __init__(self, message: str, directory: Path) -> None:
        super().__init__(message)
        self.directory = directory


# ──────────────────────────────────────────────
#  Install / catalog
# ──────────────────────────────────────────────

class InstallError(RuntimeManagerError):
    """Raised when a remote runtime cannot be downloaded or extracted."""


class InstallCleanupError(InstallError):
    """
    Raised when an install failed *and* its directory could not be removed.

    The original failure is available as ``__cause__``.
    """

    def __init__(self, message: str, directory: Path) -> None:
        super().__init__(message)
        self.directory = directory


class CatalogError(RuntimeManagerError):
    """Raised when a remote runtime catalog cannot be fetched or parsed."""


# ──────────────────────────────────────────────
#  Launch
# ──────────────────────────────────────────────

class LaunchError(RuntimeManagerError):
    """Base class for failures while launching an application."""


class NoRuntimeFoundError(LaunchError):
    """Raised when none of the requirements yields a runtime."""


class UnsupportedRuntimeVersionError(LaunchError):
    """Raised when the selected runtime has no launch profile."""

    def __init__(self, version: object, message: Optional[str] = None) -> None:
        super().__init__(message or f"Java {version} is not supported")
        self.version = version


class MissingExecutableError(LaunchError):
    """Raised when a runtime home has no java executable."""


class LauncherJarError(LaunchError):
    """Raised when the launcher archive cannot be located."""
