"""
runtimes.py
===========
Data model for local and remote Java runtimes.

  LocalRuntime   – a runtime on this machine (managed = installed by us)
  RemoteRuntime  – a downloadable runtime offered by an update server
  CacheStore     – the ordered snapshot persisted as cache.json
  Result         – outcome of operations that report many results at once
"""

from __future__ import annotations

import dataclasses
import platform
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from version_string import VersionId


# ──────────────────────────────────────────────
#  Operating System
# ──────────────────────────────────────────────

# Map platform.system() → OS family
_OS_MAP: Dict[str, str] = {
    "Linux": "linux",
    "Darwin": "mac",
    "Windows": "win",
}

# Map platform.machine() → architecture suffix
_ARCH_MAP: Dict[str, str] = {
    "x86_64": "64",
    "AMD64": "64",
    "x86": "32",
    "i686": "32",
    "i386": "32",
    "aarch64": "arm64",
    "arm64": "arm64",
    "ARM64": "arm64",
}


class OperatingSystem(str, Enum):
    """Operating system and architecture a runtime is built for."""

    LINUX64 = "linux64"
    LINUX32 = "linux32"
    LINUXARM64 = "linuxarm64"
    MAC64 = "mac64"
    MACARM64 = "macarm64"
    WIN64 = "win64"
    WIN32 = "win32"

    @property
    def is_windows(self) -> bool:
        return self.value.startswith("win")

    @property
    def is_mac(self) -> bool:
        return self.value.startswith("mac")

    @classmethod
    def from_value(cls, value: str) -> "OperatingSystem":
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Unknown operating system: {value!r}") from None

    @classmethod
    def get_local_system(cls) -> "OperatingSystem":
        system = platform.system()
        machine = platform.machine()
        family = _OS_MAP.get(system)
        arch = _ARCH_MAP.get(machine)
        if family is None or arch is None:
            raise ValueError(f"Unsupported platform: {system} {machine}")
        return cls.from_value(family + arch)

    def __str__(self) -> str:
        return self.value


# ──────────────────────────────────────────────
#  LocalRuntime
# ──────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class LocalRuntime:
    """
    A Java runtime available on this machine.

    Two runtimes are equal when vendor, version, OS and javaHome match;
    the ``managed`` and ``active`` flags do not take part in equality.
    """

    version: VersionId
    os: OperatingSystem
    vendor: str
    java_home: Path
    managed: bool = False
    active: bool = True

    @property
    def identity(self) -> Tuple[str, VersionId, OperatingSystem]:
        return self.vendor, self.version, self.os

    def with_active(self, active: bool) -> "LocalRuntime":
        return dataclasses.replace(self, active=active)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LocalRuntime):
            return NotImplemented
        return self.identity == other.identity and self.java_home == other.java_home

    def __hash__(self) -> int:
        return hash((self.identity, self.java_home))

    def __str__(self) -> str:
        return f"{self.vendor} {self.version} ({self.os}) at {self.java_home}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor": self.vendor,
            "version": str(self.version),
            "os": self.os.value,
            "javaHome": str(self.java_home),
            "managed": self.managed,
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocalRuntime":
        return cls(
            version=VersionId(data["version"]),
            os=OperatingSystem.from_value(data["os"]),
            vendor=data.get("vendor", "unknown"),
            java_home=Path(data["javaHome"]),
            managed=bool(data.get("managed", False)),
            active=bool(data.get("active", True)),
        )


# ──────────────────────────────────────────────
#  RemoteRuntime
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class RemoteRuntime:
    """A downloadable runtime offered by an update server."""

    version: VersionId
    os: OperatingSystem
    vendor: str
    endpoint: str

    def __str__(self) -> str:
        return f"{self.vendor} {self.version} ({self.os}) from {self.endpoint}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteRuntime":
        return cls(
            version=VersionId(data["version"]),
            os=OperatingSystem.from_value(data["os"]),
            vendor=data["vendor"],
            endpoint=data["endpoint"],
        )


# ──────────────────────────────────────────────
#  CacheStore
# ──────────────────────────────────────────────

@dataclass
class CacheStore:
    """Ordered snapshot of every known LocalRuntime (the cache.json document)."""

    runtimes: List[LocalRuntime] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"runtimes": [r.to_dict() for r in self.runtimes]}

    @classmethod
    def from_json_data(cls, data: Any) -> "CacheStore":
        """Accept ``{"runtimes": [...]}`` or a bare list of records."""
        records = data.get("runtimes", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise ValueError("Runtime cache must hold a list of runtimes")
        return cls([LocalRuntime.from_dict(r) for r in records])


# ──────────────────────────────────────────────
#  Result Object
# ──────────────────────────────────────────────

@dataclass
class Result:
    """Outcome of a single step in a batch operation (e.g. local discovery)."""

    success: bool
    message: str
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **details: Any) -> "Result":
        return cls(success=True, message=message, details=details)

    @classmethod
    def fail(cls, message: str, error: Optional[str] = None, **details: Any) -> "Result":
        return cls(success=False, message=message, error=error, details=details)
