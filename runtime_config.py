"""
runtime_config.py
=================
Configuration and constants for the JVM runtime manager.

The configuration lives in ``config.json``::

    {
      "paths":    {"cache_dir": "~/.jvm-runtime-manager/jvms",
                   "launcher_jar": "/opt/launcher/openwebstart.jar"},
      "runtimes": {"default_vendor": "*",
                   "specific_vendor_enabled": true,
                   "supported_versions": "1.8+",
                   "default_update_server": "https://example.org/jvms",
                   "allow_download": true}
    }

One ``RuntimeManagerConfig`` is built at process start and handed to the
registry, resolver, installer and launcher.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from version_string import VersionString

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
#  Constants
# ──────────────────────────────────────────────

JSON_STORE_FILENAME = "cache.json"

# Whole request/response cycle of a runtime download
HTTP_TIMEOUT_IN_MS = 300_000

VENDOR_ANY = "*"

DEFAULT_CACHE_PATH = Path.home() / ".jvm-runtime-manager" / "jvms"

REMOTE_DEBUGGING_PORT_ENV = "JRM_REMOTE_DEBUGGING_PORT"

LAUNCHER_JAR_NAME = "openwebstart.jar"

# Argument file shipped next to the launcher jar, needed on Java 9+
MODULAR_JDK_ARGS = "itw-modularjdk.args"

BOOT_CLASS = "net.sourceforge.jnlp.runtime.Boot"


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be an object")
    return section


def _typed(section: Dict[str, Any], key: str, expected: type, default: Any = None) -> Any:
    """Value of ``key`` in ``section``, or ``default`` if unset; ValueError on a wrong type."""
    value = section.get(key.rsplit(".", 1)[-1])
    if value is None:
        return default
    if not isinstance(value, expected):
        raise ValueError(
            f"Config key '{key}' must be a {expected.__name__}, got {type(value).__name__} {value!r}"
        )
    return value


# ──────────────────────────────────────────────
#  RuntimeManagerConfig
# ──────────────────────────────────────────────

@dataclass
class RuntimeManagerConfig:
    """
    Settings shared by every runtime-manager component.

    Attributes:
        cache_path:               Root directory for managed runtimes and cache.json
        default_vendor:           Vendor used when vendor pinning is disabled
        specific_vendor_enabled:  Honour the vendor requested by the caller
        supported_version_range:  Global policy every selected runtime must satisfy
        default_update_server:    Catalog URL used when a requirement has no location
        allow_download:           Whether missing runtimes may be installed
        launcher_jar:             Path of the launcher archive (searched if None)
    """

    cache_path: Path = field(default_factory=lambda: DEFAULT_CACHE_PATH)
    default_vendor: str = VENDOR_ANY
    specific_vendor_enabled: bool = True
    supported_version_range: Optional[VersionString] = None
    default_update_server: Optional[str] = None
    allow_download: bool = True
    launcher_jar: Optional[Path] = None

    @property
    def json_store_path(self) -> Path:
        return self.cache_path / JSON_STORE_FILENAME

    # ================================================================
    #  SERIALIZATION
    # ================================================================

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeManagerConfig":
        """
        Build a config from the ``config.json`` layout.

        Raises:
            ValueError: a section is not an object or a value has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a JSON object, not {type(data).__name__}")
        paths = _section(data, "paths")
        runtimes = _section(data, "runtimes")

        supported = _typed(runtimes, "runtimes.supported_versions", str)
        launcher_jar = _typed(paths, "paths.launcher_jar", str)
        cache_dir = _typed(paths, "paths.cache_dir", str)

        return cls(
            cache_path=Path(cache_dir).expanduser() if cache_dir else DEFAULT_CACHE_PATH,
            default_vendor=_typed(runtimes, "runtimes.default_vendor", str) or VENDOR_ANY,
            specific_vendor_enabled=_typed(runtimes, "runtimes.specific_vendor_enabled", bool, True),
            supported_version_range=VersionString.from_string(supported) if supported else None,
            default_update_server=_typed(runtimes, "runtimes.default_update_server", str) or None,
            allow_download=_typed(runtimes, "runtimes.allow_download", bool, True),
            launcher_jar=Path(launcher_jar).expanduser() if launcher_jar else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paths": {
                "cache_dir": str(self.cache_path),
                "launcher_jar": str(self.launcher_jar) if self.launcher_jar else None,
            },
            "runtimes": {
                "default_vendor": self.default_vendor,
                "specific_vendor_enabled": self.specific_vendor_enabled,
                "supported_versions": (
                    str(self.supported_version_range)
                    if self.supported_version_range else None
                ),
                "default_update_server": self.default_update_server,
                "allow_download": self.allow_download,
            },
        }

    # ================================================================
    #  PERSISTENCE (config.json)
    # ================================================================

    @classmethod
    def load(cls, config_path: str | Path) -> "RuntimeManagerConfig":
        """
        Load config.json, falling back to defaults.

        A missing file is normal; an unreadable or malformed one is logged.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            logger.info("Config file %s not found, using defaults", config_path)
            return cls()
        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            config = cls.from_dict(data)
            logger.debug("Config loaded from %s", config_path)
            return config
        except (OSError, ValueError) as exc:
            logger.error("Failed to load config %s: %s", config_path, exc)
            return cls()

    def save(self, config_path: str | Path) -> None:
        config_path = Path(config_path)
        with open(config_path, "w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2)
        logger.debug("Config saved to %s", config_path)

    def update(self, key: str, value: Any, config_path: Optional[str | Path] = None) -> "RuntimeManagerConfig":
        """
        Return a copy with one dot-notation key changed, e.g.
        ``runtimes.default_vendor`` or ``paths.cache_dir``.

        Persists the result when ``config_path`` is given.
        """
        data = self.to_dict()
        parts = key.split(".")
        target = data
        for part in parts[:-1]:
            if part not in target:
                raise KeyError(f"Unknown config section: {part}")
            target = target[part]
        if parts[-1] not in target:
            raise KeyError(f"Unknown config key: {key}")
        target[parts[-1]] = value

        updated = type(self).from_dict(data)
        if config_path is not None:
            updated.save(config_path)
        logger.info("Config updated: %s = %s", key, value)
        return updated
