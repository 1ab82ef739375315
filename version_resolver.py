"""
version_resolver.py
===================
Pick the best runtime for a version request.

The same matching rules serve local runtimes (VersionResolver) and
remote catalog entries (``select_best``):

  1. vendor pinning off → the configured default vendor replaces the request
  2. keep candidates for the requested OS, vendor (``*`` matches any),
     inside the requested range and inside the supported-version policy
  3. highest version first; equal versions ordered by vendor, then location
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from runtime_config import VENDOR_ANY, RuntimeManagerConfig
from runtime_registry import RuntimeRegistry
from runtimes import LocalRuntime, OperatingSystem, RemoteRuntime
from version_string import VersionString

logger = logging.getLogger(__name__)

R = TypeVar("R", LocalRuntime, RemoteRuntime)


def _location(runtime: Union[LocalRuntime, RemoteRuntime]) -> str:
    if isinstance(runtime, LocalRuntime):
        return str(runtime.java_home)
    return runtime.endpoint


def effective_vendor(vendor: str, config: RuntimeManagerConfig) -> str:
    """Vendor actually used for a query, honouring vendor pinning."""
    return vendor if config.specific_vendor_enabled else config.default_vendor


def order_candidates(candidates: Iterable[R], version_string: VersionString) -> List[R]:
    """
    Sort candidates best-first.

    Versions inside ``version_string`` beat those outside it, higher
    versions beat lower ones, and ties go to the lexically smaller
    vendor, then the smaller location.
    """
    ordered = sorted(candidates, key=lambda r: (r.vendor, _location(r)))
    ordered.sort(key=lambda r: version_string.sort_key(r.version), reverse=True)
    return ordered


def select_best(
    candidates: Iterable[R],
    version_string: VersionString,
    vendor: str,
    operating_system: OperatingSystem,
    supported: Optional[VersionString] = None,
    extra_filter: Optional[Callable[[R], bool]] = None,
) -> Optional[R]:
    """Return the best matching candidate, or None."""
    matching = [
        r for r in candidates
        if r.os == operating_system
        and (vendor == VENDOR_ANY or vendor == r.vendor)
        and version_string.contains(r.version)
        and (supported is None or supported.contains(r.version))
        and (extra_filter is None or extra_filter(r))
    ]
    if not matching:
        return None
    return order_candidates(matching, version_string)[0]


# ──────────────────────────────────────────────
#  VersionResolver
# ──────────────────────────────────────────────

class VersionResolver:
    """Read-only queries against a RuntimeRegistry snapshot."""

    def __init__(self, registry: RuntimeRegistry, config: Optional[RuntimeManagerConfig] = None) -> None:
        self.registry = registry
        self.config = config or registry.config

    def best_runtime(
        self,
        version_string: VersionString,
        vendor: str = VENDOR_ANY,
        operating_system: Optional[OperatingSystem] = None,
    ) -> Optional[LocalRuntime]:
        """
        Find the highest active local runtime that satisfies the request.

        Args:
            version_string:    Acceptable versions, e.g. ``9+``
            vendor:            Requested vendor or ``*``
            operating_system:  Target OS (defaults to this machine)

        Returns:
            The selected LocalRuntime, or None if nothing matches
        """
        if not vendor or not vendor.strip():
            raise ValueError("vendor must not be blank")
        operating_system = operating_system or OperatingSystem.get_local_system()
        vendor_for_request = effective_vendor(vendor, self.config)

        logger.debug(
            "Trying to find local Java runtime. Requested version: '%s' "
            "Requested vendor: '%s' requested os: '%s'",
            version_string, vendor_for_request, operating_system,
        )

        snapshot: Sequence[LocalRuntime] = self.registry.get_all()
        return select_best(
            snapshot,
            version_string,
            vendor_for_request,
            operating_system,
            supported=self.config.supported_version_range,
            extra_filter=lambda r: r.active,
        )
