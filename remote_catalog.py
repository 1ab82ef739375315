"""
remote_catalog.py
=================
Query an update server for downloadable runtimes.

The server answers ``GET <url>?version=<range>&vendor=<vendor>&os=<os>`` with::

    {"runtimes": [{"vendor": "...", "version": "17.0.2", "os": "linux64",
                   "endpoint": "https://.../jdk.zip"}, ...]}

A bare JSON list is accepted too, so a static file works as a catalog.
The query parameters are hints; selection always re-applies the local
matching rules.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import aiohttp

from errors import CatalogError
from runtime_config import VENDOR_ANY, RuntimeManagerConfig
from runtimes import OperatingSystem, RemoteRuntime
from version_resolver import effective_vendor, select_best
from version_string import VersionString

logger = logging.getLogger(__name__)

CATALOG_TIMEOUT_SECONDS = 30


class RemoteRuntimeCatalog:
    """Fetches RemoteRuntime candidates from update servers."""

    def __init__(self, config: RuntimeManagerConfig) -> None:
        self.config = config

    async def fetch(
        self,
        server_url: str,
        session: aiohttp.ClientSession,
        version_string: Optional[VersionString] = None,
        vendor: str = VENDOR_ANY,
        operating_system: Optional[OperatingSystem] = None,
    ) -> List[RemoteRuntime]:
        """
        Download the runtime list offered by ``server_url``.

        Raises:
            CatalogError: the server is unreachable, answers non-200 or
                          returns something that is not a runtime list
        """
        params = {"vendor": vendor}
        if version_string is not None:
            params["version"] = str(version_string)
        if operating_system is not None:
            params["os"] = operating_system.value

        logger.info("Querying update server: %s", server_url)
        try:
            async with session.get(
                server_url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=CATALOG_TIMEOUT_SECONDS),
            ) as resp:
                if resp.status != 200:
                    raise CatalogError(f"Update server {server_url} returned HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise CatalogError(f"Update server {server_url} is not reachable: {exc}") from exc
        except ValueError as exc:
            raise CatalogError(f"Update server {server_url} returned invalid JSON") from exc

        return self._parse(data, server_url)

    @staticmethod
    def _parse(data: Any, server_url: str) -> List[RemoteRuntime]:
        records = data.get("runtimes") if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise CatalogError(f"Update server {server_url} did not return a runtime list")

        runtimes: List[RemoteRuntime] = []
        for record in records:
            try:
                runtimes.append(RemoteRuntime.from_dict(record))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed catalog entry %r: %s", record, exc)
        logger.debug("Update server %s offers %d runtimes", server_url, len(runtimes))
        return runtimes

    async def best_remote_runtime(
        self,
        server_url: str,
        session: aiohttp.ClientSession,
        version_string: VersionString,
        vendor: str = VENDOR_ANY,
        operating_system: Optional[OperatingSystem] = None,
    ) -> Optional[RemoteRuntime]:
        """Return the best downloadable runtime for the request, or None."""
        operating_system = operating_system or OperatingSystem.get_local_system()
        vendor_for_request = effective_vendor(vendor, self.config)

        candidates = await self.fetch(
            server_url, session, version_string, vendor_for_request, operating_system,
        )
        return select_best(
            candidates,
            version_string,
            vendor_for_request,
            operating_system,
            supported=self.config.supported_version_range,
        )
