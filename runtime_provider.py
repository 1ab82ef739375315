"""
runtime_provider.py
===================
Supplies a LocalRuntime for one requirement: a matching local runtime
if there is one, otherwise the best runtime from an update server,
downloaded and installed on the spot.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from install_pipeline import InstallPipeline, ProgressSink
from remote_catalog import RemoteRuntimeCatalog
from runtime_config import VENDOR_ANY, RuntimeManagerConfig
from runtimes import LocalRuntime, OperatingSystem
from version_resolver import VersionResolver
from version_string import VersionString

logger = logging.getLogger(__name__)


class RuntimeProvider:
    """
    Resolver first, installer second.

    Args:
        resolver:       Local lookup
        installer:      Downloads and registers missing runtimes
        catalog:        Update-server client (built from config if None)
        progress_sink:  Passed to every install
    """

    def __init__(
        self,
        resolver: VersionResolver,
        installer: InstallPipeline,
        catalog: Optional[RemoteRuntimeCatalog] = None,
        progress_sink: Optional[ProgressSink] = None,
    ) -> None:
        self.resolver = resolver
        self.installer = installer
        self.config: RuntimeManagerConfig = resolver.config
        self.catalog = catalog or RemoteRuntimeCatalog(self.config)
        self.progress_sink = progress_sink

    def get_java_runtime(
        self,
        version_string: VersionString,
        location: Optional[str] = None,
        vendor: Optional[str] = None,
    ) -> Optional[LocalRuntime]:
        """
        Return a runtime for ``version_string``, installing one if needed.

        Args:
            version_string:  Acceptable versions
            location:        Update server named by the application; the
                             configured default server is used when None
            vendor:          Vendor hint (any vendor when None)

        Returns:
            A LocalRuntime, or None when nothing local matches and no
            server offers a match

        Raises:
            CatalogError / InstallError: the update server or download failed
        """
        vendor = vendor or VENDOR_ANY
        local_os = self.installer.local_os or OperatingSystem.get_local_system()

        local = self.resolver.best_runtime(version_string, vendor, local_os)
        if local is not None:
            logger.debug("Using local runtime %s for '%s'", local, version_string)
            return local

        if not self.config.allow_download:
            logger.info("No local runtime for '%s' and downloads are disabled", version_string)
            return None

        server_url = location or self.config.default_update_server
        if not server_url:
            logger.info("No local runtime for '%s' and no update server configured", version_string)
            return None

        return asyncio.run(self._install_from(server_url, version_string, vendor, local_os))

    async def _install_from(
        self,
        server_url: str,
        version_string: VersionString,
        vendor: str,
        local_os: OperatingSystem,
    ) -> Optional[LocalRuntime]:
        async with aiohttp.ClientSession() as session:
            remote = await self.catalog.best_remote_runtime(
                server_url, session, version_string, vendor, local_os,
            )
            if remote is None:
                logger.info("Update server %s offers no runtime for '%s'", server_url, version_string)
                return None
            logger.info("Installing %s for '%s'", remote, version_string)
            return await self.installer.install_async(remote, session, self.progress_sink)
