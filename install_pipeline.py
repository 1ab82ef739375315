"""
install_pipeline.py
===================
Download, extract and register a remote Java runtime.

Flow:
  1. refuse runtimes built for another OS
  2. allocate ``<cache_path>/<vendor>-<version>[-N]``
  3. one GET to the runtime endpoint (aiohttp, HTTP_TIMEOUT_IN_MS for the whole cycle)
  4. hand the observable DownloadStream to the progress sink, then consume it
  5. extract the archive (.zip or any tarball) into the allocated folder
  6. register a managed, active LocalRuntime

Any failure after step 2 deletes the folder again. If that deletion
fails too, InstallCleanupError (wrapping the original error) is raised.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import tarfile
import tempfile
import time
import zipfile
from pathlib import Path
from typing import IO, Any, AsyncIterator, Callable, List, Optional

import aiohttp

from errors import InstallCleanupError, InstallError
from runtime_config import HTTP_TIMEOUT_IN_MS, RuntimeManagerConfig
from runtime_registry import RuntimeRegistry
from runtimes import LocalRuntime, OperatingSystem, RemoteRuntime

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

ProgressListener = Callable[[int, Optional[int]], None]
ProgressSink = Callable[["DownloadStream"], None]


# ──────────────────────────────────────────────
#  DownloadStream
# ──────────────────────────────────────────────

class DownloadStream:
    """
    Response body that reports how much of it has been consumed.

    Attributes:
        total_size:  Expected size from Content-Length (None if unknown)
        bytes_read:  Bytes consumed so far
        finished:    True once the body has been read to the end
    """

    def __init__(self, content: Any, total_size: Optional[int]) -> None:
        self._content = content
        self.total_size = total_size if total_size and total_size > 0 else None
        self.bytes_read = 0
        self.finished = False
        self._listeners: List[ProgressListener] = []

    def add_progress_listener(self, listener: ProgressListener) -> None:
        """``listener(bytes_read, total_size)`` is called after every chunk."""
        self._listeners.append(listener)

    @property
    def progress(self) -> Optional[float]:
        if not self.total_size:
            return None
        return min(self.bytes_read / self.total_size, 1.0)

    async def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        async for chunk in self._content.iter_chunked(chunk_size):
            self.bytes_read += len(chunk)
            for listener in tuple(self._listeners):
                listener(self.bytes_read, self.total_size)
            yield chunk
        self.finished = True


# ──────────────────────────────────────────────
#  Filesystem helpers
# ──────────────────────────────────────────────

def create_sub_folder(base: Path, name: str) -> Path:
    """
    Create a new, empty folder ``base/name`` (or ``name-1``, ``name-2``, …).

    Raises:
        InstallError: the folder cannot be created
    """
    safe_name = re.sub(r"[^A-Za-z0-9._+-]", "_", name).strip("._") or "runtime"
    try:
        base.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise InstallError(f"Can not create cache dir '{base}'") from exc

    counter = 0
    while True:
        candidate = base / (safe_name if counter == 0 else f"{safe_name}-{counter}")
        try:
            candidate.mkdir()
            return candidate
        except FileExistsError:
            counter += 1
        except OSError as exc:
            raise InstallError(f"Can not create folder '{candidate}'") from exc


def extract_archive(fileobj: IO[bytes], dest_dir: Path) -> None:
    """
    Extract a .zip or tar (gz/bz2/xz/plain) archive into ``dest_dir``.

    Unix permission bits stored in zip entries are restored so that
    ``bin/java`` stays executable.
    """
    fileobj.seek(0)
    if zipfile.is_zipfile(fileobj):
        fileobj.seek(0)
        with zipfile.ZipFile(fileobj) as zf:
            for info in zf.infolist():
                target = zf.extract(info, dest_dir)
                mode = (info.external_attr >> 16) & 0o777
                if mode and not info.is_dir():
                    os.chmod(target, mode)
        return

    fileobj.seek(0)
    try:
        with tarfile.open(fileobj=fileobj, mode="r:*") as tar:
            tar.extractall(dest_dir, filter="data")
    except tarfile.TarError as exc:
        raise InstallError("Runtime archive is neither a zip nor a tar file") from exc


def _remove_directory(path: Path) -> bool:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.error("Can not delete directory %s: %s", path, exc)
        return False
    return True


# ──────────────────────────────────────────────
#  InstallPipeline
# ──────────────────────────────────────────────

class InstallPipeline:
    """
    Installs RemoteRuntimes into the cache and registers them.

    Args:
        registry:  Registry that receives the installed runtime
        config:    Shared configuration (defaults to ``registry.config``)
        local_os:  OS of this machine (auto-detected if None)
    """

    def __init__(
        self,
        registry: RuntimeRegistry,
        config: Optional[RuntimeManagerConfig] = None,
        local_os: Optional[OperatingSystem] = None,
    ) -> None:
        self.registry = registry
        self.config = config or registry.config
        self.local_os = local_os

    def install(
        self,
        remote: RemoteRuntime,
        progress_sink: Optional[ProgressSink] = None,
    ) -> LocalRuntime:
        """
        Blocking install for worker threads and the CLI.

        Must not be called from inside a running event loop; use
        ``install_async`` there.
        """

        async def _run() -> LocalRuntime:
            async with aiohttp.ClientSession() as session:
                return await self.install_async(remote, session, progress_sink)

        return asyncio.run(_run())

    async def install_async(
        self,
        remote: RemoteRuntime,
        session: aiohttp.ClientSession,
        progress_sink: Optional[ProgressSink] = None,
    ) -> LocalRuntime:
        """
        Download and install ``remote``.

        Args:
            remote:         Runtime to install
            session:        aiohttp session for the download
            progress_sink:  Optional callable receiving the DownloadStream
                            before it is consumed

        Returns:
            The registered, managed LocalRuntime

        Raises:
            InstallError: wrong OS, folder allocation or download failure
            InstallCleanupError: the install failed and its folder could not be removed
            RegistryPersistenceError: the new runtime could not be saved; its folder is removed
        """
        logger.debug("Installing remote runtime %s on local cache", remote)

        local_os = self.local_os or OperatingSystem.get_local_system()
        if remote.os != local_os:
            raise InstallError(f"Can not install JVM for another os than {local_os}")

        runtime_path = create_sub_folder(self.config.cache_path, f"{remote.vendor}-{remote.version}")
        logger.info("Runtime will be installed in %s", runtime_path)

        try:
            await self._download_and_extract(remote, session, runtime_path, progress_sink)
            runtime = LocalRuntime(
                version=remote.version,
                os=remote.os,
                vendor=remote.vendor,
                java_home=runtime_path,
                managed=True,
                active=True,
            )
            self.registry.add(runtime)
        except Exception as exc:
            if not _remove_directory(runtime_path):
                raise InstallCleanupError(
                    f"Error in download of {remote}; can not delete directory {runtime_path}",
                    runtime_path,
                ) from exc
            logger.warning("Install of %s failed, removed %s: %s", remote, runtime_path, exc)
            raise

        logger.info("Installed %s", runtime)
        return runtime

    async def _download_and_extract(
        self,
        remote: RemoteRuntime,
        session: aiohttp.ClientSession,
        runtime_path: Path,
        progress_sink: Optional[ProgressSink],
    ) -> None:
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_IN_MS / 1000)
        start_time = time.monotonic()

        async with session.get(remote.endpoint, timeout=timeout) as resp:
            if resp.status != 200:
                raise InstallError(f"Download of {remote.endpoint} failed: HTTP {resp.status}")

            stream = DownloadStream(resp.content, resp.content_length)
            if progress_sink is not None:
                progress_sink(stream)

            # zip needs random access, so the body is spooled before extraction
            with tempfile.TemporaryFile() as spool:
                async for chunk in stream.iter_chunks():
                    spool.write(chunk)

                elapsed = time.monotonic() - start_time
                logger.info(
                    "Download complete: %s (%.1f MB, %.1f MB/s)",
                    remote.endpoint,
                    stream.bytes_read / (1024 * 1024),
                    (stream.bytes_read / (1024 * 1024)) / max(elapsed, 0.1),
                )

                logger.debug("Extracting runtime into %s", runtime_path)
                await asyncio.to_thread(extract_archive, spool, runtime_path)
