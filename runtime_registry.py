"""
runtime_registry.py
===================
The authoritative catalog of Java runtimes known to this machine.

Capabilities:
  - Ordered, immutable snapshots of all LocalRuntime entries (``get_all``)
  - add / remove / delete / replace with listener notification
  - Whole-snapshot persistence to ``<cache_path>/cache.json``
    (written to a temporary file, then renamed over the old one)
  - Local discovery of unmanaged runtimes (``find_and_add_local_runtimes``)

Thread model:
  - every mutation (and load/save) holds one re-entrant lock
  - readers get the current tuple without locking; it is replaced,
    never modified, by mutators
  - listeners run synchronously on the mutating thread, in subscription order
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import shutil
import tempfile
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from errors import (
    RegistryPersistenceError,
    RuntimeConflictError,
    RuntimeDeletionError,
    RuntimeHomeMissingError,
    RuntimeNotFoundError,
)
from runtime_config import RuntimeManagerConfig
from runtimes import CacheStore, LocalRuntime, Result

logger = logging.getLogger(__name__)

RuntimeListener = Callable[..., None]


# ──────────────────────────────────────────────
#  Events
# ──────────────────────────────────────────────

class RuntimeEvent(str, Enum):
    """Kinds of registry change a listener can subscribe to."""

    ADDED = "added"        # listener(runtime)
    REMOVED = "removed"    # listener(runtime)
    UPDATED = "updated"    # listener(old_runtime, new_runtime)


class Registration:
    """Handle returned by ``RuntimeRegistry.subscribe``."""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving events. Calling it again is a no-op."""
        if self._active:
            self._active = False
            self._unsubscribe()


# ──────────────────────────────────────────────
#  RuntimeRegistry
# ──────────────────────────────────────────────

class RuntimeRegistry:
    """
    Catalog of installed and discovered runtimes.

    Args:
        config: Shared configuration; ``config.cache_path`` holds cache.json
    """

    def __init__(self, config: RuntimeManagerConfig) -> None:
        self.config = config
        self._runtimes: Tuple[LocalRuntime, ...] = ()
        self._listeners: Dict[RuntimeEvent, List[RuntimeListener]] = {
            event: [] for event in RuntimeEvent
        }
        self._listener_lock = threading.Lock()
        self._store_lock = threading.RLock()

    # ================================================================
    #  QUERIES
    # ================================================================

    def get_all(self) -> Tuple[LocalRuntime, ...]:
        """Return an immutable snapshot of all runtimes, in catalog order."""
        return self._runtimes

    def __len__(self) -> int:
        return len(self._runtimes)

    def __contains__(self, runtime: object) -> bool:
        return runtime in self._runtimes

    def _index_of(self, runtime: LocalRuntime) -> int:
        for index, entry in enumerate(self._runtimes):
            if entry == runtime:
                return index
        return -1

    def _lookup(self, runtime: LocalRuntime) -> Optional[LocalRuntime]:
        index = self._index_of(runtime)
        return self._runtimes[index] if index >= 0 else None

    def _check_identity_free(self, runtime: LocalRuntime, skip_index: int = -1) -> None:
        for index, entry in enumerate(self._runtimes):
            if index != skip_index and entry.identity == runtime.identity:
                raise RuntimeConflictError(
                    f"A runtime {entry.vendor} {entry.version} ({entry.os}) is already "
                    f"registered at {entry.java_home}"
                )

    # ================================================================
    #  LISTENERS
    # ================================================================

    def subscribe(self, kind: RuntimeEvent, listener: RuntimeListener) -> Registration:
        """
        Register a listener for one kind of change.

        Returns:
            Registration whose ``unsubscribe()`` removes the listener
        """
        kind = RuntimeEvent(kind)
        with self._listener_lock:
            self._listeners[kind].append(listener)

        def _remove() -> None:
            with self._listener_lock:
                with contextlib.suppress(ValueError):
                    self._listeners[kind].remove(listener)

        return Registration(_remove)

    def _fire(self, kind: RuntimeEvent, *args: LocalRuntime) -> None:
        with self._listener_lock:
            listeners = tuple(self._listeners[kind])
        for listener in listeners:
            listener(*args)

    # ================================================================
    #  MUTATIONS
    # ================================================================

    def add(self, runtime: LocalRuntime) -> None:
        """
        Add a runtime to the catalog.

        Adding an equal runtime again is a no-op.

        Raises:
            RuntimeHomeMissingError: javaHome does not exist
            RuntimeConflictError: another runtime with the same
                vendor/version/os is registered
            RegistryPersistenceError: the catalog could not be saved;
                the runtime is not kept
        """
        logger.debug("Adding runtime definition %s", runtime)
        if not runtime.java_home.exists():
            raise RuntimeHomeMissingError(
                f"Can not add runtime with nonexisting JAVA_HOME={runtime.java_home}"
            )

        with self._store_lock:
            previous = self._runtimes
            if self._insert(runtime):
                self._fire(RuntimeEvent.ADDED, runtime)
                self._commit(previous, RuntimeEvent.REMOVED, runtime)

    def _insert(self, runtime: LocalRuntime) -> bool:
        if runtime in self._runtimes:
            logger.debug("Runtime %s already registered", runtime)
            return False
        self._check_identity_free(runtime)
        self._runtimes = self._runtimes + (runtime,)
        return True

    def remove(self, runtime: LocalRuntime) -> None:
        """
        Forget an unmanaged runtime. Its files are left alone.

        Raises:
            RuntimeConflictError: the runtime is managed (use ``delete``)
        """
        logger.debug("Removing runtime definition %s", runtime)
        entry = self._lookup(runtime) or runtime
        if entry.managed:
            raise RuntimeConflictError("Can not remove runtime that is managed, delete it instead")

        with self._store_lock:
            index = self._index_of(runtime)
            if index < 0:
                return
            previous = self._runtimes
            entry = previous[index]
            self._runtimes = previous[:index] + previous[index + 1:]
            self._fire(RuntimeEvent.REMOVED, entry)
            self._commit(previous, RuntimeEvent.ADDED, entry)

    def delete(self, runtime: LocalRuntime) -> None:
        """
        Remove a managed runtime and delete its home directory.

        If the directory cannot be deleted the entry is put back at its
        old position, nothing is persisted and no listener is called.

        Raises:
            RuntimeConflictError: the runtime is not managed (use ``remove``)
            RuntimeDeletionError: the home directory could not be deleted
        """
        logger.debug("Deleting runtime %s", runtime)
        entry = self._lookup(runtime) or runtime
        if not entry.managed:
            raise RuntimeConflictError("Can not delete runtime that is not managed")

        with self._store_lock:
            index = self._index_of(runtime)
            if index < 0:
                return
            previous = self._runtimes
            entry = previous[index]
            self._runtimes = previous[:index] + previous[index + 1:]

            try:
                shutil.rmtree(entry.java_home)
            except FileNotFoundError:
                logger.warning("Runtime directory %s was already gone", entry.java_home)
            except OSError as exc:
                self._runtimes = previous
                logger.error("Can not delete %s: %s", entry.java_home, exc)
                raise RuntimeDeletionError(
                    f"Can not delete {entry.java_home}", entry.java_home
                ) from exc

            logger.info("Deleted runtime directory %s", entry.java_home)
            self._fire(RuntimeEvent.REMOVED, entry)
            self._save()

    def replace(self, old_runtime: LocalRuntime, new_runtime: LocalRuntime) -> None:
        """
        Swap a runtime definition in place, keeping its position.

        Raises:
            RuntimeConflictError: javaHome or managed state would change
            RuntimeNotFoundError: ``old_runtime`` is not registered
        """
        logger.debug("Replacing runtime definition %s with %s", old_runtime, new_runtime)
        if old_runtime.java_home != new_runtime.java_home:
            raise RuntimeConflictError("Can only replace a runtime with same JAVA_HOME")
        if old_runtime.managed != new_runtime.managed:
            raise RuntimeConflictError("Can not change managed state of runtime")

        with self._store_lock:
            index = self._index_of(old_runtime)
            if index < 0:
                raise RuntimeNotFoundError(f"Runtime {old_runtime} is not registered")
            self._check_identity_free(new_runtime, skip_index=index)

            previous = self._runtimes
            runtimes = list(previous)
            runtimes[index] = new_runtime
            self._runtimes = tuple(runtimes)
            self._fire(RuntimeEvent.UPDATED, old_runtime, new_runtime)
            self._commit(previous, RuntimeEvent.UPDATED, new_runtime, old_runtime)

    # ================================================================
    #  PERSISTENCE (cache.json)
    # ================================================================

    def load(self) -> None:
        """
        Replace the in-memory catalog with the persisted one.

        Fires REMOVED for every current entry, then ADDED for every
        loaded entry. Entries whose javaHome vanished are skipped.
        """
        with self._store_lock:
            json_file = self.config.json_store_path
            logger.debug("Loading runtime cache from %s", json_file)

            loaded: List[LocalRuntime] = []
            if json_file.exists():
                try:
                    with open(json_file, "r", encoding="utf-8") as fh:
                        loaded = CacheStore.from_json_data(json.load(fh)).runtimes
                except (OSError, ValueError, KeyError, TypeError) as exc:
                    raise RegistryPersistenceError(
                        f"Error while loading JVM cache {json_file}"
                    ) from exc

            self._clear()
            for runtime in loaded:
                if not runtime.java_home.exists():
                    logger.warning("Skipping cached runtime with missing JAVA_HOME: %s", runtime)
                    continue
                try:
                    if self._insert(runtime):
                        self._fire(RuntimeEvent.ADDED, runtime)
                except RuntimeConflictError as exc:
                    logger.warning("Skipping cached runtime %s: %s", runtime, exc)
            self._save()
            logger.debug("Loaded %d runtimes", len(self._runtimes))

    def _clear(self) -> None:
        logger.debug("Clearing runtime cache")
        for runtime in self._runtimes:
            self._runtimes = tuple(r for r in self._runtimes if r != runtime)
            self._fire(RuntimeEvent.REMOVED, runtime)

    def save(self) -> None:
        """Write the full catalog to cache.json."""
        self._save()

    def _commit(
        self,
        previous: Tuple[LocalRuntime, ...],
        undo_kind: RuntimeEvent,
        *undo_args: LocalRuntime,
    ) -> None:
        """Persist a mutation; if that fails put ``previous`` back and announce the undo."""
        try:
            self._save()
        except RegistryPersistenceError:
            self._runtimes = previous
            self._fire(undo_kind, *undo_args)
            raise

    def _save(self) -> None:
        with self._store_lock:
            cache_path = self.config.cache_path
            target = self.config.json_store_path
            logger.debug("Saving runtime cache to %s", target)

            try:
                cache_path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise RegistryPersistenceError(f"Can not create cache dir '{cache_path}'") from exc

            payload = json.dumps(CacheStore(list(self._runtimes)).to_dict(), indent=2)
            tmp_path = None
            try:
                fd, tmp_path = tempfile.mkstemp(prefix=".cache-", suffix=".tmp", dir=cache_path)
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_path, target)
            except OSError as exc:
                if tmp_path is not None:
                    with contextlib.suppress(OSError):
                        os.unlink(tmp_path)
                raise RegistryPersistenceError("Error while saving JVM cache") from exc

    # ================================================================
    #  LOCAL DISCOVERY
    # ================================================================

    def find_and_add_local_runtimes(
        self,
        finder: Optional[Callable[[], List[Result]]] = None,
    ) -> List[Result]:
        """
        Discover runtimes installed on this system and register them.

        Only runtimes inside the supported-version policy are added.
        A runtime that clashes with a registered one turns into a
        failed Result.

        Args:
            finder: Callable returning discovery Results (defaults to
                    ``runtime_finder.find_runtimes_on_system``)
        """
        if finder is None:
            from runtime_finder import find_runtimes_on_system
            finder = find_runtimes_on_system

        supported = self.config.supported_version_range
        results = finder()
        for position, result in enumerate(results):
            if not result.success:
                continue
            runtime: LocalRuntime = result.details["runtime"]
            if supported is not None and not supported.contains(runtime.version):
                logger.info(
                    "Ignoring %s: outside supported versions '%s'", runtime, supported,
                )
                continue
            try:
                self.add(runtime)
            except (RuntimeConflictError, RuntimeHomeMissingError) as exc:
                results[position] = Result.fail(
                    f"Could not register {runtime}", error=str(exc), runtime=runtime,
                )
        return results
