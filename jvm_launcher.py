"""
jvm_launcher.py
===============
Launch an application in a JVM that satisfies one of its requirements.

Responsibilities:
  - Walk the application's ordered JRE requirements; first runtime wins
  - Pick the launch profile for the selected runtime's version
      1.8.x  → base arguments
      9+     → base arguments + ``@<launcher dir>/itw-modularjdk.args``
      other  → UnsupportedRuntimeVersionError
  - Assemble the command line (java, boot classpath, VM args, optional
    JDWP agent, main class, application arguments)
  - Run it with inherited stdin/stdout/stderr and wait for it to exit
"""

from __future__ import annotations

import logging
import os
import platform
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from errors import (
    LaunchError,
    LauncherJarError,
    MissingExecutableError,
    NoRuntimeFoundError,
    UnsupportedRuntimeVersionError,
)
from runtime_config import (
    BOOT_CLASS,
    LAUNCHER_JAR_NAME,
    MODULAR_JDK_ARGS,
    REMOTE_DEBUGGING_PORT_ENV,
    RuntimeManagerConfig,
)
from runtime_finder import find_java_executable
from runtime_provider import RuntimeProvider
from runtimes import LocalRuntime
from version_string import VersionId, VersionString

logger = logging.getLogger(__name__)

JAVA_1_8 = VersionString.from_string("1.8*")
JAVA_9_OR_GREATER = VersionString.from_string("9+")

_WINDOWS_PATH_SEPARATOR = ";"


# ──────────────────────────────────────────────
#  JreRequirement
# ──────────────────────────────────────────────

@dataclass
class JreRequirement:
    """
    One acceptable runtime from the application descriptor.

    Attributes:
        version:            Acceptable versions
        vendor:             Vendor hint (any vendor when None)
        location:           Update server to install from
        java_vm_args:       Extra VM arguments, whitespace separated
        initial_heap_size:  Passed as ``-Xms``
        max_heap_size:      Passed as ``-Xmx``
    """

    version: VersionString
    vendor: Optional[str] = None
    location: Optional[str] = None
    java_vm_args: Optional[str] = None
    initial_heap_size: Optional[str] = None
    max_heap_size: Optional[str] = None

    def all_vm_args(self) -> List[str]:
        args = self.java_vm_args.split() if self.java_vm_args else []
        if self.initial_heap_size:
            args.append(f"-Xms{self.initial_heap_size}")
        if self.max_heap_size:
            args.append(f"-Xmx{self.max_heap_size}")
        return args

    @classmethod
    def parse(cls, text: str) -> "JreRequirement":
        """Parse ``RANGE[@LOCATION]``, e.g. ``11+@https://example.org/jvms``."""
        version, _, location = text.partition("@")
        return cls(VersionString.from_jnlp(version), location=location.strip() or None)


def default_requirement() -> JreRequirement:
    """Used when the application names no runtime at all."""
    return JreRequirement(VersionString.from_string("1.8+"))


# ──────────────────────────────────────────────
#  Launch profiles
# ──────────────────────────────────────────────

class LaunchProfile(Enum):
    """Supported runtime version classes."""

    JAVA_8 = "1.8"
    MODULAR = "9+"

    @classmethod
    def for_version(cls, version: VersionId) -> "LaunchProfile":
        for profile in cls:
            if _PROFILE_VERSIONS[profile].contains(version):
                return profile
        raise UnsupportedRuntimeVersionError(version)

    def version_args(self, launcher_jar: Path) -> List[str]:
        return _PROFILE_ARGS[self](launcher_jar)


_PROFILE_VERSIONS: Dict[LaunchProfile, VersionString] = {
    LaunchProfile.JAVA_8: JAVA_1_8,
    LaunchProfile.MODULAR: JAVA_9_OR_GREATER,
}

_PROFILE_ARGS: Dict[LaunchProfile, Callable[[Path], List[str]]] = {
    LaunchProfile.JAVA_8: lambda jar: [],
    LaunchProfile.MODULAR: lambda jar: ["@" + str(jar.parent / MODULAR_JDK_ARGS)],
}


# ──────────────────────────────────────────────
#  Command-line helpers
# ──────────────────────────────────────────────

def _is_windows() -> bool:
    return platform.system() == "Windows"


def quote_if_required(token: str) -> str:
    """
    Wrap a token in double quotes if Windows would split it.

    POSIX argv lists reach the child unchanged, so tokens are only
    quoted on Windows, where the command line is one string.
    """
    if not _is_windows():
        return token
    if len(token) > 1 and token.startswith('"') and token.endswith('"'):
        return token
    if _WINDOWS_PATH_SEPARATOR in token or any(c.isspace() for c in token):
        return f'"{token}"'
    return token


def remote_debugging_args(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """JDWP agent argument if a debug port is configured, else nothing."""
    environ = os.environ if environ is None else environ
    value = environ.get(REMOTE_DEBUGGING_PORT_ENV, "").strip()
    if not value:
        return []
    try:
        port = int(value)
        if not 0 < port < 65536:
            raise ValueError(f"port out of range: {port}")
    except ValueError as exc:
        logger.error("Failed in adding remote debug args: %s=%r (%s)", REMOTE_DEBUGGING_PORT_ENV, value, exc)
        return []
    return [f"-agentlib:jdwp=transport=dt_socket,server=y,suspend=y,address={port}"]


def find_launcher_jar(
    config: RuntimeManagerConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """
    Locate the launcher archive.

    Uses ``config.launcher_jar`` when set; otherwise exactly one
    ``CLASSPATH`` entry ending in the launcher jar name and not inside
    JAVA_HOME must exist.
    """
    if config.launcher_jar is not None:
        if not config.launcher_jar.is_file():
            raise LauncherJarError(f"Configured launcher jar not found: {config.launcher_jar}")
        return config.launcher_jar.resolve()

    environ = os.environ if environ is None else environ
    java_home = environ.get("JAVA_HOME", "")
    candidates: List[Path] = []
    for entry in environ.get("CLASSPATH", "").split(os.pathsep):
        if not entry.endswith(LAUNCHER_JAR_NAME):
            continue
        if java_home and entry.startswith(java_home):
            continue
        path = Path(entry)
        if path.exists():
            resolved = path.resolve()
            if resolved not in candidates:
                candidates.append(resolved)

    if len(candidates) == 1:
        return candidates[0]
    if len(candidates) > 1:
        raise LauncherJarError(f"multiple {LAUNCHER_JAR_NAME} files found in classpath")
    raise LauncherJarError(f"{LAUNCHER_JAR_NAME} not found in classpath")


# ──────────────────────────────────────────────
#  JvmLauncher
# ──────────────────────────────────────────────

class JvmLauncher:
    """
    Selects a runtime for an application and runs it.

    Args:
        runtime_provider:  Supplies runtimes per requirement
        config:            Shared configuration
        error_reporter:    Receives a message for every skipped requirement
                           (user notification); failures are logged regardless
    """

    def __init__(
        self,
        runtime_provider: RuntimeProvider,
        config: RuntimeManagerConfig,
        error_reporter: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.runtime_provider = runtime_provider
        self.config = config
        self.error_reporter = error_reporter

    # ================================================================
    #  RUNTIME SELECTION
    # ================================================================

    def select_runtime(
        self, requirements: Sequence[JreRequirement]
    ) -> Tuple[LocalRuntime, JreRequirement]:
        """
        Try each requirement in order; the first runtime found wins.

        Raises:
            NoRuntimeFoundError: no requirement yielded a runtime
        """
        requirements = list(requirements) or [default_requirement()]

        for requirement in requirements:
            logger.debug("searching for JRE with version string '%s'", requirement.version)
            try:
                runtime = self.runtime_provider.get_java_runtime(
                    requirement.version, requirement.location, requirement.vendor,
                )
            except Exception as exc:
                msg = (
                    f"Could not provide a Java runtime for version '{requirement.version}'"
                    f" from {requirement.location or 'the default update server'}: {exc}"
                )
                logger.warning(msg, exc_info=True)
                self._report(msg)
                continue

            if runtime is not None:
                logger.debug("Found JVM %s", runtime)
                return runtime, requirement

            msg = f"No Java runtime available for version '{requirement.version}'"
            logger.warning(msg)
            self._report(msg)

        raise NoRuntimeFoundError("could not find any suitable runtime")

    def _report(self, message: str) -> None:
        if self.error_reporter is not None:
            self.error_reporter(message)

    # ================================================================
    #  COMMAND CONSTRUCTION
    # ================================================================

    def build_command(
        self,
        runtime: LocalRuntime,
        requirement: JreRequirement,
        launcher_jar: Path,
        app_args: Sequence[str] = (),
    ) -> List[str]:
        """
        Assemble the full command line for ``runtime``.

        Raises:
            UnsupportedRuntimeVersionError: neither 1.8 nor 9+
            MissingExecutableError: no java executable in the runtime home
        """
        profile = LaunchProfile.for_version(runtime.version)

        java = find_java_executable(runtime.java_home)
        if java is None:
            raise MissingExecutableError(f"No java executable found in {runtime.java_home}")

        tokens = [
            str(java),
            f"-Xbootclasspath/a:{launcher_jar}",
            *requirement.all_vm_args(),
            *profile.version_args(launcher_jar),
            *remote_debugging_args(),
            BOOT_CLASS,
            *app_args,
        ]
        return [quote_if_required(t) for t in tokens]

    # ================================================================
    #  LAUNCH
    # ================================================================

    def launch(
        self,
        requirements: Sequence[JreRequirement],
        app_args: Sequence[str] = (),
    ) -> Optional[int]:
        """
        Select a runtime, build the command and run it to completion.

        Returns:
            The child's exit code, or None if waiting for it failed

        Raises:
            LaunchError (or a subclass) for every user-actionable failure
        """
        return self.run(self.prepare(requirements, app_args))

    def prepare(
        self,
        requirements: Sequence[JreRequirement],
        app_args: Sequence[str] = (),
    ) -> List[str]:
        """Select a runtime and build its command line without running it."""
        runtime, requirement = self.select_runtime(requirements)
        logger.info("using java runtime at '%s' for launching managed application", runtime.java_home)

        launcher_jar = find_launcher_jar(self.config)
        return self.build_command(runtime, requirement, launcher_jar, app_args)

    def run(self, command: List[str]) -> Optional[int]:
        """Start ``command`` with inherited standard streams and wait for it."""
        logger.info("About to launch external with commands: '%s'", command)
        try:
            process = subprocess.Popen(" ".join(command) if _is_windows() else command)
        except OSError as exc:
            raise LaunchError(f"Failed to start {command[0]}: {exc}") from exc

        try:
            return process.wait()
        except (OSError, KeyboardInterrupt) as exc:
            # the child keeps running; its exit status is unknown
            logger.error("Waiting for process %s failed: %r", process.pid, exc)
            return None
