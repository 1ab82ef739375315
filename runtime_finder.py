"""
runtime_finder.py
=================
Discovery of Java runtimes that are already installed on this machine.

Scans:
  - JAVA_HOME
  - the ``java`` executable on PATH
  - common OS directories (/usr/lib/jvm, /Library/Java/JavaVirtualMachines,
    Program Files, SDKMAN, ~/.jdks)

Every candidate is probed with ``java -version``. Found runtimes are
unmanaged: the registry references them but never deletes their files.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Set, Tuple

from runtimes import LocalRuntime, OperatingSystem, Result
from version_string import VersionId

logger = logging.getLogger(__name__)

VERSION_PROBE_TIMEOUT = 15


# ================================================================
#  EXECUTABLE LOOKUP
# ================================================================

def java_binary_name() -> str:
    return "java.exe" if platform.system() == "Windows" else "java"


def find_java_executable(java_home: Path) -> Optional[Path]:
    """
    Return the ``java`` executable inside a runtime home, or None.

    Checks the standard ``bin/`` layout, the macOS bundle layout
    (``Contents/Home/bin``) and both layouts one folder down, as left
    by archives with a single top-level directory.
    """
    binary = java_binary_name()
    roots = [java_home]
    if java_home.is_dir():
        children = [c for c in java_home.iterdir() if c.is_dir()]
        if len(children) == 1:
            roots.append(children[0])

    for root in roots:
        for candidate in (root / "bin" / binary, root / "Contents" / "Home" / "bin" / binary):
            if candidate.is_file():
                return candidate
    return None


# ================================================================
#  VERSION PROBING
# ================================================================

def parse_java_version(output: str) -> Optional[str]:
    """
    Extract the version string from ``java -version`` output.

    Example line: ``openjdk version "17.0.9" 2023-10-17``
    """
    for line in output.splitlines():
        if "version" not in line.lower():
            continue
        match = re.search(r'"([^"]+)"', line)
        if match:
            return match.group(1)
        words = line.split()
        if words:
            return words[-1].strip('"')
    return None


def probe_java_version(binary: Path) -> Tuple[Optional[str], str]:
    """
    Run ``java -version``.

    Returns:
        (version string or None, full output)
    """
    try:
        result = subprocess.run(
            [str(binary), "-version"],
            capture_output=True, text=True, timeout=VERSION_PROBE_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("java -version failed for %s: %s", binary, exc)
        return None, ""
    # java prints its version to stderr
    output = result.stderr or result.stdout
    return parse_java_version(output), output


def guess_vendor(path: str, version_output: str) -> str:
    """Guess the JDK vendor from its path or ``java -version`` output."""
    path_lower = path.lower()
    out_lower = version_output.lower()

    if "temurin" in out_lower or "adoptium" in path_lower:
        return "Eclipse Adoptium"
    if "adoptopen" in path_lower or "adoptopenjdk" in out_lower:
        return "AdoptOpenJDK"
    if "zulu" in path_lower or "zulu" in out_lower:
        return "Azul Systems, Inc."
    if "corretto" in path_lower or "corretto" in out_lower:
        return "Amazon.com Inc."
    if "graalvm" in path_lower or "graalvm" in out_lower:
        return "GraalVM"
    if "microsoft" in path_lower or "microsoft" in out_lower:
        return "Microsoft"
    if "liberica" in path_lower or "bellsoft" in out_lower:
        return "BellSoft"
    if "java(tm)" in out_lower or "oracle" in path_lower:
        return "Oracle Corporation"
    return "unknown"


# ================================================================
#  SEARCH LOCATIONS
# ================================================================

def common_java_dirs() -> List[Path]:
    """Return directories that usually contain one JDK per child folder."""
    system = platform.system()
    home = Path.home()
    dirs: List[Path] = []

    if system == "Linux":
        dirs += [Path("/usr/lib/jvm"), Path("/usr/java"), Path("/opt/java")]
    elif system == "Darwin":
        dirs += [
            Path("/Library/Java/JavaVirtualMachines"),
            home / "Library" / "Java" / "JavaVirtualMachines",
        ]
    elif system == "Windows":
        program_files = Path(os.environ.get("ProgramFiles", r"C:\Program Files"))
        dirs += [
            program_files / "Java",
            program_files / "Eclipse Adoptium",
            program_files / "AdoptOpenJDK",
            program_files / "Microsoft",
            program_files / "Zulu",
            program_files / "BellSoft",
        ]

    dirs += [home / ".sdkman" / "candidates" / "java", home / ".jdks"]
    return dirs


def _candidate_homes() -> List[Path]:
    homes: List[Path] = []

    java_home = os.environ.get("JAVA_HOME", "")
    if java_home:
        homes.append(Path(java_home))

    java_in_path = shutil.which("java")
    if java_in_path:
        # java binary → bin/ → runtime home
        homes.append(Path(java_in_path).resolve().parent.parent)

    for search_dir in common_java_dirs():
        if not search_dir.is_dir():
            continue
        try:
            entries = sorted(search_dir.iterdir())
        except PermissionError:
            continue
        homes.extend(e for e in entries if e.is_dir() and not e.is_symlink())

    return homes


# ================================================================
#  DISCOVERY
# ================================================================

def inspect_runtime_home(java_home: Path, os_type: Optional[OperatingSystem] = None) -> Result:
    """Probe one directory and describe it as an unmanaged LocalRuntime."""
    binary = find_java_executable(java_home)
    if binary is None:
        return Result.fail(f"No java executable in {java_home}", path=str(java_home))

    version, output = probe_java_version(binary)
    if not version:
        return Result.fail(f"Could not read version of {binary}", path=str(java_home))

    try:
        version_id = VersionId(version)
    except ValueError as exc:
        return Result.fail(f"Unparseable Java version {version!r}", error=str(exc))

    runtime = LocalRuntime(
        version=version_id,
        os=os_type or OperatingSystem.get_local_system(),
        vendor=guess_vendor(str(java_home), output),
        java_home=java_home,
        managed=False,
        active=True,
    )
    logger.info("Detected Java %s (%s) at %s", version_id, runtime.vendor, java_home)
    return Result.ok(f"Found {runtime}", runtime=runtime)


def find_runtimes_on_system() -> List[Result]:
    """Inspect every candidate directory once; one Result per directory."""
    results: List[Result] = []
    seen: Set[str] = set()
    local_os = OperatingSystem.get_local_system()

    for home in _candidate_homes():
        normalized = os.path.normcase(os.path.normpath(os.path.abspath(home)))
        if normalized in seen:
            continue
        seen.add(normalized)
        results.append(inspect_runtime_home(home, local_os))

    found = sum(1 for r in results if r.success)
    logger.info("Local discovery: %d runtime(s) in %d location(s)", found, len(results))
    return results
