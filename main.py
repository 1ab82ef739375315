#!/usr/bin/env python3
"""
main.py – JVM Runtime Manager
==============================
Entry point: command-line management of the runtime registry, runtime
installs and application launches, plus an interactive Textual view.

Examples:
    python main.py list
    python main.py find
    python main.py install --version 17+ --server https://example.org/jvms
    python main.py launch --jre 11+ --jre "1.8*" -- app.jnlp
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence

import aiohttp
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table
from textual.app import App
from textual.binding import Binding

from errors import RuntimeManagerError
from install_pipeline import DownloadStream, InstallPipeline, ProgressSink
from jvm_launcher import JreRequirement, JvmLauncher
from remote_catalog import RemoteRuntimeCatalog
from runtime_config import VENDOR_ANY, RuntimeManagerConfig
from runtime_provider import RuntimeProvider
from runtime_registry import RuntimeRegistry
from runtimes import LocalRuntime, OperatingSystem, RemoteRuntime
from version_resolver import VersionResolver
from version_string import VersionId, VersionString

logger = logging.getLogger("jvm_runtime_manager")

console = Console()

LOG_DIR = Path("logs")

# shell convention for a process ended by SIGINT
EXIT_INTERRUPTED = 130


# ──────────────────────────────────────────────
#  Logging
# ──────────────────────────────────────────────

def setup_logging(verbose: bool = False) -> None:
    LOG_DIR.mkdir(exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_DIR / "manager.log", encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )


# ──────────────────────────────────────────────
#  Services
# ──────────────────────────────────────────────

@dataclass
class RuntimeServices:
    """Everything built once at start-up and shared by all commands."""

    config: RuntimeManagerConfig
    registry: RuntimeRegistry
    resolver: VersionResolver
    installer: InstallPipeline
    catalog: RemoteRuntimeCatalog
    provider: RuntimeProvider
    launcher: JvmLauncher

    @classmethod
    def create(
        cls,
        config: RuntimeManagerConfig,
        progress_sink: Optional[ProgressSink] = None,
    ) -> "RuntimeServices":
        registry = RuntimeRegistry(config)
        resolver = VersionResolver(registry, config)
        installer = InstallPipeline(registry, config)
        catalog = RemoteRuntimeCatalog(config)
        provider = RuntimeProvider(resolver, installer, catalog, progress_sink)
        launcher = JvmLauncher(provider, config, error_reporter=_report_error)
        return cls(config, registry, resolver, installer, catalog, provider, launcher)


def _report_error(message: str) -> None:
    console.print(f"[yellow]⚠ {message}[/]")


def rich_progress_sink(progress: Progress) -> ProgressSink:
    """Show every download as a rich progress bar."""

    def _sink(stream: DownloadStream) -> None:
        task = progress.add_task("⬇ Downloading runtime", total=stream.total_size)
        stream.add_progress_listener(
            lambda read, total: progress.update(task, completed=read)
        )

    return _sink


def _new_progress() -> Progress:
    return Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
        transient=True,
    )


# ──────────────────────────────────────────────
#  CLI
# ──────────────────────────────────────────────

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="☕  JVM Runtime Manager – install, select and launch Java runtimes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--config", default="config.json", help="Path to config.json")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List registered runtimes")
    sub.add_parser("find", help="Detect runtimes installed on this system")

    inst = sub.add_parser("install", help="Download and install a runtime")
    inst.add_argument("--version", required=True, help="Version range, e.g. 17+ or 1.8*")
    inst.add_argument("--vendor", default=VENDOR_ANY, help="Vendor (default: any)")
    inst.add_argument("--server", default=None, help="Update server URL")
    inst.add_argument("--endpoint", default=None, help="Direct archive URL (skips the catalog)")

    for name, help_text in (
        ("remove", "Forget an unmanaged runtime"),
        ("delete", "Delete a managed runtime and its files"),
        ("activate", "Make a runtime eligible for selection"),
        ("deactivate", "Exclude a runtime from selection"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("runtime", help="Row number from 'list' or JAVA_HOME path")

    launch = sub.add_parser("launch", help="Launch an application in a matching JVM")
    launch.add_argument(
        "--jre", action="append", default=[], metavar="RANGE[@SERVER]",
        help="Acceptable runtime, repeatable, tried in order",
    )
    launch.add_argument("app_args", nargs=argparse.REMAINDER, help="Arguments for the application")

    cfg = sub.add_parser("config", help="Show or change configuration")
    cfg.add_argument("action", choices=["show", "set"])
    cfg.add_argument("key", nargs="?")
    cfg.add_argument("value", nargs="?")

    sub.add_parser("tui", help="Interactive runtime list")
    return p.parse_args(argv)


def _pick_runtime(registry: RuntimeRegistry, key: str) -> LocalRuntime:
    runtimes = registry.get_all()
    if key.isdigit():
        index = int(key) - 1
        if 0 <= index < len(runtimes):
            return runtimes[index]
    else:
        wanted = Path(key).expanduser().resolve()
        for runtime in runtimes:
            if runtime.java_home.resolve() == wanted:
                return runtime
    raise RuntimeManagerError(f"No registered runtime matches '{key}'")


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


# ──────────────────────────────────────────────
#  Commands
# ──────────────────────────────────────────────

def cmd_list(services: RuntimeServices, args: argparse.Namespace) -> int:
    t = Table(title="Java Runtimes")
    t.add_column("#", style="dim")
    t.add_column("Vendor", style="cyan")
    t.add_column("Version", style="white")
    t.add_column("OS")
    t.add_column("Type")
    t.add_column("Active")
    t.add_column("JAVA_HOME", overflow="fold")
    for number, r in enumerate(services.registry.get_all(), start=1):
        t.add_row(
            str(number), r.vendor, str(r.version), r.os.value,
            "managed" if r.managed else "system",
            "✅" if r.active else "—",
            str(r.java_home),
        )
    console.print(t)
    return 0


def cmd_find(services: RuntimeServices, args: argparse.Namespace) -> int:
    console.print("\n🔍 Detecting local Java runtimes…")
    results = services.registry.find_and_add_local_runtimes()
    for result in results:
        if result.success:
            console.print(f"  [green]✓[/] {result.message}")
        else:
            console.print(f"  [dim]✗ {result.message}[/]")
    console.print(f"✅ Found {sum(1 for r in results if r.success)} runtime(s)")
    return 0


async def _install_from_catalog(
    services: RuntimeServices,
    server: str,
    version: VersionString,
    vendor: str,
    sink: ProgressSink,
) -> Optional[LocalRuntime]:
    async with aiohttp.ClientSession() as session:
        remote = await services.catalog.best_remote_runtime(server, session, version, vendor)
        if remote is None:
            return None
        console.print(f"⬇ Installing {remote}")
        return await services.installer.install_async(remote, session, sink)


def _concrete_version(text: str) -> Optional[VersionId]:
    """``text`` as a single version id, or None if it is a range or malformed."""
    try:
        version = VersionId(text)
    except ValueError:
        return None
    return version if all(e.isalnum() for e in version.elements) else None


def cmd_install(services: RuntimeServices, args: argparse.Namespace) -> int:
    with _new_progress() as progress:
        sink = rich_progress_sink(progress)
        if args.endpoint:
            version_id = _concrete_version(args.version)
            if version_id is None:
                console.print(
                    f"[red]❌ --endpoint needs a concrete version such as 17.0.2, not '{args.version}'[/]"
                )
                return 1
            remote = RemoteRuntime(
                version=version_id,
                os=OperatingSystem.get_local_system(),
                vendor=args.vendor,
                endpoint=args.endpoint,
            )
            runtime: Optional[LocalRuntime] = services.installer.install(remote, sink)
        else:
            server = args.server or services.config.default_update_server
            if not server:
                console.print("[red]❌ No update server given and none configured[/]")
                return 1
            version = VersionString.from_string(args.version)
            runtime = asyncio.run(_install_from_catalog(services, server, version, args.vendor, sink))

    if runtime is None:
        console.print(f"[red]❌ No runtime matching '{args.version}' offered[/]")
        return 1
    console.print(f"✅ Installed {runtime}")
    return 0


def cmd_remove(services: RuntimeServices, args: argparse.Namespace) -> int:
    runtime = _pick_runtime(services.registry, args.runtime)
    if args.command == "delete":
        services.registry.delete(runtime)
    else:
        services.registry.remove(runtime)
    console.print(f"✅ Removed {runtime}")
    return 0


def cmd_activate(services: RuntimeServices, args: argparse.Namespace) -> int:
    runtime = _pick_runtime(services.registry, args.runtime)
    services.registry.replace(runtime, runtime.with_active(args.command == "activate"))
    console.print(f"✅ {runtime.vendor} {runtime.version} {args.command}d")
    return 0


def cmd_launch(services: RuntimeServices, args: argparse.Namespace) -> int:
    requirements: List[JreRequirement] = [JreRequirement.parse(j) for j in args.jre]
    app_args = list(args.app_args)
    if app_args and app_args[0] == "--":
        app_args = app_args[1:]

    # the progress display must be gone before the child owns the terminal
    with _new_progress() as progress:
        services.provider.progress_sink = rich_progress_sink(progress)
        command = services.launcher.prepare(requirements, app_args)
    exit_code = services.launcher.run(command)
    if exit_code is None:
        console.print("[yellow]⚠ Stopped waiting for the application; its exit status is unknown[/]")
        return EXIT_INTERRUPTED
    return exit_code


def cmd_config(services: RuntimeServices, args: argparse.Namespace) -> int:
    if args.action == "set":
        if not args.key or args.value is None:
            console.print("[red]❌ usage: config set KEY VALUE[/]")
            return 1
        try:
            services.config = services.config.update(args.key, _parse_value(args.value), args.config)
        except (KeyError, ValueError) as exc:
            console.print(f"[red]❌ {exc}[/]")
            return 1
    console.print_json(json.dumps(services.config.to_dict()))
    return 0


def cmd_tui(services: RuntimeServices, args: argparse.Namespace) -> int:
    RuntimeManagerApp(services).run()
    return 0


COMMANDS = {
    "list": cmd_list,
    "find": cmd_find,
    "install": cmd_install,
    "remove": cmd_remove,
    "delete": cmd_remove,
    "activate": cmd_activate,
    "deactivate": cmd_activate,
    "launch": cmd_launch,
    "config": cmd_config,
    "tui": cmd_tui,
}


# ──────────────────────────────────────────────
#  Textual Application
# ──────────────────────────────────────────────

class RuntimeManagerApp(App):
    """Interactive runtime registry view."""

    TITLE = "☕ JVM Runtime Manager"
    SUB_TITLE = "Terminal Edition"

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", priority=True),
    ]

    def __init__(self, services: RuntimeServices, **kw: Any) -> None:
        super().__init__(**kw)
        self.services = services

    def on_mount(self) -> None:
        from ui.runtime_panel import RuntimeScreen

        logger.info("TUI started – %d runtime(s) registered", len(self.services.registry))
        self.push_screen(RuntimeScreen(self.services.registry))


# ──────────────────────────────────────────────
#  Entry Point
# ──────────────────────────────────────────────

def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    config = RuntimeManagerConfig.load(args.config)
    services = RuntimeServices.create(config)

    try:
        services.registry.load()
        return COMMANDS[args.command](services, args)
    except (RuntimeManagerError, aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        console.print(f"[bold red]❌ {exc}[/]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
