"""
ui/runtime_panel.py
===================
Textual screen listing the runtime registry.

The table follows registry events live: listeners only flag the table
as stale (they may fire on worker threads) and a short interval timer
redraws it on the UI thread.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen, Screen
from textual.widgets import Button, DataTable, Footer, Header, Label

from errors import RuntimeManagerError
from runtime_registry import Registration, RuntimeEvent, RuntimeRegistry
from runtimes import LocalRuntime

REFRESH_INTERVAL = 0.5


class ConfirmScreen(ModalScreen[bool]):
    """Yes / No confirmation dialog."""

    DEFAULT_CSS = """
    ConfirmScreen { align: center middle; }
    #confirm-box {
        width: 56; height: auto; max-height: 80%;
        border: double #58a6ff; padding: 2; background: #161b22;
    }
    #confirm-msg { text-align: center; margin-bottom: 1; }
    #confirm-btns { align-horizontal: center; }
    """

    def __init__(self, message: str) -> None:
        super().__init__()
        self._msg = message

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-box"):
            yield Label(self._msg, id="confirm-msg")
            with Horizontal(id="confirm-btns"):
                yield Button("Delete", variant="error", id="cd-yes")
                yield Button("Cancel", variant="primary", id="cd-no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "cd-yes")


def runtime_row(runtime: LocalRuntime) -> Tuple[str, str, str, str, str, str]:
    """Table cells for one runtime."""
    return (
        runtime.vendor,
        str(runtime.version),
        runtime.os.value,
        "managed" if runtime.managed else "system",
        "✓ Active" if runtime.active else "✗ Inactive",
        str(runtime.java_home),
    )


class RuntimeScreen(Screen):
    """Runtime registry management screen."""

    DEFAULT_CSS = """
    RuntimeScreen .panel { padding: 1 2; }
    RuntimeScreen .panel-title { text-style: bold; color: #58a6ff; }
    RuntimeScreen #runtime-summary { color: #8b949e; margin-bottom: 1; }
    RuntimeScreen .data-table { height: 1fr; }
    RuntimeScreen #runtime-actions { height: auto; margin-top: 1; }
    RuntimeScreen .action-btn { margin-right: 1; }
    """

    BINDINGS = [
        ("escape", "app.pop_screen", "Back"),
        ("d", "detect", "Detect"),
        ("a", "toggle_active", "Toggle active"),
    ]

    def __init__(self, registry: RuntimeRegistry) -> None:
        super().__init__()
        self.registry = registry
        self._registrations: List[Registration] = []
        self._dirty = True

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        with Vertical(classes="panel"):
            yield Label("☕  Java Runtimes", classes="panel-title")
            yield Label("", id="runtime-summary")
            yield DataTable(id="runtime-table", classes="data-table")

            with Horizontal(id="runtime-actions"):
                yield Button("🔍 Detect Local Runtimes", id="btn-detect", classes="action-btn btn-primary")
                yield Button("✓ Toggle Active", id="btn-toggle", classes="action-btn btn-start")
                yield Button("🗑 Remove", id="btn-remove", classes="action-btn btn-stop")

        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#runtime-table", DataTable)
        table.cursor_type = "row"
        table.add_columns("Vendor", "Version", "OS", "Type", "Status", "Path")

        for event in RuntimeEvent:
            self._registrations.append(self.registry.subscribe(event, self._mark_dirty))
        self.set_interval(REFRESH_INTERVAL, self._refresh_if_dirty)
        self._refresh_if_dirty()

    def on_unmount(self) -> None:
        for registration in self._registrations:
            registration.unsubscribe()
        self._registrations.clear()

    # ── Table ──────────────────────────────────

    def _mark_dirty(self, *_runtimes: LocalRuntime) -> None:
        self._dirty = True

    def _refresh_if_dirty(self) -> None:
        if not self._dirty:
            return
        self._dirty = False

        table = self.query_one("#runtime-table", DataTable)
        table.clear()
        runtimes = self.registry.get_all()
        for runtime in runtimes:
            table.add_row(*runtime_row(runtime))

        active = sum(1 for r in runtimes if r.active)
        self.query_one("#runtime-summary", Label).update(
            f"{len(runtimes)} runtime(s), {active} active"
        )

    def _selected_runtime(self) -> Optional[LocalRuntime]:
        table = self.query_one("#runtime-table", DataTable)
        runtimes = self.registry.get_all()
        if table.cursor_row is None or not 0 <= table.cursor_row < len(runtimes):
            return None
        return runtimes[table.cursor_row]

    # ── Actions ────────────────────────────────

    def on_button_pressed(self, event: Button.Pressed) -> None:
        btn = event.button.id
        if btn == "btn-detect":
            self.action_detect()
        elif btn == "btn-toggle":
            self.action_toggle_active()
        elif btn == "btn-remove":
            self._remove_selected()

    def action_detect(self) -> None:
        self.notify("Searching for local Java runtimes…")
        self.run_worker(self._detect, thread=True, exclusive=True)

    def _detect(self) -> None:
        try:
            results = self.registry.find_and_add_local_runtimes()
        except RuntimeManagerError as exc:
            self.app.call_from_thread(self.notify, str(exc), severity="error")
            return
        found = sum(1 for r in results if r.success)
        self.app.call_from_thread(self.notify, f"Found {found} Java runtime(s)")

    def action_toggle_active(self) -> None:
        runtime = self._selected_runtime()
        if runtime is None:
            return
        try:
            self.registry.replace(runtime, runtime.with_active(not runtime.active))
        except RuntimeManagerError as exc:
            self.notify(str(exc), severity="error")

    def _remove_selected(self) -> None:
        runtime = self._selected_runtime()
        if runtime is None:
            return
        if not runtime.managed:
            self._apply_removal(runtime)
            return

        def _on_confirm(confirmed: Optional[bool]) -> None:
            if confirmed:
                self._apply_removal(runtime)

        self.app.push_screen(
            ConfirmScreen(f"Delete {runtime.vendor} {runtime.version}\nand its files at {runtime.java_home}?"),
            _on_confirm,
        )

    def _apply_removal(self, runtime: LocalRuntime) -> None:
        try:
            if runtime.managed:
                self.registry.delete(runtime)
            else:
                self.registry.remove(runtime)
            self.notify(f"Removed {runtime.vendor} {runtime.version}")
        except RuntimeManagerError as exc:
            self.notify(str(exc), severity="error")
