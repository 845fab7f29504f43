#!/usr/bin/env python3
"""
histpick.py - Interactive shell history picker

Loads your bash or zsh history, lets you fuzzy-filter it as you type, and
copies the command you pick to the clipboard.

Usage
-----
    HISTPICK_SHELL=zsh histpick
    histpick --shell bash --query "git"
    histpick --shell zsh --print-only      # print the pick instead of copying

Keys
----
Browsing:  / filter   up/down move   enter copy & exit   q quit
Filtering: type to filter   left/right move caret   backspace delete
           enter/up/down stop filtering   esc clear filter

Architecture
------------
`histload` turns the history file into a corpus, `histsession` owns every
piece of state and all the rules about how input changes it, and this module
is only the terminal around them: `HistoryPickerApp` translates Textual key
and mouse events into session events, runs the session's tick on a timer,
and redraws from `SessionController.snapshot()` after each change.
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

import pyperclip
from pygments.lexers import get_lexer_by_name
from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text
from rich.theme import Theme
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.message import Message
from textual.widgets import OptionList, Static
from textual.widgets.option_list import Option

from histload import HistoryError, ShellKind, load_corpus
from histsession import (
    Action,
    KeyPress,
    Mode,
    Pointer,
    PointerKind,
    Region,
    SessionController,
    SessionExit,
    SessionSnapshot,
    match_positions,
)

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

SHELL_ENV_VAR = "HISTPICK_SHELL"
LEGACY_SHELL_ENV_VAR = "HUI_TERM"
DEFAULT_TICK_SECONDS = 0.25
NEWLINE_GLYPH = "⏎"

CUSTOM_THEME = Theme({
    "info": "#61AFEF",
    "success": "#98C379",
    "warning": "#E5C07B",
    "error": "#E06C75",
})

console = Console(stderr=True, theme=CUSTOM_THEME)

BROWSING_KEYS: dict[str, Action] = {
    "slash": Action.START_FILTER,
    "q": Action.QUIT,
    "enter": Action.CONFIRM,
    "down": Action.NEXT,
    "up": Action.PREVIOUS,
}

EDITING_KEYS: dict[str, Action] = {
    "enter": Action.CONFIRM_FILTER,
    "down": Action.NEXT,
    "up": Action.PREVIOUS,
    "escape": Action.CANCEL,
    "backspace": Action.DELETE_BACKWARD,
    "left": Action.CURSOR_LEFT,
    "right": Action.CURSOR_RIGHT,
}

HELP_TEXT = {
    Mode.BROWSING: [
        ("Press ", ""),
        ("/", "bold"),
        (" to filter results, ", ""),
        ("Enter", "bold"),
        (" to copy selected command and exit, ", ""),
        ("q", "bold"),
        (" to exit without copying.", ""),
    ],
    Mode.EDITING: [
        ("Press ", ""),
        ("Enter", "bold"),
        (" to filter history, ", ""),
        ("Esc", "bold"),
        (" to stop filtering.", ""),
    ],
}


@dataclass(frozen=True)
class PickerConfig:
    shell: ShellKind
    history_file: Path | None = None
    tick: float = DEFAULT_TICK_SECONDS
    print_only: bool = False
    query: str = ""
    verbose: bool = False


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="histpick",
        description="Fuzzy-pick a command from your shell history and copy it to the clipboard",
    )
    ap.add_argument(
        "--shell",
        help=f"Shell whose history to load: 'bash' or 'zsh' (default: ${SHELL_ENV_VAR}, then ${LEGACY_SHELL_ENV_VAR})",
    )
    ap.add_argument("--history-file", type=Path, help="Read this file instead of the default location")
    ap.add_argument(
        "--tick",
        type=float,
        default=DEFAULT_TICK_SECONDS,
        help=f"Seconds between re-filtering passes while typing (default: {DEFAULT_TICK_SECONDS})",
    )
    ap.add_argument("--print-only", action="store_true", help="Print the selection instead of copying it")
    ap.add_argument("--query", default="", help="Start filtering with this query")
    ap.add_argument("-v", "--verbose", action="store_true", help="Report what was loaded on stderr")
    return ap


def parse_config(argv: Sequence[str] | None, environ: Mapping[str, str]) -> PickerConfig:
    """→ Config: Folds CLI flags and the environment into a PickerConfig"""
    ap = build_parser()
    args = ap.parse_args(argv)
    if args.tick <= 0:
        ap.error("--tick must be positive")

    selector = args.shell
    if selector is None:
        selector = environ.get(SHELL_ENV_VAR) or environ.get(LEGACY_SHELL_ENV_VAR)
    shell = ShellKind.parse(selector)
    history_file = args.history_file.expanduser() if args.history_file else None
    return PickerConfig(
        shell=shell,
        history_file=history_file,
        tick=args.tick,
        print_only=args.print_only,
        query=args.query,
        verbose=args.verbose,
    )


# ============================================================================
# CLIPBOARD & CONSOLE
# ============================================================================


class ClipboardError(Exception):
    """The selected entry could not be written to the clipboard."""


def copy_to_clipboard(text: str) -> None:
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise ClipboardError(f"Failed to copy to clipboard: {e}") from e


def _console_print(string="", *args, **kwargs) -> None:
    """→ Safe console printing with fallback"""
    try:
        console.print(string, *args, **kwargs)
    except Exception:
        kwargs_clean = {k: v for k, v in kwargs.items() if k in ["sep", "end", "flush"]}
        print(string, *args, file=sys.stderr, **kwargs_clean)


# ============================================================================
# RENDERING
# ============================================================================


def translate_key(mode: Mode, key: str, character: str | None) -> KeyPress | None:
    """→ Input: Maps a Textual key to a session event for the current mode"""
    if mode is Mode.BROWSING:
        action = BROWSING_KEYS.get(key)
        return KeyPress(action) if action else None

    action = EDITING_KEYS.get(key)
    if action:
        return KeyPress(action)
    if character and character.isprintable():
        return KeyPress(Action.INSERT, character)
    return None


def render_entry(entry: str, query: str) -> Text:
    """→ Rendering: One list row, with the matched characters highlighted"""
    text = Text(entry.replace("\n", NEWLINE_GLYPH), no_wrap=True, overflow="ellipsis")
    if query:
        for position in match_positions(query, entry) or ():
            text.stylize("bold #FFD866", position, position + 1)
    return text


def render_query(snapshot: SessionSnapshot) -> Text:
    """→ Rendering: The query line, with a caret while editing"""
    if snapshot.mode is not Mode.EDITING:
        return Text(snapshot.query)
    query, caret = snapshot.query, snapshot.edit_cursor
    text = Text(query[:caret], style="#E06C75")
    text.append(query[caret : caret + 1] or " ", style="reverse")
    text.append(query[caret + 1 :], style="#E06C75")
    return text


def render_help(mode: Mode) -> Text:
    return Text.assemble(*HELP_TEXT[mode])


class QueryLine(Static):
    """The search input region. Clicks are forwarded; editing is the session's job."""

    class Clicked(Message):
        pass

    def on_click(self, event: events.Click) -> None:
        event.stop()
        self.post_message(self.Clicked())


class HistoryList(OptionList):
    """The history list region. Scrolling moves the selection instead of the viewport."""

    can_focus = False

    class Scrolled(Message):
        def __init__(self, kind: PointerKind) -> None:
            super().__init__()
            self.kind = kind

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        event.prevent_default()
        event.stop()
        self.post_message(self.Scrolled(PointerKind.SCROLL_DOWN))

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        event.prevent_default()
        event.stop()
        self.post_message(self.Scrolled(PointerKind.SCROLL_UP))


class HistoryPickerApp(App[SessionExit]):
    CSS = """
    #history {
        height: 1fr;
        border: round #4B5263;
    }
    #history > .option-list--option-highlighted {
        background: #E06C75;
        text-style: bold;
    }
    #preview {
        height: auto;
        max-height: 8;
        border: round #4B5263;
        padding: 0 1;
    }
    #query {
        height: 3;
        border: round #4B5263;
        padding: 0 1;
    }
    #query.editing {
        border: round #FF4500;
    }
    #help {
        height: 1;
        padding: 0 1;
    }
    """

    def __init__(self, corpus: Sequence[str], config: PickerConfig, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.config = config
        self.controller = SessionController(tuple(corpus))
        self._lexer = get_lexer_by_name(config.shell.rules.lexer)
        self._rendered_entries: tuple[str, ...] | None = None

    def compose(self) -> ComposeResult:
        with Vertical():
            history = HistoryList(id="history")
            history.border_title = "History"
            yield history
            yield Static(id="preview")
            query = QueryLine(id="query")
            query.border_title = "Search"
            yield query
            yield Static(id="help")

    def on_mount(self) -> None:
        if self.config.query:
            self.controller.start_filter()
            for char in self.config.query:
                self.controller.handle(KeyPress(Action.INSERT, char))
            self.controller.tick()
        self.set_interval(self.config.tick, self.run_tick)
        self.refresh_view()

    # ---------- input ----------

    def handle_session_event(self, event: KeyPress | Pointer) -> None:
        result = self.controller.handle(event)
        if result is not None:
            self.exit(result)
            return
        self.refresh_view()

    def on_key(self, event: events.Key) -> None:
        key_event = translate_key(self.controller.mode, event.key, event.character)
        if key_event is None:
            return
        event.prevent_default()
        event.stop()
        self.handle_session_event(key_event)

    def on_query_line_clicked(self, message: QueryLine.Clicked) -> None:
        self.handle_session_event(Pointer(Region.INPUT, PointerKind.CLICK))

    def on_history_list_scrolled(self, message: HistoryList.Scrolled) -> None:
        self.handle_session_event(Pointer(Region.LIST, message.kind))

    def on_option_list_option_selected(self, message: OptionList.OptionSelected) -> None:
        self.handle_session_event(Pointer(Region.LIST, PointerKind.CLICK, row=message.option_index))

    def run_tick(self) -> None:
        if self.controller.tick():
            self.refresh_view()

    # ---------- output ----------

    def refresh_view(self) -> None:
        """→ Rendering: Redraws every region from the current session snapshot"""
        snapshot = self.controller.snapshot()
        history = self.query_one("#history", HistoryList)

        # The view only changes on a tick or a cancel, when the query is the one it was ranked for.
        if snapshot.entries is not self._rendered_entries:
            history.clear_options()
            history.add_options(Option(render_entry(entry, snapshot.query)) for entry in snapshot.entries)
            self._rendered_entries = snapshot.entries
        history.highlighted = snapshot.cursor
        history.border_subtitle = f"{len(snapshot.entries)}/{snapshot.total}"

        selected = snapshot.entries[snapshot.cursor] if snapshot.cursor is not None else ""
        self.query_one("#preview", Static).update(
            Syntax(selected, self._lexer, theme="monokai", word_wrap=True, background_color="default")
        )

        query = self.query_one("#query", QueryLine)
        query.update(render_query(snapshot))
        query.set_class(snapshot.mode is Mode.EDITING, "editing")

        self.query_one("#help", Static).update(render_help(snapshot.mode))


# ============================================================================
# MAIN
# ============================================================================


def main(argv: Sequence[str] | None = None) -> int:
    """→ Main: Loads history, runs the picker, hands the pick to the clipboard"""
    try:
        config = parse_config(argv, os.environ)
        corpus = load_corpus(config.shell, config.history_file)
    except HistoryError as e:
        _console_print(f"[error]Error: {e}[/error]")
        return 1

    if config.verbose:
        _console_print(f"[info]Loaded {len(corpus)} {config.shell.value} history entries[/info]")

    result = HistoryPickerApp(corpus, config).run()
    if result is None or result.entry is None:
        return 0

    if config.print_only:
        print(result.entry)
        return 0

    try:
        copy_to_clipboard(result.entry)
    except ClipboardError as e:
        _console_print(f"[error]{e}[/error]")
        return 1

    print(f"Copied to clipboard: {result.entry}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
