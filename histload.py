"""
histload.py - Shell history ingestion

Turns the raw bytes of a bash or zsh history file into the corpus the picker
works on: an ordered list of distinct, non-empty command strings.

Pipeline
--------
    raw bytes -> unmetafy (zsh only) -> utf-8 decode -> split -> strip
    timestamps (zsh only) -> drop empty -> dedupe -> reverse

Every shell-specific decision lives in `SHELL_RULES`, so the pipeline itself
never branches on the shell name.

Ordering
--------
Deduplication keeps the *first* (oldest) occurrence and runs before the final
reversal. The result is newest-first, except that a repeated command sits at
the position of its earliest use:

    >>> build_corpus(b"cmd1\\ncmd2\\ncmd1\\n", ShellKind.BASH)
    ['cmd2', 'cmd1']
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

ZSH_META = 0x83
ZSH_META_XOR = 32

ZSH_FIRST_ENTRY_RE = re.compile(r"^: \d{10}:\d;")
ZSH_ENTRY_RE = re.compile(r"^\d{10}:\d;")


# ============================================================================
# ERRORS
# ============================================================================


class HistoryError(Exception):
    """Base class for everything that can go wrong while loading history."""


class UnsupportedShellError(HistoryError):
    """The shell selector is unset or names a shell we cannot read."""


class HistoryFileError(HistoryError):
    """The history file could not be located or read."""


class HistoryDecodeError(HistoryError):
    """The history bytes are not valid text."""


# ============================================================================
# SHELL RULES
# ============================================================================


class ShellKind(Enum):
    BASH = "bash"
    ZSH = "zsh"

    @classmethod
    def parse(cls, name: str | None) -> ShellKind:
        """→ Config: Maps a selector value to a ShellKind, rejecting anything else"""
        accepted = ", ".join(f"'{kind.value}'" for kind in cls)
        if not name or not name.strip():
            raise UnsupportedShellError(f"No shell selected. Accepted values: {accepted}.")
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise UnsupportedShellError(
                f"Unsupported shell '{name}'. Accepted values: {accepted}."
            ) from None

    @property
    def rules(self) -> ShellRules:
        return SHELL_RULES[self]


@dataclass(frozen=True)
class ShellRules:
    """How one shell lays out its history file."""

    filename: str
    delimiter: str
    unescape: bool
    first_prefix: re.Pattern[str] | None
    prefix: re.Pattern[str] | None
    lexer: str


SHELL_RULES: dict[ShellKind, ShellRules] = {
    ShellKind.BASH: ShellRules(
        filename=".bash_history",
        delimiter="\n",
        unescape=False,
        first_prefix=None,
        prefix=None,
        lexer="bash",
    ),
    # zsh writes multi-line commands with raw newlines and only starts a new
    # entry at its own ": <epoch>:<duration>;" metadata marker.
    ShellKind.ZSH: ShellRules(
        filename=".zsh_history",
        delimiter="\n: ",
        unescape=True,
        first_prefix=ZSH_FIRST_ENTRY_RE,
        prefix=ZSH_ENTRY_RE,
        lexer="zsh",
    ),
}


# ============================================================================
# DECODER
# ============================================================================


def unmetafy(data: bytes) -> bytes:
    """→ Decoder: Undoes zsh's metafication of bytes it considers special.

    Each meta marker (0x83) is dropped and the byte that followed it is
    XOR-ed with 32. The scan runs back to front so removals never shift an
    index that is still to be visited.

    >>> unmetafy(bytes([0x61, 0x62, 0x63, 0x83, 0x10, 0x65, 0x66]))
    b'abc0ef'
    """
    buf = bytearray(data)
    for index in range(len(buf) - 1, -1, -1):
        if buf[index] != ZSH_META:
            continue
        del buf[index]
        if index >= len(buf):
            raise HistoryDecodeError(
                f"Meta marker at byte {index} is not followed by an escaped byte"
            )
        buf[index] ^= ZSH_META_XOR
    return bytes(buf)


def decode_history(data: bytes, shell: ShellKind) -> str:
    """→ Decoder: Produces the text of a history file, unescaping first if needed"""
    if shell.rules.unescape:
        data = unmetafy(data)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise HistoryDecodeError(
            f"{shell.rules.filename} is not valid UTF-8 near byte {e.start}: {e.reason}"
        ) from e


# ============================================================================
# ENTRY SPLITTER & NORMALIZER
# ============================================================================


def split_entries(text: str, shell: ShellKind) -> list[str]:
    """→ Splitter: Breaks decoded text into entries on the shell's delimiter.

    One final line terminator is dropped first so it does not stick to the last
    zsh entry.
    """
    return text.removesuffix("\n").split(shell.rules.delimiter)


def strip_timestamps(entries: list[str], shell: ShellKind) -> list[str]:
    """→ Normalizer: Removes the zsh metadata the splitter left behind.

    The splitter already consumed the ": " of every metadata line except the
    first one, which has nothing in front of it.
    """
    rules = shell.rules
    if not entries or rules.prefix is None:
        return list(entries)

    stripped = list(entries)
    if rules.first_prefix is not None:
        stripped[0] = rules.first_prefix.sub("", stripped[0], count=1)
    return [rules.prefix.sub("", entry, count=1) for entry in stripped]


def drop_empty(entries: list[str]) -> list[str]:
    return [entry for entry in entries if entry != ""]


def dedupe(entries: list[str]) -> list[str]:
    """→ Normalizer: Keeps the first occurrence of every entry, in order"""
    return list(dict.fromkeys(entries))


def build_corpus(data: bytes, shell: ShellKind) -> list[str]:
    """→ Pipeline: Raw history bytes to an ordered, distinct, non-empty corpus"""
    entries = split_entries(decode_history(data, shell), shell)
    entries = strip_timestamps(entries, shell)
    entries = dedupe(drop_empty(entries))
    return entries[::-1]


# ============================================================================
# FILE I/O
# ============================================================================


def history_path(shell: ShellKind, home: Path | None = None) -> Path:
    """→ File I/O: Default history file location for a shell"""
    if home is None:
        try:
            home = Path.home()
        except RuntimeError as e:
            raise HistoryFileError(f"Could not determine the home directory: {e}") from e
    return home / shell.rules.filename


def read_history_bytes(path: Path) -> bytes:
    """→ File I/O: Reads the whole history file as raw bytes"""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise HistoryFileError(f"History file not found at '{path}'") from None
    except OSError as e:
        raise HistoryFileError(f"Error reading history file '{path}': {e}") from e


def load_corpus(shell: ShellKind, path: Path | None = None) -> list[str]:
    """→ Main: Locates, reads and ingests the history file for a shell"""
    if path is None:
        path = history_path(shell)
    return build_corpus(read_history_bytes(path), shell)
