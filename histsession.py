"""
histsession.py - Ranked filtering and selection state for the history picker

The session is a small state machine with two modes:

    BROWSING --start filter--> EDITING
    EDITING  --confirm filter / move / cancel--> BROWSING
    BROWSING --confirm--> exit with the selected entry
    BROWSING --quit--> exit without an entry

Query edits never re-rank on the spot. `SessionController.tick()` compares the
query with the text it saw on the previous tick and re-ranks only when they
differ, so a burst of keystrokes costs one ranking pass.

Nothing in here draws or reads the terminal. The UI feeds `KeyPress` and
`Pointer` events in and renders `SessionSnapshot`s out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Sequence, Union

from rapidfuzz import fuzz

# Characters after which a match counts as the start of a word.
WORD_SEPARATORS = frozenset(" \t\n/\\-_.,:;=|&()[]{}<>'\"`$@~")


# ============================================================================
# RANKER
# ============================================================================


def match_positions(query: str, candidate: str) -> tuple[int, ...] | None:
    """→ Ranker: Leftmost case-insensitive subsequence alignment of query in candidate.

    Characters are lower-cased one at a time, so offsets always index the
    original candidate even where lower-casing changes a character's length.
    """
    haystack = [char.lower() for char in candidate]
    positions: list[int] = []
    index = 0
    for char in query:
        needle = char.lower()
        while index < len(haystack) and haystack[index] != needle:
            index += 1
        if index == len(haystack):
            return None
        positions.append(index)
        index += 1
    return tuple(positions)


def _is_word_start(candidate: str, index: int) -> bool:
    return index == 0 or candidate[index - 1] in WORD_SEPARATORS


def score(query: str, candidate: str) -> tuple[float, int, int] | None:
    """→ Ranker: Relevance of candidate for query, or None when it does not match.

    Scores compare as tuples: rapidfuzz similarity of the best aligned
    window first (an exact substring gets 100, nothing scores higher), then
    how many query characters land on word starts, then how many continue a
    consecutive run.
    """
    positions = match_positions(query, candidate)
    if positions is None:
        return None

    similarity = fuzz.partial_ratio(query.lower(), candidate.lower())
    boundary_hits = sum(1 for p in positions if _is_word_start(candidate, p))
    consecutive_hits = sum(1 for a, b in zip(positions, positions[1:]) if b == a + 1)
    return similarity, boundary_hits, consecutive_hits


def rank(corpus: Sequence[str], query: str) -> list[str]:
    """→ Ranker: Entries matching query, best first; corpus order breaks ties"""
    if not query:
        return list(corpus)

    scored = []
    for index, entry in enumerate(corpus):
        entry_score = score(query, entry)
        if entry_score is not None:
            scored.append((entry_score, index, entry))

    scored.sort(key=lambda item: (_negate(item[0]), item[1]))
    return [entry for _, _, entry in scored]


def _negate(entry_score: tuple[float, int, int]) -> tuple[float, int, int]:
    similarity, boundary_hits, consecutive_hits = entry_score
    return -similarity, -boundary_hits, -consecutive_hits


# ============================================================================
# SELECTION STATE
# ============================================================================


class SelectionList:
    """An ordered list of entries with a movable, wrapping cursor."""

    def __init__(self, items: Sequence[str] = ()):
        self.items: list[str] = list(items)
        self.index = 0

    def __len__(self) -> int:
        return len(self.items)

    @property
    def selected(self) -> str | None:
        if not self.items:
            return None
        return self.items[self.index]

    def next(self) -> None:
        if not self.items:
            self.index = 0
            return
        self.index = (self.index + 1) % len(self.items)

    def previous(self) -> None:
        if not self.items:
            self.index = 0
            return
        self.index = (self.index - 1) % len(self.items)

    def select(self, row: int) -> None:
        if not self.items:
            self.index = 0
            return
        self.index = max(0, min(row, len(self.items) - 1))


@dataclass
class QueryBuffer:
    """Query text plus an edit cursor that always stays within the text."""

    text: str = ""
    cursor: int = 0

    def insert(self, char: str) -> None:
        self.text = self.text[: self.cursor] + char + self.text[self.cursor :]
        self.cursor += len(char)

    def delete_backward(self) -> None:
        if self.cursor == 0:
            return
        self.text = self.text[: self.cursor - 1] + self.text[self.cursor :]
        self.cursor -= 1

    def move_left(self) -> None:
        self.cursor = max(0, self.cursor - 1)

    def move_right(self) -> None:
        self.cursor = min(len(self.text), self.cursor + 1)

    def clear(self) -> None:
        self.text = ""
        self.cursor = 0


# ============================================================================
# EVENTS
# ============================================================================


class Mode(Enum):
    BROWSING = auto()
    EDITING = auto()


class Action(Enum):
    START_FILTER = auto()
    CONFIRM = auto()
    QUIT = auto()
    NEXT = auto()
    PREVIOUS = auto()
    CONFIRM_FILTER = auto()
    CANCEL = auto()
    INSERT = auto()
    DELETE_BACKWARD = auto()
    CURSOR_LEFT = auto()
    CURSOR_RIGHT = auto()


class Region(Enum):
    INPUT = auto()
    LIST = auto()


class PointerKind(Enum):
    CLICK = auto()
    SCROLL_UP = auto()
    SCROLL_DOWN = auto()


@dataclass(frozen=True)
class KeyPress:
    action: Action
    char: str = ""


@dataclass(frozen=True)
class Pointer:
    region: Region
    kind: PointerKind
    row: int | None = None


Event = Union[KeyPress, Pointer]


@dataclass(frozen=True)
class SessionExit:
    """Returned by the controller when the session is over; entry is None on quit."""

    entry: str | None


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session handed to the rendering surface."""

    entries: tuple[str, ...]
    cursor: int | None
    query: str
    edit_cursor: int
    mode: Mode
    total: int


# ============================================================================
# SESSION CONTROLLER
# ============================================================================


@dataclass
class SessionController:
    """Owns the corpus, the ranked view, the query and the interaction mode."""

    corpus: tuple[str, ...]
    mode: Mode = Mode.BROWSING
    query: QueryBuffer = field(default_factory=QueryBuffer)
    view: SelectionList = field(init=False)
    _ranked_query: str = field(default="", init=False, repr=False)
    _view_items: tuple[str, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self):
        self.corpus = tuple(self.corpus)
        self._set_view(self.corpus)

    @property
    def selected(self) -> str | None:
        return self.view.selected

    @property
    def rerank_pending(self) -> bool:
        return self.query.text != self._ranked_query

    def _set_view(self, items: Sequence[str]) -> None:
        self._view_items = tuple(items)
        self.view = SelectionList(self._view_items)

    def tick(self) -> bool:
        """→ Controller: Re-ranks if the query text changed since the last tick"""
        if not self.rerank_pending:
            return False
        self._ranked_query = self.query.text
        self._set_view(rank(self.corpus, self.query.text))
        return True

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            entries=self._view_items,
            cursor=self.view.index if self.view.items else None,
            query=self.query.text,
            edit_cursor=self.query.cursor,
            mode=self.mode,
            total=len(self.corpus),
        )

    # ---------- transitions ----------

    def start_filter(self) -> None:
        self.query.clear()
        self.mode = Mode.EDITING

    def stop_filter(self) -> None:
        self.mode = Mode.BROWSING

    def cancel_filter(self) -> None:
        self.query.clear()
        self._ranked_query = ""
        self._set_view(self.corpus)
        self.mode = Mode.BROWSING

    def move(self, action: Action) -> None:
        if self.mode is Mode.EDITING:
            self.stop_filter()
        if action is Action.NEXT:
            self.view.next()
        else:
            self.view.previous()

    # ---------- dispatch ----------

    def handle(self, event: Event) -> SessionExit | None:
        """→ Controller: Applies one input event; returns SessionExit when the session ends"""
        if isinstance(event, Pointer):
            self._handle_pointer(event)
            return None
        if self.mode is Mode.BROWSING:
            return self._handle_browsing(event)
        self._handle_editing(event)
        return None

    def _handle_browsing(self, event: KeyPress) -> SessionExit | None:
        action = event.action
        if action is Action.START_FILTER:
            self.start_filter()
        elif action is Action.QUIT:
            return SessionExit(None)
        elif action is Action.CONFIRM:
            # Nothing to confirm on an empty view; keep the session alive.
            if self.selected is not None:
                return SessionExit(self.selected)
        elif action in (Action.NEXT, Action.PREVIOUS):
            self.move(action)
        return None

    def _handle_editing(self, event: KeyPress) -> None:
        action = event.action
        if action is Action.INSERT and event.char:
            self.query.insert(event.char)
        elif action is Action.DELETE_BACKWARD:
            self.query.delete_backward()
        elif action is Action.CURSOR_LEFT:
            self.query.move_left()
        elif action is Action.CURSOR_RIGHT:
            self.query.move_right()
        elif action is Action.CONFIRM_FILTER:
            self.stop_filter()
        elif action is Action.CANCEL:
            self.cancel_filter()
        elif action in (Action.NEXT, Action.PREVIOUS):
            self.move(action)

    def _handle_pointer(self, event: Pointer) -> None:
        if event.region is Region.INPUT:
            if event.kind is PointerKind.CLICK and self.mode is Mode.BROWSING:
                self.start_filter()
            return

        if event.kind is PointerKind.SCROLL_DOWN:
            self.move(Action.NEXT)
        elif event.kind is PointerKind.SCROLL_UP:
            self.move(Action.PREVIOUS)
        elif event.kind is PointerKind.CLICK and event.row is not None:
            self.stop_filter()
            self.view.select(event.row)
