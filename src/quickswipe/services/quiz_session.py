"""Client-local review queue policy for the swipe deck.

The deck is a shuffled order of catalog indices. Words marked unknown during
a sitting are reshuffled into a new sub-deck when the end of the deck is
reached, until every word in the sitting has been marked known.
"""
import json
import logging
import random
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional, Union

from quickswipe.models.session_models import Decision, SessionState

logger = logging.getLogger(__name__)


def today_key() -> str:
    """Local calendar day as YYYY-MM-DD."""
    return date.today().isoformat()


def shuffle_list(indices: List[int], rng: random.Random) -> List[int]:
    """Return a Fisher-Yates shuffled copy of the indices."""
    arr = list(indices)
    for i in range(len(arr) - 1, 0, -1):
        j = rng.randint(0, i)
        arr[i], arr[j] = arr[j], arr[i]
    return arr


def shuffle_range(length: int, rng: random.Random) -> List[int]:
    """Return a uniformly random permutation of range(length)."""
    return shuffle_list(list(range(length)), rng)


class SessionStateStore:
    """Persists a SessionState as a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[SessionState]:
        """Load the stored state, or None if there is nothing usable."""
        if not self.path.exists():
            return None
        try:
            with self.path.open(encoding="utf-8") as f:
                return SessionState.from_dict(json.load(f))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Could not load session state from %s: %s", self.path, e)
            return None

    def save(self, state: SessionState) -> None:
        """Write the state to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f)
        tmp_path.replace(self.path)


class QuizSession:
    """Swipe deck state machine.

    Every mutating operation first applies the day boundary: when the stored
    session date is not today, only the reviewed-today tracking is cleared.
    Operations on an empty catalog are no-ops.
    """

    def __init__(
        self,
        state: Optional[SessionState] = None,
        store: Optional[SessionStateStore] = None,
        rng: Optional[random.Random] = None,
        today: Callable[[], str] = today_key,
    ):
        self.store = store
        self.rng = rng or random.Random()
        self.today = today
        if state is None and store is not None:
            state = store.load()
        self.state = state or SessionState(session_date=self.today())

    def _apply_day_boundary(self) -> None:
        key = self.today()
        if self.state.session_date != key:
            logger.debug("Day changed from %s to %s, clearing reviewed-today", self.state.session_date, key)
            self.state.session_date = key
            self.state.reviewed_today = []

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self.state)

    def new_deck(self, total_words: int) -> List[int]:
        """Generate a fresh shuffled deck over the whole catalog."""
        return shuffle_range(total_words, self.rng)

    def restore(self, state: SessionState) -> None:
        """Replace the whole state, e.g. after hydration from the server."""
        self.state = state
        self._persist()

    def ensure_session(self, total_words: int) -> None:
        """Establish a deck unless one exists for this catalog size."""
        if not total_words:
            return
        self._apply_day_boundary()
        if self.state.word_order and self.state.catalog_size == total_words:
            self._persist()
            return

        logger.info("Starting a new deck of %d words", total_words)
        self.state.word_order = self.new_deck(total_words)
        self.state.catalog_size = total_words
        self.state.current_index = 0
        self.state.known_word_ids = []
        self.state.unknown_word_ids = []
        self._persist()

    def _lazy_establish(self, total_words: int) -> bool:
        """Start a deck if none exists. Returns True when one was created."""
        if self.state.word_order:
            return False
        self.state.word_order = self.new_deck(total_words)
        self.state.catalog_size = total_words
        self.state.current_index = 0
        self._persist()
        return True

    def current_item(self) -> Optional[int]:
        """Catalog index of the card on top of the deck, None when exhausted."""
        if 0 <= self.state.current_index < len(self.state.word_order):
            return self.state.word_order[self.state.current_index]
        return None

    @property
    def is_exhausted(self) -> bool:
        """True when every card has been decided and nothing is left to retry."""
        return bool(self.state.word_order) and self.current_item() is None

    def swipe(self, decision: Decision, total_words: int) -> Optional[int]:
        """Classify the current card and advance.

        Returns the catalog index that was decided, or None if nothing was.
        """
        if not total_words:
            return None
        self._apply_day_boundary()

        if self._lazy_establish(total_words):
            return None

        current = self.current_item()
        if current is None:
            self._persist()
            return None

        state = self.state
        for ids in (state.known_word_ids, state.unknown_word_ids):
            if current in ids:
                ids.remove(current)
        if decision == Decision.KNOWN:
            state.known_word_ids.append(current)
        else:
            state.unknown_word_ids.append(current)

        next_index = state.current_index + 1
        if next_index >= len(state.word_order):
            if state.unknown_word_ids:
                logger.debug("End of deck, requeueing %d unknown words", len(state.unknown_word_ids))
                state.word_order = shuffle_list(state.unknown_word_ids, self.rng)
                next_index = 0
            else:
                next_index = len(state.word_order)
        state.current_index = next_index

        if current not in state.reviewed_today:
            state.reviewed_today.append(current)

        self._persist()
        return current

    def skip(self, total_words: int) -> None:
        """Move the current card to a random later position in the deck.

        Classification and reviewed-today tracking are left untouched.
        """
        if not total_words:
            return
        self._apply_day_boundary()

        if self._lazy_establish(total_words):
            return

        current = self.current_item()
        if current is None or len(self.state.word_order) <= 1:
            self._persist()
            return

        order = list(self.state.word_order)
        position = self.state.current_index
        order.pop(position)
        remaining = len(order)
        insert_base = min(remaining, position)
        offset = self.rng.randint(0, remaining - insert_base) if remaining - insert_base > 0 else 0
        order.insert(insert_base + offset, current)

        self.state.word_order = order
        self.state.current_index = min(position, len(order) - 1)
        self._persist()

    def reset_progress(self, total_words: int) -> None:
        """Discard the deck and all classifications and start over today."""
        if not total_words:
            return
        logger.info("Resetting swipe progress for %d words", total_words)
        self.state = SessionState(
            word_order=self.new_deck(total_words),
            catalog_size=total_words,
            current_index=0,
            known_word_ids=[],
            unknown_word_ids=[],
            session_date=self.today(),
            reviewed_today=[],
        )
        self._persist()

    @property
    def known_count(self) -> int:
        return len(self.state.known_word_ids)

    @property
    def unknown_count(self) -> int:
        return len(self.state.unknown_word_ids)

    @property
    def reviewed_today_count(self) -> int:
        return len(self.state.reviewed_today)

    @property
    def completed(self) -> int:
        """Number of cards classified either way."""
        return self.known_count + self.unknown_count
