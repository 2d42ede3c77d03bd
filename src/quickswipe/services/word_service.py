"""Word catalog shared by the swipe deck and the review bot."""
import json
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from quickswipe.models.session_models import Word

logger = logging.getLogger(__name__)


class WordCatalog:
    """Ordered, read-only list of words.

    Local session state addresses words by catalog index; the progress
    store addresses them by word id.
    """

    def __init__(self, words: List[Word]):
        """Initialize the catalog from already parsed words."""
        self._words = list(words)
        self._index_by_id: Dict[int, int] = {}
        for index, word in enumerate(self._words):
            if word.id in self._index_by_id:
                raise ValueError(f"Duplicate word id {word.id} in catalog")
            self._index_by_id[word.id] = index

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "WordCatalog":
        """Load the catalog from a JSON list of word objects."""
        path = Path(path)
        with path.open(encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, list):
            raise ValueError(f"Word catalog {path} must contain a JSON list")

        words = [cls._parse_word(entry, position) for position, entry in enumerate(data)]
        logger.info("Loaded %d words from %s", len(words), path)
        return cls(words)

    @staticmethod
    def _parse_word(entry: dict, position: int) -> Word:
        """Validate one catalog entry."""
        try:
            word_id = entry["id"]
            text = entry["word"]
            pos = entry["pos"]
            level = entry["level"]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid word entry at position {position}: {entry!r}") from e

        if not isinstance(word_id, int) or isinstance(word_id, bool):
            raise ValueError(f"Word id must be an integer at position {position}")
        if not all(isinstance(value, str) for value in (text, pos, level)):
            raise ValueError(f"Word, pos and level must be strings at position {position}")

        translation = entry.get("translation")
        if translation is not None and not isinstance(translation, str):
            raise ValueError(f"Translation must be a string at position {position}")

        return Word(id=word_id, word=text, pos=pos, level=level, translation=translation)

    @property
    def size(self) -> int:
        """Number of words in the catalog."""
        return len(self._words)

    def __len__(self) -> int:
        return len(self._words)

    def __iter__(self) -> Iterator[Word]:
        return iter(self._words)

    def get(self, word_id: int) -> Optional[Word]:
        """Get a word by its id."""
        index = self._index_by_id.get(word_id)
        return None if index is None else self._words[index]

    def word_at(self, index: int) -> Optional[Word]:
        """Get the word at a catalog index."""
        if 0 <= index < len(self._words):
            return self._words[index]
        return None

    def index_of(self, word_id: int) -> Optional[int]:
        """Get the catalog index of a word id."""
        return self._index_by_id.get(word_id)
