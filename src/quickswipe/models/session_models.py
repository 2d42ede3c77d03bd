"""Models for client-local review session data."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Decision(Enum):
    """Possible swipe decisions on a card."""
    KNOWN = "known"
    UNKNOWN = "unknown"


@dataclass
class Word:
    """Catalog entry shown on a card."""
    id: int
    word: str
    pos: str
    level: str
    translation: Optional[str] = None


@dataclass
class SessionState:
    """Swipe deck state owned by a single client instance.

    Indices refer to positions in the word catalog, not to word ids.
    """
    word_order: List[int] = field(default_factory=list)
    catalog_size: int = 0  # catalog size the deck was built for
    current_index: int = 0
    known_word_ids: List[int] = field(default_factory=list)
    unknown_word_ids: List[int] = field(default_factory=list)
    session_date: str = ""
    reviewed_today: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted JSON layout."""
        return {
            "wordOrder": list(self.word_order),
            "catalogSize": self.catalog_size,
            "currentIndex": self.current_index,
            "knownWordIds": list(self.known_word_ids),
            "unknownWordIds": list(self.unknown_word_ids),
            "sessionDate": self.session_date,
            "reviewedToday": list(self.reviewed_today),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        """Restore from the persisted JSON layout."""
        word_order = [int(i) for i in data.get("wordOrder", [])]
        return cls(
            word_order=word_order,
            catalog_size=int(data.get("catalogSize", len(word_order))),
            current_index=int(data.get("currentIndex", 0)),
            known_word_ids=[int(i) for i in data.get("knownWordIds", [])],
            unknown_word_ids=[int(i) for i in data.get("unknownWordIds", [])],
            session_date=str(data.get("sessionDate", "")),
            reviewed_today=[int(i) for i in data.get("reviewedToday", [])],
        )
