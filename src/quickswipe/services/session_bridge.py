"""Reconciles the local swipe deck with the server-side progress store.

Hydration is a one-way pull: the local known/unknown sets are replaced by
what the store reports, and any local progress that was never pushed is
discarded. Pushing a local decision is fire-and-forget: failures are logged
and the local state is never rolled back.
"""
import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from quickswipe import monitoring
from quickswipe.config import settings
from quickswipe.errors import NotFoundError, QuickSwipeError
from quickswipe.models.models import WordStatus
from quickswipe.models.session_models import Decision, SessionState
from quickswipe.services.link_code_service import LinkCode, LinkCodeService
from quickswipe.services.progress_service import ProgressService
from quickswipe.services.quiz_session import QuizSession
from quickswipe.services.word_service import WordCatalog

logger = logging.getLogger(__name__)


def _clean_indexes(indexes: Iterable[int], total_items: int) -> List[int]:
    """De-duplicate and drop indices outside [0, total_items), keeping order."""
    seen = set()
    cleaned = []
    for index in indexes:
        if not isinstance(index, int) or isinstance(index, bool):
            continue
        if 0 <= index < total_items and index not in seen:
            seen.add(index)
            cleaned.append(index)
    return cleaned


class SessionBridge:
    """Glue between a QuizSession, the progress store and link codes."""

    def __init__(
        self,
        session: QuizSession,
        catalog: WordCatalog,
        progress_service: Optional[ProgressService] = None,
        link_codes: Optional[LinkCodeService] = None,
    ):
        self.session = session
        self.catalog = catalog
        self.progress_service = progress_service
        self.link_codes = link_codes

    def hydrate(self, known_indexes: Iterable[int], unknown_indexes: Iterable[int], total_items: int) -> None:
        """Replace local classifications with server-supplied ones and start a fresh deck.

        An index reported as both known and unknown is kept as known.
        """
        if not total_items:
            return

        known = _clean_indexes(known_indexes, total_items)
        known_set = set(known)
        unknown = [index for index in _clean_indexes(unknown_indexes, total_items) if index not in known_set]

        discarded = self.session.completed
        if discarded:
            logger.warning("Hydration discards %d local classifications", discarded)

        self.session.restore(
            SessionState(
                word_order=self.session.new_deck(total_items),
                catalog_size=total_items,
                current_index=0,
                known_word_ids=known,
                unknown_word_ids=unknown,
                session_date=self.session.today(),
                reviewed_today=[],
            )
        )
        logger.info("Hydrated session with %d known and %d unknown words", len(known), len(unknown))

    def hydrate_from_store(self, user_id: str) -> None:
        """Hydrate from the user's progress records."""
        if self.progress_service is None:
            raise RuntimeError("Hydration from the store needs a progress service")

        known, unknown = [], []
        for record in self.progress_service.list_by_user(user_id):
            index = self.catalog.index_of(record.word_id)
            if index is None:
                logger.warning("Progress record for word %d is not in the catalog", record.word_id)
                continue
            if record.status == WordStatus.KNOWN:
                known.append(index)
            else:
                unknown.append(index)

        self.hydrate(known, unknown, self.catalog.size)

    def sync_decision(self, user_id: str, item_index: int, decision: Decision) -> bool:
        """Push one local decision to the store. Returns True if it was applied."""
        if self.progress_service is None:
            return False

        word = self.catalog.word_at(item_index)
        if word is None:
            logger.warning("Cannot sync decision for index %d outside the catalog", item_index)
            return False

        try:
            if decision == Decision.UNKNOWN:
                self.progress_service.add(user_id, word.id)
            else:
                self.progress_service.record_review(user_id, word.id, settings.scheduling.known_quality)
        except NotFoundError:
            # Known words that were never marked unknown have nothing to schedule
            logger.debug("Word %d is not in progress for user %s, nothing to sync", word.id, user_id)
            return False
        except SQLAlchemyError as e:
            self.progress_service.db.rollback()
            monitoring.error_count.labels(error_type=type(e).__name__).inc()
            logger.error("Failed to sync %s decision for word %d: %s", decision.value, word.id, e)
            return False
        except QuickSwipeError as e:
            monitoring.error_count.labels(error_type=type(e).__name__).inc()
            logger.error("Failed to sync %s decision for word %d: %s", decision.value, word.id, e)
            return False
        return True

    def swipe(self, user_id: Optional[str], decision: Decision) -> Optional[int]:
        """Apply a swipe locally, then push it to the store if a user is linked."""
        decided = self.session.swipe(decision, self.catalog.size)
        if decided is not None and user_id is not None:
            self.sync_decision(user_id, decided, decision)
        return decided

    def issue_link_code(self, credential: str) -> LinkCode:
        """Create a link code for the primary client's credential."""
        if self.link_codes is None:
            raise RuntimeError("Link codes are not available")
        return self.link_codes.create(credential)

    def redeem_link_code(self, code: str) -> str:
        """Exchange a link code for the credential it carries."""
        if self.link_codes is None:
            raise RuntimeError("Link codes are not available")
        return self.link_codes.exchange(code)
