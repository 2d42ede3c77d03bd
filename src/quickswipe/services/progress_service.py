"""Service for managing per-user word review progress."""
import logging
from datetime import UTC, datetime
from typing import Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quickswipe import monitoring
from quickswipe.config import settings
from quickswipe.errors import NotFoundError
from quickswipe.models.models import WordProgress, WordStatus
from quickswipe.services.spaced_repetition import SM2Input, calculate_sm2, is_lapse

logger = logging.getLogger(__name__)


class ProgressService:
    """CRUD and due queries over WordProgress records.

    Every mutation is committed before the method returns.
    """

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get(self, user_id: str, word_id: int) -> Optional[WordProgress]:
        """Get the progress record of a word for a user."""
        return (
            self.db.query(WordProgress)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.word_id == word_id,
                )
            )
            .first()
        )

    def add(
        self,
        user_id: str,
        word_id: int,
        status: WordStatus = WordStatus.UNKNOWN,
        initial_quality: int = settings.scheduling.unknown_quality,
    ) -> WordProgress:
        """Add a word to the user's review progress.

        Adding a word that is already in progress is not a no-op: it is
        recorded as a lapse review of the existing record.
        """
        if self.get(user_id, word_id) is not None:
            logger.debug("Word %d already in progress for user %s, recording a lapse", word_id, user_id)
            return self.record_review(user_id, word_id, settings.scheduling.unknown_quality)

        qualifies = not is_lapse(initial_quality)
        now = datetime.now(UTC)
        progress = WordProgress(
            user_id=user_id,
            word_id=word_id,
            ease_factor=settings.scheduling.initial_ease_factor,
            interval=6 if qualifies else 1,
            repetitions=1 if qualifies else 0,
            next_review_date=now,
            last_review_date=now,
            status=status,
        )
        self.db.add(progress)
        try:
            self.db.commit()
        except IntegrityError:
            # Another client created the record first
            self.db.rollback()
            logger.info("Concurrent add of word %d for user %s, recording a lapse", word_id, user_id)
            return self.record_review(user_id, word_id, settings.scheduling.unknown_quality)

        self.db.refresh(progress)
        monitoring.progress_added.inc()
        logger.info("Added word %d to progress of user %s", word_id, user_id)
        return progress

    def record_review(
        self,
        user_id: str,
        word_id: int,
        quality: int,
        status: Optional[WordStatus] = None,
    ) -> WordProgress:
        """Apply a quality grade to an existing record and reschedule it."""
        progress = self.get(user_id, word_id)
        if progress is None:
            raise NotFoundError(f"Word {word_id} is not in progress for user {user_id}")

        result = calculate_sm2(
            SM2Input(
                ease_factor=progress.ease_factor,
                interval=progress.interval,
                repetitions=progress.repetitions,
            ),
            quality,
        )

        progress.ease_factor = result.ease_factor
        progress.interval = result.interval
        progress.repetitions = result.repetitions
        progress.next_review_date = result.next_review_date
        progress.last_review_date = datetime.now(UTC)
        if status is not None:
            progress.status = status

        self.db.commit()
        self.db.refresh(progress)

        monitoring.reviews_recorded.labels(outcome="lapse" if is_lapse(quality) else "success").inc()
        logger.info(
            "Recorded review of word %d for user %s: quality=%d interval=%d repetitions=%d ease=%.2f",
            word_id,
            user_id,
            quality,
            progress.interval,
            progress.repetitions,
            progress.ease_factor,
        )
        return progress

    def list_by_user(self, user_id: str) -> List[WordProgress]:
        """Get all progress records of a user."""
        return self.db.query(WordProgress).filter(WordProgress.user_id == user_id).all()

    def list_due(self, user_id: str, as_of: Optional[datetime] = None) -> List[WordProgress]:
        """Get records that are due for review.

        Known words never resurface here, even when their date has passed.
        """
        if as_of is None:
            as_of = datetime.now(UTC)

        monitoring.due_queries.inc()
        return (
            self.db.query(WordProgress)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.status == WordStatus.UNKNOWN,
                    WordProgress.next_review_date <= as_of,
                )
            )
            .all()
        )

    def remove(self, user_id: str, word_id: int) -> None:
        """Delete a single record (the word was learned). Absent records are ignored."""
        deleted = (
            self.db.query(WordProgress)
            .filter(
                and_(
                    WordProgress.user_id == user_id,
                    WordProgress.word_id == word_id,
                )
            )
            .delete()
        )
        self.db.commit()
        if deleted:
            monitoring.progress_removed.labels(scope="single").inc()
            logger.info("Removed word %d from progress of user %s", word_id, user_id)

    def remove_all(self, user_id: str) -> int:
        """Delete every record of a user and return how many were removed."""
        deleted = (
            self.db.query(WordProgress)
            .filter(WordProgress.user_id == user_id)
            .delete()
        )
        self.db.commit()
        monitoring.progress_removed.labels(scope="all").inc()
        logger.info("Removed %d progress records of user %s", deleted, user_id)
        return deleted

    def get_counts(self, user_id: str) -> Dict[str, int]:
        """Get total/due/known/unknown counts for a user."""
        records = self.list_by_user(user_id)
        known = sum(1 for record in records if record.status == WordStatus.KNOWN)
        return {
            "total": len(records),
            "due": len(self.list_due(user_id)),
            "known": known,
            "unknown": len(records) - known,
        }
