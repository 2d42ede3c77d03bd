"""Error types raised by the progress store and the link code exchange."""


class QuickSwipeError(Exception):
    """Base exception for the review core."""


class NotFoundError(QuickSwipeError):
    """Operation addressed a progress record or link code that does not exist."""


class ExpiredError(QuickSwipeError):
    """Link code was found but is past its time to live."""


class ConflictError(QuickSwipeError):
    """Duplicate creation attempt.

    Adding a word that is already in progress degrades to a lapse review, so
    the store does not raise this today.
    """
