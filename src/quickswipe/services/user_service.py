"""User service resolving bearer credentials to user ids."""
import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from quickswipe.config import settings
from quickswipe.errors import NotFoundError
from quickswipe.models.models import User

# Configure logging
logger = logging.getLogger(__name__)


def generate_token() -> str:
    """Generate an opaque bearer credential."""
    return secrets.token_urlsafe(32)


class UserService:
    """Service for looking up users by id, credential or Telegram id."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by id."""
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_token(self, token: str) -> Optional[User]:
        """Get the user owning a bearer credential."""
        if not token:
            return None
        return self.db.query(User).filter(User.api_token == token).first()

    def get_user_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        """Get user by telegram ID."""
        return self.db.query(User).filter(User.telegram_id == telegram_id).first()

    def create_user(self, username: Optional[str] = None, telegram_id: Optional[int] = None) -> User:
        """Create a user with a fresh credential."""
        user = User(
            username=username,
            telegram_id=telegram_id,
            api_token=generate_token(),
            is_admin=telegram_id is not None and telegram_id in settings.bot.admin_ids,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Created user %s", user.id)
        return user

    def get_or_create_by_telegram_id(self, telegram_id: int, username: Optional[str] = None) -> User:
        """Get existing user or create a new one."""
        user = self.get_user_by_telegram_id(telegram_id)
        if not user:
            user = self.create_user(username=username, telegram_id=telegram_id)
        return user

    def rotate_token(self, user_id: str) -> str:
        """Replace a user's credential, invalidating the old one."""
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        user.api_token = generate_token()
        self.db.commit()
        self.db.refresh(user)
        logger.info("Rotated credential of user %s", user_id)
        return user.api_token
