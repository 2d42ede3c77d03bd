"""Tests for Telegram bot handlers."""
import re
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from faker import Faker
from sqlalchemy.orm import Session, sessionmaker
from telegram import InlineKeyboardMarkup, Update, User as TelegramUser
from telegram.ext import CallbackContext

from quickswipe.bot import (
    CATALOG_KEY,
    DECK_STATE_PATH_KEY,
    LINK_CODES_KEY,
    NOT_LINKED_MESSAGE,
    SESSION_FACTORY_KEY,
    SWIPE_PATTERN,
    TOKEN_KEY,
    WELCOME_MESSAGE,
    deck_state_path,
    format_word_card,
    handle_finish_callback,
    handle_help,
    handle_link,
    handle_review,
    handle_review_callback,
    handle_start,
    handle_stats,
    handle_swipe,
    handle_swipe_callback,
    handle_token,
)
from quickswipe.models.models import User, WordStatus
from quickswipe.services.link_code_service import LinkCodeService
from quickswipe.services.progress_service import ProgressService
from quickswipe.services.quiz_session import SessionStateStore
from quickswipe.services.word_service import WordCatalog

fake = Faker()


@pytest.fixture
def telegram_user() -> Mock:
    """Create a mock Telegram user."""
    user = Mock(spec=TelegramUser)
    user.id = fake.random_int()
    user.first_name = fake.first_name()
    user.username = f"test_user_{fake.random_int()}"
    user.is_bot = False
    return user


@pytest.fixture
def update(telegram_user: Mock) -> Mock:
    """Create a mock Update object."""
    update = AsyncMock(spec=Update)
    update.update_id = fake.random_int()
    update.effective_user = telegram_user
    update.effective_message = AsyncMock()
    update.effective_message.reply_text = AsyncMock()
    update.callback_query = AsyncMock()
    update.callback_query.answer = AsyncMock()
    return update


@pytest.fixture
def link_codes() -> LinkCodeService:
    return LinkCodeService(ttl_seconds=120)


@pytest.fixture
def context(
    session_factory: sessionmaker, catalog: WordCatalog, link_codes: LinkCodeService, tmp_path: Path
) -> Mock:
    """Create a mock context wired to the test database."""
    context = Mock(spec=CallbackContext)
    context.bot_data = {
        CATALOG_KEY: catalog,
        LINK_CODES_KEY: link_codes,
        SESSION_FACTORY_KEY: session_factory,
        DECK_STATE_PATH_KEY: tmp_path / "quiz-store.json",
    }
    context.user_data = {}
    context.args = []
    return context


@pytest.fixture
def linked_context(context: Mock, user: User) -> Mock:
    """Context of a chat user that already linked the account."""
    context.user_data[TOKEN_KEY] = user.api_token
    return context


def _replies(update: Mock) -> list[str]:
    return [call.args[0] for call in update.effective_message.reply_text.call_args_list]


@pytest.mark.asyncio
async def test_start_without_code(update: Mock, context: Mock) -> None:
    """Test the plain welcome message."""
    await handle_start(update, context)

    assert _replies(update) == [WELCOME_MESSAGE]
    assert TOKEN_KEY not in context.user_data


@pytest.mark.asyncio
async def test_start_redeems_link_code(
    update: Mock, context: Mock, link_codes: LinkCodeService, db: Session, user: User
) -> None:
    """Test linking the chat through a start payload."""
    ProgressService(db).add(user.id, 102)
    link = link_codes.create(user.api_token)
    context.args = [link.code]

    await handle_start(update, context)

    assert context.user_data[TOKEN_KEY] == user.api_token
    replies = _replies(update)
    assert len(replies) == 2
    assert "Account linked successfully" in replies[1]
    assert "*1* word" in replies[1]


@pytest.mark.asyncio
async def test_start_rejects_used_code(
    update: Mock, context: Mock, link_codes: LinkCodeService, user: User
) -> None:
    """Test that a code cannot be redeemed twice."""
    link = link_codes.create(user.api_token)
    link_codes.exchange(link.code)
    context.args = [link.code]

    await handle_start(update, context)

    assert TOKEN_KEY not in context.user_data
    assert "expired or invalid" in _replies(update)[-1]


@pytest.mark.asyncio
async def test_token_command(update: Mock, context: Mock) -> None:
    """Test storing a credential sent directly."""
    context.args = ["abc"]

    await handle_token(update, context)

    assert context.user_data[TOKEN_KEY] == "abc"


@pytest.mark.asyncio
async def test_token_command_without_argument(update: Mock, context: Mock) -> None:
    """Test the usage hint."""
    await handle_token(update, context)

    assert _replies(update) == ["Usage: /token <credential>"]
    assert TOKEN_KEY not in context.user_data


@pytest.mark.asyncio
async def test_review_requires_link(update: Mock, context: Mock) -> None:
    """Test review before linking."""
    await handle_review(update, context)

    assert _replies(update) == [NOT_LINKED_MESSAGE]


@pytest.mark.asyncio
async def test_review_with_stale_token(update: Mock, context: Mock) -> None:
    """Test that an unknown credential is dropped."""
    context.user_data[TOKEN_KEY] = "stale"

    await handle_review(update, context)

    assert _replies(update) == [NOT_LINKED_MESSAGE]
    assert TOKEN_KEY not in context.user_data


@pytest.mark.asyncio
async def test_review_nothing_due(update: Mock, linked_context: Mock) -> None:
    """Test review with an empty queue."""
    await handle_review(update, linked_context)

    replies = _replies(update)
    assert len(replies) == 1
    assert "No words to review" in replies[0]


@pytest.mark.asyncio
async def test_review_shows_first_due_card(
    update: Mock, linked_context: Mock, catalog: WordCatalog, db: Session, user: User
) -> None:
    """Test that the due count is followed by a word card."""
    ProgressService(db).add(user.id, 102)

    await handle_review(update, linked_context)

    replies = _replies(update)
    assert "*1* word" in replies[0]
    assert replies[1] == format_word_card(catalog.get(102), 1)
    markup = update.effective_message.reply_text.call_args.kwargs["reply_markup"]
    assert isinstance(markup, InlineKeyboardMarkup)
    callback_data = [button.callback_data for button in markup.inline_keyboard[0]]
    assert callback_data == ["review:102:known", "review:102:unknown", "finish:102"]


@pytest.mark.asyncio
async def test_review_skips_words_outside_catalog(
    update: Mock, linked_context: Mock, db: Session, user: User
) -> None:
    """Test that a due record without a catalog word is not shown."""
    ProgressService(db).add(user.id, 999)

    await handle_review(update, linked_context)

    assert "Great job" in _replies(update)[-1]


@pytest.mark.asyncio
async def test_stats(update: Mock, linked_context: Mock, db: Session, user: User) -> None:
    """Test the statistics message."""
    progress = ProgressService(db)
    progress.add(user.id, 101)
    progress.add(user.id, 102)
    progress.add(user.id, 103, status=WordStatus.KNOWN)

    await handle_stats(update, linked_context)

    text = _replies(update)[0]
    assert "Total words in review: *3*" in text
    assert "Due today: *2*" in text
    assert "Known: *1*" in text
    assert "Unknown: *2*" in text


@pytest.mark.asyncio
async def test_help(update: Mock, context: Mock) -> None:
    """Test the command list."""
    await handle_help(update, context)

    text = _replies(update)[0]
    assert "/review" in text
    assert "/stats" in text


@pytest.mark.asyncio
async def test_review_callback_known(
    update: Mock, linked_context: Mock, db: Session, user: User
) -> None:
    """Test answering a card as known."""
    ProgressService(db).add(user.id, 102)
    update.callback_query.data = "review:102:known"

    await handle_review_callback(update, linked_context)

    db.expire_all()
    record = ProgressService(db).get(user.id, 102)
    assert record.repetitions == 1
    assert record.interval == 1
    update.callback_query.answer.assert_awaited_once_with("✅ Great! Moving to longer interval")
    assert "Great job" in _replies(update)[-1]


@pytest.mark.asyncio
async def test_review_callback_unknown(
    update: Mock, linked_context: Mock, catalog: WordCatalog, db: Session, user: User
) -> None:
    """Test answering a card as unknown keeps it in the queue."""
    ProgressService(db).add(user.id, 104)
    update.callback_query.data = "review:104:unknown"

    await handle_review_callback(update, linked_context)

    db.expire_all()
    record = ProgressService(db).get(user.id, 104)
    assert record.repetitions == 0
    assert record.interval == 1
    update.callback_query.answer.assert_awaited_once_with("🔁 We'll review this again soon")


@pytest.mark.asyncio
async def test_review_callback_word_not_in_progress(
    update: Mock, linked_context: Mock, user: User
) -> None:
    """Test answering a card whose record is gone."""
    update.callback_query.data = "review:105:known"

    await handle_review_callback(update, linked_context)

    update.callback_query.answer.assert_awaited_once_with("Error")
    assert "Word not in progress" in _replies(update)[-1]


@pytest.mark.asyncio
async def test_review_callback_rejects_bad_data(update: Mock, linked_context: Mock) -> None:
    """Test malformed callback data."""
    update.callback_query.data = "review:abc:maybe"

    await handle_review_callback(update, linked_context)

    update.callback_query.answer.assert_awaited_once_with("Unknown action")


@pytest.mark.asyncio
async def test_finish_callback_removes_word(
    update: Mock, linked_context: Mock, db: Session, user: User
) -> None:
    """Test dropping a learned word."""
    ProgressService(db).add(user.id, 101)
    update.callback_query.data = "finish:101"

    await handle_finish_callback(update, linked_context)

    db.expire_all()
    assert ProgressService(db).get(user.id, 101) is None
    update.callback_query.answer.assert_awaited_once_with("🏁 Word removed from review")


def _other_chat(context: Mock) -> tuple[Mock, Mock]:
    """A second chat talking to the same bot process."""
    other_update = AsyncMock(spec=Update)
    other_update.effective_user = Mock(spec=TelegramUser)
    other_update.effective_user.id = fake.random_int()
    other_update.effective_message = AsyncMock()
    other_update.effective_message.reply_text = AsyncMock()
    other_context = Mock(spec=CallbackContext)
    other_context.bot_data = context.bot_data
    other_context.user_data = {}
    other_context.args = []
    return other_update, other_context


@pytest.mark.asyncio
async def test_link_code_connects_another_chat(
    update: Mock, linked_context: Mock, link_codes: LinkCodeService, user: User
) -> None:
    """Test issuing a code in a linked chat and redeeming it from a new one."""
    await handle_link(update, linked_context)

    text = _replies(update)[-1]
    match = re.search(r"`([0-9a-f]{8})`", text)
    assert match
    assert "120 seconds" in text
    assert len(link_codes) == 1

    other_update, other_context = _other_chat(linked_context)
    other_context.args = [match.group(1)]
    await handle_start(other_update, other_context)

    assert other_context.user_data[TOKEN_KEY] == user.api_token
    assert "Account linked successfully" in _replies(other_update)[-1]
    assert len(link_codes) == 0

    third_update, third_context = _other_chat(linked_context)
    third_context.args = [match.group(1)]
    await handle_start(third_update, third_context)

    assert TOKEN_KEY not in third_context.user_data
    assert "expired or invalid" in _replies(third_update)[-1]


@pytest.mark.asyncio
async def test_link_requires_linked_chat(update: Mock, context: Mock, link_codes: LinkCodeService) -> None:
    """Test that an unlinked chat cannot issue codes."""
    await handle_link(update, context)

    assert _replies(update) == [NOT_LINKED_MESSAGE]
    assert len(link_codes) == 0


def _load_deck(context: Mock, user: User):
    return SessionStateStore(deck_state_path(context, user.id)).load()


@pytest.mark.asyncio
async def test_swipe_seeds_deck_from_progress(
    update: Mock, linked_context: Mock, db: Session, user: User
) -> None:
    """Test that a new deck starts from the user's known/unknown records."""
    progress = ProgressService(db)
    progress.add(user.id, 102)
    progress.add(user.id, 105, status=WordStatus.KNOWN)

    await handle_swipe(update, linked_context)

    state = _load_deck(linked_context, user)
    assert state.unknown_word_ids == [1]
    assert state.known_word_ids == [4]
    assert sorted(state.word_order) == list(range(5))
    assert "Card 1 of 5" in _replies(update)[-1]
    markup = update.effective_message.reply_text.call_args.kwargs["reply_markup"]
    callback_data = [button.callback_data for button in markup.inline_keyboard[0]]
    assert callback_data == ["swipe:known", "swipe:unknown", "swipe:skip"]
    assert all(SWIPE_PATTERN.match(data) for data in callback_data)


@pytest.mark.asyncio
async def test_swipe_unknown_adds_word_to_review(
    update: Mock, linked_context: Mock, catalog: WordCatalog, db: Session, user: User
) -> None:
    """Test that an unknown swipe is pushed to the progress store."""
    await handle_swipe(update, linked_context)
    state = _load_deck(linked_context, user)
    current = state.word_order[state.current_index]

    update.callback_query.data = "swipe:unknown"
    await handle_swipe_callback(update, linked_context)

    db.expire_all()
    assert ProgressService(db).get(user.id, catalog.word_at(current).id) is not None
    state = _load_deck(linked_context, user)
    assert state.unknown_word_ids == [current]
    assert state.current_index == 1
    update.callback_query.answer.assert_awaited_once_with("🔁 Added to review")


@pytest.mark.asyncio
async def test_swipe_skip_keeps_classifications(update: Mock, linked_context: Mock, user: User) -> None:
    """Test skipping a card from the chat."""
    await handle_swipe(update, linked_context)
    update.callback_query.data = "swipe:unknown"
    await handle_swipe_callback(update, linked_context)
    before = _load_deck(linked_context, user)

    update.callback_query.data = "swipe:skip"
    await handle_swipe_callback(update, linked_context)

    after = _load_deck(linked_context, user)
    assert after.unknown_word_ids == before.unknown_word_ids
    assert after.known_word_ids == before.known_word_ids
    assert after.reviewed_today == before.reviewed_today
    assert sorted(after.word_order) == sorted(before.word_order)


@pytest.mark.asyncio
async def test_swipe_through_deck_and_start_over(
    update: Mock, linked_context: Mock, db: Session, user: User
) -> None:
    """Test finishing the deck with known swipes and starting a new one."""
    await handle_swipe(update, linked_context)

    update.callback_query.data = "swipe:known"
    for _ in range(5):
        await handle_swipe_callback(update, linked_context)

    assert "Deck finished" in _replies(update)[-1]
    markup = update.effective_message.reply_text.call_args.kwargs["reply_markup"]
    assert markup.inline_keyboard[0][0].callback_data == "swipe:reset"
    assert sorted(_load_deck(linked_context, user).known_word_ids) == list(range(5))
    assert ProgressService(db).list_by_user(user.id) == []

    update.callback_query.data = "swipe:reset"
    await handle_swipe_callback(update, linked_context)

    state = _load_deck(linked_context, user)
    assert state.known_word_ids == []
    assert state.current_index == 0
    assert "Card 1 of 5" in _replies(update)[-1]


@pytest.mark.asyncio
async def test_swipe_callback_rejects_bad_data(update: Mock, linked_context: Mock) -> None:
    """Test malformed swipe callback data."""
    update.callback_query.data = "swipe:maybe"

    await handle_swipe_callback(update, linked_context)

    update.callback_query.answer.assert_awaited_once_with("Unknown action")
