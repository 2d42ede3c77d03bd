"""Telegram review bot: the chat client of the shared review queue."""
import functools
import logging
import re
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes
from telegram.helpers import escape_markdown

from quickswipe import monitoring
from quickswipe.config import settings
from quickswipe.errors import ExpiredError, NotFoundError
from quickswipe.models.base import SessionLocal
from quickswipe.models.models import User, WordProgress
from quickswipe.models.session_models import Decision, Word
from quickswipe.services.link_code_service import LinkCodeService
from quickswipe.services.progress_service import ProgressService
from quickswipe.services.quiz_session import QuizSession, SessionStateStore
from quickswipe.services.session_bridge import SessionBridge
from quickswipe.services.spaced_repetition import quality_for_decision
from quickswipe.services.user_service import UserService
from quickswipe.services.word_service import WordCatalog

# Get logger for this module
logger = logging.getLogger(__name__)

# Callback data
REVIEW_PATTERN = re.compile(r"^review:(\d+):(known|unknown)$")
FINISH_PATTERN = re.compile(r"^finish:(\d+)$")
SWIPE_PATTERN = re.compile(r"^swipe:(known|unknown|skip|reset)$")

# Keys in application.bot_data / context.user_data
CATALOG_KEY = "catalog"
LINK_CODES_KEY = "link_codes"
SESSION_FACTORY_KEY = "session_factory"
TOKEN_KEY = "token"
DECK_STATE_PATH_KEY = "deck_state_path"

WELCOME_MESSAGE = (
    "🎓 *Welcome to Vocabulary Review Bot\\!*\n\n"
    "This bot helps you learn words using _spaced repetition_:\n\n"
    "📝 *How it works:*\n"
    "1️⃣ Mark words as \"unknown\" in the web app\n"
    "2️⃣ They appear here for review\n"
    "3️⃣ Words you know get longer intervals\n"
    "4️⃣ Words you struggle with come back sooner\n\n"
    "📊 *Review schedule:*\n"
    "• New words → review today\n"
    "• If you know it → next review in 1\\-6\\-15\\-30\\+ days\n"
    "• If you don't know → back to 1 day\n"
    "• Tap the 🏁 \"Learned\" button to drop mastered words from the queue\n\n"
    "🚀 Send /review to start practicing\\!"
)

NOT_LINKED_MESSAGE = (
    "🔗 Please connect your account first\\!\n\n"
    "Go to the web app → *Review in Telegram*, or send /link in a chat that is already connected\\."
)

COMMANDS_INFO = [
    ("/review", "Start reviewing due words"),
    ("/swipe", "Swipe through the whole word deck"),
    ("/stats", "See your study statistics"),
    ("/link", "Get a code to connect another chat"),
    ("/help", "Show this menu again"),
]


def timed(handler_name: str) -> Callable:
    """Record handler duration in the request histogram."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
            with monitoring.request_duration.labels(handler=handler_name).time():
                return await func(update, context)
        return wrapper
    return decorator


def _md(text: str) -> str:
    return escape_markdown(text, version=2)


def _open_db(context: ContextTypes.DEFAULT_TYPE) -> Session:
    factory = context.bot_data.get(SESSION_FACTORY_KEY, SessionLocal)
    return factory()


def get_token(context: ContextTypes.DEFAULT_TYPE) -> Optional[str]:
    """Credential linked to this chat user, falling back to the default one."""
    return context.user_data.get(TOKEN_KEY) or settings.bot.default_user_token


def format_word_card(word: Word, remaining_count: int) -> str:
    """Render a due word as a MarkdownV2 card."""
    metadata = f"{_md(word.pos)} · {_md(word.level)}"
    lines = [f"✨ *{_md(word.word.upper())}* ✨ — _{metadata}_"]
    if word.translation:
        lines.append(f"💡 Hint: ||{_md(word.translation)}||")
    lines.append(f"📚 _{remaining_count} word\\(s\\) left to review_")
    return "\n".join(lines)


def format_commands_help() -> str:
    """List the bot commands."""
    return "\n".join(f"• {_md(command)} — {_md(description)}" for command, description in COMMANDS_INFO)


def build_review_keyboard(word_id: int) -> InlineKeyboardMarkup:
    """Inline buttons attached to a word card."""
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("✅ I know it", callback_data=f"review:{word_id}:known"),
            InlineKeyboardButton("❌ Don't know", callback_data=f"review:{word_id}:unknown"),
            InlineKeyboardButton("🏁 Learned", callback_data=f"finish:{word_id}"),
        ]
    ])


def next_due_word(progress_service: ProgressService, user_id: str, catalog: WordCatalog) -> tuple[Optional[Word], int]:
    """First due word that exists in the catalog, and the due count."""
    due: list[WordProgress] = progress_service.list_due(user_id)
    for record in due:
        word = catalog.get(record.word_id)
        if word:
            return word, len(due)
    return None, 0


async def _resolve_user(update: Update, context: ContextTypes.DEFAULT_TYPE, db: Session) -> Optional[User]:
    """Find the linked user or tell the chat user to link first."""
    message = update.effective_message
    token = get_token(context)
    if not token:
        await message.reply_text(NOT_LINKED_MESSAGE, parse_mode=ParseMode.MARKDOWN_V2)
        return None

    user = UserService(db).get_user_by_token(token)
    if not user:
        context.user_data.pop(TOKEN_KEY, None)
        await message.reply_text(NOT_LINKED_MESSAGE, parse_mode=ParseMode.MARKDOWN_V2)
        return None
    return user


async def send_next_word(update: Update, context: ContextTypes.DEFAULT_TYPE, db: Session, user: User) -> None:
    """Show the next due card, or the all-done message."""
    message = update.effective_message
    catalog: WordCatalog = context.bot_data[CATALOG_KEY]
    word, total_due = next_due_word(ProgressService(db), user.id, catalog)
    if not word:
        await message.reply_text(
            "🎉 *Great job\\!*\n\n"
            "No words to review right now\\.\n"
            "Come back later or add more words in the web app\\!",
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return

    await message.reply_text(
        format_word_card(word, total_due),
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=build_review_keyboard(word.id),
    )


def deck_state_path(context: ContextTypes.DEFAULT_TYPE, user_id: str) -> Path:
    """Per-user file holding the swipe deck state."""
    base = Path(context.bot_data.get(DECK_STATE_PATH_KEY, settings.paths.session_state_path))
    return base.with_name(f"{base.stem}-{user_id}{base.suffix}")


def open_deck(context: ContextTypes.DEFAULT_TYPE, db: Session, user: User) -> SessionBridge:
    """Load the user's swipe deck, seeding a new one from their progress records."""
    catalog: WordCatalog = context.bot_data[CATALOG_KEY]
    store = SessionStateStore(deck_state_path(context, user.id))
    state = store.load()
    bridge = SessionBridge(
        session=QuizSession(state=state, store=store),
        catalog=catalog,
        progress_service=ProgressService(db),
        link_codes=context.bot_data.get(LINK_CODES_KEY),
    )
    if state is None:
        bridge.hydrate_from_store(user.id)
    bridge.session.ensure_session(catalog.size)
    return bridge


def format_deck_card(word: Word, session: QuizSession) -> str:
    """Render the top card of the swipe deck."""
    state = session.state
    lines = [f"🃏 *{_md(word.word.upper())}* — _{_md(word.pos)} · {_md(word.level)}_"]
    if word.translation:
        lines.append(f"💡 Hint: ||{_md(word.translation)}||")
    lines.append(
        f"🗂 _Card {state.current_index + 1} of {len(state.word_order)}_ · "
        f"✅ {session.known_count} · ❓ {session.unknown_count}"
    )
    return "\n".join(lines)


def build_swipe_keyboard() -> InlineKeyboardMarkup:
    """Inline buttons attached to a deck card."""
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("✅ Know", callback_data="swipe:known"),
            InlineKeyboardButton("❌ Don't know", callback_data="swipe:unknown"),
            InlineKeyboardButton("⏭ Skip", callback_data="swipe:skip"),
        ]
    ])


async def send_deck_card(update: Update, bridge: SessionBridge) -> None:
    """Show the top card of the deck, or the summary once it is exhausted."""
    message = update.effective_message
    session = bridge.session
    if not bridge.catalog.size:
        await message.reply_text("📭 The word catalog is empty.")
        return

    index = session.current_item()
    word = bridge.catalog.word_at(index) if index is not None else None
    if word is None:
        await message.reply_text(
            "🎉 *Deck finished\\!*\n\n"
            f"✅ Known: *{session.known_count}*\n"
            f"📝 Reviewed today: *{session.reviewed_today_count}*\n\n"
            "Words you didn't know are waiting in /review\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton("🔄 Start over", callback_data="swipe:reset")]]),
        )
        return

    await message.reply_text(
        format_deck_card(word, session),
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=build_swipe_keyboard(),
    )


@timed("start")
async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Welcome the user and redeem a link code passed as the start payload."""
    message = update.effective_message
    logger.info("Received /start from user %s", update.effective_user.id if update.effective_user else None)

    await message.reply_text(WELCOME_MESSAGE, parse_mode=ParseMode.MARKDOWN_V2)
    if not context.args:
        return

    link_codes: LinkCodeService = context.bot_data[LINK_CODES_KEY]
    try:
        token = link_codes.exchange(context.args[0])
    except (NotFoundError, ExpiredError) as e:
        logger.info("Link code rejected: %s", e)
        await message.reply_text(
            "⚠️ Link code expired or invalid\\. Please generate a new one from the web app\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return

    context.user_data[TOKEN_KEY] = token

    db = _open_db(context)
    try:
        user = UserService(db).get_user_by_token(token)
        due_count = len(ProgressService(db).list_due(user.id)) if user else 0
    except SQLAlchemyError as e:
        logger.error("Failed to count due words after linking: %s", e)
        due_count = 0
    finally:
        db.close()

    if due_count > 0:
        count_text = f"\n\n📚 You have *{due_count}* word\\(s\\) waiting for review\\!"
    else:
        count_text = "\n\n📭 No words to review yet\\. Add some in the web app\\!"
    await message.reply_text(
        f"✅ *Account linked successfully\\!*{count_text}\n\nSend /review to start practicing\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )


@timed("token")
async def handle_token(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Store a credential sent directly with /token <credential>."""
    message = update.effective_message
    if not context.args:
        await message.reply_text("Usage: /token <credential>")
        return

    context.user_data[TOKEN_KEY] = context.args[0]
    await message.reply_text("✅ Token saved! Now you can run /review.")


@timed("link")
async def handle_link(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Issue a link code that connects another chat to this account."""
    message = update.effective_message
    db = _open_db(context)
    try:
        user = await _resolve_user(update, context, db)
        if not user:
            return
        credential = user.api_token
    except SQLAlchemyError as e:
        monitoring.error_count.labels(error_type=type(e).__name__).inc()
        logger.error("Failed to resolve user for link code: %s", e)
        await message.reply_text("❌ Failed to create a link code.")
        return
    finally:
        db.close()

    link_codes: LinkCodeService = context.bot_data[LINK_CODES_KEY]
    link = link_codes.create(credential)
    await message.reply_text(
        f"🔗 Your link code: `{link.code}`\n\n"
        f"Send `/start {link.code}` from the chat you want to connect\\. "
        f"The code works once and expires in {link.expires_in_seconds} seconds\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )


@timed("swipe")
async def handle_swipe(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Open the swipe deck at its current card."""
    message = update.effective_message
    db = _open_db(context)
    try:
        user = await _resolve_user(update, context, db)
        if not user:
            return

        bridge = open_deck(context, db, user)
        await send_deck_card(update, bridge)
    except SQLAlchemyError as e:
        monitoring.error_count.labels(error_type=type(e).__name__).inc()
        logger.error("Failed to open the swipe deck: %s", e)
        await message.reply_text("❌ Failed to open the deck.")
    finally:
        db.close()


@timed("swipe_callback")
async def handle_swipe_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Apply a know/don't know/skip/start over action to the deck."""
    query = update.callback_query
    match = SWIPE_PATTERN.match(query.data or "")
    if not match:
        await query.answer("Unknown action")
        return

    action = match.group(1)

    db = _open_db(context)
    try:
        user = await _resolve_user(update, context, db)
        if not user:
            await query.answer("Valid token required.")
            return

        bridge = open_deck(context, db, user)
        total = bridge.catalog.size
        if action == "skip":
            bridge.session.skip(total)
            await query.answer("⏭ Skipped")
        elif action == "reset":
            bridge.session.reset_progress(total)
            await query.answer("🔄 New deck")
        else:
            decision = Decision(action)
            bridge.swipe(user.id, decision)
            await query.answer("✅ Known" if decision == Decision.KNOWN else "🔁 Added to review")
        await send_deck_card(update, bridge)
    except SQLAlchemyError as e:
        monitoring.error_count.labels(error_type=type(e).__name__).inc()
        logger.error("Failed to apply swipe action %s: %s", action, e)
        await query.answer("Error")
        await update.effective_message.reply_text("❌ Failed to update the deck.")
    finally:
        db.close()


@timed("review")
async def handle_review(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show the due count and the first due card."""
    message = update.effective_message
    db = _open_db(context)
    try:
        user = await _resolve_user(update, context, db)
        if not user:
            return

        count = len(ProgressService(db).list_due(user.id))
        if count == 0:
            await message.reply_text(
                "📭 *No words to review\\!*\n\n"
                "Add words in the web app by swiping them as \"unknown\"\\.",
                parse_mode=ParseMode.MARKDOWN_V2,
            )
            return

        await message.reply_text(f"📚 *{count}* word\\(s\\) to review today\\!", parse_mode=ParseMode.MARKDOWN_V2)
        await send_next_word(update, context, db, user)
    except SQLAlchemyError as e:
        monitoring.error_count.labels(error_type=type(e).__name__).inc()
        logger.error("Failed to fetch review words: %s", e)
        await message.reply_text("❌ Failed to fetch review words.")
    finally:
        db.close()


@timed("stats")
async def handle_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show total, due, known and unknown counts."""
    message = update.effective_message
    db = _open_db(context)
    try:
        user = await _resolve_user(update, context, db)
        if not user:
            return

        counts = ProgressService(db).get_counts(user.id)
        await message.reply_text(
            "📊 *Your Statistics*\n\n"
            f"📚 Total words in review: *{counts['total']}*\n"
            f"📝 Due today: *{counts['due']}*\n"
            f"✅ Known: *{counts['known']}*\n"
            f"❓ Unknown: *{counts['unknown']}*",
            parse_mode=ParseMode.MARKDOWN_V2,
        )
    except SQLAlchemyError as e:
        monitoring.error_count.labels(error_type=type(e).__name__).inc()
        logger.error("Failed to get stats: %s", e)
        await message.reply_text("❌ Failed to get stats.")
    finally:
        db.close()


@timed("help")
async def handle_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show the command list."""
    await update.effective_message.reply_text(
        f"🤖 *Available Commands*\n\n{format_commands_help()}\n\n"
        "🏁 Tap the Learned button on each card to drop mastered words completely\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=ReplyKeyboardMarkup([[command for command, _ in COMMANDS_INFO]], resize_keyboard=True),
    )


@timed("review_callback")
async def handle_review_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Apply a known/unknown answer from a card and show the next one."""
    query = update.callback_query
    match = REVIEW_PATTERN.match(query.data or "")
    if not match:
        await query.answer("Unknown action")
        return

    word_id = int(match.group(1))
    decision = Decision(match.group(2))

    db = _open_db(context)
    try:
        user = await _resolve_user(update, context, db)
        if not user:
            await query.answer("Valid token required.")
            return

        ProgressService(db).record_review(user.id, word_id, quality_for_decision(decision))
        if decision == Decision.KNOWN:
            await query.answer("✅ Great! Moving to longer interval")
        else:
            await query.answer("🔁 We'll review this again soon")
        await send_next_word(update, context, db, user)
    except NotFoundError:
        await query.answer("Error")
        await update.effective_message.reply_text("❌ Failed to update progress: Word not in progress")
    except SQLAlchemyError as e:
        monitoring.error_count.labels(error_type=type(e).__name__).inc()
        logger.error("Failed to update progress of word %d: %s", word_id, e)
        await query.answer("Error")
        await update.effective_message.reply_text("❌ Failed to update progress.")
    finally:
        db.close()


@timed("finish_callback")
async def handle_finish_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Drop a learned word from the queue and show the next card."""
    query = update.callback_query
    match = FINISH_PATTERN.match(query.data or "")
    if not match:
        await query.answer("Unknown action")
        return

    word_id = int(match.group(1))

    db = _open_db(context)
    try:
        user = await _resolve_user(update, context, db)
        if not user:
            await query.answer("Valid token required.")
            return

        ProgressService(db).remove(user.id, word_id)
        await query.answer("🏁 Word removed from review")
        await send_next_word(update, context, db, user)
    except SQLAlchemyError as e:
        monitoring.error_count.labels(error_type=type(e).__name__).inc()
        logger.error("Failed to remove word %d: %s", word_id, e)
        await query.answer("Error")
        await update.effective_message.reply_text("❌ Failed to remove word.")
    finally:
        db.close()


def register_handlers(application: Application) -> None:
    """Attach every command and callback handler."""
    application.add_handler(CommandHandler("start", handle_start))
    application.add_handler(CommandHandler("token", handle_token))
    application.add_handler(CommandHandler("link", handle_link))
    application.add_handler(CommandHandler("review", handle_review))
    application.add_handler(CommandHandler("swipe", handle_swipe))
    application.add_handler(CommandHandler("stats", handle_stats))
    application.add_handler(CommandHandler("help", handle_help))
    application.add_handler(CallbackQueryHandler(handle_review_callback, pattern=REVIEW_PATTERN))
    application.add_handler(CallbackQueryHandler(handle_finish_callback, pattern=FINISH_PATTERN))
    application.add_handler(CallbackQueryHandler(handle_swipe_callback, pattern=SWIPE_PATTERN))
