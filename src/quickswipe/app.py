"""Main application entry point."""
import asyncio
import logging
import signal
from typing import Optional

from telegram.ext import Application

from quickswipe import monitoring
from quickswipe.bot import (
    CATALOG_KEY,
    DECK_STATE_PATH_KEY,
    LINK_CODES_KEY,
    SESSION_FACTORY_KEY,
    register_handlers,
)
from quickswipe.config import ensure_directories, settings
from quickswipe.logging_config import setup_logging
from quickswipe.models.base import SessionLocal, init_db
from quickswipe.services.link_code_service import LinkCodeService
from quickswipe.services.word_service import WordCatalog


class QuickSwipeBot:
    """Main application class.

    Owns the process-scoped collaborators: the word catalog, the link code
    store and the Telegram application.
    """

    def __init__(self):
        """Initialize the application."""
        self.application: Optional[Application] = None
        self.link_codes: Optional[LinkCodeService] = None
        self.catalog: Optional[WordCatalog] = None
        self.running = False
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        try:
            token = settings.require_bot_token()

            # Initialize database
            init_db()
            self.logger.info("Database initialized")

            self.catalog = WordCatalog.from_file(settings.paths.words_path)

            self.link_codes = LinkCodeService()
            await self.link_codes.start()
            self.logger.info("Link code service started")

            if settings.monitoring.enabled:
                monitoring.start_monitoring(settings.monitoring.port)
                self.logger.info("Metrics served on port %d", settings.monitoring.port)

            # Create application
            self.application = Application.builder().token(token).build()
            self.application.bot_data[CATALOG_KEY] = self.catalog
            self.application.bot_data[LINK_CODES_KEY] = self.link_codes
            self.application.bot_data[SESSION_FACTORY_KEY] = SessionLocal
            self.application.bot_data[DECK_STATE_PATH_KEY] = settings.paths.session_state_path
            register_handlers(self.application)
            self.logger.info("Handlers added")

            # Start application
            await self.application.initialize()
            await self.application.start()
            await self.application.updater.start_polling()
            self.logger.info("Application started")

            self.running = True

        except Exception as e:
            self.logger.error("Failed to start application: %s", str(e))
            self.running = True
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the application."""
        if not self.running:
            return

        try:
            if self.application:
                if self.application.updater and self.application.updater.running:
                    await self.application.updater.stop()
                if self.application.running:
                    await self.application.stop()
                await self.application.shutdown()
                self.application = None
                self.logger.info("Application stopped")

            if self.link_codes:
                await self.link_codes.stop()
                self.link_codes = None
                self.logger.info("Link code service stopped")

        finally:
            self.running = False
            self.application = None
            self.link_codes = None

    async def run_forever(self) -> None:
        """Start, wait for SIGINT/SIGTERM, then stop."""
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await self.start()
        try:
            await stop_event.wait()
            self.logger.info("Received exit signal, shutting down...")
        finally:
            await self.stop()


def main() -> None:
    """Main entry point."""
    ensure_directories()
    setup_logging("Starting QuickSwipe review bot ...")
    try:
        asyncio.run(QuickSwipeBot().run_forever())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    main()
