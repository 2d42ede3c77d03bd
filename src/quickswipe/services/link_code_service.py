"""Short-lived, single-use codes that hand a bearer credential to a second client."""
import asyncio
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from quickswipe import monitoring
from quickswipe.config import settings
from quickswipe.errors import ExpiredError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class LinkCode:
    """Code handed to the primary client."""
    code: str
    expires_in_seconds: int


@dataclass
class _PendingCode:
    credential: str
    expires_at: float


class LinkCodeService:
    """Process-scoped store of pending link codes.

    Created when the application starts and dropped when it stops. A code
    is removed on the first exchange attempt, whether or not it had expired.
    Expired codes that are never redeemed are evicted by a periodic sweep.
    """

    def __init__(
        self,
        ttl_seconds: int = settings.link_codes.ttl_seconds,
        code_length: int = settings.link_codes.code_length,
        sweep_interval_seconds: int = settings.link_codes.sweep_interval_seconds,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.code_length = code_length
        self.sweep_interval_seconds = sweep_interval_seconds
        self.clock = clock
        self._codes: Dict[str, _PendingCode] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None
        self.running = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._codes)

    def _generate_code(self) -> str:
        return secrets.token_hex(self.code_length // 2)

    def create(self, credential: str) -> LinkCode:
        """Issue a new code for a credential."""
        if not credential:
            raise ValueError("A credential is required to issue a link code")

        expires_at = self.clock() + self.ttl_seconds
        with self._lock:
            code = self._generate_code()
            while code in self._codes:
                code = self._generate_code()
            self._codes[code] = _PendingCode(credential=credential, expires_at=expires_at)

        monitoring.link_codes_issued.inc()
        logger.info("Issued link code expiring in %d seconds", self.ttl_seconds)
        return LinkCode(code=code, expires_in_seconds=self.ttl_seconds)

    def exchange(self, code: str) -> str:
        """Redeem a code for its credential.

        Raises:
            NotFoundError: the code was never issued or was already used.
            ExpiredError: the code is past its time to live.
        """
        with self._lock:
            pending = self._codes.pop(code, None)

        if pending is None:
            monitoring.link_codes_redeemed.labels(result="not_found").inc()
            raise NotFoundError("Code not found or expired")

        if pending.expires_at < self.clock():
            monitoring.link_codes_redeemed.labels(result="expired").inc()
            raise ExpiredError("Code expired")

        monitoring.link_codes_redeemed.labels(result="ok").inc()
        logger.info("Link code redeemed")
        return pending.credential

    def sweep_expired(self) -> int:
        """Evict expired codes and return how many were dropped."""
        now = self.clock()
        with self._lock:
            expired = [code for code, pending in self._codes.items() if pending.expires_at < now]
            for code in expired:
                del self._codes[code]

        if expired:
            monitoring.link_codes_swept.inc(len(expired))
            logger.debug("Swept %d expired link codes", len(expired))
        return len(expired)

    async def start(self) -> None:
        """Start the periodic sweep."""
        if self.running:
            return

        self.running = True
        logger.info("Starting link code sweep every %d seconds", self.sweep_interval_seconds)
        self._sweep_task = asyncio.create_task(self._run_sweep())

    async def stop(self) -> None:
        """Stop the sweep and drop every pending code."""
        if not self.running:
            return

        self.running = False
        logger.info("Stopping link code sweep...")
        if self._sweep_task:
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None

        with self._lock:
            self._codes.clear()

    async def _run_sweep(self) -> None:
        """Run the sweep loop."""
        while self.running:
            try:
                await asyncio.sleep(self.sweep_interval_seconds)
                self.sweep_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                monitoring.error_count.labels(error_type=type(e).__name__).inc()
                logger.error("Error in link code sweep: %s", str(e))
