"""In-memory OTP store with expiry, bounded attempts and a periodic sweep."""

from __future__ import annotations

import asyncio
import enum
import hmac
import logging
import os
import secrets
import signal
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from naql_otp.otp.phone import mask_phone

logger = logging.getLogger(__name__)

# Defaults: codes live 10 minutes, 5 tries, swept every 5 minutes
OTP_TTL_SECONDS = 600
OTP_MAX_ATTEMPTS = 5
SWEEP_INTERVAL_SECONDS = 300

CODE_MIN = 100_000
CODE_MAX = 999_999


@dataclass
class PendingVerification:
    """One outstanding code for a phone key."""

    code: str
    expires_at: float
    attempts: int = 0


@dataclass(frozen=True)
class IssuedCode:
    """What ``issue`` hands back to the caller for delivery."""

    code: str
    expires_at: float


class VerifyStatus(enum.Enum):
    SUCCESS = "success"
    WRONG_CODE = "wrong_code"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a single ``verify`` call."""

    status: VerifyStatus
    attempts: int = 0
    max_attempts: int = OTP_MAX_ATTEMPTS

    @property
    def ok(self) -> bool:
        return self.status is VerifyStatus.SUCCESS

    @property
    def remaining_attempts(self) -> int:
        return max(self.max_attempts - self.attempts, 0)


def generate_code() -> str:
    """Return a 6-digit code drawn uniformly from [100000, 999999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


class OTPStore:
    """Process-local table of pending verifications keyed by phone.

    At most one record exists per phone key; issuing again replaces it.
    A whole-table lock serialises ``issue``, ``verify`` and ``sweep`` so
    the store can be shared by request handlers and the sweeper task.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of a freshly issued code.
    max_attempts:
        Number of verification attempts tolerated per code.
    sweep_interval:
        Seconds between background sweeps once the sweeper is started.
    clock:
        Returns the current time in seconds; ``time.time`` by default.
    on_sweeper_crash:
        Called with the error if the sweeper task dies. The default sends
        SIGTERM to this process so the server shuts down instead of running
        without eviction.
    """

    def __init__(
        self,
        ttl_seconds: float = OTP_TTL_SECONDS,
        max_attempts: int = OTP_MAX_ATTEMPTS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
        on_sweeper_crash: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_attempts = max_attempts
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._records: dict[str, PendingVerification] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None
        self._on_sweeper_crash = on_sweeper_crash or terminate_process

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def __len__(self) -> int:
        return len(self._records)

    def get(self, phone_key: str) -> PendingVerification | None:
        """Return the raw record for *phone_key*, expired or not."""
        return self._records.get(phone_key)

    # ── Lifecycle operations ─────────────────────────────

    def issue(self, phone_key: str) -> IssuedCode:
        """Generate and store a new code for *phone_key*, replacing any old one."""
        code = generate_code()
        expires_at = self._clock() + self._ttl
        with self._lock:
            self._records[phone_key] = PendingVerification(code=code, expires_at=expires_at)
        logger.info("OTP issued for %s", mask_phone(phone_key))
        logger.debug("OTP for %s: %s", mask_phone(phone_key), code)
        return IssuedCode(code=code, expires_at=expires_at)

    def verify(self, phone_key: str, submitted_code: str) -> VerifyResult:
        """Check *submitted_code* against the record for *phone_key*.

        Checks run in a fixed order and the first match wins: missing
        record, expiry, attempt bound, then the code itself. Expiry is
        tested before the attempt counter moves, and the counter moves
        before the comparison, so a correct code on an over-limit call
        is still rejected.
        """
        with self._lock:
            record = self._records.get(phone_key)
            if record is None:
                return VerifyResult(VerifyStatus.NOT_FOUND, max_attempts=self._max_attempts)

            if self._clock() > record.expires_at:
                del self._records[phone_key]
                logger.info("OTP expired for %s", mask_phone(phone_key))
                return VerifyResult(
                    VerifyStatus.EXPIRED, record.attempts, self._max_attempts
                )

            record.attempts += 1
            if record.attempts > self._max_attempts:
                del self._records[phone_key]
                logger.warning("Too many OTP attempts for %s", mask_phone(phone_key))
                return VerifyResult(
                    VerifyStatus.TOO_MANY_ATTEMPTS, record.attempts, self._max_attempts
                )

            if hmac.compare_digest(submitted_code.encode(), record.code.encode()):
                del self._records[phone_key]
                logger.info("OTP verified for %s", mask_phone(phone_key))
                return VerifyResult(VerifyStatus.SUCCESS, record.attempts, self._max_attempts)

            logger.info(
                "Wrong OTP for %s (%d/%d)",
                mask_phone(phone_key),
                record.attempts,
                self._max_attempts,
            )
            return VerifyResult(VerifyStatus.WRONG_CODE, record.attempts, self._max_attempts)

    def sweep(self) -> int:
        """Evict every record whose expiry has passed; return how many went."""
        now = self._clock()
        with self._lock:
            expired = [key for key, rec in self._records.items() if rec.expires_at < now]
            for key in expired:
                del self._records[key]
        for key in expired:
            logger.info("Swept expired OTP for %s", mask_phone(key))
        return len(expired)

    # ── Background sweeper ───────────────────────────────

    def start_sweeper(self) -> None:
        """Schedule the recurring sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(
            self._sweep_forever(), name="otp-sweeper"
        )
        self._sweeper.add_done_callback(self._report_sweeper_crash)
        logger.debug("OTP sweeper started (every %ss)", self._sweep_interval)

    async def stop_sweeper(self) -> None:
        """Cancel the sweeper task and wait for it to finish."""
        task, self._sweeper = self._sweeper, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("OTP sweeper stopped")

    def _report_sweeper_crash(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.critical("OTP sweeper died", exc_info=task.exception())
        self._on_sweeper_crash(task.exception())

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()


def terminate_process(exc: BaseException) -> None:
    """Send SIGTERM to this process so the server shuts down."""
    os.kill(os.getpid(), signal.SIGTERM)
