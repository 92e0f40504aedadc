"""
Session Control
================

In-memory session store with automatic expiration.

Security Features:
- Cryptographically random 1024-bit session tokens
- Null (all-zero) token is never valid
- Expiry re-checked on every lookup, not only by the sweep
- Background sweep evicts expired sessions and backs off under load
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Final, Optional, Union

from sessionauth.core.concurrency import ReadWriteLock
from sessionauth.core.config import (
    DEFAULT_SESSION_TTL_SECONDS,
    DEFAULT_SWEEP_BACKOFF_FACTOR,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
)
from sessionauth.core.crypto.entropy import (
    SESSION_TOKEN_LENGTH,
    RandomTokenGenerator,
    is_null_token,
)
from sessionauth.core.errors import EntropyError, SessionNotFoundError

if TYPE_CHECKING:
    from sessionauth.core.config import AuthConfig

Duration = Union[timedelta, int, float]
Clock = Callable[[], datetime]
TokenSource = Callable[[], bytes]

DEFAULT_SESSION_TTL: Final[timedelta] = timedelta(seconds=DEFAULT_SESSION_TTL_SECONDS)
DEFAULT_SWEEP_INTERVAL: Final[timedelta] = timedelta(seconds=DEFAULT_SWEEP_INTERVAL_SECONDS)
# A source that keeps repeating live tokens is broken, not unlucky
MAX_MINT_ATTEMPTS: Final[int] = 16

logger = logging.getLogger("sessionauth.sessions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_timedelta(value: Duration, name: str) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a timedelta or a number of seconds")
    return timedelta(seconds=value)


def _is_expired(expiry: datetime, now: datetime) -> bool:
    return expiry <= now


@dataclass(frozen=True, slots=True)
class SweepResult:
    """
    Outcome of one sweep pass.

    Attributes:
        examined: Records inspected before finishing or running out of time
        removed: Expired records evicted
        completed: False if the time budget ran out mid-walk
        interval: Sweep interval in effect after this pass
        skipped: True if another sweep was already running
    """
    examined: int
    removed: int
    completed: bool
    interval: timedelta
    skipped: bool = False


class SessionStore:
    """
    Thread-safe token -> expiry store with a background sweeper.

    Usage:
        store = SessionStore(default_ttl=timedelta(days=30))

        # After a successful vault.authenticate(...)
        token = store.new_session()

        # On each request
        if store.has_session(token):
            ...

        # Logout
        store.delete(token)

        # Shutdown
        store.stop()

    Lifecycle of a token: minted -> live -> (extended)* -> expired or
    deleted. Expired and deleted tokens look the same to callers.

    Security Notes:
        - Tokens never leave the store except as the return value of
          new_session()/refresh(); they are never logged
        - Extension and sweep eviction hold the same write lock, so a
          token extended before the sweep reaches it is never evicted
    """

    __slots__ = (
        "_sessions", "_lock", "_clock", "_token_source", "_default_ttl",
        "_interval", "_interval_lock", "_sweep_budget", "_backoff_factor",
        "_sweep_lock", "_scheduler_lock", "_thread", "_stop_event",
    )

    def __init__(
        self,
        default_ttl: Duration = DEFAULT_SESSION_TTL,
        sweep_interval: Duration = DEFAULT_SWEEP_INTERVAL,
        *,
        sweep_budget: Optional[Duration] = None,
        backoff_factor: float = DEFAULT_SWEEP_BACKOFF_FACTOR,
        token_length: int = SESSION_TOKEN_LENGTH,
        token_source: Optional[TokenSource] = None,
        clock: Optional[Clock] = None,
        autostart: bool = True,
    ) -> None:
        """
        Initialize the session store.

        Args:
            default_ttl: Lifetime of a new session (default: 30 days)
            sweep_interval: Time between sweeps (default: 10 seconds)
            sweep_budget: Time limit for one sweep (default: the current
                sweep interval, so it grows with backoff)
            backoff_factor: Interval multiplier when a sweep overruns
            token_length: Token size in bytes for the default generator
            token_source: Callable returning new tokens (tests use this
                for deterministic values)
            clock: Callable returning the current aware UTC datetime
            autostart: Start the background sweeper immediately
        """
        self._default_ttl = self._positive(default_ttl, "default_ttl")
        self._interval = self._positive(sweep_interval, "sweep_interval")
        self._sweep_budget = (
            None if sweep_budget is None else _to_timedelta(sweep_budget, "sweep_budget")
        )
        if backoff_factor <= 1:
            raise ValueError("backoff_factor must be greater than 1")
        self._backoff_factor = backoff_factor
        self._token_source = token_source or RandomTokenGenerator(token_length)
        self._clock = clock or _utcnow

        self._sessions: dict[bytes, datetime] = {}
        self._lock = ReadWriteLock()
        self._interval_lock = threading.Lock()
        self._sweep_lock = threading.Lock()
        self._scheduler_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

        if autostart:
            self.start()

    @classmethod
    def from_config(cls, config: AuthConfig, **kwargs) -> SessionStore:
        """Create a store from the ``sessions`` section of ``config``."""
        sessions = config.sessions
        return cls(
            default_ttl=sessions.default_ttl,
            sweep_interval=sessions.sweep_interval,
            backoff_factor=sessions.sweep_backoff_factor,
            token_length=sessions.token_length,
            **kwargs,
        )

    @staticmethod
    def _positive(value: Duration, name: str) -> timedelta:
        delta = _to_timedelta(value, name)
        if delta <= timedelta(0):
            raise ValueError(f"{name} must be positive")
        return delta

    # ------------------------------------------------------------------
    # Foreground operations
    # ------------------------------------------------------------------

    def new_session(self, ttl: Optional[Duration] = None) -> bytes:
        """
        Mint a new session token.

        Args:
            ttl: Session lifetime (default: the store's default TTL)

        Returns:
            The new token (caller must securely store/transmit this)

        Raises:
            EntropyError: If the random source fails or keeps producing
                tokens that are null or already live
        """
        lifetime = self._default_ttl if ttl is None else self._positive(ttl, "ttl")

        for _ in range(MAX_MINT_ATTEMPTS):
            token = bytes(self._token_source())
            if not token or is_null_token(token):
                continue
            with self._lock.write():
                now = self._clock()
                existing = self._sessions.get(token)
                if existing is not None and not _is_expired(existing, now):
                    continue
                self._sessions[token] = now + lifetime
            return token

        logger.critical("Token source produced no usable token in %d attempts", MAX_MINT_ATTEMPTS)
        raise EntropyError(
            f"No unique session token after {MAX_MINT_ATTEMPTS} attempts"
        )

    def lookup(self, token: bytes) -> Optional[datetime]:
        """
        Return the expiry of a live session, or None.

        The null token, unknown tokens and tokens whose expiry has
        passed (even if not yet swept) all return None.
        """
        if not self._is_candidate(token):
            return None
        with self._lock.read():
            expiry = self._sessions.get(bytes(token))
        if expiry is None or _is_expired(expiry, self._clock()):
            return None
        return expiry

    def has_session(self, token: bytes) -> bool:
        """Check whether ``token`` identifies a live session."""
        return self.lookup(token) is not None

    def expire_in(self, token: bytes, duration: Duration) -> None:
        """
        Set a live session to expire ``duration`` from now.

        Raises:
            SessionNotFoundError: If the session is absent or expired
        """
        delta = _to_timedelta(duration, "duration")
        with self._lock.write():
            self._require_live_locked(token)
            self._sessions[bytes(token)] = self._clock() + delta

    def expire_at(self, token: bytes, when: datetime) -> None:
        """
        Set a live session to expire at ``when``.

        Raises:
            ValueError: If ``when`` is a naive datetime
            SessionNotFoundError: If the session is absent or expired
        """
        if when.tzinfo is None:
            raise ValueError("Expiry time must be timezone-aware")
        with self._lock.write():
            self._require_live_locked(token)
            self._sessions[bytes(token)] = when

    def delete(self, token: bytes) -> None:
        """Remove a session. Deleting an unknown token is not an error."""
        if not isinstance(token, (bytes, bytearray)):
            return
        with self._lock.write():
            self._sessions.pop(bytes(token), None)

    delete_session = delete

    def refresh(self, token: bytes, ttl: Optional[Duration] = None) -> bytes:
        """
        Issue a replacement token and revoke the old one.

        The replacement is minted first, so a failed mint leaves the
        old session in place.

        Raises:
            SessionNotFoundError: If the session is absent or expired
                (including when it is deleted while the replacement is
                being minted; the replacement is discarded then)
            EntropyError: If no replacement could be minted
        """
        with self._lock.read():
            self._require_live_locked(token)
        replacement = self.new_session(ttl)

        with self._lock.write():
            try:
                self._require_live_locked(token)
            except SessionNotFoundError:
                self._sessions.pop(replacement, None)
                raise
            del self._sessions[bytes(token)]
        return replacement

    def active_count(self) -> int:
        """Number of sessions that have not yet expired."""
        with self._lock.read():
            expiries = list(self._sessions.values())
        now = self._clock()
        return sum(1 for expiry in expiries if not _is_expired(expiry, now))

    def __len__(self) -> int:
        """Number of stored records, including expired ones not yet swept."""
        with self._lock.read():
            return len(self._sessions)

    def __contains__(self, token: object) -> bool:
        return isinstance(token, (bytes, bytearray)) and self.has_session(token)

    def __repr__(self) -> str:
        return (
            f"SessionStore(sessions={len(self)}, "
            f"sweep_interval={self.sweep_interval.total_seconds()}s, "
            f"running={self.is_running})"
        )

    @staticmethod
    def _is_candidate(token: object) -> bool:
        return (
            isinstance(token, (bytes, bytearray))
            and len(token) > 0
            and not is_null_token(bytes(token))
        )

    def _require_live_locked(self, token: bytes) -> None:
        if not self._is_candidate(token):
            raise SessionNotFoundError()
        expiry = self._sessions.get(bytes(token))
        if expiry is None:
            raise SessionNotFoundError()
        if _is_expired(expiry, self._clock()):
            raise SessionNotFoundError("Session has expired")

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    @property
    def sweep_interval(self) -> timedelta:
        with self._interval_lock:
            return self._interval

    def sweep(self, budget: Optional[Duration] = None) -> SweepResult:
        """
        Evict expired sessions within a time budget.

        Only one sweep runs at a time; a call made while another sweep
        is in progress returns immediately with ``skipped=True``. If the
        budget runs out before every record has been examined, the sweep
        interval is multiplied by the backoff factor.

        The walk runs over a copy of the map taken under the read lock.
        That copy is a single pass that the budget cannot interrupt; its
        time is charged to the budget, so a map large enough to make the
        copy itself slow still triggers backoff on the next pass.

        Args:
            budget: Time limit for this pass (default: the configured
                sweep budget, else the current sweep interval)

        Returns:
            SweepResult describing the pass
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.debug("Sweep already in progress; skipping")
            return SweepResult(0, 0, False, self.sweep_interval, skipped=True)

        try:
            if budget is not None:
                limit = _to_timedelta(budget, "budget")
            elif self._sweep_budget is not None:
                limit = self._sweep_budget
            else:
                limit = self.sweep_interval
            deadline = time.monotonic() + limit.total_seconds()

            with self._lock.read():
                snapshot = list(self._sessions.items())

            examined = removed = 0
            completed = True
            for token, expiry in snapshot:
                if time.monotonic() >= deadline:
                    completed = False
                    break
                examined += 1
                if not _is_expired(expiry, self._clock()):
                    continue
                with self._lock.write():
                    # An extension since the snapshot wins over eviction
                    current = self._sessions.get(token)
                    if current is not None and _is_expired(current, self._clock()):
                        del self._sessions[token]
                        removed += 1

            if completed:
                interval = self.sweep_interval
            else:
                interval = self._back_off()
                logger.warning(
                    "Took too long to sweep expired sessions (%d of %d examined); "
                    "raising sweep interval to %.1f seconds",
                    examined, len(snapshot), interval.total_seconds(),
                )

            if removed:
                logger.debug("Swept %d expired session(s)", removed)
            return SweepResult(examined, removed, completed, interval)
        finally:
            self._sweep_lock.release()

    def _back_off(self) -> timedelta:
        with self._interval_lock:
            self._interval = self._interval * self._backoff_factor
            return self._interval

    # ------------------------------------------------------------------
    # Background sweeper lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """Check whether the background sweeper is active."""
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        """Start the background sweeper if it is not running."""
        with self._scheduler_lock:
            if self._thread is None:
                self._start_locked()

    def stop(self) -> None:
        """
        Stop the background sweeper and wait for it to exit.

        Any sweep in progress finishes first (bounded by its budget).
        """
        with self._scheduler_lock:
            self._stop_locked()

    close = stop

    def set_sweep_interval(self, interval: Duration) -> None:
        """
        Change the sweep cadence.

        The running sweeper is fully stopped before the new one starts,
        so two sweepers never overlap.
        """
        new_interval = self._positive(interval, "interval")
        with self._scheduler_lock:
            was_running = self._thread is not None
            self._stop_locked()
            with self._interval_lock:
                self._interval = new_interval
            if was_running:
                self._start_locked()
        logger.info("Sweep interval set to %.1f seconds", new_interval.total_seconds())

    def _start_locked(self) -> None:
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._sweep_loop,
            args=(stop_event,),
            daemon=True,
            name="SessionSweeper",
        )
        self._stop_event = stop_event
        self._thread = thread
        thread.start()
        logger.debug("Session sweeper started")

    def _stop_locked(self) -> None:
        thread, stop_event = self._thread, self._stop_event
        if thread is None or stop_event is None:
            return
        if thread is threading.current_thread():
            raise RuntimeError("The session sweeper cannot stop itself")
        stop_event.set()
        thread.join()
        self._thread = None
        self._stop_event = None
        logger.debug("Session sweeper stopped")

    def _sweep_loop(self, stop_event: threading.Event) -> None:
        """Main sweeper loop; the interval is re-read every tick."""
        while not stop_event.wait(self.sweep_interval.total_seconds()):
            try:
                self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    def __enter__(self) -> SessionStore:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
