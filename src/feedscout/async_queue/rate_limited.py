"""Rate-limited in-process queue for outbound LLM calls."""

import asyncio
import random
import string
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, Generic, Optional, Set, TypeVar

from ..config.settings import settings
from ..utils.logging import get_logger
from ..utils.rate_limit import SlidingWindowRateLimiter

logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
SleepFunc = Callable[[float], Awaitable[Any]]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _entry_id(owner_id: str) -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{owner_id}-{int(time.time() * 1000)}-{suffix}"


def calculate_backoff(retry_count: int, base: float = 1.0, max_delay: float = 30.0) -> float:
    """Delay before attempt ``retry_count + 1``: base, 2*base, 4*base, ... capped."""
    if retry_count < 1:
        retry_count = 1
    # Large exponents only ever hit the cap.
    return min(base * (2 ** min(retry_count - 1, 20)), max_delay)


@dataclass
class QueueEntry(Generic[T]):
    """A deferred operation waiting for an admission slot."""

    owner_id: str
    operation: Operation
    future: "asyncio.Future[T]"
    max_retries: int = 3
    retry_count: int = 0
    id: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.id:
            self.id = _entry_id(self.owner_id)

    def log_fields(self) -> Dict[str, Any]:
        return {"entry_id": self.id, "owner_id": self.owner_id, "retry_count": self.retry_count}


@dataclass
class QueueStatus:
    """Snapshot returned by :meth:`RateLimitedQueue.get_queue_status`."""

    queue_length: int
    processing: bool
    requests_in_window: int
    can_make_request: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queue_length": self.queue_length,
            "processing": self.processing,
            "requests_in_window": self.requests_in_window,
            "can_make_request": self.can_make_request,
        }


class RateLimitedQueue:
    """
    Serialize asynchronous operations under a sliding request budget.

    A single drain loop pops entries in FIFO order and starts at most
    ``max_requests`` of them in any trailing ``window`` seconds. A failed
    entry is retried with exponential backoff: after the delay it goes back
    to the head of the list, ahead of work that has not been tried yet.
    Once its retries are exhausted the caller receives the last exception.

    The queue is meant to be built once by the application's composition
    root and shared by reference.

    Example:
        >>> queue = RateLimitedQueue(max_requests=60)
        >>> result = await queue.add("agent-42", lambda: client.generate(prompt))
    """

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window: Optional[float] = None,
        safety_buffer: Optional[float] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        default_max_retries: Optional[int] = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize queue.

        Args:
            max_requests: Operation starts allowed per window
            window: Window length in seconds
            safety_buffer: Extra seconds slept after a full window frees up
            backoff_base: First retry delay in seconds
            backoff_max: Upper bound for any retry delay
            default_max_retries: Ceiling used when ``add`` gets none
            sleep: Coroutine function used for every wait
            clock: Monotonic time source in seconds
        """
        self.limiter = SlidingWindowRateLimiter(
            max_requests or settings.llm_max_requests_per_minute,
            window or settings.llm_request_window,
            clock=clock,
        )
        self.safety_buffer = settings.llm_safety_buffer if safety_buffer is None else safety_buffer
        self.backoff_base = backoff_base or settings.llm_backoff_base
        self.backoff_max = backoff_max or settings.llm_backoff_max
        self.default_max_retries = (
            settings.llm_max_retries if default_max_retries is None else default_max_retries
        )
        self._sleep = sleep
        self._clock = clock

        self._entries: Deque[QueueEntry] = deque()
        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._retry_tasks: Set[asyncio.Task] = set()

    async def add(
        self,
        owner_id: str,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
    ) -> T:
        """
        Queue an operation and wait for its result.

        Args:
            owner_id: Caller tag, used for ids and logging only
            operation: Zero-argument coroutine function
            max_retries: Automatic retries after the first attempt

        Returns:
            Whatever the operation returns

        Raises:
            Exception: The last error once retries are exhausted
        """
        if not owner_id:
            raise ValueError("owner_id must be a non-empty string")
        if max_retries is None:
            max_retries = self.default_max_retries
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        entry = QueueEntry(
            owner_id=owner_id,
            operation=operation,
            future=future,
            max_retries=max_retries,
        )
        self._entries.append(entry)
        logger.debug(
            f"Added item to LLM queue: {entry.id} for owner: {owner_id}", extra=entry.log_fields()
        )

        self._ensure_draining()
        return await future

    def get_queue_status(self) -> QueueStatus:
        return QueueStatus(
            queue_length=len(self._entries),
            processing=self._processing,
            requests_in_window=self.limiter.in_window,
            can_make_request=self.limiter.can_acquire(),
        )

    async def join(self) -> None:
        """Wait until no entry is queued, backing off or executing."""
        while self._entries or self._retry_tasks or self._processing:
            if self._retry_tasks:
                await asyncio.gather(*list(self._retry_tasks), return_exceptions=True)
            elif self._drain_task is not None:
                await asyncio.gather(self._drain_task, return_exceptions=True)
            else:
                await asyncio.sleep(0)

    def _ensure_draining(self) -> None:
        if self._processing:
            return
        self._processing = True
        self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._entries:
                if not self.limiter.can_acquire():
                    wait = self.limiter.time_until_available() + self.safety_buffer
                    logger.debug(f"Rate limit reached, waiting {wait:.2f}s")
                    await self._sleep(wait)
                    continue

                entry = self._entries.popleft()
                await self._execute(entry)
        finally:
            self._processing = False

    async def _execute(self, entry: QueueEntry) -> None:
        logger.debug(f"Processing queue item: {entry.id}")
        self.limiter.record()
        started = self._clock()

        try:
            result = await entry.operation()
        except Exception as e:
            self._on_failure(entry, e)
            return
        except BaseException as e:
            # The entry is already off the list; settle its caller before unwinding.
            if not entry.future.done():
                if isinstance(e, asyncio.CancelledError):
                    entry.future.cancel()
                else:
                    entry.future.set_exception(e)
            raise

        logger.debug(f"Queue item {entry.id} completed in {self._clock() - started:.3f}s")
        if not entry.future.done():
            entry.future.set_result(result)

    def _on_failure(self, entry: QueueEntry, error: Exception) -> None:
        entry.retry_count += 1

        if entry.retry_count <= entry.max_retries:
            delay = calculate_backoff(entry.retry_count, self.backoff_base, self.backoff_max)
            logger.warning(
                f"Queue item {entry.id} failed (attempt {entry.retry_count}/{entry.max_retries}), "
                f"retrying in {delay:.1f}s: {str(error)[:100]}",
                extra=entry.log_fields(),
            )
            task = asyncio.create_task(self._requeue_after(entry, delay))
            self._retry_tasks.add(task)
            task.add_done_callback(self._retry_tasks.discard)
            return

        logger.error(
            f"Queue item {entry.id} failed after {entry.max_retries} retries: {error}",
            extra=entry.log_fields(),
        )
        if not entry.future.done():
            entry.future.set_exception(error)

    async def _requeue_after(self, entry: QueueEntry, delay: float) -> None:
        await self._sleep(delay)
        self._entries.appendleft(entry)
        self._ensure_draining()
