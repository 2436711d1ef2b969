"""Cursor-based polling of the ``/poll`` message endpoint.

Two loops share one dedup gate:

* the forward loop asks for messages after ``last_id`` (or the newest page
  when there is no cursor yet) every ``poll_frequency`` seconds;
* the backward loop asks for messages before ``oldest_id`` every
  ``backfill_interval`` seconds to backfill history, and does nothing until
  a forward poll has established ``oldest_id``.

Cursors only move after a successful, parsed response. Any transport
failure skips the cycle and leaves them untouched.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable

from probemaster._constants import POLL_ENDPOINT
from probemaster._transport import HttpTransport
from probemaster.config import ProbeMasterConfig
from probemaster.exceptions import ProbeMasterAuthorizationError, ProbeMasterTransportError
from probemaster.ingestion.wire import convert_poll_data
from probemaster.models.poll import PollBatch, PollMessage

_logger = logging.getLogger(__name__)

Deliver = Callable[[str, PollMessage], Awaitable[None]]


def compare_ids(a: str, b: str) -> int:
    """Order two message ids: numerically when both are integers, else as strings."""
    try:
        left: int | str = int(a)
        right: int | str = int(b)
    except ValueError:
        left, right = a, b
    return (left > right) - (left < right)  # type: ignore[operator]


class SeenIds:
    """Bounded insertion-ordered set of delivered message ids."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, message_id: str) -> bool:
        """Record ``message_id``; return ``False`` if it was already present."""
        if message_id in self._ids:
            return False
        self._ids[message_id] = None
        while len(self._ids) > self._capacity:
            self._ids.popitem(last=False)
        return True

    def clear(self) -> None:
        self._ids.clear()


class PollCursorManager:
    """Forward and backward poll loops feeding ``deliver``.

    Parameters
    ----------
    transport : HttpTransport
        Performs authenticated ``GET`` requests.
    deliver : callable
        ``await deliver(line, message)`` for every newly seen message,
        where ``line`` is the message body translated into the device
        line grammar.
    config : ProbeMasterConfig
        Intervals, page length and seen-set capacity.
    clock : callable, optional
        Returns epoch seconds; stamps :attr:`last_success`.
    """

    def __init__(
        self,
        transport: HttpTransport,
        deliver: Deliver,
        *,
        config: ProbeMasterConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transport = transport
        self._deliver = deliver
        self._config = config
        self._clock = clock
        self._seen = SeenIds(config.seen_capacity)
        self._simulated = config.simulated
        self.last_id: str | None = None
        self.oldest_id: str | None = None
        self.last_success: float | None = None
        self._forward_task: asyncio.Task[None] | None = None
        self._backward_task: asyncio.Task[None] | None = None

    @property
    def seen(self) -> SeenIds:
        return self._seen

    @property
    def running(self) -> bool:
        return any(task is not None and not task.done() for task in (self._forward_task, self._backward_task))

    @property
    def simulated(self) -> bool:
        return self._simulated

    # ------------------------------------------------------------------
    # Single cycles
    # ------------------------------------------------------------------

    async def poll_forward(self) -> int:
        """Run one forward cycle; return the number of delivered messages."""
        params = {"length": str(self._config.page_length)}
        if self.last_id is not None:
            params["lastId"] = self.last_id
        batch = await self._fetch(params)
        if batch is None:
            return 0
        return await self._process(batch)

    async def poll_backward(self) -> int:
        """Run one backfill cycle; a no-op until ``oldest_id`` is known."""
        if self.oldest_id is None:
            return 0
        batch = await self._fetch({"beforeId": self.oldest_id, "length": str(self._config.page_length)})
        if batch is None:
            return 0
        return await self._process(batch)

    async def _fetch(self, params: dict[str, str]) -> PollBatch | None:
        try:
            payload = await self._transport.get_json(POLL_ENDPOINT, params=params)
        except ProbeMasterAuthorizationError:
            _logger.warning("Poll rejected: unauthorized (check the access key)")
            return None
        except ProbeMasterTransportError as exc:
            _logger.warning("Poll failed: %s", exc)
            return None
        self.last_success = self._clock()
        return PollBatch.from_payload(payload)

    async def _process(self, batch: PollBatch) -> int:
        delivered = 0
        for message in batch.messages:
            # The seen set is consulted before any parsing work.
            if not message.id or not self._seen.add(message.id):
                continue
            self._advance_cursors(message.id)
            line = convert_poll_data(message.data, message.id)
            try:
                await self._deliver(line, message)
            except Exception:
                _logger.warning("Delivery of poll message %s failed", message.id, exc_info=True)
                continue
            delivered += 1
        if batch.messages:
            _logger.debug(
                "Poll batch: %d messages, %d delivered, last_id=%s oldest_id=%s",
                len(batch.messages),
                delivered,
                self.last_id,
                self.oldest_id,
            )
        return delivered

    def _advance_cursors(self, message_id: str) -> None:
        if self.last_id is None or compare_ids(message_id, self.last_id) > 0:
            self.last_id = message_id
        if self.oldest_id is None or compare_ids(message_id, self.oldest_id) < 0:
            self.oldest_id = message_id

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Launch both loops. Does nothing in simulated mode or when already running."""
        if self._simulated:
            _logger.debug("Simulated mode: polling not started")
            return
        if self.running:
            return
        self._forward_task = asyncio.create_task(self._forward_loop(), name="probemaster-poll-forward")
        self._backward_task = asyncio.create_task(self._backward_loop(), name="probemaster-poll-backward")

    async def stop(self) -> None:
        """Cancel both loops immediately and wait for them to finish."""
        tasks = [task for task in (self._forward_task, self._backward_task) if task is not None]
        self._forward_task = None
        self._backward_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def set_simulated(self, enabled: bool) -> None:
        """Entering simulated mode cancels both loops."""
        self._simulated = enabled
        if enabled:
            await self.stop()

    def reset(self) -> None:
        """Forget cursors and seen ids."""
        self.last_id = None
        self.oldest_id = None
        self._seen.clear()

    async def _forward_loop(self) -> None:
        while True:
            try:
                await self.poll_forward()
            except Exception:
                _logger.exception("Forward poll cycle crashed")
            await asyncio.sleep(self._config.poll_frequency)

    async def _backward_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.backfill_interval)
            try:
                await self.poll_backward()
            except Exception:
                _logger.exception("Backward poll cycle crashed")
