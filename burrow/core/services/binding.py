"""
Bidirectional forwarding between two duplex streams.

A binding runs an upstream copy (local to remote) and a downstream copy
(remote to local) concurrently. Whichever direction ends first closes both
streams, which unblocks the other direction.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

from ..interfaces.streams import IDuplexStream
from .copier import CopyOutcome, CopyResult, copy_buffer

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Forwarding direction within a binding."""
    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"


@dataclass
class BindingResult:
    """Outcome of both directions of a binding."""
    upstream: CopyResult
    downstream: CopyResult
    finish_order: List[Direction] = field(default_factory=list)

    @property
    def error(self) -> Optional[BaseException]:
        """The first terminal error in finish order, if any."""
        results = {
            Direction.UPSTREAM: self.upstream,
            Direction.DOWNSTREAM: self.downstream,
        }
        for direction in self.finish_order:
            if results[direction].error is not None:
                return results[direction].error
        return None

    @property
    def cancelled(self) -> bool:
        return CopyOutcome.CANCELLED in (self.upstream.outcome, self.downstream.outcome)


class ForwardBinding:
    """
    Pair of streams forwarded in both directions.

    Each direction has its own cancellation event; teardown is shared and
    runs exactly once.
    """

    def __init__(self, local: IDuplexStream, remote: IDuplexStream,
                 buffer_size: int = 0,
                 cancel_upstream: Optional[asyncio.Event] = None,
                 cancel_downstream: Optional[asyncio.Event] = None) -> None:
        self._local = local
        self._remote = remote
        self._buffer_size = buffer_size
        self._cancel_upstream = cancel_upstream
        self._cancel_downstream = cancel_downstream
        self._closed = False
        self._finish_order: List[Direction] = []

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(self) -> BindingResult:
        """Forward until both directions end and return their results."""
        upstream, downstream = await asyncio.gather(
            self._pump(Direction.UPSTREAM, self._remote,
                       self._local, self._cancel_upstream),
            self._pump(Direction.DOWNSTREAM, self._local,
                       self._remote, self._cancel_downstream),
        )
        result = BindingResult(upstream, downstream, list(self._finish_order))
        if result.error is not None:
            logger.debug(f"Binding ended with error: {result.error}")
        return result

    async def _pump(self, direction: Direction, dst: IDuplexStream,
                    src: IDuplexStream, cancel: Optional[asyncio.Event]) -> CopyResult:
        try:
            result = await copy_buffer(dst, src, self._buffer_size, cancel)
            if result.error is not None and self._closed:
                # Peer direction already closed both streams
                result = CopyResult(result.written, CopyOutcome.COMPLETED)
            self._finish_order.append(direction)
            logger.debug(
                f"{direction.value} finished: {result.outcome.value}, {result.written} bytes")
            return result
        finally:
            await self._close_both()

    async def _close_both(self) -> None:
        if self._closed:
            return
        self._closed = True
        for stream in (self._local, self._remote):
            try:
                await stream.close()
            except Exception as e:
                logger.warning(f"Error closing stream: {e}")


async def bind(local: IDuplexStream, remote: IDuplexStream, buffer_size: int = 0,
               cancel_upstream: Optional[asyncio.Event] = None,
               cancel_downstream: Optional[asyncio.Event] = None) -> BindingResult:
    """
    Forward local and remote in both directions until both directions end.

    Both streams are closed on every exit path.
    """
    binding = ForwardBinding(local, remote, buffer_size,
                             cancel_upstream, cancel_downstream)
    return await binding.run()


_background_tasks: Set["asyncio.Task[BindingResult]"] = set()


def spawn_binding(local: IDuplexStream, remote: IDuplexStream, buffer_size: int = 0,
                  cancel_upstream: Optional[asyncio.Event] = None,
                  cancel_downstream: Optional[asyncio.Event] = None) -> "asyncio.Task[BindingResult]":
    """Start a binding in the background. Errors are logged only."""
    task = asyncio.ensure_future(
        bind(local, remote, buffer_size, cancel_upstream, cancel_downstream))
    _background_tasks.add(task)
    task.add_done_callback(_on_binding_done)
    return task


def _on_binding_done(task: "asyncio.Task[BindingResult]") -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background binding failed: {exc}")
        return
    result = task.result()
    if result.error is not None:
        logger.warning(f"Background binding ended with error: {result.error}")
