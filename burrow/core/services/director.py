"""
Director: wires accepted connections to dialed targets.

The director owns no transport. It takes an IDialer (a Connection for local
ingress, a LocalDialer for remote ingress) and, for each inbound stream,
dials the target and starts a ForwardBinding.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Set, Union

from ..interfaces.streams import IDialer, IDuplexStream, IListener
from .binding import BindingResult, bind

logger = logging.getLogger(__name__)

# May return a replacement stream (TLS, proxy header, ...); None keeps the original
NewConnectionHook = Callable[
    [IDuplexStream],
    Union[Optional[IDuplexStream], Awaitable[Optional[IDuplexStream]]]
]


class Director:
    """Forwards streams from a listener or a single stream to a target address."""

    def __init__(self, dialer: IDialer,
                 on_new_connection: Optional[NewConnectionHook] = None) -> None:
        self._dialer = dialer
        self._on_new_connection = on_new_connection
        self._tasks: Set["asyncio.Task[Any]"] = set()

    @property
    def active_bindings(self) -> int:
        return len(self._tasks)

    async def bind_once(self, local: IDuplexStream, network: str, address: str,
                        buffer_size: int = 0,
                        cancel_upstream: Optional[asyncio.Event] = None,
                        cancel_downstream: Optional[asyncio.Event] = None) -> BindingResult:
        """
        Dial the target and forward it with local until both directions end.

        If dialing fails the error is raised and local is left open.
        """
        remote = await self._dialer.dial(network, address)
        logger.debug(f"Dialed {network}://{address}")
        return await bind(local, remote, buffer_size, cancel_upstream, cancel_downstream)

    async def serve_listener(self, listener: IListener, network: str, address: str,
                             buffer_size: int = 0,
                             cancel: Optional[asyncio.Event] = None) -> int:
        """
        Accept connections and forward each one to the target.

        The loop ends when cancel is set (checked before every accept) or on
        the first accept failure. The listener is always closed on return.
        cancel is also handed to every spawned binding, so setting it stops
        in-flight forwards at their next read.

        Returns:
            Number of connections accepted
        """
        accepted = 0
        try:
            while True:
                if cancel is not None and cancel.is_set():
                    logger.info(f"Listener loop for {network}://{address} cancelled")
                    break

                try:
                    local = await listener.accept()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.info(f"Listener loop for {network}://{address} stopped: {e}")
                    break

                accepted += 1
                stream = await self._apply_hook(local)
                if stream is None:
                    continue

                self._spawn(self._forward(stream, network, address, buffer_size, cancel))
        finally:
            try:
                await listener.close()
            except Exception as e:
                logger.warning(f"Error closing listener: {e}")

        return accepted

    async def wait_bindings(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every forwarding task spawned so far.

        Returns:
            False if timeout expired with bindings still running
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            _, pending = await asyncio.wait(list(self._tasks), timeout=remaining)
            if pending and remaining is not None and loop.time() >= deadline:
                return False
        return True

    async def _apply_hook(self, local: IDuplexStream) -> Optional[IDuplexStream]:
        """Run the hook; returns the stream to forward, or None if it was dropped."""
        if self._on_new_connection is None:
            return local
        try:
            result = self._on_new_connection(local)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning(f"New connection hook failed, dropping connection: {e}")
            await _close_quietly(local)
            return None
        return local if result is None else result

    async def _forward(self, local: IDuplexStream, network: str, address: str,
                       buffer_size: int, cancel: Optional[asyncio.Event] = None) -> None:
        try:
            remote = await self._dialer.dial(network, address)
        except Exception as e:
            logger.error(f"Failed to dial {network}://{address}: {e}")
            await _close_quietly(local)
            return

        result = await bind(local, remote, buffer_size, cancel, cancel)
        if result.error is not None:
            logger.warning(f"Forward to {network}://{address} ended with error: {result.error}")

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


async def _close_quietly(stream: IDuplexStream) -> None:
    try:
        await stream.close()
    except Exception as e:
        logger.debug(f"Error closing stream: {e}")
