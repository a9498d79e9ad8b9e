"""
Cancellable byte copy loop.

copy_buffer moves bytes from a reader to a writer until end of input, an
error, or a cancellation signal, and reports how far it got.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..exceptions import InvalidWriteError, ShortWriteError
from ..interfaces.streams import IReader, IWriter

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 32 * 1024


class CopyOutcome(Enum):
    """How a copy loop ended."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class CopyResult:
    """Bytes written and terminal outcome of a copy loop."""
    written: int
    outcome: CopyOutcome
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def copy_buffer(dst: IWriter, src: IReader, buffer_size: int = 0,
                      cancel: Optional[asyncio.Event] = None) -> CopyResult:
    """
    Copy from src to dst until end of input, failure or cancellation.

    Args:
        dst: Destination writer
        src: Source reader
        buffer_size: Read chunk size, 32 KiB when zero or negative
        cancel: Event checked before every read

    Returns:
        CopyResult with the number of bytes written. Cancellation is reported
        as CopyOutcome.CANCELLED and carries no error.
    """
    if buffer_size <= 0:
        buffer_size = DEFAULT_BUFFER_SIZE

    written = 0
    while True:
        if cancel is not None and cancel.is_set():
            return CopyResult(written, CopyOutcome.CANCELLED)

        try:
            chunk = await src.read(buffer_size)
        except EOFError:
            return CopyResult(written, CopyOutcome.COMPLETED)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return CopyResult(written, CopyOutcome.FAILED, e)

        if not chunk:
            return CopyResult(written, CopyOutcome.COMPLETED)

        try:
            n = await dst.write(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return CopyResult(written, CopyOutcome.FAILED, e)

        if not isinstance(n, int) or n < 0 or n > len(chunk):
            return CopyResult(written, CopyOutcome.FAILED,
                              InvalidWriteError(len(chunk), n))

        written += n
        if n != len(chunk):
            return CopyResult(written, CopyOutcome.FAILED,
                              ShortWriteError(len(chunk), n))
