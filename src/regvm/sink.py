"""Output sink for the register VM.

A sink is anything with a ``write(bytes)`` method that returns the number of
bytes accepted: ``sys.stdout.buffer``, an open binary file, a raw unbuffered
stream, or an ``io.BytesIO`` in tests. The machine never holds a sink itself;
one is passed into every step or run call.
"""

import sys
from typing import BinaryIO, Optional, Protocol

from .errors import WriteError


class Sink(Protocol):
    def write(self, data: bytes) -> Optional[int]: ...


def default_sink() -> BinaryIO:
    """The process's standard output byte stream."""
    return sys.stdout.buffer


def emit(sink: Sink, data: bytes) -> None:
    """Write all of `data` to `sink`.

    Short writes are retried with the remaining bytes until everything has
    been accepted.

    Raises:
        WriteError: If the sink raises OSError, ValueError for a closed
            stream, or accepts nothing (returns 0, or None for a
            non-blocking stream that would block)
    """
    view = memoryview(data)
    while view:
        try:
            written = sink.write(view)
        except (OSError, ValueError) as e:
            raise WriteError(f"Output sink rejected {len(view)} bytes: {e}") from e
        if not written:
            raise WriteError(f"Output sink accepted none of {len(view)} bytes")
        view = view[written:]
