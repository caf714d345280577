"""
Secure wiping of secret-bearing buffers.

Python cannot scrub immutable ``bytes``; everything in OTPGuard that hands
secret material back to a caller therefore returns a ``bytearray`` which can
be passed to :func:`wipe`.
"""

import ctypes
from contextlib import contextmanager
from typing import Iterator, Union

WritableBuffer = Union[bytearray, memoryview]


def wipe(buffer: WritableBuffer) -> None:
    """
    Overwrite every byte of ``buffer`` with zero.

    The write goes through ``ctypes.memset`` on the buffer's own memory, so
    it cannot be skipped or redirected to a copy.

    Args:
        buffer: Writable, C-contiguous buffer (``bytearray``, writable
                ``memoryview``, ``array.array`` ...).

    Raises:
        TypeError: If ``buffer`` is read-only (e.g. ``bytes``).
    """
    with memoryview(buffer) as view:
        if view.readonly:
            raise TypeError(f"Cannot wipe read-only buffer of type {type(buffer).__name__}.")
        size = view.nbytes
    if size == 0:
        return
    window = (ctypes.c_char * size).from_buffer(buffer)
    try:
        ctypes.memset(ctypes.addressof(window), 0, size)
    finally:
        del window  # release the buffer export so the bytearray can resize again


@contextmanager
def wiping(buffer: WritableBuffer) -> Iterator[WritableBuffer]:
    """
    Yield ``buffer`` and wipe it on exit, even if the block raises.

    Example::

        with wiping(bytearray(secret)) as key:
            ...
    """
    try:
        yield buffer
    finally:
        wipe(buffer)
