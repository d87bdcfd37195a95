"""
Input Buffer — the whole carve input, resident and read-only.

1. Memory-mapped I/O (mmap, ACCESS_READ) so segments can borrow byte
   ranges without copying; the OS handles paging.
2. Fallback to a plain read() if mmap fails (empty files, pipes,
   character devices, 32-bit address space limits).
"""

import os
import mmap
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CarveError(RuntimeError):
    """Fatal carve failure (input unreadable, output directory unusable)."""


class InputBuffer:
    """
    Read-only view of one input file.

    Usage:
        with InputBuffer(path) as buf:
            result = scanner.scan(buf.data)
            writer.write(result)     # segments borrow buf.data
    """

    def __init__(self, path: str, use_mmap: bool = True):
        self.path = path
        self._fd = None
        self._mmap: Optional[mmap.mmap] = None
        self._data = b""

        try:
            self._fd = open(path, "rb")
            self._size = os.fstat(self._fd.fileno()).st_size
        except OSError as exc:
            self.close()
            raise CarveError(f"Cannot open input file {path}: {exc}") from exc

        if use_mmap and self._size > 0:
            self._try_mmap()

        if self._mmap is None:
            try:
                self._data = self._fd.read()
            except OSError as exc:
                self.close()
                raise CarveError(f"Cannot read input file {path}: {exc}") from exc
            self._size = len(self._data)
        else:
            self._data = self._mmap

    def _try_mmap(self):
        """Attempt to memory-map the input file."""
        try:
            self._mmap = mmap.mmap(
                self._fd.fileno(),
                0,  # Map entire file
                access=mmap.ACCESS_READ,
            )
            logger.debug(
                "mmap enabled: %d bytes (%.1f MB)",
                self._size, self._size / (1024 ** 2),
            )
        except (OSError, ValueError, OverflowError) as e:
            logger.debug("mmap unavailable (%s), using buffered read", e)
            self._mmap = None

    @property
    def data(self):
        return self._data

    @property
    def size(self) -> int:
        return self._size

    @property
    def using_mmap(self) -> bool:
        return self._mmap is not None

    def close(self):
        """Release mmap and file handle. Segments must not be used afterwards."""
        if self._mmap is not None:
            try:
                self._mmap.close()
            except BufferError:
                # A segment view is still alive; the map is freed with it
                logger.warning("Input map for %s still referenced at close", self.path)
            self._mmap = None
        self._data = b""
        if self._fd is not None:
            self._fd.close()
            self._fd = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
