# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Sequential access to a sparse firmware image.

The programmer walks the image once in increasing address order, so the
image is exposed as a cursor over the addresses that actually hold data.
"""

from pathlib import Path
from typing import Dict, Mapping, Optional

from intelhex import IntelHex, IntelHexError


class ImageFormatError(Exception):
    """The image file could not be read."""
    pass


class ImageCursor:
    """
    Forward-only cursor over (byte address, value) pairs.

    Example:
        cursor = ImageCursor.from_hex_file("firmware.hex")
        while cursor.current_address() is not None:
            value = cursor.get_data()
            cursor.increment_address()
    """

    def __init__(self, data: Mapping[int, int]):
        """
        Args:
            data: Byte values by byte address
        """
        if not data:
            raise ImageFormatError("image contains no data")
        self._data: Dict[int, int] = dict(data)
        self._addresses = sorted(self._data)
        self._pos = 0

    @classmethod
    def from_hex_file(cls, path) -> "ImageCursor":
        """
        Load an Intel HEX file.

        Raises:
            ImageFormatError: If the file is missing or malformed
        """
        ih = IntelHex()
        try:
            ih.loadhex(str(Path(path)))
        except (IntelHexError, OSError) as e:
            raise ImageFormatError(f"unable to read {path}: {e}") from e
        return cls({addr: ih[addr] for addr in ih.addresses()})

    def start_address(self) -> int:
        """Lowest address holding data."""
        return self._addresses[0]

    def end_address(self) -> int:
        """Highest address holding data (inclusive)."""
        return self._addresses[-1]

    def begin(self):
        """Move back to the first address."""
        self._pos = 0

    def current_address(self) -> Optional[int]:
        """Address under the cursor, None when exhausted."""
        if self._pos >= len(self._addresses):
            return None
        return self._addresses[self._pos]

    def get_data(self) -> Optional[int]:
        """Value under the cursor, None when exhausted."""
        address = self.current_address()
        if address is None:
            return None
        return self._data[address]

    def increment_address(self):
        if self._pos < len(self._addresses):
            self._pos += 1
