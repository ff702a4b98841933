# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Erase, program and verify the application area of the PIC.

The image is written in blocks of WRITE_FLASH_BLOCKSIZE bytes. Gaps in the
image are padded with the erased flash pattern (0xFF low byte, 0x3F high
byte of each 14-bit word) and blocks without any image data are skipped.
The result is verified with a checksum computed by the device.
"""

import logging
from enum import Enum
from typing import Callable, Iterator, Optional, Tuple

from .image import ImageCursor
from .link import TransportError
from .protocol import (
    END_BOOT_BYTES,
    END_FLASH_BYTES,
    WRITE_FLASH_BLOCKSIZE,
)
from .transport import Transport

logger = logging.getLogger(__name__)

PAD_LOW = 0xFF
PAD_HIGH = 0x3F


class FlashError(TransportError):
    """Error while flashing the firmware."""
    pass


class ImageRangeError(FlashError):
    """The image does not fit the application area."""
    pass


class VerifyError(FlashError):
    """The device checksum could not be read or did not match."""
    pass


class FlashState(Enum):
    IDLE = "idle"
    ERASING = "erasing"
    PROGRAMMING = "programming"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


def pad_value(pos: int) -> int:
    """Erased flash value for byte position pos."""
    return PAD_HIGH if pos & 0x1 else PAD_LOW


def update_checksum(checksum: int, block: bytes) -> int:
    """Add block to the 16 bit checksum, even bytes low, odd bytes high."""
    for pos, value in enumerate(block):
        checksum += value << ((pos & 0x1) * 8)
    return checksum & 0xFFFF


def validate_image_range(
    start: int,
    end: int,
    boot_end: int = END_BOOT_BYTES,
    flash_end: int = END_FLASH_BYTES,
) -> None:
    """
    Check that the byte range [start, end] may be flashed.

    Raises:
        ImageRangeError: If start is inside the boot block, end beyond the
            flash, end before start or start not 16 byte aligned
    """
    if start < boot_end or end >= flash_end or end < start or (start & 0xF) != 0:
        raise ImageRangeError(f"invalid address range 0x{start:04x} - 0x{end:04x}")


def iter_blocks(cursor: ImageCursor, start: int, end: int) -> Iterator[Tuple[int, bytes, bool]]:
    """
    Fill write blocks from the image.

    Args:
        cursor: Image cursor positioned at or after start
        start: Byte address of the first block
        end: Byte address after the last block start to produce

    Yields:
        (block byte address, block data, blank) where blank tells that no
        image byte landed in the block
    """
    next_addr = start
    block_start = start
    while block_start < end:
        block = bytearray(WRITE_FLASH_BLOCKSIZE)
        blank = True
        for pos in range(WRITE_FLASH_BLOCKSIZE):
            value = pad_value(pos)
            if cursor.current_address() == next_addr:
                value = cursor.get_data()
                cursor.increment_address()
                blank = False
            block[pos] = value
            next_addr += 1
        yield block_start, bytes(block), blank
        block_start += WRITE_FLASH_BLOCKSIZE


def image_checksum(cursor: ImageCursor, end: int = END_FLASH_BYTES) -> int:
    """
    Checksum of the padded image from the boot block end up to end.

    This is what the device reports for the same range once the image is
    flashed.
    """
    start = cursor.start_address()
    validate_image_range(start, cursor.end_address())
    if start != END_BOOT_BYTES:
        raise ImageRangeError(f"unexpected start address in file: 0x{start:04x}")
    cursor.begin()
    checksum = 0
    for _, block, _ in iter_blocks(cursor, start, end):
        checksum = update_checksum(checksum, block)
    return checksum


def first_block(cursor: ImageCursor) -> bytes:
    """First write block of the image, padded."""
    cursor.begin()
    start = cursor.start_address()
    _, block, _ = next(iter_blocks(cursor, start, start + WRITE_FLASH_BLOCKSIZE))
    return block


class Programmer:
    """
    Flash sequencer.

    Example:
        programmer = Programmer(transport)
        programmer.flash(ImageCursor.from_hex_file("firmware.hex"))
    """

    def __init__(
        self,
        transport: Transport,
        progress_callback: Optional[Callable[[int, bool], None]] = None,
    ):
        """
        Args:
            transport: Open transport
            progress_callback: Optional callback(word_address, written) per block
        """
        self._transport = transport
        self._progress = progress_callback
        self.state = FlashState.IDLE
        self.checksum = 0
        self.blocks_written = 0

    def _enter(self, state: FlashState):
        logger.debug("flash state %s -> %s", self.state, state)
        self.state = state

    def write_block(self, address: int, data: bytes, attempt: int) -> None:
        """Write one block, first attempts are quiet."""
        self._transport.write_flash(address, data, quiet=attempt == 0)

    def _program_block(self, address: int, data: bytes):
        try:
            self.write_block(address, data, 0)
            return
        except TransportError as e:
            logger.debug("repeating write at 0x%04x after: %s", address, e)
        try:
            self.write_block(address, data, 1)
        except TransportError as e:
            raise FlashError(f"unable to write flash at 0x{address:04x}") from e

    def flash(self, cursor: ImageCursor) -> int:
        """
        Erase, program and verify.

        Args:
            cursor: Image to flash

        Returns:
            The verified checksum

        Raises:
            ImageRangeError: If the image does not fit, before any device I/O
            FlashError: If erasing or writing failed
            VerifyError: If the checksum could not be read or does not match
        """
        try:
            return self._flash(cursor)
        except Exception:
            self._enter(FlashState.FAILED)
            raise

    def _flash(self, cursor: ImageCursor) -> int:
        start = cursor.start_address()
        end = cursor.end_address() + 1
        validate_image_range(start, end - 1)
        cursor.begin()
        if cursor.current_address() != END_BOOT_BYTES:
            raise ImageRangeError(
                f"unexpected start address in file: 0x{cursor.current_address():04x}"
            )
        logger.info("flashing bytes 0x%04x - 0x%04x", start, end - 1)

        self._enter(FlashState.ERASING)
        try:
            self._transport.erase_flash(start // 2, (end - start + 1) // 2)
        except TransportError as e:
            raise FlashError(f"erasing flash failed: {e}") from e

        self._enter(FlashState.PROGRAMMING)
        self.checksum = 0
        self.blocks_written = 0
        block_end = start
        for block_start, block, blank in iter_blocks(cursor, start, end):
            self.checksum = update_checksum(self.checksum, block)
            block_end = block_start + WRITE_FLASH_BLOCKSIZE
            if not blank:
                self._program_block(block_start // 2, block)
                self.blocks_written += 1
            if self._progress:
                self._progress(block_start // 2, not blank)

        self._enter(FlashState.VERIFYING)
        try:
            device_sum = self._transport.checksum(start // 2, block_end - start)
        except TransportError as e:
            raise VerifyError("unable to read checksum") from e
        if device_sum != self.checksum:
            raise VerifyError(
                f"unexpected checksum 0x{device_sum:04x}, expected 0x{self.checksum:04x}"
            )
        self._enter(FlashState.SUCCEEDED)
        return self.checksum
