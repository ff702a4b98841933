# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Pytest configuration, fake links and a simulated bootloader."""

from typing import List, Optional

import pytest

from ebuspic_protocol.protocol import (
    STX,
    EE_KEY_1,
    EE_KEY_2,
    END_FLASH_BYTES,
    FRAME_HEADER_LEN,
    CommandType,
    Frame,
    Status,
    decode_frame,
    encode_frame,
)

ERASE_ROW_BYTES = 32 * 2
CONFIG_SPACE_BYTES = 0x400


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--device",
        action="store",
        default=None,
        help="Serial port for the adapter (e.g., /dev/ttyUSB0)",
    )
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Use low speed for the device",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--device"):
        return
    skip = pytest.mark.skip(reason="needs --device")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


def make_response(command: int, data: bytes = b"", address: int = 0, sync: int = STX,
                  tail: bytes = b"") -> bytes:
    """Create a response as sent by the device, sync byte included."""
    frame = Frame(
        command=command,
        data_length=len(data),
        address_low=address & 0xFF,
        address_high=(address >> 8) & 0xFF,
        data=data,
    )
    return bytes([sync]) + encode_frame(frame) + tail


def erased(length: int) -> bytearray:
    """Erased flash pattern: 0xFF low byte, 0x3F high byte."""
    return bytearray(0x3F if pos & 1 else 0xFF for pos in range(length))


class FakeLink:
    """
    Link answering each exchange with the next scripted response.

    A response is released when the sync byte of a request is written, so
    leftovers of the previous answer never leak into the next one.
    """

    def __init__(self, responses: Optional[List[bytes]] = None, chunk_size: Optional[int] = None):
        self.responses = list(responses or [])
        self.chunk_size = chunk_size
        self.written = bytearray()
        self.rx = bytearray()
        self.port = "/dev/ttyTEST"
        self.closed = False
        self.read_timeouts: List[int] = []

    def write(self, data: bytes, timeout_ms: int) -> int:
        self.written += data
        if len(data) == 1 and data[0] == STX:
            self.rx = bytearray()
            self.on_sync()
        elif len(data) >= FRAME_HEADER_LEN:
            self.on_frame(bytes(data))
        return len(data)

    def on_sync(self):
        if self.responses:
            self.rx = bytearray(self.responses.pop(0))

    def on_frame(self, data: bytes):
        pass

    def read(self, size: int, timeout_ms: int) -> bytes:
        self.read_timeouts.append(timeout_ms)
        if self.chunk_size:
            size = min(size, self.chunk_size)
        chunk = bytes(self.rx[:size])
        del self.rx[:size]
        return chunk

    def close(self):
        self.closed = True


class FakeBootloader(FakeLink):
    """
    Simulated PIC bootloader working on in-memory flash and config space.

    Attributes:
        drop_writes: Number of upcoming WRITE_FLASH requests left unanswered
        reject_writes: Number of upcoming WRITE_FLASH requests answered with
            INVALID_COMMAND
        erase_status: Status returned for ERASE_FLASH
    """

    def __init__(self):
        super().__init__()
        self.flash = erased(END_FLASH_BYTES)
        self.config = erased(CONFIG_SPACE_BYTES)
        self.requests: List[Frame] = []
        self.drop_writes = 0
        self.reject_writes = 0
        self.erase_status = Status.SUCCESS
        self.version = bytes([
            0x08, 0x00,              # minor, major
            0x49, 0x00,              # max packet size
            0x00, 0x00,
            0xB0, 0x30,              # device id
            0x00, 0x00,
            0x20, 0x20,              # erase and write block size
            0x01, 0x02, 0x03, 0x04,  # user ids
        ])
        # bootloader version 3 in the boot block
        self.flash[4:8] = bytes([0xAB, 0x34, 0x03, 0x34])

    @property
    def writes(self) -> List[Frame]:
        return [f for f in self.requests if f.command == CommandType.WRITE_FLASH]

    def on_frame(self, data: bytes):
        request = decode_frame(data)
        self.requests.append(request)
        reply = self.execute(request)
        if reply is not None:
            self.rx = bytearray(make_response(request.command, reply, request.address))

    def execute(self, request: Frame) -> Optional[bytes]:
        start = request.address * 2
        command = request.command
        guarded = request.ee_key_1 == EE_KEY_1 and request.ee_key_2 == EE_KEY_2

        if command == CommandType.READ_VERSION:
            return self.version
        if command == CommandType.READ_FLASH:
            return bytes(self.flash[start:start + request.data_length])
        if command == CommandType.READ_CONFIG:
            return bytes(self.config[start:start + request.data_length])
        if command == CommandType.WRITE_CONFIG:
            if not guarded:
                return bytes([Status.INVALID_COMMAND])
            self.config[start:start + len(request.data)] = request.data
            return bytes([Status.SUCCESS])
        if command == CommandType.WRITE_FLASH:
            if self.drop_writes:
                self.drop_writes -= 1
                return None
            if self.reject_writes:
                self.reject_writes -= 1
                return bytes([Status.INVALID_COMMAND])
            if not guarded:
                return bytes([Status.INVALID_COMMAND])
            if start + len(request.data) > END_FLASH_BYTES:
                return bytes([Status.ADDRESS_OUT_OF_RANGE])
            self.flash[start:start + len(request.data)] = request.data
            return bytes([Status.SUCCESS])
        if command == CommandType.ERASE_FLASH:
            end = start + request.data_length * ERASE_ROW_BYTES
            if not guarded or self.erase_status != Status.SUCCESS:
                return bytes([self.erase_status if guarded else Status.INVALID_COMMAND])
            if end > END_FLASH_BYTES:
                return bytes([Status.ADDRESS_OUT_OF_RANGE])
            self.flash[start:end] = erased(end - start)
            return bytes([Status.SUCCESS])
        if command == CommandType.CALC_CHECKSUM:
            checksum = 0
            for pos, value in enumerate(self.flash[start:start + request.data_length]):
                checksum += value << ((pos & 1) * 8)
            checksum &= 0xFFFF
            return bytes([checksum & 0xFF, checksum >> 8])
        if command == CommandType.RESET_DEVICE:
            return bytes([Status.SUCCESS])
        return bytes([Status.INVALID_COMMAND])


@pytest.fixture
def device():
    """A simulated bootloader."""
    return FakeBootloader()


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip the autobaud settle delay."""
    monkeypatch.setattr("ebuspic_protocol.transport.time.sleep", lambda s: None)


@pytest.fixture
def transport(device, no_sleep):
    """Transport talking to the simulated bootloader."""
    from ebuspic_protocol.transport import Transport

    return Transport(device)


@pytest.fixture
def device_port(request):
    """Serial port of a real adapter, if given."""
    return request.config.getoption("--device")
