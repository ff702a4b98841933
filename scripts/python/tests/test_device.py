# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Tests for device identification."""

from unittest.mock import patch

from ebuspic_protocol.device import (
    BOOTLOADER_MARKER,
    FIRMWARE_MARKER,
    decode_revision,
    format_frame_data,
    read_device_info,
    version_from_block,
)
from ebuspic_protocol.protocol import END_BOOT_BYTES
from ebuspic_protocol.transport import TimeoutError


class TestVersionFromBlock:
    """Tests for version_from_block."""

    def test_firmware(self):
        block = bytes([0, 0, 0, 0, 0xAE, 0x34, 0x07, 0x34]) + bytes(8)
        assert version_from_block(block, FIRMWARE_MARKER) == 7

    def test_wrong_marker(self):
        block = bytes([0, 0, 0, 0, 0xAE, 0x34, 0x07, 0x34]) + bytes(8)
        assert version_from_block(block, BOOTLOADER_MARKER) is None

    def test_erased(self):
        assert version_from_block(bytes([0xFF, 0x3F] * 8), FIRMWARE_MARKER) is None


def test_decode_revision():
    assert decode_revision(bytes([0x43, 0x20])) == "1.3"


class TestReadDeviceInfo:
    """Tests for read_device_info against the simulated device."""

    def test_without_firmware(self, device, transport):
        device.config[0x0A:0x0C] = bytes([0x42, 0x20])
        info = read_device_info(transport)

        assert info.version.device_id == 0x30B0
        assert info.revision == "1.2"
        assert info.bootloader_version == 3
        assert info.bootloader_checksum == transport.checksum(0x0000, END_BOOT_BYTES)
        assert info.firmware_version is None
        assert info.firmware_checksum is None

    def test_with_firmware(self, device, transport):
        device.flash[END_BOOT_BYTES + 4:END_BOOT_BYTES + 8] = bytes([0xAE, 0x34, 0x09, 0x34])
        info = read_device_info(transport)

        assert info.firmware_version == 9
        assert info.firmware_checksum is not None

    def test_checksum_failure_reported_as_none(self, device, transport, caplog):
        device.flash[END_BOOT_BYTES + 4:END_BOOT_BYTES + 8] = bytes([0xAE, 0x34, 0x09, 0x34])
        with patch.object(transport, "checksum", side_effect=TimeoutError("no answer")):
            info = read_device_info(transport)

        assert info.bootloader_version == 3
        assert info.bootloader_checksum is None
        assert info.firmware_version == 9
        assert info.firmware_checksum is None
        assert "unable to read checksum" in caplog.text


class TestFormatFrameData:
    """Tests for the hex dump."""

    def test_words(self):
        lines = format_frame_data(0x0005, bytes([0x01, 0x02, 0x03, 0x04]))
        assert lines == ["0005: 01 02 03 04"]

    def test_low_bytes_only(self):
        lines = format_frame_data(0x0100, bytes([0x11, 0x3F, 0x22, 0x3F]), skip_high=True)
        assert lines == ["0100: 11 22"]

    def test_line_break_after_eight_words(self):
        lines = format_frame_data(0x0000, bytes(range(18)))
        assert len(lines) == 2
        assert lines[1] == "0008: 10 11"
