# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
BDD-style integration tests for the eBUS adapter PIC bootloader.

These tests require an adapter in bootloader mode on a serial port.
Run with: pytest tests/test_integration.py -v --device /dev/ttyUSB0

Features tested:
- Version query
- Device and network information
- Checksum consistency

Nothing is written to the device.
"""

import pytest

from ebuspic_protocol import Transport, read_device_info, read_network_config
from ebuspic_protocol.protocol import END_BOOT, END_BOOT_BYTES, END_FLASH_BYTES

pytestmark = pytest.mark.integration


@pytest.fixture
def hw_transport(device_port, request):
    with Transport.open(device_port, low_speed=request.config.getoption("--slow")) as transport:
        yield transport


class TestIdentification:
    """Feature: Identify the adapter."""

    def test_read_version(self, hw_transport):
        """Scenario: The bootloader answers with a supported version."""
        version = hw_transport.read_version()
        assert version.write_block_size == 32
        assert version.erase_block_size == 32

    def test_device_info(self, hw_transport):
        """Scenario: The bootloader version is found in the boot block."""
        info = read_device_info(hw_transport)
        assert info.bootloader_version is not None

    def test_network_config(self, hw_transport):
        """Scenario: The network settings decode."""
        config = read_network_config(hw_transport)
        assert len(config.mac) == 6


class TestChecksum:
    """Feature: Device checksums are stable."""

    def test_boot_block_checksum_repeatable(self, hw_transport):
        """Scenario: Reading the boot block checksum twice gives the same value."""
        first = hw_transport.checksum(0x0000, END_BOOT_BYTES)
        assert hw_transport.checksum(0x0000, END_BOOT_BYTES) == first

    def test_firmware_checksum_repeatable(self, hw_transport):
        """Scenario: Reading the firmware checksum twice gives the same value."""
        length = END_FLASH_BYTES - END_BOOT_BYTES
        first = hw_transport.checksum(END_BOOT, length)
        assert hw_transport.checksum(END_BOOT, length) == first
