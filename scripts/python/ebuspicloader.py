#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Firmware loader for the eBUS adapter PIC.

Usage:
    python ebuspicloader.py /dev/ttyUSB0
    python ebuspicloader.py --flash firmware.hex --reset /dev/ttyUSB0
    python ebuspicloader.py --ip 192.168.0.10 --mask 24 /dev/ttyUSB0
    python ebuspicloader.py --flash firmware.hex

Requirements:
    pip install pyserial intelhex
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Tuple

from ebuspic_protocol import (
    ImageCursor,
    NetworkOptions,
    Programmer,
    RunOptions,
    SessionOptions,
    Transport,
    TransportError,
    ImageFormatError,
    image_checksum,
    read_device_info,
    read_network_config,
    write_network_config,
)
from ebuspic_protocol.device import CONFIG_DUMPS, FIRMWARE_MARKER, format_frame_data, version_from_block
from ebuspic_protocol.netconfig import MASK_LEN_DHCP
from ebuspic_protocol.programmer import first_block

logger = logging.getLogger(__name__)

MAX_MASK_LEN = 0x1E
DOTS_PER_LINE = 64


def parse_ip(value: str) -> Tuple[int, int, int, int]:
    """argparse type for a fixed IPv4 address."""
    parts = value.split(".")
    try:
        octets = tuple(int(part, 10) for part in parts)
    except ValueError:
        raise argparse.ArgumentTypeError("invalid IP address")
    if len(octets) != 4 or any(o < 0 or o > 255 for o in octets) or sum(octets) == 0:
        raise argparse.ArgumentTypeError("invalid IP address")
    return octets


def parse_mask(value: str) -> int:
    """argparse type for the subnet prefix length."""
    try:
        mask_len = int(value, 10)
    except ValueError:
        raise argparse.ArgumentTypeError("invalid IP mask")
    if mask_len < 0 or mask_len > MAX_MASK_LEN:
        raise argparse.ArgumentTypeError("invalid IP mask")
    return mask_len


def parse_file(value: str) -> Path:
    path = Path(value)
    if not path.is_file():
        raise argparse.ArgumentTypeError("invalid flash file")
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="A tool for loading firmware to the eBUS adapter PIC.",
        epilog="PORT is the serial port to use (e.g. /dev/ttyUSB0)",
    )
    parser.add_argument("port", metavar="PORT", nargs="?", help="Serial port")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="enable verbose output")
    parser.add_argument("--dhcp", "-d", action="store_true",
                        help="set dynamic IP address via DHCP")
    parser.add_argument("--ip", "-i", type=parse_ip, metavar="IP",
                        help="set fix IP address (e.g. 192.168.0.10)")
    parser.add_argument("--mask", "-m", type=parse_mask, metavar="MASK",
                        help="set fix IP mask (e.g. 24)")
    parser.add_argument("--macip", "-M", action="store_true",
                        help="set the MAC address suffix from the IP address")
    parser.add_argument("--flash", "-f", type=parse_file, metavar="FILE",
                        help="flash the FILE to the device")
    parser.add_argument("--reset", "-r", action="store_true",
                        help="reset the device at the end on success")
    parser.add_argument("--slow", "-s", action="store_true",
                        help="use low speed for transfer")
    return parser


def parse_options(argv=None) -> RunOptions:
    """Parse and validate the command line into immutable options."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.dhcp and (args.ip is not None or args.mask is not None):
        parser.error("either DHCP or IP address is needed")
    if (args.ip is None) != (args.mask is None) or (args.macip and args.ip is None):
        parser.error("incomplete IP arguments")
    if args.port is None and args.flash is None:
        parser.error("PORT is required")

    return RunOptions(
        session=SessionOptions(port=args.port, low_speed=args.slow, verbose=args.verbose),
        network=NetworkOptions(
            dhcp=args.dhcp,
            ip=args.ip,
            mask_len=MASK_LEN_DHCP if args.mask is None else args.mask,
            mac_from_ip=args.macip,
        ),
        flash_file=args.flash,
        reset=args.reset,
    )


def print_file_checksum(path: Path) -> int:
    """Show version and checksum of a firmware file."""
    cursor = ImageCursor.from_hex_file(path)
    checksum = image_checksum(cursor)
    version = version_from_block(first_block(cursor), FIRMWARE_MARKER)
    print(f"New firmware version: {-1 if version is None else version} [{checksum:04x}]")
    return checksum


def format_checksum(checksum) -> str:
    return "----" if checksum is None else f"{checksum:04x}"


def cmd_info(transport: Transport, verbose: bool):
    """Show device, bootloader and firmware details."""
    info = read_device_info(transport)
    version = info.version

    if verbose:
        print(f"Max packet size: {version.max_packet_size}")
    name = f" ({version.device_name})" if version.device_name else ""
    print(f"Device ID: {version.device_id:04x}{name}")
    if verbose:
        print(f"Blocksize erase: {version.erase_block_size}")
        print(f"Blocksize write: {version.write_block_size}")
        for idx, user_id in enumerate(version.user_ids, 1):
            print(f"User ID {idx}: {user_id:02x}")
        for title, address, length, skip_high in CONFIG_DUMPS:
            print(f"{title}:")
            for line in format_frame_data(address, transport.read_config(address, length), skip_high):
                print(line)
    print(f"Device revision: {info.revision}")

    if info.bootloader_version is None:
        print("Bootloader version not found", file=sys.stderr)
    else:
        print(f"Bootloader version: {info.bootloader_version} [{format_checksum(info.bootloader_checksum)}]")
    if info.firmware_version is None:
        print("Firmware version not found")
    else:
        print(f"Firmware version: {info.firmware_version} [{format_checksum(info.firmware_checksum)}]")


def cmd_network_info(transport: Transport):
    config = read_network_config(transport)
    print(f"MAC address: {config.mac_str}")
    print(f"IP address: {config.ip_str}")


def cmd_flash(transport: Transport, path: Path) -> bool:
    """Flash a firmware file."""
    try:
        print_file_checksum(path)
        cursor = ImageCursor.from_hex_file(path)
    except ImageFormatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return False

    blocks = [0]

    def progress(address: int, written: bool):
        if not written:
            return
        if blocks[0] == 0:
            print(f"\n0x{address:04x} ", end="", flush=True)
        print(".", end="", flush=True)
        blocks[0] = (blocks[0] + 1) % DOTS_PER_LINE

    programmer = Programmer(transport, progress_callback=progress)
    try:
        programmer.flash(cursor)
    except TransportError as e:
        print()
        print(f"Error: {e}", file=sys.stderr)
        return False
    print()
    print("flashing finished.")
    print("flashing succeeded.")
    return True


def cmd_network_write(transport: Transport, network: NetworkOptions) -> bool:
    """Write network settings and show them again."""
    print("Writing IP settings: ", end="", flush=True)
    try:
        write_network_config(transport, network.ip, network.mask_len, network.mac_from_ip)
    except TransportError as e:
        print("failed")
        print(f"Error: {e}", file=sys.stderr)
        return False
    print("done.")
    print("IP settings changed to:")
    cmd_network_info(transport)
    return True


def cmd_reset(transport: Transport):
    print("resetting device.")
    try:
        transport.reset_device()
    except TransportError as e:
        # the device may restart before answering
        logger.info("no answer to reset: %s", e)


def run(options: RunOptions) -> bool:
    """Execute everything requested, returns overall success."""
    session = options.session
    if session.port is None:
        print_file_checksum(options.flash_file)
        return True

    with Transport.open(session.port, low_speed=session.low_speed) as transport:
        cmd_info(transport, session.verbose)
        cmd_network_info(transport)
        print()

        success = True
        if options.flash_file is not None:
            success = cmd_flash(transport, options.flash_file) and success
        if options.network.requested:
            success = cmd_network_write(transport, options.network) and success
        if options.reset and success:
            cmd_reset(transport)
    return success


def main(argv=None):
    options = parse_options(argv)
    logging.basicConfig(format="%(levelname)s: %(message)s")
    if options.session.verbose:
        logging.getLogger("ebuspic_protocol").setLevel(logging.DEBUG)

    try:
        success = run(options)
    except (TransportError, ImageFormatError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if not success:
        sys.exit(1)


if __name__ == "__main__":
    main()
