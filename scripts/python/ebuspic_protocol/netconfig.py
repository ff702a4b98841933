# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Network settings stored in the PIC user ID words.

The four user ID words at config address 0x0000 hold the IP address in
their low bytes. The high byte of the first word carries the subnet
prefix length in bits 0-4 (0x1F means DHCP) and the MAC source in bit 5:
set means the MAC suffix is taken from the device-unique identifier (MUI),
cleared means it is taken from the IP address bytes.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .transport import Transport

CONFIG_ADDRESS = 0x0000
CONFIG_LENGTH = 8
# MUI6..MUI8, MUI9 is reserved
MUI_ADDRESS = 0x0106
MUI_LENGTH = 8

MAC_TEMPLATE = bytes([0xAE, 0xB0, 0x53, 0xEF, 0xFE, 0xEF])  # "Adapter-eBUS3" + (user ID or MUI)
ERASED_CONFIG = bytes([0xFF, 0x3F, 0xFF, 0x3F, 0xFF, 0x3F, 0xFF, 0x3F])

MAC_FROM_MUI = 0x20
MASK_LEN_BITS = 0x1F
MASK_LEN_DHCP = 0x1F


@dataclass(frozen=True)
class NetworkConfig:
    """Decoded network settings."""
    ip: Tuple[int, int, int, int]
    mask_len: int
    use_mui: bool
    mac: bytes

    @property
    def dhcp(self) -> bool:
        return self.mask_len == MASK_LEN_DHCP or not any(self.ip)

    @property
    def mac_str(self) -> str:
        return ":".join(f"{b:02x}" for b in self.mac)

    @property
    def ip_str(self) -> str:
        if self.dhcp:
            return "DHCP"
        return ".".join(str(b) for b in self.ip) + f"/{self.mask_len}"


def uses_mui(config: bytes) -> bool:
    """Whether the MAC suffix comes from the MUI."""
    return (config[1] & MAC_FROM_MUI) != 0


def decode_config(config: bytes, mui: Optional[bytes] = None) -> NetworkConfig:
    """
    Decode the 8 user ID bytes.

    Args:
        config: Bytes read from CONFIG_ADDRESS
        mui: Bytes read from MUI_ADDRESS, needed when the MAC comes from the MUI

    Returns:
        NetworkConfig
    """
    if len(config) < CONFIG_LENGTH:
        raise ValueError(f"Truncated config block: {len(config)} bytes")
    use_mui = uses_mui(config)
    ip = tuple(config[i * 2] for i in range(4))
    mac = bytearray(MAC_TEMPLATE)
    if use_mui:
        if mui is None:
            raise ValueError("MUI bytes required")
        for i in range(3):
            mac[3 + i] = mui[i * 2]
    else:
        for i in range(1, 4):
            mac[2 + i] = config[i * 2]
    return NetworkConfig(
        ip=ip,
        mask_len=config[1] & MASK_LEN_BITS,
        use_mui=use_mui,
        mac=bytes(mac),
    )


def encode_config(
    ip: Optional[Sequence[int]] = None,
    mask_len: int = MASK_LEN_DHCP,
    mac_from_ip: bool = False,
) -> bytes:
    """
    Build the 8 user ID bytes.

    Unset fields keep the erased flash pattern, which reads back as DHCP
    with the MAC taken from the MUI.

    Args:
        ip: Four address octets, None for DHCP
        mask_len: Subnet prefix length 0..30, 0x1F for DHCP
        mac_from_ip: Take the MAC suffix from the IP address instead of the MUI
    """
    config = bytearray(ERASED_CONFIG)
    if mac_from_ip:
        config[1] &= ~MAC_FROM_MUI & 0xFF
    config[1] = (config[1] & ~MASK_LEN_BITS & 0xFF) | (mask_len & MASK_LEN_BITS)
    if ip is not None:
        if len(ip) != 4:
            raise ValueError(f"Invalid IP address: {ip}")
        for i in range(4):
            config[i * 2] = ip[i]
    return bytes(config)


def read_network_config(transport: Transport) -> NetworkConfig:
    """Read and decode the network settings from the device."""
    config = transport.read_config(CONFIG_ADDRESS, CONFIG_LENGTH)
    mui = None
    if uses_mui(config):
        mui = transport.read_config(MUI_ADDRESS, MUI_LENGTH)
    return decode_config(config, mui)


def write_network_config(
    transport: Transport,
    ip: Optional[Sequence[int]] = None,
    mask_len: int = MASK_LEN_DHCP,
    mac_from_ip: bool = False,
) -> bytes:
    """Encode and write the network settings, returns the written bytes."""
    config = encode_config(ip, mask_len, mac_from_ip)
    transport.write_config(CONFIG_ADDRESS, config)
    return config
