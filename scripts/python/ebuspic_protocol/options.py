# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Run options, built once from the command line."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .netconfig import MASK_LEN_DHCP


@dataclass(frozen=True)
class SessionOptions:
    """How to talk to the device."""
    port: Optional[str] = None
    low_speed: bool = False
    verbose: bool = False


@dataclass(frozen=True)
class NetworkOptions:
    """Network settings to write, if any."""
    dhcp: bool = False
    ip: Optional[Tuple[int, int, int, int]] = None
    mask_len: int = MASK_LEN_DHCP
    mac_from_ip: bool = False

    @property
    def requested(self) -> bool:
        return self.dhcp or self.ip is not None


@dataclass(frozen=True)
class RunOptions:
    """Everything one invocation does."""
    session: SessionOptions
    network: NetworkOptions = field(default_factory=NetworkOptions)
    flash_file: Optional[Path] = None
    reset: bool = False
