from __future__ import annotations

import ipaddress
from dataclasses import dataclass, fields
from typing import Any, Mapping

from .constants import (
    DEFAULT_CONTROLLER_ADDR,
    DEFAULT_CONTROLLER_PORT,
    DEFAULT_DELAY_MS,
    DEFAULT_DL_EARFCN,
    DEFAULT_ENB_ID,
    DEFAULT_N_PRB,
    DEFAULT_PCI,
    DEFAULT_UL_EARFCN,
)

_UINT8 = 0xFF
_UINT16 = 0xFFFF
_UINT32 = 0xFFFFFFFF


class ConfigError(ValueError):
    pass


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ConfigError(f"{name} out of range [{low}, {high}]: {value}")


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """Settings the agent takes from the eNB once, before its thread starts.

    Values are checked on construction so that every field fits the wire
    format; nothing downstream re-validates them.
    """

    controller_addr: str = DEFAULT_CONTROLLER_ADDR
    controller_port: int = DEFAULT_CONTROLLER_PORT
    delay_ms: int = DEFAULT_DELAY_MS
    pci: int = DEFAULT_PCI
    dl_earfcn: int = DEFAULT_DL_EARFCN
    ul_earfcn: int = DEFAULT_UL_EARFCN
    n_prb: int = DEFAULT_N_PRB
    enb_id: int = DEFAULT_ENB_ID

    def __post_init__(self) -> None:
        if not isinstance(self.controller_addr, str):
            raise ConfigError(f"controller address must be a string, got {self.controller_addr!r}")
        try:
            ipaddress.IPv4Address(self.controller_addr)
        except ValueError as e:
            raise ConfigError(f"invalid controller address {self.controller_addr!r}: {e}") from e

        _check_range("controller_port", self.controller_port, 1, _UINT16)
        _check_range("delay_ms", self.delay_ms, 1, _UINT32)
        _check_range("pci", self.pci, 0, _UINT16)
        _check_range("dl_earfcn", self.dl_earfcn, 0, _UINT32)
        _check_range("ul_earfcn", self.ul_earfcn, 0, _UINT32)
        _check_range("n_prb", self.n_prb, 0, _UINT8)
        _check_range("enb_id", self.enb_id, 0, _UINT32)

    @property
    def controller(self) -> tuple[str, int]:
        return self.controller_addr, self.controller_port

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> AgentConfig:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in settings.items() if k in known})
