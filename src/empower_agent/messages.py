from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import ClassVar, TypeVar, Union

from .constants import (
    CELL_FORMAT,
    HEADER_FORMAT,
    MAX_MESSAGE_SIZE,
    PERIODICITY_FORMAT,
    TLV_CELL,
    TLV_HEADER_FORMAT,
    TLV_PERIODICITY_MS,
    VERSION,
)

HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
TLV_HEADER_SIZE = struct.calcsize(TLV_HEADER_FORMAT)


class DecodeError(ValueError):
    pass


class MessageClass(enum.IntEnum):
    REQUEST_GET = 1
    REQUEST_SET = 2
    REQUEST_ADD = 3
    REQUEST_DEL = 4
    RESPONSE_SUCCESS = 5
    RESPONSE_FAILURE = 6


class EntityClass(enum.IntEnum):
    HELLO_SERVICE = 1
    CAPABILITIES_SERVICE = 2

    @classmethod
    def parse(cls, value: int) -> EntityClass | int:
        """Return the known member for ``value``, or ``value`` itself when unknown."""
        try:
            return cls(value)
        except ValueError:
            return value


@dataclass(slots=True)
class MessageHeader:
    sequence: int = 0
    element_id: int = 0
    message_class: MessageClass | None = None
    entity_class: EntityClass | int | None = None


@dataclass(frozen=True, slots=True)
class PeriodicityTLV:
    tlv_type: ClassVar[int] = TLV_PERIODICITY_MS

    milliseconds: int

    def value_bytes(self) -> bytes:
        return struct.pack(PERIODICITY_FORMAT, self.milliseconds)

    @classmethod
    def from_value(cls, value: bytes) -> PeriodicityTLV:
        if len(value) != struct.calcsize(PERIODICITY_FORMAT):
            raise DecodeError(f"periodicity TLV has {len(value)} bytes")
        (milliseconds,) = struct.unpack(PERIODICITY_FORMAT, value)
        return cls(milliseconds=milliseconds)


@dataclass(frozen=True, slots=True)
class CellTLV:
    tlv_type: ClassVar[int] = TLV_CELL

    pci: int
    n_prb: int
    dl_earfcn: int
    ul_earfcn: int

    def value_bytes(self) -> bytes:
        return struct.pack(CELL_FORMAT, self.pci, self.n_prb, self.dl_earfcn, self.ul_earfcn)

    @classmethod
    def from_value(cls, value: bytes) -> CellTLV:
        if len(value) != struct.calcsize(CELL_FORMAT):
            raise DecodeError(f"cell TLV has {len(value)} bytes")
        pci, n_prb, dl_earfcn, ul_earfcn = struct.unpack(CELL_FORMAT, value)
        return cls(pci=pci, n_prb=n_prb, dl_earfcn=dl_earfcn, ul_earfcn=ul_earfcn)


@dataclass(frozen=True, slots=True)
class RawTLV:
    """A TLV whose type this agent does not interpret; kept as opaque bytes."""

    tlv_type: int
    value: bytes

    def value_bytes(self) -> bytes:
        return self.value


TLV = Union[PeriodicityTLV, CellTLV, RawTLV]
T = TypeVar("T", PeriodicityTLV, CellTLV, RawTLV)

_KNOWN_TLVS: dict[int, type[PeriodicityTLV] | type[CellTLV]] = {
    TLV_PERIODICITY_MS: PeriodicityTLV,
    TLV_CELL: CellTLV,
}


def frame_length(header: bytes) -> int:
    """Total message length announced by a common header.

    Used by stream readers to know how many more bytes belong to the frame.
    """
    if len(header) < HEADER_SIZE:
        raise DecodeError("buffer too small to hold a common header")
    _, _, _, length, _, _ = struct.unpack_from(HEADER_FORMAT, header)
    if length < HEADER_SIZE or length > MAX_MESSAGE_SIZE:
        raise DecodeError(f"invalid message length: {length}")
    return length


@dataclass(frozen=True, slots=True)
class Message:
    header: MessageHeader
    tlvs: tuple[TLV, ...] = ()

    def find(self, tlv_cls: type[T]) -> T | None:
        for tlv in self.tlvs:
            if isinstance(tlv, tlv_cls):
                return tlv
        return None

    def to_bytes(self) -> bytes:
        h = self.header
        if h.message_class is None or h.entity_class is None:
            raise ValueError("header needs both message_class and entity_class")

        body = b"".join(
            struct.pack(TLV_HEADER_FORMAT, tlv.tlv_type, len(value)) + value
            for tlv in self.tlvs
            for value in (tlv.value_bytes(),)
        )
        length = HEADER_SIZE + len(body)
        header = struct.pack(
            HEADER_FORMAT,
            VERSION,
            int(h.message_class),
            int(h.entity_class),
            length,
            h.sequence,
            h.element_id,
        )
        return header + body

    @staticmethod
    def from_bytes(raw: bytes) -> Message:
        if len(raw) < HEADER_SIZE:
            raise DecodeError("buffer too small to be a valid message")

        version, message_class, entity_class, length, seq, element_id = struct.unpack_from(
            HEADER_FORMAT, raw
        )
        if version != VERSION:
            raise DecodeError(f"version mismatch: expected {VERSION}, got {version}")
        if length != len(raw):
            raise DecodeError(f"length mismatch: header says {length}, got {len(raw)}")
        try:
            mclass = MessageClass(message_class)
        except ValueError:
            raise DecodeError(f"unknown message class: {message_class}") from None

        tlvs: list[TLV] = []
        offset = HEADER_SIZE
        while offset < len(raw):
            if len(raw) - offset < TLV_HEADER_SIZE:
                raise DecodeError("truncated TLV header")
            tlv_type, value_len = struct.unpack_from(TLV_HEADER_FORMAT, raw, offset)
            offset += TLV_HEADER_SIZE
            value = raw[offset : offset + value_len]
            if len(value) != value_len:
                raise DecodeError("truncated TLV value")
            offset += value_len

            known = _KNOWN_TLVS.get(tlv_type)
            tlvs.append(known.from_value(value) if known else RawTLV(tlv_type, value))

        header = MessageHeader(
            sequence=seq,
            element_id=element_id,
            message_class=mclass,
            entity_class=EntityClass.parse(entity_class),
        )
        return Message(header=header, tlvs=tuple(tlvs))
