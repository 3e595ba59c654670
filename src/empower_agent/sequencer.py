from __future__ import annotations

from .constants import MAX_SEQUENCE
from .messages import EntityClass, MessageClass, MessageHeader


class HeaderSequencer:
    """Stamps outbound headers with the next sequence number and the eNB id.

    The counter starts at 1 and advances once per header. Zero is never
    issued: past ``MAX_SEQUENCE`` it wraps back to 1.
    """

    def __init__(self, element_id: int):
        self.element_id = element_id
        self._sequence = 1

    @property
    def next_sequence(self) -> int:
        return self._sequence

    def fill_header(self, header: MessageHeader) -> MessageHeader:
        header.sequence = self._sequence
        header.element_id = self.element_id
        self._sequence = self._sequence + 1 if self._sequence < MAX_SEQUENCE else 1
        return header

    def new_header(self, message_class: MessageClass, entity_class: EntityClass) -> MessageHeader:
        header = self.fill_header(MessageHeader())
        header.message_class = message_class
        header.entity_class = entity_class
        return header
