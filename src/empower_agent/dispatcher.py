from __future__ import annotations

import logging
from typing import Callable, Dict

from .config import AgentConfig
from .messages import CellTLV, DecodeError, EntityClass, Message, MessageClass
from .sequencer import HeaderSequencer
from .stats import AgentStats

Handler = Callable[[Message], "Message | None"]


class Dispatcher:
    """Maps an inbound message's entity class to the response to send back.

    New services are supported by registering another handler; the session
    loop never needs to change for that.
    """

    def __init__(
        self,
        config: AgentConfig,
        sequencer: HeaderSequencer,
        stats: AgentStats | None = None,
    ):
        self.config = config
        self.sequencer = sequencer
        self.stats = stats or AgentStats()
        self.handlers: Dict[EntityClass, Handler] = {
            EntityClass.HELLO_SERVICE: self._on_hello,
            EntityClass.CAPABILITIES_SERVICE: self._on_capabilities,
        }

    def register(self, entity_class: EntityClass, handler: Handler) -> None:
        self.handlers[entity_class] = handler

    def handle(self, raw: bytes) -> Message | None:
        """Decode ``raw`` and dispatch it. Messages that fail to decode are dropped."""
        try:
            message = Message.from_bytes(raw)
        except DecodeError as e:
            self.stats.decode_failures += 1
            logging.debug("dropping undecodable message (%d bytes): %s", len(raw), e)
            return None

        return self.dispatch(message)

    def dispatch(self, message: Message) -> Message | None:
        entity_class = message.header.entity_class
        handler = self.handlers.get(entity_class)  # type: ignore[arg-type]
        if handler is None:
            self.stats.unexpected_messages += 1
            logging.warning(
                "unexpected message: class=%s entity=%s seq=%d",
                message.header.message_class,
                entity_class,
                message.header.sequence,
            )
            return None
        return handler(message)

    def _on_hello(self, message: Message) -> None:
        # Controller's answer to our keepalive; nothing to send back.
        self.stats.hello_replies += 1
        logging.debug("got %s for HELLO_SERVICE (discarded)", message.header.message_class.name)
        return None

    def _on_capabilities(self, message: Message) -> Message:
        logging.info("got %s for CAPABILITIES_SERVICE", message.header.message_class.name)
        cfg = self.config
        header = self.sequencer.new_header(MessageClass.RESPONSE_SUCCESS, EntityClass.CAPABILITIES_SERVICE)
        cell = CellTLV(pci=cfg.pci, n_prb=cfg.n_prb, dl_earfcn=cfg.dl_earfcn, ul_earfcn=cfg.ul_earfcn)
        self.stats.capability_requests += 1
        return Message(header=header, tlvs=(cell,))
