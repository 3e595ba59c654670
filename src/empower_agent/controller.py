from __future__ import annotations

import logging
import select
import socket
import threading
from typing import List, Tuple

from .messages import DecodeError, EntityClass, Message, MessageClass
from .net import recv_message
from .sequencer import HeaderSequencer

CONTROLLER_ELEMENT_ID = 0


class Controller:
    """A bare-bones controller: accepts one agent at a time, answers its
    HELLOs and, optionally, asks for the cell capabilities once connected.

    Everything the agent sends is kept in ``received`` so a run can be
    inspected afterwards.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        timeout_ms: int = 100,
        query_capabilities: bool = False,
    ):
        self.listener = socket.create_server((host, port))
        self.listener.settimeout(timeout_ms / 1000.0)
        self.timeout_ms = timeout_ms
        self.query_capabilities = query_capabilities
        self.sequencer = HeaderSequencer(CONTROLLER_ELEMENT_ID)
        self.received: List[Message] = []
        self.connected = threading.Event()
        self._conn: socket.socket | None = None
        self._send_lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self.listener.getsockname()[:2]
        return host, port

    def start(self) -> "Controller":
        self._thread = threading.Thread(target=self.serve_forever, name="controller", daemon=True)
        self._thread.start()
        return self

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self.listener.close()

    def __enter__(self) -> "Controller":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.close()

    def serve_forever(self) -> None:
        logging.info("controller listening on %s:%d", *self.address)
        while not self._stop.is_set():
            try:
                conn, addr = self.listener.accept()
            except TimeoutError:
                continue
            logging.info("agent connected from %s:%d", *addr[:2])
            with conn:
                self._serve(conn)
            self.connected.clear()

    def request_capabilities(self) -> int:
        return self.send(MessageClass.REQUEST_GET, EntityClass.CAPABILITIES_SERVICE)

    def send(self, message_class: MessageClass, entity_class: EntityClass) -> int:
        with self._send_lock:
            header = self.sequencer.new_header(message_class, entity_class)
            return self.send_raw(Message(header=header).to_bytes())

    def send_raw(self, data: bytes) -> int:
        with self._send_lock:
            if self._conn is None:
                return 0
            self._conn.sendall(data)
            return len(data)

    def messages(self, entity_class: EntityClass, message_class: MessageClass | None = None) -> List[Message]:
        return [
            m
            for m in list(self.received)
            if m.header.entity_class == entity_class
            and (message_class is None or m.header.message_class == message_class)
        ]

    def _serve(self, conn: socket.socket) -> None:
        conn.settimeout(self.timeout_ms / 1000.0)
        with self._send_lock:
            self._conn = conn
        self.connected.set()
        try:
            if self.query_capabilities:
                self.request_capabilities()
            while not self._stop.is_set():
                readable, _, _ = select.select([conn], [], [], self.timeout_ms / 1000.0)
                if not readable:
                    continue
                raw = recv_message(conn)
                try:
                    message = Message.from_bytes(raw)
                except DecodeError as e:
                    logging.warning("controller dropped undecodable message: %s", e)
                    continue
                self.received.append(message)
                self._on_message(message)
        except (OSError, DecodeError) as e:
            logging.info("agent session ended: %s", e)
        finally:
            with self._send_lock:
                self._conn = None

    def _on_message(self, message: Message) -> None:
        h = message.header
        logging.info(
            "controller got %s for %s seq=%d from element 0x%x",
            h.message_class.name,  # type: ignore[union-attr]
            getattr(h.entity_class, "name", h.entity_class),
            h.sequence,
            h.element_id,
        )
        if h.entity_class == EntityClass.HELLO_SERVICE and h.message_class == MessageClass.REQUEST_SET:
            self.send(MessageClass.RESPONSE_SUCCESS, EntityClass.HELLO_SERVICE)
