from __future__ import annotations

import logging
import threading
from typing import Any, Mapping

from .config import AgentConfig, ConfigError
from .dispatcher import Dispatcher
from .messages import EntityClass, Message, MessageClass, PeriodicityTLV
from .net import ControllerConnection
from .sequencer import HeaderSequencer
from .stats import AgentStats


class Agent:
    """EmPOWER agent living inside the eNB.

    Keeps one session to the controller, sends a HELLO every poll interval
    while connected and answers the controller's queries. The host calls
    ``init()`` then ``start()``; both return True on failure.
    """

    def __init__(self, connection: ControllerConnection | None = None):
        self.config: AgentConfig | None = None
        self.connection = connection
        self._owns_connection = connection is None
        self.sequencer: HeaderSequencer | None = None
        self.dispatcher: Dispatcher | None = None
        self.stats = AgentStats()
        self.error: Exception | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    def init(self, config: AgentConfig | Mapping[str, Any]) -> bool:
        if self.is_running:
            logging.error("cannot re-initialize a running agent")
            return True
        try:
            if not isinstance(config, AgentConfig):
                config = AgentConfig.from_mapping(config)
        except ConfigError as e:
            logging.error("caught exception while initializing agent: %s", e)
            return True

        self.config = config
        if self.sequencer is None:
            self.sequencer = HeaderSequencer(config.enb_id)
        else:
            # keep counting: sequence numbers are never reused by one agent
            self.sequencer.element_id = config.enb_id
        if self.dispatcher is None:
            self.dispatcher = Dispatcher(config, self.sequencer, self.stats)
        else:
            self.dispatcher.config = config
        if self._owns_connection:
            if self.connection is not None:
                self.connection.close()
            self.connection = ControllerConnection.from_config(config)

        logging.info(
            "agent initialized; controller=%s:%d delay=%dms enb_id=0x%x",
            config.controller_addr,
            config.controller_port,
            config.delay_ms,
            config.enb_id,
        )
        return False

    def start(self) -> bool:
        if self.config is None:
            logging.error("agent started before init()")
            return True
        if self.is_running:
            logging.error("agent thread already running")
            return True

        self._stop.clear()
        self.error = None
        conn, _, _ = self._parts()
        conn.resume()
        thread = threading.Thread(target=self.main_loop, name="empower-agent", daemon=True)
        try:
            thread.start()
        except RuntimeError as e:
            logging.error("error starting agent thread: %s", e)
            return True
        self._thread = thread
        return False

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self.connection is not None:
            self.connection.interrupt()
        if self._thread is None:
            return
        if timeout is None and self.config is not None:
            timeout = 2 * self.config.delay_ms / 1000.0 + 1.0
        self._thread.join(timeout)
        if self._thread.is_alive():
            logging.warning("agent thread did not stop within %.1fs", timeout)
        else:
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _parts(self) -> tuple[ControllerConnection, HeaderSequencer, Dispatcher]:
        if self.connection is None or self.sequencer is None or self.dispatcher is None:
            raise RuntimeError("agent used before init()")
        return self.connection, self.sequencer, self.dispatcher

    def main_loop(self) -> None:
        # Any exception reaching this level ends protocol activity for good;
        # it is kept on ``self.error`` for the host to inspect.
        conn, _, _ = self._parts()
        logging.info("agent loop started")
        try:
            while not self._stop.is_set():
                self.run_once()
        except Exception as e:
            self.error = e
            logging.exception("caught exception in main agent loop")
        finally:
            conn.close()
            logging.info("agent loop stopped")

    def run_once(self) -> None:
        """One pass of the session state machine.

        The bounded wait (``sleep`` while disconnected, ``is_data_available``
        while connected) is the only blocking point and also paces the HELLOs.
        """
        conn, _, _ = self._parts()
        perform_periodic_tasks = False
        data_is_available = False

        if conn.is_connection_closed():
            self.stats.connect_attempts += 1
            conn.open_socket()

        if conn.is_connection_closed():
            conn.sleep()
            perform_periodic_tasks = True
        else:
            data_is_available = conn.is_data_available()
            if not data_is_available:
                perform_periodic_tasks = True

        if data_is_available:
            self._handle_incoming()
        elif perform_periodic_tasks:
            self._periodic_tasks()

    def _handle_incoming(self) -> None:
        conn, _, dispatcher = self._parts()
        raw = conn.read_message()
        if not raw:
            return
        self.stats.messages_received += 1
        logging.debug("received message (%d bytes)", len(raw))

        response = dispatcher.handle(raw)
        if response is not None:
            self._send(response)

    def _periodic_tasks(self) -> None:
        conn, sequencer, _ = self._parts()
        closed = conn.is_connection_closed()
        logging.debug("waiting for messages... (connection closed: %s)", closed)
        if closed:
            return

        header = sequencer.new_header(MessageClass.REQUEST_SET, EntityClass.HELLO_SERVICE)
        hello = Message(header=header, tlvs=(PeriodicityTLV(milliseconds=conn.delay_ms),))
        if self._send(hello):
            self.stats.hellos_sent += 1

    def _send(self, message: Message) -> int:
        conn, _, _ = self._parts()
        data = message.to_bytes()
        n = conn.write_message(data)
        if n:
            self.stats.messages_sent += 1
            self.stats.bytes_sent += n
        h = message.header
        logging.info(
            "sent %s for %s seq=%d (%d bytes)",
            h.message_class.name,  # type: ignore[union-attr]
            getattr(h.entity_class, "name", h.entity_class),
            h.sequence,
            n,
        )
        return n
