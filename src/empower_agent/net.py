from __future__ import annotations

import logging
import select
import socket
import threading
import time
from typing import Tuple

from .config import AgentConfig
from .messages import HEADER_SIZE, DecodeError, frame_length


class ControllerConnection:
    """The agent's single TCP session towards the controller.

    Every blocking call is bounded by the poll interval. I/O failures never
    escape: they close the session, which callers observe through
    ``is_connection_closed()``.
    """

    def __init__(self, controller: Tuple[str, int], delay_ms: int):
        self.controller = controller
        self.delay_ms = delay_ms
        self.sock: socket.socket | None = None
        self._wake = threading.Event()
        self._attempt_started: float | None = None

    @classmethod
    def from_config(cls, config: AgentConfig) -> "ControllerConnection":
        return cls(config.controller, config.delay_ms)

    @property
    def delay_s(self) -> float:
        return self.delay_ms / 1000.0

    def is_connection_closed(self) -> bool:
        return self.sock is None

    def open_socket(self) -> None:
        if self.sock is not None:
            return
        host, port = self.controller
        self._attempt_started = time.monotonic()
        try:
            sock = socket.create_connection((host, port), timeout=self.delay_s)
        except OSError as e:
            logging.debug("connect to %s:%d failed: %s", host, port, e)
            return
        sock.settimeout(self.delay_s)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self.sock = sock
        self._attempt_started = None
        logging.info("connected to controller %s:%d", host, port)

    def is_data_available(self) -> bool:
        if self.sock is None:
            return False
        try:
            readable, _, _ = select.select([self.sock], [], [], self.delay_s)
        except (OSError, ValueError) as e:
            logging.warning("poll failed (%s); closing connection", e)
            self.close()
            return False
        return bool(readable)

    def read_message(self) -> bytes:
        if self.sock is None:
            return b""
        try:
            raw = recv_message(self.sock, timeout=self.delay_s)
        except (OSError, DecodeError) as e:
            logging.warning("read failed (%s); closing connection", e)
            self.close()
            return b""
        self.sock.settimeout(self.delay_s)
        return raw

    def write_message(self, data: bytes) -> int:
        if self.sock is None:
            return 0
        try:
            self.sock.sendall(data)
        except OSError as e:
            logging.warning("write failed (%s); closing connection", e)
            self.close()
            return 0
        return len(data)

    def sleep(self) -> None:
        """Wait out the rest of the interval that began with the last connect attempt."""
        timeout = self.delay_s
        if self._attempt_started is not None:
            timeout = max(0.0, timeout - (time.monotonic() - self._attempt_started))
            self._attempt_started = None
        self._wake.wait(timeout)

    def interrupt(self) -> None:
        """Cut short the current and any later ``sleep()`` until ``resume()``."""
        self._wake.set()

    def resume(self) -> None:
        self._wake.clear()

    def close(self) -> None:
        if self.sock is None:
            return
        sock, self.sock = self.sock, None
        sock.close()
        logging.info("connection to controller %s:%d closed", *self.controller)


def recv_exactly(sock: socket.socket, n: int, deadline: float | None = None) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"timed out with {len(buf)} of {n} bytes")
            sock.settimeout(remaining)
        chunk = sock.recv(n - len(buf))
        if not chunk:
            raise ConnectionError("connection closed by peer")
        buf += chunk
    return bytes(buf)


def recv_message(sock: socket.socket, timeout: float | None = None) -> bytes:
    """Read one whole frame; the common header carries its total length.

    With ``timeout`` the whole frame must arrive within that many seconds.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    header = recv_exactly(sock, HEADER_SIZE, deadline)
    length = frame_length(header)
    return header + recv_exactly(sock, length - HEADER_SIZE, deadline)
