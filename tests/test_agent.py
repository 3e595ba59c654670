from __future__ import annotations

import time

import pytest

from empower_agent.agent import Agent
from empower_agent.messages import (
    CellTLV,
    EntityClass,
    Message,
    MessageClass,
    MessageHeader,
    PeriodicityTLV,
)

from fakes import FakeConnection


def _agent(config, conn):
    agent = Agent(connection=conn)
    assert agent.init(config) is False
    return agent


def _inbound(mclass, eclass, seq=1):
    header = MessageHeader(sequence=seq, element_id=0, message_class=mclass, entity_class=eclass)
    return Message(header).to_bytes()


def test_init_reports_bad_config():
    assert Agent().init({"controller_addr": "not-an-ip"}) is True
    assert Agent().init({"controller_addr": "10.0.0.1", "n_prb": 1000}) is True


def test_init_accepts_mapping():
    agent = Agent()
    assert agent.init({"controller_addr": "10.0.0.1", "controller_port": 4433, "enb_id": 7}) is False
    assert agent.config is not None and agent.config.controller == ("10.0.0.1", 4433)
    assert agent.connection is not None


def test_start_before_init_fails():
    assert Agent().start() is True


def test_controller_reachable_after_five_seconds(config):
    conn = FakeConnection(delay_ms=2000, reachable_at_ms=5000)
    agent = _agent(config, conn)

    while not conn.written:
        agent.run_once()

    failed_attempts = conn.connect_attempts - 1
    assert failed_attempts >= 2
    assert conn.sleeps == failed_attempts
    assert agent.stats.connect_attempts == conn.connect_attempts
    assert conn.connected_at_ms is not None
    assert conn.connected_at_ms - 5000 <= config.delay_ms

    (hello,) = conn.sent()
    assert hello.header.message_class is MessageClass.REQUEST_SET
    assert hello.header.entity_class is EntityClass.HELLO_SERVICE
    assert hello.header.sequence == 1
    assert hello.find(PeriodicityTLV) == PeriodicityTLV(milliseconds=2000)
    assert conn.write_times_ms[0] - conn.connected_at_ms <= 2000


def test_no_hello_while_disconnected(config):
    conn = FakeConnection(reachable_at_ms=float("inf"))
    agent = _agent(config, conn)
    for _ in range(4):
        agent.run_once()
    assert conn.written == []
    assert conn.sleeps == 4
    assert agent.stats.connect_attempts == 4
    assert agent.sequencer is not None and agent.sequencer.next_sequence == 1


def test_keepalive_cadence_and_sequence(config):
    conn = FakeConnection(delay_ms=2000)
    agent = _agent(config, conn)
    for _ in range(5):
        agent.run_once()

    sent = conn.sent()
    assert [m.header.sequence for m in sent] == [1, 2, 3, 4, 5]
    assert {m.header.element_id for m in sent} == {0x19B}
    assert all(m.find(PeriodicityTLV).milliseconds == 2000 for m in sent)  # type: ignore[union-attr]
    gaps = [b - a for a, b in zip(conn.write_times_ms, conn.write_times_ms[1:])]
    assert all(g <= 2000 for g in gaps)
    assert agent.stats.hellos_sent == 5


def test_capabilities_request_is_answered_once(config):
    conn = FakeConnection()
    agent = _agent(config, conn)
    agent.run_once()
    agent.run_once()

    conn.inbound.append(_inbound(MessageClass.REQUEST_GET, EntityClass.CAPABILITIES_SERVICE))
    agent.run_once()

    sent = conn.sent()
    responses = [m for m in sent if m.header.message_class is MessageClass.RESPONSE_SUCCESS]
    assert len(responses) == 1
    resp = responses[0]
    assert resp.header.entity_class is EntityClass.CAPABILITIES_SERVICE
    assert resp.header.sequence == 3
    assert resp.header.element_id == 0x19B
    assert resp.find(CellTLV) == CellTLV(pci=1, n_prb=25, dl_earfcn=3350, ul_earfcn=21350)
    assert agent.stats.messages_received == 1


def test_data_iteration_sends_no_hello(config):
    conn = FakeConnection()
    agent = _agent(config, conn)
    conn.inbound.append(_inbound(MessageClass.RESPONSE_SUCCESS, EntityClass.HELLO_SERVICE))
    agent.run_once()
    assert conn.written == []
    assert agent.stats.hello_replies == 1


def test_garbage_is_dropped_and_loop_goes_on(config):
    conn = FakeConnection()
    agent = _agent(config, conn)
    conn.inbound.append(b"\x00garbage\xff\xff")
    agent.run_once()
    assert conn.written == []
    assert agent.stats.decode_failures == 1

    agent.run_once()
    (hello,) = conn.sent()
    assert hello.header.sequence == 1


def test_empty_read_is_a_no_op(config):
    conn = FakeConnection()
    agent = _agent(config, conn)
    conn.inbound.append(b"")
    agent.run_once()
    assert conn.written == []
    assert agent.stats.messages_received == 0


def test_unexpected_entity_class_does_not_stop(config):
    conn = FakeConnection()
    agent = _agent(config, conn)
    conn.inbound.append(_inbound(MessageClass.REQUEST_GET, 77))
    agent.run_once()
    agent.run_once()
    assert agent.stats.unexpected_messages == 1
    assert len(conn.written) == 1


class ExplodingConnection(FakeConnection):
    def write_message(self, data: bytes) -> int:
        raise RuntimeError("boom")


def test_exception_ends_loop_and_is_kept(config, caplog):
    conn = ExplodingConnection()
    agent = _agent(config, conn)
    agent.main_loop()
    assert isinstance(agent.error, RuntimeError)
    assert "caught exception in main agent loop" in caplog.text
    assert conn.is_connection_closed()


def test_start_and_stop_thread(config):
    conn = FakeConnection(delay_ms=10, real_time=True)
    agent = _agent(config, conn)
    assert agent.start() is False
    assert agent.start() is True

    deadline = time.monotonic() + 5.0
    while agent.stats.hellos_sent < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    agent.stop(timeout=2.0)

    assert not agent.is_running
    assert agent.error is None
    assert agent.stats.hellos_sent >= 3
    seqs = [m.header.sequence for m in conn.sent()]
    assert seqs == list(range(1, len(seqs) + 1))


def test_slow_connect_still_converges_within_one_interval(config):
    conn = FakeConnection(delay_ms=2000, reachable_at_ms=10, slow_connect=True)
    agent = _agent(config, conn)
    while not conn.written:
        agent.run_once()

    assert conn.connected_at_ms is not None
    assert conn.connected_at_ms - 10 <= 2000
    gaps = [b - a for a, b in zip(conn.attempt_times_ms, conn.attempt_times_ms[1:])]
    assert gaps and all(g <= 2000 for g in gaps)


def test_run_once_before_init_raises():
    agent = Agent(connection=FakeConnection())
    with pytest.raises(RuntimeError):
        agent.run_once()


def test_reinit_rebuilds_own_connection():
    agent = Agent()
    assert agent.init({"controller_addr": "127.0.0.1", "controller_port": 1111}) is False
    old = agent.connection
    assert agent.init({"controller_addr": "10.0.0.9", "controller_port": 2222, "delay_ms": 500}) is False
    assert agent.connection is not old
    assert agent.connection is not None
    assert agent.connection.controller == ("10.0.0.9", 2222)
    assert agent.connection.delay_ms == 500


def test_reinit_keeps_injected_connection_and_sequence(config):
    conn = FakeConnection()
    agent = _agent(config, conn)
    agent.run_once()
    agent.run_once()
    assert agent.init(config) is False
    assert agent.connection is conn
    agent.run_once()
    assert [m.header.sequence for m in conn.sent()] == [1, 2, 3]


def test_init_rejected_while_running(config):
    conn = FakeConnection(delay_ms=10, real_time=True)
    agent = _agent(config, conn)
    assert agent.start() is False
    try:
        assert agent.init(config) is True
    finally:
        agent.stop(timeout=2.0)
    assert not agent.is_running
