from __future__ import annotations

import pytest

from empower_agent.config import AgentConfig


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig(
        controller_addr="127.0.0.1",
        controller_port=2210,
        delay_ms=2000,
        pci=1,
        n_prb=25,
        dl_earfcn=3350,
        ul_earfcn=21350,
        enb_id=0x19B,
    )
