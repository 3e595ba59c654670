"""EmPOWER eNB agent

Keeps a base station attached to an EmPOWER controller:
- one TCP session, re-established whenever it drops
- a HELLO every poll interval, carrying that interval
- CAPABILITIES requests answered with the cell's configuration
"""

from .agent import Agent
from .config import AgentConfig, ConfigError

__all__ = ["Agent", "AgentConfig", "ConfigError"]
