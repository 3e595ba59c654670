from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(slots=True)
class AgentStats:
    connect_attempts: int = 0
    messages_received: int = 0
    messages_sent: int = 0
    bytes_sent: int = 0
    hellos_sent: int = 0
    hello_replies: int = 0
    capability_requests: int = 0
    decode_failures: int = 0
    unexpected_messages: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)
