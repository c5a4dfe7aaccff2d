"""Message types passed between the channel adapter and the shell."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class InboundMessage:
    """Message received from a chat channel."""

    channel: str  # telegram, cli, ...
    conversation_id: str  # chat identifier; keys the context store
    delivery_id: str  # platform-unique id of this delivery (update_id)
    text: str = ""
    voice_file_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)  # Channel-specific data

    @property
    def is_voice(self) -> bool:
        return bool(self.voice_file_id)

    @property
    def session_key(self) -> str:
        return f"{self.channel}:{self.conversation_id}"


@dataclass
class OutboundMessage:
    """Reply to send to a chat channel."""

    channel: str
    conversation_id: str
    text: str
    voice: bool = False  # also synthesize and send as audio
    reply_to: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
