"""
Notification Models

Resolved identities, rendered payloads and the record that ties a build to
its Slack message.
"""

import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ResolutionMethod(Enum):
    """How a commit author was matched to a Slack user."""
    EMAIL = "email"
    USERNAME = "username"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ResolvedUser:
    """A Slack identity derived from a commit author."""

    display_name: str
    method: ResolutionMethod = ResolutionMethod.UNRESOLVED
    user_id: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.method != ResolutionMethod.UNRESOLVED and bool(self.user_id)

    @property
    def mention(self) -> str:
        """Slack mention when resolved, the raw author name otherwise."""
        if self.resolved:
            return f"<@{self.user_id}>"
        return self.display_name

    @classmethod
    def unresolved(cls, author_name: str) -> "ResolvedUser":
        return cls(display_name=author_name or "unknown")


@dataclass(frozen=True)
class Payload:
    """A rendered Slack message."""

    text: str
    blocks: Tuple[Dict[str, Any], ...] = ()
    color: str = ""

    def to_message(self) -> Dict[str, Any]:
        """Arguments for chat.postMessage / chat.update."""
        message: Dict[str, Any] = {"text": self.text}
        if self.color:
            message["attachments"] = [{"color": self.color, "blocks": list(self.blocks)}]
        else:
            message["blocks"] = list(self.blocks)
        return message

    @property
    def content_hash(self) -> str:
        """SHA-256 over the canonical JSON form of the message."""
        canonical = json.dumps(self.to_message(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class NotificationState(Enum):
    """Lifecycle of a correlation key once a message exists."""
    POSTED = "posted"
    UPDATED = "updated"


@dataclass
class NotificationRecord:
    """Correlates one build with the Slack message describing it."""

    key: Tuple[str, str]
    channel: str
    message_id: str
    content_hash: str
    state: NotificationState = NotificationState.POSTED
    terminal: bool = False
    paused: bool = False
    last_sequence: int = 0

    @property
    def frozen(self) -> bool:
        """No further outbound calls are made for frozen records."""
        return self.terminal or self.paused
