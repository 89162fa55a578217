"""
Message and verdict models.

Messages are immutable once created by the transport callback; the verdict
produced by the filter stage travels with the message so the render stage
can highlight matches without re-evaluating patterns.
"""

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SortKey(str, Enum):
    """Table ordering."""

    TIME = "time"
    LABEL = "label"


class IncludeMode(str, Enum):
    """Where include patterns are applied."""

    LABEL = "label"
    PAYLOAD = "payload"
    BOTH = "both"


class PreserveMode(str, Enum):
    """How much of a masked match stays visible."""

    NONE = "none"
    FIRST4 = "first4"
    LAST4 = "last4"
    BOTH4 = "both4"


class MatchVerdict(BaseModel):
    """
    Accept/reject decision for one message.

    `matched_pattern` is the first include pattern that matched, or None when
    no include patterns are configured.
    """

    included: bool
    label_matched: bool = False
    payload_matched: bool = False
    matched_pattern: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_match_info(self) -> bool:
        return self.included and self.matched_pattern is not None


REJECTED = MatchVerdict(included=False)
ACCEPTED = MatchVerdict(included=True)


class Message(BaseModel):
    """A single message as received from the broker."""

    label: str = Field(description="Topic the message was published on")
    payload: str = Field(description="Payload decoded as UTF-8")
    retained: bool = Field(default=False, description="Broker retained flag")
    arrival_time: float = Field(default_factory=time.time, description="Receive time (epoch seconds)")
    verdict: MatchVerdict = Field(default=ACCEPTED, description="Filter verdict for this message")

    model_config = ConfigDict(frozen=True)


def decode_payload(payload: bytes) -> str:
    """Decode a payload, replacing undecodable bytes."""
    if isinstance(payload, str):
        return payload
    return bytes(payload).decode("utf-8", errors="replace")
