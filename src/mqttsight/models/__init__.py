"""
Data models package.

Contains the value types passed between pipeline stages:
- Messages as delivered by the transport
- Filter verdicts
- Display enumerations (sort key, include mode, preserve mode)
"""

from mqttsight.models.message import (
    IncludeMode,
    MatchVerdict,
    Message,
    PreserveMode,
    SortKey,
)

__all__ = [
    "IncludeMode",
    "MatchVerdict",
    "Message",
    "PreserveMode",
    "SortKey",
]
