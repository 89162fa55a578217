"""
Latest-message-per-topic state store.

The single mutable source of truth for what the table shows. Entries are
created on the first accepted message for a topic, replaced on later
messages that differ, and never removed during a run.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from mqttsight.models.message import MatchVerdict, Message

logger = structlog.get_logger(__name__)

ANSI_SGR_RE = re.compile(r"\x1b\[\d+(;\d+)*m")
ANSI_RESET = "\x1b[0m"


def strip_ansi(text: str) -> str:
    """Remove SGR colour sequences."""
    return ANSI_SGR_RE.sub("", text)


def has_control_codes(text: str) -> bool:
    return ANSI_SGR_RE.search(text) is not None


def terminate_payload(payload: str) -> str:
    """Make sure coloured payloads end with a formatting reset."""
    if has_control_codes(payload) and not payload.endswith(ANSI_RESET):
        return payload + ANSI_RESET
    return payload


@dataclass
class StoredEntry:
    """Current state for one topic."""
    label: str
    payload: str
    retained: bool
    first_seen_order: int
    last_update: float
    cleared: bool = False
    contains_control_codes: bool = False
    match_info: Optional[MatchVerdict] = None


@dataclass
class ApplyResult:
    """Outcome of applying one batch."""
    updated: List[Message] = field(default_factory=list)
    skipped: int = 0
    timestamp: float = 0.0

    @property
    def changed(self) -> bool:
        return bool(self.updated)


class StateStore:
    """
    Map of topic -> StoredEntry with no-op suppression.

    Every message applied in the same batch receives the same timestamp so
    they sort and display as having arrived together.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: Dict[str, StoredEntry] = {}
        self._clock = clock
        self._next_order = 0
        self._last_applied: Optional[str] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, label: object) -> bool:
        return label in self._entries

    def get(self, label: str) -> Optional[StoredEntry]:
        return self._entries.get(label)

    def entries(self) -> List[StoredEntry]:
        """Entries in first-seen order."""
        return list(self._entries.values())

    def apply_batch(self, messages: Iterable[Message]) -> ApplyResult:
        """
        Upsert a batch of messages in arrival order.

        Messages identical to the stored entry (same payload and retained
        flag) are skipped without touching the timestamp.
        """
        now = self._clock()
        result = ApplyResult(timestamp=now)

        for message in messages:
            payload = terminate_payload(message.payload)
            existing = self._entries.get(message.label)

            if (
                existing is not None
                and existing.payload == payload
                and existing.retained == message.retained
            ):
                result.skipped += 1
                continue

            match_info = message.verdict if message.verdict.has_match_info else None
            contains_codes = has_control_codes(payload)

            if existing is None:
                self._entries[message.label] = StoredEntry(
                    label=message.label,
                    payload=payload,
                    retained=message.retained,
                    first_seen_order=self._next_order,
                    last_update=now,
                    contains_control_codes=contains_codes,
                    match_info=match_info,
                )
                self._next_order += 1
            else:
                existing.payload = payload
                existing.retained = message.retained
                existing.last_update = now
                existing.cleared = False
                existing.contains_control_codes = contains_codes
                existing.match_info = match_info

            self._last_applied = message.label
            result.updated.append(message)

        if result.changed:
            logger.debug(
                "Applied batch",
                updated=len(result.updated),
                skipped=result.skipped,
                topics=len(self._entries),
            )
        return result

    def mark_cleared(self, label: str) -> bool:
        """Flag an entry as cleared on the broker; returns False if unknown."""
        entry = self._entries.get(label)
        if entry is None:
            return False
        entry.cleared = True
        return True

    def most_recent(self) -> Optional[StoredEntry]:
        """Entry changed by the most recently applied message."""
        if self._last_applied is None:
            return None
        return self._entries.get(self._last_applied)
