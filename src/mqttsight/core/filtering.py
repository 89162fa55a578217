"""
Include/exclude filtering.

Exclude patterns are tested against the topic only and always win. Include
patterns are tested against the topic, the payload, or both, and the first
pattern that matches is recorded so the table can highlight it later.
"""

from typing import List, Optional, Sequence

import structlog

from mqttsight.models.message import ACCEPTED, REJECTED, IncludeMode, MatchVerdict
from mqttsight.core.patterns import PatternMatcher

logger = structlog.get_logger(__name__)


class FilterEngine:
    """Per-message accept/reject decisions; pure function of its patterns."""

    def __init__(
        self,
        exclude: Sequence[str] = (),
        include: Sequence[str] = (),
        mode: IncludeMode = IncludeMode.BOTH,
        matcher: Optional[PatternMatcher] = None,
    ) -> None:
        self.exclude: List[str] = list(exclude)
        self.include: List[str] = list(include)
        self.mode = IncludeMode(mode)
        self.matcher = matcher or PatternMatcher()

    def is_excluded(self, label: str) -> bool:
        """True if the topic matches any exclude pattern."""
        if not self.exclude:
            return False
        return self.matcher.matches_any(label, self.exclude)

    def match_include(self, label: str, payload: str) -> MatchVerdict:
        """
        Evaluate include patterns only.

        Returns:
            ACCEPTED when no include patterns are configured, a verdict naming
            the first matching pattern, or REJECTED when nothing matched.
        """
        if not self.include:
            return ACCEPTED

        check_label = self.mode in (IncludeMode.LABEL, IncludeMode.BOTH)
        check_payload = self.mode in (IncludeMode.PAYLOAD, IncludeMode.BOTH)

        for pattern in self.include:
            label_matched = check_label and self.matcher.matches(label, pattern)
            payload_matched = check_payload and self.matcher.matches(payload, pattern)
            if label_matched or payload_matched:
                return MatchVerdict(
                    included=True,
                    label_matched=label_matched,
                    payload_matched=payload_matched,
                    matched_pattern=pattern,
                )

        return REJECTED

    def evaluate(self, label: str, payload: str) -> MatchVerdict:
        """Full verdict: exclude first, then include."""
        if self.is_excluded(label):
            logger.debug("Excluded topic", topic=label)
            return REJECTED
        return self.match_include(label, payload)
