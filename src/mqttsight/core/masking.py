"""
Masking engine for sensitive substrings in topics and payloads.

Each configured pattern is located case-insensitively and replaced with
asterisks, optionally keeping a few characters visible depending on the
preserve mode. Patterns are applied in order, each one scanning the output
of the previous one.
"""

import re
from typing import Dict, List, Optional, Sequence

import structlog

from mqttsight.models.message import PreserveMode

logger = structlog.get_logger(__name__)

MASK_CHAR = "*"
KEEP = 4


def mask_match(match: str, preserve: PreserveMode) -> str:
    """
    Mask a single matched substring according to the preserve mode.

    Args:
        match: The matched text
        preserve: How many characters remain visible

    Returns:
        Masked text of the same length
    """
    length = len(match)

    if preserve == PreserveMode.FIRST4:
        if length <= KEEP:
            return match
        return match[:KEEP] + MASK_CHAR * (length - KEEP)

    if preserve == PreserveMode.LAST4:
        if length <= KEEP:
            return match
        return MASK_CHAR * (length - KEEP) + match[-KEEP:]

    if preserve == PreserveMode.BOTH4:
        if length <= KEEP * 2:
            return match
        return match[:KEEP] + MASK_CHAR * (length - KEEP * 2) + match[-KEEP:]

    return MASK_CHAR * length


class Masker:
    """
    Applies masking with a runtime on/off gate.

    Features:
    - Case-insensitive pattern search
    - Preserve modes: none, first4, last4, both4
    - Toggle without touching the configured pattern list
    """

    def __init__(
        self,
        patterns: Sequence[str] = (),
        preserve: PreserveMode = PreserveMode.NONE,
        enabled: Optional[bool] = None,
    ) -> None:
        self.patterns: List[str] = list(patterns)
        self.preserve = PreserveMode(preserve)
        # Masking starts on whenever patterns are configured
        self.enabled = bool(self.patterns) if enabled is None else enabled
        self._compiled_patterns: Dict[str, Optional["re.Pattern[str]"]] = {}
        logger.debug(
            "Masker initialized",
            patterns=len(self.patterns),
            preserve=self.preserve.value,
            enabled=self.enabled,
        )

    @property
    def has_patterns(self) -> bool:
        return bool(self.patterns)

    def toggle(self) -> bool:
        """Flip the masking gate; returns the new state."""
        self.enabled = not self.enabled
        return self.enabled

    def mask(self, text: str) -> str:
        """Mask text, or return it unchanged when masking is off."""
        if not self.enabled or not self.patterns:
            return text
        return mask_text(text, self.patterns, self.preserve, self._compiled_patterns)


def mask_text(
    text: str,
    patterns: Sequence[str],
    preserve: PreserveMode,
    cache: Optional[Dict[str, Optional["re.Pattern[str]"]]] = None,
) -> str:
    """
    Mask every case-insensitive occurrence of each pattern.

    Patterns that are not valid expressions are skipped.
    """
    if cache is None:
        cache = {}

    masked_text = text
    for pattern in patterns:
        regex = _compile(pattern, cache)
        if regex is None:
            continue
        masked_text = regex.sub(lambda m: mask_match(m.group(0), preserve), masked_text)
    return masked_text


def _compile(
    pattern: str,
    cache: Dict[str, Optional["re.Pattern[str]"]],
) -> Optional["re.Pattern[str]"]:
    if pattern in cache:
        return cache[pattern]
    try:
        compiled: Optional["re.Pattern[str]"] = re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning("Ignoring invalid mask pattern", pattern=pattern, error=str(e))
        compiled = None
    cache[pattern] = compiled
    return compiled
