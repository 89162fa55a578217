"""
Wildcard/substring pattern matching.

Pattern grammar, checked in order:
1. Exact equality
2. Single trailing `*`  -> prefix match
3. Single leading `*`   -> suffix match
4. Any other `*` usage  -> every `*` becomes `.*`, searched case-insensitively
5. No `*`               -> case-sensitive substring containment

Patterns that fail to compile never raise; they simply never match.
"""

import re
from typing import Dict, Iterable, Optional

import structlog

logger = structlog.get_logger(__name__)

WILDCARD = "*"


class PatternMatcher:
    """
    Evaluates text against wildcard patterns.

    Compiled wildcard expressions are cached per pattern, including failures,
    so a malformed pattern is only reported once.
    """

    def __init__(self) -> None:
        self._compiled_patterns: Dict[str, Optional["re.Pattern[str]"]] = {}

    def matches(self, text: str, pattern: str) -> bool:
        """Check a single pattern against text."""
        if text == pattern:
            return True

        if WILDCARD not in pattern:
            return pattern in text

        star_count = pattern.count(WILDCARD)
        if star_count == 1 and pattern.endswith(WILDCARD):
            return text.startswith(pattern[:-1])
        if star_count == 1 and pattern.startswith(WILDCARD):
            return text.endswith(pattern[1:])

        compiled = self.compile_wildcard(pattern)
        if compiled is None:
            return False
        return compiled.search(text) is not None

    def matches_any(self, text: str, patterns: Iterable[str]) -> bool:
        """True if any pattern matches."""
        return any(self.matches(text, pattern) for pattern in patterns)

    def compile_wildcard(self, pattern: str) -> Optional["re.Pattern[str]"]:
        """
        Compile a wildcard pattern to a case-insensitive regex.

        Returns None if the resulting expression is invalid.
        """
        if pattern in self._compiled_patterns:
            return self._compiled_patterns[pattern]

        try:
            compiled: Optional["re.Pattern[str]"] = re.compile(
                pattern.replace(WILDCARD, ".*"), re.IGNORECASE
            )
        except re.error as e:
            logger.warning(
                "Ignoring invalid wildcard pattern",
                pattern=pattern,
                error=str(e),
            )
            compiled = None

        self._compiled_patterns[pattern] = compiled
        return compiled
