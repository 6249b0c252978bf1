"""Ignore policy for local and remote paths.

A single regular expression decides which relative paths take no part in
a sync. It is composed from an ordered list of fragments: the built-in
exclusion of the state and trash directories always comes first, followed
by an optional user pattern. A path is ignored when the whole path matches
one of the fragments.

Examples:
    >>> ignore = IgnorePattern.build(r".*\\.tmp")
    >>> ignore.is_ignored(".trash")
    True
    >>> ignore.is_ignored("notes/draft.tmp")
    True
    >>> ignore.is_ignored("notes/draft.txt")
    False
"""

import re
from collections.abc import Sequence
from typing import Optional

from ..config import SETTINGS_DIR_NAME, STATE_FILE_NAME, TRASH_DIR_NAME
from ..exceptions import DriveConfigError

BUILTIN_IGNORE_PATTERN = "|".join(
    re.escape(name) for name in (SETTINGS_DIR_NAME, STATE_FILE_NAME, TRASH_DIR_NAME)
)
"""Local settings folder, state file and trash folder"""


class IgnorePattern:
    """Compiled ignore pattern built from regex fragments."""

    def __init__(self, fragments: Sequence[str]):
        """Compile the pattern.

        Args:
            fragments: Regular expressions, each matched against the full
                relative path

        Raises:
            DriveConfigError: If a fragment is not a valid regular expression
        """
        self._fragments = tuple(f for f in fragments if f)
        for fragment in self._fragments:
            try:
                re.compile(fragment)
            except re.error as e:
                raise DriveConfigError(
                    f"Invalid ignore pattern {fragment!r}: {e}"
                ) from e

        combined = "|".join(f"(?:{f})" for f in self._fragments)
        self._regex: Optional[re.Pattern[str]] = (
            re.compile(combined) if combined else None
        )

    @classmethod
    def build(cls, extra: Optional[str] = None) -> "IgnorePattern":
        """Build the pattern used for a sync run.

        Args:
            extra: Optional user supplied pattern

        Returns:
            IgnorePattern with the built-in exclusion and the user pattern
        """
        fragments = [BUILTIN_IGNORE_PATTERN]
        if extra:
            fragments.append(extra)
        return cls(fragments)

    @property
    def fragments(self) -> tuple[str, ...]:
        return self._fragments

    @property
    def pattern(self) -> str:
        return self._regex.pattern if self._regex is not None else ""

    def is_ignored(self, rel_path: str) -> bool:
        """Check a root-relative path (forward slashes) against the pattern."""
        if self._regex is None:
            return False
        return self._regex.fullmatch(rel_path) is not None

    def __repr__(self) -> str:
        return f"IgnorePattern({list(self._fragments)!r})"
