"""Application cache – CleaningMode."""
from __future__ import annotations

import enum

from tagcache.kernel.errors import InvalidModeError

__all__ = ["CleaningMode"]


class CleaningMode(str, enum.Enum):
    """The five ways ``clean`` can select rows.

    The string values match the mode names cache frontends pass around, so
    ``CleaningMode("matchingTag")`` works as well as the member itself.
    """

    ALL = "all"
    OLD = "old"
    MATCHING_TAG = "matchingTag"
    NOT_MATCHING_TAG = "notMatchingTag"
    MATCHING_ANY_TAG = "matchingAnyTag"

    @classmethod
    def parse(cls, mode: object) -> "CleaningMode":
        """Return *mode* as a member or raise :class:`InvalidModeError`."""
        if isinstance(mode, cls):
            return mode
        if isinstance(mode, str):
            try:
                return cls(mode)
            except ValueError:
                pass
            try:
                return cls[mode.upper()]
            except KeyError:
                pass
        raise InvalidModeError(mode)

    @property
    def uses_tags(self) -> bool:
        return self in (
            CleaningMode.MATCHING_TAG,
            CleaningMode.NOT_MATCHING_TAG,
            CleaningMode.MATCHING_ANY_TAG,
        )
