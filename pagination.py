import re
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from errors import ErrorKind, LibraryError

_INTEGER = re.compile(r"[+-]?[0-9]+")


class Paginator:
    """Resolves ``offset``/``limit`` query parameters and builds page envelopes."""

    def __init__(self, default_limit: int, default_offset: int, default_maximum_limit: int) -> None:
        self.default_limit = default_limit
        self.default_offset = default_offset
        self.default_maximum_limit = default_maximum_limit

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Paginator):
            return NotImplemented
        return (self.default_limit, self.default_offset, self.default_maximum_limit) == (
            other.default_limit, other.default_offset, other.default_maximum_limit
        )

    def get_pagination_values(self, query: Mapping[str, str]) -> Tuple[int, int]:
        """Return ``(offset, limit)`` for a mapping of query parameters.

        Missing or blank parameters fall back to the defaults. The resolved
        limit is always checked against the maximum, including the default.
        """
        offset = _parse_non_negative(query.get("offset"), self.default_offset, ErrorKind.INVALID_OFFSET_PARAMETER)
        limit = _parse_non_negative(query.get("limit"), self.default_limit, ErrorKind.INVALID_LIMIT_PARAMETER)

        if limit > self.default_maximum_limit:
            raise LibraryError(ErrorKind.LIMIT_EXCEEDS_MAXIMUM)

        return offset, limit

    @staticmethod
    def build_page(items: Sequence[Any], offset: int, limit: int, total_count: int) -> Dict[str, Any]:
        return {
            "items": list(items),
            "count": len(items),
            "offset": offset,
            "limit": limit,
            "total_count": total_count,
        }


def _parse_non_negative(raw: Optional[str], default: int, kind: ErrorKind) -> int:
    if raw is None or raw == "":
        return default
    if not _INTEGER.fullmatch(raw):
        raise LibraryError(kind)
    value = int(raw)
    if value < 0:
        raise LibraryError(kind)
    return value
