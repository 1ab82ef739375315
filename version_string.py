"""
version_string.py
=================
Java version ids and JNLP-style version ranges.

  VersionId      – a concrete version such as ``1.8.0_292``, ``11.0.2`` or ``17``
  VersionRange   – one range: ``1.8`` (exact), ``1.8*`` (family), ``9+`` (at least),
                   or an ``&``-joined compound such as ``1.8* & 1.8.0_200+``
  VersionString  – space-separated union of ranges, e.g. ``"1.8* 11+"``

Comparison rules:
  - elements are split on ``.``, ``_`` and ``-``
  - numeric elements compare numerically, others lexically,
    and a numeric element sorts before an alphanumeric one
  - the shorter id is padded with ``0`` elements, so ``1.8 == 1.8.0``
"""

from __future__ import annotations

import functools
import re
from typing import Iterable, List, Optional, Sequence, Tuple, Union

_SEPARATORS = re.compile(r"[._-]")

MODIFIER_AT_LEAST = "+"
MODIFIER_FAMILY = "*"


def _compare_element(left: str, right: str) -> int:
    left_num, right_num = left.isdigit(), right.isdigit()
    if left_num and right_num:
        a, b = int(left), int(right)
    elif left_num:
        return -1
    elif right_num:
        return 1
    else:
        a, b = left, right
    return (a > b) - (a < b)


# ──────────────────────────────────────────────
#  VersionId
# ──────────────────────────────────────────────

@functools.total_ordering
class VersionId:
    """A concrete, comparable version id."""

    __slots__ = ("text", "elements")

    def __init__(self, text: str) -> None:
        text = str(text).strip()
        elements = tuple(_SEPARATORS.split(text)) if text else ()
        if not elements or any(not e for e in elements):
            raise ValueError(f"Malformed version id: {text!r}")
        self.text = text
        self.elements: Tuple[str, ...] = elements

    @classmethod
    def of(cls, value: Union["VersionId", str]) -> "VersionId":
        return value if isinstance(value, VersionId) else cls(value)

    def _padded(self, length: int) -> Tuple[str, ...]:
        return self.elements + ("0",) * (length - len(self.elements))

    def compare_to(self, other: "VersionId") -> int:
        length = max(len(self.elements), len(other.elements))
        for a, b in zip(self._padded(length), other._padded(length)):
            result = _compare_element(a, b)
            if result:
                return result
        return 0

    def starts_with(self, prefix: "VersionId") -> bool:
        """True if the leading elements of this id equal ``prefix``."""
        own = self._padded(max(len(self.elements), len(prefix.elements)))
        return all(_compare_element(a, b) == 0 for a, b in zip(prefix.elements, own))

    @property
    def major(self) -> Optional[int]:
        """Feature release number: ``8`` for ``1.8.0_292``, ``17`` for ``17.0.1``."""
        parts = self.elements
        try:
            if parts[0] == "1" and len(parts) >= 2:
                return int(parts[1])
            return int(parts[0])
        except ValueError:
            return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionId):
            return NotImplemented
        return self.compare_to(other) == 0

    def __lt__(self, other: "VersionId") -> bool:
        if not isinstance(other, VersionId):
            return NotImplemented
        return self.compare_to(other) < 0

    def __hash__(self) -> int:
        normalized = [str(int(e)) if e.isdigit() else e for e in self.elements]
        while len(normalized) > 1 and normalized[-1] == "0":
            normalized.pop()
        return hash(tuple(normalized))

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"VersionId({self.text!r})"


# ──────────────────────────────────────────────
#  VersionRange
# ──────────────────────────────────────────────

class VersionRange:
    """A single (possibly compound) version range."""

    def __init__(self, text: str) -> None:
        text = text.strip()
        if not text:
            raise ValueError("Empty version range")
        self.text = text
        self._terms: List[Tuple[VersionId, str]] = []
        for raw in text.split("&"):
            term = raw.strip()
            modifier = ""
            if term.endswith((MODIFIER_AT_LEAST, MODIFIER_FAMILY)):
                term, modifier = term[:-1], term[-1]
            self._terms.append((VersionId(term), modifier))

    @property
    def lower_bound(self) -> VersionId:
        return min(version for version, _ in self._terms)

    @property
    def is_exact(self) -> bool:
        return len(self._terms) == 1 and self._terms[0][1] == ""

    def contains(self, version: Union[VersionId, str]) -> bool:
        candidate = VersionId.of(version)
        for bound, modifier in self._terms:
            if modifier == MODIFIER_AT_LEAST:
                ok = candidate >= bound
            elif modifier == MODIFIER_FAMILY:
                ok = candidate.starts_with(bound)
            else:
                ok = candidate == bound
            if not ok:
                return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionRange):
            return NotImplemented
        return self._terms == other._terms

    def __hash__(self) -> int:
        return hash(tuple(self._terms))

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"VersionRange({self.text!r})"


# ──────────────────────────────────────────────
#  VersionString
# ──────────────────────────────────────────────

class VersionString:
    """
    A union of version ranges, as used in JNLP ``<java version="...">``.

    Example::

        >>> VersionString.from_string("1.8* 11+").contains("17.0.2")
        True
    """

    def __init__(self, ranges: Sequence[VersionRange]) -> None:
        if not ranges:
            raise ValueError("A version string needs at least one range")
        self.ranges: Tuple[VersionRange, ...] = tuple(ranges)

    @classmethod
    def from_string(cls, text: str) -> "VersionString":
        # "&" binds tighter than whitespace: "1.8* & 1.8.0_200+" is one range
        normalized = re.sub(r"\s*&\s*", "&", text.strip())
        return cls([VersionRange(part) for part in normalized.split()])

    @classmethod
    def from_jnlp(cls, text: str) -> "VersionString":
        """
        Parse a JRE ``version`` attribute.

        A plain platform version such as ``1.8`` names a whole family,
        so it is read as ``1.8*``.
        """
        parts = []
        for part in re.sub(r"\s*&\s*", "&", text.strip()).split():
            if "&" not in part and not part.endswith((MODIFIER_AT_LEAST, MODIFIER_FAMILY)):
                part += MODIFIER_FAMILY
            parts.append(part)
        return cls.from_string(" ".join(parts))

    def contains(self, version: Union[VersionId, str]) -> bool:
        candidate = VersionId.of(version)
        return any(r.contains(candidate) for r in self.ranges)

    def contains_any(self, versions: Iterable[Union[VersionId, str]]) -> bool:
        return any(self.contains(v) for v in versions)

    @property
    def lower_bound(self) -> VersionId:
        return min(r.lower_bound for r in self.ranges)

    def sort_key(self, version: Union[VersionId, str]) -> Tuple[bool, VersionId]:
        """Key ordering versions inside this string above those outside it."""
        candidate = VersionId.of(version)
        return self.contains(candidate), candidate

    def __lt__(self, other: "VersionString") -> bool:
        if not isinstance(other, VersionString):
            return NotImplemented
        return self.lower_bound < other.lower_bound

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionString):
            return NotImplemented
        return self.ranges == other.ranges

    def __hash__(self) -> int:
        return hash(self.ranges)

    def __str__(self) -> str:
        return " ".join(str(r) for r in self.ranges)

    def __repr__(self) -> str:
        return f"VersionString({str(self)!r})"
