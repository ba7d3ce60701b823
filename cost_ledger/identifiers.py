"""
Identifier canonicalization and the suffix-stripping variant ladder.

A cost-report cell such as "24-5-072-QUIE1, 24-5-073" yields the variants
{"24-5-072-quie1, 24-5-073", "24-5-072-quie1", "24-5-073", "24-5-072"}.
Only letter-bearing suffixes are stripped: "24-5-072" never collapses to
"24-5" because "072" is a structural segment, not a site tag.
"""

from __future__ import annotations

import re
from typing import Optional

WHITESPACE_RE = re.compile(r"\s+")
TOKEN_SPLIT_RE = re.compile(r"[,/;|\s]+")
SUFFIX_RE = re.compile(r"^(?P<stem>.*\S)[-_/](?P<suffix>[a-z0-9]+)$")
HAS_LETTER_RE = re.compile(r"[a-z]")


def canonicalize(value: Optional[str]) -> str:
    if not value:
        return ""
    return WHITESPACE_RE.sub(" ", str(value).lower()).strip()


def split_tokens(canonical: str) -> list[str]:
    return [token for token in TOKEN_SPLIT_RE.split(canonical) if token]


def strip_suffix(canonical: str) -> Optional[str]:
    """One rung of the ladder, or None when the trailing suffix is numeric or absent."""
    match = SUFFIX_RE.match(canonical)
    if match is None or not HAS_LETTER_RE.search(match.group("suffix")):
        return None
    return match.group("stem").rstrip("-_/") or None


def primary_forms(value: Optional[str]) -> frozenset[str]:
    """The canonical form and its split tokens, with no suffix stripping."""
    canonical = canonicalize(value)
    if not canonical:
        return frozenset()
    return frozenset([canonical, *split_tokens(canonical)])


def identifier_variants(value: Optional[str]) -> frozenset[str]:
    """
    Every matching form of an identifier.

    Built as the closure of one step (split into tokens, strip one
    letter-bearing suffix) starting from the canonical form, so running it
    over any of its own outputs gives back a subset of the same set.
    """
    canonical = canonicalize(value)
    if not canonical:
        return frozenset()

    seen = {canonical}
    pending = [canonical]
    while pending:
        current = pending.pop()
        following = split_tokens(current)
        stripped = strip_suffix(current)
        if stripped:
            following.append(stripped)
        for candidate in following:
            if candidate not in seen:
                seen.add(candidate)
                pending.append(candidate)
    return frozenset(seen)
