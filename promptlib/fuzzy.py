"""Subsequence fuzzy matcher for prompt titles.

A candidate matches when every query character appears in it, in order
(case-insensitive unless smart_case is on and the query has capitals).
Among the possible alignments the best-scoring one is kept:

- each matched character is worth 1.0
- +1.0 when it directly follows the previous matched character
- +0.8 when it starts a word (string start, after a separator, or a camelCase hump)
- -0.05 per skipped character between matches, -0.02 per leading skipped character

The raw score is normalised by the best possible score for the query, then
nudged down slightly for longer candidates so tighter titles win ties.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .errors import SearchCancelledError

_SEPARATORS = set(" _-/.:,()[]")
_MATCH = 1.0
_CONSECUTIVE = 1.0
_WORD_START = 0.8
_GAP = 0.05
_LEADING = 0.02


@dataclass
class StringMatchCandidate:
    id: int
    string: str


@dataclass
class StringMatch:
    candidate_id: int
    score: float
    string: str
    positions: list[int] = field(default_factory=list)


def _is_word_start(text: str, ix: int) -> bool:
    if ix == 0:
        return True
    prev, cur = text[ix - 1], text[ix]
    if prev in _SEPARATORS:
        return True
    return prev.islower() and cur.isupper()


def _fold(text: str) -> str:
    """Lowercase one character at a time, leaving any whose lowercase form is longer."""
    return "".join(ch.lower() if len(ch.lower()) == 1 else ch for ch in text)


def score_match(query: str, candidate: str, smart_case: bool = False) -> tuple[float, list[int]] | None:
    """Score one candidate. Returns (score, matched positions) or None."""
    if not query:
        return 0.0, []

    case_sensitive = smart_case and any(c.isupper() for c in query)
    q = query if case_sensitive else _fold(query)
    c = candidate if case_sensitive else _fold(candidate)
    n, m = len(q), len(c)
    if n > m:
        return None

    # Cheap subsequence check before the quadratic alignment.
    pos = 0
    for ch in q:
        pos = c.find(ch, pos)
        if pos < 0:
            return None
        pos += 1

    neg = float("-inf")
    best = [[neg] * m for _ in range(n)]
    back = [[-1] * m for _ in range(n)]

    for j in range(m):
        if c[j] == q[0]:
            bonus = _WORD_START if _is_word_start(candidate, j) else 0.0
            best[0][j] = _MATCH + bonus - _LEADING * j

    for i in range(1, n):
        for j in range(i, m):
            if c[j] != q[i]:
                continue
            bonus = _WORD_START if _is_word_start(candidate, j) else 0.0
            for k in range(i - 1, j):
                prev = best[i - 1][k]
                if prev == neg:
                    continue
                if k == j - 1:
                    step = prev + _MATCH + _CONSECUTIVE + bonus
                else:
                    step = prev + _MATCH + bonus - _GAP * (j - k - 1)
                if step > best[i][j]:
                    best[i][j] = step
                    back[i][j] = k

    end = max(range(m), key=lambda j: best[n - 1][j])
    raw = best[n - 1][end]
    if raw == neg:
        return None

    positions = [end]
    for i in range(n - 1, 0, -1):
        positions.append(back[i][positions[-1]])
    positions.reverse()

    ceiling = _MATCH * n + _CONSECUTIVE * (n - 1) + _WORD_START
    score = max(raw, 0.0) / ceiling - 0.001 * (m - n)
    return score, positions


def match_strings(
    candidates: list[StringMatchCandidate],
    query: str,
    smart_case: bool = False,
    max_results: int = 100,
    cancel_flag: threading.Event | None = None,
) -> list[StringMatch]:
    """Return up to max_results matches, best score first, candidate order on ties."""
    matches: list[StringMatch] = []
    for candidate in candidates:
        if cancel_flag is not None and cancel_flag.is_set():
            raise SearchCancelledError(f"search for {query!r} was superseded")
        result = score_match(query, candidate.string, smart_case)
        if result is None:
            continue
        score, positions = result
        matches.append(StringMatch(candidate.id, score, candidate.string, positions))

    matches.sort(key=lambda mat: (-mat.score, mat.candidate_id))
    return matches[:max_results]
