"""Word-level diffs between a base text and a revised phrasing."""

import difflib
from typing import Callable, Literal, Optional

from pydantic import BaseModel
from rich.markup import escape


DiffKind = Literal["unchanged", "added", "removed"]


class DiffToken(BaseModel):
    """One word of a diff, tagged with how it relates to the original."""

    text: str
    kind: DiffKind

    model_config = {"frozen": True}


def _words(text: Optional[str]) -> list[str]:
    # None is treated as empty so callers never have to guard
    return (text or "").split()


def word_diff(original: Optional[str], modified: Optional[str]) -> list[DiffToken]:
    """
    Greedy two-pointer word diff.

    Walks both word lists once. Equal words are unchanged; otherwise the
    modified word is emitted as added, and once the modified text runs out
    the remaining original words are emitted as removed.

    This is an O(n) approximation, not a minimal edit script: a reordered or
    substituted word shows up as an addition followed later by a removal.
    That is fine for paragraph-length content. Use lcs_word_diff when a
    minimal diff is needed; it has the same contract.

    Comparison is exact (case and punctuation sensitive). Never raises.

    Example:
        >>> [t.kind for t in word_diff("Led a team", "Led a team in Q1")]
        ['unchanged', 'unchanged', 'unchanged', 'added', 'added']
    """
    old = _words(original)
    new = _words(modified)
    tokens: list[DiffToken] = []
    i = j = 0

    while i < len(old) or j < len(new):
        if i < len(old) and j < len(new) and old[i] == new[j]:
            tokens.append(DiffToken(text=old[i], kind="unchanged"))
            i += 1
            j += 1
        elif j < len(new):
            tokens.append(DiffToken(text=new[j], kind="added"))
            j += 1
        else:
            tokens.append(DiffToken(text=old[i], kind="removed"))
            i += 1

    return tokens


def lcs_word_diff(original: Optional[str], modified: Optional[str]) -> list[DiffToken]:
    """
    Minimal word diff built on difflib's longest-matching-block search.

    Replacements are emitted as the removed words followed by the added words.
    Same tagging contract as word_diff.
    """
    old = _words(original)
    new = _words(modified)
    tokens: list[DiffToken] = []

    matcher = difflib.SequenceMatcher(a=old, b=new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            tokens.extend(DiffToken(text=w, kind="unchanged") for w in old[i1:i2])
            continue
        if tag in ("delete", "replace"):
            tokens.extend(DiffToken(text=w, kind="removed") for w in old[i1:i2])
        if tag in ("insert", "replace"):
            tokens.extend(DiffToken(text=w, kind="added") for w in new[j1:j2])

    return tokens


DiffFunction = Callable[[Optional[str], Optional[str]], list[DiffToken]]


def reconstruct(tokens: list[DiffToken], side: Literal["original", "modified"]) -> str:
    """Rebuild one side of a diff (whitespace normalized to single spaces)."""
    dropped: DiffKind = "added" if side == "original" else "removed"
    return " ".join(t.text for t in tokens if t.kind != dropped)


def summarize_diff(tokens: list[DiffToken]) -> dict[str, int]:
    """Count tokens per kind."""
    counts = {"unchanged": 0, "added": 0, "removed": 0}
    for token in tokens:
        counts[token.kind] += 1
    return counts


def render_word_diff(tokens: list[DiffToken]) -> str:
    """
    Render tokens as rich console markup.

    Added words are green, removed words red with strikethrough.
    """
    styles = {"added": "bold green", "removed": "red strike"}
    parts = []
    for token in tokens:
        text = escape(token.text)
        style = styles.get(token.kind)
        parts.append(f"[{style}]{text}[/{style}]" if style else text)
    return " ".join(parts)
