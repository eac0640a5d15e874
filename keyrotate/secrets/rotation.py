"""Managed rotation of secret values.

A managed key has an ordered rotation list of labeled candidate values and an
active value (the flat field of the same name). The functions here compute new
documents in place; loading, locking and saving are the coordinator's job.

The active value is never forced to follow list edits: removing the entry
that matches it leaves the key desynchronized, which ``probe`` reports as
unmanaged until a rotation selects a listed value again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from keyrotate.utils.errors import SecretConflictError, ValidationError, create_error_suggestions

from .ledger import ManagedEntry, SecretDocument, write_secret

logger = logging.getLogger(__name__)

COMMENT_PREFIX = "key-"


@dataclass(frozen=True)
class ByIndex:
    """Select the entry at a list position."""

    index: int


@dataclass(frozen=True)
class ByComment:
    """Select the first entry whose comment matches, ignoring case and outer whitespace."""

    comment: str


@dataclass(frozen=True)
class Next:
    """Select the entry after the active one, wrapping to the first."""


Search = Union[ByIndex, ByComment, Next]


@dataclass(frozen=True)
class ProbeResult:
    """Whether the active value belongs to the rotation list, and where."""

    is_managed: bool
    index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"result": self.is_managed, "index": self.index}


NOT_MANAGED = ProbeResult(is_managed=False, index=-1)


def parse_search(raw: Any) -> Search:
    """
    Resolve a raw search argument into a search variant.

    An int (or a string that parses as one) always means an index, even when
    an entry's comment is that same number.

    Args:
        raw: None, an int, or a string

    Returns:
        Search: ByIndex, ByComment or Next
    """
    if isinstance(raw, (ByIndex, ByComment, Next)):
        return raw
    if raw is None or isinstance(raw, bool):
        return Next()
    if isinstance(raw, int):
        return ByIndex(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return Next()
        try:
            return ByIndex(int(text))
        except ValueError:
            return ByComment(text)
    raise ValidationError(f"Unsupported search value: {raw!r}")


def default_comment(now: Optional[datetime] = None) -> str:
    """Generate an entry comment such as ``key-20240131235959``."""
    moment = now or datetime.now(timezone.utc)
    return f"{COMMENT_PREFIX}{moment.strftime('%Y%m%d%H%M%S')}"


def _find_active(entries: List[ManagedEntry], active: Optional[str]) -> int:
    if active is None:
        return -1
    for index, entry in enumerate(entries):
        if entry.value == active:
            return index
    return -1


def probe(document: SecretDocument, key: str) -> ProbeResult:
    """
    Locate the active value of ``key`` in its rotation list.

    Returns:
        ProbeResult: ``(False, -1)`` when there is no list or no entry matches
    """
    entries = document.entries(key)
    if not entries:
        return NOT_MANAGED
    index = _find_active(entries, document.flat.get(key))
    return ProbeResult(is_managed=index != -1, index=index)


def append_entry(document: SecretDocument, key: str, comment: str, value: str) -> ManagedEntry:
    """Add a candidate value to the end of the rotation list; the active value is untouched."""
    if not isinstance(comment, str) or not isinstance(value, str):
        raise ValidationError("Managed entry comment and value must be strings")
    entry = ManagedEntry(comment=comment, value=value)
    document.managed.setdefault(key, []).append(entry)
    logger.debug(f"Appended entry {len(document.managed[key]) - 1} ({comment!r}) to {key}")
    return entry


def splice_entry(document: SecretDocument, key: str, index: int) -> Optional[ManagedEntry]:
    """
    Remove the entry at ``index``.

    An absent list or an out-of-range index is silently ignored, so removing an
    already removed entry is harmless. This also hides wrong indices from the
    caller; check the return value when that matters.

    Returns:
        Optional[ManagedEntry]: Removed entry, or None when nothing was removed
    """
    entries = document.managed.get(key)
    if not entries or isinstance(index, bool) or not isinstance(index, int):
        return None
    if index < 0 or index >= len(entries):
        return None
    removed = entries.pop(index)
    logger.debug(f"Removed entry {index} ({removed.comment!r}) from {key}")
    return removed


def select_entry(entries: List[ManagedEntry], active: Optional[str], search: Search) -> Optional[ManagedEntry]:
    """
    Choose the entry a rotation moves to.

    Precedence: an in-range index, then a comment match, then the entry after
    the active one (wrapping, or the first entry when nothing is active).
    """
    if not entries:
        return None

    if isinstance(search, ByIndex) and 0 <= search.index < len(entries):
        return entries[search.index]

    if isinstance(search, ByComment):
        wanted = search.comment.strip().lower()
        if wanted:
            for entry in entries:
                if str(entry.comment).strip().lower() == wanted:
                    return entry

    current = _find_active(entries, active)
    if current + 1 < len(entries):
        return entries[current + 1]
    return entries[0]


def rotate(document: SecretDocument, key: str, search: Any = None) -> Optional[ManagedEntry]:
    """
    Make another managed value of ``key`` active.

    Args:
        document: Document to modify
        key: Logical key
        search: Raw search value or a Search variant

    Returns:
        Optional[ManagedEntry]: Selected entry, or None when the key has no list
    """
    entries = document.entries(key)
    selected = select_entry(entries, document.flat.get(key), parse_search(search))
    if selected is None:
        return None
    write_secret(document, key, selected.value)
    logger.debug(f"Rotated {key} to entry {entries.index(selected)} ({selected.comment!r})")
    return selected


def migrate(document: SecretDocument, key: str, comment: str) -> Optional[ManagedEntry]:
    """
    Move the current active value into the rotation list.

    Returns:
        Optional[ManagedEntry]: New entry, or None when there is no active value

    Raises:
        SecretConflictError: If the active value is already in the list
    """
    result = probe(document, key)
    if result.is_managed:
        raise SecretConflictError(
            f"Key {key} is already managed",
            key=key,
            index=result.index,
            suggestions=create_error_suggestions("already_managed", key=key),
        )

    active = document.flat.get(key)
    if not active:
        return None
    return append_entry(document, key, comment, active)


def track_active(document: SecretDocument, key: str, comment: str) -> Optional[ManagedEntry]:
    """Add the active value to a non-empty rotation list unless it is already there."""
    if not document.entries(key) or probe(document, key).is_managed:
        return None
    return migrate(document, key, comment)


def remove_entry(document: SecretDocument, key: str, index: int) -> bool:
    """
    Remove an entry and, if it was the active one, rotate to the next.

    Returns:
        bool: True if an entry was removed
    """
    before = probe(document, key)
    if splice_entry(document, key, index) is None:
        return False
    if before.is_managed and before.index == index:
        rotate(document, key, Next())
    return True


def clear_entries(document: SecretDocument, key: str) -> bool:
    """
    Blank the active value and empty the rotation list.

    A key that was never written and has no list is left absent.

    Returns:
        bool: True if anything changed
    """
    if key not in document.flat and not document.managed.get(key):
        return False

    changed = write_secret(document, key, "")
    if document.managed.get(key):
        document.managed[key] = []
        changed = True
    return changed


def current_entry(document: SecretDocument, key: str, comment: bool = False) -> Optional[Union[int, str]]:
    """Index of the active entry, or its comment when requested and non-empty."""
    result = probe(document, key)
    if not result.is_managed:
        return None
    if comment:
        label = document.entries(key)[result.index].comment
        if label:
            return label
    return result.index


def list_comments(document: SecretDocument, key: str) -> Dict[int, str]:
    """Position to comment for every entry of ``key``; values are never included."""
    return {index: entry.comment for index, entry in enumerate(document.entries(key))}


def manager_view(document: SecretDocument) -> Dict[str, List[Dict[str, Any]]]:
    """
    Redacted view of every rotation list.

    Returns:
        Dict[str, List[Dict[str, Any]]]: Per key, ``{"comment", "selected"}`` for each entry
    """
    view: Dict[str, List[Dict[str, Any]]] = {}
    for key, entries in document.managed.items():
        active = document.flat.get(key)
        view[key] = [{"comment": entry.comment, "selected": entry.value == active} for entry in entries]
    return view
