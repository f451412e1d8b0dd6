import re
from typing import Iterable, Optional

from .errors import InvalidRequest
from .types import TagEntry, TagKind

_COMMIT_HASH = re.compile(r"[0-9abcdef]{7}")
_MAJOR = re.compile(r"\d+")
_MINOR = re.compile(r"\d+\.\d+")
_BUGFIX = re.compile(r"\d+\.\d+\.\d+")


def classify(tag: str) -> TagKind:
    lowered = tag.lower()
    if lowered == "latest":
        return TagKind.LATEST
    if lowered.endswith("-snapshot"):
        return TagKind.SNAPSHOT
    if lowered.startswith("snapshot-"):
        return TagKind.AURORA_SNAPSHOT_VERSION
    # Must run before MAJOR: "4007103" is a commit hash, not a major version
    if _COMMIT_HASH.fullmatch(tag):
        return TagKind.COMMIT_HASH
    if _MAJOR.fullmatch(tag):
        return TagKind.MAJOR
    if _MINOR.fullmatch(tag):
        return TagKind.MINOR
    if _BUGFIX.fullmatch(tag):
        return TagKind.BUGFIX
    return TagKind.AURORA_VERSION


def to_entries(tags: Iterable[str]) -> list[TagEntry]:
    return [TagEntry(name=tag, kind=classify(tag)) for tag in tags]


def filter_tags(entries: list[TagEntry], pattern: Optional[str]) -> list[TagEntry]:
    """Keep entries whose name contains a match for the regular expression."""
    if not pattern:
        return entries
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise InvalidRequest(f"Invalid tag filter={pattern}: {e}") from e
    return [entry for entry in entries if regex.search(entry.name)]


def group_tags(entries: Iterable[TagEntry]) -> dict[TagKind, list[TagEntry]]:
    """Group entries by kind, keeping first-seen kind order."""
    groups: dict[TagKind, list[TagEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.kind, []).append(entry)
    return groups
