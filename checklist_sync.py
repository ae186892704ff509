"""Keep the "Pull Requests" section of a checklist document in sync.

A section is the run of root blocks after a heading whose text matches the
section title, up to the next heading. Every entry is one paragraph naming a
pull request URL, prefixed with its status marker:

    ## Pull Requests
    - https://github.com/org/repo/pull/1     (open)
    + https://github.com/org/repo/pull/2     (merged)
    x https://github.com/org/repo/pull/3     (closed)

All mutations work in place on sibling indexes of ``doc.content`` and return
``True`` only when the document changed. Missing sections and entries are
normal results (``None`` / ``False``), never exceptions.

URLs are matched as substrings of the entry text, so ``.../pull/1`` also
matches an entry for ``.../pull/12``. If several headings share the title only
the first one is used.
"""

from __future__ import annotations

import logging
from enum import Enum

from checklist_document import Doc, Heading, Mark, Paragraph, Text, flatten

logger = logging.getLogger(__name__)

DEFAULT_SECTION_TITLE = "Pull Requests"
DEFAULT_ENTRY_PREFIX = "- "


class PrStatus(str, Enum):
    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"

    @property
    def prefix(self) -> str:
        return STATUS_PREFIXES[self]


STATUS_PREFIXES = {
    PrStatus.OPEN: "- ",
    PrStatus.MERGED: "+ ",
    PrStatus.CLOSED: "x ",
}


def entry_text(url: str, status: PrStatus | None = None) -> str:
    prefix = status.prefix if status is not None else DEFAULT_ENTRY_PREFIX
    return f"{prefix}{url}"


def make_entry(url: str, status: PrStatus | None = None) -> Paragraph:
    """Entry paragraph: the status marker followed by the URL as a link."""
    prefix = status.prefix if status is not None else DEFAULT_ENTRY_PREFIX
    return Paragraph([Text(prefix), Text(url, marks=[Mark("link", attrs={"href": url})])])


def _is_section_heading(doc: Doc, index: int | None) -> bool:
    return index is not None and 0 <= index < len(doc.content) and isinstance(doc.content[index], Heading)


def _section_bounds(doc: Doc, index: int) -> tuple[int, int]:
    start = index + 1
    end = start
    while end < len(doc.content) and not isinstance(doc.content[end], Heading):
        end += 1
    return start, end


def _find_entry(doc: Doc, index: int, url: str) -> int | None:
    start, end = _section_bounds(doc, index)
    for pos in range(start, end):
        text = flatten(doc.content[pos])
        if text is not None and url in text:
            return pos
    return None


def _is_blank(block) -> bool:
    text = flatten(block)
    return text is None or not text.strip()


def find_section(doc: Doc, title: str) -> int | None:
    """Index of the first root heading whose trimmed text equals ``title``."""
    for pos, block in enumerate(doc.content):
        if not isinstance(block, Heading):
            continue
        text = flatten(block)
        if text is not None and text.strip() == title:
            return pos
    return None


def find_or_create_section(doc: Doc, title: str) -> int:
    index = find_section(doc, title)
    if index is not None:
        return index
    logger.debug("Section %r not found, appending it", title)
    doc.content.append(Heading(level=2, content=[Text(title)]))
    return len(doc.content) - 1


def section_contains_url(doc: Doc, index: int | None, url: str) -> bool:
    if not _is_section_heading(doc, index):
        return False
    return _find_entry(doc, index, url) is not None


def upsert_entry(doc: Doc, index: int | None, url: str, status: PrStatus | None = None) -> bool:
    """Insert or update the entry for ``url`` in the section at ``index``.

    An existing entry keeps its position; only its text is replaced, and only
    when it differs from the desired ``<marker><url>``. A new entry goes to the
    end of the section, before any trailing blank lines. A paragraph that holds
    only hard breaks or whitespace counts as blank.
    """
    if not _is_section_heading(doc, index):
        logger.warning("Missing pull request section")
        return False

    desired = entry_text(url, status)
    pos = _find_entry(doc, index, url)
    if pos is not None:
        current = doc.content[pos]
        if flatten(current) == desired:
            logger.debug("Pull request already linked with same status")
            return False
        logger.debug("Updating pull request status")
        entry = make_entry(url, status)
        if isinstance(current, Paragraph):
            entry.attrs = current.attrs
            entry.extra = current.extra
        doc.content[pos] = entry
        return True

    start, end = _section_bounds(doc, index)
    insert_at = end
    while insert_at > start and _is_blank(doc.content[insert_at - 1]):
        insert_at -= 1
    doc.content.insert(insert_at, make_entry(url, status))
    return True


def remove_entry(doc: Doc, index: int | None, url: str) -> bool:
    """Drop the first entry for ``url``; the heading always stays."""
    if not _is_section_heading(doc, index):
        return False
    pos = _find_entry(doc, index, url)
    if pos is None:
        return False
    del doc.content[pos]
    return True


def upsert_pr(doc: Doc, url: str, status: PrStatus | None = None, *, title: str = DEFAULT_SECTION_TITLE) -> bool:
    return upsert_entry(doc, find_or_create_section(doc, title), url, status)


def remove_pr(doc: Doc, url: str, *, title: str = DEFAULT_SECTION_TITLE) -> bool:
    return remove_entry(doc, find_section(doc, title), url)
