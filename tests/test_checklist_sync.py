"""Tests for the Pull Requests section synchronizer."""
import copy

import pytest

from checklist_document import Doc, HardBreak, Heading, Paragraph, Text, dumps, flatten, parse_lines, serialize, serialize_lines
from checklist_sync import (
    PrStatus,
    entry_text,
    find_or_create_section,
    find_section,
    make_entry,
    remove_entry,
    remove_pr,
    section_contains_url,
    upsert_entry,
    upsert_pr,
)

PR1 = "https://github.com/org/repo/pull/1"
PR2 = "https://github.com/org/repo/pull/2"


def _lines(doc: Doc) -> list[str]:
    return serialize_lines(doc).split("\n")


def test_status_prefixes():
    assert entry_text(PR1, PrStatus.OPEN) == f"- {PR1}"
    assert entry_text(PR1, PrStatus.MERGED) == f"+ {PR1}"
    assert entry_text(PR1, PrStatus.CLOSED) == f"x {PR1}"
    assert entry_text(PR1) == f"- {PR1}"
    assert flatten(make_entry(PR1, PrStatus.CLOSED)) == f"x {PR1}"


def test_find_section_matches_trimmed_title_first_wins():
    doc = parse_lines("# Notes\n## pull requests\n##  Pull Requests \n- a\n## Pull Requests")

    assert find_section(doc, "Pull Requests") == 2
    assert find_section(doc, "Missing") is None


def test_find_section_ignores_paragraph_text():
    doc = Doc(content=[Paragraph([Text("Pull Requests")])])
    assert find_section(doc, "Pull Requests") is None


def test_find_or_create_section_appends_level_two_heading():
    doc = parse_lines("# Development Process\n-! Task 1")

    index = find_or_create_section(doc, "Pull Requests")

    assert index == 2
    heading = doc.content[index]
    assert isinstance(heading, Heading)
    assert heading.level == 2
    assert _lines(doc) == ["# Development Process", "-! Task 1", "## Pull Requests"]
    assert find_or_create_section(doc, "Pull Requests") == 2
    assert len(doc.content) == 3


def test_upsert_appends_new_entry_at_end_of_section():
    doc = parse_lines(f"## Pull Requests\n- {PR1}")
    index = find_section(doc, "Pull Requests")

    assert upsert_entry(doc, index, PR2, PrStatus.OPEN) is True
    assert _lines(doc) == ["## Pull Requests", f"- {PR1}", f"- {PR2}"]

    assert upsert_entry(doc, index, PR1, PrStatus.MERGED) is True
    assert _lines(doc) == ["## Pull Requests", f"+ {PR1}", f"- {PR2}"]


def test_upsert_is_idempotent():
    doc = parse_lines("# Dev\n- task\n## Pull Requests\n## Other\nkeep")
    index = find_section(doc, "Pull Requests")

    assert upsert_entry(doc, index, PR1, PrStatus.OPEN) is True
    once = dumps(doc)
    assert upsert_entry(doc, index, PR1, PrStatus.OPEN) is False
    assert dumps(doc) == once


def test_status_transition_reports_changes():
    doc = parse_lines("## Pull Requests")
    index = find_section(doc, "Pull Requests")

    assert upsert_entry(doc, index, PR1, PrStatus.OPEN) is True
    assert upsert_entry(doc, index, PR1, PrStatus.MERGED) is True
    assert _lines(doc) == ["## Pull Requests", f"+ {PR1}"]
    assert upsert_entry(doc, index, PR1, PrStatus.MERGED) is False


def test_upsert_inserts_before_next_section_and_keeps_outside_content():
    text = "# Development Process\n-! Task 1\n## Pull Requests\n- https://x/pull/1\n## Notes\nsomething"
    doc = parse_lines(text)
    index = find_section(doc, "Pull Requests")
    before = [serialize(block) for block in doc.content]

    assert upsert_entry(doc, index, "https://x/pull/2", PrStatus.CLOSED) is True

    after = [serialize(block) for block in doc.content]
    assert after[:4] == before[:4]
    assert after[5:] == before[4:]
    assert _lines(doc) == [
        "# Development Process",
        "-! Task 1",
        "## Pull Requests",
        "- https://x/pull/1",
        "x https://x/pull/2",
        "## Notes",
        "something",
    ]


def test_upsert_keeps_trailing_blank_lines_after_new_entry():
    doc = parse_lines("## Pull Requests\n- https://x/pull/1\n\n## Notes\n")

    assert upsert_pr(doc, "https://x/pull/2", PrStatus.OPEN) is True
    assert serialize_lines(doc) == "## Pull Requests\n- https://x/pull/1\n- https://x/pull/2\n\n## Notes\n"


def test_upsert_treats_hard_break_paragraph_as_blank():
    doc = Doc(
        content=[
            Heading(level=2, content=[Text("Pull Requests")]),
            Paragraph([Text(f"- {PR1}")]),
            Paragraph([HardBreak()]),
            Heading(level=2, content=[Text("Notes")]),
        ]
    )

    assert upsert_entry(doc, 0, PR2, PrStatus.OPEN) is True

    assert flatten(doc.content[2]) == f"- {PR2}"
    assert doc.content[3] == Paragraph([HardBreak()])
    assert flatten(doc.content[4]) == "Notes"


def test_upsert_into_empty_section_with_trailing_newline():
    doc = parse_lines("# Dev\n# Pull Requests\n")

    assert upsert_pr(doc, PR1, PrStatus.MERGED) is True
    assert serialize_lines(doc) == f"# Dev\n# Pull Requests\n+ {PR1}\n"


def test_upsert_replacement_keeps_paragraph_attrs():
    doc = Doc(
        content=[
            Heading(level=2, content=[Text("Pull Requests")]),
            Paragraph([Text(f"- {PR1}")], attrs={"localId": "p-1"}),
        ]
    )
    assert upsert_entry(doc, 0, PR1, PrStatus.MERGED) is True

    entry = doc.content[1]
    assert flatten(entry) == f"+ {PR1}"
    assert entry.attrs == {"localId": "p-1"}
    assert entry.content[1].marks[0].attrs == {"href": PR1}


def test_upsert_without_section_is_noop():
    doc = parse_lines("# Dev")
    before = dumps(doc)

    assert upsert_entry(doc, None, PR1, PrStatus.OPEN) is False
    assert upsert_entry(doc, 5, PR1, PrStatus.OPEN) is False
    assert dumps(doc) == before


def test_section_contains_url_is_scoped_to_section():
    doc = parse_lines(f"# Dev\n- {PR2}\n## Pull Requests\n- {PR1}\n## Notes\n- {PR2}")
    index = find_section(doc, "Pull Requests")

    assert section_contains_url(doc, index, PR1) is True
    assert section_contains_url(doc, index, PR2) is False


def test_remove_entry():
    doc = parse_lines(f"## Pull Requests\n- {PR1}\n+ {PR2}\n## Notes")
    index = find_section(doc, "Pull Requests")

    assert remove_entry(doc, index, PR1) is True
    assert _lines(doc) == ["## Pull Requests", f"+ {PR2}", "## Notes"]
    assert remove_entry(doc, index, PR1) is False


def test_remove_last_entry_keeps_heading():
    doc = parse_lines(f"## Pull Requests\n- {PR1}")

    assert remove_pr(doc, PR1) is True
    assert _lines(doc) == ["## Pull Requests"]


def test_remove_from_empty_section_is_noop():
    doc = parse_lines("## Pull Requests")
    before = copy.deepcopy(doc)

    assert remove_entry(doc, find_section(doc, "Pull Requests"), "https://x/pull/9") is False
    assert doc == before


def test_missing_section_lookups_are_noops():
    doc = parse_lines(f"# Dev\n- {PR1}")
    before = copy.deepcopy(doc)

    index = find_section(doc, "Pull Requests")
    assert index is None
    assert remove_entry(doc, index, PR1) is False
    assert section_contains_url(doc, index, PR1) is False
    assert remove_pr(doc, PR1) is False
    assert doc == before


@pytest.mark.parametrize("status", [PrStatus.OPEN, PrStatus.MERGED, PrStatus.CLOSED, None])
def test_upsert_twice_equals_once(status):
    base = parse_lines(f"# Dev\n## Pull Requests\n- {PR1}\n## Notes\nn")
    once = copy.deepcopy(base)
    upsert_pr(once, PR2, status)
    twice = copy.deepcopy(once)

    assert upsert_pr(twice, PR2, status) is False
    assert dumps(twice) == dumps(once)


def test_substring_match_is_a_known_sharp_edge():
    # .../pull/1 is a prefix of .../pull/12, so the entry for 12 is found.
    doc = parse_lines("## Pull Requests\n- https://x/pull/12")
    index = find_section(doc, "Pull Requests")

    assert section_contains_url(doc, index, "https://x/pull/1") is True
    assert upsert_entry(doc, index, "https://x/pull/1", PrStatus.MERGED) is True
    assert _lines(doc) == ["## Pull Requests", "+ https://x/pull/1"]
