"""Typed tree for the Jira checklist rich-text field.

The field holds a small subset of the Atlassian document format:

  doc > (heading | paragraph) > (text | hardBreak)

Each node kind is its own dataclass. Attributes the bridge does not understand
are kept in ``attrs`` / ``extra`` and written back untouched, so a parse and
serialize round trip never drops data.

The plain-text checklist format (one entry per line, ``#`` headings) is parsed
into the same tree with one paragraph per line, see ``parse_lines``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Union


class MalformedDocument(ValueError):
    """Raised when a raw document does not match the checklist node schema."""


@dataclass
class Mark:
    kind: str
    attrs: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Text:
    text: str
    marks: list[Mark] = field(default_factory=list)
    attrs: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class HardBreak:
    attrs: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Paragraph:
    content: list["Inline"] = field(default_factory=list)
    attrs: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Heading:
    level: int
    content: list["Inline"] = field(default_factory=list)
    attrs: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Doc:
    content: list["Block"] = field(default_factory=list)
    version: int = 1
    attrs: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)


Inline = Union[Text, HardBreak]
Block = Union[Heading, Paragraph]
DocumentNode = Union[Doc, Heading, Paragraph, Text, HardBreak]

NODE_TYPES = ("doc", "heading", "paragraph", "text", "hardBreak")
MAX_HEADING_LEVEL = 6


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------


def _require_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedDocument(f"{where}: expected an object, got {type(value).__name__}")
    return value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _split_known(raw: Mapping[str, Any], known: tuple[str, ...]) -> dict[str, Any]:
    return {key: value for key, value in raw.items() if key not in known}


def _parse_attrs(raw: Mapping[str, Any], where: str) -> dict[str, Any]:
    attrs = raw.get("attrs", {})
    if attrs is None:
        return {}
    return dict(_require_mapping(attrs, f"{where}.attrs"))


def _parse_mark(raw: Any, where: str) -> Mark:
    raw = _require_mapping(raw, where)
    kind = raw.get("type")
    if not isinstance(kind, str) or not kind:
        raise MalformedDocument(f"{where}: mark without a type")
    return Mark(
        kind=kind,
        attrs=_parse_attrs(raw, where),
        extra=_split_known(raw, ("type", "attrs")),
    )


def _parse_content(raw: Mapping[str, Any], where: str, *, required: bool, allowed: tuple[str, ...]) -> list:
    if "content" not in raw:
        if required:
            raise MalformedDocument(f"{where}: missing 'content'")
        return []
    items = raw["content"]
    if not isinstance(items, list):
        raise MalformedDocument(f"{where}.content: expected a list")
    nodes = []
    for i, item in enumerate(items):
        child_where = f"{where}.content[{i}]"
        child = _parse_node(item, child_where)
        kind = _node_type(child)
        if kind not in allowed:
            raise MalformedDocument(f"{child_where}: '{kind}' is not allowed here")
        nodes.append(child)
    return nodes


def _parse_node(raw: Any, where: str) -> DocumentNode:
    raw = _require_mapping(raw, where)
    kind = raw.get("type")
    if kind not in NODE_TYPES:
        raise MalformedDocument(f"{where}: unsupported node type {kind!r}")

    if kind == "text":
        text = raw.get("text")
        if not isinstance(text, str):
            raise MalformedDocument(f"{where}: text node without a string 'text'")
        marks_raw = raw.get("marks", [])
        if not isinstance(marks_raw, list):
            raise MalformedDocument(f"{where}.marks: expected a list")
        return Text(
            text=text,
            marks=[_parse_mark(m, f"{where}.marks[{i}]") for i, m in enumerate(marks_raw)],
            attrs=_parse_attrs(raw, where),
            extra=_split_known(raw, ("type", "text", "marks", "attrs")),
        )

    if kind == "hardBreak":
        return HardBreak(attrs=_parse_attrs(raw, where), extra=_split_known(raw, ("type", "attrs")))

    if kind == "paragraph":
        return Paragraph(
            content=_parse_content(raw, where, required=False, allowed=("text", "hardBreak")),
            attrs=_parse_attrs(raw, where),
            extra=_split_known(raw, ("type", "content", "attrs")),
        )

    if kind == "heading":
        attrs = _parse_attrs(raw, where)
        level = attrs.pop("level", None)
        if not _is_int(level) or not 1 <= level <= MAX_HEADING_LEVEL:
            raise MalformedDocument(f"{where}: heading needs attrs.level between 1 and {MAX_HEADING_LEVEL}")
        return Heading(
            level=level,
            content=_parse_content(raw, where, required=False, allowed=("text", "hardBreak")),
            attrs=attrs,
            extra=_split_known(raw, ("type", "content", "attrs")),
        )

    version = raw.get("version")
    if not _is_int(version):
        raise MalformedDocument(f"{where}: doc needs an integer 'version'")
    return Doc(
        content=_parse_content(raw, where, required=True, allowed=("heading", "paragraph")),
        version=version,
        attrs=_parse_attrs(raw, where),
        extra=_split_known(raw, ("type", "content", "version", "attrs")),
    )


def parse(raw: Mapping[str, Any] | str | bytes) -> Doc:
    """Build a ``Doc`` tree from the field value (mapping or its JSON text)."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedDocument(f"invalid JSON: {exc}") from exc

    node = _parse_node(raw, "$")
    if not isinstance(node, Doc):
        raise MalformedDocument(f"$: root must be 'doc', got {_node_type(node)!r}")
    return node


# ---------------------------------------------------------------------------
# serialize
# ---------------------------------------------------------------------------


def _node_type(node: DocumentNode) -> str:
    if isinstance(node, Doc):
        return "doc"
    if isinstance(node, Heading):
        return "heading"
    if isinstance(node, Paragraph):
        return "paragraph"
    if isinstance(node, Text):
        return "text"
    return "hardBreak"


def _with_extra(out: dict[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    for key in sorted(extra):
        if key not in out:
            out[key] = extra[key]
    return out


def _serialize_mark(mark: Mark) -> dict[str, Any]:
    out: dict[str, Any] = {"type": mark.kind}
    if mark.attrs:
        out["attrs"] = dict(mark.attrs)
    return _with_extra(out, mark.extra)


def serialize(node: DocumentNode) -> dict[str, Any]:
    """Return the JSON-ready mapping for ``node``.

    Key order is fixed (``type`` first, then the known keys, then unknown keys
    sorted), so equal trees always produce equal output.
    """
    out: dict[str, Any] = {"type": _node_type(node)}

    if isinstance(node, Doc):
        out["version"] = node.version
    if isinstance(node, Heading):
        out["attrs"] = {"level": node.level, **node.attrs}
    elif node.attrs:
        out["attrs"] = dict(node.attrs)

    if isinstance(node, Text):
        out["text"] = node.text
        if node.marks:
            out["marks"] = [_serialize_mark(m) for m in node.marks]
    elif isinstance(node, (Doc, Heading, Paragraph)):
        out["content"] = [serialize(child) for child in node.content]

    return _with_extra(out, node.extra)


def dumps(node: DocumentNode) -> str:
    return json.dumps(serialize(node), ensure_ascii=False, separators=(",", ":"))


# ---------------------------------------------------------------------------
# text
# ---------------------------------------------------------------------------


def flatten(node: DocumentNode) -> str | None:
    """Concatenate the text of ``node`` depth-first.

    ``HardBreak`` contributes a newline. Returns ``None`` (not ``""``) when the
    node has no text-bearing descendants.
    """
    if isinstance(node, Text):
        return node.text
    if isinstance(node, HardBreak):
        return "\n"
    parts = [text for text in (flatten(child) for child in node.content) if text is not None]
    if not parts:
        return None
    return "".join(parts)


HEADING_LINE_PATTERN = re.compile(r"^(#{1,6}) (.*)$")


def parse_lines(text: str) -> Doc:
    """Parse the plain-text checklist into a tree, one block per line.

    ``## Title`` lines become headings; every other line (empty ones included)
    becomes a paragraph, so ``serialize_lines(parse_lines(t)) == t``.
    """
    content: list[Block] = []
    for line in text.split("\n"):
        match = HEADING_LINE_PATTERN.match(line)
        if match:
            title = match.group(2)
            content.append(Heading(level=len(match.group(1)), content=[Text(title)] if title else []))
        elif line:
            content.append(Paragraph([Text(line)]))
        else:
            content.append(Paragraph())
    return Doc(content=content)


def serialize_lines(doc: Doc) -> str:
    lines = []
    for block in doc.content:
        text = (flatten(block) or "").replace("\n", " ")
        if isinstance(block, Heading):
            lines.append("#" * block.level + " " + text)
        else:
            lines.append(text)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# field storage
# ---------------------------------------------------------------------------


def _is_plain_inline(node: Inline) -> bool:
    if node.attrs or node.extra:
        return False
    return isinstance(node, HardBreak) or not node.marks


def _is_plain_text_doc(doc: Doc) -> bool:
    if doc.attrs or doc.extra:
        return False
    if not doc.content:
        return True
    if len(doc.content) != 1:
        return False
    block = doc.content[0]
    if not isinstance(block, Paragraph) or block.attrs or block.extra:
        return False
    return all(_is_plain_inline(node) for node in block.content)


@dataclass
class ChecklistField:
    """A checklist field value together with the way it is stored in Jira.

    Jira checklists come in two shapes. A structured document has real heading
    nodes and is edited as a tree. A plain-text checklist keeps every line in
    one paragraph; it is edited through ``parse_lines`` and written back as
    ``doc > paragraph > text``.

    Only an empty document or a single paragraph of unmarked text and hard
    breaks, with no attrs or extra fields anywhere, is read as plain text.
    Anything richer is edited as a tree so nothing is lost on write-back.
    """

    doc: Doc
    text_mode: bool = False
    version: int = 1

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | str | bytes) -> "ChecklistField":
        doc = parse(raw)
        if not _is_plain_text_doc(doc):
            return cls(doc=doc, text_mode=False, version=doc.version)

        text = "\n".join(flatten(block) or "" for block in doc.content)
        lines_doc = parse_lines(text) if text else Doc()
        return cls(doc=lines_doc, text_mode=True, version=doc.version)

    def to_raw(self) -> dict[str, Any]:
        if not self.text_mode:
            return serialize(self.doc)
        text = serialize_lines(self.doc)
        paragraph = Paragraph([Text(text)] if text else [])
        return serialize(Doc(content=[paragraph], version=self.version))

    def text(self) -> str:
        if self.text_mode:
            return serialize_lines(self.doc)
        return flatten(self.doc) or ""
