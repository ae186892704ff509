"""GitHub webhook helpers: signature check, payload parsing, issue keys."""

from __future__ import annotations

import hashlib
import hmac
import json
import re
from dataclasses import dataclass
from enum import Enum

EVENT_HEADER = "X-GitHub-Event"
SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="

ISSUE_KEY_PATTERN = re.compile(r"[\[(]?([A-Za-z]+)[\- ]*([0-9]+)[\])]?")
KEY_SEPARATOR_PATTERN = re.compile(r"\s*[,;/&+]\s*")
BRACKET_SEPARATOR_PATTERN = re.compile(r"\s*(?=[\[(])")


class SignatureError(Exception):
    """Raised when the webhook signature is missing or does not match."""


class PayloadError(ValueError):
    """Raised when a webhook body cannot be read as the expected event."""


class WebhookEventType(str, Enum):
    PING = "ping"
    PULL_REQUEST = "pull_request"
    OTHER = "other"

    @classmethod
    def from_header(cls, value: str | None) -> "WebhookEventType":
        for member in (cls.PING, cls.PULL_REQUEST):
            if value == member.value:
                return member
        return cls.OTHER


@dataclass
class PullRequest:
    title: str
    html_url: str
    number: int
    state: str
    merged: bool = False


@dataclass
class PullRequestEvent:
    action: str
    pull_request: PullRequest
    old_title: str | None = None


def verify_signature(payload: bytes, signature_header: str | None, secret: bytes) -> None:
    if not signature_header:
        raise SignatureError("Missing webhook signature header")
    if not signature_header.startswith(SIGNATURE_PREFIX):
        raise SignatureError("Invalid webhook signature")

    try:
        received = bytes.fromhex(signature_header[len(SIGNATURE_PREFIX):])
    except ValueError as exc:
        raise SignatureError("Invalid webhook signature") from exc

    expected = hmac.new(secret, payload, hashlib.sha256).digest()
    if not hmac.compare_digest(received, expected):
        raise SignatureError("Invalid webhook signature")


def _require(obj: dict, key: str, kind: type, where: str):
    value = obj.get(key)
    if not isinstance(value, kind) or (isinstance(value, bool) and kind is not bool):
        raise PayloadError(f"Field '{where}{key}' is missing or invalid")
    return value


def parse_pull_request_event(body: bytes | str) -> PullRequestEvent:
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise PayloadError("Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise PayloadError("JSON body must be an object")

    action = _require(payload, "action", str, "")
    pr = _require(payload, "pull_request", dict, "")
    pull_request = PullRequest(
        title=_require(pr, "title", str, "pull_request."),
        html_url=_require(pr, "html_url", str, "pull_request."),
        number=_require(pr, "number", int, "pull_request."),
        state=_require(pr, "state", str, "pull_request."),
        merged=bool(pr.get("merged")),
    )

    old_title = None
    changes = payload.get("changes")
    if isinstance(changes, dict):
        title_change = changes.get("title")
        if isinstance(title_change, dict) and isinstance(title_change.get("from"), str):
            old_title = title_change["from"]

    return PullRequestEvent(action=action, pull_request=pull_request, old_title=old_title)


def _next_key_start(title: str, match: re.Match) -> int | None:
    """Position of the next key, or None when the key list ends here.

    Keys continue only after an explicit separator (``,`` ``;`` ``/`` ``&``
    ``+``) or from one bracketed key straight into the next, as in
    ``[ABC-1][ABC-2]``. Plain whitespace ends the list.
    """
    separator = KEY_SEPARATOR_PATTERN.match(title, match.end())
    if separator:
        return separator.end()
    if match.group(0)[-1] in "])":
        bracket = BRACKET_SEPARATOR_PATTERN.match(title, match.end())
        if bracket:
            return bracket.end()
    return None


def extract_issue_keys(title: str) -> list[str]:
    """Issue keys at the start of a PR title, in order and without duplicates.

    Accepts ``[ABC-12]``, ``ABC-12``, ``abc 12`` and lists such as
    ``ABC-12, ABC-13: ...`` or ``[ABC-12][ABC-13]``. Keys are returned as
    ``PREFIX-NUMBER`` uppercased.
    """
    keys: list[str] = []
    pos: int | None = 0
    while pos is not None:
        match = ISSUE_KEY_PATTERN.match(title, pos)
        if not match:
            break
        key = f"{match.group(1).upper()}-{match.group(2)}"
        if key not in keys:
            keys.append(key)
        pos = _next_key_start(title, match)
    return keys
