"""Runtime settings, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

from checklist_sync import DEFAULT_SECTION_TITLE
from utils import ensure_trailing_slash

JIRA_URL_ENV = "JIRA_URL"
JIRA_EMAIL_ENV = "JIRA_EMAIL"
JIRA_TOKEN_ENV = "JIRA_TOKEN"
WEBHOOK_SECRET_ENV = "WEBHOOK_SECRET"
DRY_RUN_ENV = "DRY_RUN"

DEFAULT_CHECKLIST_FIELD = "customfield_10369"

HOST = os.getenv("BRIDGE_HOST", "127.0.0.1")
PORT = int(os.getenv("BRIDGE_PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class ConfigError(RuntimeError):
    """Raised when a required setting is missing or unusable."""


@dataclass(frozen=True)
class Settings:
    jira_url: str
    jira_email: str
    jira_token: str
    webhook_secret: bytes
    dry_run: bool = False
    checklist_field: str = DEFAULT_CHECKLIST_FIELD
    section_title: str = DEFAULT_SECTION_TITLE
    http_timeout: int = 20


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if value is None:
        raise ConfigError(f"Environment variable not set: {name}")
    return value


def _int_value(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Environment variable {name} has bad value") from exc


def parse_jira_url(value: str) -> str:
    """Validate the Jira base URL and make it end with '/'.

    Resource paths are joined onto it, so without the slash the last path
    segment would be replaced.
    """
    parsed = urlparse(value.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"Environment variable {JIRA_URL_ENV} has bad value")
    return ensure_trailing_slash(parsed.geturl())


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from ``env`` (defaults to ``os.environ``)."""
    env = os.environ if env is None else env

    secret = _required(env, WEBHOOK_SECRET_ENV)
    if not secret:
        raise ConfigError("Empty webhook secret")

    return Settings(
        jira_url=parse_jira_url(_required(env, JIRA_URL_ENV)),
        jira_email=_required(env, JIRA_EMAIL_ENV),
        jira_token=_required(env, JIRA_TOKEN_ENV),
        webhook_secret=secret.encode("utf-8"),
        dry_run=bool(env.get(DRY_RUN_ENV)),
        checklist_field=env.get("JIRA_CHECKLIST_FIELD") or DEFAULT_CHECKLIST_FIELD,
        section_title=env.get("CHECKLIST_SECTION") or DEFAULT_SECTION_TITLE,
        http_timeout=_int_value(env, "HTTP_TIMEOUT", 20),
    )
