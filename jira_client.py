"""Minimal Jira REST client for reading and writing the checklist field."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from config import DEFAULT_CHECKLIST_FIELD, Settings
from utils import ensure_trailing_slash, join_url

logger = logging.getLogger(__name__)


class JiraApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"Jira API error: {message}")
        self.status = status
        self.message = message


class JiraClient:
    """Read/write access to one checklist custom field on Jira issues."""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        *,
        checklist_field: str = DEFAULT_CHECKLIST_FIELD,
        timeout: int = 20,
        session: requests.Session | None = None,
    ):
        self.base_url = ensure_trailing_slash(base_url)
        self.checklist_field = checklist_field
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (email, api_token)
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "JiraClient":
        return cls(
            settings.jira_url,
            settings.jira_email,
            settings.jira_token,
            checklist_field=settings.checklist_field,
            timeout=settings.http_timeout,
        )

    def issue_url(self, issue_key: str) -> str:
        return join_url(self.base_url, f"rest/api/3/issue/{quote(issue_key, safe='')}")

    @staticmethod
    def _check(response: requests.Response, action: str) -> None:
        if response.ok:
            return
        raise JiraApiError(response.status_code, f"Failed to {action}: {response.status_code} - {response.text}")

    def get_issue(self, issue_key: str) -> dict[str, Any]:
        logger.debug("Fetching Jira issue: %s", issue_key)
        response = self.session.get(
            self.issue_url(issue_key),
            params={"fields": self.checklist_field},
            timeout=self.timeout,
        )
        self._check(response, f"get issue {issue_key}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise JiraApiError(response.status_code, f"Failed to parse issue {issue_key}: {exc}") from exc
        if not isinstance(payload, dict):
            raise JiraApiError(response.status_code, f"Failed to parse issue {issue_key}: not an object")
        return payload

    def get_checklist(self, issue_key: str) -> dict[str, Any] | None:
        """Raw checklist document of the issue, or None when the field is empty."""
        fields = self.get_issue(issue_key).get("fields") or {}
        return fields.get(self.checklist_field)

    def update_checklist(self, issue_key: str, document: dict[str, Any]) -> None:
        logger.info("Updating checklist for issue: %s", issue_key)
        response = self.session.put(
            self.issue_url(issue_key),
            json={"fields": {self.checklist_field: document}},
            timeout=self.timeout,
        )
        self._check(response, f"update issue {issue_key}")
