"""Apply pull request events to the checklists of the referenced Jira issues.

Each issue key is an independent read-modify-write cycle against Jira: fetch
the checklist, edit the "Pull Requests" section locally, write it back only if
something changed. Keys run in a small thread pool and a failure on one key is
logged and reported without stopping the others.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Callable

from checklist_document import ChecklistField
from checklist_sync import (
    DEFAULT_SECTION_TITLE,
    PrStatus,
    find_or_create_section,
    find_section,
    remove_entry,
    upsert_entry,
)
from github_webhook import PullRequest, PullRequestEvent, extract_issue_keys
from jira_client import JiraClient

logger = logging.getLogger(__name__)

UPDATED = "updated"
UNCHANGED = "unchanged"
SKIPPED = "skipped"
REMOVED = "removed"

MAX_WORKERS = 4


@dataclass
class SyncSummary:
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)

    def record(self, issue_key: str, outcome: str) -> None:
        getattr(self, outcome).append(issue_key)

    @property
    def errors(self) -> dict[str, str]:
        return {key: str(exc) for key, exc in self.failures.items()}

    def as_dict(self) -> dict[str, object]:
        return {
            "updated": list(self.updated),
            "unchanged": list(self.unchanged),
            "skipped": list(self.skipped),
            "removed": list(self.removed),
            "errors": self.errors,
        }


def pr_status(pr: PullRequest) -> PrStatus:
    if pr.merged:
        return PrStatus.MERGED
    if pr.state == "closed":
        return PrStatus.CLOSED
    return PrStatus.OPEN


def _write_back(client: JiraClient, issue_key: str, checklist: ChecklistField, dry_run: bool) -> None:
    if dry_run:
        logger.info("Dry run mode. Would have updated %s with:\n%s", issue_key, checklist.text())
        return
    logger.debug("Updating checklist of %s", issue_key)
    client.update_checklist(issue_key, checklist.to_raw())


def update_issue(
    client: JiraClient,
    issue_key: str,
    pr_url: str,
    status: PrStatus,
    *,
    section_title: str = DEFAULT_SECTION_TITLE,
    dry_run: bool = False,
) -> str:
    """Link ``pr_url`` with ``status`` in the checklist of ``issue_key``."""
    logger.info("Updating issue %s", issue_key)

    raw = client.get_checklist(issue_key)
    if raw is None:
        logger.warning("No checklist found for %s. Skip update.", issue_key)
        return SKIPPED

    checklist = ChecklistField.from_raw(raw)
    index = find_or_create_section(checklist.doc, section_title)
    if not upsert_entry(checklist.doc, index, pr_url, status):
        logger.debug("Checklist of %s not updated, skip", issue_key)
        return UNCHANGED

    _write_back(client, issue_key, checklist, dry_run)
    return UPDATED


def unlink_issue(
    client: JiraClient,
    issue_key: str,
    pr_url: str,
    *,
    section_title: str = DEFAULT_SECTION_TITLE,
    dry_run: bool = False,
) -> str:
    """Remove ``pr_url`` from the checklist of ``issue_key``."""
    logger.info("Unlinking pull request from issue %s", issue_key)

    raw = client.get_checklist(issue_key)
    if raw is None:
        logger.warning("No checklist found for %s. Skip update.", issue_key)
        return SKIPPED

    checklist = ChecklistField.from_raw(raw)
    index = find_section(checklist.doc, section_title)
    if index is None:
        logger.warning("Missing section %r in %s", section_title, issue_key)
    if not remove_entry(checklist.doc, index, pr_url):
        logger.debug("Pull request not linked in %s, skip", issue_key)
        return UNCHANGED

    _write_back(client, issue_key, checklist, dry_run)
    return REMOVED


def plan_tasks(
    event: PullRequestEvent,
    client: JiraClient,
    *,
    section_title: str = DEFAULT_SECTION_TITLE,
    dry_run: bool = False,
) -> list[tuple[str, Callable[[], str]]]:
    """One task per issue key: link for keys in the title, unlink for keys
    dropped from it by an ``edited`` action."""
    pr = event.pull_request
    keys = extract_issue_keys(pr.title)
    status = pr_status(pr)

    tasks: list[tuple[str, Callable[[], str]]] = [
        (key, partial(update_issue, client, key, pr.html_url, status, section_title=section_title, dry_run=dry_run))
        for key in keys
    ]

    if event.action == "edited" and event.old_title is not None:
        for key in extract_issue_keys(event.old_title):
            if key in keys:
                continue
            tasks.append(
                (key, partial(unlink_issue, client, key, pr.html_url, section_title=section_title, dry_run=dry_run))
            )
    return tasks


def handle_pull_request_event(
    event: PullRequestEvent,
    client: JiraClient,
    *,
    section_title: str = DEFAULT_SECTION_TITLE,
    dry_run: bool = False,
    max_workers: int = MAX_WORKERS,
) -> SyncSummary:
    logger.info(
        "Processing pull_request event action=%s pull_request=%s",
        event.action,
        event.pull_request.number,
    )
    summary = SyncSummary()
    tasks = plan_tasks(event, client, section_title=section_title, dry_run=dry_run)
    if not tasks:
        logger.info("No issue key in title %r, nothing to do", event.pull_request.title)
        return summary

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tasks)))) as pool:
        futures = [(key, pool.submit(task)) for key, task in tasks]
        for key, future in futures:
            try:
                outcome = future.result()
            except Exception as exc:
                logger.error("Failed to update %s: %s", key, exc)
                summary.failures[key] = exc
                continue
            summary.record(key, outcome)

    return summary
