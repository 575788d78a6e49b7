"""Scheduled reverse sync: push recent Azure DevOps edits back to GitHub issues.

Last write wins on a single timestamp comparison. An issue is only updated when
the work item's ``System.ChangedDate`` is strictly newer than the issue's
``updated_at`` *and* title, body or state actually differ. A work item that was
itself just written by the forward sync is newer but matches, so it is skipped.

The body comparison runs the live issue body through the forward HTML rendering
first (see ``markup.same_content``). The ADO state is reverse-looked-up to its
canonical ``ado.states`` key, and that key is sent to GitHub as ``closed`` for
``closed``/``deleted`` and ``open`` otherwise.
"""

import logging
from datetime import datetime, timezone

from pydantic import TypeAdapter

from gitsync.actions import JobReporter
from gitsync.conventions import parse_title
from gitsync.errors import ConfigError, SyncError
from gitsync.locator import recent_query
from gitsync.markup import same_content, to_markdown
from gitsync.models import ReconcileReport
from gitsync.providers.ado import AdoClient
from gitsync.providers.github import GitHubClient
from gitsync.settings import SyncConfig

logger = logging.getLogger(__name__)

RECONCILE_FIELDS = ["System.Title", "System.Description", "System.State", "System.ChangedDate"]

_timestamp = TypeAdapter(datetime)


def _parse_timestamp(value: object) -> datetime:
    parsed = _timestamp.validate_python(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Reconciler:
    def __init__(self, ado: AdoClient, github: GitHubClient, reporter: JobReporter) -> None:
        self.ado = ado
        self.github = github
        self.reporter = reporter

    def reconcile_all(self, config: SyncConfig, days: int = 1) -> ReconcileReport:
        """Reconcile every GitHub-linked work item changed in the last `days` days.

        Each work item is handled on its own; a failure is logged, reported to
        the job and recorded in the report, then the sweep moves on.
        """
        report = ReconcileReport()
        logger.info("Updating issues...")
        try:
            config.require_ado()
            if not config.repo_full_name:
                raise ConfigError("Cannot update issues: no repository (GITHUB_REPOSITORY or repository.full_name).")
            query = recent_query(config, days=days)
            logger.debug("WIQL Query: %s", query)
            ids = self.ado.query_by_wiql(query, config.ado.project)
        except SyncError as exc:
            logger.error("Error: %s", exc)
            self.reporter.set_failed(exc)
            return report

        logger.info("Found %d recently changed work item(s).", len(ids))
        for work_item_id in ids:
            try:
                result = self.reconcile_one(config, work_item_id)
            except Exception as exc:
                logger.exception("[WORKITEM: %s] Failed to update issue", work_item_id)
                report.failed[work_item_id] = str(exc)
                self.reporter.set_failed(f"Work item {work_item_id}: {exc}")
                continue
            if result is None:
                report.skipped.append(work_item_id)
            else:
                report.updated.append(work_item_id)
        return report

    def reconcile_one(self, config: SyncConfig, work_item_id: int) -> dict | None:
        """Update the linked issue from work item `work_item_id` if ADO holds newer, different data.

        Returns the GitHub API response when the issue was updated, None when skipped.
        Raises TitleFormatError if the work item title lacks the ``GH #<n>: `` prefix.
        """
        logger.info("Updating issue for work item (%s)...", work_item_id)
        owner, repo = config.repo_full_name.split("/", 1)

        work_item = self.ado.get_work_item(work_item_id, config.ado.project, fields=RECONCILE_FIELDS)
        fields = work_item.fields
        issue_number, title = parse_title(fields.get("System.Title", ""))
        tag = f"[WORKITEM: {work_item_id} / ISSUE: {issue_number}]"

        issue = self.github.get_issue(owner, repo, issue_number)
        changed = _parse_timestamp(fields["System.ChangedDate"])
        if not changed > issue.updated_at:
            logger.debug(
                "%s WorkItem.ChangedDate (%s) is not more recent than Issue.UpdatedAt (%s). Skipping.",
                tag,
                changed,
                issue.updated_at,
            )
            return None

        description = fields.get("System.Description")
        body_changed = not same_content(description, issue.body)
        state_map = config.ado.state_map
        key = state_map.canonical_key(fields.get("System.State", ""))
        state = state_map.github_state(key)
        logger.debug("%s Title: %s / State: %s (%s)", tag, title, state, key)

        if title == issue.title and not body_changed and state == issue.state:
            logger.debug("%s Nothing has changed, so skipping.", tag)
            return None

        # an unchanged body keeps the issue's own markdown
        body = to_markdown(description) if body_changed else issue.body
        result = self.github.update_issue(owner, repo, issue_number, title=title, body=body, state=state)
        logger.info("%s Issue updated.", tag)
        return result
