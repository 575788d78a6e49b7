"""Find the canonical work item for a GitHub issue with a WIQL query."""

import logging

from gitsync.conventions import ISSUE_TAG, repo_tag, title_prefix
from gitsync.models import WorkItem
from gitsync.providers.ado import AdoClient
from gitsync.settings import SyncConfig

logger = logging.getLogger(__name__)

_SELECT = (
    "SELECT [System.Id], [System.Description], [System.Title], [System.AssignedTo], "
    "[System.State], [System.Tags] FROM workitems WHERE [System.TeamProject] = @project"
)


def _quote(value: str) -> str:
    return value.replace("'", "''")


def issue_query(config: SyncConfig) -> str:
    """WIQL for the work item that mirrors config.issue in config.repository."""
    return (
        f"{_SELECT} "
        f"AND [System.WorkItemType] = '{_quote(config.ado.wit)}' "
        f"AND [System.Title] CONTAINS '{title_prefix(config.issue.number)}' "
        f"AND [System.Tags] CONTAINS '{ISSUE_TAG}' "
        f"AND [System.Tags] CONTAINS '{_quote(repo_tag(config.repository.full_name))}'"
    )


def recent_query(config: SyncConfig, days: int = 1) -> str:
    """WIQL for every GitHub-linked work item of the repo changed in the last `days` days."""
    return (
        f"{_SELECT} "
        f"AND [System.Tags] CONTAINS '{ISSUE_TAG}' "
        f"AND [System.Tags] CONTAINS '{_quote(repo_tag(config.repo_full_name))}' "
        f"AND [System.ChangedDate] > @Today - {days}"
    )


def locate(config: SyncConfig, client: AdoClient) -> WorkItem | None:
    """Return the work item for config.issue, or None if there is none.

    Backend errors (AdoConnectionError, AdoQueryError) propagate to the caller.
    When several work items match, the first one in backend order is used.
    """
    logger.info("Searching for work item...")
    logger.debug("AzDO Url: %s", config.ado.org_url)
    query = issue_query(config)
    logger.debug("WIQL Query: %s", query)

    ids = client.query_by_wiql(query, config.ado.project)
    logger.debug("Query results: %s", ids)

    if not ids:
        logger.info("Work item not found.")
        return None
    if len(ids) > 1:
        logger.warning("More than one work item found (%s). Taking the first one.", ids)

    logger.info("Work item found: %s", ids[0])
    return client.get_work_item(ids[0], config.ado.project, expand="all")
