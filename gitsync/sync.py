"""GitHub issue events -> Azure DevOps work item patches.

Each webhook action has a pure patch builder (``*_patch``) and a GitSync
handler that locates the work item and sends the patch. The ``System.History``
entry is always the last operation of a patch so the narrative reads after the
field changes it describes.
"""

import logging
from collections.abc import Callable

from gitsync.actions import JobReporter
from gitsync.conventions import clean_url, encode_labels, format_title, issue_tags, strip_label
from gitsync.errors import ConfigError, SyncError
from gitsync.locator import locate
from gitsync.markup import to_html
from gitsync.models import GitHubUser, PatchOperation, WorkItem
from gitsync.providers.ado import AdoClient
from gitsync.reconcile import Reconciler
from gitsync.settings import SyncConfig

logger = logging.getLogger(__name__)

# Result codes returned instead of a work item
NOT_FOUND = 0
ALREADY_EXISTS = 0
FAILED = -1

HANDLERS = {
    "opened": "create_work_item",
    "closed": "close_work_item",
    "deleted": "delete_work_item",
    "reopened": "reopen_work_item",
    "edited": "edit_work_item",
    "labeled": "label_work_item",
    "unlabeled": "unlabel_work_item",
    "assigned": "assign_work_item",
    "unassigned": "unassign_work_item",
    "created": "add_comment",  # issue_comment.created
}

SyncResult = WorkItem | int


# ---------------------------------------------------------------------------
# Patch builders
# ---------------------------------------------------------------------------


def _op(op: str, field: str, value: object = None) -> PatchOperation:
    return PatchOperation(op=op, path=f"/fields/{field}", value=value)


def _link(url: str, text: str, target: str = "_blank") -> str:
    return f'<a href="{url}" target="{target}">{text}</a>'


def _history(config: SyncConfig, event: str, actor: GitHubUser | None = None) -> PatchOperation:
    """History entry of the form 'GitHub issue #n: <title> in <repo> <event> by <actor>'."""
    issue = config.issue
    actor = actor or issue.user
    text = (
        f"GitHub issue #{issue.number}: {_link(clean_url(issue.url), issue.title, '_new')} "
        f"in {_link(clean_url(issue.repository_url), config.repository.full_name)} "
        f"{event} by {_link(actor.html_url, actor.login)}"
    )
    return _op("add", "System.History", text)


def resolve_assignee(config: SyncConfig, use_default: bool) -> str | None:
    """Map config.assignee to an ADO identity.

    Explicit handle mapping first, then the configured default when use_default
    is set. None means the work item should be left (or made) unassigned.
    """
    handles = (config.ado.mappings.handles if config.ado.mappings else None) or {}
    login = config.assignee.login if config.assignee else None

    if login and login in handles:
        logger.debug("Found mapping for handle '%s' as '%s'", login, handles[login])
        return handles[login]
    if login:
        logger.debug("No mapping found for handle '%s'", login)

    if use_default and config.ado.assigned_to:
        logger.debug("Using default assignment of '%s'", config.ado.assigned_to)
        return config.ado.assigned_to
    return None


def create_patch(config: SyncConfig) -> list[PatchOperation]:
    issue = config.issue
    html = to_html(issue.body)
    issue_url = clean_url(issue.url)
    patch = [
        _op("add", "System.Title", format_title(issue.number, issue.title)),
        _op("add", "System.Description", html),
        _op("add", "Microsoft.VSTS.TCM.ReproSteps", html),
        _op("add", "System.Tags", encode_labels(issue_tags(config.repository.full_name), issue.labels)),
        PatchOperation(op="add", path="/relations/-", value={"rel": "Hyperlink", "url": issue_url}),
    ]

    assignee = resolve_assignee(config, use_default=True)
    if assignee:
        patch.append(_op("add", "System.AssignedTo", assignee))
    if config.ado.area_path:
        patch.append(_op("add", "System.AreaPath", config.ado.area_path))
    if config.ado.iteration_path:
        patch.append(_op("add", "System.IterationPath", config.ado.iteration_path))
    if config.ado.bypass_rules:
        patch.append(_op("add", "System.CreatedBy", issue.user.login))

    patch.append(
        _op(
            "add",
            "System.History",
            f"GitHub issue #{issue.number}: {_link(issue_url, issue.title, '_new')} "
            f"created in {_link(clean_url(issue.repository_url), config.repository.full_name)} "
            f"by {_link(issue.user.html_url, issue.user.login)}",
        )
    )
    return patch


def close_patch(config: SyncConfig) -> list[PatchOperation]:
    patch = [_op("add", "System.State", config.ado.state_map.ado_state("closed"))]
    if config.closed_at or config.issue.closed_at:
        patch.append(_history(config, "closed"))
    return patch


def delete_patch(config: SyncConfig) -> list[PatchOperation]:
    return [
        _op("add", "System.State", config.ado.state_map.ado_state("deleted")),
        _history(config, "removed"),
    ]


def reopen_patch(config: SyncConfig) -> list[PatchOperation]:
    return [
        _op("add", "System.State", config.ado.state_map.ado_state("reopened")),
        _history(config, "reopened"),
    ]


def edit_patch(config: SyncConfig) -> list[PatchOperation]:
    issue = config.issue
    html = to_html(issue.body)
    return [
        _op("replace", "System.Title", format_title(issue.number, issue.title)),
        _op("replace", "System.Description", html),
        _op("replace", "Microsoft.VSTS.TCM.ReproSteps", html),
        _history(config, "edited"),
    ]


def label_patch(config: SyncConfig) -> list[PatchOperation]:
    return [
        _op("add", "System.Tags", encode_labels("", [config.label])),
        _history(config, f"addition of label '{config.label.name}'"),
    ]


def unlabel_patch(config: SyncConfig, work_item: WorkItem) -> list[PatchOperation]:
    tags = work_item.fields.get("System.Tags") or ""
    return [
        _op("replace", "System.Tags", strip_label(tags, config.label)),
        _history(config, f"removal of label '{config.label.name}'"),
    ]


def assign_patch(config: SyncConfig) -> list[PatchOperation]:
    assignee = resolve_assignee(config, use_default=False)
    if assignee:
        patch = [_op("add", "System.AssignedTo", assignee)]
    else:
        patch = [PatchOperation(op="remove", path="/fields/System.AssignedTo")]
    patch.append(_history(config, f"assigned to '{config.assignee.login}'"))
    return patch


def unassign_patch(config: SyncConfig) -> list[PatchOperation]:
    return [
        PatchOperation(op="remove", path="/fields/System.AssignedTo"),
        _history(config, f"removal of assignment to '{config.assignee.login}'"),
    ]


def comment_patch(config: SyncConfig) -> list[PatchOperation]:
    comment = config.comment
    history = _history(config, "comment added", actor=comment.user).value
    return [
        _op(
            "add",
            "System.History",
            f"{history}<br />Comment #{_link(comment.html_url, str(comment.id))}:<br /><br />{to_html(comment.body)}",
        )
    ]


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class GitSync:
    def __init__(self, ado: AdoClient, reporter: JobReporter, reconciler: Reconciler | None = None) -> None:
        self.ado = ado
        self.reporter = reporter
        self.reconciler = reconciler

    def perform_work(self, config: SyncConfig) -> SyncResult:
        """Apply config.action to ADO, then run the reverse sync if scheduled.

        Returns the created/updated work item, 0 when there was nothing to do
        and -1 when the action failed (the failure is also reported to the job).
        """
        result: SyncResult = NOT_FOUND
        handler_name = HANDLERS.get(config.action or "")
        if handler_name is not None:
            handler: Callable[[SyncConfig], SyncResult] = getattr(self, handler_name)
            try:
                _require_event(config)
                result = handler(config)
            except SyncError as exc:
                logger.error("Error: %s", exc)
                self.reporter.set_failed(exc)
                result = FAILED
        elif config.action:
            logger.info("Nothing to do for action '%s'.", config.action)

        if config.is_scheduled:
            if self.reconciler is None:
                message = "Missing GitHub credentials. Set github_token to update issues."
                logger.error(message)
                self.reporter.set_failed(message)
            else:
                self.reconciler.reconcile_all(config)

        return result

    def create_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Creating work item...")
        if not config.ado.auto_create:
            logger.info("ado.autoCreate is disabled. Skipping creation for GitHub issue #%s.", config.issue.number)
            return NOT_FOUND

        existing = locate(config, self.ado)
        if existing is not None:
            logger.warning("Work item (#%s) already exists. Canceling creation.", existing.id)
            return ALREADY_EXISTS

        patch = create_patch(config)
        logger.debug("Patch document: %s", [op.to_json() for op in patch])
        result = self.ado.create_work_item(
            patch,
            config.ado.project,
            config.ado.wit,
            validate_only=config.ado.validate_only,
            bypass_rules=config.ado.bypass_rules,
        )
        if result is None:
            message = f"Failure creating work item. WIT may not be correct: {config.ado.wit}"
            logger.error(message)
            self.reporter.set_failed(message)
            return FAILED

        logger.info("Successfully created work item: %s", result.id)
        return result

    def close_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Closing work item...")
        return self.update_work_item(config, close_patch(config))

    def delete_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Deleting work item...")
        return self.update_work_item(config, delete_patch(config))

    def reopen_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Reopening work item...")
        return self.update_work_item(config, reopen_patch(config))

    def edit_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Editing work item...")
        return self.update_work_item(config, edit_patch(config))

    def label_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Adding label to work item...")
        return self.update_work_item(config, label_patch(config))

    def unlabel_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Removing label from work item...")
        work_item = locate(config, self.ado)
        if work_item is None:
            logger.warning("Cannot find work item (GitHub Issue #%s). Canceling update.", config.issue.number)
            return NOT_FOUND
        return self.update_work_item(config, unlabel_patch(config, work_item), work_item=work_item)

    def assign_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Assigning work item...")
        return self.update_work_item(config, assign_patch(config))

    def unassign_work_item(self, config: SyncConfig) -> SyncResult:
        logger.info("Unassigning work item...")
        return self.update_work_item(config, unassign_patch(config))

    def add_comment(self, config: SyncConfig) -> SyncResult:
        logger.info("Adding comment to work item...")
        return self.update_work_item(config, comment_patch(config))

    def update_work_item(
        self,
        config: SyncConfig,
        patch: list[PatchOperation],
        work_item: WorkItem | None = None,
    ) -> SyncResult:
        """Send patch to the work item of config.issue (located unless given)."""
        if work_item is None:
            work_item = locate(config, self.ado)
        if work_item is None:
            logger.warning("Cannot find work item (GitHub Issue #%s). Canceling update.", config.issue.number)
            return NOT_FOUND

        logger.debug("Patch document: %s", [op.to_json() for op in patch])
        result = self.ado.update_work_item(
            patch,
            work_item.id,
            config.ado.project,
            validate_only=config.ado.validate_only,
            bypass_rules=config.ado.bypass_rules,
        )
        logger.info("Successfully updated work item: %s", result.id)
        return result


_REQUIRED_FIELDS = {
    "labeled": ("label",),
    "unlabeled": ("label",),
    "assigned": ("assignee",),
    "unassigned": ("assignee",),
    "created": ("comment",),
}


def _require_event(config: SyncConfig) -> None:
    config.require_ado()
    required = ("issue", "repository", *_REQUIRED_FIELDS.get(config.action, ()))
    missing = [name for name in required if not getattr(config, name)]
    if missing:
        raise ConfigError(f"Event '{config.action}' is missing: {', '.join(missing)}")
