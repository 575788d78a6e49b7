"""Exception hierarchy shared by the sync bridge."""


class SyncError(RuntimeError):
    """Base class for failures that abort a sync operation."""


class ConfigError(SyncError):
    pass


class AdoError(SyncError):
    pass


class AdoConnectionError(AdoError):
    """The Azure DevOps organization could not be reached."""


class AdoQueryError(AdoError):
    """A WIQL query or work item lookup was rejected by Azure DevOps."""


class GitHubError(SyncError):
    pass


class TitleFormatError(SyncError):
    """A work item title does not carry the `GH #<n>: ` prefix."""


class UnknownStateError(SyncError):
    """An Azure DevOps state has no entry in the configured state map."""
