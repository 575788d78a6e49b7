"""Shared pydantic models: GitHub event records, work items and patch operations."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class GitHubUser(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    login: str
    html_url: str = ""


class Label(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str


class Issue(BaseModel):
    """The `issue` object of an issues / issue_comment webhook payload."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    number: int
    title: str
    body: str | None = None
    url: str  # api.github.com URL, cleaned before it is written to ADO
    repository_url: str = ""
    html_url: str | None = None
    labels: list[Label] = []
    user: GitHubUser
    state: str | None = None
    closed_at: str | None = None


class Comment(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    body: str | None = None
    html_url: str
    user: GitHubUser


class Repository(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    full_name: str


class GitHubIssue(BaseModel):
    """Live issue as returned by GET /repos/{owner}/{repo}/issues/{number}."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    number: int
    title: str
    body: str | None = None
    state: str
    updated_at: datetime


class WorkItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    rev: int | None = None
    fields: dict[str, Any] = {}
    url: str | None = None


class PatchOperation(BaseModel):
    """One JSON Patch operation against a work item."""

    model_config = ConfigDict(frozen=True)

    op: Literal["add", "replace", "remove"]
    path: str
    value: Any = None

    def to_json(self) -> dict:
        body: dict = {"op": self.op, "path": self.path}
        if self.op != "remove":
            body["value"] = self.value
        return body


class ReconcileReport(BaseModel):
    """Outcome of one reverse-sync sweep, keyed by work item id."""

    updated: list[int] = []
    skipped: list[int] = []
    failed: dict[int, str] = Field(default_factory=dict)
