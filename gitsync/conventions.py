"""Naming conventions that tie a work item to its GitHub issue.

A synced work item carries the title prefix ``GH #<number>: `` and the tags
``GitHub Issue``, ``GitHub Repo: <owner/repo>`` and one ``GitHub Label: <name>``
per issue label. Nothing else links the two sides, so the locator query and the
reconciler both rely on these exact strings.
"""

import re
from collections.abc import Iterable

from gitsync.errors import TitleFormatError
from gitsync.models import Label

ISSUE_TAG = "GitHub Issue"
REPO_TAG_PREFIX = "GitHub Repo: "
LABEL_TAG_PREFIX = "GitHub Label: "

_TITLE_RE = re.compile(r"^GH\s#(\d+):\s(.*)", re.DOTALL)


def repo_tag(full_name: str) -> str:
    return f"{REPO_TAG_PREFIX}{full_name}"


def issue_tags(full_name: str) -> str:
    """Seed tag string every synced work item starts with."""
    return f"{ISSUE_TAG};{repo_tag(full_name)};"


def encode_labels(seed: str, labels: Iterable[Label]) -> str:
    """Append one ``GitHub Label: <name>;`` entry per label to seed, in order.

    Duplicates are kept, mirroring the label list GitHub sent.
    """
    tags = seed
    for label in labels:
        tags += f"{LABEL_TAG_PREFIX}{label.name};"
    return tags


def strip_label(tags: str, label: Label) -> str:
    """Remove the first tag entry for label; unchanged if it is not present."""
    return tags.replace(encode_labels("", [label]), "", 1)


def title_prefix(number: int) -> str:
    return f"GH #{number}:"


def format_title(number: int, title: str) -> str:
    return f"{title_prefix(number)} {title}"


def parse_title(title: str) -> tuple[int, str]:
    """Split a work item title into (issue number, issue title)."""
    match = _TITLE_RE.match(title or "")
    if not match:
        raise TitleFormatError(f"Work item title '{title}' does not start with 'GH #<number>: '")
    return int(match.group(1)), match.group(2)


def clean_url(url: str | None) -> str:
    """Rewrite a GitHub API URL to the matching github.com page."""
    return (url or "").replace("api.github.com/repos/", "github.com/")
