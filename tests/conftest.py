"""Shared test fixtures."""

import logging
from typing import Any

import pytest

from gitsync.settings import SyncConfig, merge_config

ISSUE_API_URL = "https://api.github.com/repos/foo/bar/issues/100"
ISSUE_WEB_URL = "https://github.com/foo/bar/issues/100"
REPO_API_URL = "https://api.github.com/repos/foo/bar"
REPO_WEB_URL = "https://github.com/foo/bar"
ACTOR_URL = "https://github.com/someone"


def make_payload(**overrides: Any) -> dict[str, Any]:
    """An issues webhook payload for foo/bar#100, opened by 'someone'."""
    payload: dict[str, Any] = {
        "action": "opened",
        "issue": {
            "number": 100,
            "title": "foo",
            "body": "Null pointer in **logout** handler.",
            "url": ISSUE_API_URL,
            "repository_url": REPO_API_URL,
            "html_url": ISSUE_WEB_URL,
            "labels": [{"name": "bug"}, {"name": "auth"}],
            "user": {"login": "someone", "html_url": ACTOR_URL},
            "state": "open",
        },
        "repository": {"full_name": "foo/bar"},
    }
    payload.update(overrides)
    return payload


def make_config(payload: dict[str, Any] | None = None, **ado: Any) -> SyncConfig:
    ado_section = {
        "organization": "contoso",
        "project": "Widgets",
        "wit": "Bug",
        "states": {"new": "New", "closed": "Closed", "reopened": "New", "deleted": "Removed"},
        "token": "ado_pat_test",
        **ado,
    }
    file_config = {"ado": ado_section, "github": {"token": "ghp_test"}}
    return merge_config(payload if payload is not None else make_payload(), file_config, {})


@pytest.fixture
def payload() -> dict[str, Any]:
    return make_payload()


@pytest.fixture
def config() -> SyncConfig:
    return make_config()


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() from CLI tests so caplog keeps working."""
    yield
    logger = logging.getLogger("gitsync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.disabled = False
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def build_payload():
    return make_payload


@pytest.fixture
def build_config():
    return make_config
