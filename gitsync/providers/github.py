"""GitHub REST API v3 client for the issues the bridge writes back to."""

import httpx

from gitsync.errors import GitHubError
from gitsync.models import GitHubIssue
from gitsync.settings import GitHubSettings

BASE_URL = "https://api.github.com"


class GitHubClient:
    def __init__(self, settings: GitHubSettings) -> None:
        if not settings.token:
            raise GitHubError("No GitHub credentials. Set github_token or github.token in the config file.")
        self._headers = {
            "Authorization": f"Bearer {settings.token.get_secret_value()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _check(self, response: httpx.Response) -> dict:
        if response.status_code == 401:
            raise GitHubError("GitHub API returned 401. Check that github_token is valid and has issues scope.")
        response.raise_for_status()
        return response.json()

    def _get(self, path: str) -> dict:
        response = httpx.get(f"{BASE_URL}{path}", headers=self._headers, timeout=30)
        return self._check(response)

    def _patch(self, path: str, body: dict) -> dict:
        response = httpx.patch(f"{BASE_URL}{path}", headers=self._headers, json=body, timeout=30)
        return self._check(response)

    def get_issue(self, owner: str, repo: str, number: int) -> GitHubIssue:
        node = self._get(f"/repos/{owner}/{repo}/issues/{number}")
        return GitHubIssue.model_validate(node)

    def update_issue(
        self,
        owner: str,
        repo: str,
        number: int,
        title: str | None = None,
        body: str | None = None,
        state: str | None = None,
    ) -> dict:
        payload = {k: v for k, v in {"title": title, "body": body, "state": state}.items() if v is not None}
        return self._patch(f"/repos/{owner}/{repo}/issues/{number}", payload)
