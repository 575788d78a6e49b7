"""Azure DevOps work item tracking REST API client."""

import base64
import logging

import httpx

from gitsync.errors import AdoConnectionError, AdoError, AdoQueryError
from gitsync.models import PatchOperation, WorkItem
from gitsync.settings import AdoSettings

logger = logging.getLogger(__name__)

API_VERSION = "7.0"
JSON_PATCH = "application/json-patch+json"


class AdoClient:
    def __init__(self, settings: AdoSettings) -> None:
        if not settings.token:
            raise AdoError("No Azure DevOps credentials. Set ado_token or ado.token in the config file.")
        self._org_url = settings.org_url
        pat = settings.token.get_secret_value()
        auth = base64.b64encode(f":{pat}".encode()).decode()
        self._headers = {
            "Authorization": f"Basic {auth}",
            "Accept": "application/json",
        }

    def _url(self, project: str, path: str) -> str:
        return f"{self._org_url}/{project}/_apis/wit/{path}"

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
        json: list | dict | None = None,
        content_type: str | None = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if content_type:
            headers["Content-Type"] = content_type
        try:
            response = httpx.request(
                method,
                url,
                headers=headers,
                params={"api-version": API_VERSION, **(params or {})},
                json=json,
                timeout=30,
            )
        except httpx.TransportError as exc:
            raise AdoConnectionError(f"Cannot connect to organization {self._org_url}: {exc}") from exc
        logger.debug("%s %s -> %s", method, url, response.status_code)
        if response.status_code in (401, 203):
            # 203 is the sign-in page ADO serves for a bad PAT
            raise AdoError(
                f"Azure DevOps returned {response.status_code}. Check that ado_token is valid "
                "and has Work Items (Read & Write) scope."
            )
        return response

    @staticmethod
    def _work_item(response: httpx.Response, what: str) -> WorkItem:
        try:
            return WorkItem.model_validate(response.json())
        except ValueError as exc:
            # JSON decode errors and pydantic's ValidationError are both ValueErrors
            raise AdoError(f"Unexpected response for {what}: {exc}") from exc

    def query_by_wiql(self, query: str, project: str) -> list[int]:
        """Run a WIQL query and return the matching work item ids, in backend order."""
        response = self._send(
            "POST", self._url(project, "wiql"), json={"query": query}, content_type="application/json"
        )
        if response.status_code == 404:
            raise AdoQueryError(f"Project '{project}' appears to be invalid.")
        if response.is_error:
            raise AdoQueryError(f"WIQL query rejected ({response.status_code}): {response.text[:500]}")
        try:
            return [ref["id"] for ref in response.json().get("workItems", [])]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise AdoQueryError(f"Unexpected WIQL response: {exc}") from exc

    def get_work_item(
        self,
        work_item_id: int,
        project: str,
        fields: list[str] | None = None,
        expand: str | None = None,
    ) -> WorkItem:
        params: dict = {}
        # ADO rejects fields and $expand together
        if fields:
            params["fields"] = ",".join(fields)
        elif expand:
            params["$expand"] = expand
        response = self._send("GET", self._url(project, f"workitems/{work_item_id}"), params=params)
        if response.is_error:
            raise AdoQueryError(
                f"Failure getting work item {work_item_id} ({response.status_code}): {response.text[:500]}"
            )
        return self._work_item(response, f"work item {work_item_id}")

    def create_work_item(
        self,
        patch: list[PatchOperation],
        project: str,
        work_item_type: str,
        validate_only: bool = False,
        bypass_rules: bool = False,
    ) -> WorkItem | None:
        """Create a work item. Returns None when ADO does not know work_item_type."""
        response = self._send(
            "POST",
            self._url(project, f"workitems/${work_item_type}"),
            params={"validateOnly": str(validate_only).lower(), "bypassRules": str(bypass_rules).lower()},
            json=[op.to_json() for op in patch],
            content_type=JSON_PATCH,
        )
        if response.status_code == 404:
            return None
        if response.is_error:
            raise AdoError(f"Failure creating work item ({response.status_code}): {response.text[:500]}")
        return self._work_item(response, "created work item")

    def update_work_item(
        self,
        patch: list[PatchOperation],
        work_item_id: int,
        project: str,
        validate_only: bool = False,
        bypass_rules: bool = False,
    ) -> WorkItem:
        response = self._send(
            "PATCH",
            self._url(project, f"workitems/{work_item_id}"),
            params={"validateOnly": str(validate_only).lower(), "bypassRules": str(bypass_rules).lower()},
            json=[op.to_json() for op in patch],
            content_type=JSON_PATCH,
        )
        if response.is_error:
            raise AdoError(f"Failure updating work item {work_item_id} ({response.status_code}): {response.text[:500]}")
        return self._work_item(response, f"work item {work_item_id}")
