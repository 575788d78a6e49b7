"""Tests for AdoClient using pytest-httpx."""

import base64
import json
import re

import httpx
import pytest
from pytest_httpx import HTTPXMock

from gitsync.errors import AdoConnectionError, AdoError, AdoQueryError
from gitsync.models import PatchOperation
from gitsync.providers.ado import JSON_PATCH, AdoClient
from gitsync.settings import AdoSettings

ORG_URL = "https://dev.azure.com/contoso"
WIT_URL = f"{ORG_URL}/Widgets/_apis/wit"

_WORK_ITEM_NODE = {
    "id": 12,
    "rev": 3,
    "fields": {"System.Title": "GH #100: foo", "System.State": "New", "System.Tags": "GitHub Issue; bug"},
    "url": f"{WIT_URL}/workItems/12",
}

_PATCH = [
    PatchOperation(op="add", path="/fields/System.State", value="Closed"),
    PatchOperation(op="remove", path="/fields/System.AssignedTo"),
]


def _settings(**kwargs) -> AdoSettings:
    defaults = {"organization": "contoso", "project": "Widgets", "token": "ado_pat_test"}
    defaults.update(kwargs)
    return AdoSettings(**defaults)


def _client() -> AdoClient:
    return AdoClient(_settings())


class TestInit:
    def test_no_credentials_raises(self) -> None:
        with pytest.raises(AdoError, match="No Azure DevOps credentials"):
            AdoClient(_settings(token=None))

    def test_basic_auth_header(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", url=re.compile(rf"{WIT_URL}/wiql.*"), json={"workItems": []})
        _client().query_by_wiql("SELECT [System.Id] FROM workitems", "Widgets")
        request = httpx_mock.get_request()
        expected = base64.b64encode(b":ado_pat_test").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        assert request.url.params["api-version"] == "7.0"


class TestQueryByWiql:
    def test_returns_ids_in_order(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            method="POST",
            url=re.compile(rf"{WIT_URL}/wiql.*"),
            json={"workItems": [{"id": 31, "url": "x"}, {"id": 12, "url": "y"}]},
        )
        assert _client().query_by_wiql("SELECT [System.Id] FROM workitems", "Widgets") == [31, 12]
        assert json.loads(httpx_mock.get_request().content) == {"query": "SELECT [System.Id] FROM workitems"}

    def test_empty_result(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", url=re.compile(rf"{WIT_URL}/wiql.*"), json={"workItems": []})
        assert _client().query_by_wiql("q", "Widgets") == []

    def test_unknown_project(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", url=re.compile(r".*/Nope/_apis/wit/wiql.*"), status_code=404)
        with pytest.raises(AdoQueryError, match="Project 'Nope' appears to be invalid"):
            _client().query_by_wiql("q", "Nope")

    def test_bad_query(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", status_code=400, json={"message": "TF51005: bad field"})
        with pytest.raises(AdoQueryError, match="TF51005"):
            _client().query_by_wiql("q", "Widgets")

    def test_unauthorized(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", status_code=401)
        with pytest.raises(AdoError, match="ado_token"):
            _client().query_by_wiql("q", "Widgets")

    def test_sign_in_page(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", status_code=203, text="<html>sign in</html>")
        with pytest.raises(AdoError, match="203"):
            _client().query_by_wiql("q", "Widgets")

    def test_unreachable_org(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("Name or service not known"))
        with pytest.raises(AdoConnectionError, match="Cannot connect to organization https://dev.azure.com/contoso"):
            _client().query_by_wiql("q", "Widgets")


class TestGetWorkItem:
    def test_expand(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="GET", url=re.compile(rf"{WIT_URL}/workitems/12\?.*"), json=_WORK_ITEM_NODE)
        work_item = _client().get_work_item(12, "Widgets", expand="all")
        assert work_item.id == 12
        assert work_item.fields["System.Tags"] == "GitHub Issue; bug"
        assert httpx_mock.get_request().url.params["$expand"] == "all"

    def test_fields_take_priority(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="GET", json=_WORK_ITEM_NODE)
        _client().get_work_item(12, "Widgets", fields=["System.Title", "System.State"], expand="all")
        params = httpx_mock.get_request().url.params
        assert params["fields"] == "System.Title,System.State"
        assert "$expand" not in params

    def test_missing_item(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="GET", status_code=404, json={"message": "TF401232"})
        with pytest.raises(AdoQueryError, match="work item 99"):
            _client().get_work_item(99, "Widgets")


class TestCreateWorkItem:
    def test_posts_json_patch(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", url=re.compile(rf"{WIT_URL}/workitems/\$Bug\?.*"), json=_WORK_ITEM_NODE)
        work_item = _client().create_work_item(_PATCH, "Widgets", "Bug")
        assert work_item is not None and work_item.id == 12

        request = httpx_mock.get_request()
        assert request.headers["Content-Type"] == JSON_PATCH
        assert request.url.params["validateOnly"] == "false"
        assert request.url.params["bypassRules"] == "false"
        assert json.loads(request.content) == [
            {"op": "add", "path": "/fields/System.State", "value": "Closed"},
            {"op": "remove", "path": "/fields/System.AssignedTo"},
        ]

    def test_flags_forwarded(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", json=_WORK_ITEM_NODE)
        _client().create_work_item(_PATCH, "Widgets", "Bug", validate_only=True, bypass_rules=True)
        params = httpx_mock.get_request().url.params
        assert params["validateOnly"] == "true"
        assert params["bypassRules"] == "true"

    def test_unknown_type_returns_none(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", status_code=404)
        assert _client().create_work_item(_PATCH, "Widgets", "Bogus") is None

    def test_rule_violation_raises(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", status_code=400, json={"message": "TF401320: rule error"})
        with pytest.raises(AdoError, match="TF401320"):
            _client().create_work_item(_PATCH, "Widgets", "Bug")


class TestUpdateWorkItem:
    def test_patches_item(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="PATCH", url=re.compile(rf"{WIT_URL}/workitems/12\?.*"), json=_WORK_ITEM_NODE)
        work_item = _client().update_work_item(_PATCH, 12, "Widgets", bypass_rules=True)
        assert work_item.rev == 3
        request = httpx_mock.get_request()
        assert request.headers["Content-Type"] == JSON_PATCH
        assert request.url.params["bypassRules"] == "true"

    def test_failure_raises(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="PATCH", status_code=400, json={"message": "TF401320"})
        with pytest.raises(AdoError, match="Failure updating work item 12"):
            _client().update_work_item(_PATCH, 12, "Widgets")


class TestMalformedResponses:
    def test_update_non_json_body(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="PATCH", status_code=200, text="<html>proxy error</html>")
        with pytest.raises(AdoError, match="Unexpected response for work item 12"):
            _client().update_work_item(_PATCH, 12, "Widgets")

    def test_work_item_without_id(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="GET", json={"fields": {"System.Title": "GH #100: foo"}})
        with pytest.raises(AdoError, match="Unexpected response for work item 12"):
            _client().get_work_item(12, "Widgets")

    def test_create_non_json_body(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", status_code=200, text="not json")
        with pytest.raises(AdoError, match="created work item"):
            _client().create_work_item(_PATCH, "Widgets", "Bug")

    def test_wiql_without_ids(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", json={"workItems": [{"url": "x"}]})
        with pytest.raises(AdoQueryError, match="Unexpected WIQL response"):
            _client().query_by_wiql("q", "Widgets")
