"""Tests for GitHubClient against a mocked GraphQL endpoint."""

import json
from unittest.mock import patch

import httpx
import pytest

from taskguard.core.github.client import GitHubClient, get_gh_token
from taskguard.core.github.models import IssueState, RemoteIssue, RepoInfo
from taskguard.core.github.retry import RetryConfig
from taskguard.core.github.service import (
    IssueService,
    PermanentServiceError,
    TransientServiceError,
)

# ==============================================================================
# Helpers
# ==============================================================================


class GraphQLServer:
    """Scripted GraphQL endpoint: each request pops the next response."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _data(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"data": data})


def _issue_node(number: int, body: str = "", state: str = "OPEN") -> dict:
    return {
        "id": f"I_{number}",
        "number": number,
        "title": f"Issue {number}",
        "body": body,
        "state": state,
        "url": f"https://github.com/octo/app/issues/{number}",
    }


def _client(server: GraphQLServer, max_retries: int = 2) -> GitHubClient:
    return GitHubClient(
        RepoInfo.parse("octo/app"),
        "token-123",
        http_client=httpx.Client(transport=httpx.MockTransport(server)),
        retry=RetryConfig(max_retries=max_retries, base_delay=0, jitter=False),
    )


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("taskguard.core.github.retry.time.sleep"):
        yield


# ==============================================================================
# IssueService operations
# ==============================================================================


class TestOperations:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(_client(GraphQLServer()), IssueService)

    def test_create_issue_looks_up_repository_once(self) -> None:
        server = GraphQLServer(
            _data({"repository": {"id": "R_1"}}),
            _data({"createIssue": {"issue": _issue_node(5)}}),
            _data({"createIssue": {"issue": _issue_node(6)}}),
        )
        client = _client(server)

        first = client.create_issue("[api-001] First", "body")
        second = client.create_issue("[api-002] Second", "body")

        assert (first.number, second.number) == (5, 6)
        assert len(server.requests) == 3
        assert server.requests[1]["variables"] == {
            "repositoryId": "R_1",
            "title": "[api-001] First",
            "body": "body",
        }

    def test_sends_auth_header(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return _data({"closeIssue": {"issue": {"id": "I_1", "state": "CLOSED"}}})

        client = GitHubClient(
            RepoInfo.parse("octo/app"),
            "token-123",
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        client.update_issue_state("I_1", IssueState.CLOSED)
        assert seen == ["Bearer token-123"]

    def test_update_issue_state_picks_mutation(self) -> None:
        server = GraphQLServer(
            _data({"closeIssue": {"issue": {"id": "I_1"}}}),
            _data({"reopenIssue": {"issue": {"id": "I_1"}}}),
        )
        client = _client(server)
        client.update_issue_state("I_1", IssueState.CLOSED)
        client.update_issue_state("I_1", IssueState.OPEN)
        assert "closeIssue" in server.requests[0]["query"]
        assert "reopenIssue" in server.requests[1]["query"]

    def test_add_to_board(self) -> None:
        server = GraphQLServer(_data({"addProjectV2ItemById": {"item": {"id": "PVTI_9"}}}))
        assert _client(server).add_to_board("PVT_1", "I_1") == "PVTI_9"

    def test_status_field_discovery(self) -> None:
        fields = {
            "nodes": [
                {},
                {"id": "F_prio", "name": "Priority", "options": [{"id": "p1", "name": "High"}]},
                {
                    "id": "F_status",
                    "name": "Status",
                    "options": [{"id": "o1", "name": "Todo"}, {"id": "o2", "name": "Done"}],
                },
            ]
        }
        server = GraphQLServer(_data({"node": {"fields": fields}}))

        field = _client(server).get_status_column_options("PVT_1")

        assert field.field_id == "F_status"
        assert field.column_names == ["Todo", "Done"]
        assert field.options[1].column_id == "o2"

    def test_board_without_status_field(self) -> None:
        server = GraphQLServer(_data({"node": {"fields": {"nodes": []}}}))
        with pytest.raises(PermanentServiceError, match="no Status field"):
            _client(server).get_status_column_options("PVT_1")

    def test_list_issues_paginates(self) -> None:
        page_one = {
            "pageInfo": {"hasNextPage": True, "endCursor": "c1"},
            "nodes": [_issue_node(1, "**TaskGuard ID:** api-001")],
        }
        page_two = {
            "pageInfo": {"hasNextPage": False, "endCursor": None},
            "nodes": [_issue_node(2, state="CLOSED")],
        }
        server = GraphQLServer(
            _data({"repository": {"issues": page_one}}),
            _data({"repository": {"issues": page_two}}),
        )

        issues = _client(server).list_issues("octo/app")

        assert [i.number for i in issues] == [1, 2]
        assert issues[0].task_marker == "api-001"
        assert issues[1].state == IssueState.CLOSED
        assert server.requests[1]["variables"]["cursor"] == "c1"

    def test_get_board_item_reads_status(self) -> None:
        node = {
            "id": "PVTI_1",
            "content": {"id": "I_1"},
            "fieldValues": {
                "nodes": [
                    {},
                    {"name": "High", "field": {"name": "Priority"}},
                    {"name": "In progress", "field": {"name": "Status"}},
                ]
            },
        }
        item = _client(GraphQLServer(_data({"node": node}))).get_board_item("PVTI_1")
        assert item.column_name == "In progress"
        assert item.issue_id == "I_1"

    def test_get_board_item_without_status(self) -> None:
        node = {"id": "PVTI_1", "content": {"id": "I_1"}, "fieldValues": {"nodes": []}}
        item = _client(GraphQLServer(_data({"node": node}))).get_board_item("PVTI_1")
        assert item.column_name is None

    def test_resolve_board_id_falls_back_to_user(self) -> None:
        server = GraphQLServer(
            httpx.Response(200, json={"errors": [{"type": "NOT_FOUND", "message": "no org"}]}),
            _data({"user": {"projectV2": {"id": "PVT_user"}}}),
        )
        assert _client(server).resolve_board_id("octo", 3) == "PVT_user"
        assert "organization(" in server.requests[0]["query"]
        assert "user(" in server.requests[1]["query"]

    def test_resolve_board_id_not_found(self) -> None:
        server = GraphQLServer(
            _data({"organization": {"projectV2": None}}),
            _data({"user": None}),
        )
        with pytest.raises(PermanentServiceError, match="Project #3"):
            _client(server).resolve_board_id("octo", 3)


# ==============================================================================
# Error classification and retries
# ==============================================================================


class TestErrors:
    def test_server_error_retried_then_succeeds(self) -> None:
        server = GraphQLServer(
            httpx.Response(502, text="bad gateway"),
            _data({"addProjectV2ItemById": {"item": {"id": "PVTI_1"}}}),
        )
        assert _client(server).add_to_board("PVT_1", "I_1") == "PVTI_1"
        assert len(server.requests) == 2

    def test_transient_exhausts_retries(self) -> None:
        server = GraphQLServer(*[httpx.Response(503, text="down") for _ in range(3)])
        with pytest.raises(TransientServiceError):
            _client(server, max_retries=2).add_to_board("PVT_1", "I_1")
        assert len(server.requests) == 3

    def test_network_error_is_transient(self) -> None:
        server = GraphQLServer(
            httpx.ConnectError("refused"),
            _data({"addProjectV2ItemById": {"item": {"id": "PVTI_1"}}}),
        )
        assert _client(server).add_to_board("PVT_1", "I_1") == "PVTI_1"

    def test_rate_limit_is_transient(self) -> None:
        server = GraphQLServer(
            httpx.Response(403, headers={"x-ratelimit-remaining": "0"}, text="slow down"),
            _data({"addProjectV2ItemById": {"item": {"id": "PVTI_1"}}}),
        )
        assert _client(server).add_to_board("PVT_1", "I_1") == "PVTI_1"

    def test_graphql_rate_limited_is_transient(self) -> None:
        server = GraphQLServer(
            httpx.Response(200, json={"errors": [{"type": "RATE_LIMITED", "message": "wait"}]}),
            _data({"addProjectV2ItemById": {"item": {"id": "PVTI_1"}}}),
        )
        assert _client(server).add_to_board("PVT_1", "I_1") == "PVTI_1"

    def test_create_issue_retry_returns_issue_from_failed_attempt(self) -> None:
        marker = "**TaskGuard ID:** api-001"
        server = GraphQLServer(
            _data({"repository": {"id": "R_1"}}),
            httpx.Response(502, text="bad gateway"),
            _data({"repository": {"issues": {"nodes": [_issue_node(8), _issue_node(7, marker)]}}}),
        )

        issue = _client(server).create_issue("[api-001] First", marker)

        assert issue.number == 7
        creates = [r for r in server.requests if "createIssue" in r["query"]]
        assert len(creates) == 1

    def test_create_issue_retried_when_nothing_was_created(self) -> None:
        marker = "**TaskGuard ID:** api-001"
        server = GraphQLServer(
            _data({"repository": {"id": "R_1"}}),
            httpx.ConnectError("reset"),
            _data({"repository": {"issues": {"nodes": [_issue_node(8)]}}}),
            _data({"createIssue": {"issue": _issue_node(9, marker)}}),
        )

        issue = _client(server).create_issue("[api-001] First", marker)

        assert issue.number == 9
        creates = [r for r in server.requests if "createIssue" in r["query"]]
        assert len(creates) == 2

    def test_create_issue_without_task_id_is_not_retried(self) -> None:
        server = GraphQLServer(
            _data({"repository": {"id": "R_1"}}),
            httpx.Response(502, text="bad gateway"),
        )
        with pytest.raises(TransientServiceError):
            _client(server).create_issue("Loose issue", "no marker here")
        assert len(server.requests) == 2

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(401, text="Bad credentials"),
            httpx.Response(403, text="Resource not accessible by integration"),
            httpx.Response(404, text="Not Found"),
            httpx.Response(200, json={"errors": [{"type": "NOT_FOUND", "message": "gone"}]}),
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"data": None}),
        ],
    )
    def test_permanent_errors_not_retried(self, response: httpx.Response) -> None:
        server = GraphQLServer(response)
        with pytest.raises(PermanentServiceError) as exc_info:
            _client(server).add_to_board("PVT_1", "I_1")
        assert exc_info.value.operation == "addProjectV2ItemById"
        assert len(server.requests) == 1


# ==============================================================================
# Authentication
# ==============================================================================


class TestGhToken:
    def test_reads_token(self) -> None:
        with patch("taskguard.core.github.client.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 0
            mock_run.return_value.stdout = "gho_abc\n"
            assert get_gh_token() == "gho_abc"

    def test_not_authenticated(self) -> None:
        with patch("taskguard.core.github.client.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 1
            mock_run.return_value.stdout = ""
            mock_run.return_value.stderr = "not logged in"
            with pytest.raises(PermanentServiceError, match="gh auth login"):
                get_gh_token()

    def test_gh_missing(self) -> None:
        with patch(
            "taskguard.core.github.client.subprocess.run", side_effect=FileNotFoundError("gh")
        ):
            with pytest.raises(PermanentServiceError, match="not installed"):
                get_gh_token()


class TestModels:
    def test_remote_issue_from_graphql(self) -> None:
        issue = RemoteIssue.from_graphql(_issue_node(3, state="CLOSED"))
        assert issue.state == IssueState.CLOSED
        assert issue.task_marker is None

    @pytest.mark.parametrize(
        "url",
        [
            "git@github.com:octo/app.git",
            "https://github.com/octo/app.git",
            "https://github.com/octo/app/",
        ],
    )
    def test_repo_from_remote_url(self, url: str) -> None:
        assert RepoInfo.from_remote_url(url) == RepoInfo(owner="octo", repo="app")

    def test_repo_from_foreign_url(self) -> None:
        assert RepoInfo.from_remote_url("https://gitlab.com/octo/app") is None

    @pytest.mark.parametrize("value", ["octo", "octo/", "/app", "octo/app/extra"])
    def test_repo_parse_rejects(self, value: str) -> None:
        with pytest.raises(ValueError):
            RepoInfo.parse(value)
