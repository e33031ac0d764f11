"""
GitHub GraphQL client for TaskGuard.

Implements the IssueService protocol against the GitHub GraphQL API using
httpx. Authentication is delegated to the GitHub CLI: the token comes from
``gh auth token`` and is never stored by TaskGuard.

Every request goes through retry-with-backoff; responses are classified into
TransientServiceError (retried) and PermanentServiceError (raised at once).
createIssue is the one call that is not idempotent: before it is retried the
client looks for an issue that the failed attempt may already have created.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Any

import httpx

from taskguard import __version__
from taskguard.core.github.models import (
    TASK_MARKER_PATTERN,
    BoardItem,
    IssueState,
    RemoteIssue,
    RepoInfo,
    StatusColumnOption,
    StatusField,
)
from taskguard.core.github.retry import RetryConfig, call_with_retry
from taskguard.core.github.service import (
    PermanentServiceError,
    ServiceError,
    TransientServiceError,
)

logger = logging.getLogger(__name__)

GRAPHQL_URL = "https://api.github.com/graphql"

TRANSIENT_GRAPHQL_ERRORS = frozenset({"RATE_LIMITED", "SERVICE_UNAVAILABLE", "TIMEOUT"})

ISSUE_FIELDS = "id number title body state url"

REPOSITORY_ID_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { id }
}
"""

CREATE_ISSUE_MUTATION = f"""
mutation($repositoryId: ID!, $title: String!, $body: String) {{
  createIssue(input: {{repositoryId: $repositoryId, title: $title, body: $body}}) {{
    issue {{ {ISSUE_FIELDS} }}
  }}
}}
"""

CLOSE_ISSUE_MUTATION = """
mutation($issueId: ID!) {
  closeIssue(input: {issueId: $issueId}) { issue { id state } }
}
"""

REOPEN_ISSUE_MUTATION = """
mutation($issueId: ID!) {
  reopenIssue(input: {issueId: $issueId}) { issue { id state } }
}
"""

ADD_TO_PROJECT_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}
"""

STATUS_FIELD_QUERY = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 50) {
        nodes {
          ... on ProjectV2SingleSelectField { id name options { id name } }
        }
      }
    }
  }
}
"""

SET_ITEM_STATUS_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId,
    itemId: $itemId,
    fieldId: $fieldId,
    value: {singleSelectOptionId: $optionId}
  }) {
    projectV2Item { id }
  }
}
"""

LIST_ISSUES_QUERY = f"""
query($owner: String!, $name: String!, $cursor: String) {{
  repository(owner: $owner, name: $name) {{
    issues(first: 100, after: $cursor, states: [OPEN, CLOSED],
           orderBy: {{field: CREATED_AT, direction: ASC}}) {{
      pageInfo {{ hasNextPage endCursor }}
      nodes {{ {ISSUE_FIELDS} }}
    }}
  }}
}}
"""

RECENT_ISSUES_QUERY = f"""
query($owner: String!, $name: String!) {{
  repository(owner: $owner, name: $name) {{
    issues(first: 20, states: [OPEN, CLOSED],
           orderBy: {{field: CREATED_AT, direction: DESC}}) {{
      nodes {{ {ISSUE_FIELDS} }}
    }}
  }}
}}
"""

BOARD_ITEM_QUERY = """
query($itemId: ID!) {
  node(id: $itemId) {
    ... on ProjectV2Item {
      id
      content { ... on Issue { id } }
      fieldValues(first: 20) {
        nodes {
          ... on ProjectV2ItemFieldSingleSelectValue {
            name
            field { ... on ProjectV2SingleSelectField { name } }
          }
        }
      }
    }
  }
}
"""

PROJECT_ID_QUERY = """
query($owner: String!, $number: Int!) {
  %s(login: $owner) { projectV2(number: $number) { id } }
}
"""


class GitHubClient:
    """
    IssueService implementation for GitHub Issues + Projects v2.

    Example:
        >>> client = GitHubClient.from_gh_cli(RepoInfo.parse("octo/widgets"))
        >>> board_id = client.resolve_board_id("octo", 1)
        >>> field = client.get_status_column_options(board_id)
    """

    def __init__(
        self,
        repo: RepoInfo,
        token: str,
        *,
        http_client: httpx.Client | None = None,
        retry: RetryConfig | None = None,
        api_url: str = GRAPHQL_URL,
        timeout: float = 30.0,
    ) -> None:
        self.repo = repo
        self.api_url = api_url
        self.retry = retry or RetryConfig()
        self._http = http_client or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "User-Agent": f"TaskGuard/{__version__}",
        }
        self._repository_id: str | None = None

    @classmethod
    def from_gh_cli(
        cls, repo: RepoInfo, *, retry: RetryConfig | None = None, timeout: float = 30.0
    ) -> GitHubClient:
        """
        Create a client authenticated with the token of the GitHub CLI.

        Raises:
            PermanentServiceError: If gh is missing or not authenticated
        """
        return cls(repo, get_gh_token(), retry=retry, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _graphql(self, query: str, variables: dict[str, Any], operation: str) -> dict[str, Any]:
        """Run a GraphQL request with retries and return its ``data`` object."""
        return call_with_retry(self._post, self.retry, query, variables, operation)

    def _post(self, query: str, variables: dict[str, Any], operation: str) -> dict[str, Any]:
        logger.debug("GraphQL %s %s", operation, variables)
        try:
            response = self._http.post(
                self.api_url,
                json={"query": query, "variables": variables},
                headers=self._headers,
            )
        except httpx.TimeoutException as e:
            raise TransientServiceError(
                f"{operation}: request timed out", operation=operation
            ) from e
        except httpx.TransportError as e:
            raise TransientServiceError(
                f"{operation}: network error: {e}", operation=operation
            ) from e

        _raise_for_status(response, operation)

        try:
            payload = response.json()
        except ValueError as e:
            raise PermanentServiceError(
                f"{operation}: invalid JSON response", operation=operation
            ) from e

        errors = payload.get("errors")
        if errors:
            _raise_for_graphql_errors(errors, operation)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise PermanentServiceError(f"{operation}: response has no data", operation=operation)
        return data

    def _repo_id(self) -> str:
        if self._repository_id is None:
            data = self._graphql(
                REPOSITORY_ID_QUERY,
                {"owner": self.repo.owner, "name": self.repo.repo},
                "repository",
            )
            repository = data.get("repository")
            if not repository:
                raise PermanentServiceError(
                    f"Repository {self.repo.full_name} not found", operation="repository"
                )
            self._repository_id = str(repository["id"])
        return self._repository_id

    # ------------------------------------------------------------------
    # IssueService
    # ------------------------------------------------------------------

    def create_issue(self, title: str, body: str) -> RemoteIssue:
        """
        Create an issue.

        A transient failure may arrive after GitHub already created the issue.
        When *body* carries a TaskGuard ID, each retry first checks the most
        recent issues for that ID and returns the match instead of creating a
        second issue. Bodies without an ID are sent once and never retried.
        """
        variables = {"repositoryId": self._repo_id(), "title": title, "body": body}
        match = TASK_MARKER_PATTERN.search(body)
        if match is None:
            data = self._post(CREATE_ISSUE_MUTATION, variables, "createIssue")
            return RemoteIssue.from_graphql(data["createIssue"]["issue"])

        task_id = match.group(1)
        attempts = 0

        def create() -> RemoteIssue:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                existing = self._recent_issue_for(task_id)
                if existing is not None:
                    logger.info(
                        "Issue #%d for %s was created by a failed attempt",
                        existing.number,
                        task_id,
                    )
                    return existing
            data = self._post(CREATE_ISSUE_MUTATION, variables, "createIssue")
            return RemoteIssue.from_graphql(data["createIssue"]["issue"])

        return call_with_retry(create, self.retry)

    def _recent_issue_for(self, task_id: str) -> RemoteIssue | None:
        data = self._post(
            RECENT_ISSUES_QUERY,
            {"owner": self.repo.owner, "name": self.repo.repo},
            "recentIssues",
        )
        nodes = ((data.get("repository") or {}).get("issues") or {}).get("nodes") or []
        for issue in (RemoteIssue.from_graphql(node) for node in nodes if node):
            if issue.task_marker == task_id:
                return issue
        return None

    def update_issue_state(self, issue_id: str, state: IssueState) -> None:
        mutation = CLOSE_ISSUE_MUTATION if state == IssueState.CLOSED else REOPEN_ISSUE_MUTATION
        self._graphql(mutation, {"issueId": issue_id}, f"updateIssueState({state.value})")

    def add_to_board(self, board_id: str, issue_id: str) -> str:
        data = self._graphql(
            ADD_TO_PROJECT_MUTATION,
            {"projectId": board_id, "contentId": issue_id},
            "addProjectV2ItemById",
        )
        return str(data["addProjectV2ItemById"]["item"]["id"])

    def get_status_column_options(self, board_id: str) -> StatusField:
        data = self._graphql(STATUS_FIELD_QUERY, {"projectId": board_id}, "statusField")
        node = data.get("node") or {}
        for field in (node.get("fields") or {}).get("nodes") or []:
            if field and str(field.get("name", "")).lower() == "status":
                return StatusField(
                    field_id=str(field["id"]),
                    options=[
                        StatusColumnOption(column_id=str(o["id"]), column_name=str(o["name"]))
                        for o in field.get("options") or []
                    ],
                )
        raise PermanentServiceError(
            f"Board {board_id} has no Status field", operation="statusField"
        )

    def set_item_status(self, board_id: str, item_id: str, field_id: str, column_id: str) -> None:
        self._graphql(
            SET_ITEM_STATUS_MUTATION,
            {"projectId": board_id, "itemId": item_id, "fieldId": field_id, "optionId": column_id},
            "updateProjectV2ItemFieldValue",
        )

    def list_issues(self, repo: str) -> list[RemoteIssue]:
        target = RepoInfo.parse(repo)
        issues: list[RemoteIssue] = []
        cursor: str | None = None

        while True:
            data = self._graphql(
                LIST_ISSUES_QUERY,
                {"owner": target.owner, "name": target.repo, "cursor": cursor},
                "listIssues",
            )
            repository = data.get("repository")
            if not repository:
                raise PermanentServiceError(f"Repository {repo} not found", operation="listIssues")
            page = repository["issues"]
            issues.extend(RemoteIssue.from_graphql(node) for node in page["nodes"] if node)
            if not page["pageInfo"]["hasNextPage"]:
                break
            cursor = page["pageInfo"]["endCursor"]

        return issues

    def get_board_item(self, item_id: str) -> BoardItem:
        data = self._graphql(BOARD_ITEM_QUERY, {"itemId": item_id}, "boardItem")
        node = data.get("node")
        if not node:
            raise PermanentServiceError(f"Board item {item_id} not found", operation="boardItem")

        column: str | None = None
        for value in (node.get("fieldValues") or {}).get("nodes") or []:
            field = (value or {}).get("field") or {}
            if str(field.get("name", "")).lower() == "status" and value.get("name"):
                column = str(value["name"])
                break

        content = node.get("content") or {}
        return BoardItem(item_id=item_id, issue_id=content.get("id"), column_name=column)

    # ------------------------------------------------------------------
    # Board discovery
    # ------------------------------------------------------------------

    def resolve_board_id(self, owner: str, project_number: int) -> str:
        """
        Resolve a Projects v2 number to its node id, trying organization then user.

        Raises:
            PermanentServiceError: If neither owner kind has the project
        """
        variables = {"owner": owner, "number": project_number}
        for owner_kind in ("organization", "user"):
            try:
                data = self._graphql(PROJECT_ID_QUERY % owner_kind, variables, "projectId")
            except PermanentServiceError:
                continue
            project = (data.get(owner_kind) or {}).get("projectV2")
            if project and project.get("id"):
                return str(project["id"])

        raise PermanentServiceError(
            f"Project #{project_number} not found for {owner}", operation="projectId"
        )


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    status = response.status_code
    if status < 400:
        return

    detail = response.text[:200]
    if status == 401:
        raise PermanentServiceError(
            f"{operation}: authentication failed (run `gh auth login`)", operation=operation
        )
    if status in (403, 429) and (
        response.headers.get("x-ratelimit-remaining") == "0" or "rate limit" in detail.lower()
    ):
        raise TransientServiceError(f"{operation}: rate limited", operation=operation)
    if status == 429 or status >= 500:
        raise TransientServiceError(f"{operation}: HTTP {status}: {detail}", operation=operation)
    raise PermanentServiceError(f"{operation}: HTTP {status}: {detail}", operation=operation)


def _raise_for_graphql_errors(errors: list[dict[str, Any]], operation: str) -> None:
    messages = "; ".join(str(e.get("message", e)) for e in errors)
    types = {str(e.get("type", "")) for e in errors}
    if types & TRANSIENT_GRAPHQL_ERRORS:
        raise TransientServiceError(f"{operation}: {messages}", operation=operation)
    raise PermanentServiceError(f"{operation}: {messages}", operation=operation)


def get_gh_token() -> str:
    """
    Read the GitHub token from the GitHub CLI.

    Raises:
        PermanentServiceError: If gh is not installed or not authenticated
    """
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            check=False,
        )
    except (OSError, FileNotFoundError) as e:
        raise PermanentServiceError(
            "GitHub CLI (gh) is not installed.\nInstall: https://cli.github.com/"
        ) from e

    token = result.stdout.strip()
    if result.returncode != 0 or not token:
        raise PermanentServiceError(
            "GitHub authentication failed. Run: gh auth login\n" + result.stderr.strip()
        )
    return token


__all__ = ["GitHubClient", "ServiceError", "get_gh_token"]
