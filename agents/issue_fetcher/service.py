import enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from agents.errors import AuthError, NetworkError, NotFoundError


AGENT_NAME = "issue_fetcher"
DEFAULT_LINEAR_API_URL = "https://api.linear.app/graphql"
DEFAULT_TIMEOUT_SECONDS = 30.0
IDENTIFIER_SEPARATOR = "-"
COMMENTS_LIMIT = 50

ISSUE_FIELDS = f"""
      id
      identifier
      title
      description
      comments(last: {COMMENTS_LIMIT}) {{
        nodes {{
          body
        }}
      }}
      children {{
        nodes {{
          title
          description
        }}
      }}"""


class IdentifierKind(str, enum.Enum):
    KEY = "key"
    ID = "id"


OPERATION_NAMES = {
    IdentifierKind.KEY: "IssueByKey",
    IdentifierKind.ID: "IssueById",
}


class SubIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: Optional[str] = None


class Issue(BaseModel):
    """Issue snapshot fetched once per invocation."""

    model_config = ConfigDict(frozen=True)

    id: str
    identifier: Optional[str] = None
    title: str
    description: Optional[str] = None
    children: Tuple[SubIssue, ...] = ()
    comments: Tuple[str, ...] = ()


def classify_identifier(identifier: str) -> IdentifierKind:
    """`ABC-123` style keys contain the separator; raw UUIDs are passed as ids."""
    if IDENTIFIER_SEPARATOR in str(identifier or ""):
        return IdentifierKind.KEY
    return IdentifierKind.ID


def build_issue_query(kind: IdentifierKind) -> str:
    operation = OPERATION_NAMES[IdentifierKind(kind)]
    return f"query {operation}($id: String!) {{\n    issue(id: $id) {{{ISSUE_FIELDS}\n    }}\n}}\n"


def build_headers(api_key: str) -> Dict[str, str]:
    # Personal API keys go in raw; OAuth tokens already carry their scheme.
    token = str(api_key or "").strip()
    return {
        "Authorization": token,
        "Content-Type": "application/json",
    }


def _malformed(identifier: str, detail: str) -> NetworkError:
    return NetworkError(f"Malformed issue payload for {identifier}: {detail}")


def _connection_nodes(issue_data: Dict[str, Any], field: str, identifier: str) -> List[Dict[str, Any]]:
    connection = issue_data.get(field)
    if connection is None:
        return []
    if not isinstance(connection, dict):
        raise _malformed(identifier, f"'{field}' is not an object")
    nodes = connection.get("nodes") or []
    if not isinstance(nodes, list):
        raise _malformed(identifier, f"'{field}.nodes' is not a list")
    return [node for node in nodes if isinstance(node, dict)]


def parse_issue_payload(identifier: str, payload: Any) -> Issue:
    """Turn a GraphQL envelope into an Issue.

    Any GraphQL-level error, authentication failures included, means the issue
    is not reachable with this key and is reported as NotFoundError. AuthError
    is kept for HTTP 401/403 rejections.
    """
    if not isinstance(payload, dict):
        raise NetworkError(f"Unexpected response from Linear for issue {identifier}.")
    data = payload.get("data") or {}
    issue_data = data.get("issue") if isinstance(data, dict) else None
    if payload.get("errors") or not issue_data:
        raise NotFoundError(f"Linear issue {identifier} not found or access denied.")
    if not isinstance(issue_data, dict):
        raise _malformed(identifier, "'issue' is not an object")

    children_nodes = _connection_nodes(issue_data, "children", identifier)
    comment_nodes = _connection_nodes(issue_data, "comments", identifier)
    try:
        return Issue(
            id=str(issue_data.get("id") or identifier),
            identifier=issue_data.get("identifier"),
            title=str(issue_data.get("title") or ""),
            description=issue_data.get("description"),
            children=tuple(
                SubIssue(title=str(node.get("title") or ""), description=node.get("description"))
                for node in children_nodes
            ),
            comments=tuple(
                str(node.get("body") or "") for node in comment_nodes if str(node.get("body") or "").strip()
            ),
        )
    except ValidationError as err:
        raise _malformed(identifier, str(err).splitlines()[0]) from err


class LinearIssueFetcher:
    """Fetch a single Linear issue over GraphQL."""

    def __init__(
        self,
        api_key: str,
        logger,
        endpoint: str = DEFAULT_LINEAR_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.logger = logger
        self._client = client

    @staticmethod
    def _now_text() -> str:
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def _debug(self, message: str, **meta: Any) -> None:
        suffix = " | " + ", ".join(f"{k}={v}" for k, v in meta.items()) if meta else ""
        self.logger.debug("[DEBUG][%s] %s | timestamp_text=%s%s", AGENT_NAME, message, self._now_text(), suffix)

    def _post(self, body: Dict[str, Any]) -> httpx.Response:
        headers = build_headers(self.api_key)
        if self._client is not None:
            return self._client.post(self.endpoint, headers=headers, json=body, timeout=self.timeout)
        return httpx.post(self.endpoint, headers=headers, json=body, timeout=self.timeout)

    def fetch_issue(self, identifier: str) -> Issue:
        identifier = str(identifier or "").strip()
        if not identifier:
            raise NotFoundError("An issue identifier is required.")

        kind = classify_identifier(identifier)
        body = {
            "query": build_issue_query(kind),
            "variables": {"id": identifier},
            "operationName": OPERATION_NAMES[kind],
        }
        self._debug("Requesting Linear issue", identifier=identifier, kind=kind.value, endpoint=self.endpoint)

        try:
            response = self._post(body)
        except httpx.TransportError as err:
            raise NetworkError(f"Could not reach Linear at {self.endpoint}: {err}") from err

        if response.status_code in (401, 403):
            raise AuthError(f"Linear rejected the API key (HTTP {response.status_code}).")
        try:
            payload = response.json()
        except ValueError as err:
            raise NetworkError(
                f"Linear returned a non-JSON response for issue {identifier} (HTTP {response.status_code})."
            ) from err
        if response.is_error and not (isinstance(payload, dict) and payload.get("errors")):
            raise NetworkError(f"Linear request failed with HTTP {response.status_code}.")

        issue = parse_issue_payload(identifier, payload)
        self._debug(
            "Linear issue fetched",
            identifier=issue.identifier or issue.id,
            children=len(issue.children),
            comments=len(issue.comments),
        )
        return issue
