"""GraphQL client for the remote workflow service.

Wraps a `requests.Session` so commands never build HTTP requests themselves and tests can
substitute the session.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from workflow_cli import __version__
from workflow_cli.errors import GraphQLError, GraphQLTransportError
from workflow_cli.secrets import ApiKey

logger = logging.getLogger(__name__)


class GraphQLClient:
    def __init__(
        self,
        *,
        url: str,
        api_key: ApiKey | None = None,
        timeout_seconds: float = 120.0,
        session: requests.Session | None = None,
    ) -> None:
        if not url:
            raise ValueError("GraphQL URL is required (set GRAPHQL_URL)")

        self._url = url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": f"workflow-registry-cli/{__version__}",
            }
        )
        if api_key is not None and api_key.get_secret_value():
            self._session.headers["Authorization"] = f"Apikey {api_key.get_secret_value()}"

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def close(self) -> None:
        self._session.close()

    def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a query and return its `data` object, raising GraphQLError on `errors`."""

        try:
            resp = self._session.post(
                self._url,
                json={"query": query, "variables": variables or {}},
                headers=headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            raise GraphQLTransportError(f"graphql request failed: {e}") from e
        except ValueError as e:
            raise GraphQLTransportError(f"graphql response is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise GraphQLTransportError("graphql: response is not a JSON object")
        errors = payload.get("errors")
        if errors:
            # Avoid dumping the entire response; keep logs small and actionable.
            messages: list[str] = []
            codes: list[str] = []
            if isinstance(errors, list):
                for item in errors:
                    if not isinstance(item, dict):
                        continue
                    msg = item.get("message")
                    if isinstance(msg, str):
                        messages.append(msg)
                    ext = item.get("extensions")
                    if isinstance(ext, dict) and isinstance(ext.get("code"), str):
                        codes.append(ext["code"])
            message = "; ".join(messages) if messages else "Unknown GraphQL error"
            logger.debug("GraphQL error response", extra={"messages": messages, "codes": codes})
            raise GraphQLError(f"graphql: {message}", codes=codes)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise GraphQLError("graphql: response has no data object")
        return data
