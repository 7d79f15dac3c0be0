"""Rollout API client — thin async gateway to the change-management platform.

Maps the five remote operations the controller needs onto HTTP calls and
classifies failures into domain errors. Payloads are decoded into typed
schemas here, once, so callers never handle raw JSON.

No retries happen here; the controller's poll cadence is the only
retry mechanism and every error is surfaced to it.

Usage:
    async with RolloutClient(url, token) as client:
        preview = await client.create_rollout(project, plan, validate_only=True)
"""

from typing import Any

import httpx
import structlog
from packaging.version import InvalidVersion, Version

from rollout_runner.exceptions import (
    EmptyResultError,
    NotFoundError,
    RemoteError,
    UnsupportedVersionError,
)
from rollout_runner.schemas.rollout import Rollout, TaskRun

logger = structlog.get_logger()

MINIMUM_SERVER_VERSION = "3.5.0"


class RolloutClient:
    """Async HTTP client for the rollout API.

    Handles bearer authentication, request encoding, and error mapping.
    """

    DEFAULT_TIMEOUT = 30.0
    USER_AGENT = "rollout-runner"

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the rollout client.

        Args:
            base_url: Root URL of the platform, without the /v1 prefix.
            token: Bearer credential.
            timeout: Request timeout in seconds.
            transport: Override the HTTP transport (useful for testing).
        """
        if not base_url or not token:
            raise ValueError("Rollout API base_url and token are required.")
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "User-Agent": self.USER_AGENT,
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RolloutClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Make one HTTP request and return the decoded JSON body.

        Args:
            method: HTTP method (GET or POST).
            path: API path, starting with /v1/.
            operation: Short description used in error messages.
            json: JSON body for POST requests.
            params: Query parameters.

        Returns:
            The JSON object, or None when the body is empty.

        Raises:
            RemoteError: On transport failure or a non-200 status.
        """
        client = await self._get_client()
        logger.debug("rollout_api_request", method=method, path=path, params=params)
        try:
            response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise RemoteError(
                message=f"failed to {operation}, {type(e).__name__}: {e}",
                operation=operation,
            ) from e

        if response.status_code != 200:
            raise RemoteError(
                message=f"failed to {operation}, {response.status_code}, {_error_message(response)}",
                status_code=response.status_code,
                operation=operation,
            )

        if not response.content.strip():
            return None
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteError(
                message=f"failed to {operation}, invalid JSON response: {e}",
                status_code=response.status_code,
                operation=operation,
            ) from e
        if not data:
            return None
        if not isinstance(data, dict):
            raise RemoteError(
                message=f"failed to {operation}, expected object, got {type(data).__name__}",
                status_code=response.status_code,
                operation=operation,
            )
        logger.debug("rollout_api_success", path=path, status=response.status_code)
        return data

    async def get_rollout(self, name: str) -> Rollout:
        """Fetch the current state of a rollout, with stages and tasks."""
        data = await self._request("GET", f"/v1/{name}", operation="get rollout")
        if data is None:
            raise NotFoundError(
                message=f"rollout {name} not found",
                status_code=200,
                operation="get rollout",
            )
        return Rollout.from_payload(data)

    async def create_rollout(
        self,
        project: str,
        plan: str,
        validate_only: bool = False,
        target: str | None = None,
        title: str | None = None,
    ) -> Rollout:
        """Create, or preview, the rollout of a plan.

        Args:
            project: Project resource name, projects/{project}.
            plan: Plan resource name.
            validate_only: Request a non-persisted preview.
            target: Materialize stages only up to this stage. An empty
                string creates the rollout with no stages; None leaves
                the choice to the server.
            title: Optional rollout title.
        """
        params: dict[str, Any] = {}
        if validate_only:
            params["validateOnly"] = "true"
        if target is not None:
            params["target"] = target
        body: dict[str, Any] = {"plan": plan}
        if title:
            body["title"] = title

        data = await self._request(
            "POST",
            f"/v1/{project}/rollouts",
            operation="create rollout",
            json=body,
            params=params or None,
        )
        if data is None:
            raise EmptyResultError(
                message="failed to create rollout, expected a result, got none",
                status_code=200,
                operation="create rollout",
            )
        return Rollout.from_payload(data)

    async def batch_run_tasks(self, stage_name: str, task_names: list[str], reason: str) -> None:
        """Request execution of the given tasks of a stage."""
        await self._request(
            "POST",
            f"/v1/{stage_name}/tasks:batchRun",
            operation="run tasks",
            json={"tasks": list(task_names), "reason": reason},
        )

    async def list_task_runs(self, rollout_name: str) -> list[TaskRun]:
        """List every task run under a rollout, across all stages and tasks."""
        data = await self._request(
            "GET",
            f"/v1/{rollout_name}/stages/-/tasks/-/taskRuns",
            operation="list task runs",
        )
        if data is None:
            return []
        return [TaskRun.from_payload(item) for item in data.get("taskRuns") or []]

    async def batch_cancel_task_runs(
        self,
        rollout_name: str,
        stage_ref: str,
        task_run_names: list[str],
    ) -> None:
        """Cancel the given task runs of one stage.

        Args:
            rollout_name: Resource name of the rollout.
            stage_ref: Stage path segment, stages/{stage}.
            task_run_names: Full resource names of the task runs.
        """
        await self._request(
            "POST",
            f"/v1/{rollout_name}/{stage_ref}/tasks/-/taskRuns:batchCancel",
            operation="cancel task runs",
            json={"taskRuns": list(task_run_names)},
        )

    async def get_server_version(self) -> str:
        """Return the server version reported by the actuator endpoint."""
        data = await self._request("GET", "/v1/actuator/info", operation="get actuator info")
        if data is None or not data.get("version"):
            raise NotFoundError(
                message="actuator info not found",
                status_code=200,
                operation="get actuator info",
            )
        return str(data["version"])

    async def assert_supported_version(self, minimum: str = MINIMUM_SERVER_VERSION) -> Version:
        """Fail unless the server is at least ``minimum``.

        Raises:
            UnsupportedVersionError: If the version is older or unparsable.
        """
        raw = await self.get_server_version()
        try:
            version = Version(raw)
        except InvalidVersion:
            raise UnsupportedVersionError(
                message=f"server version {raw} is not supported. Please upgrade to {minimum} or later.",
                version=raw,
                minimum=minimum,
            ) from None
        if version < Version(minimum):
            raise UnsupportedVersionError(
                message=f"server version {raw} is not supported. Please upgrade to {minimum} or later.",
                version=raw,
                minimum=minimum,
            )
        return version


def _error_message(response: httpx.Response) -> str:
    """Pull the server's message out of an error body, falling back to the text."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text[:200]
