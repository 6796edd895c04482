"""Remote workout API client.

API base: https://api.hevyapp.com

Endpoints used:
    /v1/workouts                      — Paginated workout list
    /v1/workouts/count                — Total workout count
    /v1/workouts/{id}                 — Single workout with exercises and sets
    /v1/workouts/events               — Created/updated/deleted events since a cursor
    /v1/exercise_templates            — Paginated exercise templates
    /v1/exercise_history/{templateId} — Per-template exercise history
    /v1/routines                      — Paginated routines
    /v1/routines/{id}                 — Single routine
    /v1/routine_folders               — Paginated routine folders

Every request carries the ``api-key`` header and goes through the
``RetryingExecutor``; callers only ever see a parsed model or an ``ApiError``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

import httpx

from flexinsight.api.executor import RetryingExecutor, Sleep
from flexinsight.config import Settings, get_settings
from flexinsight.core.errors import classify_exception
from flexinsight.models.api import (
    ExerciseHistoryResponse,
    PaginatedExerciseTemplatesResponse,
    PaginatedRoutineFolderResponse,
    PaginatedRoutineResponse,
    PaginatedWorkoutEventsResponse,
    PaginatedWorkoutResponse,
    RoutineResponse,
    WorkoutCountResponse,
    WorkoutResponse,
)
from flexinsight.models.base import FlexBase
from flexinsight.policy_loader import RetryPolicy, get_sync_policy

logger = logging.getLogger("flexinsight.api.client")

API_KEY_HEADER = "api-key"

ModelT = TypeVar("ModelT", bound=FlexBase)


def to_iso8601(millis: int) -> str:
    """Format epoch milliseconds as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


class WorkoutApiClient:
    """Typed async client for the remote workout log.

    Usage::

        async with WorkoutApiClient(api_key="...") as client:
            page = await client.get_workouts(page=1, page_size=10)
            for workout in page.workouts or []:
                ...
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            api_key:      API key sent on every request (FLEXINSIGHT_API_KEY).
            base_url:     API root; defaults to ``Settings.api_base_url``.
            timeout:      Connect/read/write timeout in seconds.
            retry_policy: Backoff settings; defaults to the loaded sync policy.
            http_client:  Optional pre-configured httpx client (for testing).
            sleep:        Backoff sleep, injectable for tests.
        """
        settings: Settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.api_key
        self._base_url = (base_url or settings.api_base_url).rstrip("/") + "/"
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.request_timeout_seconds,
        )
        policy = retry_policy or get_sync_policy().retry
        self._executor = RetryingExecutor.from_policy(self._http_client.send, policy, sleep=sleep)

    async def __aenter__(self) -> WorkoutApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # Workouts
    # ------------------------------------------------------------------

    async def get_workouts(self, page: int = 1, page_size: int = 10) -> PaginatedWorkoutResponse:
        return await self._get(
            "v1/workouts", PaginatedWorkoutResponse, params={"page": page, "pageSize": page_size}
        )

    async def get_workout_count(self) -> WorkoutCountResponse:
        return await self._get("v1/workouts/count", WorkoutCountResponse)

    async def get_workout(self, workout_id: str) -> WorkoutResponse:
        return await self._get(f"v1/workouts/{workout_id}", WorkoutResponse, envelope="workout")

    async def get_workout_events(
        self, page: int = 1, page_size: int = 10, since: str | None = None
    ) -> PaginatedWorkoutEventsResponse:
        """Fetch workout change events.

        Args:
            page:      1-based page number.
            page_size: Events per page.
            since:     ISO-8601 UTC cursor from ``to_iso8601``; None = all events.
        """
        params: dict[str, Any] = {"page": page, "pageSize": page_size}
        if since is not None:
            params["since"] = since
        return await self._get("v1/workouts/events", PaginatedWorkoutEventsResponse, params=params)

    # ------------------------------------------------------------------
    # Exercise templates and history
    # ------------------------------------------------------------------

    async def get_exercise_templates(
        self, page: int = 1, page_size: int = 50
    ) -> PaginatedExerciseTemplatesResponse:
        return await self._get(
            "v1/exercise_templates",
            PaginatedExerciseTemplatesResponse,
            params={"page": page, "pageSize": page_size},
        )

    async def get_exercise_history(self, template_id: str) -> ExerciseHistoryResponse:
        return await self._get(f"v1/exercise_history/{template_id}", ExerciseHistoryResponse)

    # ------------------------------------------------------------------
    # Routines
    # ------------------------------------------------------------------

    async def get_routines(self, page: int = 1, page_size: int = 10) -> PaginatedRoutineResponse:
        return await self._get(
            "v1/routines", PaginatedRoutineResponse, params={"page": page, "pageSize": page_size}
        )

    async def get_routine(self, routine_id: str) -> RoutineResponse:
        return await self._get(f"v1/routines/{routine_id}", RoutineResponse, envelope="routine")

    async def get_routine_folders(
        self, page: int = 1, page_size: int = 10
    ) -> PaginatedRoutineFolderResponse:
        return await self._get(
            "v1/routine_folders",
            PaginatedRoutineFolderResponse,
            params={"page": page, "pageSize": page_size},
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        return {API_KEY_HEADER: self._api_key, "Accept": "application/json"}

    async def _get(
        self,
        path: str,
        model: type[ModelT],
        params: dict[str, Any] | None = None,
        envelope: str | None = None,
    ) -> ModelT:
        """Make an authenticated GET request and parse the body into ``model``.

        Args:
            path:     Endpoint path relative to the API root.
            model:    Response schema.
            params:   Query parameters.
            envelope: Key under which single-object endpoints may wrap the body.

        Returns:
            The parsed response model.

        Raises:
            ApiError: Classified transport/status failure, or
                      ``UnknownError("Server response format error")`` for a
                      body that does not match ``model``.
        """
        request = self._http_client.build_request(
            "GET", self._base_url + path, params=params, headers=self._build_headers()
        )
        response = await self._executor.execute(request)
        try:
            body = response.json()
            if envelope and isinstance(body, dict) and envelope in body and "id" not in body:
                body = body[envelope]
            return model.model_validate(body)
        except ValueError as exc:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise classify_exception(exc) from exc
        finally:
            await response.aclose()
