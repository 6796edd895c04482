"""Tests for the remote API client against an httpx.MockTransport."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from flexinsight.api.client import to_iso8601
from flexinsight.core.errors import InvalidApiKey, NotFound, UnknownError
from flexinsight.models.api import EVENT_DELETED
from flexinsight.tests.conftest import NOW, TEST_API_KEY, ms


def _json(body: Any, status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body)

    return _handler


class TestToIso8601:
    def test_utc_seconds(self) -> None:
        assert to_iso8601(ms(NOW)) == "2026-02-23T12:00:00Z"

    def test_drops_milliseconds(self) -> None:
        assert to_iso8601(ms(NOW) + 999) == "2026-02-23T12:00:00Z"


class TestRequests:
    @pytest.mark.asyncio
    async def test_sends_api_key_and_paging(self, api_client) -> None:
        seen: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"page": 2, "page_count": 3, "workouts": []})

        client = api_client(_handler)
        page = await client.get_workouts(page=2, page_size=5)

        assert page.page == 2 and page.page_count == 3
        request = seen[0]
        assert request.headers["api-key"] == TEST_API_KEY
        assert request.url.path == "/v1/workouts"
        assert request.url.params["page"] == "2"
        assert request.url.params["pageSize"] == "5"

    @pytest.mark.asyncio
    async def test_events_since_is_optional(self, api_client) -> None:
        seen: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"page": 1, "page_count": 1, "events": []})

        client = api_client(_handler)
        await client.get_workout_events(1, 10, since="2026-02-23T12:00:00Z")
        await client.get_workout_events(1, 10)
        assert seen[0].url.params["since"] == "2026-02-23T12:00:00Z"
        assert "since" not in seen[1].url.params

    @pytest.mark.asyncio
    async def test_retries_then_parses(self, api_client, no_sleep, payload) -> None:
        responses = iter([httpx.Response(503), httpx.Response(200, json=payload("w1"))])
        client = api_client(lambda request: next(responses))
        workout = await client.get_workout("w1")
        assert workout.id == "w1"
        assert no_sleep.await_count == 1


class TestParsing:
    @pytest.mark.asyncio
    async def test_workout_envelope_is_unwrapped(self, api_client, payload) -> None:
        client = api_client(_json({"workout": payload("w1")}))
        workout = await client.get_workout("w1")
        assert workout.id == "w1"
        assert workout.exercises[0].sets[0].weight == 100

    @pytest.mark.asyncio
    async def test_workout_to_records(self, api_client, payload) -> None:
        client = api_client(_json(payload("w1")))
        workout, exercises, sets = (await client.get_workout("w1")).to_records(synced_at=123)
        assert workout.last_synced == 123
        assert workout.end_time - workout.start_time == 3_600_000
        assert exercises[0].id == "w1_exercise_0"
        assert exercises[0].exercise_template_id == "T-BENCH"
        assert [s.id for s in sets] == ["w1_exercise_0_set_0", "w1_exercise_0_set_1"]
        assert sum(s.volume for s in sets) == 1000.0

    @pytest.mark.asyncio
    async def test_events(self, api_client) -> None:
        body = {
            "page": 1,
            "page_count": 1,
            "events": [
                {"type": "deleted", "id": "w9", "deleted_at": "2026-02-23T10:00:00Z"},
                {"type": "updated", "workout": {"id": "w1", "start_time": NOW.isoformat()}},
            ],
        }
        page = await api_client(_json(body)).get_workout_events()
        assert page.events[0].type == EVENT_DELETED
        assert [e.target_id for e in page.events] == ["w9", "w1"]

    @pytest.mark.asyncio
    async def test_template_muscle_group_alias(self, api_client) -> None:
        body = {
            "page": 1,
            "page_count": 1,
            "exercise_templates": [
                {"id": "T1", "title": "Bench Press", "primary_muscle_group": "chest"}
            ],
        }
        page = await api_client(_json(body)).get_exercise_templates()
        assert page.exercise_templates[0].to_exercise_template().muscle_group == "chest"

    @pytest.mark.asyncio
    async def test_routine_names_from_templates(self, api_client) -> None:
        body = {
            "routine": {
                "id": "r1",
                "title": "Push Day",
                "exercises": [{"exercise_template_id": "T1"}, {"exercise_template_id": "T2"}],
            }
        }
        routine = (await api_client(_json(body)).get_routine("r1")).to_routine({"T1": "Bench"})
        assert routine.name == "Push Day"
        assert routine.exercise_count == 2
        assert [e.name for e in routine.exercises] == ["Bench", None]

    @pytest.mark.asyncio
    async def test_routine_folders_alias(self, api_client) -> None:
        body = {"page": 1, "page_count": 1, "routine_folders": [{"id": 7, "title": "PPL", "index": 0}]}
        page = await api_client(_json(body)).get_routine_folders()
        assert page.folders[0].to_routine_folder().id == 7

    @pytest.mark.asyncio
    async def test_count(self, api_client) -> None:
        count = await api_client(_json({"workout_count": 42})).get_workout_count()
        assert count.workout_count == 42


class TestFailures:
    @pytest.mark.asyncio
    async def test_malformed_json_is_format_error(self, api_client) -> None:
        client = api_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UnknownError, match="format"):
            await client.get_workout_count()

    @pytest.mark.asyncio
    async def test_wrong_shape_is_format_error(self, api_client) -> None:
        client = api_client(_json({"unexpected": True}))
        with pytest.raises(UnknownError, match="format"):
            await client.get_workout_count()

    @pytest.mark.asyncio
    async def test_unauthorized(self, api_client, no_sleep) -> None:
        client = api_client(_json({"error": "bad key"}, status=401))
        with pytest.raises(InvalidApiKey):
            await client.get_workouts()
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found(self, api_client) -> None:
        with pytest.raises(NotFound):
            await api_client(_json({}, status=404)).get_routine("missing")

    @pytest.mark.asyncio
    async def test_undecodable_body_surfaces_as_api_error(self, api_client, no_sleep) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("invalid gzip stream", request=request)

        with pytest.raises(UnknownError, match="format") as info:
            await api_client(_handler).get_workouts()
        assert isinstance(info.value.__cause__, httpx.DecodingError)
        no_sleep.assert_not_awaited()
