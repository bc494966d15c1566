from __future__ import annotations

from types import SimpleNamespace

import pytest

import config.credentials as credentials
from config import SERPAPI_API_KEY, resolve_credential, static_resolver
from core import QueryConfig, RunResult, RunState, ScheduleSpec, format_schedule_time, parse_schedule_time
from utils.exceptions import ConfigError


@pytest.mark.parametrize(
    "text, expected",
    [("08:00", (8, 0)), ("7:05", (7, 5)), (" 23:59 ", (23, 59)), ("00:00", (0, 0))],
)
def test_parse_schedule_time_valid(text: str, expected) -> None:
    assert parse_schedule_time(text, strict=True) == expected


@pytest.mark.parametrize("text", ["24:00", "12:60", "noon", "", None, "8", "08:0"])
def test_parse_schedule_time_lenient_falls_back(text) -> None:
    assert parse_schedule_time(text) == (0, 0)


@pytest.mark.parametrize("text", ["24:00", "ab:cd", ""])
def test_parse_schedule_time_strict_raises(text: str) -> None:
    with pytest.raises(ConfigError) as exc:
        parse_schedule_time(text, strict=True)
    assert exc.value.value == text


def test_format_schedule_time_pads() -> None:
    assert format_schedule_time(7, 5) == "07:05"


def test_schedule_spec_normalizes_time() -> None:
    assert ScheduleSpec(scheduled_time="9:30").scheduled_time == "09:30"
    assert ScheduleSpec(scheduled_time="99:99").hour_minute == (0, 0)
    assert ScheduleSpec().execution_count == 0


def test_query_config_kinds_and_request() -> None:
    manual = QueryConfig(query="x")
    automated = QueryConfig(query="y", schedule=ScheduleSpec(scheduled_time="08:00"))
    disabled = QueryConfig(query="z", schedule=ScheduleSpec(scheduled_time="08:00", is_enabled=False))

    assert (manual.is_automated, manual.is_schedulable) == (False, False)
    assert (automated.is_automated, automated.is_schedulable) == (True, True)
    assert (disabled.is_automated, disabled.is_schedulable) == (True, False)
    assert manual.id != automated.id

    request = QueryConfig(query="  q  ", language=None, region=" de ").to_search_request(25)
    assert (request.query, request.language, request.region, request.max_results) == ("q", "", "de", 25)


def test_run_result_completed_attempts() -> None:
    assert RunResult(config_id="c").is_completed_attempt is True
    assert RunResult(config_id="c", state=RunState.PARTIAL).is_completed_attempt is True
    for state in (RunState.ABORTED, RunState.CANCELLED, RunState.SKIPPED, RunState.NOOP):
        assert RunResult(config_id="c", state=state).is_completed_attempt is False

    summary = RunResult(config_id="c", articles_created=2, duplicates_skipped=1).summary()
    assert summary["created"] == 2 and summary["duplicates"] == 1


def test_resolve_credential_prefers_environment(monkeypatch) -> None:
    monkeypatch.setenv("SERPAPI_API_KEY", "  from-env  ")
    assert resolve_credential(SERPAPI_API_KEY) == "from-env"


def test_resolve_credential_blank_uses_preference_fallback(monkeypatch) -> None:
    monkeypatch.setenv("SERPAPI_API_KEY", "   ")
    fake = SimpleNamespace(credentials=SimpleNamespace(serpapi_api_key="from-prefs"))
    monkeypatch.setattr(credentials, "get_settings", lambda: fake)
    assert resolve_credential(SERPAPI_API_KEY) == "from-prefs"


def test_resolve_credential_absent(monkeypatch) -> None:
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)
    fake = SimpleNamespace(credentials=SimpleNamespace(serpapi_api_key=None))
    monkeypatch.setattr(credentials, "get_settings", lambda: fake)
    assert resolve_credential(SERPAPI_API_KEY) is None
    assert resolve_credential("") is None


def test_static_resolver() -> None:
    resolve = static_resolver({"SerpAPI_API_Key": " k ", "blank": "  "})
    assert resolve("serpapi_api_key") == "k"
    assert resolve("blank") is None
    assert resolve("other") is None
