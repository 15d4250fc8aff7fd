"""Shared fixtures: a fixed clock, default config and record builders."""

import re
from datetime import datetime, timezone

import pytest

from analytics.config import build_config
from analytics.projector import project_call, project_deal, project_lead, project_task
from analytics.timewindow import TimeWindow

# 17:30 in Asia/Kolkata on Wednesday 2024-01-10
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)

ENGINE_ENV_VARS = [
    "LOOKBACK_DAYS",
    "OVERDUE_MINUTES",
    "NC1_TO_NC2_SLA_HOURS",
    "NC2_TO_NC3_SLA_HOURS",
    "CATEGORY_FIELDS",
    "OWNER_EXCLUSIONS",
    "REFERENCE_TZ",
    "MIN_CALLS_FOR_IDEAL_HOUR",
    "CALL_LOOKBACK_DAYS",
]


@pytest.fixture(autouse=True)
def clean_engine_env(monkeypatch):
    for var in ENGINE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def config():
    return build_config({})


@pytest.fixture
def window():
    return TimeWindow("Asia/Kolkata", NOW)


@pytest.fixture
def make_calls(config):
    pattern = re.compile(config.subject_phone_pattern)

    def _make(records):
        return [project_call(r, config, pattern) for r in records]
    return _make


@pytest.fixture
def make_leads(config):
    def _make(records, call_phones=frozenset()):
        return [project_lead(r, config, frozenset(call_phones)) for r in records]
    return _make


@pytest.fixture
def make_deals(config):
    def _make(records):
        return [project_deal(r, config) for r in records]
    return _make


@pytest.fixture
def make_tasks(config):
    def _make(records):
        return [project_task(r, config) for r in records]
    return _make
