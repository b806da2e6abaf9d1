import asyncio

import pytest

from apps.consumer.dlq_reprocessor import DLQReprocessor
from apps.consumer.poll_loop import PollLoop
from apps.consumer.processor import EventProcessor
from tests.helpers import DLQ_URL, FROZEN_NOW, PRIMARY_URL, FakeQueue, make_payload
from utils.config import Settings
from utils.mapper import ReportMapper

SETTINGS_ENV_VARS = [
    "QUEUE_URL",
    "DLQ_URL",
    "REGION",
    "ENVIRONMENT_TAG",
    "SQS_ENDPOINT_URL",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "RUN_ONCE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of Settings."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def payload():
    return make_payload()


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def mapper():
    return ReportMapper(environment="test", clock=lambda: FROZEN_NOW)


@pytest.fixture
def processor(mapper):
    return EventProcessor(mapper)


@pytest.fixture
def shutdown_event():
    return asyncio.Event()


@pytest.fixture
def poll_loop(fake_queue, processor, shutdown_event):
    return PollLoop(
        fake_queue,
        processor,
        PRIMARY_URL,
        max_messages=10,
        wait_seconds=20,
        visibility_timeout=30,
        idle_delay=0.01,
        shutdown_event=shutdown_event,
    )


@pytest.fixture
def dlq_reprocessor(fake_queue, processor, shutdown_event):
    return DLQReprocessor(
        fake_queue,
        processor,
        DLQ_URL,
        max_messages=10,
        wait_seconds=5,
        visibility_timeout=30,
        max_batches=3,
        shutdown_event=shutdown_event,
    )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        QUEUE_URL=PRIMARY_URL,
        ENVIRONMENT_TAG="test",
        IDLE_DELAY_SECONDS=0.01,
        DLQ_INTERVAL_SECONDS=3600,
        SHUTDOWN_GRACE_SECONDS=1,
        QUEUE_RETRY_BACKOFF_SECONDS=0,
    )
