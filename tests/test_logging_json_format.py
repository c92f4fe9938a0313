import json

import pytest
import structlog

from technique_review.logging import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_configure_logging_emits_json(capsys: pytest.CaptureFixture[str]):
    configure_logging()
    structlog.get_logger().info("review_submitted", learner_id="ana", node_id="armbar", score=4)

    lines = [line for line in capsys.readouterr().err.splitlines() if line.strip()]
    payload = json.loads(lines[-1])
    assert payload["event"] == "review_submitted"
    assert payload["learner_id"] == "ana"
    assert payload["score"] == 4
    assert payload["level"] == "info"
    assert "timestamp" in payload


def test_configure_logging_merges_contextvars(capsys: pytest.CaptureFixture[str]):
    configure_logging()
    with structlog.contextvars.bound_contextvars(request_id="req-1"):
        structlog.get_logger().info("review_scheduled")

    lines = [line for line in capsys.readouterr().err.splitlines() if line.strip()]
    assert json.loads(lines[-1])["request_id"] == "req-1"
