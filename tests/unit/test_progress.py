"""Tests for queue statistics, rendering and log formatting."""

import json
import logging

from rich.console import Console

from feedscout.async_queue.job_models import JobStatus, SearchJob
from feedscout.async_queue.progress import QueueStats, render_jobs, render_queue_stats
from feedscout.utils.logging import JSONFormatter, TextFormatter


def _render(renderable) -> str:
    console = Console(width=120, record=True)
    console.print(renderable)
    return console.export_text()


def test_stats_from_counts():
    stats = QueueStats.from_counts({"pending": 2, "completed": 5, "failed": 1})

    assert stats.to_dict() == {"pending": 2, "processing": 0, "completed": 5, "failed": 1, "total": 8}
    assert stats.completion_percentage() == 75.0
    assert QueueStats().completion_percentage() == 0.0


def test_render_stats_with_llm_status():
    stats = QueueStats.from_counts({"completed": 1})

    text = _render(render_queue_stats(stats, {"queue_length": 0, "can_make_request": True}))

    assert "Completed" in text
    assert "100.0%" in text
    assert "LLM queue length" in text


def test_render_jobs():
    job = SearchJob(
        id="0123456789abcdef",
        agent_id="agent-7",
        topic_id="topic-7",
        user_id="user-1",
        status=JobStatus.FAILED,
        retry_count=3,
        error_message="search failed",
    )

    text = _render(render_jobs([job]))

    assert "01234567" in text
    assert "agent-7" in text
    assert "3/3" in text
    assert "search failed" in text


def test_json_formatter():
    record = logging.LogRecord("feedscout.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.extra = {"job_id": "abc"}

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "hello world"
    assert data["level"] == "INFO"
    assert data["job_id"] == "abc"


def _record_with_fields() -> logging.LogRecord:
    logger = logging.getLogger("feedscout.test")
    return logger.makeRecord(
        logger.name,
        logging.WARNING,
        __file__,
        1,
        "Queue item %s failed",
        ("job-1",),
        None,
        extra={"job_id": "job-1", "agent_id": "agent-3", "retry_count": 2},
    )


def test_json_formatter_includes_extra_fields():
    data = json.loads(JSONFormatter().format(_record_with_fields()))

    assert data["message"] == "Queue item job-1 failed"
    assert data["job_id"] == "job-1"
    assert data["agent_id"] == "agent-3"
    assert data["retry_count"] == 2
    assert "lineno" not in data


def test_text_formatter_appends_extra_fields():
    line = TextFormatter().format(_record_with_fields())

    assert "Queue item job-1 failed" in line
    assert line.endswith("job_id=job-1 agent_id=agent-3 retry_count=2")
