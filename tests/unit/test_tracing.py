"""Tests for the Span wrapper and its LangSmith export."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from langsmith.run_trees import RunTree

from conftest import CREATE_TOPIC, make_create_event, make_message
from scan_processor.core import tracing
from scan_processor.core.constants import MessageOutcome
from scan_processor.core.tracing import is_tracing_enabled, start_span
from scan_processor.messaging.dispatcher import MessageDispatcher


def test_tracing_disabled_by_default():
    assert is_tracing_enabled() is False


def test_child_spans_nest_under_parent():
    root = start_span("handle_message")
    parser = root.child("parse_message")

    assert parser.parent is root
    assert root.children == [parser]


def test_mark_failed_records_error_event():
    span = start_span("move_file")

    span.mark_failed(ValueError("copy failed"))

    assert span.failed
    assert span.tags["error"] is True
    event = span.events[-1]
    assert event["event"] == "error"
    assert event["message"] == "copy failed"
    assert "ValueError" in event["stack"]


def test_context_manager_marks_failure_and_reraises():
    root = start_span("process_scan")

    with pytest.raises(RuntimeError):
        with root.child("submission_request"):
            raise RuntimeError("502 from upstream")

    child = root.children[0]
    assert child.failed and child.finished
    assert not root.failed


def test_finish_is_idempotent():
    span = start_span("handle_message")
    span.finish()
    span.finish()

    assert span.finished


class TestLangSmithExport:
    """Spans become RunTrees when tracing is on; the SDK calls are stubbed."""

    @pytest.fixture
    def exported(self, monkeypatch):
        runs = {"posted": [], "patched": []}
        monkeypatch.setattr(tracing, "_tracing_enabled", True)
        monkeypatch.setattr(RunTree, "post", lambda self, *args, **kwargs: runs["posted"].append(self))
        monkeypatch.setattr(RunTree, "patch", lambda self, *args, **kwargs: runs["patched"].append(self))
        return runs

    def test_child_run_nested_under_parent(self, exported):
        root = start_span("handle_message")
        child = root.child("move_file")

        assert isinstance(root._run, RunTree)
        assert child._run.parent_run_id == root._run.id
        assert exported["posted"] == [root._run, child._run]

    def test_finish_exports_tags_events_and_error(self, exported):
        span = start_span("submission_request")
        span.set_tag("http.method", "PATCH")
        span.mark_failed(message="502 from upstream")

        span.finish()

        run = span._run
        assert run.extra["metadata"] == {"http.method": "PATCH", "error": True}
        assert run.error == "502 from upstream"
        assert run.events[-1]["event"] == "error"
        assert exported["patched"] == [run]

    def test_successful_span_has_no_error(self, exported):
        span = start_span("handle_message")
        span.finish()

        assert span._run.error is None

    @pytest.mark.asyncio
    async def test_post_failure_does_not_break_message_handling(self, monkeypatch, offsets, test_settings):
        def unreachable(self, *args, **kwargs):
            raise ConnectionError("LangSmith unreachable")

        monkeypatch.setattr(tracing, "_tracing_enabled", True)
        monkeypatch.setattr(RunTree, "post", unreachable)
        processor = MagicMock()
        processor.process_create = AsyncMock(return_value=True)
        dispatcher = MessageDispatcher(processor, offsets, test_settings)

        outcome = await dispatcher.handle_message(make_message(make_create_event(), offset=4), CREATE_TOPIC, 0)

        assert outcome == MessageOutcome.COMMITTED
        assert offsets.commits == [(CREATE_TOPIC, 0, 4)]
        _, span = processor.process_create.await_args.args
        assert span._run is None
