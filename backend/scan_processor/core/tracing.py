"""
LangSmith tracing utilities for message handling.

Provides a setup function and a lightweight Span wrapper so that
tracing works when LangSmith is configured but degrades gracefully
when it isn't (e.g. local dev without API key).  Spans always keep
their tags, events and children locally.

Usage:
    from scan_processor.core.tracing import setup_tracing, start_span

    setup_tracing()   # call once at startup

    span = start_span("handle_message")
    span.set_tag("kafka.topic", topic)
    with span.child("parse_message") as parser_span:
        ...
    span.finish()
"""

from __future__ import annotations

import os
import traceback
from typing import Any

from langsmith.run_trees import RunTree

from scan_processor.core.config import settings
from scan_processor.core.logging import get_logger

logger = get_logger(__name__)

_tracing_enabled = False


def setup_tracing() -> bool:
    """
    Configure LangSmith tracing from application settings.

    Sets environment variables that the LangSmith SDK reads.
    Call this once at application startup (e.g. in main.py lifespan).

    Returns True if tracing was enabled, False otherwise.
    """
    global _tracing_enabled

    if not settings.LANGSMITH_TRACING or not settings.LANGSMITH_API_KEY:
        logger.info(
            "LangSmith tracing disabled",
            reason="LANGSMITH_TRACING=False or no API key",
        )
        _tracing_enabled = False
        return False

    os.environ["LANGSMITH_API_KEY"] = settings.LANGSMITH_API_KEY
    os.environ["LANGSMITH_ENDPOINT"] = settings.LANGSMITH_ENDPOINT
    os.environ["LANGSMITH_PROJECT"] = settings.LANGSMITH_PROJECT
    os.environ["LANGSMITH_TRACING"] = "true"

    logger.info(
        "LangSmith tracing enabled",
        project=settings.LANGSMITH_PROJECT,
    )
    _tracing_enabled = True
    return True


def is_tracing_enabled() -> bool:
    """Check if LangSmith tracing is active."""
    return _tracing_enabled


class Span:
    """
    One unit of trace context, optionally nested under a parent.

    Tags become run metadata and logged events become run events when
    the span is exported.  A span that is marked failed is exported
    with an error so it shows up red in LangSmith.
    """

    def __init__(self, name: str, parent: Span | None = None, run_type: str = "chain") -> None:
        self.name = name
        self.parent = parent
        self.tags: dict[str, Any] = {}
        self.events: list[dict[str, Any]] = []
        self.children: list[Span] = []
        self.failed = False
        self.finished = False
        self.error_message: str | None = None
        self._run: RunTree | None = None

        if _tracing_enabled:
            self._run = self._start_run(run_type)

    def _start_run(self, run_type: str) -> RunTree | None:
        try:
            if self.parent is not None and self.parent._run is not None:
                run = self.parent._run.create_child(name=self.name, run_type=run_type)
            else:
                run = RunTree(name=self.name, run_type=run_type, project_name=settings.LANGSMITH_PROJECT)
            run.post()
            return run
        except Exception as exc:
            # Tracing failure should never break message handling
            logger.warning("LangSmith span start failed, continuing without", span=self.name, error=str(exc))
            return None

    def set_tag(self, key: str, value: Any) -> Span:
        self.tags[key] = value
        return self

    def log(self, **fields: Any) -> Span:
        self.events.append(fields)
        return self

    def mark_failed(self, exc: BaseException | None = None, message: str | None = None) -> Span:
        """Flag the span as errored and record the error details as an event."""
        self.failed = True
        self.tags["error"] = True
        if exc is not None:
            self.error_message = message or str(exc)
            self.log(
                event="error",
                message=self.error_message,
                stack="".join(traceback.format_exception(exc)),
                error_type=type(exc).__name__,
            )
        elif message is not None:
            self.error_message = message
            self.log(event="error", message=message)
        return self

    def child(self, name: str, run_type: str = "chain") -> Span:
        span = Span(name, parent=self, run_type=run_type)
        self.children.append(span)
        return span

    def finish(self) -> None:
        if self.finished:
            return
        self.finished = True
        if self._run is None:
            return
        try:
            self._run.extra.setdefault("metadata", {}).update(self.tags)
            self._run.events.extend(self.events)
            error = (self.error_message or "error") if self.failed else None
            self._run.end(outputs={"tags": self.tags}, error=error)
            self._run.patch()
        except Exception as exc:
            logger.warning("LangSmith span export failed", span=self.name, error=str(exc))

    def __enter__(self) -> Span:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.mark_failed(exc)
        self.finish()
        return False


def start_span(name: str, run_type: str = "chain") -> Span:
    """Open a root span for one logical operation."""
    return Span(name, run_type=run_type)
