"""
MessageDispatcher — per-message parsing, filtering, routing and offset commit.

Messages are handled strictly one at a time in arrival order.  The
offset of a message is committed only after its workflow succeeds;
every other path (bad JSON, wrong topic, schema failure, filtered
event, workflow error) leaves it uncommitted.  Those early exits are
pure functions of the message body, so seeing the message again later
costs nothing but a repeated no-op.

When a workflow fails the partition is rewound to the failed offset
and the rest of that partition's batch is abandoned, so the next poll
redelivers the failed message first.  There is no in-process retry.
"""

from __future__ import annotations

from typing import Protocol, Sequence

import structlog

from scan_processor.core.config import Settings
from scan_processor.core.constants import URL_FILE_TYPE, MessageOutcome, ScanStatus
from scan_processor.core.tracing import Span, start_span
from scan_processor.messaging.envelope import CreateEvent, Event, ScanEvent, decode_envelope
from scan_processor.messaging.errors import (
    EnvelopeDecodeError,
    RoutingError,
    TopicMismatchError,
)
from scan_processor.services.processor import ProcessorService


class BrokerMessage(Protocol):
    offset: int
    value: bytes | None


class OffsetManager(Protocol):
    async def commit_offset(self, topic: str, partition: int, offset: int) -> None: ...

    def rewind(self, topic: str, partition: int, offset: int) -> None: ...


class MessageDispatcher:
    """
    Routes broker messages to ProcessorService workflows.

    Usage::

        dispatcher = MessageDispatcher(ProcessorService(ctx), consumer, settings)
        await dispatcher.handle_batch(records, topic, partition)
    """

    def __init__(self, processor: ProcessorService, offsets: OffsetManager, settings: Settings) -> None:
        self.processor = processor
        self.offsets = offsets
        self.create_topic = settings.SUBMISSION_CREATE_TOPIC
        self.scan_topic = settings.AVSCAN_TOPIC
        self.logger = structlog.get_logger("messaging.dispatcher")

    async def handle_batch(
        self,
        messages: Sequence[BrokerMessage],
        topic: str,
        partition: int,
    ) -> list[MessageOutcome]:
        """Handle a batch from one topic-partition, one message at a time."""
        outcomes: list[MessageOutcome] = []

        for message in messages:
            outcome = await self.handle_message(message, topic, partition)
            outcomes.append(outcome)

            if outcome == MessageOutcome.FAILED:
                try:
                    self.offsets.rewind(topic, partition, message.offset)
                except Exception as exc:
                    # Partition revoked mid-batch; its new owner resumes from the committed offset
                    self.logger.warning(
                        "Partition rewind failed",
                        topic=topic,
                        partition=partition,
                        offset=message.offset,
                        error=str(exc),
                    )
                    break
                self.logger.warning(
                    "Partition rewound for redelivery",
                    topic=topic,
                    partition=partition,
                    offset=message.offset,
                    abandoned=len(messages) - len(outcomes),
                )
                break

        return outcomes

    async def handle_message(self, message: BrokerMessage, topic: str, partition: int) -> MessageOutcome:
        """Process one message; never raises."""
        span = start_span("handle_message")
        span.set_tag("kafka.topic", topic)
        span.set_tag("message_bus.destination", topic)
        span.set_tag("kafka.partition", partition)
        span.set_tag("kafka.offset", message.offset)

        log = self.logger.bind(topic=topic, partition=partition, offset=message.offset)
        raw = message.value or b""
        log.info("Handle Kafka event message", message=raw.decode("utf-8", errors="replace"))

        # ── Decode + validate ─────────────────────────
        parser_span = span.child("parse_message")
        try:
            event = decode_envelope(raw, topic, self.create_topic, self.scan_topic)
        except EnvelopeDecodeError as exc:
            log.error("Invalid message", error=str(exc), details=exc.details)
            parser_span.mark_failed(exc)
            parser_span.finish()
            span.finish()
            return MessageOutcome.REJECTED
        except (TopicMismatchError, RoutingError) as exc:
            parser_span.finish()
            log.error(str(exc))
            span.mark_failed(exc)
            span.finish()
            return MessageOutcome.REJECTED
        parser_span.finish()

        # ── Filters ───────────────────────────────────
        skip_reason = self._skip_reason(event)
        if skip_reason:
            # Not an error scenario so just log and finish
            log.debug(skip_reason)
            span.log(message=skip_reason)
            span.finish()
            return MessageOutcome.SKIPPED

        # ── Route + commit ────────────────────────────
        service_span: Span | None = None
        try:
            if isinstance(event, CreateEvent):
                service_span = span.child("ProcessorService.process_create")
                await self.processor.process_create(event, service_span)
            elif isinstance(event, ScanEvent):
                service_span = span.child("ProcessorService.process_scan")
                await self.processor.process_scan(event, service_span)
            else:
                raise RoutingError(f"Invalid topic: {topic}", topic=topic)

            await self.offsets.commit_offset(topic, partition, message.offset)
        except Exception as exc:
            log.exception("Message processing failed", error=str(exc))
            if service_span is not None:
                service_span.mark_failed(exc)
                service_span.finish()
            span.mark_failed(exc)
            span.finish()
            return MessageOutcome.FAILED

        service_span.finish()
        span.finish()
        log.info("Message processed, offset committed")
        return MessageOutcome.COMMITTED

    def _skip_reason(self, event: Event) -> str | None:
        """Why a valid event needs no processing, or None to process it."""
        if isinstance(event, ScanEvent) and event.payload.status != ScanStatus.SCANNED:
            return f"Ignoring message in topic {event.topic} with status {event.payload.status}"
        if isinstance(event, CreateEvent) and event.payload.file_type == URL_FILE_TYPE:
            return f"Ignoring message in topic {event.topic} with file type as url"
        return None
