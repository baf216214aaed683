"""
Kafka consumer for the create and scan topics.

Subscribes at the latest offset (no replay of history on startup) with
auto-commit disabled; offsets advance only through commit_offset().
The poll loop hands each topic-partition batch to the handler and
awaits it fully before polling again, which is the only backpressure.
"""

from __future__ import annotations

import asyncio
import os
import ssl
import tempfile
from typing import Any, Awaitable, Callable, Sequence

from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.helpers import create_ssl_context

from scan_processor.core.config import Settings
from scan_processor.core.logging import get_logger

logger = get_logger(__name__)

BatchHandler = Callable[[Sequence[Any], str, int], Awaitable[Any]]

HEALTH_CHECK_TIMEOUT = 5.0

_PEM_MARKER = "-----BEGIN"


def build_ssl_context(cert: str, key: str) -> ssl.SSLContext:
    """
    TLS context for the client certificate.

    Each of cert and key may be a file path or the PEM text itself (as
    injected by most secret stores).  PEM text is written to private
    temporary files only for as long as the context takes to load it.
    """
    written: list[str] = []

    def as_path(value: str, suffix: str) -> str:
        if not value.lstrip().startswith(_PEM_MARKER):
            return value
        fd, path = tempfile.mkstemp(suffix=suffix)
        written.append(path)
        with os.fdopen(fd, "w") as fh:
            fh.write(value.strip() + "\n")
        return path

    try:
        return create_ssl_context(certfile=as_path(cert, ".crt"), keyfile=as_path(key, ".key"))
    finally:
        for path in written:
            os.unlink(path)


class KafkaEventConsumer:
    """Owns the AIOKafkaConsumer and its poll loop."""

    def __init__(self, settings: Settings, consumer: AIOKafkaConsumer | None = None) -> None:
        self.settings = settings
        self.topics = [settings.SUBMISSION_CREATE_TOPIC, settings.AVSCAN_TOPIC]
        self._consumer = consumer if consumer is not None else self._build_consumer()
        self._started = False
        self._task: asyncio.Task | None = None

    def _build_consumer(self) -> AIOKafkaConsumer:
        kwargs: dict[str, Any] = {
            "bootstrap_servers": self.settings.KAFKA_URL,
            "group_id": self.settings.KAFKA_GROUP_ID,
            "enable_auto_commit": False,
            "auto_offset_reset": "latest",
            "max_poll_records": self.settings.KAFKA_MAX_POLL_RECORDS,
        }
        if self.settings.KAFKA_USE_SSL:
            kwargs["security_protocol"] = "SSL"
            kwargs["ssl_context"] = build_ssl_context(
                self.settings.KAFKA_CLIENT_CERT,
                self.settings.KAFKA_CLIENT_CERT_KEY,
            )
        return AIOKafkaConsumer(*self.topics, **kwargs)

    # ─── Lifecycle ─────────────────────────────────────

    async def start(self) -> None:
        await self._consumer.start()
        self._started = True
        logger.info("Kafka consumer started", topics=self.topics, bootstrap=self.settings.KAFKA_URL)

    async def stop(self) -> None:
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            elif not self._task.cancelled() and self._task.exception() is not None:
                logger.error("Kafka poll loop had stopped with an error", error=repr(self._task.exception()))
        if self._started:
            await self._consumer.stop()
            self._started = False
            logger.info("Kafka consumer stopped")

    def start_consuming(self, handler: BatchHandler) -> asyncio.Task:
        """Run the poll loop as a background task."""
        self._task = asyncio.create_task(self.run(handler), name="kafka-poll-loop")
        return self._task

    async def run(self, handler: BatchHandler) -> None:
        while True:
            try:
                batches = await self._consumer.getmany(
                    timeout_ms=self.settings.KAFKA_POLL_TIMEOUT_MS,
                    max_records=self.settings.KAFKA_MAX_POLL_RECORDS,
                )
            except Exception as exc:
                logger.exception("Kafka poll failed, consumer loop stopping", error=str(exc))
                raise

            for tp, records in batches.items():
                try:
                    await handler(records, tp.topic, tp.partition)
                except Exception as exc:
                    logger.exception(
                        "Batch handler failed, continuing with next batch",
                        topic=tp.topic,
                        partition=tp.partition,
                        error=str(exc),
                    )

    # ─── Offsets ───────────────────────────────────────

    async def commit_offset(self, topic: str, partition: int, offset: int) -> None:
        # Kafka commits the position of the next message to read
        await self._consumer.commit({TopicPartition(topic, partition): offset + 1})

    def rewind(self, topic: str, partition: int, offset: int) -> None:
        self._consumer.seek(TopicPartition(topic, partition), offset)

    # ─── Health ────────────────────────────────────────

    async def check(self) -> bool:
        """True while the poll loop runs and the brokers answer a metadata request."""
        if not self._started:
            return False
        if self._task is not None and self._task.done():
            return False
        try:
            await asyncio.wait_for(self._consumer.topics(), timeout=HEALTH_CHECK_TIMEOUT)
        except Exception as exc:
            logger.warning("Kafka health check failed", error=str(exc))
            return False
        return True
