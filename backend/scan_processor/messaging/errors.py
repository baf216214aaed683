"""
Domain-specific exception hierarchy for the submission processor.

All processor exceptions inherit from ProcessorError so callers can
catch broadly or narrowly as needed.  Each exception carries structured
context (topic, offset, etc.) for logging/debugging.
"""

from __future__ import annotations


class ProcessorError(Exception):
    """Base exception for all processor errors."""

    def __init__(
        self,
        message: str,
        *,
        topic: str | None = None,
        offset: int | None = None,
        details: dict | None = None,
    ) -> None:
        self.topic = topic
        self.offset = offset
        self.details = details or {}
        super().__init__(message)


class EnvelopeDecodeError(ProcessorError):
    """Raw message bytes are not a UTF-8 JSON object."""
    pass


class EnvelopeSchemaError(EnvelopeDecodeError):
    """The envelope decoded but does not match the topic's schema."""
    pass


class TopicMismatchError(ProcessorError):
    """Envelope topic differs from the topic the message arrived on."""

    def __init__(self, envelope_topic: str | None, arrival_topic: str, **kwargs) -> None:
        self.envelope_topic = envelope_topic
        self.arrival_topic = arrival_topic
        super().__init__(
            f"The message topic {envelope_topic} doesn't match the Kafka topic {arrival_topic}",
            topic=arrival_topic,
            **kwargs,
        )


class RoutingError(ProcessorError):
    """No workflow is registered for the arrival topic."""
    pass


class StorageError(ProcessorError):
    """Object storage operation (S3/MinIO) failed."""
    pass


class ObjectNotFoundError(StorageError):
    """The requested object does not exist in the storage area."""

    def __init__(self, bucket: str, key: str, **kwargs) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(f"Object {bucket}/{key} not found", **kwargs)


class AuthError(ProcessorError):
    """Machine-to-machine token could not be acquired."""
    pass


class SubmissionAPIError(ProcessorError):
    """A request to the Submission API failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, **kwargs)


class ScanRequestError(ProcessorError):
    """The antivirus scan request failed or its response was too large."""
    pass
