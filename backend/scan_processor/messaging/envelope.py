"""
Event envelope models — the typed boundary between raw broker bytes
and the processor workflows.

Every message on the bus is wrapped in the same envelope::

    {
      "topic": "avscan.action.scan",
      "originator": "anti-virus-service",
      "timestamp": "2026-01-01T00:00:00.000Z",
      "mime-type": "application/json",
      "payload": {...}
    }

The payload shape depends on the topic, so decoding produces a closed
per-topic variant (CreateEvent or ScanEvent).  Anything that fails
validation is rejected exactly like undecodable bytes.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from scan_processor.messaging.errors import (
    EnvelopeDecodeError,
    EnvelopeSchemaError,
    RoutingError,
    TopicMismatchError,
)


# ═══════════════════════════════════════════════════════════
#  Payloads
# ═══════════════════════════════════════════════════════════

class CreatePayload(BaseModel):
    """Payload of a submission-create notification."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    resource: Literal["submission", "review"]
    id: str
    url: str | None = None
    file_type: str | None = Field(default=None, alias="fileType")
    is_file_submission: bool | None = Field(default=None, alias="isFileSubmission")

    @field_validator("url")
    @classmethod
    def _check_uri(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        parsed = urlparse(value)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"url must be an absolute URI, got {value!r}")
        return value

    @property
    def object_key(self) -> str:
        """Storage key the submission file is staged under."""
        return f"{self.id}.{self.file_type}"


class ScanPayload(BaseModel):
    """Payload of an antivirus scan-completed event."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    submission_id: str = Field(alias="submissionId")
    file_name: str = Field(alias="fileName")
    url: str
    status: str
    is_infected: bool = Field(alias="isInfected")


# ═══════════════════════════════════════════════════════════
#  Envelopes
# ═══════════════════════════════════════════════════════════

class Envelope(BaseModel):
    """Fields shared by every event on the bus."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    topic: str
    originator: str
    timestamp: datetime
    mime_type: str = Field(validation_alias=AliasChoices("mime-type", "mimeType", "mime_type"))


class CreateEvent(Envelope):
    payload: CreatePayload


class ScanEvent(Envelope):
    payload: ScanPayload


Event = CreateEvent | ScanEvent


def parse_message(raw: bytes | str) -> dict[str, Any]:
    """Decode raw bytes as UTF-8 JSON; the result must be a JSON object."""
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EnvelopeDecodeError(f"Invalid message JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise EnvelopeDecodeError(f"Message must be a JSON object, got {type(data).__name__}")
    return data


def decode_envelope(
    raw: bytes | str,
    arrival_topic: str,
    create_topic: str,
    scan_topic: str,
) -> Event:
    """
    Turn raw message bytes into a validated per-topic event.

    Raises:
        EnvelopeDecodeError: bytes are not a JSON object.
        TopicMismatchError: envelope topic differs from arrival topic.
        RoutingError: arrival topic is neither the create nor the scan topic.
        EnvelopeSchemaError: envelope or payload fails validation.
    """
    data = parse_message(raw)

    envelope_topic = data.get("topic")
    if envelope_topic != arrival_topic:
        raise TopicMismatchError(envelope_topic, arrival_topic)

    if arrival_topic == create_topic:
        model: type[Envelope] = CreateEvent
    elif arrival_topic == scan_topic:
        model = ScanEvent
    else:
        raise RoutingError(f"Invalid topic: {arrival_topic}", topic=arrival_topic)

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise EnvelopeSchemaError(
            f"Message does not match the {arrival_topic} schema",
            topic=arrival_topic,
            details={"errors": exc.errors(include_url=False)},
        ) from exc
