"""Shared constants and enums used across the application."""

from enum import StrEnum


# Review type resolved through the Submission API for scan verdicts
AV_SCAN_REVIEW_TYPE = "Virus Scan"

# TODO: move the scorecard id into Settings once the review scorecard is per-environment
REVIEW_SCORECARD_ID = "30001850"

CLEAN_SCORE = 100
INFECTED_SCORE = 0


class StorageArea(StrEnum):
    """Object-storage areas a submission file moves through."""

    DMZ = "DMZ"
    CLEAN = "CLEAN"
    QUARANTINE = "QUARANTINE"


class ResourceType(StrEnum):
    """Resources announced on the submission-create topic."""

    SUBMISSION = "submission"
    REVIEW = "review"


class ScanStatus(StrEnum):
    """Status values carried by antivirus scan events."""

    SCANNED = "scanned"


class MessageOutcome(StrEnum):
    """What the dispatcher did with a single broker message."""

    COMMITTED = "COMMITTED"
    SKIPPED = "SKIPPED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class APIRequestMethod(StrEnum):
    """HTTP methods used against the Submission API."""

    GET = "GET"
    POST = "POST"
    PATCH = "PATCH"


# fileType value marking a link-only submission with nothing to scan
URL_FILE_TYPE = "url"
