"""
ProcessorService — the two submission workflows.

process_create stages a new submission file into the DMZ area and asks
the antivirus service to scan it.  process_scan moves the scanned file
to its final area, points the submission at the new location and
records the verdict as a review.

Each workflow is a straight sequence of awaited calls; the first
failure aborts the rest and propagates to the dispatcher, which leaves
the offset uncommitted so the broker redelivers the message.
"""

from __future__ import annotations

import uuid

import httpx

from scan_processor.core.constants import (
    AV_SCAN_REVIEW_TYPE,
    CLEAN_SCORE,
    INFECTED_SCORE,
    REVIEW_SCORECARD_ID,
    APIRequestMethod,
    ResourceType,
    StorageArea,
)
from scan_processor.core.context import ServiceContext
from scan_processor.core.logging import get_logger
from scan_processor.core.tracing import Span
from scan_processor.messaging.envelope import CreateEvent, ScanEvent
from scan_processor.messaging.errors import ScanRequestError, StorageError

logger = get_logger(__name__)


class ProcessorService:
    """Business workflows for submission-create and scan-completed events."""

    def __init__(self, ctx: ServiceContext) -> None:
        self.ctx = ctx
        self.storage = ctx.storage
        self.submissions = ctx.submissions
        self.settings = ctx.settings

    async def process_create(self, event: CreateEvent, span: Span | None = None) -> bool:
        """
        Stage a newly created submission file and request a scan.

        Returns False when the event is not about a submission and
        nothing was done, True once the scan request was accepted.
        """
        span = span or Span("ProcessorService.process_create")
        payload = event.payload
        span.set_tag("payload.id", payload.id)
        span.set_tag("payload.resource", payload.resource)
        span.set_tag("payload.fileType", payload.file_type)

        if payload.resource != ResourceType.SUBMISSION:
            logger.info("Ignoring message of resource type", resource=payload.resource)
            span.log(message=f"Ignoring messages of resource type: {payload.resource}")
            return False

        file_name = payload.object_key
        log = logger.bind(submission_id=payload.id, file_name=file_name)

        # ── Stage into DMZ unless already there ───────
        if await self.storage.exists(StorageArea.DMZ, file_name):
            log.info("File is already in DMZ area")
        else:
            if not payload.url:
                raise StorageError(f"File {file_name} is not in DMZ area and the event has no url")
            log.info("File is not in DMZ area, copying it there", source_url=payload.url)
            downloaded = await self.storage.download(payload.url, parent_span=span)
            await self.storage.upload(StorageArea.DMZ, file_name, downloaded)

        dmz_url = self.storage.public_url(StorageArea.DMZ, file_name)

        # ── Ask the antivirus service to scan it ──────
        log.info("Sending request to scan the file", dmz_url=dmz_url)
        await self._request_scan({
            "submissionId": payload.id,
            "url": dmz_url,
            "fileName": file_name,
        })
        return True

    async def _request_scan(self, body: dict[str, str]) -> None:
        """POST a scan request, refusing responses larger than MAX_FILE_SIZE."""
        url = self.settings.ANTIVIRUS_API_URL
        limit = self.settings.MAX_FILE_SIZE

        try:
            async with self.ctx.http.stream("POST", url, json=body) as response:
                declared = response.headers.get("content-length")
                if declared is not None and int(declared) > limit:
                    raise ScanRequestError(
                        f"Scan response of {declared} bytes exceeds limit of {limit}",
                        details={"url": url},
                    )

                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > limit:
                        raise ScanRequestError(
                            f"Scan response exceeds limit of {limit} bytes",
                            details={"url": url},
                        )

                if response.is_error:
                    raise ScanRequestError(
                        f"Scan request returned {response.status_code}",
                        details={"url": url, "status_code": response.status_code},
                    )
        except httpx.HTTPError as exc:
            raise ScanRequestError(f"Scan request to {url} failed: {exc}") from exc

    async def process_scan(self, event: ScanEvent, span: Span | None = None) -> None:
        """Move a scanned file to its final area and record the verdict."""
        span = span or Span("ProcessorService.process_scan")
        payload = event.payload
        span.set_tag("payload.submissionId", payload.submission_id)
        span.set_tag("payload.fileName", payload.file_name)
        span.set_tag("payload.isInfected", payload.is_infected)

        file_name = payload.file_name
        log = logger.bind(submission_id=payload.submission_id, file_name=file_name)

        if payload.is_infected:
            log.info("File is infected, moving it to quarantine area")
            destination = StorageArea.QUARANTINE
        else:
            log.info("File is clean, moving it to clean submission area")
            destination = StorageArea.CLEAN

        await self.storage.move(StorageArea.DMZ, file_name, destination, file_name, parent_span=span)
        moved_url = self.storage.public_url(destination, file_name)
        log.debug("Moved file", moved_url=moved_url)

        log.info("Updating submission final location using Submission API")
        await self.submissions.request(
            APIRequestMethod.PATCH,
            f"/submissions/{payload.submission_id}",
            {"url": moved_url},
            parent_span=span,
        )

        type_id = await self.submissions.get_review_type_id(AV_SCAN_REVIEW_TYPE, parent_span=span)

        log.info("Creating review using Submission API", review_type_id=type_id)
        await self.submissions.request(
            APIRequestMethod.POST,
            "/reviews",
            {
                "score": INFECTED_SCORE if payload.is_infected else CLEAN_SCORE,
                "reviewerId": str(uuid.uuid4()),
                "submissionId": payload.submission_id,
                "scoreCardId": REVIEW_SCORECARD_ID,
                "typeId": type_id,
            },
            parent_span=span,
        )
