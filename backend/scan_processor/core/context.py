"""
ServiceContext — the process-wide collaborators, built once at startup.

The HTTP client, storage client and review-type cache are singletons
for the lifetime of the process.  Holding them in one value that is
passed by reference lets tests swap any of them for a mock.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from scan_processor.core.config import Settings
from scan_processor.storage.stager import StorageStager, create_s3_client
from scan_processor.submission.auth import M2MTokenProvider
from scan_processor.submission.client import ReviewTypeCache, SubmissionClient


@dataclass
class ServiceContext:
    """Shared clients handed to every component."""

    settings: Settings
    http: httpx.AsyncClient
    storage: StorageStager
    submissions: SubmissionClient

    @classmethod
    def create(cls, settings: Settings) -> ServiceContext:
        http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)
        storage = StorageStager(create_s3_client(settings), http, settings)
        submissions = SubmissionClient(
            http,
            M2MTokenProvider(http, settings),
            settings,
            review_types=ReviewTypeCache(),
        )
        return cls(settings=settings, http=http, storage=storage, submissions=submissions)

    async def aclose(self) -> None:
        await self.http.aclose()
