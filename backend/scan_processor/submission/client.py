"""HTTP client for the Submission API."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx

from scan_processor.core.config import Settings
from scan_processor.core.constants import APIRequestMethod
from scan_processor.core.logging import get_logger
from scan_processor.core.tracing import Span
from scan_processor.messaging.errors import SubmissionAPIError
from scan_processor.submission.auth import M2MTokenProvider

logger = get_logger(__name__)


class ReviewTypeCache:
    """
    Process-wide review-type name → id map.

    Entries are never invalidated: review types are immutable for the
    lifetime of the process.  Population is single-flight per name so
    concurrent misses issue only one lookup.
    """

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, name: str) -> str | None:
        return self._ids.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    async def get_or_fetch(
        self,
        name: str,
        fetch: Callable[[str], Awaitable[str | None]],
    ) -> str | None:
        if name in self._ids:
            return self._ids[name]

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            if name in self._ids:
                return self._ids[name]
            type_id = await fetch(name)
            # a miss is not cached so the type can be created later
            if type_id is not None:
                self._ids[name] = type_id
            return type_id


class SubmissionClient:
    """Handles authenticated HTTP calls to the Submission API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_provider: M2MTokenProvider,
        settings: Settings,
        review_types: ReviewTypeCache | None = None,
    ) -> None:
        self._http = http_client
        self._tokens = token_provider
        self.base_url = settings.SUBMISSION_API_URL.rstrip("/")
        self._client_id = settings.AUTH0_CLIENT_ID
        self._client_secret = settings.AUTH0_CLIENT_SECRET
        self.review_types = review_types if review_types is not None else ReviewTypeCache()

    async def get_token(self, parent_span: Span | None = None) -> str:
        span = parent_span.child("get_m2m_token") if parent_span else Span("get_m2m_token")
        with span:
            return await self._tokens.get_machine_token(self._client_id, self._client_secret)

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        parent_span: Span | None = None,
    ) -> httpx.Response:
        """
        Send an authenticated GET/POST/PATCH to the Submission API.

        Args:
            method: One of APIRequestMethod.
            path: Path under SUBMISSION_API_URL, e.g. "/reviews".
            body: JSON body for POST/PATCH.
            params: Query string parameters.

        Raises:
            SubmissionAPIError: on transport failure or a non-2xx response.
        """
        method = APIRequestMethod(method.upper())
        url = f"{self.base_url}{path}"

        span = parent_span.child("submission_request") if parent_span else Span("submission_request")
        # Tag names follow the OpenTracing semantic conventions
        span.set_tag("http.method", method.value)
        span.set_tag("http.url", url)

        with span:
            token = await self.get_token(span)
            headers = {"Authorization": f"Bearer {token}"}

            logger.debug("Submission API request", method=method.value, url=url)
            try:
                if method is APIRequestMethod.GET:
                    response = await self._http.get(url, headers=headers, params=params)
                elif method is APIRequestMethod.POST:
                    response = await self._http.post(url, headers=headers, json=body, params=params)
                else:
                    response = await self._http.patch(url, headers=headers, json=body, params=params)
            except httpx.HTTPError as exc:
                raise SubmissionAPIError(f"{method.value} {url} failed: {exc}") from exc

            span.set_tag("http.status_code", response.status_code)
            if response.is_error:
                raise SubmissionAPIError(
                    f"{method.value} {url} returned {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )
            return response

    async def get_review_type_id(self, name: str, parent_span: Span | None = None) -> str | None:
        """Resolve a review type name to its id, caching hits for the process lifetime."""
        span = parent_span.child("get_review_type_id") if parent_span else Span("get_review_type_id")
        span.set_tag("reviewTypeName", name)

        async def fetch(type_name: str) -> str | None:
            response = await self.request(
                APIRequestMethod.GET,
                "/reviewTypes",
                params={"name": type_name},
                parent_span=span,
            )
            review_types = response.json()
            if not review_types:
                logger.warning("Review type not found", review_type=type_name)
                return None
            return review_types[0]["id"]

        with span:
            span.set_tag("cache.hit", name in self.review_types)
            return await self.review_types.get_or_fetch(name, fetch)
