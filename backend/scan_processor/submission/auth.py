"""Machine-to-machine token acquisition from the Auth0 identity provider."""

from __future__ import annotations

import time

import httpx

from scan_processor.core.config import Settings
from scan_processor.core.logging import get_logger
from scan_processor.messaging.errors import AuthError

logger = get_logger(__name__)


class M2MTokenProvider:
    """
    Client-credentials grant against Auth0.

    A token is reused until TOKEN_CACHE_TIME seconds have passed or it
    expires, whichever comes first.  The cache is keyed by client id so
    one provider can serve several credentials.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._http = http_client
        self._auth0_url = settings.AUTH0_URL
        self._proxied = bool(settings.AUTH0_PROXY_SERVER_URL)
        self._url = settings.AUTH0_PROXY_SERVER_URL or settings.AUTH0_URL
        self._audience = settings.AUTH0_AUDIENCE
        self._cache_time = settings.TOKEN_CACHE_TIME
        self._tokens: dict[str, tuple[str, float]] = {}

    async def get_machine_token(self, client_id: str, client_secret: str) -> str:
        cached = self._tokens.get(client_id)
        if cached and cached[1] > time.monotonic():
            return cached[0]

        body = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "audience": self._audience,
        }
        if self._proxied:
            # the proxy forwards the grant to the real Auth0 tenant
            body["auth0_url"] = self._auth0_url

        logger.debug("Requesting M2M token", auth_url=self._url, audience=self._audience)
        try:
            response = await self._http.post(self._url, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise AuthError(f"Failed to acquire M2M token: {exc}") from exc

        token = data.get("access_token")
        if not token:
            raise AuthError("Identity provider response has no access_token")

        ttl = min(self._cache_time, int(data.get("expires_in", self._cache_time)))
        self._tokens[client_id] = (token, time.monotonic() + ttl)
        return token
