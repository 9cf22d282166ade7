"""
TMDb Client
───────────
Wraps the TMDb v3 REST API for every page of the site.

Error policy:
  • Network / timeout errors are retried (API_RETRY_COUNT times, linear
    back-off) and then raised as TMDBUpstreamError.
  • Non-200 responses are logged and yield an empty payload ({}), so callers
    render an empty section instead of failing the whole page.
"""
import asyncio
import logging
from typing import Any

import httpx

from cinescope.core.config import settings

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"
TMDB_TIMEOUT_SECONDS = 10.0
API_RETRY_COUNT = 2
RETRY_BACKOFF_SECONDS = 0.5

BATCH_CHUNK_SIZE = 10
BATCH_CHUNK_PAUSE_SECONDS = 0.1

CONTENT_KINDS = ("movie", "tv")


class TMDBConfigError(Exception):
    """Raised when the TMDb client is used without an API key."""


class TMDBUpstreamError(Exception):
    """Raised when TMDb cannot be reached after retries."""


def poster_url(path: str | None, size: str = "w500") -> str | None:
    """Prefix the TMDb image base URL onto a poster/profile path."""
    if not path:
        return None
    return f"{TMDB_IMAGE_BASE}/{size}{path}"


class TMDBClient:
    """
    Thin async wrapper around the TMDb v3 API.
    Uses httpx for HTTP — non-blocking in async FastAPI context.

    *transport* lets tests plug an ``httpx.MockTransport`` in.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        language: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.api_key = api_key or settings.TMDB_API_KEY
        if not self.api_key:
            raise TMDBConfigError(
                "TMDB_API_KEY is not set. "
                "Add it to your .env file or pass it explicitly."
            )
        self.language = language or settings.TMDB_LANGUAGE
        self._transport = transport
        self._retry_backoff = retry_backoff

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=TMDB_BASE_URL,
            timeout=TMDB_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict:
        """GET *endpoint* with the API key and language merged into *params*."""
        query = {"api_key": self.api_key, "language": self.language}
        query.update(params or {})

        attempt = 0
        while True:
            try:
                async with self._client() as client:
                    response = await client.get(endpoint, params=query)
                break
            except httpx.TransportError as exc:
                if attempt >= API_RETRY_COUNT:
                    logger.error("TMDb network error after retries endpoint=%s error=%s", endpoint, exc)
                    raise TMDBUpstreamError(f"TMDb request to {endpoint} failed") from exc
                attempt += 1
                logger.info("Retrying TMDb request endpoint=%s retry=%d", endpoint, attempt)
                await asyncio.sleep(self._retry_backoff * attempt)

        if response.status_code != 200:
            logger.warning(
                "TMDb non-200 response endpoint=%s status=%s",
                endpoint,
                response.status_code,
            )
            return {}

        try:
            return response.json()
        except ValueError as exc:
            raise TMDBUpstreamError(f"TMDb returned invalid JSON for {endpoint}") from exc

    # ── Endpoints ─────────────────────────────────────────────────────────────

    async def movie_genres(self) -> list[dict]:
        """Return TMDb's movie genre list: [{"id": 28, "name": "Action"}, ...]."""
        data = await self.get("/genre/movie/list")
        return data.get("genres", [])

    async def discover(self, kind: str, params: dict[str, Any]) -> dict:
        """Run /discover/movie or /discover/tv."""
        _check_kind(kind)
        return await self.get(f"/discover/{kind}", params)

    async def search_multi(self, query: str, page: int = 1) -> dict:
        """Search movies, TV shows and people in one call."""
        return await self.get("/search/multi", {"query": query, "page": page})

    async def details(self, kind: str, tmdb_id: int, append: str | None = None) -> dict:
        """Fetch one movie / TV show, optionally with ``append_to_response``."""
        _check_kind(kind)
        params = {"append_to_response": append} if append else {}
        return await self.get(f"/{kind}/{tmdb_id}", params)

    async def person(self, person_id: int) -> dict:
        return await self.get(
            f"/person/{person_id}",
            {"append_to_response": "movie_credits,tv_credits,images"},
        )

    async def details_many(
        self,
        kind: str,
        ids: list[int],
        append: str | None = None,
    ) -> dict[str, dict]:
        """
        Fetch details for many titles of one *kind*.

        Requests run concurrently in chunks of BATCH_CHUNK_SIZE with a short
        pause between chunks. Failed or empty lookups are logged and left out.

        Returns:
            {"movie_603": {...}, "movie_604": {...}}
        """
        _check_kind(kind)
        results: dict[str, dict] = {}
        unique_ids = list(dict.fromkeys(ids))
        chunks = [
            unique_ids[i:i + BATCH_CHUNK_SIZE]
            for i in range(0, len(unique_ids), BATCH_CHUNK_SIZE)
        ]

        for index, chunk in enumerate(chunks):
            responses = await asyncio.gather(
                *(self.details(kind, tmdb_id, append) for tmdb_id in chunk),
                return_exceptions=True,
            )
            for tmdb_id, payload in zip(chunk, responses):
                if isinstance(payload, Exception):
                    logger.warning("TMDb detail lookup failed for %s/%s: %s", kind, tmdb_id, payload)
                    continue
                if payload:
                    results[f"{kind}_{tmdb_id}"] = payload

            if index < len(chunks) - 1:
                await asyncio.sleep(BATCH_CHUNK_PAUSE_SECONDS)

        return results


def _check_kind(kind: str) -> None:
    if kind not in CONTENT_KINDS:
        raise ValueError(f"Unsupported TMDb content kind: {kind!r}")


def get_tmdb_client() -> TMDBClient:
    """Factory used by the services; patched in tests."""
    return TMDBClient()
