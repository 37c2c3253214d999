"""
TMDB client
───────────
Wraps the TMDB v3 REST API.

Used by:
  - /movies/search and /movies/tmdb/{id} (direct passthrough)
  - movie creation (create-or-fetch by tmdb_id)
  - AI suggestions (resolve a suggested title to a TMDB movie)
"""
import logging
from datetime import date

import httpx

from movienight.core.config import settings

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p/w500"
TMDB_POSTER_PLACEHOLDER = "https://via.placeholder.com/500x750?text=No+Poster"
TMDB_TIMEOUT_SECONDS = 10.0


class TMDBConfigError(Exception):
    """Raised when TMDB client is used without an API key."""


class TMDBUpstreamError(Exception):
    """Raised for non-recoverable TMDB request/response errors."""


class TMDBService:
    """
    Thin async wrapper around TMDB v3 API.
    Uses httpx for HTTP — non-blocking in async FastAPI context.
    """

    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key or settings.TMDB_API_KEY
        if not self.api_key:
            raise TMDBConfigError(
                "TMDB_API_KEY is not set. "
                "Add it to your .env file or pass it explicitly."
            )

    async def _get(self, path: str, params: dict, what: str) -> dict | None:
        query = {"api_key": self.api_key, **params}
        try:
            async with httpx.AsyncClient(timeout=TMDB_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{TMDB_BASE_URL}{path}", params=query)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("TMDB %s failed with status %s", what, exc.response.status_code)
            raise TMDBUpstreamError(
                f"TMDB {what} failed with status {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            logger.error("TMDB %s request failed: %s", what, exc)
            raise TMDBUpstreamError(f"TMDB {what} request failed") from exc
        return response.json()

    async def search_movies(self, query: str, page: int = 1) -> dict:
        """
        Search TMDB for movies matching *query*.

        Returns the raw envelope:
        {"results": [...], "total_results": 42, "total_pages": 3}
        """
        cleaned_query = query.strip()
        if not cleaned_query:
            return {"results": [], "total_results": 0, "total_pages": 0}

        payload = await self._get(
            "/search/movie",
            {"query": cleaned_query, "page": page, "include_adult": "false"},
            "search",
        )
        return payload or {"results": [], "total_results": 0, "total_pages": 0}

    async def get_movie_details(self, tmdb_id: int) -> dict:
        """Fetch full details for a single movie including its videos."""
        payload = await self._get(
            f"/movie/{tmdb_id}",
            {"append_to_response": "videos"},
            "details",
        )
        if payload is None:
            raise TMDBUpstreamError(f"TMDB movie {tmdb_id} not found")
        return payload


# ── Formatting ────────────────────────────────────────────────────────────────

def poster_url(path: str | None) -> str:
    """Prefix the TMDB image base URL onto a poster path."""
    if not path:
        return TMDB_POSTER_PLACEHOLDER
    return f"{TMDB_IMAGE_BASE}{path}"


def search_poster_url(path: str | None) -> str | None:
    """Search results keep a missing poster as None so the UI can decide."""
    return f"{TMDB_IMAGE_BASE}{path}" if path else None


def trailer_url(details: dict) -> str | None:
    """First YouTube trailer among the appended videos, as a watch URL."""
    videos = (details.get("videos") or {}).get("results") or []
    for video in videos:
        if video.get("site") == "YouTube" and video.get("type") == "Trailer" and video.get("key"):
            return f"https://www.youtube.com/watch?v={video['key']}"
    return None


def parse_release_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def genre_names(details: dict) -> list[str]:
    """Genre names from a details payload; TMDB sometimes sends null genres."""
    return [g["name"] for g in details.get("genres") or [] if isinstance(g, dict) and g.get("name")]


def format_movie_for_db(details: dict) -> dict:
    """Map a TMDB details payload onto Movie column values."""
    return {
        "tmdb_id": int(details["id"]),
        "title": details.get("title") or "",
        "poster": poster_url(details.get("poster_path")),
        "trailer": trailer_url(details),
        "description": details.get("overview") or "",
        "genres": genre_names(details),
        "release_date": parse_release_date(details.get("release_date")),
        "runtime": details.get("runtime") or None,
    }


def format_search_result(raw: dict) -> dict:
    """Normalize a TMDB /search/movie result row for the client."""
    return {
        "id": raw.get("id"),
        "title": raw.get("title") or "",
        "overview": raw.get("overview"),
        "poster": search_poster_url(raw.get("poster_path")),
        "release_date": raw.get("release_date"),
        "genre_ids": raw.get("genre_ids") or [],
    }
