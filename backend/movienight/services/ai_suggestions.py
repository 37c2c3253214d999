"""
AI movie suggestions
────────────────────
Builds a prompt from the group's watch history (ratings, review comments,
yes/no candidate votes), asks the LLM for titles, then resolves each title
through TMDB into a stored Movie.

Results are cached per meeting for AI_SUGGESTION_CACHE_SECONDS.

Also hosts the candidate recommendation: given the votes cast on a
meeting's candidates, the LLM picks the one the group should watch.
"""
import asyncio
import logging
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from movienight.core.config import settings
from movienight.db.models import (
    Meeting,
    MeetingRating,
    MeetingStatusEnum,
    MeetingVote,
    MeetingVoteTypeEnum,
    Movie,
)
from movienight.services.llm_client import GroqChatService, LLMResponseError
from movienight.services.meeting_service import get_meeting_or_raise, list_meeting_votes
from movienight.services.movie_service import create_movie_from_details, get_movie_by_tmdb_id
from movienight.services.tmdb_client import (
    TMDBService,
    TMDBUpstreamError,
    genre_names,
    search_poster_url,
)

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_LIMIT = 7
SUGGESTION_MAX_TOKENS = 2000
RECOMMENDATION_MAX_TOKENS = 1000

# meeting id -> (monotonic timestamp, resolved suggestions)
_suggestion_cache: dict[UUID, tuple[float, list[dict]]] = {}


class NoCandidatesError(Exception):
    """Raised when a recommendation is requested for a meeting without candidates."""


class NoVotesError(Exception):
    """Raised when nobody has voted on the meeting's candidates yet."""


class RecommendationMatchError(Exception):
    """Raised when the LLM names a movie that is not among the candidates."""


# ── Cache ─────────────────────────────────────────────────────────────────────

def get_cached_suggestions(meeting_id: UUID) -> list[dict] | None:
    entry = _suggestion_cache.get(meeting_id)
    if entry is None:
        return None
    stored_at, suggestions = entry
    if time.monotonic() - stored_at >= settings.AI_SUGGESTION_CACHE_SECONDS:
        _suggestion_cache.pop(meeting_id, None)
        return None
    return suggestions


def cache_suggestions(meeting_id: UUID, suggestions: list[dict]) -> None:
    _suggestion_cache[meeting_id] = (time.monotonic(), suggestions)


def clear_suggestion_cache() -> None:
    _suggestion_cache.clear()


# ── History summary ───────────────────────────────────────────────────────────

@dataclass
class WatchedMovie:
    title: str
    genres: list[str]
    ratings: list[int] = field(default_factory=list)
    comments: list[tuple[int, str]] = field(default_factory=list)

    @property
    def average_rating(self) -> float:
        return sum(self.ratings) / len(self.ratings) if self.ratings else 0.0


@dataclass
class GroupHistory:
    """What the prompt needs to know about the group's taste."""

    watched: list[WatchedMovie]
    top_genres: list[str]
    high_rated: list[str]
    low_rated: list[str]
    positive_comments: list[str]
    negative_comments: list[str]
    yes_vote_count: int
    no_vote_count: int
    yes_titles: list[str]
    no_titles: list[str]
    yes_reasons: list[str]
    no_reasons: list[str]


def load_past_meetings(db: Session, now: datetime | None = None) -> list[Meeting]:
    """Watched (or past-dated) meetings that had at least one movie, newest first."""
    now = now or datetime.now(timezone.utc)
    return (
        db.query(Meeting)
        .options(
            selectinload(Meeting.movies),
            selectinload(Meeting.ratings).joinedload(MeetingRating.user),
        )
        .filter(
            or_(Meeting.status == MeetingStatusEnum.WATCHED, Meeting.watched_date < now),
            Meeting.movies.any(),
        )
        .order_by(Meeting.watched_date.desc())
        .all()
    )


def load_votes_for_meetings(db: Session, meeting_ids: list[UUID]) -> list[MeetingVote]:
    if not meeting_ids:
        return []
    return (
        db.query(MeetingVote)
        .options(joinedload(MeetingVote.movie))
        .filter(MeetingVote.meeting_id.in_(meeting_ids))
        .order_by(MeetingVote.created_at.desc())
        .all()
    )


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def summarize_history(meetings: list[Meeting], votes: list[MeetingVote]) -> GroupHistory:
    by_movie: dict[UUID, WatchedMovie] = {}
    for meeting in meetings:
        for movie in meeting.movies:
            entry = by_movie.setdefault(
                movie.id, WatchedMovie(title=movie.title, genres=list(movie.genres or []))
            )
            for rating in meeting.ratings:
                if rating.movie_id == movie.id:
                    entry.ratings.append(rating.rating)
                    entry.comments.append((rating.rating, rating.comment))

    watched = list(by_movie.values())
    for movie in watched:
        movie.comments = movie.comments[:10]

    genre_counts = Counter(g for m in watched for g in m.genres)

    yes_votes = [v for v in votes if v.vote_type == MeetingVoteTypeEnum.YES]
    no_votes = [v for v in votes if v.vote_type == MeetingVoteTypeEnum.NO]

    return GroupHistory(
        watched=watched,
        top_genres=[genre for genre, _ in genre_counts.most_common(5)],
        high_rated=[m.title for m in watched if m.ratings and m.average_rating >= 4][:10],
        low_rated=[m.title for m in watched if m.ratings and m.average_rating <= 2][:5],
        positive_comments=[c for m in watched for r, c in m.comments if r >= 4][:5],
        negative_comments=[c for m in watched for r, c in m.comments if r <= 2][:5],
        yes_vote_count=len(yes_votes),
        no_vote_count=len(no_votes),
        yes_titles=_unique([v.movie.title for v in yes_votes if v.movie])[:10],
        no_titles=_unique([v.movie.title for v in no_votes if v.movie])[:10],
        yes_reasons=[v.reason for v in yes_votes if v.reason][:5],
        no_reasons=[v.reason for v in no_votes if v.reason][:5],
    )


# ── Prompts ───────────────────────────────────────────────────────────────────

_RESPONSE_FORMAT = """Return ONLY valid JSON in this exact format:
{
  "movies": [
    {
      "title": "Exact Movie Title",
      "reason": "%s"
    }
  ]
}"""


def _numbered(lines: list[str], indent: str = "") -> str:
    return "\n".join(f'{indent}{i}. "{line}"' for i, line in enumerate(lines, start=1))


def build_cold_start_prompt(limit: int, theme: str | None = None) -> str:
    """Prompt for a group that has not watched anything yet."""
    theme_section = ""
    if theme:
        theme_section = (
            "\n\nSPECIAL THEME FOR THIS MEETING:\n"
            f'The group has requested movies that fit this theme: "{theme}"\n'
            "Please prioritize movies that align with this theme while still maintaining variety."
        )
    theme_hint = ", referencing how it relates to the theme" if theme else ""

    return (
        "You are a movie recommendation expert. "
        f"Generate {limit} diverse movie recommendations for a movie night group.\n\n"
        "Since this is a new group with no viewing history yet, suggest a variety of:\n"
        "- Popular and critically acclaimed films\n"
        "- Different genres (action, comedy, drama, thriller, sci-fi, etc.)\n"
        "- Different eras (classics and modern films)\n"
        f"- Mix of well-known and lesser-known gems{theme_section}\n\n"
        "For each movie, provide:\n"
        "- The exact movie title (must be searchable on TMDB)\n"
        f"- A brief explanation (2-3 sentences) of why this movie is a good choice{theme_hint}\n\n"
        + _RESPONSE_FORMAT % "Brief explanation of why this movie is a good choice..."
    )


def build_history_prompt(history: GroupHistory, limit: int, theme: str | None = None) -> str:
    """Prompt grounded in what the group watched, rated and voted on."""
    def _or_none(values: list[str]) -> str:
        return ", ".join(values) if values else "None yet"

    lines = [
        "You are a movie recommendation expert analyzing a movie night group's "
        "viewing history, reviews, and voting preferences.",
        "",
        "GROUP'S MOVIE HISTORY:",
        f"- Total movies watched: {len(history.watched)}",
        f"- Top genres: {_or_none(history.top_genres)}",
        f"- Highly rated movies (4+ stars): {_or_none(history.high_rated)}",
        f"- Low rated movies (2 stars or less): {_or_none(history.low_rated)}",
        "",
        "REVIEW PATTERNS:",
    ]

    if history.positive_comments:
        lines.append("Positive review themes:")
        lines.append(_numbered([f"{c[:100]}..." for c in history.positive_comments]))
    else:
        lines.append("No positive reviews yet")
    if history.negative_comments:
        lines.append("Negative review themes:")
        lines.append(_numbered([f"{c[:100]}..." for c in history.negative_comments]))
    else:
        lines.append("No negative reviews yet")

    lines += ["", "VOTING PATTERNS:"]
    if history.yes_vote_count:
        lines.append(
            f"Movies they voted YES on ({history.yes_vote_count} votes): "
            f"{', '.join(history.yes_titles) or 'None'}"
        )
    else:
        lines.append("No yes votes yet")
    if history.yes_reasons:
        lines.append("Reasons for YES votes:")
        lines.append(_numbered(history.yes_reasons))
    if history.no_vote_count:
        lines.append(
            f"Movies they voted NO on ({history.no_vote_count} votes): "
            f"{', '.join(history.no_titles) or 'None'}"
        )
    else:
        lines.append("No no votes yet")
    if history.no_reasons:
        lines.append("Reasons for NO votes:")
        lines.append(_numbered(history.no_reasons))

    if theme:
        lines += [
            "",
            "SPECIAL THEME FOR THIS MEETING:",
            f'The group has requested movies that fit this theme: "{theme}"',
            "Please prioritize movies that align with this theme while still considering their preferences.",
        ]

    watched_titles = ", ".join(m.title for m in history.watched)
    considerations = [
        "Movies similar to their highly-rated films",
        "Movies in genres they enjoy",
        "Movies that avoid themes/styles they disliked",
        "Movies similar to ones they voted YES on",
        "Avoid movies they voted NO on (unless reasons were specific and don't apply)",
        "Variety in genres, eras, and styles",
        "Mix of popular and lesser-known films",
        f"Avoid movies they've already watched: {watched_titles}",
    ]
    if theme:
        considerations.append("Prioritize movies that fit the meeting theme")

    lines += [
        "",
        "TASK:",
        f"Generate {limit} diverse movie recommendations for this group. Consider:",
        *(f"{i}. {c}" for i, c in enumerate(considerations, start=1)),
        "",
        "For each movie, provide:",
        "- The exact movie title (must be searchable on TMDB)",
        "- A brief explanation (2-3 sentences) of why this movie fits the group's preferences, "
        "referencing their voting patterns and reviews"
        + (", and how it relates to the theme" if theme else ""),
        "",
        _RESPONSE_FORMAT % "Brief explanation of why this movie fits the group...",
        "",
        "Be creative but practical. Focus on quality recommendations that match their taste.",
    ]
    return "\n".join(lines)


def build_suggestion_prompt(db: Session, meeting: Meeting, limit: int) -> str:
    """Pick the cold-start or the history prompt depending on what the group has watched."""
    past = load_past_meetings(db)
    if not past:
        return build_cold_start_prompt(limit, meeting.theme)
    votes = load_votes_for_meetings(db, [m.id for m in past])
    return build_history_prompt(summarize_history(past, votes), limit, meeting.theme)


# ── Title resolution ──────────────────────────────────────────────────────────

async def resolve_suggestion(
    db: Session,
    tmdb: TMDBService,
    title: str,
    reason: str,
) -> dict | None:
    """
    Map an LLM title to a stored Movie via the first TMDB search hit.

    Returns None when TMDB has no match or the lookup fails.
    """
    try:
        search = await tmdb.search_movies(title)
        results = search.get("results") or []
        if not results:
            logger.warning("Movie not found on TMDB: %s", title)
            return None
        details = await tmdb.get_movie_details(results[0]["id"])
    except (TMDBUpstreamError, KeyError) as exc:
        logger.error("Error fetching details for %s: %s", title, exc)
        return None

    try:
        tmdb_id = int(details["id"])
        movie = get_movie_by_tmdb_id(db, tmdb_id)
        if movie is None:
            movie = create_movie_from_details(db, details, added_by_user_id=None)
        return {
            "movie_id": movie.id,
            "tmdb_id": tmdb_id,
            "title": details.get("title") or movie.title,
            "poster": search_poster_url(details.get("poster_path")),
            "description": details.get("overview") or "",
            "genres": genre_names(details),
            "release_date": details.get("release_date") or None,
            "reason": reason,
        }
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Unusable TMDB details for %s: %s", title, exc)
        return None


async def generate_ai_movie_suggestions(
    db: Session,
    meeting_id: UUID,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
    tmdb: TMDBService | None = None,
    llm: GroqChatService | None = None,
) -> list[dict]:
    """Cached-or-fresh suggestions for a meeting."""
    meeting = get_meeting_or_raise(db, meeting_id)

    cached = get_cached_suggestions(meeting.id)
    if cached is not None:
        return cached

    tmdb = tmdb or TMDBService()
    llm = llm or GroqChatService()

    prompt = build_suggestion_prompt(db, meeting, limit)
    reply = await llm.complete_json(prompt, max_tokens=SUGGESTION_MAX_TOKENS)
    movies = reply.get("movies")
    if not isinstance(movies, list):
        raise LLMResponseError("Invalid response format from AI")

    picks = [
        m for m in movies[:limit]
        if isinstance(m, dict) and isinstance(m.get("title"), str) and m["title"].strip()
    ]
    resolved = await asyncio.gather(
        *(resolve_suggestion(db, tmdb, m["title"].strip(), str(m.get("reason") or "")) for m in picks)
    )
    suggestions = [s for s in resolved if s is not None]

    logger.info(
        "Generated %d AI suggestions for meeting %s (%d titles proposed)",
        len(suggestions), meeting.id, len(picks),
    )
    cache_suggestions(meeting.id, suggestions)
    return suggestions


# ── Candidate recommendation ──────────────────────────────────────────────────

_REASON_PICK_PATTERNS = [
    re.compile(r"(?:recommend|choose|select|pick)\s+['\"]([^'\"]+)['\"]", re.IGNORECASE),
    re.compile(r"(?:recommend|choose|select|pick)\s+([A-Z][^.!?]+?)(?:\.|$)", re.IGNORECASE),
    re.compile(r"therefore,\s+i\s+(?:recommend|choose|select|pick)\s+['\"]([^'\"]+)['\"]", re.IGNORECASE),
]


@dataclass
class CandidateTally:
    movie: Movie
    yes_votes: int
    no_votes: int
    yes_reasons: list[str]
    no_reasons: list[str]
    details: list[str]

    @property
    def total_votes(self) -> int:
        return self.yes_votes + self.no_votes

    @property
    def net_votes(self) -> int:
        return self.yes_votes - self.no_votes


def tally_candidates(candidates: list[Movie], votes: list[MeetingVote]) -> list[CandidateTally]:
    """Per-candidate vote breakdown; candidates nobody voted on are left out."""
    tallies = []
    for movie in candidates:
        mine = [v for v in votes if v.movie_id == movie.id]
        if not mine:
            continue
        yes = [v for v in mine if v.vote_type == MeetingVoteTypeEnum.YES]
        no = [v for v in mine if v.vote_type == MeetingVoteTypeEnum.NO]
        details = []
        for vote in mine:
            voter = (vote.user.display_name or vote.user.username) if vote.user else "Unknown"
            line = f"{voter}: {vote.vote_type.value.upper()}"
            if vote.reason:
                line += f' - "{vote.reason}"'
            details.append(line)
        tallies.append(
            CandidateTally(
                movie=movie,
                yes_votes=len(yes),
                no_votes=len(no),
                yes_reasons=[v.reason for v in yes if v.reason],
                no_reasons=[v.reason for v in no if v.reason],
                details=details,
            )
        )
    return tallies


def build_recommendation_prompt(tallies: list[CandidateTally], theme: str | None = None) -> str:
    blocks = []
    for i, t in enumerate(tallies, start=1):
        block = [
            f'{i}. "{t.movie.title}"',
            f"   - Description: {t.movie.description or 'No description available'}",
            f"   - Genres: {', '.join(t.movie.genres or []) or 'Unknown'}",
            f"   - YES votes: {t.yes_votes}",
            f"   - NO votes: {t.no_votes}",
            f"   - Net votes (YES - NO): {t.net_votes}",
            f"   - Total votes: {t.total_votes}",
        ]
        if t.yes_reasons:
            block += ["   Reasons for YES votes:", _numbered(t.yes_reasons, indent="     ")]
        if t.no_reasons:
            block += ["   Reasons for NO votes:", _numbered(t.no_reasons, indent="     ")]
        block += ["   All votes:"]
        block += [f"     {j}. {d}" for j, d in enumerate(t.details, start=1)]
        blocks.append("\n".join(block))

    theme_section = ""
    if theme:
        theme_section = (
            "\n\nMEETING THEME:\n"
            f'The group has requested movies that fit this theme: "{theme}"\n'
            "Consider this when making your recommendation."
        )

    return (
        "You are a movie recommendation expert. Based on the voting patterns and comments "
        "from a movie night group, recommend which candidate movie should be selected for "
        "this meeting.\n\n"
        "CANDIDATES AND THEIR VOTES (you MUST consider ALL candidates listed below):\n\n"
        + "\n\n".join(blocks)
        + theme_section
        + "\n\nTASK:\n"
        "You MUST analyze and consider EVERY candidate listed above. Then recommend ONE candidate that:\n"
        "1. Fits the meeting theme if provided (THIS IS THE PRIMARY CONSIDERATION - theme "
        "alignment trumps vote counts)\n"
        "2. Does NOT have strong negative feedback (avoid movies with comments like \"I really "
        "don't want to watch this\" or \"watch anything else\")\n"
        "3. Has positive or neutral net support (YES votes minus NO votes) - prefer movies "
        "with net votes >= 0\n"
        "4. Would be most enjoyable for the group based on their comments\n\n"
        "DECISION PROCESS:\n"
        "- First, filter to movies that fit the theme well\n"
        "- Then, eliminate movies with strong negative feedback (comments expressing strong dislike)\n"
        "- Finally, among remaining movies, choose the one with the best net votes\n"
        "- You MUST mention and consider ALL candidates in your analysis\n\n"
        "Return ONLY valid JSON in this exact format:\n"
        "{\n"
        '  "recommendedMovie": "Exact Movie Title",\n'
        '  "reason": "Detailed explanation (5-7 sentences) that lists every candidate you '
        "considered, compares their YES/NO/net votes, notes theme fit and any strong negative "
        'feedback, and ends with the movie you recommend."\n'
        "}"
    )


def title_from_reason(reason: str) -> str | None:
    """The movie the reason text says it recommends, if it names one."""
    for pattern in _REASON_PICK_PATTERNS:
        match = pattern.search(reason)
        if match and match.group(1):
            return match.group(1).strip()
    return None


def _find_candidate(candidates: list[Movie], title: str) -> Movie | None:
    wanted = title.strip().lower()
    return next((m for m in candidates if m.title.strip().lower() == wanted), None)


def match_recommendation(candidates: list[Movie], recommended: str, reason: str) -> Movie:
    """
    Map the LLM answer to a candidate.

    When the reason text names a different candidate than the JSON field,
    the reason wins.
    """
    final_title = recommended.strip()
    from_reason = title_from_reason(reason)
    if from_reason and from_reason.lower() != final_title.lower():
        logger.warning(
            'Recommendation mismatch: JSON says "%s" but reason says "%s"',
            final_title, from_reason,
        )
        candidate = _find_candidate(candidates, from_reason)
        if candidate is not None:
            final_title = candidate.title
        else:
            logger.warning('Movie "%s" from reason not found in candidates, using JSON value', from_reason)

    candidate = _find_candidate(candidates, final_title)
    if candidate is None:
        logger.error("Available candidates: %s", [m.title for m in candidates])
        raise RecommendationMatchError(f'Recommended movie "{final_title}" not found in candidates')
    return candidate


async def recommend_candidate(
    db: Session,
    meeting_id: UUID,
    llm: GroqChatService | None = None,
) -> dict:
    """Ask the LLM which voted-on candidate the group should watch. Never cached."""
    meeting = get_meeting_or_raise(db, meeting_id)
    candidates = list(meeting.candidates)
    if not candidates:
        raise NoCandidatesError("No candidates available for recommendation")

    votes = list_meeting_votes(db, meeting.id)
    if not votes:
        raise NoVotesError("No votes available yet. Need votes to generate recommendation.")

    tallies = tally_candidates(candidates, votes)
    if not tallies:
        raise NoVotesError(
            "No candidates with votes available for recommendation. "
            "Candidates need at least one vote to be considered."
        )

    llm = llm or GroqChatService()
    reply = await llm.complete_json(
        build_recommendation_prompt(tallies, meeting.theme),
        max_tokens=RECOMMENDATION_MAX_TOKENS,
    )
    recommended = reply.get("recommendedMovie")
    reason = reply.get("reason")
    if not isinstance(recommended, str) or not isinstance(reason, str) or not recommended or not reason:
        raise LLMResponseError("Invalid response format from AI")

    movie = match_recommendation(candidates, recommended, reason)
    logger.info("AI recommended %s for meeting %s", movie.title, meeting.id)
    return {
        "movie_id": movie.id,
        "title": movie.title,
        "poster": movie.poster,
        "description": movie.description or "",
        "reason": reason,
    }
