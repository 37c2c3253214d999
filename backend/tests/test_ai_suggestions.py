import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from movienight.db.models import (
    Base,
    Meeting,
    MeetingRating,
    MeetingVote,
    MeetingVoteTypeEnum,
    Movie,
    User,
)
from movienight.services import ai_suggestions
from movienight.services.ai_suggestions import (
    NoCandidatesError,
    NoVotesError,
    RecommendationMatchError,
    build_cold_start_prompt,
    match_recommendation,
    title_from_reason,
)
from movienight.services.llm_client import LLMResponseError

LONG_COMMENT = "Tense from the first minute, and the diner scene alone is worth the whole evening."


def _candidate(title: str) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), title=title)


class TestRecommendationMatching(unittest.TestCase):
    def setUp(self) -> None:
        self.candidates = [_candidate("Heat"), _candidate("Alien"), _candidate("The Thing")]

    def test_json_title_matches_case_insensitively(self) -> None:
        movie = match_recommendation(self.candidates, "  alien ", "It has the best net votes.")
        self.assertEqual(movie.title, "Alien")

    def test_reason_overrides_json_title(self) -> None:
        reason = "Heat and Alien were close, but I recommend 'The Thing' for the horror theme."
        movie = match_recommendation(self.candidates, "Heat", reason)
        self.assertEqual(movie.title, "The Thing")

    def test_reason_naming_unknown_movie_falls_back_to_json(self) -> None:
        reason = "Honestly I would pick 'Jaws' but among these Heat wins."
        movie = match_recommendation(self.candidates, "Heat", reason)
        self.assertEqual(movie.title, "Heat")

    def test_unknown_title_raises(self) -> None:
        with self.assertRaises(RecommendationMatchError):
            match_recommendation(self.candidates, "Jaws", "It has the best net votes.")

    def test_title_from_reason(self) -> None:
        self.assertEqual(title_from_reason('Therefore, I recommend "Alien".'), "Alien")
        self.assertIsNone(title_from_reason("Everyone voted yes on it."))


class TestPrompts(unittest.TestCase):
    def test_cold_start_prompt_mentions_theme_and_limit(self) -> None:
        prompt = build_cold_start_prompt(5, theme="Heist night")
        self.assertIn("Generate 5 diverse movie recommendations", prompt)
        self.assertIn('"Heist night"', prompt)
        self.assertIn('"movies"', prompt)

    def test_cold_start_prompt_without_theme(self) -> None:
        self.assertNotIn("SPECIAL THEME", build_cold_start_prompt(7))


class AISuggestionDatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)()
        self.now = datetime.now(timezone.utc)
        ai_suggestions.clear_suggestion_cache()

        self.marta = User(username="marta", display_name="Marta")
        self.jonas = User(username="jonas")
        self.heat = Movie(tmdb_id=949, title="Heat", poster="/heat.jpg", genres=["Crime", "Drama"])
        self.alien = Movie(tmdb_id=348, title="Alien", poster="/alien.jpg", genres=["Horror"])
        self.db.add_all([self.marta, self.jonas, self.heat, self.alien])
        self.db.commit()

    def tearDown(self) -> None:
        ai_suggestions.clear_suggestion_cache()
        self.db.close()
        self.engine.dispose()

    def add_meeting(self, days_from_now: int, **kwargs) -> Meeting:
        watched_date = self.now + timedelta(days=days_from_now)
        meeting = Meeting(
            watched_date=watched_date,
            status=Meeting.status_for(watched_date, self.now),
            **kwargs,
        )
        self.db.add(meeting)
        self.db.commit()
        return meeting


class TestSuggestionPrompt(AISuggestionDatabaseTestCase):
    def test_new_group_gets_cold_start_prompt(self) -> None:
        upcoming = self.add_meeting(3, theme="Space")
        prompt = ai_suggestions.build_suggestion_prompt(self.db, upcoming, 7)
        self.assertIn("new group with no viewing history", prompt)
        self.assertIn('"Space"', prompt)

    def test_past_meeting_without_movies_is_ignored(self) -> None:
        self.add_meeting(-3)
        upcoming = self.add_meeting(3)
        prompt = ai_suggestions.build_suggestion_prompt(self.db, upcoming, 7)
        self.assertIn("new group with no viewing history", prompt)

    def test_history_prompt_uses_ratings_and_votes(self) -> None:
        past = self.add_meeting(-7, movies=[self.heat], candidates=[self.heat, self.alien])
        past.ratings.append(
            MeetingRating(user_id=self.marta.id, movie_id=self.heat.id, rating=5, comment=LONG_COMMENT)
        )
        self.db.add_all([
            MeetingVote(
                user_id=self.marta.id, movie_id=self.heat.id, meeting_id=past.id,
                vote_type=MeetingVoteTypeEnum.YES, reason="Mann at his best",
            ),
            MeetingVote(
                user_id=self.jonas.id, movie_id=self.alien.id, meeting_id=past.id,
                vote_type=MeetingVoteTypeEnum.NO,
            ),
        ])
        self.db.commit()
        upcoming = self.add_meeting(3)

        prompt = ai_suggestions.build_suggestion_prompt(self.db, upcoming, 4)

        self.assertIn("Total movies watched: 1", prompt)
        self.assertIn("Highly rated movies (4+ stars): Heat", prompt)
        self.assertIn("Movies they voted YES on (1 votes): Heat", prompt)
        self.assertIn("Movies they voted NO on (1 votes): Alien", prompt)
        self.assertIn('"Mann at his best"', prompt)
        self.assertIn("Avoid movies they've already watched: Heat", prompt)
        self.assertIn("Generate 4 diverse movie recommendations", prompt)


class TestGenerateSuggestions(AISuggestionDatabaseTestCase):
    def _tmdb(self) -> AsyncMock:
        tmdb = AsyncMock()

        async def search(title, page=1):
            if title == "Nowhere Film":
                return {"results": [], "total_results": 0, "total_pages": 0}
            return {"results": [{"id": 1091 if title == "The Thing" else 949}]}

        async def details(tmdb_id):
            titles = {1091: "The Thing", 949: "Heat"}
            return {
                "id": tmdb_id,
                "title": titles[tmdb_id],
                "poster_path": f"/{tmdb_id}.jpg",
                "overview": "",
                "genres": [{"id": 27, "name": "Horror"}],
                "release_date": "1982-06-25",
            }

        tmdb.search_movies.side_effect = search
        tmdb.get_movie_details.side_effect = details
        return tmdb

    def test_resolves_titles_and_caches(self) -> None:
        meeting = self.add_meeting(3)
        llm = AsyncMock()
        llm.complete_json.return_value = {
            "movies": [
                {"title": "The Thing", "reason": "Paranoia in the snow."},
                {"title": "Heat", "reason": "Already in the catalogue."},
                {"title": "Nowhere Film", "reason": "Does not exist."},
            ]
        }
        tmdb = self._tmdb()

        suggestions = asyncio.run(
            ai_suggestions.generate_ai_movie_suggestions(self.db, meeting.id, 7, tmdb=tmdb, llm=llm)
        )

        self.assertEqual([s["title"] for s in suggestions], ["The Thing", "Heat"])
        self.assertEqual(suggestions[1]["movie_id"], self.heat.id)
        created = self.db.query(Movie).filter(Movie.tmdb_id == 1091).one()
        self.assertIsNone(created.added_by_user_id)
        self.assertEqual(suggestions[0]["genres"], ["Horror"])

        again = asyncio.run(
            ai_suggestions.generate_ai_movie_suggestions(self.db, meeting.id, 7, tmdb=tmdb, llm=llm)
        )
        self.assertEqual(again, suggestions)
        llm.complete_json.assert_awaited_once()

    def test_expired_cache_is_regenerated(self) -> None:
        meeting = self.add_meeting(3)
        llm = AsyncMock()
        llm.complete_json.return_value = {"movies": []}

        with patch.object(ai_suggestions.settings, "AI_SUGGESTION_CACHE_SECONDS", 0):
            for _ in range(2):
                asyncio.run(
                    ai_suggestions.generate_ai_movie_suggestions(
                        self.db, meeting.id, tmdb=self._tmdb(), llm=llm
                    )
                )

        self.assertEqual(llm.complete_json.await_count, 2)

    def test_malformed_llm_reply(self) -> None:
        meeting = self.add_meeting(3)
        llm = AsyncMock()
        llm.complete_json.return_value = {"movies": "Heat"}

        with self.assertRaises(LLMResponseError):
            asyncio.run(
                ai_suggestions.generate_ai_movie_suggestions(self.db, meeting.id, tmdb=self._tmdb(), llm=llm)
            )


    def test_bad_tmdb_payload_drops_only_that_title(self) -> None:
        meeting = self.add_meeting(3)
        llm = AsyncMock()
        llm.complete_json.return_value = {
            "movies": [
                {"title": "The Thing", "reason": "Paranoia in the snow."},
                {"title": "Broken Entry", "reason": "TMDB sends junk for this one."},
                {"title": "Heat", "reason": "Already in the catalogue."},
            ]
        }
        tmdb = AsyncMock()

        async def search(title, page=1):
            ids = {"The Thing": 1091, "Broken Entry": 5, "Heat": 949}
            return {"results": [{"id": ids[title]}]}

        async def details(tmdb_id):
            if tmdb_id == 5:
                return {"id": "not-a-number", "title": "Broken Entry"}
            return {
                "id": tmdb_id,
                "title": "The Thing" if tmdb_id == 1091 else "Heat",
                "poster_path": None,
                "overview": None,
                "genres": None,
                "release_date": "",
            }

        tmdb.search_movies.side_effect = search
        tmdb.get_movie_details.side_effect = details

        suggestions = asyncio.run(
            ai_suggestions.generate_ai_movie_suggestions(self.db, meeting.id, tmdb=tmdb, llm=llm)
        )

        self.assertEqual([s["title"] for s in suggestions], ["The Thing", "Heat"])
        self.assertEqual(suggestions[0]["genres"], [])
        created = self.db.query(Movie).filter(Movie.tmdb_id == 1091).one()
        self.assertEqual(created.genres, [])


class TestRecommendCandidate(AISuggestionDatabaseTestCase):
    def test_requires_candidates(self) -> None:
        meeting = self.add_meeting(3)
        with self.assertRaises(NoCandidatesError):
            asyncio.run(ai_suggestions.recommend_candidate(self.db, meeting.id, llm=AsyncMock()))

    def test_requires_votes(self) -> None:
        meeting = self.add_meeting(3, candidates=[self.heat, self.alien])
        with self.assertRaises(NoVotesError):
            asyncio.run(ai_suggestions.recommend_candidate(self.db, meeting.id, llm=AsyncMock()))

    def test_prompt_lists_only_voted_candidates(self) -> None:
        meeting = self.add_meeting(3, candidates=[self.heat, self.alien], theme="Crime")
        self.db.add(
            MeetingVote(
                user_id=self.marta.id, movie_id=self.heat.id, meeting_id=meeting.id,
                vote_type=MeetingVoteTypeEnum.YES, reason="Best heist ever",
            )
        )
        self.db.commit()
        llm = AsyncMock()
        llm.complete_json.return_value = {
            "recommendedMovie": "Heat",
            "reason": "Heat is the only candidate with votes and it fits the theme.",
        }

        result = asyncio.run(ai_suggestions.recommend_candidate(self.db, meeting.id, llm=llm))

        self.assertEqual(result["movie_id"], self.heat.id)
        prompt = llm.complete_json.await_args.args[0]
        self.assertIn('1. "Heat"', prompt)
        self.assertNotIn('"Alien"', prompt)
        self.assertIn('Marta: YES - "Best heist ever"', prompt)
        self.assertIn('"Crime"', prompt)

    def test_missing_fields_in_reply(self) -> None:
        meeting = self.add_meeting(3, candidates=[self.heat])
        self.db.add(
            MeetingVote(
                user_id=self.jonas.id, movie_id=self.heat.id, meeting_id=meeting.id,
                vote_type=MeetingVoteTypeEnum.NO,
            )
        )
        self.db.commit()
        llm = AsyncMock()
        llm.complete_json.return_value = {"recommendedMovie": "Heat"}

        with self.assertRaises(LLMResponseError):
            asyncio.run(ai_suggestions.recommend_candidate(self.db, meeting.id, llm=llm))


if __name__ == "__main__":
    unittest.main()
