import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient

from movienight.core.config import settings
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user
from movienight.main import app
from movienight.services.ai_suggestions import NoVotesError, RecommendationMatchError
from movienight.services.llm_client import LLMResponseError
from movienight.services.meeting_service import (
    MeetingClosedError,
    MeetingNotFoundError,
    NotACandidateError,
    SuggestionLimitError,
)

ADMIN_PASSWORD = "popcorn"
ADMIN_HEADERS = {"x-admin-password": ADMIN_PASSWORD}
LONG_COMMENT = "A slow burn that pays off; the final act had the whole room arguing for an hour."


def _fake_user(**overrides):
    base = {
        "id": uuid4(),
        "username": "marta",
        "display_name": None,
        "display_name_color": "#000000",
        "avatar": None,
        "is_admin": False,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def _fake_movie(**overrides):
    base = {"id": uuid4(), "title": "Heat", "poster": "https://image.tmdb.org/t/p/w500/heat.jpg"}
    base.update(overrides)
    return SimpleNamespace(**base)


def _fake_meeting(**overrides):
    base = {
        "id": uuid4(),
        "watched_date": datetime.now(timezone.utc) + timedelta(days=3),
        "host": _fake_user(username="host"),
        "location": "Jonas' place",
        "theme": None,
        "status": "upcoming",
        "movies": [],
        "candidates": [_fake_movie()],
        "ratings": [],
        "gathering_ratings": [],
        "average_rating": 0.0,
        "average_gathering_rating": 0.0,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


class TestMeetingsApi(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        self.user = _fake_user()
        app.dependency_overrides[get_db] = lambda: iter([object()])
        app.dependency_overrides[get_current_user] = lambda: self.user
        self.admin_patch = patch.object(settings, "ADMIN_PASSWORD", ADMIN_PASSWORD)
        self.admin_patch.start()

    def tearDown(self) -> None:
        self.admin_patch.stop()
        app.dependency_overrides.clear()

    # ── Admin gate ────────────────────────────────────────────────────────────

    def test_create_meeting_without_admin_header_is_403(self) -> None:
        response = self.client.post(
            "/api/movie-history",
            json={"watched_date": "2030-01-10T19:00:00Z"},
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {"error": "Invalid admin password"})

    def test_admin_routes_fail_when_password_not_configured(self) -> None:
        with patch.object(settings, "ADMIN_PASSWORD", ""):
            response = self.client.post(
                "/api/movie-history",
                json={"watched_date": "2030-01-10T19:00:00Z"},
                headers=ADMIN_HEADERS,
            )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Admin password not configured"})

    def test_create_meeting_with_admin_header(self) -> None:
        meeting = _fake_meeting(host=self.user, candidates=[])
        with patch("movienight.api.meetings.create_meeting", return_value=meeting) as create:
            response = self.client.post(
                "/api/movie-history",
                json={"watched_date": "2030-01-10T19:00:00Z", "location": "Jonas' place"},
                headers=ADMIN_HEADERS,
            )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["host"]["username"], "marta")
        self.assertEqual(create.call_args.args[2], self.user.id)

    # ── Reading ───────────────────────────────────────────────────────────────

    def test_get_meeting_not_found(self) -> None:
        with patch(
            "movienight.api.meetings.get_meeting_or_raise",
            side_effect=MeetingNotFoundError("Meeting not found"),
        ):
            response = self.client.get(f"/api/movie-history/{uuid4()}")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Meeting not found"})

    def test_malformed_meeting_id_is_400(self) -> None:
        response = self.client.get("/api/movie-history/not-a-uuid")
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    # ── Ratings ───────────────────────────────────────────────────────────────

    def test_rating_comment_must_be_50_characters(self) -> None:
        response = self.client.post(
            f"/api/movie-history/{uuid4()}/rating",
            json={"rating": 4, "comment": "Loved it"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Comment must be at least 50 characters"})

    def test_rating_out_of_range_is_400(self) -> None:
        response = self.client.post(
            f"/api/movie-history/{uuid4()}/rating",
            json={"rating": 6, "comment": LONG_COMMENT},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Rating must be between 1 and 5"})

    def test_rating_success_returns_meeting(self) -> None:
        movie = _fake_movie()
        rating = SimpleNamespace(
            id=uuid4(), user=self.user, movie=movie, rating=4, comment=LONG_COMMENT
        )
        meeting = _fake_meeting(movies=[movie], ratings=[rating], average_rating=4.0)
        with patch("movienight.api.meetings.rate_movie", return_value=meeting):
            response = self.client.post(
                f"/api/movie-history/{meeting.id}/rating",
                json={"rating": 4, "comment": LONG_COMMENT, "movie_id": str(movie.id)},
            )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["average_rating"], 4.0)
        self.assertEqual(payload["ratings"][0]["movie"]["title"], "Heat")

    # ── Suggestions ───────────────────────────────────────────────────────────

    def test_suggest_limit_is_400(self) -> None:
        with patch(
            "movienight.api.meetings.suggest_movie",
            new=AsyncMock(side_effect=SuggestionLimitError("You have already suggested 2 movies for this meeting")),
        ):
            response = self.client.post(
                f"/api/movie-history/{uuid4()}/suggest",
                json={"tmdb_id": 949},
            )

        self.assertEqual(response.status_code, 400)
        self.assertIn("already suggested 2", response.json()["error"])

    def test_suggest_returns_remaining(self) -> None:
        movie = _fake_movie()
        with patch(
            "movienight.api.meetings.suggest_movie",
            new=AsyncMock(return_value={"success": True, "movie": movie, "remaining_suggestions": 1}),
        ):
            response = self.client.post(
                f"/api/movie-history/{uuid4()}/suggest",
                json={"tmdb_id": 949},
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["remaining_suggestions"], 1)
        self.assertEqual(response.json()["movie"]["title"], "Heat")

    # ── Candidate votes ───────────────────────────────────────────────────────

    def test_vote_on_non_candidate_is_400(self) -> None:
        with patch(
            "movienight.api.meetings.submit_meeting_vote",
            side_effect=NotACandidateError("Movie is not a candidate for this meeting"),
        ):
            response = self.client.post(
                f"/api/movie-history/{uuid4()}/vote",
                json={"movie_id": str(uuid4()), "vote_type": "yes"},
            )

        self.assertEqual(response.status_code, 400)

    def test_vote_on_past_meeting_is_400(self) -> None:
        with patch(
            "movienight.api.meetings.submit_meeting_vote",
            side_effect=MeetingClosedError("Cannot vote on past meetings"),
        ):
            response = self.client.post(
                f"/api/movie-history/{uuid4()}/vote",
                json={"movie_id": str(uuid4()), "vote_type": "no", "reason": "Seen it twice"},
            )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Cannot vote on past meetings"})

    def test_vote_type_must_be_yes_or_no(self) -> None:
        response = self.client.post(
            f"/api/movie-history/{uuid4()}/vote",
            json={"movie_id": str(uuid4()), "vote_type": "maybe"},
        )
        self.assertEqual(response.status_code, 400)

    def test_vote_reason_too_long_is_400(self) -> None:
        response = self.client.post(
            f"/api/movie-history/{uuid4()}/vote",
            json={"movie_id": str(uuid4()), "vote_type": "yes", "reason": "x" * 501},
        )
        self.assertEqual(response.status_code, 400)

    # ── AI ────────────────────────────────────────────────────────────────────

    def test_ai_suggestions_are_added_as_candidates(self) -> None:
        meeting_id = uuid4()
        suggestion = {
            "movie_id": uuid4(),
            "tmdb_id": 949,
            "title": "Heat",
            "poster": None,
            "description": "A cop and a thief.",
            "genres": ["Crime"],
            "release_date": "1995-12-15",
            "reason": "The group loves long crime epics.",
        }
        with patch(
            "movienight.api.meetings.generate_ai_movie_suggestions",
            new=AsyncMock(return_value=[suggestion]),
        ), patch("movienight.api.meetings.add_candidates", return_value=1) as add:
            response = self.client.post(
                f"/api/movie-history/{meeting_id}/ai-suggestions",
                headers=ADMIN_HEADERS,
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["suggestions"][0]["title"], "Heat")
        add.assert_called_once()
        self.assertEqual(add.call_args.args[1], meeting_id)
        self.assertEqual(add.call_args.args[2], [suggestion["movie_id"]])

    def test_ai_suggestions_llm_failure_is_500(self) -> None:
        with patch(
            "movienight.api.meetings.generate_ai_movie_suggestions",
            new=AsyncMock(side_effect=LLMResponseError("Invalid response format from AI")),
        ):
            response = self.client.get(
                f"/api/movie-history/{uuid4()}/ai-suggestions",
                headers=ADMIN_HEADERS,
            )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Invalid response format from AI"})

    def test_ai_recommendation_without_votes_is_400(self) -> None:
        with patch(
            "movienight.api.meetings.recommend_candidate",
            new=AsyncMock(side_effect=NoVotesError("No votes available yet. Need votes to generate recommendation.")),
        ):
            response = self.client.post(
                f"/api/movie-history/{uuid4()}/ai-recommendation",
                headers=ADMIN_HEADERS,
            )

        self.assertEqual(response.status_code, 400)

    def test_ai_recommendation_unmatched_title_is_500(self) -> None:
        with patch(
            "movienight.api.meetings.recommend_candidate",
            new=AsyncMock(side_effect=RecommendationMatchError('Recommended movie "Alien" not found in candidates')),
        ):
            response = self.client.post(
                f"/api/movie-history/{uuid4()}/ai-recommendation",
                headers=ADMIN_HEADERS,
            )

        self.assertEqual(response.status_code, 500)
        self.assertIn("Alien", response.json()["error"])

    def test_ai_recommendation_shape(self) -> None:
        movie_id = uuid4()
        with patch(
            "movienight.api.meetings.recommend_candidate",
            new=AsyncMock(return_value={
                "movie_id": movie_id,
                "title": "Heat",
                "poster": None,
                "description": "",
                "reason": "Heat has the best net votes.",
            }),
        ):
            response = self.client.post(
                f"/api/movie-history/{uuid4()}/ai-recommendation",
                headers=ADMIN_HEADERS,
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["recommendation"]["movie_id"], str(movie_id))


class TestUnhandledErrors(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app, raise_server_exceptions=False)
        app.dependency_overrides[get_db] = lambda: iter([object()])
        app.dependency_overrides[get_current_user] = lambda: _fake_user()

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_unexpected_error_uses_error_envelope(self) -> None:
        with patch("movienight.api.meetings.list_meetings", side_effect=RuntimeError("boom")):
            response = self.client.get("/api/movie-history")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "boom"})


if __name__ == "__main__":
    unittest.main()
