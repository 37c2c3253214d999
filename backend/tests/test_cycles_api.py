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
from movienight.services.cycle_service import CycleNotFoundError, NoVotesInCycleError
from movienight.services.movie_service import EmptySearchQueryError
from movienight.services.tmdb_client import TMDBConfigError, TMDBUpstreamError
from movienight.services.vote_service import CycleNotActiveError, VotingClosedError

ADMIN_HEADERS = {"x-admin-password": "popcorn"}


def _fake_movie(**overrides):
    base = {
        "id": uuid4(),
        "tmdb_id": 603,
        "title": "The Matrix",
        "poster": "https://image.tmdb.org/t/p/w500/matrix.jpg",
        "trailer": None,
        "description": "",
        "genres": ["Action"],
        "release_date": None,
        "runtime": 136,
        "added_by": None,
        "added_at": datetime.now(timezone.utc),
    }
    base.update(overrides)
    return SimpleNamespace(**base)


class TestCyclesApi(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        self.user = SimpleNamespace(id=uuid4(), username="marta", is_admin=False)
        app.dependency_overrides[get_db] = lambda: iter([object()])
        app.dependency_overrides[get_current_user] = lambda: self.user
        self.admin_patch = patch.object(settings, "ADMIN_PASSWORD", "popcorn")
        self.admin_patch.start()

    def tearDown(self) -> None:
        self.admin_patch.stop()
        app.dependency_overrides.clear()

    def test_active_cycle_is_null_when_none(self) -> None:
        with patch("movienight.api.cycles.get_active_cycle", return_value=None):
            response = self.client.get("/api/cycles/active")

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json())

    def test_active_cycle_includes_like_counts(self) -> None:
        now = datetime.now(timezone.utc)
        movie_id = uuid4()
        cycle = {
            "id": uuid4(),
            "is_active": True,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=6),
            "meeting_time": None,
            "location": None,
            "created_by": None,
            "created_at": now,
            "movies": [{"id": movie_id, "title": "Heat", "poster": None, "like_count": 3}],
        }
        with patch("movienight.api.cycles.get_active_cycle", return_value=cycle):
            response = self.client.get("/api/cycles/active")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["movies"][0]["like_count"], 3)

    def test_create_cycle_requires_movies(self) -> None:
        response = self.client.post(
            "/api/cycles",
            json={
                "start_date": "2030-01-01T00:00:00Z",
                "end_date": "2030-01-07T00:00:00Z",
                "movie_ids": [],
            },
            headers=ADMIN_HEADERS,
        )
        self.assertEqual(response.status_code, 400)

    def test_close_cycle(self) -> None:
        winner = uuid4()
        result = {
            "winner": winner,
            "vote_counts": [{"movie_id": winner, "count": 2}],
            "message": "Cycle closed successfully",
        }
        with patch("movienight.api.cycles.close_cycle", return_value=result):
            response = self.client.post(f"/api/cycles/{uuid4()}/close", headers=ADMIN_HEADERS)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["winner"], str(winner))

    def test_close_cycle_errors(self) -> None:
        cases = [
            (CycleNotFoundError("Cycle not found"), 404),
            (NoVotesInCycleError("No votes found for this cycle"), 400),
        ]
        for error, expected in cases:
            with self.subTest(error=type(error).__name__):
                with patch("movienight.api.cycles.close_cycle", side_effect=error):
                    response = self.client.post(
                        f"/api/cycles/{uuid4()}/close", headers=ADMIN_HEADERS
                    )
                self.assertEqual(response.status_code, expected)


class TestVotesApi(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        self.user = SimpleNamespace(id=uuid4(), username="marta")
        app.dependency_overrides[get_db] = lambda: iter([object()])
        app.dependency_overrides[get_current_user] = lambda: self.user

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _body(self, **overrides) -> dict:
        body = {"movie_id": str(uuid4()), "cycle_id": str(uuid4()), "vote_type": "like"}
        body.update(overrides)
        return body

    def test_submit_vote(self) -> None:
        body = self._body(review="Keanu!")
        vote = SimpleNamespace(
            id=uuid4(),
            user_id=self.user.id,
            movie_id=body["movie_id"],
            cycle_id=body["cycle_id"],
            vote_type="like",
            review="Keanu!",
            created_at=datetime.now(timezone.utc),
        )
        with patch("movienight.api.votes.submit_vote", return_value=vote):
            response = self.client.post("/api/votes", json=body)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["vote_type"], "like")

    def test_submit_vote_errors(self) -> None:
        cases = [
            (CycleNotFoundError("Cycle not found"), 404),
            (CycleNotActiveError("Cycle is not active"), 400),
            (VotingClosedError("Voting period has not started or has ended"), 400),
        ]
        for error, expected in cases:
            with self.subTest(error=type(error).__name__):
                with patch("movienight.api.votes.submit_vote", side_effect=error):
                    response = self.client.post("/api/votes", json=self._body())
                self.assertEqual(response.status_code, expected)
                self.assertEqual(response.json(), {"error": str(error)})

    def test_invalid_vote_type_is_400(self) -> None:
        response = self.client.post("/api/votes", json=self._body(vote_type="meh"))
        self.assertEqual(response.status_code, 400)


class TestMoviesApi(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        app.dependency_overrides[get_db] = lambda: iter([object()])
        app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=uuid4())

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_search_returns_envelope(self) -> None:
        results = {
            "results": [{"id": 603, "title": "The Matrix", "poster": None, "genre_ids": [28]}],
            "total_results": 1,
            "total_pages": 1,
            "page": 1,
        }
        with patch("movienight.api.movies.search_tmdb", new=AsyncMock(return_value=results)):
            response = self.client.get("/api/movies/search", params={"q": "matrix"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["results"][0]["id"], 603)

    def test_search_empty_query_is_400(self) -> None:
        with patch(
            "movienight.api.movies.search_tmdb",
            new=AsyncMock(side_effect=EmptySearchQueryError("Search query required")),
        ):
            response = self.client.get("/api/movies/search", params={"q": ""})

        self.assertEqual(response.status_code, 400)

    def test_missing_tmdb_key_is_500(self) -> None:
        with patch(
            "movienight.api.movies.search_tmdb",
            new=AsyncMock(side_effect=TMDBConfigError("TMDB_API_KEY is not set.")),
        ):
            response = self.client.get("/api/movies/search", params={"q": "matrix"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "TMDB_API_KEY is not set."})

    def test_tmdb_upstream_error_is_500(self) -> None:
        with patch(
            "movienight.api.movies.get_tmdb_details",
            new=AsyncMock(side_effect=TMDBUpstreamError("TMDB movie 1 not found")),
        ):
            response = self.client.get("/api/movies/tmdb/1")

        self.assertEqual(response.status_code, 500)

    def test_add_movie_created_vs_existing(self) -> None:
        movie = _fake_movie()
        for created, expected in ((True, 201), (False, 200)):
            with self.subTest(created=created):
                with patch(
                    "movienight.api.movies.get_or_create_movie",
                    new=AsyncMock(return_value=(movie, created)),
                ), patch("movienight.api.movies.get_movie", return_value=movie):
                    response = self.client.post("/api/movies", json={"tmdb_id": 603})
                self.assertEqual(response.status_code, expected)
                self.assertEqual(response.json()["tmdb_id"], 603)


if __name__ == "__main__":
    unittest.main()
