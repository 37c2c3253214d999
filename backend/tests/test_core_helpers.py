import unittest
from datetime import date, timedelta
from unittest.mock import patch
from uuid import uuid4

from movienight.core.config import Settings, settings, split_origins
from movienight.core.security import (
    create_access_token,
    decode_access_token,
    hash_pattern,
    validate_pattern,
    verify_pattern,
)
from movienight.services.llm_client import LLMResponseError, parse_json_reply
from movienight.services.tmdb_client import (
    TMDB_POSTER_PLACEHOLDER,
    format_movie_for_db,
    format_search_result,
    poster_url,
    trailer_url,
)


class TestPatternSecurity(unittest.TestCase):
    def test_validate_pattern(self) -> None:
        self.assertTrue(validate_pattern("1-5-9-3"))
        self.assertTrue(validate_pattern("1-2-3-4-5-6-7-8-9"))
        for bad in ("1-2-3", "1-2-3-3", "0-1-2-3", "1-2-3-10", "a-b-c-d", "", "1--2-3"):
            with self.subTest(pattern=bad):
                self.assertFalse(validate_pattern(bad))

    def test_hash_and_verify(self) -> None:
        hashed = hash_pattern("1-5-9-3")
        self.assertNotEqual(hashed, "1-5-9-3")
        self.assertTrue(verify_pattern("1-5-9-3", hashed))
        self.assertFalse(verify_pattern("3-9-5-1", hashed))
        self.assertFalse(verify_pattern("1-5-9-3", None))

    def test_access_token_round_trip(self) -> None:
        user_id = uuid4()
        token = create_access_token(user_id)
        self.assertEqual(decode_access_token(token), str(user_id))

    def test_expired_or_tampered_token(self) -> None:
        expired = create_access_token(uuid4(), expires_delta=timedelta(seconds=-1))
        self.assertIsNone(decode_access_token(expired))
        self.assertIsNone(decode_access_token("not-a-jwt"))


class TestCorsSettings(unittest.TestCase):
    def test_split_origins_formats(self) -> None:
        self.assertEqual(split_origins('["https://a.com", "https://b.com/"]'), ["https://a.com", "https://b.com"])
        self.assertEqual(split_origins("https://a.com, https://b.com"), ["https://a.com", "https://b.com"])
        self.assertEqual(split_origins("https://a.com"), ["https://a.com"])
        self.assertEqual(split_origins(""), [])

    def test_frontend_url_is_merged(self) -> None:
        with patch.object(settings, "CORS_ORIGINS", ["http://localhost:5173"]), \
                patch.object(settings, "FRONTEND_URL", "https://movienight.example/"):
            self.assertEqual(
                settings.cors_origins,
                ["http://localhost:5173", "https://movienight.example"],
            )


class TestDatabaseUrl(unittest.TestCase):
    def test_bare_postgres_schemes_use_psycopg2(self) -> None:
        for url in ("postgres://u:p@db:5432/mn", "postgresql://u:p@db:5432/mn"):
            with self.subTest(url=url):
                self.assertEqual(
                    Settings(DATABASE_URL=url).DATABASE_URL,
                    "postgresql+psycopg2://u:p@db:5432/mn",
                )

    def test_explicit_driver_and_sqlite_are_kept(self) -> None:
        for url in ("postgresql+psycopg2://u:p@db/mn", "sqlite://"):
            with self.subTest(url=url):
                self.assertEqual(Settings(DATABASE_URL=url).DATABASE_URL, url)

    def test_default_names_the_driver(self) -> None:
        self.assertTrue(Settings.model_fields["DATABASE_URL"].default.startswith("postgresql+psycopg2://"))


class TestTMDBFormatting(unittest.TestCase):
    details = {
        "id": 603,
        "title": "The Matrix",
        "poster_path": "/matrix.jpg",
        "overview": "A hacker learns the truth.",
        "genres": [{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
        "release_date": "1999-03-30",
        "runtime": 136,
        "videos": {
            "results": [
                {"site": "Vimeo", "type": "Trailer", "key": "vim"},
                {"site": "YouTube", "type": "Featurette", "key": "feat"},
                {"site": "YouTube", "type": "Trailer", "key": "m8e-FF8MsqU"},
            ]
        },
    }

    def test_format_movie_for_db(self) -> None:
        values = format_movie_for_db(self.details)

        self.assertEqual(values["tmdb_id"], 603)
        self.assertEqual(values["poster"], "https://image.tmdb.org/t/p/w500/matrix.jpg")
        self.assertEqual(values["trailer"], "https://www.youtube.com/watch?v=m8e-FF8MsqU")
        self.assertEqual(values["genres"], ["Action", "Science Fiction"])
        self.assertEqual(values["release_date"], date(1999, 3, 30))
        self.assertEqual(values["runtime"], 136)

    def test_missing_optional_fields(self) -> None:
        values = format_movie_for_db({"id": "7", "release_date": "", "runtime": 0})

        self.assertEqual(values["tmdb_id"], 7)
        self.assertEqual(values["poster"], TMDB_POSTER_PLACEHOLDER)
        self.assertIsNone(values["trailer"])
        self.assertIsNone(values["release_date"])
        self.assertIsNone(values["runtime"])
        self.assertEqual(values["description"], "")

    def test_poster_and_trailer_helpers(self) -> None:
        self.assertEqual(poster_url(None), TMDB_POSTER_PLACEHOLDER)
        self.assertIsNone(trailer_url({"videos": {"results": []}}))

    def test_null_genres_format_as_empty_list(self) -> None:
        values = format_movie_for_db({"id": 9, "title": "Odd", "genres": None})
        self.assertEqual(values["genres"], [])

    def test_search_result_keeps_missing_poster_as_none(self) -> None:
        row = format_search_result({"id": 1, "title": "Heat", "poster_path": None})
        self.assertIsNone(row["poster"])
        self.assertEqual(row["genre_ids"], [])


class TestLLMReplyParsing(unittest.TestCase):
    def test_parses_object(self) -> None:
        self.assertEqual(parse_json_reply('{"movies": []}'), {"movies": []})

    def test_rejects_invalid_json_and_non_objects(self) -> None:
        for content in ("not json", "[1, 2]"):
            with self.subTest(content=content):
                with self.assertRaises(LLMResponseError):
                    parse_json_reply(content)


if __name__ == "__main__":
    unittest.main()
