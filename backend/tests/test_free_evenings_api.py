import unittest
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch
from uuid import uuid4

from fastapi.testclient import TestClient

from movienight.db.session import get_db
from movienight.deps.auth import get_current_user
from movienight.main import app
from movienight.services.free_evening_service import (
    DateOutsideWeekError,
    FreeEveningNotFoundError,
    MeetingOnDateError,
)


class TestFreeEveningsApi(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        self.user = SimpleNamespace(id=uuid4(), username="marta")
        app.dependency_overrides[get_db] = lambda: iter([object()])
        app.dependency_overrides[get_current_user] = lambda: self.user

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_upcoming_week_shape(self) -> None:
        week = {
            "week_start": date(2026, 10, 26),
            "week_end": date(2026, 11, 1),
            "dates": [
                {
                    "date": date(2026, 10, 26),
                    "has_meeting": True,
                    "free_users": [],
                },
                {
                    "date": date(2026, 10, 27),
                    "has_meeting": False,
                    "free_users": [
                        SimpleNamespace(
                            id=uuid4(),
                            user=self.user,
                            date=date(2026, 10, 27),
                            created_at=datetime.now(timezone.utc),
                        )
                    ],
                },
            ],
        }
        with patch("movienight.api.free_evenings.get_upcoming_week", return_value=week):
            response = self.client.get("/api/free-evenings/upcoming-week")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["week_start"], "2026-10-26")
        self.assertTrue(payload["dates"][0]["has_meeting"])
        self.assertEqual(payload["dates"][1]["free_users"][0]["user"]["username"], "marta")

    def test_mark_accepts_datetime_and_keeps_calendar_date(self) -> None:
        evening = SimpleNamespace(
            id=uuid4(),
            user=self.user,
            date=date(2026, 10, 28),
            created_at=datetime.now(timezone.utc),
        )
        with patch("movienight.api.free_evenings.mark_free_evening", return_value=evening) as mark:
            response = self.client.post(
                "/api/free-evenings",
                json={"date": "2026-10-28T20:00:00+02:00"},
            )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(mark.call_args.args[2], date(2026, 10, 28))

    def test_mark_on_meeting_date_is_400(self) -> None:
        with patch(
            "movienight.api.free_evenings.mark_free_evening",
            side_effect=MeetingOnDateError("A meeting is already scheduled for this date"),
        ):
            response = self.client.post("/api/free-evenings", json={"date": "2026-10-28"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "A meeting is already scheduled for this date"})

    def test_mark_outside_week_is_400(self) -> None:
        with patch(
            "movienight.api.free_evenings.mark_free_evening",
            side_effect=DateOutsideWeekError("Date must be in the upcoming week"),
        ):
            response = self.client.post("/api/free-evenings", json={"date": "2027-01-01"})

        self.assertEqual(response.status_code, 400)

    def test_unmark_missing_is_404(self) -> None:
        with patch(
            "movienight.api.free_evenings.unmark_free_evening",
            side_effect=FreeEveningNotFoundError("Free evening not found"),
        ):
            response = self.client.request(
                "DELETE", "/api/free-evenings", json={"date": "2026-10-28"}
            )

        self.assertEqual(response.status_code, 404)

    def test_my_free_evenings(self) -> None:
        with patch(
            "movienight.api.free_evenings.get_my_free_evenings",
            return_value=[date(2026, 10, 27), date(2026, 10, 30)],
        ):
            response = self.client.get("/api/free-evenings/my-free-evenings")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"dates": ["2026-10-27", "2026-10-30"]})


if __name__ == "__main__":
    unittest.main()
