import os
import sys
import datetime
import unittest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
os.environ.setdefault("BCRYPT_ROUNDS", "4")
from rest_api import TrackerAPI


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_tracker.db"
        self.yaml_path = "test_settings.yaml"
        self._cleanup()
        self.api = TrackerAPI(
            db_path=self.db_path, yaml_path=self.yaml_path, jwt_secret="test-secret"
        )
        self.client = TestClient(self.api.app)
        self.token = self._register("Alice", "alice@example.com")

    def tearDown(self) -> None:
        self._cleanup()

    def _cleanup(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def _register(self, name: str, email: str, password: str = "secret1") -> str:
        response = self.client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["token"]

    def _headers(self, token: str | None = None) -> dict:
        return {"Authorization": f"Bearer {token or self.token}"}

    def _make_admin(self) -> str:
        token = self._register("Root", "root@example.com")
        uid = self.api.users.fetch_by_email("root@example.com")["id"]
        self.api.users.set_role(uid, "admin")
        return token

    def test_root_and_health(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Sport Tracker Pro")
        self.assertIn("/api/stats", response.json()["endpoints"])
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_auth_flow(self) -> None:
        response = self.client.get("/api/auth/me", headers=self._headers())
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "id": 1,
                "name": "Alice",
                "email": "alice@example.com",
                "weight": 70.0,
                "role": "user",
            },
        )
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)
        response = self.client.get(
            "/api/auth/me", headers={"Authorization": "Bearer nope"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "invalid token")

        response = self.client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "secret1"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["email"], "alice@example.com")
        response = self.client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "wrong"},
        )
        self.assertEqual(response.status_code, 401)

        response = self.client.post(
            "/api/auth/register",
            json={"name": "A", "email": "alice@example.com", "password": "secret1"},
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/auth/register",
            json={"name": "B", "email": "b@example.com", "password": "123"},
        )
        self.assertEqual(response.status_code, 400)

    def test_cardio_crud(self) -> None:
        response = self.client.post(
            "/api/cardio",
            json={
                "date": "2024-01-01",
                "exercise_name": "Course",
                "minutes": 30,
                "intensity": "Moyenne",
            },
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 200)
        activity = response.json()
        self.assertEqual(activity["calories"], 245)
        self.assertEqual(activity["exercise_name"], "Course")

        response = self.client.post(
            "/api/cardio",
            json={"date": "2024-01-03", "exercise_name": "Padel", "minutes": 60},
            headers=self._headers(),
        )
        self.assertEqual(response.json()["calories"], 490)
        self.assertEqual(response.json()["intensity"], "Moyenne")

        listed = self.client.get("/api/cardio", headers=self._headers()).json()
        self.assertEqual([a["date"] for a in listed], ["2024-01-03", "2024-01-01"])
        listed = self.client.get(
            "/api/cardio",
            params={"start_date": "2024-01-02", "end_date": "2024-01-31"},
            headers=self._headers(),
        ).json()
        self.assertEqual(len(listed), 1)

        response = self.client.put(
            f"/api/cardio/{activity['id']}",
            json={
                "date": "2024-01-02",
                "exercise_name": "Course",
                "minutes": 60,
                "intensity": "Haute",
            },
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["calories"], 700)

        other = self._register("Bob", "bob@example.com")
        response = self.client.get(
            f"/api/cardio/{activity['id']}", headers=self._headers(other)
        )
        self.assertEqual(response.status_code, 404)

        response = self.client.post(
            "/api/cardio",
            json={"date": "2024-01-01", "exercise_name": "Course", "minutes": 0},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/cardio",
            json={"date": "01/02/2024", "exercise_name": "Course", "minutes": 10},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.delete(
            f"/api/cardio/{activity['id']}", headers=self._headers()
        )
        self.assertEqual(response.json(), {"status": "deleted"})
        response = self.client.delete(
            f"/api/cardio/{activity['id']}", headers=self._headers()
        )
        self.assertEqual(response.status_code, 404)

    def test_muscu_crud(self) -> None:
        response = self.client.post(
            "/api/muscu",
            json={
                "date": "2024-01-01",
                "exercise_name": "Squat",
                "sets": 3,
                "reps": 10,
                "weight": 60,
            },
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 200)
        activity = response.json()
        self.assertEqual(activity["calories"], 15)
        self.assertEqual(activity["weight"], 60.0)

        response = self.client.put(
            f"/api/muscu/{activity['id']}",
            json={
                "date": "2024-01-01",
                "exercise_name": "Squat",
                "sets": 5,
                "reps": 5,
                "weight": 80,
            },
            headers=self._headers(),
        )
        self.assertEqual(response.json()["calories"], 25)
        self.assertEqual(
            self.client.get(
                f"/api/muscu/{activity['id']}", headers=self._headers()
            ).json()["sets"],
            5,
        )
        response = self.client.post(
            "/api/muscu",
            json={"date": "2024-01-01", "exercise_name": "Squat", "sets": 0, "reps": 1},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.delete(
            f"/api/muscu/{activity['id']}", headers=self._headers()
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/muscu", headers=self._headers()).json(), [])

    def test_weight_entries_sync_profile(self) -> None:
        response = self.client.post(
            "/api/weight",
            json={"date": "2024-01-01", "weight": 80.0, "body_fat": 20.0},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 200)
        first = response.json()["id"]
        response = self.client.post(
            "/api/weight",
            json={"date": "2024-01-08", "weight": 79.0, "body_fat": 19.5},
            headers=self._headers(),
        )
        second = response.json()["id"]
        me = self.client.get("/api/auth/me", headers=self._headers()).json()
        self.assertEqual(me["weight"], 79.0)

        comparison = self.client.get(
            "/api/weight/compare", headers=self._headers()
        ).json()
        self.assertEqual(comparison["weight_delta"], -1.0)
        self.assertEqual(comparison["body_fat_delta"], -0.5)
        self.assertIsNone(comparison["muscle_mass_delta"])
        self.assertEqual(comparison["latest"]["date"], "2024-01-08")

        response = self.client.put(
            f"/api/weight/{first}",
            json={"date": "2024-01-10", "weight": 78.0},
            headers=self._headers(),
        )
        self.assertEqual(response.json(), {"status": "updated"})
        me = self.client.get("/api/auth/me", headers=self._headers()).json()
        self.assertEqual(me["weight"], 78.0)

        self.client.delete(f"/api/weight/{first}", headers=self._headers())
        me = self.client.get("/api/auth/me", headers=self._headers()).json()
        self.assertEqual(me["weight"], 79.0)
        self.assertEqual(
            len(self.client.get("/api/weight", headers=self._headers()).json()), 1
        )
        response = self.client.post(
            "/api/weight",
            json={"date": "2024-01-08", "weight": -1},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.delete(
            f"/api/weight/{second + 10}", headers=self._headers()
        )
        self.assertEqual(response.status_code, 404)

    def test_exercises(self) -> None:
        listed = self.client.get(
            "/api/exercises", params={"type": "cardio"}, headers=self._headers()
        ).json()
        self.assertEqual(len(listed), 10)
        response = self.client.post(
            "/api/exercises",
            json={"name": "Padel", "type": "cardio"},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 200)
        own = response.json()
        self.assertFalse(own["is_default"])
        response = self.client.post(
            "/api/exercises",
            json={"name": "Padel", "type": "cardio"},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/exercises",
            json={"name": "Yoga", "type": "stretch"},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)

        other = self._register("Bob", "bob@example.com")
        response = self.client.put(
            f"/api/exercises/{own['id']}",
            json={"name": "Hacked"},
            headers=self._headers(other),
        )
        self.assertEqual(response.status_code, 403)
        default_id = listed[0]["id"]
        response = self.client.delete(
            f"/api/exercises/{default_id}", headers=self._headers()
        )
        self.assertEqual(response.status_code, 403)

        response = self.client.put(
            f"/api/exercises/{own['id']}",
            json={"name": "Padel tennis"},
            headers=self._headers(),
        )
        self.assertEqual(response.json()["name"], "Padel tennis")

        self.client.post(
            "/api/cardio",
            json={"date": "2024-01-01", "exercise_name": "Padel tennis", "minutes": 30},
            headers=self._headers(),
        )
        response = self.client.delete(
            f"/api/exercises/{own['id']}", headers=self._headers()
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "exercise in use")

        admin = self._make_admin()
        response = self.client.put(
            f"/api/exercises/{default_id}",
            json={"name": "Course à pied"},
            headers=self._headers(admin),
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.delete("/api/exercises/9999", headers=self._headers())
        self.assertEqual(response.status_code, 404)

    def test_calories_example(self) -> None:
        response = self.client.put(
            "/api/profile",
            json={"name": "Alice", "email": "alice@example.com", "weight": 80},
            headers=self._headers(),
        )
        self.assertEqual(response.json()["weight"], 80.0)
        self.client.post(
            "/api/cardio",
            json={
                "date": "2024-01-01",
                "exercise_name": "Course",
                "minutes": 30,
                "intensity": "Haute",
            },
            headers=self._headers(),
        )
        self.client.post(
            "/api/muscu",
            json={"date": "2024-01-01", "exercise_name": "Squat", "sets": 4, "reps": 8},
            headers=self._headers(),
        )
        response = self.client.get(
            "/api/stats/calories",
            params={"start_date": "2024-01-01", "end_date": "2024-01-01"},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["series"], [{"date": "2024-01-01", "value": 420}])
        self.assertEqual(body["summary"]["total"], 420)

        response = self.client.get(
            "/api/stats/calories",
            params={"start_date": "2024-01-01", "end_date": "2024-01-03"},
            headers=self._headers(),
        )
        self.assertEqual(
            [p["value"] for p in response.json()["series"]], [420, 0, 0]
        )

    def test_series_and_summary(self) -> None:
        for day, minutes in (("2024-01-01", 10), ("2024-01-01", 15), ("2024-01-03", 20)):
            self.client.post(
                "/api/cardio",
                json={"date": day, "exercise_name": "Course", "minutes": minutes},
                headers=self._headers(),
            )
        params = {
            "metric": "cardio.minutes",
            "start_date": "2024-01-01",
            "end_date": "2024-01-31",
        }
        series = self.client.get(
            "/api/stats/series", params=params, headers=self._headers()
        ).json()
        self.assertEqual(len(series), 31)
        self.assertEqual(series[0], {"date": "2024-01-01", "value": 25.0})
        self.assertEqual(series[1]["value"], 0)

        summary = self.client.get(
            "/api/stats/summary", params=params, headers=self._headers()
        ).json()
        self.assertEqual(summary["total"], 45.0)
        self.assertEqual(summary["max"], 25.0)
        self.assertEqual(summary["min"], 0)

        empty = self.client.get(
            "/api/stats/summary",
            params={
                "metric": "weight",
                "start_date": "2024-01-01",
                "end_date": "2024-01-31",
            },
            headers=self._headers(),
        ).json()
        self.assertEqual(empty, {"no_data": True})

        degenerate = self.client.get(
            "/api/stats/series",
            params={
                "metric": "cardio.minutes",
                "start_date": "2024-01-05",
                "end_date": "2024-01-01",
            },
            headers=self._headers(),
        ).json()
        self.assertEqual(degenerate, [])

        response = self.client.get(
            "/api/stats/series",
            params={"metric": "cardio.speed"},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "unknown metric: cardio.speed")

        for path, params in (
            ("/api/stats/series", {"metric": "cardio.minutes", "end_date": "garbage"}),
            ("/api/stats/summary", {"metric": "cardio.minutes", "end_date": "garbage"}),
            ("/api/stats/calories", {"end_date": "2024-13-01"}),
            ("/api/stats/progression", {"exercise": "Squat", "end_date": "2024-02-30"}),
        ):
            response = self.client.get(path, params=params, headers=self._headers())
            self.assertEqual(response.status_code, 400)
            self.assertTrue(response.json()["detail"].startswith("invalid date"))

        ended = self.client.get(
            "/api/stats/series",
            params={"metric": "cardio.minutes", "end_date": "2024-01-03"},
            headers=self._headers(),
        ).json()
        self.assertEqual(len(ended), 30)
        self.assertEqual(ended[-1], {"date": "2024-01-03", "value": 20.0})

        default_range = self.client.get(
            "/api/stats/series",
            params={"metric": "muscu.volume"},
            headers=self._headers(),
        ).json()
        self.assertEqual(len(default_range), 30)
        self.assertEqual(default_range[-1]["date"], datetime.date.today().isoformat())

    def test_progression(self) -> None:
        for day, reps in (("2024-01-01", 10), ("2024-01-08", 12)):
            self.client.post(
                "/api/muscu",
                json={
                    "date": day,
                    "exercise_name": "Squat",
                    "sets": 3,
                    "reps": reps,
                    "weight": 60,
                },
                headers=self._headers(),
            )
        self.client.post(
            "/api/muscu",
            json={
                "date": "2024-01-08",
                "exercise_name": "Squat",
                "sets": 2,
                "reps": 5,
                "weight": 80,
            },
            headers=self._headers(),
        )
        response = self.client.get(
            "/api/stats/progression",
            params={
                "exercise": "Squat",
                "start_date": "2024-01-01",
                "end_date": "2024-01-31",
            },
            headers=self._headers(),
        )
        self.assertEqual(
            response.json(),
            [
                {
                    "load": 80.0,
                    "latest_date": "2024-01-08",
                    "latest_total_reps": 10,
                    "delta_vs_previous": 0,
                    "delta_vs_first_in_period": 0,
                    "session_count": 1,
                },
                {
                    "load": 60.0,
                    "latest_date": "2024-01-08",
                    "latest_total_reps": 36,
                    "delta_vs_previous": 6,
                    "delta_vs_first_in_period": 6,
                    "session_count": 2,
                },
            ],
        )
        response = self.client.get(
            "/api/stats/progression",
            params={
                "exercise": "Tractions",
                "start_date": "2024-01-01",
                "end_date": "2024-01-31",
            },
            headers=self._headers(),
        )
        self.assertEqual(response.json(), [])

        totals = self.client.get(
            "/api/stats/muscu-totals",
            params={"date": "2024-01-08"},
            headers=self._headers(),
        ).json()
        self.assertEqual(totals, {"sets": 5, "volume": 2960.0, "calories": 25})

    def test_dashboard_and_overview(self) -> None:
        self.client.post(
            "/api/cardio",
            json={"date": "2024-01-01", "exercise_name": "Course", "minutes": 30},
            headers=self._headers(),
        )
        self.client.post(
            "/api/muscu",
            json={
                "date": "2024-01-01",
                "exercise_name": "Squat",
                "sets": 3,
                "reps": 10,
                "weight": 50,
            },
            headers=self._headers(),
        )
        self.client.post(
            "/api/weight",
            json={"date": "2023-12-31", "weight": 70.0},
            headers=self._headers(),
        )
        dashboard = self.client.get(
            "/api/stats/dashboard",
            params={"date": "2024-01-01"},
            headers=self._headers(),
        ).json()
        self.assertEqual(dashboard["date"], "2024-01-01")
        self.assertEqual(len(dashboard["cardio"]), 1)
        self.assertEqual(len(dashboard["muscu"]), 1)
        self.assertEqual(dashboard["weight"]["date"], "2023-12-31")
        self.assertEqual(
            dashboard["totals"],
            {
                "cardio_minutes": 30.0,
                "cardio_calories": 245,
                "muscu_sets": 3,
                "muscu_volume": 1500.0,
                "muscu_calories": 15,
            },
        )

        overview = self.client.get(
            "/api/stats/overview",
            params={"days": 7, "end_date": "2024-01-01"},
            headers=self._headers(),
        ).json()
        self.assertEqual(
            overview["range"], {"start": "2023-12-26", "end": "2024-01-01"}
        )
        self.assertEqual(overview["calories"]["total"], 260)
        self.assertEqual(overview["cardio_minutes"]["total"], 30.0)
        self.assertEqual(overview["muscu_sets"]["total"], 3)
        response = self.client.get(
            "/api/stats/overview", params={"days": 0}, headers=self._headers()
        )
        self.assertEqual(response.status_code, 400)

    def test_profile(self) -> None:
        profile = self.client.get("/api/profile", headers=self._headers()).json()
        self.assertEqual(profile["email"], "alice@example.com")
        self.assertIn("created_at", profile)

        self._register("Bob", "bob@example.com")
        response = self.client.put(
            "/api/profile",
            json={"name": "Alice", "email": "bob@example.com", "weight": 60},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/profile/change-password",
            json={"current_password": "wrong", "new_password": "secret2"},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 401)
        response = self.client.post(
            "/api/profile/change-password",
            json={"current_password": "secret1", "new_password": "abc"},
            headers=self._headers(),
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/profile/change-password",
            json={"current_password": "secret1", "new_password": "secret2"},
            headers=self._headers(),
        )
        self.assertEqual(response.json(), {"status": "updated"})

        response = self.client.request(
            "DELETE", "/api/profile", json={"password": "secret1"}, headers=self._headers()
        )
        self.assertEqual(response.status_code, 401)
        response = self.client.request(
            "DELETE", "/api/profile", json={"password": "secret2"}, headers=self._headers()
        )
        self.assertEqual(response.json(), {"status": "deleted"})
        self.assertEqual(
            self.client.get("/api/profile", headers=self._headers()).status_code, 401
        )

    def test_admin_routes(self) -> None:
        response = self.client.get("/api/admin/users", headers=self._headers())
        self.assertEqual(response.status_code, 403)

        admin = self._make_admin()
        self.client.post(
            "/api/cardio",
            json={"date": "2024-01-01", "exercise_name": "Course", "minutes": 30},
            headers=self._headers(),
        )
        users = self.client.get("/api/admin/users", headers=self._headers(admin)).json()
        self.assertEqual([u["email"] for u in users], ["root@example.com", "alice@example.com"])
        self.assertEqual(users[1]["counts"]["cardio"], 1)
        stats = self.client.get("/api/admin/stats", headers=self._headers(admin)).json()
        self.assertEqual(
            stats,
            {"total_users": 2, "total_cardio": 1, "total_muscu": 0, "total_weight": 0},
        )

        response = self.client.post(
            "/api/admin/reset-password",
            json={"user_id": 1, "new_password": "newpass"},
            headers=self._headers(admin),
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "newpass"},
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.post(
            "/api/admin/change-role",
            json={"user_id": 1, "role": "superuser"},
            headers=self._headers(admin),
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/admin/change-role",
            json={"user_id": 1, "role": "admin"},
            headers=self._headers(admin),
        )
        self.assertEqual(response.json()["role"], "admin")

        admin_id = self.api.users.fetch_by_email("root@example.com")["id"]
        response = self.client.delete(
            f"/api/admin/users/{admin_id}", headers=self._headers(admin)
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.delete("/api/admin/users/1", headers=self._headers(admin))
        self.assertEqual(response.json(), {"status": "deleted"})
        response = self.client.delete("/api/admin/users/1", headers=self._headers(admin))
        self.assertEqual(response.status_code, 404)

        logs = self.client.get("/api/admin/email-logs", headers=self._headers(admin)).json()
        self.assertEqual(
            [log["address"] for log in logs], ["alice@example.com", "root@example.com"]
        )

    def test_calorie_settings(self) -> None:
        admin = self._make_admin()
        response = self.client.get(
            "/api/admin/calorie-settings", headers=self._headers(admin)
        )
        self.assertEqual(
            response.json(),
            {
                "cardio": {"low": 4.0, "medium": 7.0, "high": 10.0},
                "muscu": {"perSet": 5.0},
            },
        )
        response = self.client.put(
            "/api/admin/calorie-settings",
            json={"cardio": {"low": 3, "medium": 6, "high": 9}, "muscu": {"perSet": 4}},
            headers=self._headers(admin),
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.put(
            "/api/admin/calorie-settings",
            json={"cardio": {"high": -1}},
            headers=self._headers(admin),
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/cardio",
            json={"date": "2024-01-01", "exercise_name": "Course", "minutes": 60},
            headers=self._headers(),
        )
        self.assertEqual(response.json()["calories"], 420)
        response = self.client.post(
            "/api/muscu",
            json={"date": "2024-01-01", "exercise_name": "Squat", "sets": 3, "reps": 8},
            headers=self._headers(),
        )
        self.assertEqual(response.json()["calories"], 12)

    def test_rate_limit(self) -> None:
        api = TrackerAPI(
            db_path=self.db_path,
            yaml_path=self.yaml_path,
            rate_limit=2,
            rate_window=60,
            jwt_secret="test-secret",
        )
        client = TestClient(api.app)
        self.assertEqual(client.get("/health").status_code, 200)
        self.assertEqual(client.get("/health").status_code, 200)
        self.assertEqual(client.get("/health").status_code, 429)


if __name__ == "__main__":
    unittest.main()
