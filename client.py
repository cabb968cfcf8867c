import requests
from typing import Optional


class TrackerClient:
    """Simple REST client for the tracking API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.token: Optional[str] = None

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, **kwargs):
        resp = self.session.request(
            method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
        )
        resp.raise_for_status()
        return resp.json()

    def register(self, name: str, email: str, password: str) -> dict:
        data = self._request(
            "POST",
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        self.token = data["token"]
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        self.token = data["token"]
        return data["user"]

    def add_cardio(
        self, date: str, exercise_name: str, minutes: float, intensity: str = "Moyenne"
    ) -> dict:
        return self._request(
            "POST",
            "/api/cardio",
            json={
                "date": date,
                "exercise_name": exercise_name,
                "minutes": minutes,
                "intensity": intensity,
            },
        )

    def list_cardio(self, **params: str) -> list:
        return self._request("GET", "/api/cardio", params=params)

    def add_muscu(
        self, date: str, exercise_name: str, sets: int, reps: int, weight: float = 0.0
    ) -> dict:
        return self._request(
            "POST",
            "/api/muscu",
            json={
                "date": date,
                "exercise_name": exercise_name,
                "sets": sets,
                "reps": reps,
                "weight": weight,
            },
        )

    def list_muscu(self, **params: str) -> list:
        return self._request("GET", "/api/muscu", params=params)

    def add_weight(
        self,
        date: str,
        weight: float,
        muscle_mass: Optional[float] = None,
        body_fat: Optional[float] = None,
    ) -> int:
        data = self._request(
            "POST",
            "/api/weight",
            json={
                "date": date,
                "weight": weight,
                "muscle_mass": muscle_mass,
                "body_fat": body_fat,
            },
        )
        return data["id"]

    def series(self, metric: str, start_date: str, end_date: str, **params: str) -> list:
        return self._request(
            "GET",
            "/api/stats/series",
            params={"metric": metric, "start_date": start_date, "end_date": end_date, **params},
        )

    def calories(self, start_date: str, end_date: str) -> dict:
        return self._request(
            "GET",
            "/api/stats/calories",
            params={"start_date": start_date, "end_date": end_date},
        )

    def progression(self, exercise: str, start_date: str, end_date: str) -> list:
        return self._request(
            "GET",
            "/api/stats/progression",
            params={"exercise": exercise, "start_date": start_date, "end_date": end_date},
        )

    def dashboard(self, date: str) -> dict:
        return self._request("GET", "/api/stats/dashboard", params={"date": date})
