import asyncio
import datetime
import logging
import time
from typing import Optional
from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    Body,
    APIRouter,
    Request,
    Header,
    Depends,
    Query,
)
from db import (
    UserRepository,
    ExerciseRepository,
    CardioRepository,
    StrengthRepository,
    WeightEntryRepository,
    SettingsRepository,
    EmailLogRepository,
    AsyncCardioRepository,
    AsyncStrengthRepository,
    AsyncWeightEntryRepository,
)
from algorithms import CalorieCalculator, CalorieConstants, DateRange, parse_day
from auth_service import AuthService, AuthError, PermissionDenied, public_user
from config import APP_VERSION, default_db_path, default_yaml_path
from email_service import EmailService
from logging_config import configure_logging
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


def _http_error(e: ValueError) -> HTTPException:
    status = 404 if "not found" in str(e) else 400
    return HTTPException(status_code=status, detail=str(e))


def _day(value: str) -> str:
    try:
        return parse_day(value).isoformat()
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"invalid date: {value}")


class TrackerAPI:
    """Provides REST endpoints for activity tracking and statistics."""

    def __init__(
        self,
        db_path: str = "tracker.db",
        yaml_path: str = "settings.yaml",
        *,
        rate_limit: int | None = None,
        rate_window: int = 60,
        jwt_secret: str | None = None,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.users = UserRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.cardio = CardioRepository(db_path)
        self.strength = StrengthRepository(db_path)
        self.weights = WeightEntryRepository(db_path)
        self.email_logs = EmailLogRepository(db_path)
        self.async_cardio = AsyncCardioRepository(db_path)
        self.async_strength = AsyncStrengthRepository(db_path)
        self.async_weights = AsyncWeightEntryRepository(db_path)
        self.email = EmailService(self.email_logs)
        self.auth = AuthService(
            self.users, self.settings, self.email, secret=jwt_secret
        )
        self.statistics = StatisticsService(
            self.cardio,
            self.strength,
            self.weights,
            self.users,
            self.settings,
        )
        self.app = FastAPI(
            title="Sport Tracker API",
            description="REST API for cardio, strength and body weight tracking",
            version=APP_VERSION,
        )
        if rate_limit is not None:
            limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(limiter)
        self._setup_routes()

    def _resolve_range(
        self, start_date: Optional[str], end_date: Optional[str]
    ) -> tuple[str, str]:
        """Fill a missing bound from the default statistics period."""
        period = self.settings.get_int("default_stats_period", 30)
        end_date = _day(end_date) if end_date else datetime.date.today().isoformat()
        if not start_date:
            start_date = DateRange.last_n_days(period, end_date).start.isoformat()
        return _day(start_date), end_date

    def _cardio_calories(self, user: dict, intensity: str, minutes: float) -> int:
        return CalorieCalculator.cardio_calories(
            intensity, user["weight"], minutes, self.settings.calorie_constants()
        )

    def _strength_calories(self, sets: int) -> int:
        return CalorieCalculator.strength_calories(
            sets, self.settings.calorie_constants()
        )

    def _sync_user_weight(self, user_id: int) -> None:
        latest = self.weights.fetch_latest(user_id)
        if latest is not None:
            self.users.set_weight(user_id, latest["weight"])

    def _check_exercise_access(self, user: dict, exercise: dict) -> None:
        if user["role"] == "admin":
            return
        if exercise["user_id"] != user["id"]:
            raise HTTPException(
                status_code=403, detail="not allowed to modify this exercise"
            )

    def _setup_routes(self) -> None:
        auth_router = APIRouter(prefix="/api/auth", tags=["Auth"])
        cardio_router = APIRouter(prefix="/api/cardio", tags=["Cardio"])
        muscu_router = APIRouter(prefix="/api/muscu", tags=["Muscu"])
        weight_router = APIRouter(prefix="/api/weight", tags=["Weight"])
        exercises_router = APIRouter(prefix="/api/exercises", tags=["Exercises"])
        stats_router = APIRouter(prefix="/api/stats", tags=["Statistics"])
        profile_router = APIRouter(prefix="/api/profile", tags=["Profile"])
        admin_router = APIRouter(prefix="/api/admin", tags=["Admin"])

        def current_user(authorization: Optional[str] = Header(None)) -> dict:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="authentication required")
            try:
                return self.auth.authenticate(authorization[len("Bearer "):])
            except AuthError as e:
                raise HTTPException(status_code=401, detail=str(e))

        def admin_user(user: dict = Depends(current_user)) -> dict:
            try:
                return AuthService.require_admin(user)
            except PermissionDenied as e:
                raise HTTPException(status_code=403, detail=str(e))

        @self.app.get("/")
        def root():
            return {
                "name": self.settings.get_text("app_name", "Sport Tracker Pro"),
                "version": APP_VERSION,
                "endpoints": [
                    "/api/auth",
                    "/api/cardio",
                    "/api/muscu",
                    "/api/weight",
                    "/api/exercises",
                    "/api/stats",
                    "/api/profile",
                    "/api/admin",
                ],
            }

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.users.count()
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @auth_router.post("/register")
        def register(
            name: str = Body(...),
            email: str = Body(...),
            password: str = Body(...),
            weight: Optional[float] = Body(None),
        ):
            try:
                return self.auth.register(name, email, password, weight)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @auth_router.post("/login")
        def login(email: str = Body(...), password: str = Body(...)):
            try:
                return self.auth.login(email, password)
            except AuthError as e:
                raise HTTPException(status_code=401, detail=str(e))

        @auth_router.get("/me")
        def me(user: dict = Depends(current_user)):
            return public_user(user)

        @cardio_router.get("")
        def list_cardio(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            return self.cardio.fetch_history(
                user["id"],
                _day(start_date) if start_date else None,
                _day(end_date) if end_date else None,
            )

        @cardio_router.post("")
        def add_cardio(
            date: str = Body(...),
            exercise_name: str = Body(...),
            minutes: float = Body(...),
            intensity: str = Body("Moyenne"),
            user: dict = Depends(current_user),
        ):
            try:
                ex_id = self.exercises.find_or_create(exercise_name, "cardio", user["id"])
                aid = self.cardio.add(
                    user["id"],
                    ex_id,
                    _day(date),
                    minutes,
                    intensity,
                    self._cardio_calories(user, intensity, minutes),
                )
                return self.cardio.fetch(user["id"], aid)
            except ValueError as e:
                raise _http_error(e)

        @cardio_router.get("/{activity_id}")
        def get_cardio(activity_id: int, user: dict = Depends(current_user)):
            try:
                return self.cardio.fetch(user["id"], activity_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @cardio_router.put("/{activity_id}")
        def update_cardio(
            activity_id: int,
            date: str = Body(...),
            exercise_name: str = Body(...),
            minutes: float = Body(...),
            intensity: str = Body("Moyenne"),
            user: dict = Depends(current_user),
        ):
            try:
                self.cardio.fetch(user["id"], activity_id)
                ex_id = self.exercises.find_or_create(exercise_name, "cardio", user["id"])
                self.cardio.update(
                    user["id"],
                    activity_id,
                    ex_id,
                    _day(date),
                    minutes,
                    intensity,
                    self._cardio_calories(user, intensity, minutes),
                )
                return self.cardio.fetch(user["id"], activity_id)
            except ValueError as e:
                raise _http_error(e)

        @cardio_router.delete("/{activity_id}")
        def delete_cardio(activity_id: int, user: dict = Depends(current_user)):
            try:
                self.cardio.delete(user["id"], activity_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @muscu_router.get("")
        def list_muscu(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            return self.strength.fetch_history(
                user["id"],
                _day(start_date) if start_date else None,
                _day(end_date) if end_date else None,
            )

        @muscu_router.post("")
        def add_muscu(
            date: str = Body(...),
            exercise_name: str = Body(...),
            sets: int = Body(...),
            reps: int = Body(...),
            weight: float = Body(0.0),
            user: dict = Depends(current_user),
        ):
            try:
                ex_id = self.exercises.find_or_create(exercise_name, "muscu", user["id"])
                aid = self.strength.add(
                    user["id"],
                    ex_id,
                    _day(date),
                    sets,
                    reps,
                    weight,
                    self._strength_calories(sets),
                )
                return self.strength.fetch(user["id"], aid)
            except ValueError as e:
                raise _http_error(e)

        @muscu_router.get("/{activity_id}")
        def get_muscu(activity_id: int, user: dict = Depends(current_user)):
            try:
                return self.strength.fetch(user["id"], activity_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @muscu_router.put("/{activity_id}")
        def update_muscu(
            activity_id: int,
            date: str = Body(...),
            exercise_name: str = Body(...),
            sets: int = Body(...),
            reps: int = Body(...),
            weight: float = Body(0.0),
            user: dict = Depends(current_user),
        ):
            try:
                self.strength.fetch(user["id"], activity_id)
                ex_id = self.exercises.find_or_create(exercise_name, "muscu", user["id"])
                self.strength.update(
                    user["id"],
                    activity_id,
                    ex_id,
                    _day(date),
                    sets,
                    reps,
                    weight,
                    self._strength_calories(sets),
                )
                return self.strength.fetch(user["id"], activity_id)
            except ValueError as e:
                raise _http_error(e)

        @muscu_router.delete("/{activity_id}")
        def delete_muscu(activity_id: int, user: dict = Depends(current_user)):
            try:
                self.strength.delete(user["id"], activity_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @weight_router.get("")
        def list_weight(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            return self.weights.fetch_history(
                user["id"],
                _day(start_date) if start_date else None,
                _day(end_date) if end_date else None,
            )

        @weight_router.get("/compare")
        def compare_weight(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            return self.statistics.weight_comparison(
                user["id"],
                _day(start_date) if start_date else None,
                _day(end_date) if end_date else None,
            )

        @weight_router.post("")
        def add_weight(
            date: str = Body(...),
            weight: float = Body(...),
            muscle_mass: Optional[float] = Body(None),
            body_fat: Optional[float] = Body(None),
            user: dict = Depends(current_user),
        ):
            try:
                eid = self.weights.add(
                    user["id"], _day(date), weight, muscle_mass, body_fat
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._sync_user_weight(user["id"])
            return {"id": eid}

        @weight_router.put("/{entry_id}")
        def update_weight(
            entry_id: int,
            date: str = Body(...),
            weight: float = Body(...),
            muscle_mass: Optional[float] = Body(None),
            body_fat: Optional[float] = Body(None),
            user: dict = Depends(current_user),
        ):
            try:
                self.weights.update(
                    user["id"], entry_id, _day(date), weight, muscle_mass, body_fat
                )
            except ValueError as e:
                raise _http_error(e)
            self._sync_user_weight(user["id"])
            return {"status": "updated"}

        @weight_router.delete("/{entry_id}")
        def delete_weight(entry_id: int, user: dict = Depends(current_user)):
            try:
                self.weights.delete(user["id"], entry_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._sync_user_weight(user["id"])
            return {"status": "deleted"}

        @exercises_router.get("")
        def list_exercises(
            ex_type: Optional[str] = Query(None, alias="type"),
            user: dict = Depends(current_user),
        ):
            return self.exercises.fetch_for_user(user["id"], ex_type)

        @exercises_router.post("")
        def add_exercise(
            name: str = Body(...),
            ex_type: str = Body(..., alias="type"),
            user: dict = Depends(current_user),
        ):
            try:
                eid = self.exercises.add(name, ex_type, user["id"])
                return self.exercises.fetch(eid)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @exercises_router.put("/{exercise_id}")
        def rename_exercise(
            exercise_id: int,
            name: str = Body(..., embed=True),
            user: dict = Depends(current_user),
        ):
            try:
                exercise = self.exercises.fetch(exercise_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._check_exercise_access(user, exercise)
            try:
                self.exercises.rename(exercise_id, name)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self.exercises.fetch(exercise_id)

        @exercises_router.delete("/{exercise_id}")
        def delete_exercise(exercise_id: int, user: dict = Depends(current_user)):
            try:
                exercise = self.exercises.fetch(exercise_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._check_exercise_access(user, exercise)
            try:
                self.exercises.delete(exercise_id)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "deleted"}

        @stats_router.get("/dashboard")
        async def dashboard(
            date: Optional[str] = None, user: dict = Depends(current_user)
        ):
            day = _day(date) if date else datetime.date.today().isoformat()
            cardio, strength, weight = await asyncio.gather(
                self.async_cardio.fetch_for_date(user["id"], day),
                self.async_strength.fetch_for_date(user["id"], day),
                self.async_weights.fetch_latest(user["id"], day),
            )
            return StatisticsService.dashboard(day, cardio, strength, weight)

        @stats_router.get("/series")
        def series(
            metric: str,
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            exercise: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            start, end = self._resolve_range(start_date, end_date)
            try:
                return self.statistics.daily_series(
                    user["id"], metric, start, end, exercise
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @stats_router.get("/summary")
        def summary(
            metric: str,
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            exercise: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            start, end = self._resolve_range(start_date, end_date)
            try:
                return self.statistics.summary(user["id"], metric, start, end, exercise)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @stats_router.get("/calories")
        def calories(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            start, end = self._resolve_range(start_date, end_date)
            return self.statistics.calories(user["id"], start, end)

        @stats_router.get("/progression")
        def progression(
            exercise: str,
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            start, end = self._resolve_range(start_date, end_date)
            return self.statistics.load_progression(user["id"], exercise, start, end)

        @stats_router.get("/muscu-totals")
        def muscu_totals(
            date: Optional[str] = None, user: dict = Depends(current_user)
        ):
            day = _day(date) if date else datetime.date.today().isoformat()
            return self.statistics.strength_totals(user["id"], day)

        @stats_router.get("/overview")
        def overview(
            days: int = 7,
            end_date: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            if days <= 0:
                raise HTTPException(status_code=400, detail="days must be positive")
            return self.statistics.period_overview(
                user["id"], days, _day(end_date) if end_date else None
            )

        @profile_router.get("")
        def get_profile(user: dict = Depends(current_user)):
            return {**public_user(user), "created_at": user["created_at"]}

        @profile_router.put("")
        def update_profile(
            name: str = Body(...),
            email: str = Body(...),
            weight: float = Body(...),
            user: dict = Depends(current_user),
        ):
            try:
                self.users.update_profile(user["id"], name, email, weight)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return public_user(self.users.fetch(user["id"]))

        @profile_router.post("/change-password")
        def change_password(
            current_password: str = Body(...),
            new_password: str = Body(...),
            user: dict = Depends(current_user),
        ):
            try:
                self.auth.change_password(user["id"], current_password, new_password)
            except AuthError as e:
                raise HTTPException(status_code=401, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        @profile_router.delete("")
        def delete_profile(
            password: str = Body("", embed=True), user: dict = Depends(current_user)
        ):
            try:
                self.auth.delete_account(user["id"], password)
            except AuthError as e:
                raise HTTPException(status_code=401, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "deleted"}

        @admin_router.get("/users")
        def admin_list_users(admin: dict = Depends(admin_user)):
            return self.users.fetch_all_users()

        @admin_router.get("/stats")
        def admin_stats(admin: dict = Depends(admin_user)):
            return {
                "total_users": self.users.count(),
                "total_cardio": self.cardio.count(),
                "total_muscu": self.strength.count(),
                "total_weight": self.weights.count(),
            }

        @admin_router.post("/reset-password")
        def admin_reset_password(
            user_id: int = Body(...),
            new_password: str = Body(...),
            admin: dict = Depends(admin_user),
        ):
            try:
                self.auth.reset_password(user_id, new_password)
            except ValueError as e:
                raise _http_error(e)
            logger.info("admin %s reset password of user %s", admin["id"], user_id)
            return {"status": "updated"}

        @admin_router.post("/change-role")
        def admin_change_role(
            user_id: int = Body(...),
            role: str = Body(...),
            admin: dict = Depends(admin_user),
        ):
            try:
                self.users.set_role(user_id, role)
            except ValueError as e:
                raise _http_error(e)
            logger.info("admin %s set role of user %s to %s", admin["id"], user_id, role)
            return public_user(self.users.fetch(user_id))

        @admin_router.delete("/users/{user_id}")
        def admin_delete_user(user_id: int, admin: dict = Depends(admin_user)):
            if user_id == admin["id"]:
                raise HTTPException(status_code=400, detail="cannot delete yourself")
            try:
                self.users.delete(user_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            logger.info("admin %s deleted user %s", admin["id"], user_id)
            return {"status": "deleted"}

        @admin_router.get("/calorie-settings")
        def get_calorie_settings(admin: dict = Depends(admin_user)):
            return self.settings.calorie_constants().to_dict()

        @admin_router.put("/calorie-settings")
        def put_calorie_settings(
            settings: dict = Body(...), admin: dict = Depends(admin_user)
        ):
            try:
                constants = CalorieConstants.from_dict(settings)
            except (TypeError, ValueError) as e:
                raise HTTPException(status_code=400, detail=str(e))
            self.settings.set_calorie_constants(constants)
            logger.info("admin %s updated calorie settings", admin["id"])
            return constants.to_dict()

        @admin_router.get("/email-logs")
        def admin_email_logs(admin: dict = Depends(admin_user)):
            return self.email_logs.fetch_all_logs()

        self.app.include_router(auth_router)
        self.app.include_router(cardio_router)
        self.app.include_router(muscu_router)
        self.app.include_router(weight_router)
        self.app.include_router(exercises_router)
        self.app.include_router(stats_router)
        self.app.include_router(profile_router)
        self.app.include_router(admin_router)


api = TrackerAPI(db_path=default_db_path(), yaml_path=default_yaml_path())
app = api.app

if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(app)
