import sqlite3
import aiosqlite
import csv
import os
import datetime
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional

from config import YamlConfig
from settings_schema import validate_settings
from algorithms import CalorieConstants

logger = logging.getLogger(__name__)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "users": (
            """CREATE TABLE users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password TEXT NOT NULL,
                    weight REAL NOT NULL DEFAULT 70,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at TEXT
                );""",
            ["id", "name", "email", "password", "weight", "role", "created_at"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    user_id INTEGER,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            ["id", "name", "type", "user_id", "created_at"],
        ),
        "cardio_activities": (
            """CREATE TABLE cardio_activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    minutes REAL NOT NULL,
                    intensity TEXT NOT NULL DEFAULT 'Moyenne',
                    calories INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            [
                "id",
                "user_id",
                "exercise_id",
                "date",
                "minutes",
                "intensity",
                "calories",
                "created_at",
            ],
        ),
        "strength_activities": (
            """CREATE TABLE strength_activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    sets INTEGER NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL DEFAULT 0,
                    calories INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            [
                "id",
                "user_id",
                "exercise_id",
                "date",
                "sets",
                "reps",
                "weight",
                "calories",
                "created_at",
            ],
        ),
        "weight_entries": (
            """CREATE TABLE weight_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    weight REAL NOT NULL,
                    muscle_mass REAL,
                    body_fat REAL,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "date",
                "weight",
                "muscle_mass",
                "body_fat",
                "created_at",
            ],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "email_logs": (
            """CREATE TABLE email_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    address TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    body TEXT NOT NULL,
                    success INTEGER NOT NULL
                );""",
            ["id", "timestamp", "address", "subject", "body", "success"],
        ),
    }

    def __init__(self, db_path: str = "tracker.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._import_default_exercises()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("migrating table %s", table)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "role":
                        return "'user'"
                    if col == "intensity":
                        return "'Moyenne'"
                    if col == "weight" and table == "users":
                        return "70"
                    if col in ("calories", "weight"):
                        return "0"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _import_default_exercises(self) -> None:
        csv_path = os.path.join(os.path.dirname(__file__), "default_exercises.csv")
        if not os.path.exists(csv_path):
            return
        with open(csv_path, newline="", encoding="utf-8") as csvfile:
            reader = csv.DictReader(csvfile)
            records = [(row["Type"], row["Name"]) for row in reader]
        with self._connection() as conn:
            for ex_type, name in records:
                cur = conn.execute(
                    "SELECT id FROM exercises WHERE name = ? AND type = ? AND user_id IS NULL;",
                    (name, ex_type),
                )
                if cur.fetchone() is None:
                    conn.execute(
                        "INSERT INTO exercises (name, type, user_id, created_at) VALUES (?, ?, NULL, ?);",
                        (name, ex_type, datetime.datetime.now().isoformat()),
                    )

    def _init_settings(self) -> None:
        defaults = {
            "app_name": "Sport Tracker Pro",
            "default_body_weight": "70.0",
            "met_low": "4.0",
            "met_medium": "7.0",
            "met_high": "10.0",
            "calories_per_set": "5.0",
            "token_ttl_days": "30",
            "min_password_length": "6",
            "default_stats_period": "30",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _exists(self, table: str, row_id: int) -> bool:
        return bool(self.fetch_all(f"SELECT id FROM {table} WHERE id = ?;", (row_id,)))


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


def _date_filter(
    query: str,
    params: list,
    start_date: Optional[str],
    end_date: Optional[str],
    column: str = "date",
) -> str:
    if start_date:
        query += f" AND {column} >= ?"
        params.append(start_date)
    if end_date:
        query += f" AND {column} <= ?"
        params.append(end_date)
    return query


class UserRepository(BaseRepository):
    """Repository for user accounts."""

    ROLES = ("user", "admin")

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "name": row[1],
            "email": row[2],
            "weight": float(row[3]),
            "role": row[4],
            "created_at": row[5],
        }

    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        weight: float = 70.0,
        role: str = "user",
    ) -> int:
        if not name or not email:
            raise ValueError("name and email required")
        if weight <= 0:
            raise ValueError("weight must be positive")
        if role not in self.ROLES:
            raise ValueError("invalid role")
        if self.fetch_by_email(email) is not None:
            raise ValueError("email already registered")
        return self.execute(
            "INSERT INTO users (name, email, password, weight, role, created_at) VALUES (?, ?, ?, ?, ?, ?);",
            (
                name,
                email,
                password_hash,
                weight,
                role,
                datetime.datetime.now().isoformat(),
            ),
        )

    def fetch(self, user_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT id, name, email, weight, role, created_at FROM users WHERE id = ?;",
            (user_id,),
        )
        if not rows:
            raise ValueError("user not found")
        return self._row_to_dict(rows[0])

    def fetch_by_email(self, email: str) -> dict | None:
        rows = self.fetch_all(
            "SELECT id, name, email, weight, role, created_at FROM users WHERE email = ?;",
            (email,),
        )
        return self._row_to_dict(rows[0]) if rows else None

    def fetch_password_hash(self, user_id: int) -> str:
        rows = self.fetch_all("SELECT password FROM users WHERE id = ?;", (user_id,))
        if not rows:
            raise ValueError("user not found")
        return rows[0][0]

    def fetch_all_users(self) -> list[dict]:
        """Return every user with the number of logged activities."""
        rows = self.fetch_all(
            "SELECT u.id, u.name, u.email, u.weight, u.role, u.created_at, "
            "(SELECT COUNT(*) FROM cardio_activities c WHERE c.user_id = u.id), "
            "(SELECT COUNT(*) FROM strength_activities s WHERE s.user_id = u.id), "
            "(SELECT COUNT(*) FROM weight_entries w WHERE w.user_id = u.id) "
            "FROM users u ORDER BY u.id DESC;"
        )
        result: list[dict] = []
        for r in rows:
            user = self._row_to_dict(r)
            user["counts"] = {
                "cardio": int(r[6]),
                "muscu": int(r[7]),
                "weight": int(r[8]),
            }
            result.append(user)
        return result

    def update_profile(self, user_id: int, name: str, email: str, weight: float) -> None:
        if not name or not email:
            raise ValueError("name and email required")
        if weight <= 0:
            raise ValueError("weight must be positive")
        self.fetch(user_id)
        other = self.fetch_by_email(email)
        if other is not None and other["id"] != user_id:
            raise ValueError("email already registered")
        self.execute(
            "UPDATE users SET name = ?, email = ?, weight = ? WHERE id = ?;",
            (name, email, weight, user_id),
        )

    def set_password(self, user_id: int, password_hash: str) -> None:
        self.fetch(user_id)
        self.execute(
            "UPDATE users SET password = ? WHERE id = ?;", (password_hash, user_id)
        )

    def set_role(self, user_id: int, role: str) -> None:
        if role not in self.ROLES:
            raise ValueError("invalid role")
        self.fetch(user_id)
        self.execute("UPDATE users SET role = ? WHERE id = ?;", (role, user_id))

    def set_weight(self, user_id: int, weight: float) -> None:
        if weight <= 0:
            raise ValueError("weight must be positive")
        self.execute("UPDATE users SET weight = ? WHERE id = ?;", (weight, user_id))

    def delete(self, user_id: int) -> None:
        """Delete a user along with everything they logged."""
        self.fetch(user_id)
        with self._connection() as conn:
            conn.execute("DELETE FROM cardio_activities WHERE user_id = ?;", (user_id,))
            conn.execute(
                "DELETE FROM strength_activities WHERE user_id = ?;", (user_id,)
            )
            conn.execute("DELETE FROM weight_entries WHERE user_id = ?;", (user_id,))
            conn.execute("DELETE FROM exercises WHERE user_id = ?;", (user_id,))
            conn.execute("DELETE FROM users WHERE id = ?;", (user_id,))

    def count(self) -> int:
        return int(self.fetch_all("SELECT COUNT(*) FROM users;")[0][0])


class ExerciseRepository(BaseRepository):
    """Repository for the exercise library."""

    TYPES = ("cardio", "muscu")

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "name": row[1],
            "type": row[2],
            "user_id": row[3],
            "is_default": row[3] is None,
        }

    def fetch_for_user(self, user_id: int, ex_type: Optional[str] = None) -> list[dict]:
        """Return the user's exercises plus the system defaults."""
        query = (
            "SELECT id, name, type, user_id FROM exercises "
            "WHERE (user_id = ? OR user_id IS NULL)"
        )
        params: list = [user_id]
        if ex_type:
            query += " AND type = ?"
            params.append(ex_type)
        query += " ORDER BY name;"
        return [self._row_to_dict(r) for r in self.fetch_all(query, tuple(params))]

    def fetch(self, exercise_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT id, name, type, user_id FROM exercises WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise ValueError("exercise not found")
        return self._row_to_dict(rows[0])

    def add(self, name: str, ex_type: str, user_id: Optional[int]) -> int:
        name = (name or "").strip()
        if not name or not ex_type:
            raise ValueError("name and type required")
        if ex_type not in self.TYPES:
            raise ValueError("type must be cardio or muscu")
        if user_id is None:
            existing = self.fetch_all(
                "SELECT id FROM exercises WHERE name = ? AND type = ? AND user_id IS NULL;",
                (name, ex_type),
            )
        else:
            existing = self.fetch_all(
                "SELECT id FROM exercises WHERE name = ? AND type = ? AND user_id = ?;",
                (name, ex_type, user_id),
            )
        if existing:
            raise ValueError("exercise already exists")
        return self.execute(
            "INSERT INTO exercises (name, type, user_id, created_at) VALUES (?, ?, ?, ?);",
            (name, ex_type, user_id, datetime.datetime.now().isoformat()),
        )

    def find_or_create(self, name: str, ex_type: str, user_id: int) -> int:
        """Return the id of ``name``, preferring the user's own exercise."""
        rows = self.fetch_all(
            "SELECT id FROM exercises WHERE name = ? AND type = ? "
            "AND (user_id = ? OR user_id IS NULL) ORDER BY user_id IS NULL;",
            (name, ex_type, user_id),
        )
        if rows:
            return int(rows[0][0])
        return self.add(name, ex_type, user_id)

    def rename(self, exercise_id: int, name: str) -> None:
        name = (name or "").strip()
        if not name:
            raise ValueError("name required")
        self.fetch(exercise_id)
        self.execute(
            "UPDATE exercises SET name = ? WHERE id = ?;", (name, exercise_id)
        )

    def delete(self, exercise_id: int) -> None:
        self.fetch(exercise_id)
        used = self.fetch_all(
            "SELECT (SELECT COUNT(*) FROM cardio_activities WHERE exercise_id = ?) + "
            "(SELECT COUNT(*) FROM strength_activities WHERE exercise_id = ?);",
            (exercise_id, exercise_id),
        )
        if used and used[0][0]:
            raise ValueError("exercise in use")
        self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))


class CardioRepository(BaseRepository):
    """Repository for cardio sessions."""

    _SELECT = (
        "SELECT c.id, c.date, c.exercise_id, e.name, c.minutes, c.intensity, c.calories "
        "FROM cardio_activities c JOIN exercises e ON e.id = c.exercise_id "
    )

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "date": row[1],
            "exercise_id": int(row[2]),
            "exercise_name": row[3],
            "minutes": float(row[4]),
            "intensity": row[5],
            "calories": int(row[6]),
        }

    @staticmethod
    def _validate(minutes: float) -> None:
        if minutes <= 0:
            raise ValueError("minutes must be positive")

    def add(
        self,
        user_id: int,
        exercise_id: int,
        date: str,
        minutes: float,
        intensity: str,
        calories: int,
    ) -> int:
        self._validate(minutes)
        return self.execute(
            "INSERT INTO cardio_activities (user_id, exercise_id, date, minutes, intensity, calories, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                exercise_id,
                date,
                minutes,
                intensity,
                calories,
                datetime.datetime.now().isoformat(),
            ),
        )

    def fetch_history(
        self,
        user_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]:
        params: list = [user_id]
        query = _date_filter(
            self._SELECT + "WHERE c.user_id = ?", params, start_date, end_date, "c.date"
        )
        query += " ORDER BY c.date DESC, c.id DESC;"
        return [self._row_to_dict(r) for r in self.fetch_all(query, tuple(params))]

    def fetch(self, user_id: int, activity_id: int) -> dict:
        rows = self.fetch_all(
            self._SELECT + "WHERE c.id = ? AND c.user_id = ?;", (activity_id, user_id)
        )
        if not rows:
            raise ValueError("activity not found")
        return self._row_to_dict(rows[0])

    def update(
        self,
        user_id: int,
        activity_id: int,
        exercise_id: int,
        date: str,
        minutes: float,
        intensity: str,
        calories: int,
    ) -> None:
        self._validate(minutes)
        self.fetch(user_id, activity_id)
        self.execute(
            "UPDATE cardio_activities SET exercise_id = ?, date = ?, minutes = ?, intensity = ?, calories = ? "
            "WHERE id = ?;",
            (exercise_id, date, minutes, intensity, calories, activity_id),
        )

    def delete(self, user_id: int, activity_id: int) -> None:
        self.fetch(user_id, activity_id)
        self.execute("DELETE FROM cardio_activities WHERE id = ?;", (activity_id,))

    def count(self) -> int:
        return int(self.fetch_all("SELECT COUNT(*) FROM cardio_activities;")[0][0])


class StrengthRepository(BaseRepository):
    """Repository for strength-training sessions."""

    _SELECT = (
        "SELECT s.id, s.date, s.exercise_id, e.name, s.sets, s.reps, s.weight, s.calories "
        "FROM strength_activities s JOIN exercises e ON e.id = s.exercise_id "
    )

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "date": row[1],
            "exercise_id": int(row[2]),
            "exercise_name": row[3],
            "sets": int(row[4]),
            "reps": int(row[5]),
            "weight": float(row[6]),
            "calories": int(row[7]),
        }

    @staticmethod
    def _validate(sets: int, reps: int, weight: float) -> None:
        if sets <= 0 or reps <= 0:
            raise ValueError("sets and reps must be positive")
        if weight < 0:
            raise ValueError("weight must not be negative")

    def add(
        self,
        user_id: int,
        exercise_id: int,
        date: str,
        sets: int,
        reps: int,
        weight: float,
        calories: int,
    ) -> int:
        self._validate(sets, reps, weight)
        return self.execute(
            "INSERT INTO strength_activities (user_id, exercise_id, date, sets, reps, weight, calories, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                exercise_id,
                date,
                sets,
                reps,
                weight,
                calories,
                datetime.datetime.now().isoformat(),
            ),
        )

    def fetch_history(
        self,
        user_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]:
        params: list = [user_id]
        query = _date_filter(
            self._SELECT + "WHERE s.user_id = ?", params, start_date, end_date, "s.date"
        )
        query += " ORDER BY s.date DESC, s.id DESC;"
        return [self._row_to_dict(r) for r in self.fetch_all(query, tuple(params))]

    def fetch(self, user_id: int, activity_id: int) -> dict:
        rows = self.fetch_all(
            self._SELECT + "WHERE s.id = ? AND s.user_id = ?;", (activity_id, user_id)
        )
        if not rows:
            raise ValueError("activity not found")
        return self._row_to_dict(rows[0])

    def update(
        self,
        user_id: int,
        activity_id: int,
        exercise_id: int,
        date: str,
        sets: int,
        reps: int,
        weight: float,
        calories: int,
    ) -> None:
        self._validate(sets, reps, weight)
        self.fetch(user_id, activity_id)
        self.execute(
            "UPDATE strength_activities SET exercise_id = ?, date = ?, sets = ?, reps = ?, weight = ?, calories = ? "
            "WHERE id = ?;",
            (exercise_id, date, sets, reps, weight, calories, activity_id),
        )

    def delete(self, user_id: int, activity_id: int) -> None:
        self.fetch(user_id, activity_id)
        self.execute("DELETE FROM strength_activities WHERE id = ?;", (activity_id,))

    def count(self) -> int:
        return int(self.fetch_all("SELECT COUNT(*) FROM strength_activities;")[0][0])


class WeightEntryRepository(BaseRepository):
    """Repository for body weight measurements."""

    @staticmethod
    def _row_to_dict(row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "date": row[1],
            "weight": float(row[2]),
            "muscle_mass": float(row[3]) if row[3] is not None else None,
            "body_fat": float(row[4]) if row[4] is not None else None,
        }

    @staticmethod
    def _validate(weight: float) -> None:
        if weight <= 0:
            raise ValueError("weight must be positive")

    def add(
        self,
        user_id: int,
        date: str,
        weight: float,
        muscle_mass: Optional[float] = None,
        body_fat: Optional[float] = None,
    ) -> int:
        self._validate(weight)
        return self.execute(
            "INSERT INTO weight_entries (user_id, date, weight, muscle_mass, body_fat, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (
                user_id,
                date,
                weight,
                muscle_mass,
                body_fat,
                datetime.datetime.now().isoformat(),
            ),
        )

    def fetch_history(
        self,
        user_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]:
        params: list = [user_id]
        query = _date_filter(
            "SELECT id, date, weight, muscle_mass, body_fat FROM weight_entries WHERE user_id = ?",
            params,
            start_date,
            end_date,
        )
        query += " ORDER BY date DESC, id DESC;"
        return [self._row_to_dict(r) for r in self.fetch_all(query, tuple(params))]

    def fetch_latest(self, user_id: int, on_or_before: Optional[str] = None) -> dict | None:
        params: list = [user_id]
        query = _date_filter(
            "SELECT id, date, weight, muscle_mass, body_fat FROM weight_entries WHERE user_id = ?",
            params,
            None,
            on_or_before,
        )
        query += " ORDER BY date DESC, id DESC LIMIT 1;"
        rows = self.fetch_all(query, tuple(params))
        return self._row_to_dict(rows[0]) if rows else None

    def update(
        self,
        user_id: int,
        entry_id: int,
        date: str,
        weight: float,
        muscle_mass: Optional[float] = None,
        body_fat: Optional[float] = None,
    ) -> None:
        self._validate(weight)
        rows = self.fetch_all(
            "SELECT id FROM weight_entries WHERE id = ? AND user_id = ?;",
            (entry_id, user_id),
        )
        if not rows:
            raise ValueError("entry not found")
        self.execute(
            "UPDATE weight_entries SET date = ?, weight = ?, muscle_mass = ?, body_fat = ? WHERE id = ?;",
            (date, weight, muscle_mass, body_fat, entry_id),
        )

    def delete(self, user_id: int, entry_id: int) -> None:
        rows = self.fetch_all(
            "SELECT id FROM weight_entries WHERE id = ? AND user_id = ?;",
            (entry_id, user_id),
        )
        if not rows:
            raise ValueError("entry not found")
        self.execute("DELETE FROM weight_entries WHERE id = ?;", (entry_id,))

    def count(self) -> int:
        return int(self.fetch_all("SELECT COUNT(*) FROM weight_entries;")[0][0])


class AsyncCardioRepository(AsyncBaseRepository):
    """Async read access to cardio sessions."""

    async def fetch_for_date(self, user_id: int, date: str) -> list[dict]:
        rows = await self.fetch_all(
            CardioRepository._SELECT + "WHERE c.user_id = ? AND c.date = ? ORDER BY c.id;",
            (user_id, date),
        )
        return [CardioRepository._row_to_dict(r) for r in rows]


class AsyncStrengthRepository(AsyncBaseRepository):
    """Async read access to strength sessions."""

    async def fetch_for_date(self, user_id: int, date: str) -> list[dict]:
        rows = await self.fetch_all(
            StrengthRepository._SELECT + "WHERE s.user_id = ? AND s.date = ? ORDER BY s.id;",
            (user_id, date),
        )
        return [StrengthRepository._row_to_dict(r) for r in rows]


class AsyncWeightEntryRepository(AsyncBaseRepository):
    """Async read access to weight measurements."""

    async def fetch_latest(self, user_id: int, on_or_before: str) -> dict | None:
        rows = await self.fetch_all(
            "SELECT id, date, weight, muscle_mass, body_fat FROM weight_entries "
            "WHERE user_id = ? AND date <= ? ORDER BY date DESC, id DESC LIMIT 1;",
            (user_id, on_or_before),
        )
        return WeightEntryRepository._row_to_dict(rows[0]) if rows else None


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    _CALORIE_KEYS = {
        "low": "met_low",
        "medium": "met_medium",
        "high": "met_high",
        "per_set": "calories_per_set",
    }
    _INT_KEYS = {"token_ttl_days", "min_password_length", "default_stats_period"}
    _FLOAT_KEYS = {
        "default_body_weight",
        "met_low",
        "met_medium",
        "met_high",
        "calories_per_set",
    }

    def __init__(
        self, db_path: str = "tracker.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | int | str] = {}
        for k, v in rows:
            try:
                if k in self._INT_KEYS:
                    result[k] = int(float(v))
                    continue
                if k in self._FLOAT_KEYS:
                    result[k] = float(v)
                    continue
            except ValueError:
                pass
            result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, str(value)),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()

    def get_float(self, key: str, default: float) -> float:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return float(rows[0][0]) if rows else default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(value))

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        validate_settings({key: value})
        self._sync_from_yaml()
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def calorie_constants(self) -> CalorieConstants:
        base = CalorieConstants()
        return CalorieConstants(
            low=self.get_float("met_low", base.low),
            medium=self.get_float("met_medium", base.medium),
            high=self.get_float("met_high", base.high),
            per_set=self.get_float("calories_per_set", base.per_set),
        )

    def set_calorie_constants(self, constants: CalorieConstants) -> None:
        for field, key in self._CALORIE_KEYS.items():
            self.set_float(key, getattr(constants, field))


class EmailLogRepository(BaseRepository):
    """Repository for outgoing mail records."""

    def add(self, address: str, subject: str, body: str, success: bool) -> int:
        return self.execute(
            "INSERT INTO email_logs (timestamp, address, subject, body, success) VALUES (?, ?, ?, ?, ?);",
            (
                datetime.datetime.now().isoformat(),
                address,
                subject,
                body,
                1 if success else 0,
            ),
        )

    def fetch_all_logs(self) -> list[dict[str, object]]:
        rows = self.fetch_all(
            "SELECT id, timestamp, address, subject, body, success FROM email_logs ORDER BY id;"
        )
        result: list[dict[str, object]] = []
        for r in rows:
            result.append(
                {
                    "id": r[0],
                    "timestamp": r[1],
                    "address": r[2],
                    "subject": r[3],
                    "body": r[4],
                    "success": bool(r[5]),
                }
            )
        return result
