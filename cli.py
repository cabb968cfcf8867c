import argparse
import logging
import os
import shutil

from algorithms import CalorieCalculator, DateRange
from auth_service import hash_password
from db import (
    Database,
    UserRepository,
    ExerciseRepository,
    CardioRepository,
    StrengthRepository,
    WeightEntryRepository,
    SettingsRepository,
)
from logging_config import configure_logging

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@sporttracker.com"
ADMIN_PASSWORD = "admin"
ADMIN_NAME = "Administrateur"


def create_admin(
    db_path: str,
    email: str = ADMIN_EMAIL,
    password: str = ADMIN_PASSWORD,
    name: str = ADMIN_NAME,
) -> int:
    """Create the admin account, or promote the existing user with ``email``."""
    users = UserRepository(db_path)
    existing = users.fetch_by_email(email)
    if existing is not None:
        if existing["role"] != "admin":
            users.set_role(existing["id"], "admin")
        print(f"Admin already exists: {email}")
        return existing["id"]
    uid = users.create(name, email, hash_password(password), 75.0, "admin")
    logger.info("created admin account %s", email)
    print(f"Admin created: {email}")
    return uid


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def vacuum_db(db_path: str) -> None:
    """Compact the database file after large deletions."""
    if not os.path.exists(db_path):
        raise SystemExit(f"database not found: {db_path}")
    before = os.path.getsize(db_path)
    Database(db_path).vacuum()
    after = os.path.getsize(db_path)
    logger.info("vacuumed %s from %d to %d bytes", db_path, before, after)
    print(f"Database compacted: {before} -> {after} bytes")


def calorie_estimate(
    db_path: str,
    yaml_path: str,
    minutes: float | None = None,
    intensity: str = "Moyenne",
    weight: float = 70.0,
    sets: int | None = None,
) -> list[str]:
    """Describe calorie estimates using the constants stored in settings."""
    constants = SettingsRepository(db_path, yaml_path).calorie_constants()
    lines = []
    if minutes is not None:
        kcal = CalorieCalculator.cardio_calories(intensity, weight, minutes, constants)
        lines.append(f"{minutes} min {intensity} at {weight} kg = {kcal} kcal")
    if sets is not None:
        kcal = CalorieCalculator.strength_calories(sets, constants)
        lines.append(f"{sets} sets = {kcal} kcal")
    return lines


def demo_data(
    db_path: str, email: str, days: int = 14, yaml_path: str = "settings.yaml"
) -> None:
    """Populate a user's history with a few weeks of sample sessions."""
    users = UserRepository(db_path)
    user = users.fetch_by_email(email)
    if user is None:
        raise SystemExit(f"unknown user: {email}")
    exercises = ExerciseRepository(db_path)
    cardio = CardioRepository(db_path)
    strength = StrengthRepository(db_path)
    weights = WeightEntryRepository(db_path)
    constants = SettingsRepository(db_path, yaml_path).calorie_constants()
    run_id = exercises.find_or_create("Course", "cardio", user["id"])
    squat_id = exercises.find_or_create("Squat", "muscu", user["id"])
    for offset, day in enumerate(DateRange.last_n_days(days).days()):
        iso = day.isoformat()
        if offset % 2 == 0:
            minutes = 30 + offset
            cardio.add(
                user["id"],
                run_id,
                iso,
                minutes,
                "Moyenne",
                CalorieCalculator.cardio_calories(
                    "Moyenne", user["weight"], minutes, constants
                ),
            )
        else:
            strength.add(
                user["id"],
                squat_id,
                iso,
                4,
                8 + offset % 4,
                60.0,
                CalorieCalculator.strength_calories(4, constants),
            )
        if offset % 7 == 0:
            weights.add(user["id"], iso, user["weight"])
    print("Demo data inserted")


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    adm = sub.add_parser("create-admin")
    adm.add_argument("--db", default="tracker.db")
    adm.add_argument("--email", default=ADMIN_EMAIL)
    adm.add_argument("--password", default=ADMIN_PASSWORD)

    seed = sub.add_parser("seed")
    seed.add_argument("--db", default="tracker.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="tracker.db")
    demo.add_argument("--email", required=True)
    demo.add_argument("--days", type=int, default=14)
    demo.add_argument("--yaml", default="settings.yaml")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="tracker.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="tracker.db")

    vac = sub.add_parser("vacuum")
    vac.add_argument("--db", default="tracker.db")

    cal = sub.add_parser("calories")
    cal.add_argument("--minutes", type=float)
    cal.add_argument("--intensity", choices=CalorieCalculator.INTENSITIES, default="Moyenne")
    cal.add_argument("--weight", type=float, default=70.0)
    cal.add_argument("--sets", type=int)
    cal.add_argument("--db", default="tracker.db")
    cal.add_argument("--yaml", default="settings.yaml")

    serve = sub.add_parser("serve")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()
    configure_logging()

    if args.cmd == "create-admin":
        create_admin(args.db, args.email, args.password)
    elif args.cmd == "seed":
        ExerciseRepository(args.db)
        print("Default exercises ready")
    elif args.cmd == "demo":
        demo_data(args.db, args.email, args.days, args.yaml)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "vacuum":
        vacuum_db(args.db)
    elif args.cmd == "calories":
        for line in calorie_estimate(
            args.db, args.yaml, args.minutes, args.intensity, args.weight, args.sets
        ):
            print(line)
    elif args.cmd == "serve":
        import uvicorn

        uvicorn.run("rest_api:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
