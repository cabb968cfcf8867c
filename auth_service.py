import datetime
import logging
import os
import secrets

import bcrypt
import jwt

from db import UserRepository, SettingsRepository
from email_service import EmailService

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"
TOKEN_TTL_DAYS = 30


class AuthError(Exception):
    """Raised when credentials or tokens are rejected."""


class PermissionDenied(Exception):
    """Raised when an authenticated user lacks the required role."""


def hash_password(password: str) -> str:
    rounds = int(os.environ.get("BCRYPT_ROUNDS", "10"))
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode(
        "utf-8"
    )


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "weight": user["weight"],
        "role": user["role"],
    }


class AuthService:
    """Account registration, login and access tokens."""

    def __init__(
        self,
        user_repo: UserRepository,
        settings_repo: SettingsRepository,
        email_service: EmailService | None = None,
        secret: str | None = None,
    ) -> None:
        self.users = user_repo
        self.settings = settings_repo
        self.email = email_service
        self._secret = secret or self._load_secret()

    def _load_secret(self) -> str:
        env = os.environ.get("JWT_SECRET")
        if env:
            return env
        stored = self.settings.get_text("jwt_secret", "")
        if stored and stored != "True":
            return stored
        generated = secrets.token_hex(32)
        self.settings.set_text("jwt_secret", generated)
        return generated

    @property
    def min_password_length(self) -> int:
        return self.settings.get_int("min_password_length", 6)

    def _check_password_length(self, password: str) -> None:
        if not password or len(password) < self.min_password_length:
            raise ValueError(
                f"password must be at least {self.min_password_length} characters"
            )

    def issue_token(self, user_id: int, now: datetime.datetime | None = None) -> str:
        issued = now or datetime.datetime.now(datetime.timezone.utc)
        ttl = self.settings.get_int("token_ttl_days", TOKEN_TTL_DAYS)
        payload = {
            "sub": str(user_id),
            "iat": issued,
            "exp": issued + datetime.timedelta(days=ttl),
        }
        return jwt.encode(payload, self._secret, algorithm=TOKEN_ALGORITHM)

    def authenticate(self, token: str) -> dict:
        """Return the user owning ``token``."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[TOKEN_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthError("token expired")
        except jwt.InvalidTokenError:
            raise AuthError("invalid token")
        try:
            return self.users.fetch(int(payload["sub"]))
        except (KeyError, ValueError):
            raise AuthError("invalid token")

    def register(
        self, name: str, email: str, password: str, weight: float | None = None
    ) -> dict:
        self._check_password_length(password)
        if weight is None:
            weight = self.settings.get_float("default_body_weight", 70.0)
        user_id = self.users.create(name, email, hash_password(password), weight)
        logger.info("registered user %s (%s)", user_id, email)
        if self.email is not None:
            try:
                self.email.send_welcome(name, email)
            except Exception:
                logger.exception("welcome email to %s failed", email)
        user = self.users.fetch(user_id)
        return {"token": self.issue_token(user_id), "user": public_user(user)}

    def login(self, email: str, password: str) -> dict:
        user = self.users.fetch_by_email(email)
        if user is None or not verify_password(
            password or "", self.users.fetch_password_hash(user["id"])
        ):
            logger.warning("failed login for %s", email)
            raise AuthError("invalid credentials")
        logger.info("user %s logged in", user["id"])
        return {"token": self.issue_token(user["id"]), "user": public_user(user)}

    def change_password(self, user_id: int, current: str, new: str) -> None:
        if not verify_password(current or "", self.users.fetch_password_hash(user_id)):
            raise AuthError("current password incorrect")
        self._check_password_length(new)
        self.users.set_password(user_id, hash_password(new))

    def reset_password(self, user_id: int, new: str) -> None:
        self._check_password_length(new)
        self.users.set_password(user_id, hash_password(new))
        logger.info("password reset for user %s", user_id)

    def delete_account(self, user_id: int, password: str) -> None:
        if not password:
            raise ValueError("password required")
        if not verify_password(password, self.users.fetch_password_hash(user_id)):
            raise AuthError("incorrect password")
        self.users.delete(user_id)
        logger.info("user %s deleted their account", user_id)

    @staticmethod
    def require_admin(user: dict) -> dict:
        if user.get("role") != "admin":
            raise PermissionDenied("admin access required")
        return user
