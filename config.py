"""Settings file handling for Sport Tracker Pro.

The YAML file mirrors the ``settings`` table so administrators can edit
MET constants and limits by hand. With ``ENCRYPT_SETTINGS=1`` the JWT
signing secret and the SMTP password never reach the file: they live in
the system keyring and the YAML only records ``true`` as a placeholder.
"""

import os
import yaml
import keyring

APP_VERSION = "1.0.0"
KEYRING_SERVICE = "sporttracker"


def default_db_path() -> str:
    return os.environ.get("DB_PATH", "tracker.db")


def default_yaml_path() -> str:
    return os.environ.get("YAML_PATH", "settings.yaml")


class YamlConfig:
    """Settings YAML with the tracker's secrets kept in the keyring."""

    SENSITIVE_KEYS = {
        "jwt_secret",
        "smtp_password",
    }

    def __init__(self, path: str | None = None) -> None:
        self.path = path or default_yaml_path()
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = KEYRING_SERVICE

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & data.keys():
                value = data[key]
                if value is not True:
                    # written before encryption was enabled
                    keyring.set_password(self.service, key, str(value))
                    continue
                secret = keyring.get_password(self.service, key)
                if secret is not None:
                    data[key] = secret
                else:
                    data.pop(key)
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & out.keys():
                keyring.set_password(self.service, key, str(out[key]))
                out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)
