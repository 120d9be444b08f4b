"""
Persistent user settings.

Settings live in a small TOML file that is read once at startup and
rewritten on every change. The file may hold keystore passwords, so it is
created readable by its owner only.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from ..android.project import AndroidProjectLayout
from ..models.runtime import SigningCredentials
from ..validation import ValidationError, handle_config_error, validate_enum_choice, validate_path_exists

logger = logging.getLogger(__name__)

BUILD_TYPES = ["debug", "release"]
SECRET_KEYS = ("store_password", "key_password")


@dataclass
class Settings:
    project_path: str = ""
    build_type: str = "release"
    selected_app_module: str = "app"
    keystore_path: str = ""
    key_alias: str = ""
    store_password: str = field(default="", repr=False)
    key_password: str = field(default="", repr=False)


SETTING_KEYS = [f.name for f in fields(Settings)]


class SettingsStore:
    """
    Loads and saves ``Settings`` at ``path``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.settings = self.load()

    def load(self) -> Settings:
        if not self.path.exists():
            logger.debug(f"No settings file at {self.path}, using defaults")
            return Settings()

        try:
            data = toml.load(self.path)
        except toml.TomlDecodeError as e:
            handle_config_error(e, f"parsing settings file {self.path}")

        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in SETTING_KEYS:
                logger.warning(f"Ignoring unknown setting '{key}' in {self.path}")
                continue
            values[key] = str(value)
        settings = Settings(**values)
        settings.build_type = validate_enum_choice(settings.build_type, BUILD_TYPES, "build_type")
        return settings

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            toml.dump(asdict(self.settings), f)
        os.chmod(self.path, 0o600)
        logger.debug(f"Saved settings to {self.path}")

    def get(self, key: str) -> str:
        self._check_key(key)
        return getattr(self.settings, key)

    def set(self, key: str, value: str) -> None:
        """Change one setting and persist immediately."""
        self._check_key(key)
        if key == "build_type":
            value = validate_enum_choice(value, BUILD_TYPES, "build_type")
        elif key == "project_path" and value:
            value = validate_path_exists(Path(value).expanduser(), "project_path")
        setattr(self.settings, key, value)
        self.save()

    def display_items(self) -> Dict[str, str]:
        """All settings with the passwords masked."""
        items = asdict(self.settings)
        for key in SECRET_KEYS:
            if items[key]:
                items[key] = "********"
        return items

    def project_layout(self, default_module: str = "app") -> Optional[AndroidProjectLayout]:
        if not self.settings.project_path:
            return None
        module = self.settings.selected_app_module or default_module
        return AndroidProjectLayout(Path(self.settings.project_path).expanduser(), module)

    def signing_credentials(self) -> Optional[SigningCredentials]:
        """Credentials for the release pipeline, or None if any part is missing."""
        s = self.settings
        if not (s.keystore_path and s.key_alias and s.store_password and s.key_password):
            return None
        return SigningCredentials(
            keystore_path=s.keystore_path,
            key_alias=s.key_alias,
            store_password=s.store_password,
            key_password=s.key_password,
        )

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in SETTING_KEYS:
            raise ValidationError(f"Unknown setting '{key}', expected one of {SETTING_KEYS}",
                                  field_name="key", value=key)
