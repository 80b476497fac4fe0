"""Named connection profiles stored in a TOML file."""

from __future__ import annotations

import logging
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .config import Config
from .parse import parse_config

LOG = logging.getLogger(__name__)

PROFILES_FILE = Path.home() / ".config" / "pgconninfo" / "profiles.toml"

_TEXT_FIELDS = ("name", "dsn", "host", "dbname", "user", "application_name")


class ProfileNotFoundError(KeyError):
    """Raised when a profile name is not present in the profiles file."""


class ProfileConfig(BaseModel):
    """A connection profile as stored in profiles.toml."""

    name: str = Field(min_length=1)
    dsn: str | None = None
    host: str | None = None
    port: int | None = None
    dbname: str | None = None
    user: str | None = None
    application_name: str | None = None

    def to_config(self) -> Config:
        """Parse ``dsn`` and apply the discrete fields on top of it.

        ``host`` and ``port`` append to any hosts and ports named by ``dsn``;
        the other fields replace the parsed value.
        """

        config = parse_config(self.dsn) if self.dsn else Config()
        for key in ("host", "port", "dbname", "user", "application_name"):
            value = getattr(self, key)
            if value is not None:
                config.apply(key, str(value))
        return config


class ProfilesFile(BaseModel):
    """Shape of the profiles file."""

    profiles: list[ProfileConfig] = Field(default_factory=lambda: list(_default_profiles()))
    active_profile: str | None = None

    def get(self, name: str) -> ProfileConfig:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        raise ProfileNotFoundError(name)

    def active(self) -> ProfileConfig | None:
        """The active profile, falling back to the first one."""

        if self.active_profile:
            return self.get(self.active_profile)
        return self.profiles[0] if self.profiles else None

    def with_profile(self, profile: ProfileConfig) -> ProfilesFile:
        """Return a copy with ``profile`` added or replacing the same name."""

        profiles = [entry for entry in self.profiles if entry.name != profile.name]
        profiles.append(profile)
        return self.model_copy(update={"profiles": profiles})

    def with_active_profile(self, name: str) -> ProfilesFile:
        self.get(name)
        return self.model_copy(update={"active_profile": name})


def load_profiles() -> ProfilesFile:
    """Load profiles from disk; fall back to defaults if missing or unreadable.

    Tables that do not validate as a profile are skipped with a warning.
    """

    try:
        with PROFILES_FILE.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return ProfilesFile()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Ignoring unreadable profiles file", extra={"path": str(PROFILES_FILE)})
        return ProfilesFile()

    tables = raw.get("profiles")
    profiles = [
        profile
        for profile in map(_validate_profile, tables if isinstance(tables, list) else [])
        if profile is not None
    ]
    active_profile = raw.get("active_profile")
    return ProfilesFile(
        profiles=profiles or list(_default_profiles()),
        active_profile=active_profile if isinstance(active_profile, str) else None,
    )


def save_profiles(profiles: ProfilesFile) -> None:
    """Persist profiles to disk."""

    PROFILES_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    if profiles.active_profile:
        lines.append(f"active_profile = {_toml_string(profiles.active_profile)}")
        lines.append("")
    for profile in profiles.profiles:
        lines.append("[[profiles]]")
        for key in _TEXT_FIELDS:
            value = getattr(profile, key)
            if value is not None:
                lines.append(f"{key} = {_toml_string(value)}")
        if profile.port is not None:
            lines.append(f"port = {profile.port}")
        lines.append("")
    PROFILES_FILE.write_text("\n".join(lines) + "\n")


def _validate_profile(table: object) -> ProfileConfig | None:
    try:
        return ProfileConfig.model_validate(table)
    except ValidationError as exc:
        LOG.warning("Skipping invalid profile", extra={"path": str(PROFILES_FILE), "errors": exc.error_count()})
        return None


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _default_profiles() -> tuple[ProfileConfig, ...]:
    """Profile offered before a profiles file exists."""

    return (
        ProfileConfig(
            name="local",
            host="localhost",
            port=5432,
            dbname="postgres",
            user="postgres",
        ),
    )


__all__ = [
    "PROFILES_FILE",
    "ProfileConfig",
    "ProfileNotFoundError",
    "ProfilesFile",
    "load_profiles",
    "save_profiles",
]
