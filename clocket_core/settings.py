"""Application preferences persisted as a single ``{"version", "settings"}`` document."""

from __future__ import annotations

import hashlib
import re
from typing import Any, Callable, Dict, Optional

from .exceptions import ValidationError
from .models import AppSettings
from .repository import State, VersionedRepository
from .validators import is_record, is_text, validate_enum, validate_optional_str

CURRENCIES = ("USD", "EUR", "ARS")
LANGUAGES = ("es", "en")
THEMES = ("light", "dark")

DEFAULT_PROFILE = {"name": "Usuario", "email": "usuario@email.com", "avatarIcon": "user"}
DEFAULT_SETTINGS: Dict[str, Any] = {
    "currency": "USD",
    "language": "es",
    "notificationsEnabled": True,
    "theme": "light",
    "profile": DEFAULT_PROFILE,
    "security": {"pinHash": None},
}

PIN_PATTERN = re.compile(r"^\d{4}$")


def hash_pin(pin: str) -> str:
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        raise ValidationError("PIN must contain exactly 4 digits.")
    return hashlib.sha256(pin.encode("utf-8")).hexdigest()


def verify_pin(pin: str, pin_hash: str) -> bool:
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        return False
    return hash_pin(pin) == pin_hash


def _is_settings_v1(settings: Any) -> bool:
    return (
        is_record(settings)
        and settings.get("currency") in ("USD", "EUR")
        and settings.get("language") in LANGUAGES
        and isinstance(settings.get("notificationsEnabled"), bool)
        and settings.get("theme") == "light"
    )


def _is_settings_v2(settings: Any) -> bool:
    if not is_record(settings):
        return False
    profile = settings.get("profile")
    security = settings.get("security")
    return (
        settings.get("currency") in CURRENCIES
        and settings.get("language") in LANGUAGES
        and isinstance(settings.get("notificationsEnabled"), bool)
        and settings.get("theme") in THEMES
        and is_record(profile)
        and all(is_text(profile.get(field)) for field in ("name", "email", "avatarIcon"))
        and is_record(security)
        and (security.get("pinHash") is None or is_text(security.get("pinHash")))
    )


def _migrate_v1_to_v2(state: State) -> State:
    settings = dict(state["settings"])
    settings["profile"] = dict(DEFAULT_PROFILE)
    settings["security"] = {"pinHash": None}
    return {"version": 2, "settings": settings}


class AppSettingsRepository(VersionedRepository):
    key_suffix = "settings"
    version = 2
    payload_field = "settings"
    model = AppSettings
    schemas = {1: _is_settings_v1, 2: _is_settings_v2}
    migrations = {1: _migrate_v1_to_v2}

    def get(self) -> AppSettings:
        return AppSettings.from_dict(self.read_state()["settings"])

    def update(self, patch: Dict[str, Any]) -> AppSettings:  # type: ignore[override]
        if not isinstance(patch, dict):
            raise ValidationError("payload must be an object")
        if "security" in patch:
            raise ValidationError("security settings change only through the PIN operations")
        state = self.read_state()
        state["settings"] = self._merge(state["settings"], patch)
        self.write_state(state)
        return AppSettings.from_dict(state["settings"])

    def reset(self) -> AppSettings:
        self.clear_all()
        return self.get()

    def set_pin(self, pin: str) -> AppSettings:
        return self._store_pin_hash(hash_pin(pin))

    def clear_pin(self) -> AppSettings:
        return self._store_pin_hash(None)

    def verify_pin(self, pin: str) -> bool:
        pin_hash = self.get().pin_hash
        return pin_hash is not None and verify_pin(pin, pin_hash)

    def _store_pin_hash(self, pin_hash: Optional[str]) -> AppSettings:
        state = self.read_state()
        state["settings"]["security"] = {"pinHash": pin_hash}
        self.write_state(state)
        return AppSettings.from_dict(state["settings"])

    def _initial_payload(self) -> Dict[str, Any]:
        return {
            **DEFAULT_SETTINGS,
            "profile": dict(DEFAULT_PROFILE),
            "security": {"pinHash": None},
        }

    def _payload_matches(self, predicate: Callable[[Any], bool], payload: Any) -> bool:
        return predicate(payload)

    @staticmethod
    def _merge(current: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(current)
        if "currency" in patch:
            merged["currency"] = _choice(patch["currency"], "currency", CURRENCIES, upper=True)
        if "language" in patch:
            merged["language"] = _choice(patch["language"], "language", LANGUAGES)
        if "theme" in patch:
            merged["theme"] = _choice(patch["theme"], "theme", THEMES)
        if "notificationsEnabled" in patch:
            if not isinstance(patch["notificationsEnabled"], bool):
                raise ValidationError("notificationsEnabled must be a boolean")
            merged["notificationsEnabled"] = patch["notificationsEnabled"]

        profile_patch = patch.get("profile")
        if profile_patch is not None:
            if not isinstance(profile_patch, dict):
                raise ValidationError("profile must be an object")
            profile = dict(current["profile"])
            for field in ("name", "email", "avatarIcon"):
                if field in profile_patch:
                    value = validate_optional_str(profile_patch[field], field)
                    profile[field] = value or DEFAULT_PROFILE[field]
            merged["profile"] = profile
        return merged


def _choice(value: Any, field: str, allowed, *, upper: bool = False) -> str:
    if upper and isinstance(value, str):
        if value.strip().upper() not in allowed:
            raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
        return value.strip().upper()
    return validate_enum(value, field, allowed)
