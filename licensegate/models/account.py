"""
Account Model.

One entry of the authorized-user roster.  The roster is fetched as a
JSON array of these objects.  Keys are matched case-insensitively
(``username``, ``Username`` and ``USERNAME`` are the same field) because
older rosters were written for a case-insensitive deserializer.

Passwords are stored and compared in cleartext.  This is a known
weakness of the roster format, kept for compatibility with existing
roster files.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone

from pydantic import BaseModel, Field, field_validator, model_validator


class Account(BaseModel):
    """Represents one authorized user on the roster.

    ``expires`` is normalised to an aware UTC ``datetime``.  A date-only
    value (``"2026-12-31"``) means midnight UTC on that day; the account
    remains valid for the whole of that day because expiry is compared
    at date granularity (see ``expires_on``).
    """

    username: str
    password: str = Field(default="", repr=False)
    active: bool = False
    expires: datetime

    model_config = {"from_attributes": True, "frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _fold_keys(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        folded: dict[str, object] = {}
        for key, value in data.items():
            # First spelling wins when a key appears more than once.
            folded.setdefault(key.casefold() if isinstance(key, str) else key, value)
        return folded

    @field_validator("expires", mode="before")
    @classmethod
    def _parse_expires(cls, value: object) -> object:
        if isinstance(value, str) and len(value.strip()) == 10:
            # Date-only ISO string.
            return datetime.combine(date.fromisoformat(value.strip()), time.min, tzinfo=timezone.utc)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.min, tzinfo=timezone.utc)
        return value

    @field_validator("expires")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def key(self) -> str:
        """Case-insensitive roster key."""
        return self.username.strip().casefold()

    @property
    def expires_on(self) -> date:
        """UTC calendar date on which the account expires (inclusive)."""
        return self.expires.date()

    def is_expired(self, today: date) -> bool:
        return self.expires_on < today
