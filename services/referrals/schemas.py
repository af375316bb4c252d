"""Input schemas for partner administration."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
HANDLE_PATTERN = r"^@?[\w.]+$"
PHONE_PATTERN = r"^\+?[\d\s\-\(\)]+$"
WEBSITE_PATTERN = r"^(https?://)?[\w-]+(\.[\w-]+)+(/\S*)?$"


class PartnerType(str, Enum):
    AFFILIATE = "affiliate"
    INFLUENCER = "influencer"
    VENDOR = "vendor"


class _PartnerFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    phone: Optional[str] = Field(default=None, max_length=20, pattern=PHONE_PATTERN)
    notes: Optional[str] = Field(default=None, max_length=500)
    instagram: Optional[str] = Field(default=None, max_length=64, pattern=HANDLE_PATTERN)
    tiktok: Optional[str] = Field(default=None, max_length=64, pattern=HANDLE_PATTERN)
    website: Optional[str] = Field(default=None, max_length=255, pattern=WEBSITE_PATTERN)

    @field_validator("phone", "notes", "instagram", "tiktok", "website", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PartnerCreate(_PartnerFields):
    name: str = Field(min_length=1, max_length=100)
    type: PartnerType
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class PartnerUpdate(_PartnerFields):
    """Mutable partner fields; the referral code cannot change."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[PartnerType] = None
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


__all__ = ["PartnerType", "PartnerCreate", "PartnerUpdate"]
