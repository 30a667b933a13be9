### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Company Schema -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Company Schema

A company is one tenant: an independent shop with its own catalog,
sales history and credentials. Stored as an array in
``companies/companies.json``.
"""

import math
import uuid
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator, model_validator

from petshop.schemas.common import ensure_utc, format_iso8601, utcnow

# Length of the free trial for newly registered companies
TRIAL_DAYS = 10


def new_company_id() -> str:
    """Generate a new opaque company id"""
    return str(uuid.uuid4()).upper()


class Company(BaseModel):
    """
    Company (tenant) record.

    Field names are snake_case in Python and camelCase on the wire.
    The password is never stored in plaintext; ``encrypted_password`` is
    base64 of the AES-GCM nonce, ciphertext and tag.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_company_id)
    name: str
    username: str
    encrypted_password: str = Field(alias="encryptedPassword")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    trial_expires_at: datetime | None = Field(default=None, alias="trialExpiresAt")

    @field_validator("created_at", "trial_expires_at")
    @classmethod
    def normalize_timezone(cls, v: datetime | None) -> datetime | None:
        """Store all timestamps as aware UTC datetimes"""
        return ensure_utc(v) if v is not None else None

    @model_validator(mode="after")
    def default_trial_window(self) -> "Company":
        """Records written before trials existed get the standard window"""
        if self.trial_expires_at is None:
            self.trial_expires_at = self.created_at + timedelta(days=TRIAL_DAYS)
        return self

    @field_serializer("created_at", "trial_expires_at")
    def serialize_date(self, v: datetime) -> str:
        return format_iso8601(v)

    def is_trial_expired(self, now: datetime | None = None) -> bool:
        """A trial is expired once its expiry time is not in the future"""
        now = ensure_utc(now) if now else utcnow()
        return self.trial_expires_at <= now

    def remaining_trial_days(self, now: datetime | None = None) -> int:
        """Whole days left in the trial (0 when expired)"""
        now = ensure_utc(now) if now else utcnow()
        seconds = (self.trial_expires_at - now).total_seconds()
        if seconds <= 0:
            return 0
        return math.ceil(seconds / 86400)

    def __repr__(self):
        return f"<Company(id='{self.id}', username='{self.username}')>"


COMPANY_LIST = TypeAdapter(list[Company])
