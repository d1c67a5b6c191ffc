from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lifegrass.services.weeks import is_week_key

MIN_BIRTH_YEAR = 1920
MAX_BIRTH_YEAR = 2020


# =========================
# JOURNAL / USER STATE
# =========================
class JournalEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    keywords: str = ""
    text: str = ""
    ai_comment: Optional[str] = Field(default=None, alias="aiComment")

    def has_content(self) -> bool:
        return bool(self.keywords.strip() or self.text.strip())

    def same_content(self, other: "JournalEntry | None") -> bool:
        return other is not None and other.keywords == self.keywords and other.text == self.text

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class UserState(BaseModel):
    """The synchronized part of a user's document (what clients send and read)."""

    model_config = ConfigDict(populate_by_name=True)

    birth_year: Optional[int] = Field(
        default=None, alias="birthYear", ge=MIN_BIRTH_YEAR, le=MAX_BIRTH_YEAR
    )
    filled_weeks: list[str] = Field(default_factory=list, alias="filledWeeks")
    journal: dict[str, JournalEntry] = Field(default_factory=dict)

    @field_validator("filled_weeks")
    @classmethod
    def _check_filled(cls, v: list[str]) -> list[str]:
        bad = [k for k in v if not is_week_key(k)]
        if bad:
            raise ValueError(f"invalid week keys: {bad[:3]}")
        return v

    @field_validator("journal")
    @classmethod
    def _check_journal(cls, v: dict[str, JournalEntry]) -> dict[str, JournalEntry]:
        bad = [k for k in v if not is_week_key(k)]
        if bad:
            raise ValueError(f"invalid journal keys: {bad[:3]}")
        return v

    def is_empty(self) -> bool:
        return self.birth_year is None and not self.filled_weeks and not self.journal

    def consistency_gaps(self) -> set[str]:
        """Week keys present in only one of ``filled_weeks`` and ``journal``."""
        return set(self.filled_weeks) ^ set(self.journal)

    def to_wire(self) -> dict:
        return {
            "birthYear": self.birth_year,
            "filledWeeks": list(self.filled_weeks),
            "journal": {k: e.to_wire() for k, e in self.journal.items()},
        }


class UserRecord(UserState):
    """Full stored document, one per username."""

    password_hash: Optional[str] = Field(default=None, alias="passwordHash")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def state(self) -> UserState:
        return UserState(
            birth_year=self.birth_year,
            filled_weeks=list(self.filled_weeks),
            journal=dict(self.journal),
        )

    def public_document(self) -> dict:
        # admin view: everything except the credential
        doc = self.to_wire()
        doc["updatedAt"] = self.updated_at.isoformat() if self.updated_at else None
        return doc

    def to_document(self) -> dict:
        doc = {"passwordHash": self.password_hash}
        doc.update(self.public_document())
        return doc


# =========================
# AUTH
# =========================
class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = ""
    password: str = ""
    birth_year: Optional[int] = Field(default=None, alias="birthYear")


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class TokenResponse(BaseModel):
    ok: bool = True
    token: str


class ExistsResponse(BaseModel):
    exists: bool


class OkResponse(BaseModel):
    ok: bool = True


class UsersResponse(BaseModel):
    users: list[str]


# =========================
# AI TEXT
# =========================
class ReflectionRequest(BaseModel):
    keywords: str = ""
    text: str = ""
    year: Optional[int] = None
    week: Optional[int] = None


class CommentResponse(BaseModel):
    comment: str
    source: str


class RecommendResponse(BaseModel):
    recommendation: str
    source: str
