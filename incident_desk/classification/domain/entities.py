"""
Classification Domain Entities
==============================

Immutable snapshots of the keyword vocabularies and the user directory,
plus the result type produced by the classifier.

Snapshots are replaced wholesale on reload, never mutated in place, so a
classification always reads one consistent version.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from incident_desk.config import DEFAULT_REFERENCES, TEAM_CODES, UserRole
from incident_desk.classification.domain.text import (
    normalize, is_similar
)


class ClassificationTier(str):
    """Which tier of the classifier produced the result."""
    EXPLICIT = "explicit"
    MENTION = "mention"
    KEYWORDS = "keywords"
    NONE = "none"


class Vocabulary(BaseModel):
    """A list of single words and multi-word phrases."""
    model_config = ConfigDict(frozen=True)

    words: Tuple[str, ...] = Field(default_factory=tuple)
    phrases: Tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("words", "phrases", mode="before")
    @classmethod
    def drop_blank(cls, v):
        if v is None:
            return ()
        return tuple(str(item) for item in v if str(item).strip())

    def matches(self, text: str) -> bool:
        """Phrase contained in the text, or a word equal to one of its tokens."""
        norm_text = normalize(text)
        if not norm_text:
            return False
        if any(normalize(p) and normalize(p) in norm_text for p in self.phrases):
            return True
        tokens = set(norm_text.split())
        return any(normalize(w) in tokens for w in self.words)

    def matches_fuzzy(self, text: str) -> bool:
        """Phrase contained in the text, or the whole message similar to a word."""
        norm_text = normalize(text)
        if not norm_text:
            return False
        if any(normalize(p) and normalize(p) in norm_text for p in self.phrases):
            return True
        return any(is_similar(norm_text, w) for w in self.words)


class TeamKeywords(Vocabulary):
    """Identifying vocabulary for one team."""


def _default_confirmation() -> Vocabulary:
    return Vocabulary(
        words=("listo", "hecho", "terminado", "resuelto", "completado", "ok"),
        phrases=("ya quedo", "ya esta", "quedo listo"),
    )


def _default_cancellation() -> Vocabulary:
    return Vocabulary(
        words=("cancelar", "cancelado", "cancela", "cancelada"),
        phrases=("ya no es necesario", "cancelar tarea", "ya no se requiere"),
    )


def _default_feedback_request() -> Vocabulary:
    return Vocabulary(
        words=("retro", "retroalimentacion", "feedback", "seguimiento"),
        phrases=("como va", "que paso con", "alguna novedad"),
    )


class KeywordSnapshot(BaseModel):
    """
    Keyword configuration loaded from YAML.

    This is a value object - immutable and defined by its attributes.
    """
    model_config = ConfigDict(frozen=True)

    teams: Dict[str, TeamKeywords] = Field(
        default_factory=dict,
        description="Identifying keywords per team"
    )
    references: Dict[str, Tuple[str, ...]] = Field(
        default_factory=lambda: {k: tuple(v) for k, v in DEFAULT_REFERENCES.items()},
        description="Explicit trigger terms per team"
    )
    confirmation: Vocabulary = Field(default_factory=_default_confirmation)
    cancellation: Vocabulary = Field(default_factory=_default_cancellation)
    feedback_request: Vocabulary = Field(default_factory=_default_feedback_request)

    @field_validator("teams", "references", mode="before")
    @classmethod
    def lowercase_team_codes(cls, v):
        if v is None:
            return {}
        return {str(team).strip().lower(): entry for team, entry in v.items()}

    @property
    def known_teams(self) -> List[str]:
        """Every team this snapshot can route to, in a stable order."""
        ordered = [t for t in TEAM_CODES]
        for team in list(self.references) + list(self.teams):
            if team not in ordered:
                ordered.append(team)
        return ordered


class UserRecord(BaseModel):
    """One entry of the user directory."""
    model_config = ConfigDict(frozen=True)

    display_name: str
    title: str = ""
    role: str = UserRole.USER
    team: Optional[str] = None

    @field_validator("team", mode="before")
    @classmethod
    def normalize_team(cls, v):
        if v is None or not str(v).strip():
            return None
        return str(v).strip().lower()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserDirectorySnapshot(BaseModel):
    """Immutable mapping of user id to directory record."""
    model_config = ConfigDict(frozen=True)

    users: Dict[str, UserRecord] = Field(default_factory=dict)

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def display_name(self, user_id: str) -> str:
        """Display name, falling back to the raw id for unknown users."""
        record = self.users.get(user_id)
        return record.display_name if record else user_id

    def display_with_title(self, user_id: str) -> str:
        record = self.users.get(user_id)
        if record is None:
            return user_id
        return f"{record.display_name}({record.title})" if record.title else record.display_name

    def team_of(self, user_id: str) -> Optional[str]:
        record = self.users.get(user_id)
        return record.team if record else None

    def is_admin(self, user_id: str) -> bool:
        record = self.users.get(user_id)
        return bool(record and record.is_admin)


@dataclass(frozen=True)
class ClassificationResult:
    """
    Outcome of classifying one report.

    ``teams`` is ordered and duplicate-free; empty means the reporter must
    be asked which department the report is for.
    """
    teams: Tuple[str, ...]
    tier: str
    scores: Dict[str, float] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.teams

    @classmethod
    def empty(cls) -> "ClassificationResult":
        return cls(teams=(), tier=ClassificationTier.NONE)


__all__ = [
    "ClassificationTier",
    "Vocabulary",
    "TeamKeywords",
    "KeywordSnapshot",
    "UserRecord",
    "UserDirectorySnapshot",
    "ClassificationResult",
]
