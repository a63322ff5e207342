"""
Data models for user resolution.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AgeVerificationStatus(str, Enum):
    """Values of the upstream ``ageVerificationStatus`` field."""
    VERIFIED_18_PLUS = "18+"
    VERIFIED = "verified"
    HIDDEN = "hidden"


class AgeClassification(str, Enum):
    """Relay-side classification of a resolved account."""
    VERIFIED_ADULT = "verified-adult"
    UNDISCLOSED = "undisclosed"


@dataclass(frozen=True)
class CandidateUser:
    """A search hit."""
    id: str
    display_name: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CandidateUser":
        return cls(id=str(payload.get("id", "")), display_name=payload.get("displayName") or "")


@dataclass(frozen=True)
class ResolvedUser:
    """Full profile of the exact-match candidate."""
    id: str
    display_name: str
    age_verification_status: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ResolvedUser":
        return cls(
            id=str(payload.get("id", "")),
            display_name=payload.get("displayName") or "",
            age_verification_status=payload.get("ageVerificationStatus"),
        )

    @property
    def classification(self) -> AgeClassification:
        # Only the explicit 18+ marker counts; "hidden" means undisclosed, not adult.
        if self.age_verification_status == AgeVerificationStatus.VERIFIED_18_PLUS.value:
            return AgeClassification.VERIFIED_ADULT
        return AgeClassification.UNDISCLOSED


@dataclass(frozen=True)
class AdultStatusResult:
    """Outcome of one resolution."""
    display_name: str
    classification: AgeClassification

    @property
    def is_verified_adult(self) -> bool:
        return self.classification is AgeClassification.VERIFIED_ADULT

    def to_response(self) -> "AdultStatusResponse":
        return AdultStatusResponse(
            age_verified="true" if self.is_verified_adult else "false",
            username=self.display_name,
        )


class AdultStatusResponse(BaseModel):
    """Success body of the check endpoint; the flag is a string literal."""

    model_config = ConfigDict(populate_by_name=True)

    age_verified: str = Field(alias="age-verified")
    username: str
