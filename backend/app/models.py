# backend/app/models.py

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import SchemaError

FACTOR_NAMES = (
    "hook_strength",
    "clarity_and_structure",
    "emotional_intensity",
    "controversy_polarization",
    "novelty_originality",
    "shareability",
    "format_fit_for_x",
    "media_boost",
    "author_leverage",
    "trend_alignment",
)

MAX_DETAILED_REASONS = 4
MAX_IMPROVEMENT_SUGGESTIONS = 3

RecordId = Union[str, int]


class PredictedReach(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EXPLOSIVE = "Explosive"

    @classmethod
    def parse(cls, value: Any) -> Optional["PredictedReach"]:
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return None


class AnalysisRequest(BaseModel):
    text: str = ""
    image_urls: List[str] = Field(default_factory=list)

    @classmethod
    def from_body(cls, body: Any) -> "AnalysisRequest":
        """Coerce an arbitrary JSON body; wrong types are treated as absent."""
        if not isinstance(body, dict):
            body = {}
        text = body.get("text")
        text = text.strip() if isinstance(text, str) else ""
        urls = body.get("imageUrls")
        if not isinstance(urls, list):
            urls = []
        urls = [u.strip() for u in urls if isinstance(u, str) and u.strip()]
        return cls(text=text, image_urls=urls)

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.image_urls


class AnalysisRecord(BaseModel):
    """One row of the `analyses` table."""

    model_config = ConfigDict(extra="allow")

    id: Optional[RecordId] = None
    user_id: Optional[str] = None
    text_content: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    overall_score: Optional[int] = None
    predicted_reach: Optional[PredictedReach] = None
    factors: Optional[Dict[str, int]] = None
    short_explanation: Optional[str] = None
    detailed_reasons: List[str] = Field(default_factory=list)
    improvement_suggestions: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def pending(cls, request: AnalysisRequest, user_id: Optional[str]) -> "AnalysisRecord":
        """A not-yet-inserted record: input fields only, result fields empty."""
        return cls(
            user_id=user_id,
            text_content=request.text or None,
            image_urls=list(request.image_urls),
        )

    def insert_row(self) -> Dict[str, Any]:
        # id and timestamps are assigned by the database
        return self.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})


def _score(value: Any, default: Optional[int] = 0) -> Optional[int]:
    # bools are ints in Python; a model answering true/false gave no score
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if not isinstance(value, (int, float)):
        return default
    return int(round(max(0.0, min(float(value), 100.0))))


def _string_list(value: Any, limit: int) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(x).strip() for x in value if str(x).strip()][:limit]


class AnalysisPayload(BaseModel):
    """Validated and normalised AI reply."""

    model_config = ConfigDict(frozen=True)

    overall_score: int
    predicted_reach: Optional[PredictedReach] = None
    factors: Dict[str, int]
    short_explanation: Optional[str] = None
    detailed_reasons: List[str] = Field(default_factory=list)
    improvement_suggestions: List[str] = Field(default_factory=list)

    @classmethod
    def from_ai(cls, data: Any) -> "AnalysisPayload":
        if not isinstance(data, dict):
            raise SchemaError(
                "Invalid AI response structure",
                details=f"Expected a JSON object, got {type(data).__name__}",
            )
        missing = [key for key in ("overall_score", "factors") if data.get(key) is None]
        if missing:
            raise SchemaError(
                "Invalid AI response structure",
                details=f"Missing required field(s): {', '.join(missing)}",
            )

        overall = _score(data["overall_score"], default=None)
        if overall is None:
            raise SchemaError(
                "Invalid AI response structure",
                details=f"overall_score is not a number: {data['overall_score']!r}",
            )
        raw_factors = data["factors"]
        if not isinstance(raw_factors, dict):
            raise SchemaError(
                "Invalid AI response structure",
                details="factors must be an object",
            )

        explanation = data.get("short_explanation")
        explanation = str(explanation).strip() if explanation is not None else None

        return cls(
            overall_score=overall,
            predicted_reach=PredictedReach.parse(data.get("predicted_reach")),
            factors={name: _score(raw_factors.get(name)) for name in FACTOR_NAMES},
            short_explanation=explanation or None,
            detailed_reasons=_string_list(data.get("detailed_reasons"), MAX_DETAILED_REASONS),
            improvement_suggestions=_string_list(
                data.get("improvement_suggestions"), MAX_IMPROVEMENT_SUGGESTIONS
            ),
        )

    def to_record_patch(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class DbSaveError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    code: Optional[str] = None
    details: Optional[Any] = None
    step: str = "update"


class AnalysisResult(BaseModel):
    """What the handler returns on success."""

    model_config = ConfigDict(frozen=True)

    overall_score: int
    predicted_reach: Optional[PredictedReach] = None
    factors: Dict[str, int]
    short_explanation: Optional[str] = None
    detailed_reasons: List[str] = Field(default_factory=list)
    improvement_suggestions: List[str] = Field(default_factory=list)
    text_content: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    analysis_id: RecordId
    db_saved: bool = False
    db_save_error: Optional[DbSaveError] = None

    @classmethod
    def build(
        cls,
        payload: AnalysisPayload,
        request: AnalysisRequest,
        analysis_id: RecordId,
        save_error: Optional[DbSaveError] = None,
    ) -> "AnalysisResult":
        return cls(
            **payload.model_dump(),
            text_content=request.text or None,
            image_urls=list(request.image_urls),
            analysis_id=analysis_id,
            db_saved=save_error is None,
            db_save_error=save_error,
        )
