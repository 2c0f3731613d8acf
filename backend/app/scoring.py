# backend/app/scoring.py

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from .credentials import Credential, CredentialResolver
from .database import BackendError
from .errors import (
    AUTH_FAILED_MESSAGE,
    AuthError,
    ParseError,
    SchemaError,
    ScoreError,
    UpstreamError,
    ValidationError,
    classify_unexpected,
)
from .gemini_client import AICompletionError
from .json_recovery import recover_json
from .logging_config import inc_metric, log, measure, record_response, set_metric
from .models import AnalysisPayload, AnalysisRecord, AnalysisRequest, AnalysisResult, DbSaveError
from .prompts import build_messages

ANALYSES_TABLE = "analyses"
MODEL_NAME = "gemini-2.0-flash"
TEMPERATURE = 0.7
MAX_TOKENS = 1200
RAW_PREVIEW_LIMIT = 2000


class Database(Protocol):
    def insert(self, table: str, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def update(self, table: str, record_id: Any, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def current_user_id(self) -> Optional[str]:
        ...


class CompletionClient(Protocol):
    def create_completion(self, model: str, messages: list, temperature: float, max_tokens: int) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class HandlerResponse:
    status_code: int
    body: Optional[Dict[str, Any]]


def raw_preview(text: str, limit: int = RAW_PREVIEW_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def completion_content(completion: Any) -> Optional[str]:
    if not isinstance(completion, dict):
        return None
    choices = completion.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str) and content.strip():
        return content
    return None


def parse_body(raw_body: bytes) -> AnalysisRequest:
    if not raw_body or not raw_body.strip():
        body: Any = {}
    else:
        try:
            body = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Request body must be valid JSON", details=str(e))
    request = AnalysisRequest.from_body(body)
    if request.is_empty:
        raise ValidationError("Please provide text content or images (or both)")
    return request


class ScoringHandler:
    """
    Orchestrates one scoring request:
    validate -> resolve identity -> create pending record -> prompt ->
    AI completion -> parse -> validate -> update record -> respond.

    Every step runs sequentially; blocking collaborator calls are pushed
    to a worker thread so the event loop stays free.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        database_factory: Callable[[Credential], Database],
        ai_client: CompletionClient,
        model: str = MODEL_NAME,
    ):
        self.resolver = resolver
        self.database_factory = database_factory
        self.ai_client = ai_client
        self.model = model

    async def handle(self, raw_body: bytes, authorization: Optional[str]) -> HandlerResponse:
        inc_metric("score_requests_total")
        try:
            request = parse_body(raw_body)
            result = await self._score(request, authorization)
        except ScoreError as e:
            record_response(e.status_code)
            log.error("❌ Scoring failed (%s %s): %s", e.status_code, e.error_type, e.message)
            return HandlerResponse(e.status_code, e.to_body())
        except Exception as e:
            log.exception("💥 Unhandled error in score handler")
            error = classify_unexpected(e)
            record_response(error.status_code)
            return HandlerResponse(error.status_code, error.to_body())

        record_response(200)
        set_metric("last_overall_score", result.overall_score)
        return HandlerResponse(200, result.model_dump(mode="json"))

    async def _score(self, request: AnalysisRequest, authorization: Optional[str]) -> AnalysisResult:
        log.info(
            "🚀 Analyzing post content (text length: %d, images: %d)",
            len(request.text),
            len(request.image_urls),
        )

        credential = self.resolver.resolve(authorization)
        if not credential.is_user and not self.resolver.has_service_key:
            log.warning(
                "⚠️ No SERVICE_ROLE_KEY configured; anonymous inserts may be rejected by row-level security."
            )
        db = self.database_factory(credential)
        user_id = await asyncio.to_thread(db.current_user_id)
        log.info("Credential: %s, user: %s", credential.kind.value, user_id or "anonymous")

        analysis_id = await self._create_record(db, request, user_id, credential)

        completion = await self._complete(request)
        content = completion_content(completion)
        if content is None:
            raise self._missing_content_error(completion)
        log.info("AI response received. Length: %d", len(content))

        try:
            parsed = recover_json(content)
        except ValueError as e:
            raise ParseError(
                "Failed to parse AI response",
                details=str(e),
                extra={
                    "rawResponsePreview": raw_preview(content),
                    "rawResponseLength": len(content),
                },
            )

        try:
            payload = AnalysisPayload.from_ai(parsed)
        except SchemaError:
            await self._mark_invalid(db, analysis_id)
            raise

        save_error = await self._save_result(db, analysis_id, payload)
        return AnalysisResult.build(payload, request, analysis_id, save_error)

    async def _create_record(
        self,
        db: Database,
        request: AnalysisRequest,
        user_id: Optional[str],
        credential: Credential,
    ) -> Any:
        row = AnalysisRecord.pending(request, user_id).insert_row()
        try:
            with measure("db_insert"):
                created = await asyncio.to_thread(db.insert, ANALYSES_TABLE, row)
        except BackendError as e:
            raise self._create_error(e, credential)

        if not created or created.get("id") is None:
            raise UpstreamError(
                "Database create returned no data",
                details="Insert succeeded but no record returned",
                error_type="DatabaseError",
            )
        log.info("✅ Database record created: %s", created["id"])
        return created["id"]

    def _create_error(self, e: BackendError, credential: Credential) -> ScoreError:
        log.error("❌ Failed to create database record: code=%s message=%s", e.code, e.message)
        if not e.is_permission_denied:
            return UpstreamError(
                "Failed to create database record",
                details=e.message or e.code or "Unknown error",
                extra={"code": e.code, "hint": e.hint, "db_error": e.as_dict()},
                error_type="DatabaseError",
            )

        details = "Row level security policy prevented the insert. "
        if not credential.is_user and not self.resolver.has_service_key:
            details += "Anonymous users require SERVICE_ROLE_KEY to be set in the scoring service environment. "
        details += f"Error: {e.message}"
        return UpstreamError(
            "Permission denied: Database record creation failed",
            details=details,
            extra={
                "code": e.code,
                "hint": e.hint or "Set the SERVICE_ROLE_KEY environment variable for the scoring service",
                "db_error": e.as_dict(),
                "troubleshooting": {
                    "issue": "Row level security policy blocking anonymous insert",
                    "solution": "Set the SERVICE_ROLE_KEY environment variable for the scoring service",
                    "alternative": "Or change the analyses table policies to allow anonymous inserts",
                },
            },
            error_type="DatabaseError",
        )

    async def _complete(self, request: AnalysisRequest) -> Dict[str, Any]:
        messages = build_messages(request)
        log.info("Calling AI model %s (images: %d)", self.model, len(request.image_urls))
        try:
            with measure("ai_completion"):
                return await asyncio.to_thread(
                    self.ai_client.create_completion,
                    self.model,
                    messages,
                    TEMPERATURE,
                    MAX_TOKENS,
                )
        except AICompletionError as e:
            inc_metric("ai_errors_total")
            if e.is_auth_failure:
                raise AuthError(AUTH_FAILED_MESSAGE, details=e.message)
            raise UpstreamError("AI service error", details=e.message, status_code=e.status_code, error_type="AIError")

    @staticmethod
    def _missing_content_error(completion: Any) -> ScoreError:
        completion = completion if isinstance(completion, dict) else {}
        if completion.get("error"):
            return UpstreamError("AI API error", details=completion["error"], error_type="AI_API_ERROR")
        choices = completion.get("choices") or []
        return UpstreamError(
            "AI did not return a response",
            details="No content in completion.choices[0].message",
            extra={
                "completionStructure": {
                    "hasChoices": bool(choices),
                    "choicesLength": len(choices),
                    "firstChoice": choices[0] if choices else None,
                }
            },
            error_type="AIError",
        )

    async def _mark_invalid(self, db: Database, analysis_id: Any) -> None:
        try:
            await asyncio.to_thread(
                db.update,
                ANALYSES_TABLE,
                analysis_id,
                {"overall_score": None, "error": "Invalid AI response structure"},
            )
        except Exception as e:
            log.error("Failed to update record %s with error: %s", analysis_id, e)

    async def _save_result(self, db: Database, analysis_id: Any, payload: AnalysisPayload) -> Optional[DbSaveError]:
        try:
            with measure("db_update"):
                updated = await asyncio.to_thread(db.update, ANALYSES_TABLE, analysis_id, payload.to_record_patch())
        except BackendError as e:
            inc_metric("db_save_failures_total")
            log.warning("⚠️ Analysis completed but database update failed: %s", e.message)
            return DbSaveError(message=e.message or "Database update failed", code=e.code, details=e.details)
        except Exception as e:
            inc_metric("db_save_failures_total")
            log.warning("⚠️ Analysis completed but database update raised: %s", e)
            return DbSaveError(message=str(e) or "Database update exception", details=type(e).__name__)

        if not updated:
            inc_metric("db_save_failures_total")
            return DbSaveError(message="Database update returned no data", code="NO_DATA_RETURNED")

        log.info("✅ Database record %s updated (score: %s)", analysis_id, payload.overall_score)
        return None
