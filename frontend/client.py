# frontend/client.py
"""
Everything the Streamlit page does that is not drawing: input checks,
image uploads, calling the score API, and turning failures into one
readable message.
"""

import io
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import requests
from PIL import Image, UnidentifiedImageError

log = logging.getLogger("viral-score.frontend")

API_BASE = os.getenv("SCORE_API_BASE", "http://127.0.0.1:8000").rstrip("/")
API_SCORE = f"{API_BASE}/api/v1/score"
BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:7130").rstrip("/")
BACKEND_API_KEY = os.getenv("BACKEND_API_KEY", "ik_local_development_key")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "images")

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ESTIMATED_DURATION_S = 15.0
PROGRESS_CAP = 95

AUTH_ERROR_PATTERNS = (
    "401",
    "Unauthorized",
    "Invalid token",
    "AUTH_INVALID_CREDENTIALS",
    "token",
    "authentication",
    "credential",
)
AUTH_REQUIRED_MESSAGE = "Authentication required. Please ensure you are logged in or contact support."
GENERIC_FAILURE_MESSAGE = "Analysis failed. Please try again."

PRIORITY_FACTORS = (
    "hook_strength",
    "shareability",
    "media_boost",
    "emotional_intensity",
    "format_fit_for_x",
)


@dataclass
class SelectedImage:
    name: str
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class AnalysisOutcome:
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    image_urls: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.result is not None and self.error is None


class UploadError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def is_auth_failure(self) -> bool:
        return (
            self.status_code == 401
            or self.code == "AUTH_INVALID_CREDENTIALS"
            or "Invalid token" in (self.message or "")
        )


class ScoreRequestError(Exception):
    """Score API call failed; `payload` is the decoded error body, if any."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


# ---------- input checks ----------


def validate_selection(images: Sequence[SelectedImage]) -> Optional[str]:
    """Return a user-facing error for the first bad file, or None."""
    if any(not (img.content_type or "").startswith("image/") for img in images):
        return "Please upload image files only"
    for img in images:
        if img.size > MAX_IMAGE_BYTES:
            return f"Image too large: {img.name}. Max size is 5MB"
    for img in images:
        try:
            with Image.open(io.BytesIO(img.data)) as opened:
                opened.verify()
        except (UnidentifiedImageError, OSError):
            return f"Could not read image: {img.name}"
    return None


# ---------- error handling ----------


def _unwrap(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        inner = value.get("error") or value.get("message")
        if isinstance(inner, dict):
            return _unwrap(inner)
        return str(inner) if inner else None
    if isinstance(value, str):
        return value or None
    return None


def extract_error_message(error: Any) -> str:
    """
    Best human-readable message out of whatever failed: a ScoreRequestError,
    a decoded {error, details} body, or a plain exception / string.
    A message that is itself JSON gets its error (and details) unpacked.
    """
    message = None
    if isinstance(error, ScoreRequestError):
        message = _unwrap(error.payload) or error.message
    elif isinstance(error, dict):
        message = _unwrap(error) or _unwrap(error.get("details"))
    elif isinstance(error, BaseException):
        message = str(error) or None
    elif isinstance(error, str):
        message = error or None
    message = message or GENERIC_FAILURE_MESSAGE

    if "{" in message and "}" in message:
        try:
            parsed = json.loads(message)
        except ValueError:
            return message
        if isinstance(parsed, dict) and parsed.get("error"):
            message = _unwrap(parsed) or message
            if parsed.get("details"):
                message += f": {parsed['details']}"
    return message


def is_auth_message(message: str) -> bool:
    lowered = message.lower()
    return any(pattern.lower() in lowered for pattern in AUTH_ERROR_PATTERNS)


def classify_error(error: Any) -> str:
    message = extract_error_message(error)
    status = getattr(error, "status_code", None)
    if status == 401 or is_auth_message(message):
        return AUTH_REQUIRED_MESSAGE
    return message


def db_warning(result: Dict[str, Any]) -> Optional[str]:
    save_error = result.get("db_save_error")
    if not save_error:
        return None
    if not isinstance(save_error, dict):
        save_error = {"message": str(save_error)}
    if save_error.get("code") == "42501":
        return (
            "Permission denied: Cannot save to database. "
            "Please set SERVICE_ROLE_KEY in the scoring service environment."
        )
    return f"Database operation failed: {save_error.get('message') or 'Unknown error'}"


# ---------- progress + presentation ----------


def progress_percent(elapsed_s: float, estimated_s: float = ESTIMATED_DURATION_S) -> int:
    if estimated_s <= 0:
        return PROGRESS_CAP
    return max(0, min(int(elapsed_s / estimated_s * 100), PROGRESS_CAP))


def progress_label(progress: int, has_images: bool) -> str:
    if progress < 20:
        return "Uploading images..." if has_images else "Preparing analysis..."
    if progress < 50:
        return "Sending request..."
    if progress < 80:
        return "AI analyzing content..."
    if progress < 100:
        return "Processing results..."
    return "Complete!"


def format_factor_name(name: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in name.split("_"))


def top_factors(factors: Optional[Dict[str, Any]], limit: int = 5) -> List[Tuple[str, int]]:
    if not factors:
        return []
    picked = [(k, int(v or 0)) for k, v in factors.items() if k in PRIORITY_FACTORS]
    picked.sort(key=lambda kv: kv[1], reverse=True)
    return picked[:limit]


def score_band(score: Optional[float]) -> str:
    score = score or 0
    if score >= 80:
        return "hot"
    if score >= 60:
        return "warm"
    if score >= 40:
        return "mild"
    return "cool"


# ---------- collaborators ----------


class StorageClient:
    """Object storage on the hosted backend; returns public URLs."""

    def __init__(self, base_url: str = BACKEND_URL, api_key: str = BACKEND_API_KEY,
                 bucket: str = STORAGE_BUCKET, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.session = session or requests.Session()

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        url = f"{self.base_url}/api/storage/buckets/{self.bucket}/objects/{quote(key)}"
        try:
            r = self.session.put(
                url,
                files={"file": (key, data, content_type)},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except requests.exceptions.RequestException as e:
            raise UploadError(f"Could not reach storage: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = {}
        if not r.ok:
            body = body if isinstance(body, dict) else {}
            raise UploadError(
                body.get("message") or body.get("error") or r.text or f"HTTP {r.status_code}",
                status_code=body.get("statusCode") or r.status_code,
                code=body.get("error") if isinstance(body.get("error"), str) else None,
            )
        public_url = body.get("url") if isinstance(body, dict) else None
        if not public_url:
            raise UploadError("Storage did not return a URL", status_code=r.status_code)
        return public_url


class ScoreClient:
    def __init__(self, api_url: str = API_SCORE, storage: Optional[StorageClient] = None,
                 api_key: Optional[str] = BACKEND_API_KEY, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.storage = storage or StorageClient()
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def upload_images(self, images: Sequence[SelectedImage]) -> Tuple[List[str], List[str]]:
        """
        Upload one at a time. Returns (urls, warnings); a failed file is
        skipped, except an auth failure, which is raised.
        """
        urls: List[str] = []
        warnings: List[str] = []
        for i, img in enumerate(images):
            key = f"{int(time.time() * 1000)}-{i}-{img.name}"
            log.info("Uploading image %d/%d: %s (%.2f KB)", i + 1, len(images), img.name, img.size / 1024)
            try:
                url = self.storage.upload(key, img.data, img.content_type)
            except UploadError as e:
                if e.is_auth_failure:
                    raise UploadError(
                        f"Failed to upload {img.name}: Authentication failed",
                        status_code=401,
                        code=e.code,
                    ) from e
                log.error("Error uploading %s: %s", img.name, e.message)
                warnings.append(f"Failed to upload: {img.name}. {e.message}")
                continue
            urls.append(url)
        return urls, warnings

    def invoke(self, text: str, image_urls: List[str]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            r = self.session.post(
                self.api_url,
                json={"text": text, "imageUrls": image_urls},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ScoreRequestError(f"Could not reach backend: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = None
        if not r.ok:
            raise ScoreRequestError(r.text or f"HTTP {r.status_code}", status_code=r.status_code, payload=body)
        if not body:
            raise ScoreRequestError("No data returned from analysis", status_code=r.status_code)
        return body

    def analyze(self, text: str, images: Sequence[SelectedImage] = ()) -> AnalysisOutcome:
        text = (text or "").strip()
        if not text and not images:
            return AnalysisOutcome(error="Please enter text content or upload images")

        problem = validate_selection(images)
        if problem:
            return AnalysisOutcome(error=problem)

        outcome = AnalysisOutcome()
        try:
            if images:
                try:
                    outcome.image_urls, outcome.warnings = self.upload_images(images)
                except UploadError as e:
                    outcome.error = e.message
                    return outcome

            result = self.invoke(text, outcome.image_urls)
        except ScoreRequestError as e:
            log.error("Error analyzing content: %s", e.message)
            outcome.error = classify_error(e)
            return outcome

        warning = db_warning(result)
        if warning:
            if result.get("overall_score") is None:
                outcome.error = warning
                return outcome
            outcome.warnings.append(warning)
        outcome.result = result
        return outcome
