# backend/app/gemini_client.py

import io
from typing import Any, Dict, List, Optional

import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from PIL import Image, UnidentifiedImageError

from .errors import looks_like_auth_failure
from .logging_config import log

DEFAULT_IMAGE_MIME = "image/jpeg"


class AICompletionError(Exception):
    """Completion call failed. `status_code` is the upstream HTTP status, if any."""

    def __init__(self, message: str, status_code: Optional[int] = None, auth_failure: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self._auth_failure = auth_failure

    @property
    def is_auth_failure(self) -> bool:
        return self._auth_failure or self.status_code == 401 or looks_like_auth_failure(self.message)


def _sniff_mime(data: bytes, fallback: Optional[str]) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            mime = Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        mime = None
    if mime:
        return mime
    if fallback and fallback.startswith("image/"):
        return fallback.split(";")[0].strip()
    return DEFAULT_IMAGE_MIME


class ImageFetchError(AICompletionError):
    """
    An attached image could not be downloaded. The message carries the
    URL (upload keys embed millisecond timestamps), so auth is decided by
    the HTTP status alone.
    """

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code == 401


def fetch_image_part(url: str, timeout: float = 20.0) -> types.Part:
    """Download a public image URL and wrap it as an inline Gemini part."""
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise ImageFetchError(f"Could not fetch image {url}: {e}") from e
    if not resp.ok:
        raise ImageFetchError(f"Could not fetch image {url}: HTTP {resp.status_code}", status_code=resp.status_code)
    mime = _sniff_mime(resp.content, resp.headers.get("Content-Type"))
    return types.Part.from_bytes(data=resp.content, mime_type=mime)


class GeminiChatClient:
    """
    Chat-completion style front for Gemini.

    Takes OpenAI-shaped messages ({role, content, images: [{url}]}) and
    returns {"choices": [{"message": {"role", "content"}, "finish_reason"}]}
    so the handler does not depend on the SDK's response types.
    """

    def __init__(self, api_key: Optional[str], client: Optional[Any] = None, image_timeout: float = 20.0):
        self.api_key = api_key
        self._client = client
        self.image_timeout = image_timeout

    @property
    def client(self) -> Any:
        # created on first use so a missing key surfaces as a JSON error response
        if self._client is None:
            if not self.api_key:
                raise AICompletionError("Missing GOOGLE_API_KEY or GEMINI_API_KEY environment variable.")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _to_contents(self, messages: List[Dict[str, Any]]):
        system_parts: List[str] = []
        contents: List[types.Content] = []
        for message in messages:
            role = message.get("role", "user")
            text = message.get("content") or ""
            if role == "system":
                system_parts.append(text)
                continue
            parts = [types.Part.from_text(text=text)]
            for image in message.get("images") or []:
                log.info("Attaching image for AI: %s", image["url"])
                parts.append(fetch_image_part(image["url"], timeout=self.image_timeout))
            contents.append(types.Content(role="model" if role == "assistant" else "user", parts=parts))
        return "\n\n".join(system_parts) or None, contents

    def create_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, Any]:
        client = self.client
        system_instruction, contents = self._to_contents(messages)
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_tokens,
        )
        try:
            resp = client.models.generate_content(model=model, contents=contents, config=config)
        except genai_errors.APIError as e:
            message = e.message or str(e)
            auth = e.code in (401, 403) or "API_KEY_INVALID" in str(e)
            raise AICompletionError(message, status_code=e.code, auth_failure=auth) from e

        finish_reason = None
        candidates = getattr(resp, "candidates", None) or []
        if candidates and getattr(candidates[0], "finish_reason", None) is not None:
            finish_reason = str(candidates[0].finish_reason)

        usage = getattr(resp, "usage_metadata", None)
        return {
            "model": model,
            "choices": [
                {
                    "message": {"role": "assistant", "content": getattr(resp, "text", None)},
                    "finish_reason": finish_reason,
                }
            ],
            "usage": {
                "prompt_tokens": getattr(usage, "prompt_token_count", None),
                "completion_tokens": getattr(usage, "candidates_token_count", None),
            },
        }
