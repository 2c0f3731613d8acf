# backend/app/main.py
from functools import lru_cache
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .credentials import Credential, CredentialResolver
from .database import BackendClient
from .gemini_client import GeminiChatClient
from .logging_config import get_metrics_snapshot, log
from .scoring import ScoringHandler

app = FastAPI(title="X Viral Score API", version="1.0")

SCORE_PATH = "/api/v1/score"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=4)
def _build_handler(settings: Settings) -> ScoringHandler:
    def database_for(credential: Credential) -> BackendClient:
        return BackendClient(settings.backend_url, credential, timeout=settings.request_timeout)

    log.info("Scoring handler configured (backend: %s)", settings.backend_url)
    if not settings.gemini_api_key:
        log.warning("⚠️ No GOOGLE_API_KEY or GEMINI_API_KEY set; scoring requests will fail at the AI step.")
    return ScoringHandler(
        resolver=CredentialResolver(settings.service_role_key, settings.access_api_key),
        database_factory=database_for,
        ai_client=GeminiChatClient(settings.gemini_api_key),
    )


def get_handler(settings: Settings = Depends(get_settings)) -> ScoringHandler:
    return _build_handler(settings)


def cors_headers(settings: Settings) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.allowed_origin,
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def _json(status_code: int, body: Any, settings: Settings) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=cors_headers(settings))


# ==========================================================
#                      SCORING ENDPOINT
# ==========================================================


@app.options(SCORE_PATH)
async def score_preflight(settings: Settings = Depends(get_settings)):
    return Response(status_code=204, headers=cors_headers(settings))


@app.post(SCORE_PATH)
async def score_post(
    request: Request,
    settings: Settings = Depends(get_settings),
    handler: ScoringHandler = Depends(get_handler),
):
    """
    Score one post. Body: {"text"?: str, "imageUrls"?: [str]}.
    Errors come back as {"error", "details"?, "type"} with 400/401/5xx.
    """
    raw_body = await request.body()
    result = await handler.handle(raw_body, request.headers.get("Authorization"))
    return _json(result.status_code, result.body, settings)


@app.api_route(SCORE_PATH, methods=["GET", "HEAD", "PUT", "PATCH", "DELETE"])
async def score_wrong_method(settings: Settings = Depends(get_settings)):
    return _json(405, {"error": "Method not allowed"}, settings)


# ==========================================================
#                     METRICS + HEALTH
# ==========================================================


@app.get("/metrics")
async def metrics():
    return get_metrics_snapshot()


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app.main:app", host="127.0.0.1", port=8000, reload=True)
