import io
import json
from unittest.mock import MagicMock

import pytest
import requests
from PIL import Image

from frontend.client import (
    AUTH_REQUIRED_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    MAX_IMAGE_BYTES,
    PROGRESS_CAP,
    ScoreClient,
    ScoreRequestError,
    SelectedImage,
    StorageClient,
    UploadError,
    classify_error,
    db_warning,
    extract_error_message,
    format_factor_name,
    progress_label,
    progress_percent,
    score_band,
    top_factors,
    validate_selection,
)


def png(name="a.png") -> SelectedImage:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (0, 128, 255)).save(buf, format="PNG")
    return SelectedImage(name=name, data=buf.getvalue(), content_type="image/png")


def http_response(status=200, payload=None, text=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = 200 <= status < 300
    if payload is None:
        resp.json.side_effect = ValueError("no json")
        resp.text = text or ""
    else:
        resp.json.return_value = payload
        resp.text = text if text is not None else json.dumps(payload)
    return resp


class FakeStorage:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.keys = []

    def upload(self, key, data, content_type):
        self.keys.append(key)
        for name, error in self.failures.items():
            if key.endswith(name):
                raise error
        return f"https://cdn.test/{key}"


def score_client(storage=None, response=None):
    session = MagicMock(spec=requests.Session)
    session.post.return_value = response or http_response(200, {"overall_score": 70, "db_saved": True})
    return ScoreClient(api_url="http://api.test/api/v1/score", storage=storage or FakeStorage(),
                       api_key="anon", session=session), session


# ---------- input checks ----------


def test_valid_selection_passes():
    assert validate_selection([png(), png("b.png")]) is None


def test_non_image_is_rejected():
    doc = SelectedImage(name="notes.txt", data=b"hello", content_type="text/plain")
    assert validate_selection([png(), doc]) == "Please upload image files only"


def test_oversized_image_is_rejected():
    big = SelectedImage(name="huge.png", data=b"\0" * (MAX_IMAGE_BYTES + 1), content_type="image/png")
    assert validate_selection([big]) == "Image too large: huge.png. Max size is 5MB"


def test_corrupt_image_is_rejected():
    broken = SelectedImage(name="broken.png", data=b"not really a png", content_type="image/png")
    assert validate_selection([broken]) == "Could not read image: broken.png"


# ---------- error handling ----------


def test_extract_error_message_prefers_payload():
    err = ScoreRequestError("raw text", status_code=500, payload={"error": "AI service error"})
    assert extract_error_message(err) == "AI service error"


def test_extract_error_message_unpacks_json_message():
    message = json.dumps({"error": "Failed to create database record", "details": "disk full"})
    assert extract_error_message(message) == "Failed to create database record: disk full"


def test_extract_error_message_nested_dict():
    assert extract_error_message({"error": {"message": "quota"}}) == "quota"


def test_extract_error_message_falls_back_to_generic():
    assert extract_error_message(None) == GENERIC_FAILURE_MESSAGE
    assert extract_error_message("") == GENERIC_FAILURE_MESSAGE


@pytest.mark.parametrize(
    "error",
    [
        ScoreRequestError("nope", status_code=401),
        ScoreRequestError("x", status_code=500, payload={"error": "Invalid token"}),
        "AUTH_INVALID_CREDENTIALS",
        RuntimeError("Authentication failed somewhere"),
    ],
)
def test_auth_like_errors_become_login_prompt(error):
    assert classify_error(error) == AUTH_REQUIRED_MESSAGE


def test_other_errors_pass_through():
    assert classify_error(ScoreRequestError("x", status_code=429, payload={"error": "Rate limited"})) == "Rate limited"


def test_db_warning_variants():
    assert db_warning({"db_saved": True, "db_save_error": None}) is None
    assert "SERVICE_ROLE_KEY" in db_warning({"db_save_error": {"code": "42501", "message": "denied"}})
    assert db_warning({"db_save_error": {"message": "timeout"}}) == "Database operation failed: timeout"
    assert db_warning({"db_save_error": {}}) is None


# ---------- progress + presentation ----------


@pytest.mark.parametrize("elapsed, expected", [(0, 0), (7.5, 50), (15, PROGRESS_CAP), (60, PROGRESS_CAP)])
def test_progress_is_capped_until_done(elapsed, expected):
    assert progress_percent(elapsed) == expected


def test_progress_labels():
    assert progress_label(5, has_images=True) == "Uploading images..."
    assert progress_label(5, has_images=False) == "Preparing analysis..."
    assert progress_label(60, has_images=False) == "AI analyzing content..."
    assert progress_label(100, has_images=False) == "Complete!"


def test_top_factors_sorted_and_limited_to_priority_keys():
    factors = {
        "hook_strength": 40,
        "shareability": 90,
        "media_boost": 0,
        "emotional_intensity": 70,
        "format_fit_for_x": 55,
        "novelty_surprise": 99,
    }
    picked = top_factors(factors)
    assert picked[0] == ("shareability", 90)
    assert [name for name, _ in picked] == [
        "shareability",
        "emotional_intensity",
        "format_fit_for_x",
        "hook_strength",
        "media_boost",
    ]
    assert top_factors(None) == []


def test_presentation_helpers():
    assert format_factor_name("format_fit_for_x") == "Format Fit For X"
    assert score_band(85) == "hot"
    assert score_band(None) == "cool"


# ---------- storage ----------


def test_storage_upload_returns_public_url():
    session = MagicMock(spec=requests.Session)
    session.put.return_value = http_response(200, {"url": "https://cdn.test/a.png", "key": "a.png"})
    storage = StorageClient(base_url="http://backend.test/", api_key="k", bucket="images", session=session)

    assert storage.upload("1-0-a b.png", b"data", "image/png") == "https://cdn.test/a.png"
    url = session.put.call_args.args[0]
    assert url == "http://backend.test/api/storage/buckets/images/objects/1-0-a%20b.png"
    assert session.put.call_args.kwargs["headers"]["Authorization"] == "Bearer k"


def test_storage_upload_error_carries_status():
    session = MagicMock(spec=requests.Session)
    session.put.return_value = http_response(401, {"error": "AUTH_INVALID_CREDENTIALS", "message": "Invalid token"})
    storage = StorageClient(base_url="http://backend.test", session=session)

    with pytest.raises(UploadError) as exc:
        storage.upload("k.png", b"data", "image/png")
    assert exc.value.is_auth_failure
    assert exc.value.message == "Invalid token"


def test_storage_without_url_is_an_error():
    session = MagicMock(spec=requests.Session)
    session.put.return_value = http_response(200, {"key": "k.png"})
    with pytest.raises(UploadError, match="did not return a URL"):
        StorageClient(base_url="http://backend.test", session=session).upload("k.png", b"d", "image/png")


# ---------- orchestration ----------


def test_empty_input_never_calls_backend():
    client, session = score_client()
    outcome = client.analyze("   ", [])
    assert outcome.error == "Please enter text content or upload images"
    session.post.assert_not_called()


def test_text_only_analysis():
    client, session = score_client()
    outcome = client.analyze(" hello world ")
    assert outcome.ok
    assert outcome.result["overall_score"] == 70
    assert session.post.call_args.kwargs["json"] == {"text": "hello world", "imageUrls": []}
    assert session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer anon"


def test_failed_upload_is_skipped_with_warning():
    storage = FakeStorage(failures={"b.png": UploadError("bucket full", status_code=507)})
    client, session = score_client(storage=storage)

    outcome = client.analyze("", [png("a.png"), png("b.png")])

    assert outcome.ok
    assert len(outcome.image_urls) == 1
    assert outcome.image_urls[0].endswith("-0-a.png")
    assert outcome.warnings == ["Failed to upload: b.png. bucket full"]
    assert session.post.call_args.kwargs["json"]["imageUrls"] == outcome.image_urls


def test_auth_failure_during_upload_aborts():
    storage = FakeStorage(failures={"a.png": UploadError("Invalid token", status_code=401)})
    client, session = score_client(storage=storage)

    outcome = client.analyze("text", [png("a.png"), png("b.png")])

    assert outcome.error == "Failed to upload a.png: Authentication failed"
    assert len(storage.keys) == 1
    session.post.assert_not_called()


def test_backend_error_is_classified():
    client, _ = score_client(response=http_response(500, {"error": "AI service error", "details": "quota"}))
    outcome = client.analyze("hello")
    assert not outcome.ok
    assert outcome.error == "AI service error"


def test_backend_401_prompts_login():
    client, _ = score_client(response=http_response(401, {"error": "Authentication failed. Please log in again."}))
    assert client.analyze("hello").error == AUTH_REQUIRED_MESSAGE


def test_empty_backend_body_is_an_error():
    client, _ = score_client(response=http_response(200, {}))
    assert client.analyze("hello").error == "No data returned from analysis"


def test_save_failure_with_score_is_a_warning():
    result = {"overall_score": 66, "db_saved": False, "db_save_error": {"message": "timeout", "step": "update"}}
    client, _ = score_client(response=http_response(200, result))
    outcome = client.analyze("hello")
    assert outcome.ok
    assert outcome.warnings == ["Database operation failed: timeout"]


def test_save_failure_without_score_is_fatal():
    result = {"overall_score": None, "db_saved": False, "db_save_error": {"code": "42501", "message": "denied"}}
    client, _ = score_client(response=http_response(200, result))
    outcome = client.analyze("hello")
    assert not outcome.ok
    assert "Permission denied" in outcome.error
