from unittest.mock import MagicMock

import pytest
import requests

from backend.app.credentials import Credential, CredentialKind
from backend.app.database import BackendClient, BackendError


def response(status=200, payload=None, text=""):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = "reason"
    if payload is None:
        resp.content = text.encode()
        resp.text = text
        resp.json.side_effect = ValueError("no json")
    else:
        resp.content = b"json"
        resp.text = str(payload)
        resp.json.return_value = payload
    return resp


def client_with(resp, kind=CredentialKind.SERVICE):
    session = MagicMock(spec=requests.Session)
    session.request.return_value = resp
    return BackendClient("http://backend.test/", Credential(kind, "tok"), session=session), session


def test_insert_posts_array_and_returns_first_row():
    client, session = client_with(response(201, [{"id": "r1", "text_content": "hi"}]))

    row = client.insert("analyses", {"text_content": "hi"})

    assert row == {"id": "r1", "text_content": "hi"}
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert method == "POST"
    assert url == "http://backend.test/api/database/records/analyses"
    assert kwargs["json"] == [{"text_content": "hi"}]
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["headers"]["Prefer"] == "return=representation"


def test_insert_empty_list_returns_none():
    client, _ = client_with(response(201, []))
    assert client.insert("analyses", {}) is None


def test_update_filters_by_id():
    client, session = client_with(response(200, [{"id": "r1", "overall_score": 70}]))

    row = client.update("analyses", "r1", {"overall_score": 70})

    assert row["overall_score"] == 70
    kwargs = session.request.call_args.kwargs
    assert session.request.call_args.args[0] == "PATCH"
    assert kwargs["params"] == {"id": "eq.r1"}
    assert kwargs["json"] == {"overall_score": 70}


def test_permission_denied_error_is_typed():
    payload = {"code": "42501", "message": "new row violates row-level security policy", "hint": "check policies"}
    client, _ = client_with(response(403, payload))

    with pytest.raises(BackendError) as exc:
        client.insert("analyses", {})

    err = exc.value
    assert err.is_permission_denied
    assert not err.is_auth_failure
    assert err.hint == "check policies"
    assert err.status_code == 403


def test_auth_error_code_is_flagged():
    payload = {"error": "AUTH_INVALID_CREDENTIALS", "message": "Invalid token", "statusCode": 401}
    client, _ = client_with(response(401, payload))
    with pytest.raises(BackendError) as exc:
        client.update("analyses", "r1", {})
    assert exc.value.is_auth_failure
    assert exc.value.code == "AUTH_INVALID_CREDENTIALS"


def test_non_json_error_body():
    client, _ = client_with(response(502, text="Bad Gateway"))
    with pytest.raises(BackendError) as exc:
        client.insert("analyses", {})
    assert exc.value.message == "Bad Gateway"
    assert exc.value.status_code == 502


def test_network_failure_becomes_backend_error():
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = requests.exceptions.ConnectionError("refused")
    client = BackendClient("http://backend.test", Credential(CredentialKind.SERVICE, "tok"), session=session)
    with pytest.raises(BackendError, match="Could not reach backend"):
        client.insert("analyses", {})


def test_current_user_id_for_user_token():
    client, session = client_with(response(200, {"user": {"id": "u-1"}}), kind=CredentialKind.USER)
    assert client.current_user_id() == "u-1"
    assert session.request.call_args.args[1] == "http://backend.test/api/auth/sessions/current"


def test_current_user_id_failure_means_anonymous():
    client, _ = client_with(response(401, {"message": "Invalid token"}), kind=CredentialKind.USER)
    assert client.current_user_id() is None


def test_current_user_id_skipped_for_service_credentials():
    client, session = client_with(response(200, {"user": {"id": "u-1"}}))
    assert client.current_user_id() is None
    session.request.assert_not_called()
