import threading
from unittest.mock import Mock

import pytest
import requests

from identity_provider import (
    FirebaseIdentityProvider,
    IdentityProviderError,
    IdentityUser,
    PollingSubscription,
    ProfileDocument,
    decode_fields,
)


def response(status, body=None):
    resp = Mock()
    resp.status_code = status
    resp.json.return_value = body if body is not None else {}
    return resp


def make_provider(token="token-1"):
    session = Mock()
    provider = FirebaseIdentityProvider(api_key="KEY", project_id="requests-demo",
                                        id_token=token, session=session, timeout=3,
                                        poll_interval=0.01)
    return provider, session


def test_decode_fields():
    fields = {
        "name": {"stringValue": "Sara"},
        "visits": {"integerValue": "7"},
        "score": {"doubleValue": 4.5},
        "active": {"booleanValue": True},
        "joined": {"timestampValue": "2024-01-05T10:30:00Z"},
        "manager": {"nullValue": None},
        "tags": {"arrayValue": {"values": [{"stringValue": "a"}, {"stringValue": "b"}]}},
        "unit": {"mapValue": {"fields": {"college": {"stringValue": "Science"}}}},
    }
    assert decode_fields(fields) == {
        "name": "Sara",
        "visits": 7,
        "score": 4.5,
        "active": True,
        "joined": "2024-01-05T10:30:00Z",
        "manager": None,
        "tags": ["a", "b"],
        "unit": {"college": "Science"},
    }


# ---------------------------
# Sign in / session lookup
# ---------------------------
def test_sign_in_with_password_stores_token():
    provider, session = make_provider(token=None)
    session.post.return_value = response(200, {
        "idToken": "fresh", "refreshToken": "r", "localId": "u1", "email": "sara@example.edu",
    })

    user = provider.sign_in_with_password("sara@example.edu", "secret")

    assert user == IdentityUser(uid="u1", email="sara@example.edu")
    assert provider.id_token == "fresh"
    url = session.post.call_args[0][0]
    assert "accounts:signInWithPassword?key=KEY" in url
    assert session.post.call_args[1]["timeout"] == 3


def test_sign_in_failure_raises():
    provider, session = make_provider(token=None)
    session.post.return_value = response(400, {"error": {"message": "INVALID_PASSWORD"}})
    with pytest.raises(IdentityProviderError, match="INVALID_PASSWORD"):
        provider.sign_in_with_password("sara@example.edu", "wrong")


def test_current_user_without_token_makes_no_call():
    provider, session = make_provider(token=None)
    assert provider.current_user() is None
    session.post.assert_not_called()


def test_current_user():
    provider, session = make_provider()
    session.post.return_value = response(200, {"users": [{"localId": "u1", "email": "sara@example.edu"}]})
    assert provider.current_user() == IdentityUser(uid="u1", email="sara@example.edu")
    assert session.post.call_args[1]["json"] == {"idToken": "token-1"}


def test_current_user_invalid_token():
    provider, session = make_provider()
    session.post.return_value = response(400, {"error": {"message": "INVALID_ID_TOKEN"}})
    assert provider.current_user() is None


def test_current_user_server_error():
    provider, session = make_provider()
    session.post.return_value = response(503)
    with pytest.raises(IdentityProviderError, match="HTTP 503"):
        provider.current_user()


def test_sign_out_forgets_tokens():
    provider, _ = make_provider()
    provider.sign_out()
    assert provider.id_token is None
    assert provider.current_user() is None


# ---------------------------
# Profile documents
# ---------------------------
def test_get_profile():
    provider, session = make_provider()
    session.get.return_value = response(200, {
        "fields": {"name": {"stringValue": "Sara"}, "role": {"stringValue": "admin"}},
        "updateTime": "2024-01-05T10:30:00Z",
    })

    document = provider.get_profile("sara@example.edu")

    assert document == ProfileDocument({"name": "Sara", "role": "admin"}, "2024-01-05T10:30:00Z")
    url = session.get.call_args[0][0]
    assert url.endswith("/projects/requests-demo/databases/(default)/documents/Users/sara%40example.edu")
    assert session.get.call_args[1]["headers"] == {"Authorization": "Bearer token-1"}


def test_get_profile_missing_document():
    provider, session = make_provider()
    session.get.return_value = response(404)
    assert provider.get_profile("ghost@example.edu") is None


def test_get_profile_error():
    provider, session = make_provider()
    session.get.return_value = response(403, {"error": {"message": "PERMISSION_DENIED"}})
    with pytest.raises(IdentityProviderError, match="PERMISSION_DENIED"):
        provider.get_profile("sara@example.edu")


# ---------------------------
# Subscription
# ---------------------------
def test_poll_reports_only_changes():
    documents = [
        ProfileDocument({"name": "Sara"}, "t1"),
        ProfileDocument({"name": "Sara"}, "t1"),
        ProfileDocument({"name": "Sara Ahmed"}, "t2"),
        None,
        None,
    ]
    updates, errors = [], []
    subscription = PollingSubscription(lambda: documents.pop(0), updates.append, errors.append)

    for _ in range(5):
        subscription.poll_once()

    assert updates == [{"name": "Sara"}, {"name": "Sara Ahmed"}, None]
    assert errors == []


def test_poll_forwards_errors():
    def fetch():
        raise requests.ConnectionError("offline")

    updates, errors = [], []
    subscription = PollingSubscription(fetch, updates.append, errors.append)
    subscription.poll_once()

    assert updates == []
    assert isinstance(errors[0], requests.ConnectionError)


def test_subscribe_profile_polls_until_cancelled():
    provider, session = make_provider()
    session.get.return_value = response(200, {
        "fields": {"name": {"stringValue": "Sara"}}, "updateTime": "t1",
    })
    received = threading.Event()
    updates = []

    def on_update(fields):
        updates.append(fields)
        received.set()

    subscription = provider.subscribe_profile("sara@example.edu", on_update, Mock())
    try:
        assert received.wait(timeout=5)
        assert subscription.active
    finally:
        subscription.cancel()

    assert not subscription.active
    assert updates[0] == {"name": "Sara"}
