"""
Firebase identity adapter over the public REST APIs.

Sign-in and session lookup go through the Identity Toolkit endpoints; user
profiles are the ``Users/<email>`` documents in Firestore. The REST API has
no push channel, so profile subscriptions poll the document and only report
when its ``updateTime`` changes.
"""
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

# ---------------------------
# Config
# ---------------------------
IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
FIRESTORE_URL = "https://firestore.googleapis.com/v1"
FIREBASE_API_KEY = os.environ.get("FIREBASE_API_KEY", "")
FIREBASE_PROJECT_ID = os.environ.get("FIREBASE_PROJECT_ID", "")
FIREBASE_TIMEOUT = float(os.environ.get("FIREBASE_TIMEOUT", "10"))
PROFILE_POLL_INTERVAL = float(os.environ.get("PROFILE_POLL_INTERVAL", "5"))
PROFILE_COLLECTION = "Users"


class IdentityProviderError(Exception):
    """The identity service answered with an unexpected error."""


@dataclass(frozen=True)
class IdentityUser:
    uid: str
    email: str


@dataclass(frozen=True)
class ProfileDocument:
    fields: Dict[str, Any]
    update_time: Optional[str] = None


def decode_value(value: Dict[str, Any]):
    """Convert one Firestore typed value (``{"stringValue": ...}``) to Python."""
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "timestampValue" in value:
        return value["timestampValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    return None


def decode_fields(fields: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}


# ---------------------------
# Subscription
# ---------------------------
class PollingSubscription:
    """
    Background poller for one profile document.

    ``on_update`` receives the decoded fields (or None when the document does
    not exist) on the first poll and whenever the document changes.
    ``on_error`` receives request failures; polling continues afterwards.
    Call ``cancel()`` on page teardown.
    """

    _UNSET = object()

    def __init__(self, fetch: Callable[[], Optional[ProfileDocument]],
                 on_update: Callable[[Optional[Dict[str, Any]]], None],
                 on_error: Callable[[Exception], None],
                 interval: float = PROFILE_POLL_INTERVAL):
        self._fetch = fetch
        self._on_update = on_update
        self._on_error = on_error
        self._interval = interval
        self._stop = threading.Event()
        self._last_seen = self._UNSET
        self._thread = threading.Thread(target=self._run, name="profile-subscription", daemon=True)

    def start(self) -> "PollingSubscription":
        self._thread.start()
        return self

    def poll_once(self):
        try:
            document = self._fetch()
        except (requests.RequestException, IdentityProviderError) as exc:
            self._on_error(exc)
            return
        marker = document.update_time if document is not None else None
        if marker == self._last_seen:
            return
        self._last_seen = marker
        self._on_update(document.fields if document is not None else None)

    def _run(self):
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self._interval)

    def cancel(self):
        self._stop.set()

    @property
    def active(self) -> bool:
        return not self._stop.is_set()


# ---------------------------
# Provider
# ---------------------------
class FirebaseIdentityProvider:
    def __init__(self, api_key: str = FIREBASE_API_KEY, project_id: str = FIREBASE_PROJECT_ID,
                 id_token: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: float = FIREBASE_TIMEOUT, poll_interval: float = PROFILE_POLL_INTERVAL):
        self.api_key = api_key
        self.project_id = project_id
        self.id_token = id_token
        self.refresh_token = None
        self.session = session or requests.Session()
        self.timeout = timeout
        self.poll_interval = poll_interval

    def _identity_url(self, method: str) -> str:
        return f"{IDENTITY_TOOLKIT_URL}/accounts:{method}?key={self.api_key}"

    def _profile_url(self, email: str) -> str:
        return (f"{FIRESTORE_URL}/projects/{self.project_id}/databases/(default)/documents/"
                f"{PROFILE_COLLECTION}/{quote(email, safe='')}")

    def sign_in_with_password(self, email: str, password: str) -> IdentityUser:
        resp = self.session.post(
            self._identity_url("signInWithPassword"),
            json={"email": email, "password": password, "returnSecureToken": True},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise IdentityProviderError(_error_message(resp))
        body = resp.json()
        self.id_token = body["idToken"]
        self.refresh_token = body.get("refreshToken")
        logger.info("Signed in as %s", body.get("email", email))
        return IdentityUser(uid=body.get("localId", ""), email=body.get("email", email))

    def current_user(self) -> Optional[IdentityUser]:
        """The account behind the held ID token, or None when there is no valid session."""
        if not self.id_token:
            return None
        resp = self.session.post(
            self._identity_url("lookup"),
            json={"idToken": self.id_token},
            timeout=self.timeout,
        )
        if resp.status_code == 400:
            logger.info("Session rejected: %s", _error_message(resp))
            return None
        if resp.status_code != 200:
            raise IdentityProviderError(_error_message(resp))
        users = resp.json().get("users") or []
        if not users:
            return None
        user = users[0]
        return IdentityUser(uid=user.get("localId", ""), email=user.get("email", ""))

    def get_profile(self, email: str) -> Optional[ProfileDocument]:
        headers = {"Authorization": f"Bearer {self.id_token}"} if self.id_token else {}
        resp = self.session.get(self._profile_url(email), headers=headers, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise IdentityProviderError(_error_message(resp))
        body = resp.json()
        return ProfileDocument(fields=decode_fields(body.get("fields", {})),
                               update_time=body.get("updateTime"))

    def subscribe_profile(self, email: str, on_update, on_error) -> PollingSubscription:
        subscription = PollingSubscription(
            lambda: self.get_profile(email), on_update, on_error, interval=self.poll_interval
        )
        return subscription.start()

    def sign_out(self):
        # Firebase ID tokens are bearer tokens; signing out means forgetting them.
        self.id_token = None
        self.refresh_token = None
        logger.info("Signed out")


def _error_message(resp) -> str:
    try:
        return resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {resp.status_code}"
