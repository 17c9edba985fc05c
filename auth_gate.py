"""
Authentication gate for the dashboard pages.

A page hands the gate its session context, an identity provider, a navigator
and a view. ``protect_page()`` answers immediately from the cached session
(rendering cached profile fields or redirecting to login) and verifies the
session with the provider in the background. Once verified, the user's
profile document is followed and every update is mirrored into the session
context and the view.
"""
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, MutableMapping, Optional, Protocol

logger = logging.getLogger(__name__)

# ---------------------------
# Config
# ---------------------------
LOGIN_PAGE = "login.html"
DEFAULT_DASHBOARD = "all-requests-d.html"
ROLE_DASHBOARDS = {
    "director": "director-dashboard.html",
    "admin": "admin-dashboard.html",
}
LOGOUT_PROMPT = "Are you sure you want to logout?"

EMAIL_KEY = "userEmail"
NAME_KEY = "userName"
ROLE_KEY = "userRole"
AUTH_FLAG_KEY = "isAuthenticated"

DEFAULT_PROFILE_NAME = "User"
DEFAULT_PROFILE_ROLE = "User"


class NotAuthenticated(Exception):
    pass


class GateState(Enum):
    UNKNOWN = "unknown"
    CACHE_CHECKED = "cache_checked"
    REDIRECTING = "redirecting"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    DENIED = "denied"


# ---------------------------
# Collaborators
# ---------------------------
class Subscription(Protocol):
    def cancel(self) -> None: ...


class IdentityProvider(Protocol):
    def current_user(self) -> Any: ...

    def subscribe_profile(self, email: str, on_update: Callable, on_error: Callable) -> Subscription: ...

    def sign_out(self) -> None: ...


class Navigator(Protocol):
    def navigate(self, url: str, replace: bool = False) -> None: ...


class ProfileView(Protocol):
    def show_profile(self, name: Optional[str], email: Optional[str], role: Optional[str]) -> None: ...


class NullView:
    def show_profile(self, name, email, role):
        pass


class SessionContext:
    """
    Client-side session state shared by the protected pages.

    Fields live in a session-scoped mapping under ``userEmail``, ``userName``,
    ``userRole`` and ``isAuthenticated`` (the literal string "true" when
    signed in). ``invalidate()`` also clears the persistent mapping.
    """

    def __init__(self, session_store: MutableMapping[str, str],
                 local_store: Optional[MutableMapping[str, str]] = None):
        self.session_store = session_store
        self.local_store = local_store if local_store is not None else {}

    @property
    def email(self) -> Optional[str]:
        return self.session_store.get(EMAIL_KEY) or None

    @property
    def name(self) -> Optional[str]:
        return self.session_store.get(NAME_KEY) or None

    @property
    def role(self) -> Optional[str]:
        return self.session_store.get(ROLE_KEY) or None

    @property
    def is_authenticated(self) -> bool:
        return self.session_store.get(AUTH_FLAG_KEY) == "true"

    def mark_authenticated(self):
        self.session_store[AUTH_FLAG_KEY] = "true"

    def store_profile(self, name: str, email: str, role: str):
        self.session_store[NAME_KEY] = name
        self.session_store[EMAIL_KEY] = email
        self.session_store[ROLE_KEY] = role

    def invalidate(self):
        self.session_store.clear()
        self.local_store.clear()


def dashboard_for_role(role: Optional[str]) -> str:
    if not role:
        return DEFAULT_DASHBOARD
    return ROLE_DASHBOARDS.get(role.lower(), DEFAULT_DASHBOARD)


@dataclass
class VerifiedSession:
    user: Any
    subscription: Subscription


# ---------------------------
# Gate
# ---------------------------
class AuthGate:
    def __init__(self, context: SessionContext, provider: IdentityProvider,
                 navigator: Navigator, confirm: Callable[[str], bool],
                 view: Optional[ProfileView] = None):
        self.context = context
        self.provider = provider
        self.navigator = navigator
        self.confirm = confirm
        self.view = view or NullView()
        self.state = GateState.UNKNOWN
        self.subscription: Optional[Subscription] = None
        # Guards subscription and _closed against the verify and poll threads.
        self._lock = threading.RLock()
        self._closed = False

    def protect_page(self) -> "Future[VerifiedSession]":
        """
        Gate the current page.

        The returned future resolves to a VerifiedSession once the provider
        confirms the session, or fails with NotAuthenticated after the gate
        has cleared local state and redirected to login. It is cancelled when
        the gate is released (or the user logs out) before verification ends.
        """
        future: "Future[VerifiedSession]" = Future()
        with self._lock:
            self._closed = False
        self.state = GateState.CACHE_CHECKED

        if not self.context.is_authenticated or not self.context.email:
            logger.info("No cached session; redirecting to login")
            self.state = GateState.REDIRECTING
            self._deny(future)
            return future

        self.view.show_profile(self.context.name, self.context.email, self.context.role)
        self.state = GateState.PENDING_VERIFICATION
        threading.Thread(target=self._verify, args=(future,), name="auth-verify", daemon=True).start()
        return future

    def _verify(self, future: Future):
        try:
            user = self.provider.current_user()
        except Exception:
            logger.exception("Session verification failed")
            user = None

        with self._lock:
            if self._closed:
                logger.info("Gate released before verification finished")
                future.cancel()
                return
            if user is not None:
                try:
                    self.subscription = self.provider.subscribe_profile(
                        user.email, partial(self._apply_profile, user), self._profile_error
                    )
                except Exception:
                    logger.exception("Session verification failed")
                    user = None

            if user is None:
                logger.info("Identity provider rejected the session; redirecting to login")
                self._deny(future)
                return

            logger.info("Authenticated as %s", user.email)
            self.state = GateState.VERIFIED
            future.set_result(VerifiedSession(user, self.subscription))

    def _deny(self, future: Future):
        self.context.invalidate()
        self.navigator.navigate(LOGIN_PAGE, replace=True)
        self.state = GateState.DENIED
        future.set_exception(NotAuthenticated("Not authenticated"))

    def _apply_profile(self, user, document: Optional[Dict[str, Any]]):
        if document is None:
            return
        name = document.get("name") or DEFAULT_PROFILE_NAME
        email = document.get("email") or getattr(user, "email", "") or ""
        role = document.get("role") or DEFAULT_PROFILE_ROLE
        with self._lock:
            if self._closed:
                return
            logger.debug("Profile updated: %s <%s> (%s)", name, email, role)
            self.context.store_profile(name, email, role)
            self.view.show_profile(name, email, role)

    def _profile_error(self, error: Exception):
        logger.error("Error listening to user profile: %s", error)

    def release(self):
        """Stop following the profile document; call on page teardown."""
        with self._lock:
            self._closed = True
            if self.subscription is not None:
                self.subscription.cancel()
                self.subscription = None

    def go_to_dashboard(self) -> str:
        url = dashboard_for_role(self.context.role)
        logger.info("Dashboard for role %r: %s", self.context.role, url)
        self.navigator.navigate(url)
        return url

    def logout(self) -> bool:
        """Confirm, clear local state, sign out (best effort) and go to login."""
        if not self.confirm(LOGOUT_PROMPT):
            return False
        self.release()
        self.context.invalidate()
        try:
            self.provider.sign_out()
        except Exception:
            logger.exception("Sign-out failed; continuing with local logout")
        self.navigator.navigate(LOGIN_PAGE, replace=True)
        return True
