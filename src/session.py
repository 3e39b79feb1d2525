"""Local session lifecycle: login, activity tracking, expiry and logout.

Sessions are self-issued. The token mimics a JWT (header, payload,
signature slot) so session details can be displayed, but the signature is a
placeholder and nothing here is a security boundary.

States::

    UNAUTHENTICATED --login--> AUTHENTICATED --(<= warning left)--> EXPIRING
    EXPIRING --extend--> AUTHENTICATED
    AUTHENTICATED/EXPIRING --(token or inactivity expiry)--> EXPIRED
    any --logout--> UNAUTHENTICATED
"""
import base64
import binascii
import json
import math
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.activity import TRACKED_EVENTS, ActivityEvents, Subscription
from src.config import SessionConfig, get_config
from src.scheduler import Scheduler, TimerHandle
from src.session_storage import SessionStorage


KEY_USER = "task_manager_user"
KEY_TOKEN = "task_manager_token"
KEY_AUTHENTICATED = "task_manager_auth"
KEY_TIMESTAMP = "task_manager_timestamp"
KEY_LAST_ACTIVITY = "task_manager_last_activity"

STORAGE_KEYS = (KEY_USER, KEY_TOKEN, KEY_AUTHENTICATED, KEY_TIMESTAMP, KEY_LAST_ACTIVITY)
LEGACY_KEYS = ("user", "isAuthenticated")

EXPIRY_NOTICE = "Your session has expired due to inactivity. Please login again."


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"
    EXPIRED = "expired"


# ----------------------------------------------------------------------
# Simulated token
# ----------------------------------------------------------------------

def _encode_part(data: Any) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _decode_part(part: str) -> Any:
    padded = part + "=" * (-len(part) % 4)
    return json.loads(base64.urlsafe_b64decode(padded.encode()))


def generate_token(user: Mapping[str, Any], issued_at: float, duration: float) -> str:
    """Build a JWT-shaped token for ``user``.

    Args:
        user: User profile (``email`` and ``name`` go into the payload)
        issued_at: Issue time, epoch seconds
        duration: Token lifetime in seconds

    Returns:
        ``header.payload.signature`` string with an unsigned placeholder signature
    """
    header = _encode_part({"alg": "HS256", "typ": "JWT"})
    payload = _encode_part({
        "email": user.get("email"),
        "name": user.get("name"),
        "iat": issued_at,
        "exp": issued_at + duration,
    })
    signature = base64.urlsafe_b64encode(f"signature_{issued_at}".encode()).decode().rstrip("=")
    return f"{header}.{payload}.{signature}"


def decode_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode the payload of a token built by :func:`generate_token`.

    Returns:
        Payload dict, or None if the token is malformed
    """
    if not token or not isinstance(token, str):
        return None

    parts = token.split(".")
    if len(parts) != 3:
        return None

    try:
        payload = _decode_part(parts[1])
    except (ValueError, binascii.Error) as e:
        print(f"[SessionManager] Error decoding token: {e}", file=sys.stderr)
        return None

    if not isinstance(payload, dict):
        return None
    if not isinstance(payload.get("iat"), (int, float)) or not isinstance(payload.get("exp"), (int, float)):
        return None

    return payload


# ----------------------------------------------------------------------
# Session manager
# ----------------------------------------------------------------------

@dataclass
class SessionInfo:
    """Snapshot of the current session for display."""
    issued_at: datetime
    expires_at: datetime
    last_activity: datetime
    seconds_until_expiry: float
    time_until_expiry: int  # whole minutes
    is_expiring: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "time_until_expiry": self.time_until_expiry,
            "is_expiring": self.is_expiring,
        }


def _to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class SessionManager:
    """Owns the session stored in one browsing context.

    All timers and activity listeners belong to the instance and are
    released by :meth:`close`. Public methods never raise on storage
    problems: they report False/None and treat the session as invalid.
    """

    def __init__(
        self,
        storage: SessionStorage,
        scheduler: Scheduler,
        config: Optional[SessionConfig] = None,
        on_expired: Optional[Callable[[str], Any]] = None,
        on_expiring: Optional[Callable[[SessionInfo], Any]] = None,
    ):
        self.storage = storage
        self.scheduler = scheduler
        self.config = config or get_config().session
        self.on_expired = on_expired
        self.on_expiring = on_expiring

        self.user: Optional[Dict[str, Any]] = None
        self.is_authenticated = False
        self.loading = True
        self.session_expiring = False
        self.session_time_left: Optional[int] = None
        self.expiry_notice: Optional[str] = None

        self._expired = False
        self._monitor: Optional[TimerHandle] = None
        self._subscriptions: List[Subscription] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        if self.is_authenticated:
            return SessionState.EXPIRING if self.session_expiring else SessionState.AUTHENTICATED
        if self._expired:
            return SessionState.EXPIRED
        return SessionState.UNAUTHENTICATED

    @property
    def is_running(self) -> bool:
        """True while the periodic monitor is active."""
        return self._monitor is not None

    def start(self, activity_source: Optional[ActivityEvents] = None) -> None:
        """Restore any stored session, track activity and start monitoring."""
        if self._monitor is not None:
            return

        self.check_session()

        if activity_source is not None:
            for event in TRACKED_EVENTS:
                self._subscriptions.append(activity_source.subscribe(event, self.record_activity))

        self._monitor = self.scheduler.call_every(self.config.check_interval, self.check_expiry)

    def close(self) -> None:
        """Remove activity listeners and stop the monitor."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

        if self._monitor is not None:
            self._monitor.cancel()
            self._monitor = None

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------

    def _update_last_activity(self) -> None:
        self.storage.set_item(KEY_LAST_ACTIVITY, repr(self.scheduler.now()))

    def _clear_storage(self) -> bool:
        try:
            for key in STORAGE_KEYS + LEGACY_KEYS:
                self.storage.remove_item(key)
            return True
        except Exception as e:
            print(f"[SessionManager] Error clearing session storage: {e}", file=sys.stderr)
            return False

    def _reset_state(self) -> None:
        self.user = None
        self.is_authenticated = False
        self.session_expiring = False
        self.session_time_left = None

    # ------------------------------------------------------------------
    # Validity
    # ------------------------------------------------------------------

    def is_session_valid(self) -> bool:
        """Check both the token's absolute expiry and the inactivity window."""
        try:
            token = self.storage.get_item(KEY_TOKEN)
            last_activity = self.storage.get_item(KEY_LAST_ACTIVITY)

            if not token or not last_activity:
                return False

            payload = decode_token(token)
            if payload is None:
                return False

            now = self.scheduler.now()

            if now >= payload["exp"]:
                print("[SessionManager] Session expired (token)", file=sys.stderr)
                return False

            if now - float(last_activity) >= self.config.duration:
                print("[SessionManager] Session expired (inactivity)", file=sys.stderr)
                return False

            return True
        except Exception as e:
            print(f"[SessionManager] Error validating session: {e}", file=sys.stderr)
            return False

    def check_session(self) -> None:
        """Restore the stored session if it is still valid, else clear it."""
        try:
            stored_user = self.storage.get_item(KEY_USER)
            is_auth = self.storage.get_item(KEY_AUTHENTICATED)
            token = self.storage.get_item(KEY_TOKEN)

            if stored_user and is_auth == "true" and token and self.is_session_valid():
                user = json.loads(stored_user)
                if not isinstance(user, dict):
                    raise ValueError("stored user is not an object")
                self.user = user
                self.is_authenticated = True
                self._expired = False
                self._update_last_activity()
                print("[SessionManager] Session restored from storage", file=sys.stderr)
            else:
                self._clear_storage()
                self._reset_state()
        except Exception as e:
            print(f"[SessionManager] Error checking session: {e}", file=sys.stderr)
            self._clear_storage()
            self._reset_state()
        finally:
            self.loading = False

    def get_session_info(self) -> Optional[SessionInfo]:
        """Describe the stored session, or None if there is none."""
        try:
            last_activity = self.storage.get_item(KEY_LAST_ACTIVITY)
            token = self.storage.get_item(KEY_TOKEN)

            if not last_activity or not token:
                return None

            payload = decode_token(token)
            if payload is None:
                return None

            last = float(last_activity)
            remaining = self.config.duration - (self.scheduler.now() - last)

            return SessionInfo(
                issued_at=_to_datetime(payload["iat"]),
                expires_at=_to_datetime(payload["exp"]),
                last_activity=_to_datetime(last),
                seconds_until_expiry=max(0.0, remaining),
                time_until_expiry=max(0, math.floor(remaining / 60)),
                is_expiring=remaining <= self.config.warning,
            )
        except Exception as e:
            print(f"[SessionManager] Error getting session info: {e}", file=sys.stderr)
            return None

    def check_expiry(self) -> None:
        """Periodic check: expire invalid sessions, flag ones about to expire."""
        if not self.is_authenticated:
            return

        info = self.get_session_info()
        if info is None or not self.is_session_valid():
            self._expire()
            return

        self.session_time_left = info.time_until_expiry

        if info.is_expiring and not self.session_expiring:
            self.session_expiring = True
            print(
                f"[SessionManager] Session expiring in {info.time_until_expiry} minutes",
                file=sys.stderr,
            )
            if self.on_expiring is not None:
                self.on_expiring(info)

    def _expire(self) -> None:
        print("[SessionManager] Session expired, logging out", file=sys.stderr)
        self._clear_storage()
        self._reset_state()
        self._expired = True
        self.expiry_notice = EXPIRY_NOTICE
        if self.on_expired is not None:
            self.on_expired(EXPIRY_NOTICE)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def login(self, user: Mapping[str, Any]) -> bool:
        """Start a new session for ``user``.

        Returns:
            True on success
        """
        try:
            now = self.scheduler.now()
            profile = dict(user)
            token = generate_token(profile, now, self.config.duration)

            self.storage.set_item(KEY_USER, json.dumps(profile))
            self.storage.set_item(KEY_AUTHENTICATED, "true")
            self.storage.set_item(KEY_TOKEN, token)
            self.storage.set_item(KEY_TIMESTAMP, repr(now))
            self.storage.set_item(KEY_LAST_ACTIVITY, repr(now))

            self.user = profile
            self.is_authenticated = True
            self.session_expiring = False
            self.session_time_left = math.floor(self.config.duration / 60)
            self.expiry_notice = None
            self._expired = False

            print(
                f"[SessionManager] Login successful, session expires in "
                f"{self.config.duration / 60:g} minutes",
                file=sys.stderr,
            )
            return True
        except Exception as e:
            print(f"[SessionManager] Error during login: {e}", file=sys.stderr)
            return False

    def logout(self) -> bool:
        """End the session from any state and clear all stored fields.

        Returns:
            True if storage was cleared
        """
        cleared = self._clear_storage()
        self._reset_state()
        self._expired = False
        self.expiry_notice = None
        if cleared:
            print("[SessionManager] Logout successful, session cleared", file=sys.stderr)
        return cleared

    def update_user(self, data: Mapping[str, Any]) -> bool:
        """Merge ``data`` into the stored user profile."""
        if not self.is_authenticated:
            return False

        try:
            updated = {**(self.user or {}), **data}
            self.storage.set_item(KEY_USER, json.dumps(updated))
            self.user = updated
            self._update_last_activity()
            return True
        except Exception as e:
            print(f"[SessionManager] Error updating user: {e}", file=sys.stderr)
            return False

    def extend_session(self) -> bool:
        """Refresh the inactivity window. The token's own expiry is unchanged."""
        if not self.is_authenticated:
            return False

        try:
            self._update_last_activity()
            self.session_expiring = False
            self.session_time_left = math.floor(self.config.duration / 60)
            print("[SessionManager] Session extended", file=sys.stderr)
            return True
        except Exception as e:
            print(f"[SessionManager] Error extending session: {e}", file=sys.stderr)
            return False

    def record_activity(self, event: Optional[str] = None) -> None:
        """Activity listener: refresh the last-activity timestamp."""
        if not self.is_authenticated:
            return
        if not self.is_session_valid():
            self._expire()
            return
        try:
            self._update_last_activity()
        except Exception as e:
            print(f"[SessionManager] Error recording activity: {e}", file=sys.stderr)
