"""Slack API Client - Interface and implementations for Slack Web API calls."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from ..errors import SlackApiError

logger = logging.getLogger(__name__)

DEFAULT_SLACK_URL = "https://slack.com/api/"


class SlackClient(ABC):
    """Abstract interface for the Slack calls the bot needs."""

    @abstractmethod
    def post_message(self, channel: str, message: Dict[str, Any]) -> str:
        """Post a new message. Returns the message timestamp (its ID)."""
        pass

    @abstractmethod
    def update_message(self, channel: str, ts: str, message: Dict[str, Any]) -> str:
        """Edit an existing message in place. Returns its timestamp."""
        pass

    @abstractmethod
    def lookup_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Find a workspace user by email. Returns None if there is no such user."""
        pass


class WebSlackClient(SlackClient):
    """Slack Web API client using requests."""

    def __init__(self, token: str, base_url: Optional[str] = None, timeout: int = 10):
        """
        Args:
            token: Bot token used as the Bearer credential
            base_url: Override for the API root (defaults to https://slack.com/api/)
            timeout: HTTP timeout in seconds
        """
        self.base_url = (base_url or DEFAULT_SLACK_URL).rstrip("/") + "/"
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=utf-8",
        })

    def _call(self, method: str, payload: Optional[Dict[str, Any]] = None,
              params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = self.base_url + method
        try:
            if params is not None:
                response = self._session.get(url, params=params, timeout=self.timeout)
            else:
                response = self._session.post(url, json=payload or {}, timeout=self.timeout)
        except requests.RequestException as e:
            raise SlackApiError("network_error") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise SlackApiError(
                "ratelimited",
                status_code=429,
                retry_after=float(retry_after) if retry_after else None,
            )
        if response.status_code >= 400:
            raise SlackApiError(f"http_{response.status_code}", status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise SlackApiError("invalid_response", status_code=response.status_code) from e

        if not body.get("ok"):
            raise SlackApiError(body.get("error", "unknown_error"), status_code=response.status_code)
        return body

    def post_message(self, channel: str, message: Dict[str, Any]) -> str:
        body = self._call("chat.postMessage", dict(message, channel=channel))
        return body["ts"]

    def update_message(self, channel: str, ts: str, message: Dict[str, Any]) -> str:
        # chat.update answers with the channel ID, so keep the ts we were given
        body = self._call("chat.update", dict(message, channel=channel, ts=ts))
        return body.get("ts", ts)

    def lookup_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            body = self._call("users.lookupByEmail", params={"email": email})
        except SlackApiError as e:
            if e.error == "users_not_found":
                return None
            raise
        return body.get("user")


class MockSlackClient(SlackClient):
    """Mock client for testing."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.messages: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.failures: List[Exception] = []
        self._next_ts = 1

    def add_user(self, user_id: str, email: str, name: str = "") -> None:
        self.users[email.lower()] = {
            "id": user_id,
            "name": name or email.split("@")[0],
            "profile": {"email": email, "real_name": name},
        }

    def fail_next(self, *errors: Exception) -> None:
        """Queue errors raised by the next outbound calls, in order."""
        self.failures.extend(errors)

    def _maybe_fail(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    def post_message(self, channel: str, message: Dict[str, Any]) -> str:
        self.calls.append(("post", channel, None, message))
        self._maybe_fail()
        ts = f"1700000000.{self._next_ts:06d}"
        self._next_ts += 1
        self.messages[ts] = dict(message, channel=channel)
        return ts

    def update_message(self, channel: str, ts: str, message: Dict[str, Any]) -> str:
        self.calls.append(("update", channel, ts, message))
        self._maybe_fail()
        if ts not in self.messages:
            raise SlackApiError("message_not_found", status_code=200)
        self.messages[ts] = dict(message, channel=channel)
        return ts

    def lookup_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("lookup", email))
        return self.users.get(email.lower())

    @property
    def posts(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "post"]

    @property
    def updates(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "update"]
