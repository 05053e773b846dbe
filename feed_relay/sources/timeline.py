"""
Microblog user-timeline client.

Fetches the single newest post of a tracked account and maps it to a
PolledItem. Every failure surfaces as TransientFetchError so the poller can
skip the tick.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..storage.models import PolledItem

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.twitter.com/1.1"


class TransientFetchError(Exception):
    """Raised when the feed is unreachable or returns unusable data."""


class TimelineClient:
    """Reads `statuses/user_timeline` with application bearer auth."""

    def __init__(
        self,
        bearer_token: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        """Initialize the timeline client.

        Args:
            bearer_token: Application bearer token (required)
            base_url: API root, without trailing slash
            timeout: Seconds before a request is abandoned
            session: Optional requests session to reuse

        Raises:
            ValueError: If bearer_token is missing/empty
        """
        if not bearer_token or not bearer_token.strip():
            raise ValueError("bearer_token is required and cannot be empty")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()
        self._http.headers.update({"Authorization": f"Bearer {bearer_token}"})

    def fetch_latest(self, identity: str) -> PolledItem:
        """Return the newest post of `identity`.

        Raises:
            TransientFetchError: On network errors, non-200 replies, an
                empty timeline or a payload missing required fields
        """
        url = f"{self.base_url}/statuses/user_timeline.json"
        params = {"screen_name": identity, "count": 1, "tweet_mode": "extended"}
        try:
            response = self._http.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientFetchError(f"Timeline request failed: {exc}") from exc

        if response.status_code != 200:
            preview = " ".join(response.text.split())[:140]
            raise TransientFetchError(f"HTTP {response.status_code}: {preview}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientFetchError(f"Timeline response is not JSON: {exc}") from exc

        if not isinstance(payload, list) or not payload:
            raise TransientFetchError(f"No posts returned for @{identity}")
        return _to_item(payload[0])


def _to_item(post: Dict[str, Any]) -> PolledItem:
    """Map one timeline entry to a PolledItem."""
    if not isinstance(post, dict):
        raise TransientFetchError("Timeline entry is not an object")
    user = post.get("user")
    if not isinstance(user, dict):
        raise TransientFetchError("Timeline entry has no user object")
    external_id = post.get("id_str") or post.get("id")
    screen_name = user.get("screen_name")
    display_name = user.get("name") or screen_name
    body = post.get("full_text") or post.get("text")
    if not isinstance(external_id, (str, int)) or isinstance(external_id, bool):
        raise TransientFetchError("Timeline entry has no usable id")
    if not isinstance(screen_name, str) or not screen_name:
        raise TransientFetchError("Timeline entry has no screen name")
    if not isinstance(display_name, str):
        raise TransientFetchError("Timeline entry has a non-text user name")
    if not isinstance(body, str):
        raise TransientFetchError("Timeline entry has no text")
    return PolledItem(
        external_id=str(external_id),
        source_identity=screen_name,
        display_name=display_name,
        body=" ".join(body.split())
    )
