"""
Discord webhook notifier.
"""

import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import requests

from src.data.client import Listing
from src.errors import DeliveryError
from .base import Notifier

MAX_EMBEDS = 10
DESCRIPTION_LIMIT = 200
DEFAULT_RETRY_AFTER = 1.0


class DiscordNotifier(Notifier):
    """Sends listing notifications via Discord webhook."""

    channel = "discord"
    max_listings = MAX_EMBEDS

    def __init__(
        self,
        webhook_url: str,
        username: str = "Blocket Bot",
        avatar_url: Optional[str] = None,
        timeout: float = 10,
    ):
        """
        Initialize Discord notifier.

        Args:
            webhook_url: Discord webhook URL
            username: Name the webhook posts as
            avatar_url: Avatar image; falls back to the first listing image
            timeout: HTTP timeout in seconds
        """
        self.webhook_url = webhook_url
        self.username = username or "Blocket Bot"
        self.avatar_url = avatar_url
        self.timeout = timeout

    def send(self, listings: list[Listing], content: Optional[str] = None) -> None:
        """Post one webhook message."""
        payload = self._create_payload(listings, content)
        try:
            response = self._send_webhook(payload)
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Connection error: {e}")
        except Exception as e:
            raise DeliveryError(f"Webhook error: {e}")

        if not response.ok:
            raise DeliveryError(f"HTTP {response.status_code}: {response.text}")

    def _send_webhook(self, payload: dict[str, Any]) -> requests.Response:
        """Send webhook with rate limit handling."""
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=self.timeout,
        )

        # Handle rate limiting
        if response.status_code == 429:
            time.sleep(_retry_after_seconds(response.headers.get("Retry-After")))
            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=self.timeout,
            )

        return response

    def _create_payload(
        self, listings: list[Listing], content: Optional[str] = None
    ) -> dict[str, Any]:
        """Create Discord webhook payload."""
        payload: dict[str, Any] = {
            "username": self.username,
            "embeds": [self._create_embed(listing) for listing in listings[:MAX_EMBEDS]],
        }

        avatar_url = self.avatar_url or next(
            (listing.image_url for listing in listings if listing.image_url), None
        )
        if avatar_url:
            payload["avatar_url"] = avatar_url
        if content:
            payload["content"] = content

        return payload

    def _create_embed(self, listing: Listing) -> dict[str, Any]:
        """Create Discord embed for a listing."""
        embed: dict[str, Any] = {
            "title": listing.title,
            "url": listing.url,
            "description": _truncate(listing.description),
            "fields": [
                {
                    "name": "Price",
                    "value": listing.formatted_price,
                    "inline": True,
                }
            ],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if listing.image_url:
            embed["thumbnail"] = {"url": listing.image_url}

        return embed


def _truncate(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _retry_after_seconds(value: Optional[str]) -> float:
    """Seconds to wait from a Retry-After header, in seconds or HTTP-date form."""
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if retry_at is None:
        return DEFAULT_RETRY_AFTER
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds())
