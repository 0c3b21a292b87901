"""
Blocket search API client.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import requests

from src.config import SearchConfig
from src.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Listing:
    """One marketplace ad, normalized from the search response."""

    id: str
    title: str
    url: str
    description: str = ""
    price_value: Optional[float] = None
    price_suffix: str = ""
    image_url: Optional[str] = None
    listed_at: Optional[datetime] = None

    @property
    def formatted_price(self) -> str:
        """Price as shown to users, e.g. "1500 kr"."""
        if self.price_value is None:
            return "-"
        value = self.price_value
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return f"{value}{self.price_suffix}"

    @classmethod
    def from_api(cls, ad: dict[str, Any]) -> "Listing":
        """
        Build a Listing from one entry of the search response.

        Raises:
            ProviderError: If required fields are missing
        """
        ad_id = ad.get("ad_id") or ad.get("id")
        if not ad_id:
            raise ProviderError(f"Listing without identifier: {ad!r:.200}")

        price = ad.get("price") or {}
        images = ad.get("images") or []

        return cls(
            id=str(ad_id),
            title=ad.get("subject") or "",
            url=ad.get("share_url") or "",
            description=ad.get("body") or "",
            price_value=price.get("value"),
            price_suffix=price.get("suffix") or "",
            image_url=images[0].get("url") if images else None,
            listed_at=_parse_list_time(ad.get("list_time")),
        )


def _parse_list_time(value: Any) -> Optional[datetime]:
    """Parse an ad's listing time; unknown formats yield None."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    except (TypeError, ValueError, OverflowError, OSError):
        logger.debug(f"Ignoring unparseable list_time: {value!r}")
        return None


class BlocketClient:
    """Searches Blocket listings over its public web API."""

    SEARCH_PATH = "/search_bff/v2/content"

    def __init__(self, config: SearchConfig):
        self.config = config
        self._token: Optional[str] = None
        self._token_lock = threading.Lock()

    def search(
        self,
        query: str,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> list[Listing]:
        """
        Search listings matching a query.

        Args:
            query: Free-text search string
            min_price: Optional lower price bound
            max_price: Optional upper price bound

        Returns:
            Listings in the order returned by the API

        Raises:
            ProviderError: On network failure, bad status or unparseable data
        """
        params = self._build_params(query, min_price, max_price)
        response = self._get(params)

        if response.status_code == 401:
            # Token expired, fetch a fresh one once
            self._token = None
            response = self._get(params)

        if not response.ok:
            raise ProviderError(
                f"Search failed with HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from search API: {e}")

        ads = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(ads, list):
            raise ProviderError("Search response is missing the data list")

        try:
            return [Listing.from_api(ad) for ad in ads]
        except (AttributeError, TypeError, ValueError) as e:
            raise ProviderError(f"Unparseable listing in search response: {e}")

    def _build_params(
        self,
        query: str,
        min_price: Optional[float],
        max_price: Optional[float],
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "q": query,
            "lim": self.config.limit,
            "sort": self.config.sort,
            "st": self.config.listing_type,
            "status": self.config.status,
            "gl": self.config.geolocation,
            "include": self.config.include,
        }
        if min_price is not None:
            params["ps"] = min_price
        if max_price is not None:
            params["pe"] = max_price
        return params

    def _get(self, params: dict[str, Any]) -> requests.Response:
        headers = {"Authorization": f"Bearer {self._get_token()}"}
        try:
            return requests.get(
                f"{self.config.base_url}{self.SEARCH_PATH}",
                params=params,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise ProviderError(f"Search request failed: {e}")

    def _get_token(self) -> str:
        """Fetch and cache an anonymous bearer token."""
        with self._token_lock:
            if self._token:
                return self._token

            try:
                response = requests.get(
                    self.config.token_url, timeout=self.config.timeout_seconds
                )
                response.raise_for_status()
                token = response.json().get("bearerToken")
            except (requests.RequestException, ValueError) as e:
                raise ProviderError(f"Could not obtain search token: {e}")

            if not token:
                raise ProviderError("Token response did not contain a bearer token")

            logger.debug("Obtained new Blocket bearer token")
            self._token = token
            return token
