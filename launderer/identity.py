"""Identity-provider (Clerk) backend API client.

Only the profile metadata calls are needed here: the Stripe customer id is kept
in each user's public metadata so it survives across devices and backends.
"""

import logging
from typing import Optional

import httpx

from launderer import config
from launderer.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class IdentityProviderClient:
    def __init__(self, base_url: Optional[str] = None, secret_key: Optional[str] = None, transport=None):
        self.base_url = (base_url or config.CLERK_API_URL).rstrip("/")
        self.secret_key = secret_key or config.CLERK_SECRET_KEY
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            transport=self._transport,
        )

    def get_public_metadata(self, user_id: str) -> Optional[dict]:
        """Return the user's public metadata, or None when the user has none."""
        try:
            with self._client() as client:
                response = client.get(f"/users/{user_id}")
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch identity profile {user_id}: {e}")
            raise ExternalServiceError("Identity provider unavailable") from e
        return response.json().get("public_metadata")

    def update_public_metadata(self, user_id: str, public_metadata: dict) -> None:
        try:
            with self._client() as client:
                response = client.patch(
                    f"/users/{user_id}/metadata",
                    json={"public_metadata": public_metadata},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to update identity metadata for {user_id}: {e}")
            raise ExternalServiceError("Identity provider unavailable") from e


def merge_metadata(existing: Optional[dict], **fields) -> dict:
    """Merge fields into metadata; absent metadata counts as empty."""
    return {**(existing or {}), **fields}


def get_identity_client() -> IdentityProviderClient:
    return IdentityProviderClient()
