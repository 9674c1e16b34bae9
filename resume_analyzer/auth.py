import logging
from dataclasses import dataclass

import httpx

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

AUTH_TIMEOUT = 10.0  # seconds


@dataclass(frozen=True)
class User:
    id: str
    email: str | None = None


class SupabaseAuth:
    """Resolves a Supabase Auth access token to the user it belongs to."""

    def __init__(self, http: httpx.AsyncClient, base_url: str, api_key: str):
        self._http = http
        self._url = f"{base_url.rstrip('/')}/auth/v1/user"
        self._api_key = api_key

    async def get_user(self, access_token: str) -> User:
        if not access_token:
            raise AuthenticationError()
        try:
            response = await self._http.get(
                self._url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "apikey": self._api_key,
                },
                timeout=AUTH_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            logger.error("Auth lookup failed: %s", exc)
            raise AuthenticationError() from exc

        if response.is_error:
            raise AuthenticationError()
        try:
            data = response.json()
        except ValueError as exc:
            raise AuthenticationError() from exc
        if not isinstance(data, dict) or not data.get("id"):
            raise AuthenticationError()
        return User(id=data["id"], email=data.get("email"))
