"""
WHOOP OAuth2 token endpoint client.

Handles:
- Authorization URL generation
- Code exchange for tokens
- Token refresh

Both grants POST form-encoded client credentials (client_secret_post).
Non-2xx answers raise OAuthGrantError; other httpx errors propagate
to the caller, which decides how to classify them.
"""
import logging
from typing import Any, Dict, Iterable
from urllib.parse import urlencode

import httpx

from whoopdash.config import ProviderConfig
from whoopdash.errors import OAuthGrantError

logger = logging.getLogger(__name__)


class WhoopOAuth:
    """
    Usage:
        oauth = WhoopOAuth(provider, http_client)
        url = oauth.authorization_url(state="...", scopes=["offline", "read:sleep"])
        tokens = await oauth.exchange_code(code)
        tokens = await oauth.refresh(refresh_token)
    """

    def __init__(self, provider: ProviderConfig, http: httpx.AsyncClient):
        self._provider = provider
        self._http = http

    def authorization_url(self, state: str, scopes: Iterable[str]) -> str:
        params = {
            "client_id": self._provider.client_id,
            "redirect_uri": self._provider.redirect_url,
            "response_type": "code",
            "scope": self._provider.scope_separator.join(scopes),
            "state": state,
        }
        return f"{self._provider.authorization_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        Returns:
            The token endpoint JSON body
            ({"access_token", "refresh_token", "expires_in", "scope", ...}).

        Raises:
            OAuthGrantError: non-2xx response or non-JSON body.
            httpx.HTTPError: network failure, timeout or undecodable body.
        """
        return await self._post_grant({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._provider.redirect_url,
        })

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """Run a refresh_token grant. Same return value and errors as exchange_code."""
        return await self._post_grant({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "scope": "offline",
        })

    async def _post_grant(self, form: Dict[str, str]) -> Dict[str, Any]:
        data = {
            **form,
            "client_id": self._provider.client_id,
            "client_secret": self._provider.client_secret,
        }
        response = await self._http.post(self._provider.token_url, data=data)

        if not response.is_success:
            logger.warning(
                "Token endpoint rejected %s grant: %s",
                form["grant_type"], response.status_code,
            )
            raise OAuthGrantError(response.status_code, response.text)

        try:
            return response.json()
        except ValueError:
            raise OAuthGrantError(response.status_code, "token response is not JSON")
