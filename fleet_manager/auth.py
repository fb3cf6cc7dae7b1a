import asyncio

import httpx


class ClientCredentialsAuth(httpx.Auth):
    """
    Authenticator that obtains bearer tokens using an OAuth2 client credentials grant.
    """
    def __init__(self, token_url, client_id, client_secret):
        self.token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._token = None
        self._lock = asyncio.Lock()

    def _build_token_request(self):
        return httpx.Request(
            "POST",
            self.token_url,
            data = {
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            }
        )

    def _handle_token_response(self, response):
        response.raise_for_status()
        self._token = response.json()["access_token"]

    async def async_auth_flow(self, request):
        token = self._token
        if token is None:
            async with self._lock:
                # Only refresh if another request did not do it while we waited
                if token == self._token:
                    response = yield self._build_token_request()
                    await response.aread()
                    self._handle_token_response(response)
        request.headers["Authorization"] = f"Bearer {self._token}"
        response = yield request
        # If the token has expired, fetch a new one and retry the request once
        if response.status_code == 401:
            token = self._token
            async with self._lock:
                if token == self._token:
                    response = yield self._build_token_request()
                    await response.aread()
                    self._handle_token_response(response)
            request.headers["Authorization"] = f"Bearer {self._token}"
            yield request
