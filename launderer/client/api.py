"""Async HTTP client for the Happy Launderer API."""

import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api"


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnauthorizedError(ApiError):
    pass


class NotFound(ApiError):
    pass


class Conflict(ApiError):
    pass


class BadRequest(ApiError):
    pass


class ServerError(ApiError):
    pass


_ERRORS_BY_STATUS = {
    400: BadRequest,
    401: UnauthorizedError,
    403: UnauthorizedError,
    404: NotFound,
    409: Conflict,
}


class ApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token_provider: Callable[[], Optional[str]] = lambda: None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.token_provider = token_provider
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport, timeout=timeout)

    async def get(self, path: str, params: Optional[dict] = None) -> dict:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, body: Optional[dict] = None) -> dict:
        return await self._request("POST", path, json=body if body is not None else {})

    async def put(self, path: str, body: dict) -> dict:
        return await self._request("PUT", path, json=body)

    async def delete(self, path: str) -> dict:
        return await self._request("DELETE", path)

    async def aclose(self):
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        token = self.token_provider()
        if not token:
            raise UnauthorizedError("Not signed in")

        response = await self._http.request(
            method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs
        )
        if response.is_success:
            return response.json()

        try:
            message = response.json().get("error") or response.reason_phrase
        except ValueError:
            message = response.reason_phrase
        error_cls = _ERRORS_BY_STATUS.get(response.status_code, ServerError)
        raise error_cls(message, status_code=response.status_code)
