"""Async HTTP client for the LifeGrass API."""
from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from lifegrass.schemas import UserState


class ApiError(Exception):
    """Non-2xx answer from the server (``status_code`` is ``None`` for transport failures)."""

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}" if status_code else message)


class ApiUnavailable(ApiError):
    def __init__(self, message: str):
        super().__init__(None, message)


class LifeGrassClient:
    def __init__(self, base_url: str, *, transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = 10.0):
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "LifeGrassClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, *, token: Optional[str] = None,
                       body: Any = None) -> dict:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            r = await self._http.request(method, path, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise ApiUnavailable(f"{method} {path} failed: {e}") from e
        try:
            data = r.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}
        if r.status_code >= 400:
            raise ApiError(r.status_code, str(data.get("error") or r.reason_phrase))
        return data

    # ---------- auth ----------
    async def check_exists(self, username: str) -> bool:
        data = await self._request("GET", f"/api/auth/check/{username}")
        return bool(data.get("exists"))

    async def register(self, username: str, password: str, birth_year: Optional[int] = None) -> str:
        body = {"username": username, "password": password}
        if birth_year is not None:
            body["birthYear"] = birth_year
        data = await self._request("POST", "/api/auth/register", body=body)
        return data["token"]

    async def login(self, username: str, password: str) -> str:
        data = await self._request("POST", "/api/auth/login", body={"username": username, "password": password})
        return data["token"]

    # ---------- state ----------
    async def fetch_state(self, username: str, token: Optional[str]) -> UserState:
        data = await self._request("GET", f"/api/data/{username}", token=token)
        try:
            return UserState.model_validate(data)
        except ValidationError as e:
            raise ApiUnavailable(f"malformed state for {username}: {e}") from e

    async def push_state(self, username: str, token: Optional[str], state: UserState) -> None:
        await self._request("POST", f"/api/data/{username}", token=token, body=state.to_wire())

    # ---------- AI text ----------
    async def comment(self, keywords: str, text: str, year: Optional[int] = None,
                      week: Optional[int] = None) -> str:
        data = await self._request(
            "POST", "/api/comment",
            body={"keywords": keywords, "text": text, "year": year, "week": week},
        )
        return str(data.get("comment") or "").strip()

    async def recommend(self, keywords: str, text: str) -> str:
        data = await self._request("POST", "/api/recommend", body={"keywords": keywords, "text": text})
        return str(data.get("recommendation") or "").strip()
