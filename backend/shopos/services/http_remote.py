# Overview: httpx client implementing the remote data-access contract over a REST gateway.

"""
HTTP Remote Data Access

Talks to the shop backend's REST gateway:

    POST   /rest/<table>                  create (device-generated id)
    PATCH  /rest/<table>/<id>             update
    DELETE /rest/<table>/<id>             hard delete
    GET    /rest/shops/<shop_id>/data     bulk tenant load
    POST   /rest/auth/authenticate        credential check

ERROR MAPPING:
- transport errors, timeouts, 5xx  -> RemoteUnavailableError
- 409, or body code "23505"        -> DuplicateKeyError
- other 4xx                        -> RemoteError
- 401/404 on authenticate          -> None (bad credentials)
"""

from __future__ import annotations

import httpx

from .operations import table_for
from .remote import (
    AuthResult,
    DuplicateKeyError,
    RemoteDataAccess,
    RemoteError,
    RemoteUnavailableError,
)


UNIQUE_VIOLATION_CODE = "23505"


def _error_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text[:500]}
    return body if isinstance(body, dict) else {"message": str(body)[:500]}


class HttpRemoteDataAccess(RemoteDataAccess):
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteUnavailableError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise RemoteUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.is_success:
            return response

        body = _error_body(response)
        message = body.get("message") or body.get("error") or response.reason_phrase
        details = {**body, "status": response.status_code}

        if response.status_code == 409 or str(body.get("code")) == UNIQUE_VIOLATION_CODE:
            raise DuplicateKeyError(f"{method} {path}: {message}", details)
        if response.status_code >= 500:
            raise RemoteUnavailableError(f"{method} {path}: {message}", details)
        raise RemoteError(f"{method} {path}: {message}", details)

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        if not response.content:
            return {}
        data = response.json()
        return data if isinstance(data, dict) else {"data": data}

    def create(self, kind: str, record: dict) -> dict:
        response = self._request("POST", f"/rest/{table_for(kind)}", json=record)
        return self._json(response)

    def update(self, kind: str, entity_id: str, changes: dict) -> dict:
        response = self._request("PATCH", f"/rest/{table_for(kind)}/{entity_id}", json=changes)
        return self._json(response)

    def delete(self, kind: str, entity_id: str) -> None:
        self._request("DELETE", f"/rest/{table_for(kind)}/{entity_id}")

    def load_all_shop_data(self, shop_id: str) -> dict:
        response = self._request("GET", f"/rest/shops/{shop_id}/data")
        return self._json(response)

    def authenticate_user(self, identifier: str, secret: str) -> AuthResult | None:
        try:
            response = self._request(
                "POST",
                "/rest/auth/authenticate",
                json={"identifier": identifier.strip().lower(), "secret": secret},
            )
        except RemoteError as exc:
            if exc.details.get("status") in (401, 404) and not isinstance(exc, RemoteUnavailableError):
                return None
            raise

        data = self._json(response)
        user = data.get("user")
        if not user:
            return None
        return AuthResult(user=user, settings=data.get("settings"))
