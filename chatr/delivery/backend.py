"""Backend writes and lookups over the PostgREST HTTP API."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from chatr.config import BackendConfig
from chatr.errors import DeliveryError
from chatr.logs import log_request, log_response
from chatr.state.models.queued import QueuedMessage


@dataclass(frozen=True)
class Profile:
    user_id: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.username or "Someone"


class MessageBackend(Protocol):
    async def insert_message(self, row: dict[str, Any]) -> dict[str, Any]: ...

    async def is_participant(self, conversation_id: str, user_id: str) -> bool: ...

    async def get_profile(self, user_id: str) -> Optional[Profile]: ...


def build_message_row(message: QueuedMessage, sender_id: str) -> dict[str, Any]:
    row: dict[str, Any] = {
        "conversation_id": message.conversation_id,
        "sender_id": sender_id,
        "content": message.content,
        "message_type": message.message_type,
        "status": "sent",
    }
    if message.media_url:
        row["media_url"] = message.media_url
    return row


class RestMessageBackend:
    """PostgREST client for the messages, participants and profiles tables.

    Must be used as async context manager.
    """

    def __init__(self, config: BackendConfig, access_token: str,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._access_token = access_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "RestMessageBackend":
        self._client = httpx.AsyncClient(
            base_url=self._config.rest_url,
            timeout=httpx.Timeout(self._config.timeout),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
            event_hooks={"request": [log_request], "response": [log_response]},
        )
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._config.api_key,
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    async def insert_message(self, row: dict[str, Any]) -> dict[str, Any]:
        headers = {**self._headers(), "Prefer": "return=representation"}
        body = await self._request("POST", "/messages", json=row, headers=headers)
        if isinstance(body, list):
            return body[0] if body else {}
        return body or {}

    async def is_participant(self, conversation_id: str, user_id: str) -> bool:
        params = {
            "conversation_id": f"eq.{conversation_id}",
            "user_id": f"eq.{user_id}",
            "select": "user_id",
        }
        rows = await self._request("GET", "/conversation_participants", params=params)
        return bool(rows)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        params = {"id": f"eq.{user_id}", "select": "id,username,avatar_url"}
        rows = await self._request("GET", "/profiles", params=params)
        if not rows:
            return None
        r = rows[0]
        return Profile(user_id=r.get("id", user_id), username=r.get("username"), avatar_url=r.get("avatar_url"))

    async def _request(self, method: str, path: str, *, json: Any = None,
                       params: dict[str, str] | None = None,
                       headers: dict[str, str] | None = None) -> Any:
        if not self._client:
            raise DeliveryError("Backend not initialized")
        try:
            resp = await self._client.request(method, path, json=json, params=params,
                                              headers=headers or self._headers())
        except (httpx.TimeoutException, httpx.RequestError) as e:
            raise DeliveryError(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            raise DeliveryError(f"{method} {path} returned {resp.status_code}: {resp.text}", resp.status_code)
        try:
            return resp.json() if resp.content else None
        except ValueError:
            return None
