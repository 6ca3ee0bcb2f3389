"""WhatsApp channel speaking JSON frames to a local bridge process.

The bridge owns the network wire protocol and the account session. This
channel keeps one websocket to it:

    bridge -> us   {"type": "connection", "state": "open", "selfId": "..."}
                   {"type": "messages", "events": [...]}
                   {"type": "participants", "chatId": "...", "action": "add", "participants": [...]}
                   {"type": "result", "id": "...", "ok": true, "data": {...}}
    us -> bridge   {"type": "auth", "token": "..."}
                   {"type": "request", "id": "...", "method": "sendText", "params": {...}}

Media bytes are fetched over HTTP from the bridge (POST /media with the raw
message) to keep large payloads off the socket.
"""

import asyncio
import base64
import json
import uuid
from typing import Any

import httpx
import websockets
from loguru import logger

from chatwarden.bus.events import ConnectionEvent, ConnectionState, MessageBatch, ParticipantEvent
from chatwarden.bus.queue import MessageBus
from chatwarden.channels.base import (
    BaseChannel,
    Member,
    PermissionDeniedError,
    TransportError,
    TransportTransientError,
)
from chatwarden.config.schema import TransportConfig
from chatwarden.utils.helpers import canonical_id

# Bridge error codes -> exception types
_ERROR_TYPES: dict[str, type[TransportError]] = {
    "forbidden": PermissionDeniedError,
    "not-authorized": PermissionDeniedError,
    "transient": TransportTransientError,
}


class WhatsAppChannel(BaseChannel):
    """Bridge-backed WhatsApp account."""

    name = "whatsapp"

    def __init__(self, config: TransportConfig, bus: MessageBus, account: str = "default") -> None:
        super().__init__(account, bus)
        self.config = config
        self._ws: Any = None
        self._http: httpx.AsyncClient | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._consecutive_failures = 0

    # ── Lifecycle ─────────────────────────────────────────

    async def start(self) -> None:
        """Connect to the bridge, reconnecting with backoff until stopped."""
        self._running = True
        self._http = httpx.AsyncClient(timeout=self.config.request_timeout)

        while self._running:
            try:
                logger.info(f"Connecting to bridge for account {self.account}...")
                async with websockets.connect(self._bridge_url(), max_size=None) as ws:
                    self._ws = ws
                    self._consecutive_failures = 0
                    if self.config.token:
                        await ws.send(json.dumps({"type": "auth", "token": self.config.token}))
                    await self._receive_loop()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._consecutive_failures += 1
                # Exponential backoff: 5s, 10s, 20s, 40s, 60s max
                delay = min(5 * (2 ** (self._consecutive_failures - 1)), 60)
                logger.warning(f"Bridge connection error ({self.account}): {e}")
                if self._running:
                    logger.info(f"Reconnecting in {delay}s (attempt {self._consecutive_failures})...")
                    await asyncio.sleep(delay)
            finally:
                self._ws = None
                self._fail_pending(TransportError("bridge connection lost"))
                await self.bus.publish_connection(ConnectionEvent(self.account, ConnectionState.CLOSE))

    async def stop(self) -> None:
        self._running = False
        if self._ws:
            await self._ws.close()
            self._ws = None
        if self._http:
            await self._http.aclose()
            self._http = None

    def _bridge_url(self) -> str:
        url = self.config.bridge_url.rstrip("/")
        return f"{url}/{self.account}" if len(self.config.accounts) > 1 else url

    # ── Receive side ──────────────────────────────────────

    async def _receive_loop(self) -> None:
        async for raw in self._ws:
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from bridge: {str(raw)[:100]}")
                continue
            await self._handle_frame(frame)

    async def _handle_frame(self, frame: dict[str, Any]) -> None:
        kind = frame.get("type")
        if kind == "messages":
            events = frame.get("events") or []
            await self.bus.publish_batch(MessageBatch(self.account, list(events)))
        elif kind == "participants":
            await self.bus.publish_participants(ParticipantEvent(
                account=self.account,
                conversation_id=canonical_id(frame.get("chatId")),
                action=str(frame.get("action", "")),
                participants=[canonical_id(p) for p in frame.get("participants") or []],
                author_id=canonical_id(frame.get("author")),
            ))
        elif kind == "connection":
            state = _parse_state(frame.get("state"))
            if frame.get("selfId"):
                self._self_id = canonical_id(frame["selfId"])
            logger.info(f"Bridge {self.account}: connection {state.value} (self={self._self_id or '?'})")
            await self.bus.publish_connection(ConnectionEvent(self.account, state, self._self_id))
        elif kind == "result":
            self._resolve(frame)
        else:
            logger.debug(f"Bridge {self.account}: unhandled frame type {kind!r}")

    def _resolve(self, frame: dict[str, Any]) -> None:
        future = self._pending.pop(str(frame.get("id", "")), None)
        if future is None or future.done():
            return
        if frame.get("ok"):
            future.set_result(frame.get("data") or {})
        else:
            error_type = _ERROR_TYPES.get(frame.get("code", ""), TransportError)
            future.set_exception(error_type(frame.get("error") or "bridge request failed"))

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    # ── Request side ──────────────────────────────────────

    async def _request(self, method: str, **params: Any) -> dict[str, Any]:
        if not self._ws:
            raise TransportError(f"bridge not connected ({self.account})")
        request_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send(json.dumps({
                "type": "request", "id": request_id, "method": method, "params": params,
            }))
            return await asyncio.wait_for(future, timeout=self.config.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"bridge request {method} timed out") from e
        finally:
            self._pending.pop(request_id, None)

    async def send_text(self, conversation_id, text, *, quoted=None, mentions=None) -> str:
        data = await self._request(
            "sendText", chatId=conversation_id, text=text,
            quoted=quoted, mentions=mentions or [],
        )
        return str(data.get("messageId", ""))

    async def send_media(self, conversation_id, data, *, media_kind, mime_type, caption="") -> str:
        result = await self._request(
            "sendMedia", chatId=conversation_id, kind=media_kind, mimeType=mime_type,
            caption=caption, data=base64.b64encode(data).decode("ascii"),
        )
        return str(result.get("messageId", ""))

    async def send_reaction(self, conversation_id, raw_handle, emoji) -> None:
        await self._request("react", chatId=conversation_id, key=raw_handle.get("key", {}), emoji=emoji)

    async def delete_message(self, conversation_id, message_id, *, participant=None, from_me=False) -> None:
        key = {"remoteJid": conversation_id, "id": message_id, "fromMe": from_me}
        if participant:
            key["participant"] = participant
        await self._request("delete", chatId=conversation_id, key=key)

    async def update_participants(self, conversation_id, participants, action) -> None:
        await self._request("updateParticipants", chatId=conversation_id, participants=participants, action=action)

    async def fetch_members(self, conversation_id) -> list[Member]:
        data = await self._request("groupMetadata", chatId=conversation_id)
        return [
            Member(canonical_id(p.get("id")), p.get("admin") in ("admin", "superadmin"))
            for p in data.get("participants") or []
        ]

    async def send_presence(self, conversation_id, state) -> None:
        await self._request("presence", chatId=conversation_id, state=state)

    async def download_media(self, raw_handle) -> bytes:
        if not self._http:
            raise TransportError("HTTP client not initialized")
        url = f"{self.config.media_url.rstrip('/')}/media"
        headers = {"Authorization": f"Bearer {self.config.token}"} if self.config.token else {}
        try:
            response = await self._http.post(
                url, json={"account": self.account, "message": raw_handle}, headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"media download failed: {e}") from e
        return response.content


def _parse_state(value: Any) -> ConnectionState:
    try:
        return ConnectionState(str(value))
    except ValueError:
        return ConnectionState.CONNECTING
