import logging
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel

from backend import config
from backend.relay import RelayFailure, forward_prompt


class PromptReply(BaseModel):
    text: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None
    search_count: int = 0


def _str(val) -> Optional[str]:
    return val if isinstance(val, str) else None


class PromptedFetch(Protocol):
    async def send_prompt(self, prompt: str, kind: str = "full_scan") -> PromptReply:
        ...


class RelayFetch:
    """Posts prompts to the relay route over HTTP, the way the browser client does."""

    def __init__(self, url: str, timeout: float = config.UPSTREAM_TIMEOUT + 10,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def send_prompt(self, prompt: str, kind: str = "full_scan") -> PromptReply:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.post(self.url, json={"prompt": prompt, "type": kind})
        except httpx.HTTPError as e:
            logging.warning(f"Relay request failed: {e!r}")
            return PromptReply(error=str(e) or e.__class__.__name__)

        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        if resp.status_code != 200:
            return PromptReply(
                error=_str(body.get("error")) or f"HTTP {resp.status_code}",
                details=_str(body.get("details")),
            )
        count = body.get("search_count")
        return PromptReply(
            text=_str(body.get("text")),
            search_count=count if isinstance(count, int) and not isinstance(count, bool) else 0,
        )


class DirectFetch:
    """Runs the relay's forwarding step in-process; used when no RELAY_URL is configured."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def send_prompt(self, prompt: str, kind: str = "full_scan") -> PromptReply:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                reply = await forward_prompt(client, prompt, kind)
        except RelayFailure as e:
            return PromptReply(error=e.error, details=e.details)
        return PromptReply(text=reply["text"], search_count=reply["search_count"])


def default_fetch() -> PromptedFetch:
    if config.RELAY_URL:
        return RelayFetch(config.RELAY_URL)
    return DirectFetch()
