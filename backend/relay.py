import logging
from typing import Optional

import httpx

from backend import config


class RelayFailure(Exception):
    """A relay request that must be answered with `{"error", "details"?}`."""

    def __init__(self, status: int, error: str, details: Optional[str] = None):
        super().__init__(error)
        self.status = status
        self.error = error
        self.details = details

    def body(self) -> dict:
        out = {"error": self.error}
        if self.details:
            out["details"] = self.details
        return out


def build_request_body(prompt: str) -> dict:
    return {
        "model": config.ANTHROPIC_MODEL,
        "max_tokens": config.ANTHROPIC_MAX_TOKENS,
        "messages": [{"role": "user", "content": prompt}],
        "tools": [
            {
                "type": "web_search_20250305",
                "name": "web_search",
                "max_uses": config.WEB_SEARCH_MAX_USES,
                "user_location": config.WEB_SEARCH_LOCATION,
            }
        ],
    }


def _count(val) -> int:
    return val if isinstance(val, int) and not isinstance(val, bool) and val > 0 else 0


def extract_reply(data: dict) -> dict:
    """Join every text block of a Messages API response and count web searches."""
    content = data.get("content") if isinstance(data.get("content"), list) else []
    text = "\n".join(
        block["text"] for block in content
        if isinstance(block, dict) and block.get("type") == "text"
        and isinstance(block.get("text"), str) and block["text"]
    )
    usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    tool_use = usage.get("server_tool_use") if isinstance(usage.get("server_tool_use"), dict) else {}
    stop_reason = data.get("stop_reason")
    return {
        "text": text,
        "stop_reason": stop_reason if isinstance(stop_reason, str) else None,
        "usage": usage,
        "search_count": _count(tool_use.get("web_search_requests")),
    }


async def forward_prompt(
    client: httpx.AsyncClient,
    prompt: str,
    kind: Optional[str] = None,
    api_key: Optional[str] = None,
) -> dict:
    """
    Send one prompt upstream with the web-search tool enabled.

    Returns the reshaped success body. Raises RelayFailure for a missing key,
    a non-2xx upstream status (mirrored), an unparseable upstream body or a
    transport error.
    """
    key = api_key if api_key is not None else config.ANTHROPIC_API_KEY
    if not key:
        raise RelayFailure(500, "ANTHROPIC_API_KEY not set in server environment")

    logging.info(f"[proxy] type={kind}, prompt={len(prompt)} chars")

    try:
        resp = await client.post(
            config.ANTHROPIC_URL,
            headers={
                "Content-Type": "application/json",
                "x-api-key": key,
                "anthropic-version": config.ANTHROPIC_VERSION,
            },
            json=build_request_body(prompt),
            timeout=config.UPSTREAM_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logging.error(f"[proxy] Error: {e!r}")
        raise RelayFailure(500, "Server error", str(e) or e.__class__.__name__)

    if not resp.is_success:
        logging.error(f"[proxy] Anthropic {resp.status_code}: {resp.text[:500]}")
        raise RelayFailure(resp.status_code, f"Anthropic API {resp.status_code}", resp.text)

    try:
        data = resp.json()
    except ValueError:
        logging.error(f"[proxy] Failed to parse response: {resp.text[:500]}")
        raise RelayFailure(500, "Invalid JSON from Anthropic")
    if not isinstance(data, dict):
        raise RelayFailure(500, "Invalid JSON from Anthropic")

    reply = extract_reply(data)
    blocks = len(data["content"]) if isinstance(data.get("content"), list) else 0
    logging.info(
        f"[proxy] OK: {len(reply['text'])} chars, {blocks} blocks, "
        f"{reply['search_count']} searches, stop={reply['stop_reason']}"
    )
    return reply
