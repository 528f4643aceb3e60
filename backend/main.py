from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel
import httpx
import logging
import pathlib
from typing import Optional

from backend import config
from backend.fetch import default_fetch
from backend.ledger import entry_net
from backend.models import ScanSettings
from backend.orchestrator import ScanOrchestrator
from backend.relay import RelayFailure, forward_prompt

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(title="Live Wager Engine API")


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """CORS preflights answer 200 with the allow-* headers and no body."""

    def preflight_response(self, request_headers) -> Response:
        resp = super().preflight_response(request_headers)
        headers = {
            k: v for k, v in resp.headers.items()
            if k.lower() not in ("content-length", "content-type")
        }
        return Response(status_code=resp.status_code, headers=headers)


app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# One session per process; all scan state lives on this object
orchestrator = ScanOrchestrator(default_fetch())


def get_orchestrator() -> ScanOrchestrator:
    return orchestrator


@app.on_event("shutdown")
def shutdown():
    orchestrator.close()


# ── PYDANTIC MODELS ───────────────────────────────────────────────────────────
class SettingsRequest(BaseModel):
    aggression: Optional[int] = None
    unit_size: Optional[int] = None
    bankroll: Optional[int] = None


class AutoRefreshRequest(BaseModel):
    enabled: bool
    interval: Optional[int] = None


class ResolveRequest(BaseModel):
    result: str


def _state_body(orch: ScanOrchestrator) -> dict:
    snap = orch.snapshot()
    state = snap.model_dump(mode="json")
    for entry, raw in zip(state["ledger"], snap.ledger):
        entry["net"] = entry_net(raw)
    return state


# ── RELAY ─────────────────────────────────────────────────────────────────────
@app.options("/api/claude")
def claude_preflight():
    return Response(status_code=200)


@app.post("/api/claude")
async def claude_proxy(request: Request):
    if not config.ANTHROPIC_API_KEY:
        return JSONResponse(
            status_code=500,
            content={"error": "ANTHROPIC_API_KEY not set in server environment"},
        )
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}
    prompt = body.get("prompt")
    if not prompt or not isinstance(prompt, str):
        return JSONResponse(status_code=400, content={"error": "Missing prompt"})

    try:
        async with httpx.AsyncClient() as client:
            reply = await forward_prompt(client, prompt, body.get("type"))
    except RelayFailure as e:
        return JSONResponse(status_code=e.status, content=e.body())
    return reply


@app.api_route("/api/claude", methods=["GET", "PUT", "PATCH", "DELETE"])
def claude_method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})


# ── SCAN / STATE ──────────────────────────────────────────────────────────────
@app.get("/api/state")
def get_state(orch: ScanOrchestrator = Depends(get_orchestrator)):
    return _state_body(orch)


@app.post("/api/scan")
async def scan(req: Optional[SettingsRequest] = None, orch: ScanOrchestrator = Depends(get_orchestrator)):
    settings = None
    if req is not None and any(v is not None for v in req.model_dump().values()):
        merged = {**orch.settings.model_dump(), **req.model_dump(exclude_none=True)}
        settings = ScanSettings(**merged)
    result = await orch.execute_scan(settings)
    return {
        "started": result is not None,
        "error": result.error if result is not None else None,
        "state": _state_body(orch),
    }


@app.put("/api/settings")
def update_settings(req: SettingsRequest, orch: ScanOrchestrator = Depends(get_orchestrator)):
    settings = orch.update_settings(**req.model_dump())
    return {"settings": settings.model_dump()}


@app.put("/api/auto-refresh")
async def auto_refresh(req: AutoRefreshRequest, orch: ScanOrchestrator = Depends(get_orchestrator)):
    try:
        orch.set_auto_refresh(req.enabled, req.interval)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"enabled": orch.auto_refresh, "interval": orch.refresh_interval}


# ── ALERTS / BETS ─────────────────────────────────────────────────────────────
@app.post("/api/alerts/{alert_id}/place")
def place_bet(alert_id: str, orch: ScanOrchestrator = Depends(get_orchestrator)):
    entry = orch.place(alert_id)
    return {
        "placed": entry is not None,
        "entry": entry.model_dump(mode="json") if entry else None,
        "totals": orch.totals().model_dump(),
    }


@app.post("/api/alerts/{alert_id}/dismiss")
def dismiss_alert(alert_id: str, orch: ScanOrchestrator = Depends(get_orchestrator)):
    return {"dismissed": orch.dismiss(alert_id)}


@app.post("/api/bets/{index}/resolve")
def resolve_bet(index: int, req: ResolveRequest, orch: ScanOrchestrator = Depends(get_orchestrator)):
    try:
        entry = orch.resolve(index, req.result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IndexError:
        raise HTTPException(status_code=404, detail="Bet not found")
    body = entry.model_dump(mode="json")
    body["net"] = entry_net(entry)
    return {"entry": body, "totals": orch.totals().model_dump()}


@app.get("/health")
def health():
    return {"status": "ok", "has_server_key": bool(config.ANTHROPIC_API_KEY)}


STATIC_DIR = pathlib.Path(__file__).parent / "static"
if STATIC_DIR.exists():
    if (STATIC_DIR / "assets").exists():
        app.mount("/assets", StaticFiles(directory=STATIC_DIR / "assets"), name="assets")

    @app.get("/{full_path:path}")
    def serve_spa(full_path: str):
        return FileResponse(str(STATIC_DIR / "index.html"))
