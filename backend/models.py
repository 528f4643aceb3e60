from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from backend.config import (
    DEFAULT_AGGRESSION,
    DEFAULT_BANKROLL,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_UNIT_SIZE,
)

GameStatus = Literal["pregame", "live", "halftime", "final"]
Confidence = Literal["LOW", "MED", "HIGH", "LOCK"]
BetKind = Literal["spread", "moneyline", "total", "prop", "parlay"]
BetResult = Literal["pending", "won", "lost", "push"]
LogLevel = Literal["scan", "info", "success", "alert", "error"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_int(value, default: int) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


# ── SESSION SETTINGS ──────────────────────────────────────────────────────────
class ScanSettings(BaseModel):
    aggression: int = DEFAULT_AGGRESSION
    unit_size: int = DEFAULT_UNIT_SIZE
    bankroll: int = DEFAULT_BANKROLL

    @field_validator("aggression", mode="before")
    @classmethod
    def _clamp_aggression(cls, v):
        return min(10, max(1, _to_int(v, DEFAULT_AGGRESSION)))

    @field_validator("unit_size", mode="before")
    @classmethod
    def _positive_unit(cls, v):
        n = _to_int(v, DEFAULT_UNIT_SIZE)
        return n if n > 0 else DEFAULT_UNIT_SIZE

    @field_validator("bankroll", mode="before")
    @classmethod
    def _positive_bankroll(cls, v):
        n = _to_int(v, DEFAULT_BANKROLL)
        return n if n > 0 else DEFAULT_BANKROLL


# ── GAME STATE ────────────────────────────────────────────────────────────────
class PlayerLine(BaseModel):
    name: str
    team: Optional[str] = None
    stat_line: str = ""


class GameState(BaseModel):
    scores: dict[str, int] = Field(default_factory=dict)
    period: Optional[str] = None
    clock: Optional[str] = None
    possession: Optional[str] = None
    status: GameStatus = "pregame"
    last_event: Optional[str] = None
    down_distance: Optional[str] = None
    yard_line: Optional[str] = None
    # side abbr → stat name → value
    stats: dict[str, dict[str, float]] = Field(default_factory=dict)
    players: list[PlayerLine] = Field(default_factory=list)


# ── ODDS ──────────────────────────────────────────────────────────────────────
class BookQuote(BaseModel):
    spread: Optional[str] = None          # favorite's perspective
    spreads: dict[str, str] = Field(default_factory=dict)
    moneylines: dict[str, str] = Field(default_factory=dict)  # "fav"/"dog" or side abbr
    total: Optional[str] = None
    over: Optional[str] = None
    under: Optional[str] = None


class OddsSnapshot(BaseModel):
    books: dict[str, BookQuote] = Field(default_factory=dict)
    favorite: Optional[str] = None
    # market → source id; advisory, not checked against `books`
    best: dict[str, str] = Field(default_factory=dict)
    notes: Optional[str] = None


# ── RECOMMENDATIONS / LEDGER ──────────────────────────────────────────────────
class Leg(BaseModel):
    pick: str
    price: Optional[str] = None
    book: Optional[str] = None


class Recommendation(BaseModel):
    id: str
    confidence: Confidence = "MED"
    kind: BetKind = "spread"
    title: str = ""
    team: Optional[str] = None
    legs: list[Leg] = Field(default_factory=list)
    rationale: str = ""
    units: float = 1
    ev: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def best_book(self) -> Optional[str]:
        return next((leg.book for leg in self.legs if leg.book), None)


class LedgerEntry(BaseModel):
    recommendation: Recommendation
    unit_size: int
    wager: float
    placed_at: datetime = Field(default_factory=utcnow)
    result: BetResult = "pending"


class LedgerTotals(BaseModel):
    wagered: float = 0
    won: float = 0
    lost: float = 0
    net: float = 0
    pending: float = 0
    remaining: float = 0


# ── SCAN ──────────────────────────────────────────────────────────────────────
class ScanLogLine(BaseModel):
    message: str
    level: LogLevel = "info"
    time: datetime = Field(default_factory=utcnow)


class ScanResult(BaseModel):
    game: Optional[GameState] = None
    odds: Optional[OddsSnapshot] = None
    recommendations: list[Recommendation] = Field(default_factory=list)
    narrative: Optional[str] = None
    momentum: Optional[str] = None
    strength: Optional[int] = None
    wait: bool = False
    wait_reason: Optional[str] = None
    search_count: int = 0
    error: Optional[str] = None


class ScanState(BaseModel):
    """Read-only view of everything the orchestrator owns."""
    is_scanning: bool
    game: Optional[GameState] = None
    odds: Optional[OddsSnapshot] = None
    analysis: Optional[ScanResult] = None
    alerts: list[Recommendation] = Field(default_factory=list)
    alert_history: list[Recommendation] = Field(default_factory=list)
    ledger: list[LedgerEntry] = Field(default_factory=list)
    log: list[ScanLogLine] = Field(default_factory=list)
    totals: LedgerTotals
    settings: ScanSettings
    auto_refresh: bool = False
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL
    last_updated: Optional[datetime] = None
    error: Optional[str] = None
