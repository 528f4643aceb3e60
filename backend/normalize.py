"""
Map the payload shapes the model has been asked for over time onto the
canonical types in backend.models.

Every prompt revision renamed a few keys (desc vs description, book vs
best_book, top-level bets vs analysis.alerts, flat per-book prices vs nested
books.*). Nothing outside this module looks at raw payload keys.
"""
import math
import re
import uuid
from typing import Any, Optional, Union

from backend.config import BOOKS, MAX_RECOMMENDATIONS, sides
from backend.models import (
    BookQuote,
    GameState,
    Leg,
    OddsSnapshot,
    PlayerLine,
    Recommendation,
    ScanResult,
)

_EMPTY = {"", "n/a", "na", "none", "null", "-", "–", "—"}

_STATUS_MAP = {
    "pregame": "pregame", "pre": "pregame", "upcoming": "pregame", "scheduled": "pregame",
    "live": "live", "in_progress": "live", "in progress": "live",
    "halftime": "halftime", "half": "halftime",
    "final": "final", "ended": "final", "complete": "final", "completed": "final",
}

_KIND_MAP = {
    "spread": "spread", "ats": "spread", "point_spread": "spread",
    "moneyline": "moneyline", "ml": "moneyline", "money_line": "moneyline",
    "total": "total", "totals": "total", "over_under": "total", "ou": "total",
    "over": "total", "under": "total",
    "prop": "prop", "props": "prop", "player_prop": "prop",
    "parlay": "parlay", "sgp": "parlay", "same_game_parlay": "parlay",
}

_CONFIDENCE_MAP = {
    "LOW": "LOW", "MED": "MED", "MEDIUM": "MED", "MID": "MED",
    "HIGH": "HIGH", "LOCK": "LOCK",
}

_STAT_ALIASES = {"to": "turnovers", "yards": "total_yards"}


def _first(d: dict, *keys) -> Any:
    for k in keys:
        v = d.get(k)
        if v is not None and v != "":
            return v
    return None


def _text(val) -> Optional[str]:
    if val is None or isinstance(val, (dict, list)):
        return None
    s = str(val).strip()
    return None if s.lower() in _EMPTY else s


def _price(val) -> Optional[str]:
    """American price as display text: 150 → "+150", "-110" unchanged."""
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        if _number(val) is None:
            return None
        p = int(val)
        return f"+{p}" if p > 0 else str(p)
    return _text(val)


def _number(val) -> Optional[float]:
    if isinstance(val, bool) or val is None:
        return None
    try:
        num = float(val)
    except (TypeError, ValueError, OverflowError):
        return None
    return num if math.isfinite(num) else None


# ── GAME ──────────────────────────────────────────────────────────────────────
def _side_stats(raw: dict, into: dict[str, dict[str, float]]) -> None:
    for key, val in raw.items():
        num = _number(val)
        if num is None:
            continue
        for side in sides():
            prefix = f"{side.lower()}_"
            if key.lower().startswith(prefix):
                stat = key[len(prefix):].lower()
                into.setdefault(side, {})[_STAT_ALIASES.get(stat, stat)] = num


def _players(items) -> list[PlayerLine]:
    out = []
    for p in items if isinstance(items, list) else []:
        if not isinstance(p, dict):
            continue
        name = _text(_first(p, "name", "player"))
        if not name:
            continue
        line = _first(p, "stat_line", "line", "stats")
        if isinstance(line, dict):
            line = ", ".join(f"{v} {k}" for k, v in line.items())
        team = _text(p.get("team"))
        out.append(PlayerLine(name=name, team=team.upper() if team else None, stat_line=_text(line) or ""))
    return out


def normalize_game(raw: dict, players=None) -> GameState:
    scores: dict[str, int] = {}
    away, home = sides()
    for side, alias in ((away, "away_score"), (home, "home_score")):
        val = _first(raw, f"{side.lower()}_score", alias)
        num = _number(val)
        if num is not None:
            scores[side] = int(num)
    if isinstance(raw.get("scores"), dict):
        for side, val in raw["scores"].items():
            num = _number(val)
            if num is not None:
                scores[str(side).upper()] = int(num)

    stats: dict[str, dict[str, float]] = {}
    for block in ("stats", "key_stats"):
        if isinstance(raw.get(block), dict):
            _side_stats(raw[block], stats)

    status = _STATUS_MAP.get((_text(raw.get("status")) or "").lower(), "pregame")
    possession = _text(raw.get("possession"))

    return GameState(
        scores=scores,
        period=_text(_first(raw, "quarter", "period")),
        clock=_text(raw.get("clock")),
        possession=possession.upper() if possession else None,
        status=status,
        last_event=_text(_first(raw, "last_play", "last_event")),
        down_distance=_text(raw.get("down_distance")),
        yard_line=_text(raw.get("yard_line")),
        stats=stats,
        players=_players(raw.get("players") or players),
    )


# ── ODDS ──────────────────────────────────────────────────────────────────────
_QUOTE_KEYS = {"spread", "ml_fav", "ml_dog", "total", "moneyline", "over_under"}


def _book_quote(raw: dict) -> BookQuote:
    quote = BookQuote()
    spread = raw.get("spread")
    if isinstance(spread, dict):
        quote.spread = _text(spread.get("line"))
        for side, val in spread.items():
            p = _price(val)
            if side != "line" and p:
                quote.spreads[side.upper()] = p
    else:
        quote.spread = _text(spread)

    for key, label in (("ml_fav", "fav"), ("ml_dog", "dog")):
        p = _price(raw.get(key))
        if p:
            quote.moneylines[label] = p
    if isinstance(raw.get("moneyline"), dict):
        for side, val in raw["moneyline"].items():
            p = _price(val)
            if p:
                quote.moneylines[side.upper()] = p

    ou = raw.get("over_under") if isinstance(raw.get("over_under"), dict) else {}
    quote.total = _text(_first(raw, "total") or ou.get("total"))
    quote.over = _price(_first(raw, "over") or ou.get("over"))
    quote.under = _price(_first(raw, "under") or ou.get("under"))
    return quote


def _resolve_book(designation: str) -> str:
    """Map "DraftKings -4.5" style text to a book id; unknown text is kept."""
    low = designation.lower()
    for book_id, name in BOOKS.items():
        if book_id in low or name.lower() in low:
            return book_id
    return low


def normalize_odds(raw: dict) -> OddsSnapshot:
    books_raw = raw.get("books") if isinstance(raw.get("books"), dict) else {
        k: v for k, v in raw.items()
        if isinstance(v, dict) and (k in BOOKS or _QUOTE_KEYS & set(v))
    }
    books = {
        str(k).lower(): _book_quote(v) for k, v in books_raw.items() if isinstance(v, dict)
    }

    best: dict[str, str] = {}
    for key, market in (("best_spread_book", "spread"), ("best_ml_book", "moneyline"),
                        ("best_total_book", "total")):
        val = _text(raw.get(key))
        if val:
            best[market] = _resolve_book(val)
    if isinstance(raw.get("best_bets"), dict):
        for key, val in raw["best_bets"].items():
            val = _text(val)
            if val:
                best[re.sub(r"^best_", "", key)] = _resolve_book(val)

    favorite = _text(raw.get("favorite"))
    return OddsSnapshot(
        books=books,
        favorite=favorite.upper() if favorite else None,
        best=best,
        notes=_text(raw.get("notes")),
    )


# ── RECOMMENDATIONS ───────────────────────────────────────────────────────────
def _legs(raw: dict) -> list[Leg]:
    legs = []
    if isinstance(raw.get("legs"), list):
        for leg in raw["legs"]:
            if isinstance(leg, dict):
                pick = _text(_first(leg, "pick", "selection", "description", "desc"))
                if pick:
                    legs.append(Leg(
                        pick=pick,
                        price=_price(_first(leg, "odds", "price")),
                        book=(_text(_first(leg, "book", "best_book")) or "").lower() or None,
                    ))
            elif _text(leg):
                legs.append(Leg(pick=_text(leg)))
    if not legs:
        pick = _text(_first(raw, "action", "pick", "description", "desc", "title"))
        if pick:
            legs.append(Leg(
                pick=pick,
                price=_price(_first(raw, "odds", "price")),
                book=(_text(_first(raw, "best_book", "book")) or "").lower() or None,
            ))
    return legs


def _kind(raw: dict, legs: list[Leg]) -> str:
    kind = _KIND_MAP.get((_text(_first(raw, "type", "kind", "market")) or "").lower())
    if kind:
        return kind
    return "parlay" if len(legs) > 1 else "spread"


def normalize_recommendations(items, stamp: Union[str, int, None] = None) -> list[Recommendation]:
    # ids must stay unique across scans; callers may pin the prefix
    stamp = stamp if stamp is not None else uuid.uuid4().hex[:12]
    out: list[Recommendation] = []
    for raw in items if isinstance(items, list) else []:
        if not isinstance(raw, dict):
            continue
        legs = _legs(raw)
        title = _text(_first(raw, "description", "desc", "title", "action")) or (legs[0].pick if legs else None)
        if not title:
            continue
        units = _number(raw.get("units"))
        team = _text(raw.get("team"))
        out.append(Recommendation(
            id=f"{stamp}-{len(out)}",
            confidence=_CONFIDENCE_MAP.get((_text(raw.get("confidence")) or "").upper(), "LOW"),
            kind=_kind(raw, legs),
            title=title,
            team=team.upper() if team else None,
            legs=legs,
            rationale=_text(_first(raw, "reason", "rationale", "reasoning")) or "",
            units=units if units and units > 0 else 1,
            ev=_number(_first(raw, "ev", "ev_score")),
        ))
        if len(out) >= MAX_RECOMMENDATIONS:
            break
    return out


# ── PAYLOAD ───────────────────────────────────────────────────────────────────
def _momentum(val) -> Optional[str]:
    text = _text(val)
    if text is None:
        return None
    text = text.upper()
    return text if text in sides() else "NEUTRAL"


def _truthy(val) -> bool:
    if isinstance(val, str):
        return val.strip().lower() in ("true", "yes", "1")
    return bool(val)


def normalize_payload(payload: dict, search_count: int = 0, stamp: Union[str, int, None] = None) -> ScanResult:
    """Build a ScanResult; sections missing from the payload stay None."""
    analysis = payload.get("analysis") if isinstance(payload.get("analysis"), dict) else {}

    def pick(*keys):
        v = _first(payload, *keys)
        return v if v is not None else _first(analysis, *keys)

    game = None
    if isinstance(payload.get("game"), dict):
        game = normalize_game(payload["game"], players=payload.get("player_stats"))

    odds = normalize_odds(payload["odds"]) if isinstance(payload.get("odds"), dict) else None

    bets = pick("bets", "alerts")
    strength = _number(pick("strength", "momentum_strength"))

    return ScanResult(
        game=game,
        odds=odds,
        recommendations=normalize_recommendations(bets, stamp),
        narrative=_text(pick("narrative", "game_narrative")),
        momentum=_momentum(pick("momentum")),
        strength=min(10, max(1, int(strength))) if strength is not None else None,
        wait=_truthy(pick("wait", "recommended_wait")),
        wait_reason=_text(pick("wait_reason")),
        search_count=search_count,
    )
