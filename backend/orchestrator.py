"""
Scan orchestration: one scan at a time, one prompt per scan.

A ScanOrchestrator owns every piece of session state (game, odds, alerts,
ledger, log). Callers read it through snapshot() or subscribe(), and change it
only through the intent methods.
"""
import asyncio
import logging
import re
from collections import deque
from typing import Callable, Optional

from backend.config import (
    ALERT_HISTORY_CAPACITY,
    BOOKS,
    DEFAULT_REFRESH_INTERVAL,
    LOG_CAPACITY,
    RAW_EXCERPT_CHARS,
    REFRESH_INTERVALS,
)
from backend.decoder import decode_payload
from backend.fetch import PromptedFetch, PromptReply
from backend.ledger import OUTCOMES, ledger_totals, wager_for
from backend.models import (
    LedgerEntry,
    LedgerTotals,
    Recommendation,
    ScanLogLine,
    ScanResult,
    ScanSettings,
    ScanState,
    utcnow,
)
from backend.normalize import normalize_payload
from backend.prompts import build_scan_prompt

RATE_LIMIT_MESSAGE = (
    "Rate limited by the model API. Wait at least 60 seconds before scanning again, "
    "or switch auto-refresh to a longer interval."
)
PARSE_FAILURE_MESSAGE = "Could not parse the model response. Scan again in a moment."

_LOG_LEVELS = {"error": logging.ERROR, "alert": logging.WARNING}


def is_rate_limited(error: Optional[str], details: Optional[str] = None) -> bool:
    # a bare "429" in details can be part of a request id or body text
    if error and re.search(r"\b429\b", error):
        return True
    text = f"{error or ''} {details or ''}".lower()
    return "rate limit" in text or "rate_limit" in text


def _score_line(result: ScanResult) -> str:
    game = result.game
    score = " — ".join(f"{side} {pts}" for side, pts in game.scores.items()) or "no score"
    clock = " ".join(p for p in (f"Q{game.period}" if game.period else "", game.clock or "") if p)
    return f"Score: {score} | {clock or '--'} | {game.status.upper()}"


class ScanOrchestrator:
    def __init__(self, fetch: PromptedFetch, settings: Optional[ScanSettings] = None):
        self._fetch = fetch
        self.settings = settings or ScanSettings()

        self._scanning = False
        self._game = None
        self._odds = None
        self._analysis: Optional[ScanResult] = None
        self._alerts: list[Recommendation] = []
        self._history: deque[Recommendation] = deque(maxlen=ALERT_HISTORY_CAPACITY)
        self._ledger: list[LedgerEntry] = []
        self._log: deque[ScanLogLine] = deque(maxlen=LOG_CAPACITY)
        self._last_updated = None
        self._error: Optional[str] = None

        self._auto_refresh = False
        self._interval = DEFAULT_REFRESH_INTERVAL
        self._timer: Optional[asyncio.Task] = None
        self._spawned: set[asyncio.Task] = set()
        self._subscribers: list[Callable[[ScanState], None]] = []

    # ── READ SIDE ─────────────────────────────────────────────────────────────
    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def totals(self) -> LedgerTotals:
        return ledger_totals(self._ledger, self.settings.bankroll)

    def snapshot(self) -> ScanState:
        state = ScanState(
            is_scanning=self._scanning,
            game=self._game,
            odds=self._odds,
            analysis=self._analysis,
            alerts=list(self._alerts),
            alert_history=list(self._history),
            ledger=list(self._ledger),
            log=list(self._log),
            totals=self.totals(),
            settings=self.settings,
            auto_refresh=self._auto_refresh,
            refresh_interval=self._interval,
            last_updated=self._last_updated,
            error=self._error,
        )
        return state.model_copy(deep=True)

    def subscribe(self, callback: Callable[[ScanState], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        state = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as e:
                logging.warning(f"State subscriber failed: {e!r}")

    def _add_log(self, message: str, level: str = "info") -> None:
        self._log.append(ScanLogLine(message=message, level=level))
        logging.log(_LOG_LEVELS.get(level, logging.INFO), f"[scan] {message}")

    # ── SCAN ──────────────────────────────────────────────────────────────────
    async def execute_scan(self, settings: Optional[ScanSettings] = None) -> Optional[ScanResult]:
        """
        Run one full scan. Returns None when another scan is already in flight
        (the trigger is dropped, not queued); otherwise the ScanResult, whose
        `error` is set on failure. Never raises for upstream or decode errors.
        """
        if self._scanning:
            logging.debug("Scan already in flight; trigger dropped")
            return None
        self._scanning = True
        if settings is not None:
            self.settings = settings
        self._error = None
        self._add_log("━━━ INITIATING FULL SCAN ━━━", "scan")
        self._add_log(
            f"Fetching score, odds and analysis in one call (aggression {self.settings.aggression}/10)...",
            "scan",
        )
        self._notify()

        result: Optional[ScanResult] = None
        try:
            reply = await self._fetch.send_prompt(build_scan_prompt(self.settings), "full_scan")
            result = self._handle_reply(reply)
        except Exception as e:
            logging.exception("Scan transport failure")
            result = self._fail(str(e) or e.__class__.__name__)
        finally:
            self._last_updated = utcnow()
            self._scanning = False
            self._add_log("━━━ SCAN COMPLETE ━━━", "scan")
            self._notify()
        return result

    def _handle_reply(self, reply: PromptReply) -> ScanResult:
        if reply.error:
            return self._fail(reply.error, reply.details, reply.search_count)

        payload = decode_payload(reply.text)
        if payload is None:
            excerpt = (reply.text or "")[:RAW_EXCERPT_CHARS]
            self._add_log(f"Could not parse response: {excerpt!r}", "error")
            self._error = PARSE_FAILURE_MESSAGE
            return ScanResult(error="Could not parse response", search_count=reply.search_count)

        result = normalize_payload(payload, reply.search_count)
        self._apply(result)
        return result

    def _fail(self, error: str, details: Optional[str] = None, search_count: int = 0) -> ScanResult:
        if is_rate_limited(error, details):
            self._add_log(f"Rate limited ({error}); back off before the next scan", "error")
            self._error = RATE_LIMIT_MESSAGE
        else:
            self._add_log(f"API call failed: {error}", "error")
            self._error = (
                f"API call failed ({error}). Make sure ANTHROPIC_API_KEY is set on the server."
            )
        return ScanResult(error=error, search_count=search_count)

    def _apply(self, result: ScanResult) -> None:
        if result.game is not None:
            self._game = result.game
            self._add_log(_score_line(result), "success")
        if result.odds is not None:
            self._odds = result.odds
            priced = sum(
                1 for q in result.odds.books.values()
                if q.spread or q.spreads or q.moneylines or q.total
            )
            self._add_log(f"Odds loaded from {priced}/{len(BOOKS)} sportsbooks", "success")
            if result.odds.notes:
                self._add_log(result.odds.notes, "info")
        self._analysis = result

        recs = result.recommendations
        if recs:
            self._alerts.extend(recs)
            self._history.extend(recs)
            self._add_log(f"{len(recs)} NEW ALERT{'S' if len(recs) > 1 else ''}", "alert")
            for rec in recs:
                self._add_log(f"   → {rec.confidence} | {rec.title}", "alert")
        else:
            self._add_log("No actionable opportunities right now", "info")

        if result.narrative:
            self._add_log(result.narrative, "info")
        if result.wait:
            reason = f": {result.wait_reason}" if result.wait_reason else ""
            self._add_log(f"Wait recommended{reason}", "info")
        if result.search_count:
            self._add_log(f"{result.search_count} web searches used", "info")

    # ── LEDGER INTENTS ────────────────────────────────────────────────────────
    def place(self, recommendation_id: str) -> Optional[LedgerEntry]:
        rec = next((a for a in self._alerts if a.id == recommendation_id), None)
        if rec is None:
            return None
        self._alerts = [a for a in self._alerts if a.id != recommendation_id]
        unit_size = self.settings.unit_size
        entry = LedgerEntry(recommendation=rec, unit_size=unit_size, wager=wager_for(rec, unit_size))
        self._ledger.append(entry)
        self._add_log(
            f"BET PLACED: {rec.title} → {rec.best_book or 'best available'} (${entry.wager:g})",
            "alert",
        )
        self._notify()
        return entry

    def resolve(self, index: int, outcome: str) -> LedgerEntry:
        if outcome not in OUTCOMES:
            raise ValueError(f"outcome must be one of {', '.join(OUTCOMES)}")
        if not 0 <= index < len(self._ledger):
            raise IndexError(f"no bet at index {index}")
        entry = self._ledger[index]
        if entry.result != "pending":
            # overwrites silently in totals; only the server log keeps the change
            logging.warning(f"Bet {index} re-resolved: {entry.result} → {outcome}")
        entry.result = outcome
        self._add_log(f"Bet resolved: {entry.recommendation.title} → {outcome.upper()}", "info")
        self._notify()
        return entry

    def dismiss(self, recommendation_id: str) -> bool:
        before = len(self._alerts)
        self._alerts = [a for a in self._alerts if a.id != recommendation_id]
        if len(self._alerts) == before:
            return False
        self._notify()
        return True

    def update_settings(self, **changes) -> ScanSettings:
        merged = {**self.settings.model_dump(), **{k: v for k, v in changes.items() if v is not None}}
        self.settings = ScanSettings(**merged)
        self._notify()
        return self.settings

    # ── AUTO-REFRESH ──────────────────────────────────────────────────────────
    @property
    def auto_refresh(self) -> bool:
        return self._auto_refresh

    @property
    def refresh_interval(self) -> int:
        return self._interval

    def set_auto_refresh(self, enabled: bool, interval: Optional[int] = None) -> None:
        """Start, stop or reschedule the periodic scan. Must run inside the event loop."""
        if interval is not None:
            if interval not in REFRESH_INTERVALS:
                raise ValueError(f"interval must be one of {REFRESH_INTERVALS}")
            self._interval = interval
        self._cancel_timer()
        self._auto_refresh = enabled
        if enabled:
            self._timer = asyncio.create_task(self._auto_loop(self._interval))
            self._add_log(f"Auto-refresh: every {self._interval}s", "info")
        self._notify()

    async def _auto_loop(self, interval: int) -> None:
        while True:
            await asyncio.sleep(interval)
            # Separate task so stopping the timer never aborts a scan in flight
            task = asyncio.create_task(self.execute_scan())
            self._spawned.add(task)
            task.add_done_callback(self._spawned.discard)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        """Teardown: no scheduled scan may fire after this."""
        self._cancel_timer()
        self._auto_refresh = False
