from backend.config import PAYOUT_MULTIPLIER
from backend.models import LedgerEntry, LedgerTotals, Recommendation

OUTCOMES = ("won", "lost", "push")


def wager_for(rec: Recommendation, unit_size: int) -> float:
    return rec.units * unit_size


def entry_net(entry: LedgerEntry) -> float:
    """Profit shown on a resolved bet card; pending and push are 0."""
    if entry.result == "won":
        return round(entry.wager * (PAYOUT_MULTIPLIER - 1), 2)
    if entry.result == "lost":
        return -entry.wager
    return 0


def ledger_totals(entries: list[LedgerEntry], bankroll: float) -> LedgerTotals:
    wagered = sum(e.wager for e in entries)
    won = sum(e.wager * PAYOUT_MULTIPLIER for e in entries if e.result == "won")
    lost = sum(e.wager for e in entries if e.result == "lost")
    pending = sum(e.wager for e in entries if e.result == "pending")
    return LedgerTotals(
        wagered=wagered,
        won=won,
        lost=lost,
        net=won - lost,
        pending=pending,
        remaining=bankroll - wagered + won,
    )
