import os

# ── UPSTREAM MODEL API ────────────────────────────────────────────────────────
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "").strip()
ANTHROPIC_URL = os.getenv("ANTHROPIC_URL", "https://api.anthropic.com/v1/messages")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
ANTHROPIC_VERSION = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
ANTHROPIC_MAX_TOKENS = int(os.getenv("ANTHROPIC_MAX_TOKENS", "4096"))
WEB_SEARCH_MAX_USES = int(os.getenv("WEB_SEARCH_MAX_USES", "5"))
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "90"))

WEB_SEARCH_LOCATION = {
    "type": "approximate",
    "city": "Lynn",
    "region": "Massachusetts",
    "country": "US",
    "timezone": "America/New_York",
}

# Empty → the orchestrator forwards in-process instead of over HTTP
RELAY_URL = os.getenv("RELAY_URL", "").strip()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ── EVENT ─────────────────────────────────────────────────────────────────────
EVENT_NAME = os.getenv("EVENT_NAME", "Super Bowl LX")
AWAY_TEAM = os.getenv("AWAY_TEAM", "NE").upper()
HOME_TEAM = os.getenv("HOME_TEAM", "SEA").upper()

TEAM_NAMES: dict[str, str] = {
    "NE": "New England Patriots",
    "SEA": "Seattle Seahawks",
}

BOOKS: dict[str, str] = {
    "fanduel": "FanDuel",
    "draftkings": "DraftKings",
    "betmgm": "BetMGM",
    "underdog": "Underdog",
}

# ── SESSION DEFAULTS ──────────────────────────────────────────────────────────
DEFAULT_AGGRESSION = 5
DEFAULT_UNIT_SIZE = 25
DEFAULT_BANKROLL = 500

REFRESH_INTERVALS = (30, 60, 90, 120)
DEFAULT_REFRESH_INTERVAL = 60

# Win returns stake + profit at roughly -110
PAYOUT_MULTIPLIER = 1.9

LOG_CAPACITY = 100
ALERT_HISTORY_CAPACITY = 200
RAW_EXCERPT_CHARS = 300
MAX_RECOMMENDATIONS = 5


def team_name(abbr: str) -> str:
    return TEAM_NAMES.get(abbr.upper(), abbr.upper())


def sides() -> tuple[str, str]:
    """(away, home) abbreviations for the monitored event."""
    return AWAY_TEAM, HOME_TEAM
