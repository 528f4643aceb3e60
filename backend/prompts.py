from backend.config import BOOKS, EVENT_NAME, MAX_RECOMMENDATIONS, sides, team_name
from backend.models import ScanSettings


def _schema_example() -> str:
    away, home = sides()
    a, h = away.lower(), home.lower()
    books = ",".join(
        f'"{b}":{{"spread":"-4.5","ml_fav":"-200","ml_dog":"+170","total":"45.5"}}'
        for b in BOOKS
    )
    return (
        '{"game":{'
        f'"{a}_score":0,"{h}_score":0,"quarter":"1","clock":"15:00","possession":"",'
        '"down_distance":"","last_play":"","status":"pregame",'
        f'"stats":{{"{a}_yards":0,"{h}_yards":0,"{a}_to":0,"{h}_to":0}},'
        f'"players":[{{"name":"","team":"{away}","stat_line":"12/18, 143 yds, 1 TD"}}]'
        '},'
        f'"odds":{{{books},"favorite":"{home}","best_spread_book":"betmgm",'
        '"best_ml_book":"draftkings","best_total_book":"draftkings","notes":""},'
        '"analysis":{"alerts":['
        f'{{"type":"spread","confidence":"HIGH","team":"{away}","desc":"{away} +4.5",'
        f'"action":"Bet {away} +4.5 at FanDuel",'
        '"book":"fanduel","odds":"-110","reason":"","units":1,"ev":0},'
        '{"type":"parlay","confidence":"MED","desc":"2-leg parlay",'
        f'"legs":[{{"pick":"{home} ML","odds":"-200","book":"draftkings"}},{{"pick":"Over 45.5","odds":"-110","book":"draftkings"}}],'
        '"reason":"","units":0.5}'
        '],"narrative":"","momentum":"NEUTRAL","strength":5,"wait":false,"wait_reason":""}}'
    )


def build_scan_prompt(settings: ScanSettings) -> str:
    """One prompt that asks for game state, odds from every book and betting analysis."""
    away, home = sides()
    book_names = ", ".join(BOOKS.values())
    return (
        f'Search for "{EVENT_NAME} score {team_name(away)} {team_name(home)}" '
        f'and "{EVENT_NAME} odds today" on {book_names}. '
        "Then respond with ONLY this JSON (no other text):\n\n"
        f"{_schema_example()}\n\n"
        "RULES: Fill with REAL data from search. status=pregame|live|halftime|final. "
        "American odds (-110,+150). favorite=which team is favored. "
        "Spread is from favorite's perspective (negative=favorite gives points). "
        "players=up to 6 key player stat lines, empty before kickoff. "
        f"alerts=0-{MAX_RECOMMENDATIONS} max, only real edges. "
        "type=spread|moneyline|total|prop|parlay; confidence=LOW|MED|HIGH|LOCK; "
        "parlays list every leg with its own odds and book. "
        f"Aggression={settings.aggression}/10 with a ${settings.unit_size} unit "
        f"and ${settings.bankroll} bankroll. "
        f"momentum={away}|{home}|NEUTRAL, strength=1-10. "
        "If no edge, empty alerts+wait=true."
    )
