"""Derived player aggregates computed from stored match lines."""
from dataclasses import dataclass
from typing import Iterable, Sequence


def kd_ratio(kills: int, deaths: int) -> float:
    """Kills per death; with no deaths the ratio is the kill count."""
    if deaths <= 0:
        return float(kills)
    return round(kills / deaths, 2)


def win_rate(matches: Sequence) -> float:
    """Fraction of matches won (0.0-1.0). Anything with a ``has_won`` attribute counts."""
    if not matches:
        return 0.0
    wins = sum(1 for m in matches if m.has_won)
    return round(wins / len(matches), 4)


@dataclass(frozen=True)
class PlayerStatsSummary:
    total_matches: int
    wins: int
    kills: int
    deaths: int
    assists: int
    kd_ratio: float
    win_rate: float


def summarize(lines: Iterable) -> PlayerStatsSummary:
    """Fold a player's match lines into career totals."""
    lines = list(lines)
    kills = sum(line.kills for line in lines)
    deaths = sum(line.deaths for line in lines)
    return PlayerStatsSummary(
        total_matches=len(lines),
        wins=sum(1 for line in lines if line.has_won),
        kills=kills,
        deaths=deaths,
        assists=sum(line.assists for line in lines),
        kd_ratio=kd_ratio(kills, deaths),
        win_rate=win_rate(lines),
    )
