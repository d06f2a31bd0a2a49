"""Win/loss counters for wager challenges."""

from typing import Dict
from uuid import UUID

from sqlalchemy.orm import Session

from models import BattleStats


def update_battle_stats(db: Session, user_id: UUID, *, won: bool) -> BattleStats:
    stats = db.get(BattleStats, user_id)
    if stats is None:
        stats = BattleStats(user_id=user_id, wins=0, losses=0, current_streak=0, best_streak=0)
        db.add(stats)

    if won:
        stats.wins += 1
        stats.current_streak += 1
        stats.best_streak = max(stats.best_streak, stats.current_streak)
    else:
        stats.losses += 1
        stats.current_streak = 0

    db.flush()
    return stats


def get_battle_stats(db: Session, user_id: UUID) -> Dict:
    stats = db.get(BattleStats, user_id)
    if stats is None:
        return {"user_id": user_id, "wins": 0, "losses": 0, "current_streak": 0, "best_streak": 0}
    return {
        "user_id": user_id,
        "wins": stats.wins,
        "losses": stats.losses,
        "current_streak": stats.current_streak,
        "best_streak": stats.best_streak,
    }
