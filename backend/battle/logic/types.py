"""Value types produced by the scoring and combat rules."""

from battle.logic.enums import EffectType
from shared.dal.models import CamelModel


class BattleEffect(CamelModel):
    """Stat change caused by one answer, shown to every participant."""

    type: EffectType
    player_id: int
    player_name: str
    amount: int
    reason: str


class LeaderboardEntry(CamelModel):
    position: int
    user_id: int
    username: str
    score: int
    correct_answers: int
    total_answered: int
