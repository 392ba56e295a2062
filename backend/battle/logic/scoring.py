"""Answer scoring, per-answer battle effects and the final leaderboard."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from battle.logic.enums import EffectType
from battle.logic.sprites import get_sprite_profile
from battle.logic.types import BattleEffect, LeaderboardEntry

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from shared.dal.models import GameAnswer, Participant

BASE_CORRECT_POINTS = 100
TIME_BONUS_MULTIPLIER = 2
TIMEOUT_HP_PENALTY = 10

REASON_CORRECT = "Correct Answer Bonus"
REASON_TIMEOUT = "Time Ran Out"
REASON_WRONG = "Wrong Answer"


def is_timeout(answer: str | None) -> bool:
    """An empty or whitespace-only answer means the timer ran out."""
    return not answer or not answer.strip()


def answer_points(time_per_question: int, time_to_answer_seconds: float) -> int:
    """Points for a correct answer: a flat base plus two per second left on the clock."""
    remaining = max(0.0, time_per_question - time_to_answer_seconds)
    return BASE_CORRECT_POINTS + math.floor(remaining * TIME_BONUS_MULTIPLIER)


def answer_effect(participant: Participant, *, is_correct: bool, timed_out: bool) -> BattleEffect | None:
    """Stat change an answer applies to its author, or None when nothing changes."""
    profile = get_sprite_profile(participant.sprite_type)
    if is_correct:
        if profile.correct_bonus <= 0:
            return None
        return BattleEffect(
            type=EffectType.ENERGY_GAIN,
            player_id=participant.user_id,
            player_name=participant.username,
            amount=profile.correct_bonus,
            reason=REASON_CORRECT,
        )
    return BattleEffect(
        type=EffectType.HP_LOSS,
        player_id=participant.user_id,
        player_name=participant.username,
        amount=TIMEOUT_HP_PENALTY if timed_out else profile.incorrect_penalty,
        reason=REASON_TIMEOUT if timed_out else REASON_WRONG,
    )


def round_battle_moves(answers: Iterable[GameAnswer], participants: Sequence[Participant]) -> list[BattleEffect]:
    """Rebuild every effect of a finished round from the stored answers, in answer order."""
    by_user = {p.user_id: p for p in participants}
    moves: list[BattleEffect] = []
    for answer in answers:
        participant = by_user.get(answer.user_id)
        if participant is None:
            continue
        effect = answer_effect(participant, is_correct=answer.is_correct, timed_out=is_timeout(answer.answer))
        if effect is not None:
            moves.append(effect)
    return moves


def build_leaderboard(participants: Iterable[Participant]) -> list[LeaderboardEntry]:
    """Rank participants by score, highest first. Ties keep join order."""
    ranked = sorted(participants, key=lambda p: p.score, reverse=True)
    return [
        LeaderboardEntry(
            position=position,
            user_id=p.user_id,
            username=p.username,
            score=p.score,
            correct_answers=p.correct_answers,
            total_answered=p.total_answered,
        )
        for position, p in enumerate(ranked, start=1)
    ]
