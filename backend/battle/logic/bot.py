"""
Bot participant as a pure decision-maker.

Picks a sprite, produces answers with a think time, and chooses battle
actions. Scheduling and submission are handled by BattleCoordinator.
"""

from __future__ import annotations

import math
import random
import string
from dataclasses import dataclass
from typing import TYPE_CHECKING

from battle.logic.combat import ACTION_ENERGY_COST
from battle.logic.enums import BattleAction, SpriteType
from battle.logic.sprites import SpriteProfile, get_sprite_profile

if TYPE_CHECKING:
    from shared.dal.models import Participant

BOT_CORRECT_PROBABILITY = 0.7
BOT_MIN_THINK_SECONDS = 5
BOT_MAX_THINK_SECONDS = 20
BOT_ATTACK_PREFERENCE = 0.6
BOT_NAME_PREFIX = "Bot_"

MIN_DIFFICULTY_LEVEL = 1
MAX_DIFFICULTY_LEVEL = 10
DIFFICULTY_STEP = 0.11
WINS_PER_LEVEL_UP = 2
LOSSES_PER_LEVEL_DOWN = 3

_NAME_ALPHABET = string.ascii_lowercase + string.digits
_NAME_SUFFIX_LENGTH = 6
_WRONG_ANSWER_RANGE = 100


@dataclass(frozen=True)
class BotAnswer:
    answer: str
    is_correct: bool
    think_seconds: int


@dataclass(frozen=True)
class BotStats:
    sprite_type: SpriteType
    hp: int
    energy: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_difficulty_level(level: int) -> int:
    return max(MIN_DIFFICULTY_LEVEL, min(MAX_DIFFICULTY_LEVEL, level))


def difficulty_multiplier(level: int) -> float:
    """Stat multiplier for a host's bot difficulty level: 1.0 at level 1, about 2.0 at level 10."""
    return 1.0 + (clamp_difficulty_level(level) - 1) * DIFFICULTY_STEP


def scaled_bot_stats(profile: SpriteProfile, level: int) -> BotStats:
    multiplier = difficulty_multiplier(level)
    return BotStats(
        sprite_type=profile.sprite_type,
        hp=_round_half_up(profile.starting_hp * multiplier),
        energy=_round_half_up(profile.starting_energy * multiplier),
    )


def next_difficulty_level(level: int, *, won: bool, wins: int, losses: int) -> int:
    """Difficulty after a finished bot match.

    `wins` and `losses` are the totals including this match. The level rises
    every second net win and drops every third net loss, within 1..10.
    """
    if won:
        margin = wins - losses
        if margin > 0 and margin % WINS_PER_LEVEL_UP == 0 and level < MAX_DIFFICULTY_LEVEL:
            return level + 1
    else:
        margin = losses - wins
        if margin > 0 and margin % LOSSES_PER_LEVEL_DOWN == 0 and level > MIN_DIFFICULTY_LEVEL:
            return level - 1
    return level


class BotPlayer:
    """Decision-maker for bot participants. Pass a seeded Random for deterministic play."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()  # noqa: S311

    def username(self) -> str:
        suffix = "".join(self._rng.choice(_NAME_ALPHABET) for _ in range(_NAME_SUFFIX_LENGTH))
        return f"{BOT_NAME_PREFIX}{suffix}"

    def choose_sprite(self, difficulty_level: int = MIN_DIFFICULTY_LEVEL) -> BotStats:
        """Pick an archetype uniformly and scale its starting stats by difficulty."""
        sprite_type = self._rng.choice(list(SpriteType))
        return scaled_bot_stats(get_sprite_profile(sprite_type), difficulty_level)

    def answer(self, correct_answer: str) -> BotAnswer:
        is_correct = self._rng.random() < BOT_CORRECT_PROBABILITY
        think_seconds = self._rng.randrange(BOT_MIN_THINK_SECONDS, BOT_MAX_THINK_SECONDS)
        if is_correct:
            return BotAnswer(answer=correct_answer, is_correct=True, think_seconds=think_seconds)
        wrong = f"Wrong answer {self._rng.randrange(_WRONG_ANSWER_RANGE)}"
        return BotAnswer(answer=wrong, is_correct=False, think_seconds=think_seconds)

    def choose_battle_action(self, participant: Participant) -> BattleAction | None:
        """Pick an affordable action, favouring attack. Return None to skip the turn."""
        energy = participant.energy
        affordable: list[BattleAction] = [
            action for action in (BattleAction.ATTACK, BattleAction.CHARGE) if energy >= ACTION_ENERGY_COST[action]
        ]
        if get_sprite_profile(participant.sprite_type).has_reflect and energy >= ACTION_ENERGY_COST[BattleAction.REFLECT]:
            affordable.append(BattleAction.REFLECT)
        elif energy >= ACTION_ENERGY_COST[BattleAction.SHIELD]:
            affordable.append(BattleAction.SHIELD)

        if not affordable:
            return None
        if BattleAction.ATTACK in affordable and self._rng.random() < BOT_ATTACK_PREFERENCE:
            return BattleAction.ATTACK
        return self._rng.choice(affordable)
