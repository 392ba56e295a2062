"""Sprite archetype table.

Each archetype fixes a participant's starting HP and energy and how answers
change those stats. The table is immutable and built once at import.
"""

from dataclasses import dataclass
from types import MappingProxyType

from battle.logic.enums import SpriteType


@dataclass(frozen=True)
class SpriteProfile:
    sprite_type: SpriteType
    starting_hp: int
    starting_energy: int
    correct_bonus: int
    incorrect_penalty: int
    has_reflect: bool = False


SPRITE_PROFILES: MappingProxyType[SpriteType, SpriteProfile] = MappingProxyType(
    {
        SpriteType.BIG_BRAIN: SpriteProfile(
            SpriteType.BIG_BRAIN, starting_hp=50, starting_energy=5, correct_bonus=5, incorrect_penalty=5
        ),
        SpriteType.RISK_TAKER: SpriteProfile(
            SpriteType.RISK_TAKER, starting_hp=50, starting_energy=0, correct_bonus=5, incorrect_penalty=15
        ),
        SpriteType.TANK: SpriteProfile(
            SpriteType.TANK, starting_hp=100, starting_energy=0, correct_bonus=5, incorrect_penalty=5
        ),
        SpriteType.REFLECTOR: SpriteProfile(
            SpriteType.REFLECTOR,
            starting_hp=50,
            starting_energy=0,
            correct_bonus=5,
            incorrect_penalty=5,
            has_reflect=True,
        ),
        SpriteType.BALANCED: SpriteProfile(
            SpriteType.BALANCED, starting_hp=50, starting_energy=0, correct_bonus=5, incorrect_penalty=5
        ),
    },
)


def get_sprite_profile(sprite_type: str | None) -> SpriteProfile:
    """Look up an archetype by name. Unknown or missing names resolve to balanced."""
    try:
        return SPRITE_PROFILES[SpriteType(sprite_type)]
    except ValueError:
        return SPRITE_PROFILES[SpriteType.BALANCED]
