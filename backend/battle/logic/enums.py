"""
String enum definitions for battle concepts.
"""

from enum import StrEnum


class BattleAction(StrEnum):
    """Battle moves a participant can play between answers."""

    ATTACK = "attack"
    SHIELD = "shield"
    REFLECT = "reflect"
    CHARGE = "charge"


class SpriteType(StrEnum):
    """Archetypes a participant can pick before or during a match."""

    BIG_BRAIN = "big_brain"
    RISK_TAKER = "risk_taker"
    TANK = "tank"
    REFLECTOR = "reflector"
    BALANCED = "balanced"


class EffectType(StrEnum):
    """Kinds of stat change produced by answering a riddle."""

    ENERGY_GAIN = "energy_gain"
    HP_LOSS = "hp_loss"
