"""Battle action resolution.

Pure functions over frozen Participant snapshots. Each returns updated
copies and never touches storage; the coordinator persists the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from battle.logic.enums import BattleAction
from battle.logic.sprites import get_sprite_profile

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal.models import Participant

ACTION_ENERGY_COST: MappingProxyType[BattleAction, int] = MappingProxyType(
    {
        BattleAction.ATTACK: 5,
        BattleAction.SHIELD: 3,
        BattleAction.REFLECT: 5,
        BattleAction.CHARGE: 2,
    },
)

BASE_ATTACK_DAMAGE = 10
CHARGE_POWER_STEP = 5


@dataclass(frozen=True)
class AttackOutcome:
    """Result of one attack.

    `damage` is the amount reported to clients: zero when a plain shield
    absorbed the hit, and the amount the attacker lost when it was reflected.
    """

    attacker: Participant
    target: Participant
    damage: int
    shield_broken: bool = False
    reflected: bool = False


def add_charge(participant: Participant) -> Participant:
    return participant.model_copy(update={"charge_power": participant.charge_power + CHARGE_POWER_STEP})


def find_attack_target(participants: Iterable[Participant], attacker_id: int) -> Participant | None:
    """Return the first active participant other than the attacker."""
    for participant in participants:
        if participant.user_id != attacker_id and participant.is_active:
            return participant
    return None


def resolve_attack(attacker: Participant, target: Participant) -> AttackOutcome:
    """Resolve an attack against the target's current shield state.

    A shielded reflecting archetype sends the damage back to the attacker.
    A plain shield absorbs the whole hit and is consumed. The attacker's
    charge is spent in every case.
    """
    damage = BASE_ATTACK_DAMAGE + attacker.charge_power
    spent = {"charge_power": 0}

    if target.has_shield and get_sprite_profile(target.sprite_type).has_reflect:
        return AttackOutcome(
            attacker=attacker.model_copy(update={**spent, "hp": max(0, attacker.hp - damage)}),
            target=target.model_copy(update={"has_shield": False}),
            damage=damage,
            reflected=True,
        )

    if target.has_shield:
        return AttackOutcome(
            attacker=attacker.model_copy(update=spent),
            target=target.model_copy(update={"has_shield": False}),
            damage=0,
            shield_broken=True,
        )

    return AttackOutcome(
        attacker=attacker.model_copy(update=spent),
        target=target.model_copy(update={"hp": max(0, target.hp - damage)}),
        damage=damage,
    )
