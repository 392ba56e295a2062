from battle.logic.combat import (
    ACTION_ENERGY_COST,
    BASE_ATTACK_DAMAGE,
    CHARGE_POWER_STEP,
    add_charge,
    find_attack_target,
    resolve_attack,
)
from battle.logic.enums import BattleAction
from battle.tests.helpers.participants import make_participant


class TestActionCosts:
    def test_costs(self):
        assert ACTION_ENERGY_COST == {
            BattleAction.ATTACK: 5,
            BattleAction.SHIELD: 3,
            BattleAction.REFLECT: 5,
            BattleAction.CHARGE: 2,
        }


class TestCharge:
    def test_charge_accumulates(self):
        p = add_charge(add_charge(make_participant()))
        assert p.charge_power == 2 * CHARGE_POWER_STEP


class TestFindAttackTarget:
    def test_first_other_active_participant(self):
        participants = [make_participant(1), make_participant(2), make_participant(3)]
        assert find_attack_target(participants, 1).user_id == 2
        assert find_attack_target(participants, 2).user_id == 1

    def test_skips_participants_who_left(self):
        left = make_participant(2, left_at=make_participant().joined_at)
        participants = [make_participant(1), left, make_participant(3)]
        assert find_attack_target(participants, 1).user_id == 3

    def test_no_target_when_alone(self):
        assert find_attack_target([make_participant(1)], 1) is None


class TestResolveAttack:
    def test_unshielded_target_takes_base_damage(self):
        outcome = resolve_attack(make_participant(1), make_participant(2, hp=50))
        assert outcome.damage == BASE_ATTACK_DAMAGE
        assert outcome.target.hp == 40
        assert outcome.shield_broken is False
        assert outcome.reflected is False

    def test_charge_adds_damage_and_is_spent(self):
        outcome = resolve_attack(make_participant(1, charge_power=10), make_participant(2, hp=50))
        assert outcome.damage == 20
        assert outcome.target.hp == 30
        assert outcome.attacker.charge_power == 0

    def test_plain_shield_absorbs_and_breaks(self):
        outcome = resolve_attack(
            make_participant(1, charge_power=5),
            make_participant(2, hp=50, has_shield=True, sprite_type="tank"),
        )
        assert outcome.damage == 0
        assert outcome.shield_broken is True
        assert outcome.target.hp == 50
        assert outcome.target.has_shield is False
        assert outcome.attacker.charge_power == 0

    def test_reflector_shield_returns_damage_to_attacker(self):
        outcome = resolve_attack(
            make_participant(1, hp=50),
            make_participant(2, hp=50, has_shield=True, sprite_type="reflector"),
        )
        assert outcome.reflected is True
        assert outcome.damage == BASE_ATTACK_DAMAGE
        assert outcome.attacker.hp == 40
        assert outcome.target.hp == 50
        assert outcome.target.has_shield is False

    def test_reflector_without_shield_takes_damage(self):
        outcome = resolve_attack(make_participant(1), make_participant(2, hp=50, sprite_type="reflector"))
        assert outcome.reflected is False
        assert outcome.target.hp == 40

    def test_hp_never_drops_below_zero(self):
        outcome = resolve_attack(make_participant(1, charge_power=100), make_participant(2, hp=5))
        assert outcome.target.hp == 0

    def test_reflected_hp_never_drops_below_zero(self):
        outcome = resolve_attack(
            make_participant(1, hp=3),
            make_participant(2, has_shield=True, sprite_type="reflector"),
        )
        assert outcome.attacker.hp == 0
