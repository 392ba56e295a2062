"""Battle/quiz session coordinator.

Drives each session through waiting -> active -> finished, scores answers,
resolves battle actions and plays bot participants. Every mutation of a
session's participant state runs under that session's asyncio.Lock, so
events for one session never interleave.
"""

from __future__ import annotations

import asyncio
import contextlib
import secrets
import string
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from battle.logic.bot import BotPlayer, next_difficulty_level
from battle.logic.combat import ACTION_ENERGY_COST, add_charge, find_attack_target, resolve_attack
from battle.logic.enums import BattleAction, EffectType, SpriteType
from battle.logic.exceptions import (
    NotJoinedError,
    NotParticipantError,
    SessionFullError,
    SessionNotFoundError,
    SessionStateError,
    StaleQuestionError,
)
from battle.logic.scoring import answer_effect, answer_points, build_leaderboard, is_timeout, round_battle_moves
from battle.logic.sprites import get_sprite_profile
from battle.messaging.types import (
    AnswerSubmittedMessage,
    BattleActionConfirmedMessage,
    BattleMovesMessage,
    BattleResultMessage,
    GameFinishedMessage,
    GameStartedMessage,
    NextQuestionMessage,
    ParticipantActionMessage,
    PlayerReadyMessage,
    QuestionView,
    SpriteSelectedMessage,
    UserJoinedMessage,
)
from battle.session.registry import ConnectionRegistry
from shared.dal.models import NewGameAnswer, SessionStatus
from shared.dal.session_repository import DuplicateSessionCodeError
from shared.logging import bind_participant_context

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Coroutine
    from typing import Any

    from battle.logic.combat import AttackOutcome
    from battle.logic.judge import AnswerJudge
    from battle.messaging.protocol import ConnectionProtocol
    from battle.session.registry import ConnectionBinding
    from shared.dal.models import GameSessionWithParticipants, Participant, Riddle
    from shared.dal.session_repository import SessionRepository

logger = structlog.get_logger()

MIN_PLAYERS_TO_START = 2
SESSION_CODE_LENGTH = 6
_SESSION_CODE_ALPHABET = string.ascii_uppercase + string.digits
_MAX_CODE_ATTEMPTS = 5


def generate_session_code() -> str:
    return "".join(secrets.choice(_SESSION_CODE_ALPHABET) for _ in range(SESSION_CODE_LENGTH))


@dataclass
class _SessionLock:
    """A session's lock plus the number of tasks holding or waiting for it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class BattleCoordinator:
    def __init__(
        self,
        repository: SessionRepository,
        judge: AnswerJudge,
        *,
        registry: ConnectionRegistry | None = None,
        bot: BotPlayer | None = None,
        advance_delay_seconds: float = 1.0,
        bot_think_time_scale: float = 1.0,
        default_time_per_question: int = 45,
        questions_per_session: int = 10,
    ) -> None:
        self._repository = repository
        self._judge = judge
        self._registry = registry or ConnectionRegistry()
        self._bot = bot or BotPlayer()
        self._advance_delay_seconds = advance_delay_seconds
        self._bot_think_time_scale = bot_think_time_scale
        self._default_time_per_question = default_time_per_question
        self._questions_per_session = questions_per_session
        self._session_locks: dict[int, _SessionLock] = {}  # session_id -> lock, dropped when unused
        self._advanced_rounds: set[tuple[int, int]] = set()  # (session_id, question_index)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def background_task_count(self) -> int:
        return len(self._tasks)

    @contextlib.asynccontextmanager
    async def _session_lock(self, session_id: int) -> AsyncIterator[None]:
        """Serialize work on one session. The entry is removed once nobody holds or awaits it."""
        entry = self._session_locks.setdefault(session_id, _SessionLock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._session_locks[session_id]

    @property
    def tracked_session_count(self) -> int:
        """Sessions with in-memory coordinator state (a lock in use or rounds already advanced)."""
        return len(self._session_locks.keys() | {session_id for session_id, _ in self._advanced_rounds})

    def _require_binding(self, connection: ConnectionProtocol) -> ConnectionBinding:
        binding = self._registry.binding_for(connection.connection_id)
        if binding is None:
            raise NotJoinedError
        return binding

    async def _load_session(self, session_id: int) -> GameSessionWithParticipants:
        session = await self._repository.get_session_with_participants(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def _require_participant(session: GameSessionWithParticipants, user_id: int) -> Participant:
        participant = session.get_participant(user_id)
        if participant is None or not participant.is_active:
            raise NotParticipantError("You are not a participant in this session")
        return participant

    async def _riddle_at(self, session: GameSessionWithParticipants, index: int) -> Riddle:
        if not 0 <= index < session.question_count:
            raise SessionStateError(f"Question {index} does not exist")
        riddle = await self._repository.get_riddle_by_id(session.question_ids[index])
        if riddle is None:
            raise SessionStateError(f"Question {index} is missing")
        return riddle

    @staticmethod
    def _can_start(session: GameSessionWithParticipants) -> bool:
        return session.all_ready and len(session.active_participants) >= MIN_PLAYERS_TO_START

    # -- background work -------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> None:
        task = asyncio.create_task(self._run_background(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run_background(coro: Coroutine[Any, Any, None], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("background task failed", task=name)

    async def drain_background_tasks(self) -> None:
        """Wait until every scheduled advance and bot turn has finished, including ones they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending background work and close all sockets."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        await self._registry.close_all()

    # -- waiting room ----------------------------------------------------

    async def join(self, connection: ConnectionProtocol, *, user_id: int, session_id: int) -> None:
        """Bind a socket to a session, adding the user as a participant while the session waits."""
        async with self._session_lock(session_id):
            session = await self._load_session(session_id)
            participant = session.get_participant(user_id)
            if participant is None or not participant.is_active:
                if participant is None and session.status != SessionStatus.WAITING:
                    raise SessionStateError("Game already started")
                if len(session.active_participants) >= session.max_players:
                    raise SessionFullError
                profile = get_sprite_profile(SpriteType.BALANCED)
                await self._repository.join_session(
                    session_id,
                    user_id,
                    sprite_type=profile.sprite_type.value,
                    hp=profile.starting_hp,
                    energy=profile.starting_energy,
                )

            self._registry.register(user_id, session_id, connection)
            bind_participant_context(session_id, user_id)
            logger.info("user joined session")
            await self._registry.broadcast(session_id, UserJoinedMessage(user_id=user_id))

    async def mark_ready(self, connection: ConnectionProtocol) -> None:
        binding = self._require_binding(connection)
        async with self._session_lock(binding.session_id):
            session = await self._load_session(binding.session_id)
            self._require_participant(session, binding.user_id)
            await self._repository.mark_ready(session.id, binding.user_id)

            session = await self._load_session(session.id)
            await self._registry.broadcast(
                session.id,
                PlayerReadyMessage(user_id=binding.user_id, all_ready=session.all_ready, session=session),
            )
            if session.status == SessionStatus.WAITING and self._can_start(session):
                await self._start_locked(session)

    async def start_game(self, connection: ConnectionProtocol) -> None:
        """Host-only start. Re-checks the readiness gate and raises when it fails."""
        binding = self._require_binding(connection)
        async with self._session_lock(binding.session_id):
            session = await self._load_session(binding.session_id)
            if session.host_user_id != binding.user_id:
                raise SessionStateError("Only the host can start the game")
            if session.status != SessionStatus.WAITING:
                raise SessionStateError("Game already started")
            if not self._can_start(session):
                raise SessionStateError("Not all players are ready or minimum players not met")
            await self._start_locked(session)

    async def _start_locked(self, session: GameSessionWithParticipants) -> None:
        riddle = await self._riddle_at(session, 0)
        if not await self._repository.start_session(session.id):
            return
        logger.info("game started", session_id=session.id, players=len(session.active_participants))
        await self._registry.broadcast(
            session.id,
            GameStartedMessage(
                current_question=QuestionView.from_riddle(riddle),
                question_index=0,
                time_per_question=session.time_per_question,
            ),
        )
        self._schedule_bot_turns(session, 0)

    # -- answers ---------------------------------------------------------

    async def submit_answer(
        self,
        connection: ConnectionProtocol,
        *,
        answer: str,
        time_to_answer_seconds: float,
        question_index: int,
    ) -> None:
        """Judge the answer, then record it under the session lock if the round is still open."""
        binding = self._require_binding(connection)
        session = await self._load_session(binding.session_id)
        self._check_answerable(session, binding.user_id, question_index)
        is_correct = await self._judge_answer(session, answer, question_index)

        async with self._session_lock(binding.session_id):
            session = await self._load_session(binding.session_id)
            await self._submit_answer_locked(
                session,
                binding.user_id,
                answer,
                time_to_answer_seconds,
                question_index,
                is_correct=is_correct,
            )

    def _check_answerable(self, session: GameSessionWithParticipants, user_id: int, question_index: int) -> Participant:
        if session.status != SessionStatus.ACTIVE:
            raise SessionStateError("Game is not active")
        if question_index != session.current_question_index:
            raise StaleQuestionError(expected=session.current_question_index, received=question_index)
        return self._require_participant(session, user_id)

    async def _judge_answer(self, session: GameSessionWithParticipants, answer: str, question_index: int) -> bool:
        # Called without the session lock held.
        if is_timeout(answer):
            return False
        riddle = await self._riddle_at(session, question_index)
        verdict = await self._judge.check(answer, riddle.answer, question=riddle.question, hint=riddle.hint)
        return verdict.is_correct

    async def _submit_answer_locked(
        self,
        session: GameSessionWithParticipants,
        user_id: int,
        answer: str,
        time_to_answer_seconds: float,
        question_index: int,
        *,
        is_correct: bool,
    ) -> None:
        # The round may have advanced while the judge was running.
        participant = self._check_answerable(session, user_id, question_index)
        riddle = await self._riddle_at(session, question_index)
        timed_out = is_timeout(answer)

        await self._repository.save_answer(
            NewGameAnswer(
                session_id=session.id,
                user_id=user_id,
                question_id=riddle.id,
                question_index=question_index,
                answer=answer,
                is_correct=is_correct,
                time_to_answer_seconds=time_to_answer_seconds,
            ),
        )
        points = answer_points(session.time_per_question, time_to_answer_seconds) if is_correct else 0
        await self._repository.update_score(session.id, user_id, points, is_correct=is_correct)

        effect = answer_effect(participant, is_correct=is_correct, timed_out=timed_out)
        if effect is not None and effect.type == EffectType.ENERGY_GAIN:
            await self._repository.update_energy(session.id, user_id, effect.amount)
        elif effect is not None:
            await self._repository.update_hp(session.id, user_id, participant.hp - effect.amount)

        logger.info(
            "answer submitted",
            session_id=session.id,
            user_id=user_id,
            question_index=question_index,
            is_correct=is_correct,
            timed_out=timed_out,
            effect=effect,
        )
        await self._registry.broadcast(
            session.id,
            AnswerSubmittedMessage(
                user_id=user_id,
                is_correct=is_correct,
                user_answer=answer,
                correct_answer=None if is_correct else riddle.answer,
                question_index=question_index,
                battle_effects=effect,
            ),
        )
        await self._check_round_complete(session.id, question_index)

    async def _check_round_complete(self, session_id: int, question_index: int) -> None:
        """Fire the advancement gate once every active participant has answered this index."""
        round_key = (session_id, question_index)
        if round_key in self._advanced_rounds:
            return
        session = await self._load_session(session_id)
        active = session.active_participants
        if session.status != SessionStatus.ACTIVE or not active:
            return
        answers = await self._repository.get_answers_for_question(session_id, question_index)
        answered = {a.user_id for a in answers}
        if any(p.user_id not in answered for p in active):
            return

        self._advanced_rounds.add(round_key)
        moves = round_battle_moves(answers, session.participants)
        if moves:
            await self._registry.broadcast(session_id, BattleMovesMessage(moves=moves, question_index=question_index))
        self._spawn(
            self._advance_after_delay(session_id, question_index),
            name=f"advance-{session_id}-{question_index}",
        )

    async def _advance_after_delay(self, session_id: int, question_index: int) -> None:
        await asyncio.sleep(self._advance_delay_seconds)
        async with self._session_lock(session_id):
            session = await self._load_session(session_id)
            if session.status != SessionStatus.ACTIVE:
                return
            answered_riddle = await self._riddle_at(session, question_index)

            if session.is_last_question(question_index):
                await self._finish_locked(session, answered_riddle)
                return

            next_index = question_index + 1
            next_riddle = await self._riddle_at(session, next_index)
            if not await self._repository.advance_question_index(session_id, next_index):
                return
            await self._registry.broadcast(
                session_id,
                NextQuestionMessage(
                    current_question=QuestionView.from_riddle(next_riddle),
                    question_index=next_index,
                    correct_answer=answered_riddle.answer,
                ),
            )
            self._schedule_bot_turns(session, next_index)

    async def _finish_locked(self, session: GameSessionWithParticipants, last_riddle: Riddle) -> None:
        if not await self._repository.finish_session(session.id):
            return
        final = await self._load_session(session.id)
        leaderboard = build_leaderboard(final.participants)
        logger.info("game finished", session_id=session.id, winner=leaderboard[0].user_id if leaderboard else None)
        await self._record_bot_result(final)
        await self._registry.broadcast(
            session.id,
            GameFinishedMessage(leaderboard=leaderboard, correct_answer=last_riddle.answer),
        )
        self._advanced_rounds = {key for key in self._advanced_rounds if key[0] != session.id}

    async def _record_bot_result(self, session: GameSessionWithParticipants) -> None:
        """Update the host's bot win/loss record and difficulty level after a bot match."""
        bot_scores = [p.score for p in session.participants if p.is_bot]
        host = session.get_participant(session.host_user_id)
        if not bot_scores or host is None:
            return
        user = await self._repository.get_user(session.host_user_id)
        if user is None:
            logger.warning("host has no user record, bot result not recorded", user_id=session.host_user_id)
            return

        won = host.score > max(bot_scores)
        wins = user.bot_wins + int(won)
        losses = user.bot_losses + int(not won)
        level = next_difficulty_level(user.bot_difficulty_level, won=won, wins=wins, losses=losses)
        await self._repository.record_bot_battle_result(user.id, won=won, difficulty_level=level)
        logger.info("bot match recorded", user_id=user.id, won=won, difficulty_level=level)

    # -- battle ----------------------------------------------------------

    async def battle_action(self, connection: ConnectionProtocol, action: BattleAction) -> None:
        binding = self._require_binding(connection)
        async with self._session_lock(binding.session_id):
            session = await self._load_session(binding.session_id)
            await self._battle_action_locked(session, binding.user_id, action, connection)

    async def _battle_action_locked(
        self,
        session: GameSessionWithParticipants,
        user_id: int,
        action: BattleAction,
        connection: ConnectionProtocol | None,
    ) -> None:
        if session.status != SessionStatus.ACTIVE:
            raise SessionStateError("Battle actions are only allowed during an active game")
        actor = self._require_participant(session, user_id)

        await self._repository.update_last_action(session.id, user_id, action.value)
        await self._repository.update_energy(session.id, user_id, -ACTION_ENERGY_COST[action])

        if action in (BattleAction.SHIELD, BattleAction.REFLECT):
            await self._repository.update_shield(session.id, user_id, True)  # noqa: FBT003
        elif action == BattleAction.CHARGE:
            await self._repository.update_charge(session.id, user_id, add_charge(actor).charge_power)
        else:
            target = find_attack_target(session.participants, user_id)
            if target is not None:
                outcome = resolve_attack(actor, target)
                await self._persist_attack(session.id, outcome)
                await self._registry.broadcast(session.id, self._battle_result(outcome))
                return

        logger.info("battle action", session_id=session.id, user_id=user_id, action=action)
        if connection is not None:
            await self._registry.send(connection, BattleActionConfirmedMessage(action=action))
        await self._registry.broadcast(
            session.id,
            ParticipantActionMessage(user_id=user_id, action=action),
            exclude_connection_id=connection.connection_id if connection is not None else None,
        )

    async def _persist_attack(self, session_id: int, outcome: AttackOutcome) -> None:
        attacker, target = outcome.attacker, outcome.target
        if outcome.reflected:
            await self._repository.update_hp(session_id, attacker.user_id, attacker.hp)
        elif not outcome.shield_broken:
            await self._repository.update_hp(session_id, target.user_id, target.hp)
        if outcome.reflected or outcome.shield_broken:
            await self._repository.update_shield(session_id, target.user_id, False)  # noqa: FBT003
        await self._repository.update_charge(session_id, attacker.user_id, attacker.charge_power)
        logger.info(
            "attack resolved",
            session_id=session_id,
            attacker_id=attacker.user_id,
            target_id=target.user_id,
            damage=outcome.damage,
            reflected=outcome.reflected,
            shield_broken=outcome.shield_broken,
        )

    @staticmethod
    def _battle_result(outcome: AttackOutcome) -> BattleResultMessage:
        if outcome.reflected:
            return BattleResultMessage(
                attacker_id=outcome.attacker.user_id,
                target_id=outcome.target.user_id,
                action=BattleAction.REFLECT,
                damage=outcome.damage,
                reflected=True,
                attacker_hp=outcome.attacker.hp,
                target_hp=outcome.target.hp,
            )
        return BattleResultMessage(
            attacker_id=outcome.attacker.user_id,
            target_id=outcome.target.user_id,
            action=BattleAction.ATTACK,
            damage=outcome.damage,
            shield_broken=outcome.shield_broken,
            target_hp=outcome.target.hp,
        )

    async def select_sprite(self, connection: ConnectionProtocol, sprite_type: SpriteType) -> None:
        """Switch archetype and reset HP, max HP and energy. Allowed in any session state."""
        binding = self._require_binding(connection)
        async with self._session_lock(binding.session_id):
            session = await self._load_session(binding.session_id)
            self._require_participant(session, binding.user_id)
            profile = get_sprite_profile(sprite_type)
            await self._repository.update_sprite(
                session.id,
                binding.user_id,
                profile.sprite_type.value,
                hp=profile.starting_hp,
                energy=profile.starting_energy,
            )
            await self._registry.broadcast(
                session.id,
                SpriteSelectedMessage(user_id=binding.user_id, sprite_type=profile.sprite_type),
            )

    # -- bots ------------------------------------------------------------

    def _schedule_bot_turns(self, session: GameSessionWithParticipants, question_index: int) -> None:
        active = session.active_participants
        if not any(not p.is_bot for p in active):
            return
        for participant in active:
            if participant.is_bot:
                self._spawn(
                    self._bot_turn(session.id, participant.user_id, question_index),
                    name=f"bot-{session.id}-{participant.user_id}-{question_index}",
                )

    async def _bot_turn(self, session_id: int, bot_user_id: int, question_index: int) -> None:
        """Think, answer through the same path as humans, then play one battle action."""
        session = await self._load_session(session_id)
        riddle = await self._riddle_at(session, question_index)
        reply = self._bot.answer(riddle.answer)
        await asyncio.sleep(reply.think_seconds * self._bot_think_time_scale)
        is_correct = await self._judge_answer(session, reply.answer, question_index)

        async with self._session_lock(session_id):
            session = await self._load_session(session_id)
            bot = session.get_participant(bot_user_id)
            if (
                session.status != SessionStatus.ACTIVE
                or session.current_question_index != question_index
                or bot is None
                or not bot.is_active
            ):
                return
            await self._submit_answer_locked(
                session,
                bot_user_id,
                reply.answer,
                reply.think_seconds,
                question_index,
                is_correct=is_correct,
            )

            session = await self._load_session(session_id)
            bot = session.get_participant(bot_user_id)
            if bot is None or session.status != SessionStatus.ACTIVE:
                return
            action = self._bot.choose_battle_action(bot)
            if action is not None:
                await self._battle_action_locked(session, bot_user_id, action, None)

    async def add_bot(self, session_id: int) -> Participant:
        """Fill a slot with a bot scaled to the host's difficulty level. Bots are always ready."""
        async with self._session_lock(session_id):
            return await self._add_bot_locked(await self._load_session(session_id))

    async def _add_bot_locked(self, session: GameSessionWithParticipants) -> Participant:
        if session.status != SessionStatus.WAITING:
            raise SessionStateError("Game already started")
        if len(session.active_participants) >= session.max_players:
            raise SessionFullError
        host = await self._repository.get_user(session.host_user_id)
        stats = self._bot.choose_sprite(host.bot_difficulty_level if host is not None else 1)
        bot_user = await self._repository.create_bot_user(self._bot.username())
        participant = await self._repository.join_session(
            session.id,
            bot_user.id,
            sprite_type=stats.sprite_type.value,
            hp=stats.hp,
            energy=stats.energy,
            is_ready=True,
        )
        logger.info("bot added", session_id=session.id, bot_id=bot_user.id, sprite_type=stats.sprite_type)
        return participant

    # -- disconnect ------------------------------------------------------

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Unregister the socket, mark its user as left and re-check the round gate."""
        binding = await self._registry.unregister(connection)
        if binding is None:
            return

        if not self._registry.is_user_in_session(binding.user_id, binding.session_id):
            await self._leave(binding)
        if not self._registry.session_connection_ids(binding.session_id):
            self._forget_session(binding.session_id)

    async def _leave(self, binding: ConnectionBinding) -> None:
        async with self._session_lock(binding.session_id):
            session = await self._repository.get_session_with_participants(binding.session_id)
            if session is None or session.status == SessionStatus.FINISHED:
                return
            await self._repository.leave_session(session.id, binding.user_id)
            logger.info("participant left", session_id=session.id, user_id=binding.user_id)
            if session.status == SessionStatus.ACTIVE:
                await self._check_round_complete(session.id, session.current_question_index)

    def _forget_session(self, session_id: int) -> None:
        """Drop the advanced-round markers of a session nobody is connected to."""
        self._advanced_rounds = {key for key in self._advanced_rounds if key[0] != session_id}

    # -- HTTP entry points -----------------------------------------------

    async def get_session(self, session_id: int) -> GameSessionWithParticipants:
        return await self._load_session(session_id)

    async def create_session(
        self,
        *,
        host_user_id: int,
        host_username: str | None = None,
        category_id: int | None = None,
        difficulty: str | None = None,
        max_players: int = 2,
        time_per_question: int | None = None,
        with_bot: bool = False,
    ) -> GameSessionWithParticipants:
        """Create a waiting session with a fresh riddle set and join the host, plus an optional bot."""
        if host_username:
            await self._repository.upsert_user(host_user_id, host_username)
        question_ids = await self._repository.get_random_riddle_ids(category_id, self._questions_per_session)
        if not question_ids:
            raise SessionStateError("No riddles available for this category")

        session = None
        for _ in range(_MAX_CODE_ATTEMPTS):
            try:
                session = await self._repository.create_session(
                    session_code=generate_session_code(),
                    host_user_id=host_user_id,
                    question_ids=question_ids,
                    time_per_question=time_per_question or self._default_time_per_question,
                    max_players=max_players,
                    category_id=category_id,
                    difficulty=difficulty,
                )
                break
            except DuplicateSessionCodeError:
                logger.warning("session code collision, retrying")
        if session is None:
            raise SessionStateError("Could not allocate a session code")

        async with self._session_lock(session.id):
            profile = get_sprite_profile(SpriteType.BALANCED)
            await self._repository.join_session(
                session.id,
                host_user_id,
                sprite_type=profile.sprite_type.value,
                hp=profile.starting_hp,
                energy=profile.starting_energy,
            )
            if with_bot:
                await self._add_bot_locked(await self._load_session(session.id))
            created = await self._load_session(session.id)
        logger.info("session created", session_id=created.id, session_code=created.session_code, with_bot=with_bot)
        return created

    async def join_session_by_code(
        self,
        session_code: str,
        user_id: int,
        username: str | None = None,
    ) -> GameSessionWithParticipants:
        found = await self._repository.get_session_by_code(session_code.upper())
        if found is None:
            raise SessionNotFoundError(session_code)
        if username:
            await self._repository.upsert_user(user_id, username)

        async with self._session_lock(found.id):
            session = await self._load_session(found.id)
            existing = session.get_participant(user_id)
            if existing is not None and existing.is_active:
                return session
            if session.status != SessionStatus.WAITING:
                raise SessionStateError("Game already started")
            if len(session.active_participants) >= session.max_players:
                raise SessionFullError
            profile = get_sprite_profile(SpriteType.BALANCED)
            await self._repository.join_session(
                session.id,
                user_id,
                sprite_type=profile.sprite_type.value,
                hp=profile.starting_hp,
                energy=profile.starting_energy,
            )
            return await self._load_session(session.id)
