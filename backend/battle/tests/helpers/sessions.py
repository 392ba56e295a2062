"""Shared session setup helpers for coordinator and router tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from battle.tests.mocks import MockConnection

if TYPE_CHECKING:
    from battle.session.coordinator import BattleCoordinator
    from shared.dal.models import GameSessionWithParticipants, Riddle
    from shared.dal.session_repository import SessionRepository

HOST_ID = 1
GUEST_ID = 2


async def seed_test_riddles(repository: SessionRepository, count: int = 3, category_id: int = 1) -> list[Riddle]:
    """Insert `count` riddles whose answers are "answer 0", "answer 1", ..."""
    return [
        await repository.create_riddle(
            question=f"Riddle {i}?",
            answer=f"answer {i}",
            hint=f"hint {i}",
            category_id=category_id,
            difficulty="easy",
        )
        for i in range(count)
    ]


async def create_waiting_session(
    coordinator: BattleCoordinator,
    repository: SessionRepository,
    *,
    guests: int = 1,
    max_players: int = 2,
    with_bot: bool = False,
    time_per_question: int | None = None,
) -> tuple[GameSessionWithParticipants, list[MockConnection]]:
    """Seed riddles, create a session through the HTTP entry points and connect every human.

    Returns the session and one MockConnection per human, host first. Outboxes are cleared.
    """
    if await repository.count_riddles() == 0:
        await seed_test_riddles(repository)

    session = await coordinator.create_session(
        host_user_id=HOST_ID,
        host_username="alice",
        max_players=max_players,
        time_per_question=time_per_question,
        with_bot=with_bot,
    )
    user_ids = [HOST_ID]
    for i in range(guests):
        user_id = GUEST_ID + i
        await coordinator.join_session_by_code(session.session_code, user_id, f"guest{i + 1}")
        user_ids.append(user_id)

    connections: list[MockConnection] = []
    for user_id in user_ids:
        conn = MockConnection()
        await coordinator.join(conn, user_id=user_id, session_id=session.id)
        connections.append(conn)

    clear_outboxes(connections)
    return await coordinator.get_session(session.id), connections


async def create_active_session(
    coordinator: BattleCoordinator,
    repository: SessionRepository,
    **kwargs,
) -> tuple[GameSessionWithParticipants, list[MockConnection]]:
    """Create a waiting session and ready every human so it starts automatically."""
    session, connections = await create_waiting_session(coordinator, repository, **kwargs)
    for conn in connections:
        await coordinator.mark_ready(conn)
    clear_outboxes(connections)
    return await coordinator.get_session(session.id), connections


async def current_answer(coordinator: BattleCoordinator, repository: SessionRepository, session_id: int) -> str:
    session = await coordinator.get_session(session_id)
    riddle = await repository.get_riddle_by_id(session.question_ids[session.current_question_index])
    assert riddle is not None
    return riddle.answer


def clear_outboxes(connections: list[MockConnection]) -> None:
    for conn in connections:
        conn._outbox.clear()
