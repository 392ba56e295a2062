from battle.session.coordinator import BattleCoordinator
from battle.tests.helpers.sessions import (
    GUEST_ID,
    HOST_ID,
    clear_outboxes,
    create_active_session,
    create_waiting_session,
)
from battle.tests.mocks import MockConnection
from shared.dal.models import SessionStatus


class TestDisconnect:
    async def test_disconnect_while_waiting_marks_participant_left(self, coordinator, repository):
        session, (host, guest) = await create_waiting_session(coordinator, repository)

        await coordinator.disconnect(guest)

        assert host.last_message()["type"] == "user-left"
        assert host.last_message()["userId"] == GUEST_ID
        participant = (await coordinator.get_session(session.id)).get_participant(GUEST_ID)
        assert participant.is_active is False
        assert coordinator.registry.binding_for(guest.connection_id) is None

    async def test_left_player_frees_a_slot(self, coordinator, repository):
        session, (_host, guest) = await create_waiting_session(coordinator, repository)
        await coordinator.disconnect(guest)

        joined = await coordinator.join_session_by_code(session.session_code, 77, "carol")

        assert [p.user_id for p in joined.active_participants] == [HOST_ID, 77]

    async def test_rejoin_reactivates_participant(self, coordinator, repository):
        session, (host, guest) = await create_waiting_session(coordinator, repository)
        await coordinator.disconnect(guest)

        again = MockConnection()
        await coordinator.join(again, user_id=GUEST_ID, session_id=session.id)

        assert (await coordinator.get_session(session.id)).get_participant(GUEST_ID).is_active
        assert host.last_message()["type"] == "user-joined"

    async def test_replaced_socket_keeps_participant(self, coordinator, repository):
        session, (_host, guest) = await create_waiting_session(coordinator, repository)
        replacement = MockConnection()
        await coordinator.join(replacement, user_id=GUEST_ID, session_id=session.id)

        await coordinator.disconnect(guest)

        assert (await coordinator.get_session(session.id)).get_participant(GUEST_ID).is_active
        assert coordinator.registry.connection_for_user(GUEST_ID) is replacement

    async def test_closing_newer_socket_keeps_participant_on_older_one(self, coordinator, repository):
        session, (host, guest) = await create_waiting_session(coordinator, repository)
        newer = MockConnection()
        await coordinator.join(newer, user_id=HOST_ID, session_id=session.id)
        clear_outboxes([host, guest])

        await coordinator.disconnect(newer)

        assert (await coordinator.get_session(session.id)).get_participant(HOST_ID).is_active
        assert coordinator.registry.binding_for(host.connection_id) is not None
        assert coordinator.registry.connection_for_user(HOST_ID) is host

        await coordinator.mark_ready(host)
        assert (await coordinator.get_session(session.id)).get_participant(HOST_ID).is_ready

    async def test_unknown_connection_is_ignored(self, coordinator):
        await coordinator.disconnect(MockConnection())

    async def test_leaving_completes_round_for_remaining_players(self, coordinator, repository):
        session, (host, guest) = await create_active_session(coordinator, repository)
        await coordinator.submit_answer(host, answer="x", time_to_answer_seconds=2, question_index=0)
        clear_outboxes([host])

        await coordinator.disconnect(guest)
        await coordinator.drain_background_tasks()

        types = [m["type"] for m in host.sent_messages]
        assert types == ["user-left", "battle-moves", "next-question"]
        assert (await coordinator.get_session(session.id)).current_question_index == 1

    async def test_round_advances_only_once(self, coordinator, repository):
        session, (host, guest, third) = await create_active_session(coordinator, repository, max_players=3, guests=2)
        await coordinator.submit_answer(host, answer="x", time_to_answer_seconds=2, question_index=0)
        await coordinator.submit_answer(guest, answer="y", time_to_answer_seconds=2, question_index=0)

        await coordinator.disconnect(third)
        await coordinator.drain_background_tasks()

        assert len(host.messages_of_type("next-question")) == 1
        assert len(host.messages_of_type("battle-moves")) == 1
        assert (await coordinator.get_session(session.id)).current_question_index == 1

    async def test_disconnect_after_finish_keeps_participant(self, coordinator, repository):
        session, (host, guest) = await create_active_session(coordinator, repository)
        for index in range(session.question_count):
            await coordinator.submit_answer(host, answer="x", time_to_answer_seconds=2, question_index=index)
            await coordinator.submit_answer(guest, answer="y", time_to_answer_seconds=2, question_index=index)
            await coordinator.drain_background_tasks()

        await coordinator.disconnect(guest)

        final = await coordinator.get_session(session.id)
        assert final.status == SessionStatus.FINISHED
        assert final.get_participant(GUEST_ID).is_active


class TestPendingAdvanceOnShutdown:
    async def test_shutdown_cancels_scheduled_advance(self, repository, judge):
        coordinator = BattleCoordinator(repository, judge, advance_delay_seconds=60, questions_per_session=3)
        session, (host, guest) = await create_active_session(coordinator, repository)
        await coordinator.submit_answer(host, answer="x", time_to_answer_seconds=2, question_index=0)
        await coordinator.submit_answer(guest, answer="y", time_to_answer_seconds=2, question_index=0)
        assert coordinator.background_task_count == 1

        await coordinator.shutdown()

        assert coordinator.background_task_count == 0
        assert host.is_closed
        assert (await coordinator.get_session(session.id)).current_question_index == 0


class TestSessionStateCleanup:
    async def test_locks_are_released_after_each_operation(self, coordinator, repository):
        _, (host, _guest) = await create_active_session(coordinator, repository)
        await coordinator.submit_answer(host, answer="x", time_to_answer_seconds=2, question_index=0)
        assert coordinator.tracked_session_count == 0

    async def test_last_socket_leaving_forgets_session(self, coordinator, repository):
        session, (host, guest) = await create_active_session(coordinator, repository)
        await coordinator.submit_answer(host, answer="x", time_to_answer_seconds=2, question_index=0)
        await coordinator.submit_answer(guest, answer="y", time_to_answer_seconds=2, question_index=0)
        await coordinator.drain_background_tasks()
        assert coordinator.tracked_session_count == 1

        await coordinator.disconnect(host)
        assert coordinator.tracked_session_count == 1

        await coordinator.disconnect(guest)
        assert coordinator.tracked_session_count == 0
        assert (await coordinator.get_session(session.id)).status == SessionStatus.ACTIVE

    async def test_finished_game_forgets_session(self, coordinator, repository):
        session, (host, guest) = await create_active_session(coordinator, repository)
        for index in range(session.question_count):
            await coordinator.submit_answer(host, answer="x", time_to_answer_seconds=2, question_index=index)
            await coordinator.submit_answer(guest, answer="y", time_to_answer_seconds=2, question_index=index)
            await coordinator.drain_background_tasks()

        assert (await coordinator.get_session(session.id)).status == SessionStatus.FINISHED
        assert coordinator.tracked_session_count == 0
