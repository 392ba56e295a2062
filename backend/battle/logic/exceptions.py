"""Typed domain exceptions for battle rule violations.

Precondition failures inside the coordinator raise subclasses of
BattleRuleError rather than raw ValueError. The message router catches
them and converts them into error events for the sender only.
"""


class BattleRuleError(Exception):
    """Base exception for battle rule violations.

    The exception message is sent to the client verbatim.
    """


class NotJoinedError(BattleRuleError):
    """The connection has not joined a session yet."""

    def __init__(self) -> None:
        super().__init__("Join a session first")


class SessionNotFoundError(BattleRuleError):
    """The referenced session does not exist."""

    def __init__(self, session_ref: int | str) -> None:
        self.session_ref = session_ref
        super().__init__("Session not found")


class NotParticipantError(BattleRuleError):
    """The user is not an active participant of the session."""


class SessionStateError(BattleRuleError):
    """The session is not in the state the intent requires."""


class StaleQuestionError(BattleRuleError):
    """An answer targets a question index other than the current one."""

    def __init__(self, *, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Question {received} is not the current question ({expected})")


class SessionFullError(SessionStateError):
    """The session already holds its maximum number of active participants."""

    def __init__(self) -> None:
        super().__init__("Session is full")
