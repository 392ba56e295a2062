from battle.tests.mocks.connection import MockConnection
from battle.tests.mocks.judge import GatedJudge, SpyJudge

__all__ = ["GatedJudge", "MockConnection", "SpyJudge"]
