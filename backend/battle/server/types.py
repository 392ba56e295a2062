from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(_RequestModel):
    host_user_id: int
    host_username: str | None = Field(default=None, min_length=1, max_length=50)
    category_id: int | None = None
    difficulty: str | None = Field(default=None, max_length=20)
    max_players: int = Field(default=2, ge=2, le=8, strict=True)
    time_per_question: int | None = Field(default=None, ge=5, le=600)
    with_bot: bool = False


class JoinSessionRequest(_RequestModel):
    session_code: str = Field(min_length=6, max_length=6, pattern=r"^[A-Za-z0-9]+$")
    user_id: int
    username: str | None = Field(default=None, min_length=1, max_length=50)
