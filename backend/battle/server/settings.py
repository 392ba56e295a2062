"""Battle server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class BattleServerSettings(BaseSettings):
    model_config = {"env_prefix": "BATTLE_"}

    database_path: str = Field(default="backend/data/battle.db", min_length=1)
    log_dir: str = Field(default="backend/logs/battle", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]
    riddle_catalog_path: str | None = None

    default_time_per_question: int = Field(default=45, ge=5, le=600)
    questions_per_session: int = Field(default=10, ge=1, le=50)
    question_advance_delay_seconds: float = Field(default=1.0, ge=0)
    # Multiplies the bot's 5-20s think time; 0 makes bots answer immediately.
    bot_think_time_scale: float = Field(default=1.0, ge=0)

    judge_api_url: str = "https://api.perplexity.ai/chat/completions"
    judge_api_key: str | None = None
    judge_model: str = "llama-3.1-sonar-small-128k-online"
    judge_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
