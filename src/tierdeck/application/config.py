from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from tierdeck.domain.constants import (
    DEBOUNCE_SECONDS,
    DEFAULT_CORRECT_MULTIPLIER,
    DEFAULT_INCORRECT_MULTIPLIER,
    DEFAULT_JITTER,
    DEFAULT_MIN_COOLDOWN,
    DEFAULT_REVIEW_WEIGHT,
)
from tierdeck.domain.models import DeckConfig


class AppConfig(BaseSettings):
    """
    Configuration model for tierdeck.
    Supports loading from:
    1. Environment variables (TIERDECK_*)
    2. Config file (~/.config/tierdeck/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="TIERDECK_",
        extra="ignore",
    )

    # Storage
    backend: Literal["memory", "sqlite"] = "sqlite"
    db_path: Path = Field(default_factory=lambda: Path.home() / ".local/share/tierdeck/decks.db")
    debounce_seconds: float = Field(default=DEBOUNCE_SECONDS, ge=0, allow_inf_nan=False)

    # Default deck parameters
    correct_multiplier: float = Field(default=DEFAULT_CORRECT_MULTIPLIER, gt=1, allow_inf_nan=False)
    incorrect_multiplier: float = Field(
        default=DEFAULT_INCORRECT_MULTIPLIER, gt=0, lt=1, allow_inf_nan=False
    )
    min_cooldown: int = Field(default=DEFAULT_MIN_COOLDOWN, ge=0)
    review_weight: float = Field(default=DEFAULT_REVIEW_WEIGHT, gt=0, le=1, allow_inf_nan=False)
    jitter: int = Field(default=DEFAULT_JITTER, ge=0)

    # Reproducible runs
    seed: int | None = None
    verbose: int = Field(default=0, ge=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Priority: CLI overrides > environment > config file
        config_file = Path.home() / ".config/tierdeck/config.toml"
        if config_file.exists():
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=config_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", mode="before")
    @classmethod
    def resolve_db_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    def deck_config(self) -> DeckConfig:
        """Default scheduling parameters for decks created in this process."""
        return DeckConfig(
            correct_multiplier=self.correct_multiplier,
            incorrect_multiplier=self.incorrect_multiplier,
            min_cooldown=self.min_cooldown,
            review_weight=self.review_weight,
            jitter=self.jitter,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/tierdeck/config.toml (if exists)
    3. Environment variables (TIERDECK_*)
    4. cli_overrides (passed from Typer, None values dropped)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
