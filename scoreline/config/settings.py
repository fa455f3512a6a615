"""Application settings with validation."""
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ScoringSettings(BaseSettings):
    """Default league scoring constants."""

    model_config = SettingsConfigDict(env_prefix="SCORING_")

    exact_match_points: int = 3
    correct_outcome_points: int = 1


class FormSettings(BaseSettings):
    """Rolling form window configuration."""

    model_config = SettingsConfigDict(env_prefix="FORM_")

    window: int = 5
    recency_decay: float = 0.85


class HealthSettings(BaseSettings):
    """Integration health thresholds."""

    model_config = SettingsConfigDict(env_prefix="HEALTH_")

    degraded_after_failures: int = 2
    failed_after_failures: int = 5

    # Staleness thresholds in hours, per provider
    stale_hours_form: float = 24.0
    stale_hours_xg: float = 48.0
    stale_hours_odds: float = 12.0
    stale_hours_injuries: float = 24.0
    stale_hours_elo: float = 48.0
    stale_hours_default: float = 48.0

    def stale_hours(self, provider_name: str) -> float:
        """Staleness threshold for a provider."""
        return getattr(self, f"stale_hours_{provider_name}", self.stale_hours_default)


class EngineSettings(BaseSettings):
    """Prediction engine tuning."""

    model_config = SettingsConfigDict(env_prefix="ENGINE_")

    data_quality_floor: float = 0.5
    degraded_weight_factor: float = 0.75  # contribution of degraded providers
    provider_timeout_seconds: float = 10.0
    tie_margin: float = 0.35  # expected-goal gap that separates a lean from a draw

    @field_validator("data_quality_floor", "degraded_weight_factor")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        """Fractions must lie in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Value must be between 0 and 1, got {v}")
        return v


class UnderstatSettings(BaseSettings):
    """Understat xG source configuration."""

    model_config = SettingsConfigDict(env_prefix="UNDERSTAT_")

    season: str = "2025"
    window: int = 8


class OddsFeedSettings(BaseSettings):
    """football-data.co.uk odds feed configuration."""

    model_config = SettingsConfigDict(env_prefix="ODDS_")

    fixtures_url: str = "https://www.football-data.co.uk/fixtures.csv"
    cache_minutes: int = 30


class EloSettings(BaseSettings):
    """clubelo.com rating feed configuration."""

    model_config = SettingsConfigDict(env_prefix="ELO_")

    base_url: str = "http://api.clubelo.com"
    cache_hours: float = 12.0


class ApiFootballSettings(BaseSettings):
    """API-Football configuration (injuries)."""

    model_config = SettingsConfigDict(
        env_prefix="API_FOOTBALL_",
        env_file=".env",
        extra="ignore"
    )

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://v3.football.api-sports.io"
    season: int = 2025

    def is_configured(self) -> bool:
        """Check if API key is configured."""
        return bool(self.api_key.get_secret_value())


class AppSettings(BaseSettings):
    """Application-wide settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_file: Optional[Path] = Path("./data/app.log")
    database_path: Path = Path("./data/scoreline.db")

    # Scheduler cadence
    results_interval_minutes: int = 10
    provider_probe_minutes: int = 30
    form_refresh_hour: int = 5
    bot_interval_minutes: int = 60
    bot_hours_ahead: int = 48
    bot_roster_file: Optional[Path] = None

    # Nested settings
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    form: FormSettings = Field(default_factory=FormSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    understat: UnderstatSettings = Field(default_factory=UnderstatSettings)
    odds: OddsFeedSettings = Field(default_factory=OddsFeedSettings)
    elo: EloSettings = Field(default_factory=EloSettings)
    api_football: ApiFootballSettings = Field(default_factory=ApiFootballSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


def load_bot_profiles(profiles_file: Path = None) -> dict:
    """Load bot personality presets.

    Args:
        profiles_file: YAML file to read, defaults to the bundled presets

    Returns:
        Dictionary of preset name -> raw preset config
    """
    profiles_file = profiles_file or Path(__file__).parent / "bots" / "profiles.yaml"

    if not profiles_file.exists():
        raise FileNotFoundError(f"Bot profiles not found: {profiles_file}")

    try:
        with open(profiles_file) as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise
    except Exception as e:
        raise RuntimeError(f"Failed to load bot profiles {profiles_file}: {e}")

    from scoreline.models.entities import WEIGHT_CATEGORIES

    # Validate weights sum to 1.0 for each preset
    for preset_name, preset in config.items():
        weights = preset.get("weights", {})
        unknown = set(weights) - set(WEIGHT_CATEGORIES)
        if unknown:
            raise ValueError(f"Unknown weight categories in {preset_name}: {sorted(unknown)}")
        total = sum(weights.values())
        if abs(total - 1.0) > 0.001:
            raise ValueError(
                f"Weights in {preset_name} sum to {total}, expected 1.0"
            )

    return config


def get_bot_profile(preset_name: str, participant_id: str, display_name: Optional[str] = None):
    """Build a BotProfile from a named preset."""
    from scoreline.models.entities import BotProfile

    config = load_bot_profiles()
    if preset_name not in config:
        raise KeyError(f"Unknown bot preset: {preset_name}")

    preset = config[preset_name]
    return BotProfile(
        participant_id=participant_id,
        name=display_name or preset_name,
        weights=dict(preset["weights"]),
        style=preset.get("style", "moderate"),
        variance=preset.get("variance", 0.1),
        form_window=preset.get("form_window", settings.form.window),
    )


def load_bot_roster(roster_file: Path = None) -> list:
    """Load the bots that bet automatically.

    Returns:
        List of (BotProfile, league_id) pairs
    """
    roster_file = roster_file or settings.bot_roster_file or Path(__file__).parent / "bots" / "roster.yaml"

    if not roster_file.exists():
        raise FileNotFoundError(f"Bot roster not found: {roster_file}")

    with open(roster_file) as f:
        entries = yaml.safe_load(f) or []

    roster = []
    for entry in entries:
        profile = get_bot_profile(entry["preset"], entry["participant_id"], entry.get("name"))
        roster.append((profile, entry["league_id"]))
    return roster


# Singleton instance
settings = AppSettings()
