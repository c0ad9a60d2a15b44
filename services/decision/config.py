"""
Engine configuration via pydantic-settings.
All config read from environment variables with defaults matching the
documented scoring, fairness and selection constants.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "group-decision-engine"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")
    debug: bool = False

    # Scoring weights (weighted mean of the four sub-scores)
    weight_budget: float = Field(default=0.35, ge=0.0)
    weight_location: float = Field(default=0.25, ge=0.0)
    weight_preference: float = Field(default=0.30, ge=0.0)
    weight_dietary: float = Field(default=0.10, ge=0.0)

    # Sub-score shaping
    neutral_score: float = Field(default=0.7, ge=0.0, le=1.0)
    budget_decay_span_fraction: float = Field(default=0.5, gt=0.0)
    location_decay_fraction: float = Field(default=0.5, gt=0.0)
    no_preference_match_score: float = Field(default=0.2, ge=0.0, le=1.0)
    no_preferences_score: float = Field(default=0.5, ge=0.0, le=1.0)
    default_budget_weight: float = Field(default=0.8, ge=0.0, le=1.0)

    # Fairness
    fairness_alpha: float = Field(default=0.3, gt=0.0, le=1.0)
    fairness_low_threshold: float = Field(default=0.4, gt=0.0, lt=1.0)
    fairness_high_threshold: float = Field(default=0.7, gt=0.0, lt=1.0)
    multiplier_min: float = Field(default=0.5, gt=0.0)
    multiplier_max: float = Field(default=2.0, gt=0.0)
    default_fairness_score: float = Field(default=0.5, ge=0.0, le=1.0)
    preferences_met_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    recent_history_window: int = Field(default=5, ge=1)
    balanced_std_threshold: float = Field(default=0.2, ge=0.0)

    # Selection + explanation
    very_close_gap_points: int = 5
    solid_gap_points: int = 15
    max_alternatives: int | None = Field(default=None, ge=0)
    reasoning_budget_threshold: float = 0.8
    reasoning_location_threshold: float = 0.7
    reasoning_preference_threshold: float = 0.5
    reasoning_boost_threshold: float = 1.1
    reasoning_rating_threshold: float = 4.0
    compromise_note_threshold: float = 0.5
    compromise_subscore_threshold: float = 0.7

    # Conflicts + compromises
    conflict_score_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    budget_conflict_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    compromise_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    support_threshold: float = Field(default=0.6, ge=0.0, le=1.0)

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def weights_must_be_usable(self) -> "Settings":
        total = self.weight_budget + self.weight_location + self.weight_preference + self.weight_dietary
        if total <= 0.0:
            raise ValueError("score weights must not all be zero")
        if self.fairness_low_threshold >= self.fairness_high_threshold:
            raise ValueError("fairness_low_threshold must be below fairness_high_threshold")
        if self.multiplier_min > 1.0 or self.multiplier_max < 1.0:
            raise ValueError("multiplier bounds must bracket 1.0")
        return self


settings = Settings()
