# chess_review/config/settings.py
"""
Configuration settings for the Chess Review application, powered by Pydantic.

This module centralizes all tunable parameters, default values, and configuration
schemas. Using Pydantic allows for type-safe, self-documenting configuration
that can be loaded from environment variables, providing a clear separation of
configuration from code.
"""
from typing import List

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Nested Models for Configuration Schemas ---

class JudgementThresholdsModel(BaseModel):
    """
    Defines the lost-advantage thresholds for move judgements.

    Each value is an inclusive upper bound, in win-probability points, on how
    much winning chance the mover may give up and still earn that judgement.
    """
    excellent: float = Field(2.0, description="Maximum lost advantage for an 'Excellent' move.")
    good: float = Field(5.0, description="Maximum lost advantage for a 'Good' move.")
    inaccuracy: float = Field(10.0, description="Maximum lost advantage for an 'Inaccuracy'.")
    mistake: float = Field(20.0, description="Maximum lost advantage for a 'Mistake'.")
    # Anything above the mistake threshold is a 'Blunder'.

    @model_validator(mode='after')
    def validate_thresholds_are_sorted(self) -> 'JudgementThresholdsModel':
        """Ensures that thresholds are logically sorted in ascending order."""
        values = [self.excellent, self.good, self.inaccuracy, self.mistake]
        if not all(values[i] <= values[i + 1] for i in range(len(values) - 1)):
            raise ValueError("Configuration error: Judgement thresholds must be sorted.")
        return self

class EvaluationSettings(BaseModel):
    """Constants shared by the score interpreter and the judgement classifier."""
    mate_base: int = Field(20000, description="Magnitude of a mate-in-0 score; mate-in-N encodes to mate_base - N.")
    win_percent_sensitivity: float = Field(0.004, description="Slope k of the win-probability sigmoid.")
    lost_threshold: int = Field(750, description="A mover-relative evaluation below minus this is 'lost'.")
    mate_threshold: int = Field(5000, description="A mover-relative evaluation below minus this is 'mated'.")
    thresholds: JudgementThresholdsModel = Field(default_factory=JudgementThresholdsModel)

    @model_validator(mode='after')
    def validate_mate_dominates(self) -> 'EvaluationSettings':
        if not self.lost_threshold < self.mate_threshold < self.mate_base:
            raise ValueError("Configuration error: expected lost_threshold < mate_threshold < mate_base.")
        return self

class DifficultyBand(BaseModel):
    rating_floor: int
    skill_level: int = Field(ge=0, le=20)
    randomization: float = Field(0.0, ge=0.0, le=1.0)

def _default_bands() -> List[DifficultyBand]:
    rows = [
        (0, 0, 0.6), (600, 0, 0.4), (800, 2, 0.25), (1000, 4, 0.1),
        (1200, 5, 0.0), (1400, 8, 0.0), (1600, 10, 0.0), (1800, 13, 0.0),
        (2000, 15, 0.0), (2200, 18, 0.0), (2400, 20, 0.0),
    ]
    return [DifficultyBand(rating_floor=r, skill_level=s, randomization=p) for r, s, p in rows]

class DifficultySettings(BaseModel):
    """Rating-to-engine-strength table used for live play."""
    bands: List[DifficultyBand] = Field(default_factory=_default_bands)
    randomization_cutoff: int = Field(1200, description="Ratings below this get random move substitution.")
    default_rating: int = Field(800, description="Rating used when a game is started without one.")

    @model_validator(mode='after')
    def validate_bands_are_monotonic(self) -> 'DifficultySettings':
        """Higher rating floors must never map to a lower skill level."""
        if not self.bands:
            raise ValueError("Configuration error: at least one difficulty band is required.")
        floors = [b.rating_floor for b in self.bands]
        skills = [b.skill_level for b in self.bands]
        if floors != sorted(floors) or len(set(floors)) != len(floors):
            raise ValueError("Configuration error: difficulty bands must have strictly ascending rating floors.")
        if skills != sorted(skills):
            raise ValueError("Configuration error: skill level must not decrease as rating increases.")
        for band in self.bands:
            below_cutoff = band.rating_floor < self.randomization_cutoff
            if below_cutoff != (band.randomization > 0):
                raise ValueError(
                    "Configuration error: bands below the randomization cutoff need randomization > 0, "
                    "bands at or above it need 0."
                )
        return self

class ReviewSettings(BaseModel):
    """Settings for the post-game batch review."""
    depth: int = Field(14, description="Fixed search depth for every reviewed ply.")
    request_timeout_s: float = Field(30.0, description="Seconds one review search may take before the engine counts as stalled.")

class EngineSettings(BaseModel):
    """Configuration for a single chess engine process."""
    path: str = Field("stockfish", description="The executable name or path of the UCI engine.")
    threads: int = Field(1, description="Value for the engine's 'Threads' option.")
    hash_mb: int = Field(16, description="Value for the engine's 'Hash' option, in megabytes.")
    handshake_timeout_s: float = Field(10.0, description="Seconds to wait for 'uciok' / 'readyok'.")
    live_request_timeout_s: float = Field(15.0, description="Seconds a live-play search may take.")

# --- Main Application Settings Class ---

class Settings(BaseSettings):
    """
    Main configuration class for the application.

    It loads settings from environment variables with the prefix 'CHESS_REVIEW_'.
    Nested models can be configured using a double underscore delimiter, e.g.,
    `CHESS_REVIEW_REVIEW__DEPTH=18`.
    """
    model_config = SettingsConfigDict(env_prefix='CHESS_REVIEW_', env_nested_delimiter='__')

    engine: EngineSettings = Field(default_factory=EngineSettings)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    difficulty: DifficultySettings = Field(default_factory=DifficultySettings)
    review: ReviewSettings = Field(default_factory=ReviewSettings)
    default_log_level: str = "INFO"

# A singleton instance of the settings, accessible throughout the application.
settings = Settings()
