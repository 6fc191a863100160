"""
Layout Gauge Configuration

Manages loading from environment variables and default values.
"""

import os
from dataclasses import dataclass, field, asdict

from layout_gauge_core.domain.constants import DEFAULT_MATCH_THRESHOLD, DEFAULT_MODEL


def _env_bool(key: str, default: bool) -> bool:
    """Convert an environment variable to bool"""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_str(key: str, default: str | None) -> str | None:
    """Get an environment variable as a string"""
    return os.environ.get(key, default)


@dataclass
class MatchingConfig:
    """Prediction / ground-truth matching configuration"""
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    match_by_type: bool = False


@dataclass
class OptimizationConfig:
    """Prompt optimization tracker configuration"""
    expected_improvement_pct: float = 15.0
    statistical_significance: float = 0.95  # Placeholder until a real test is wired in
    base_confidence: float = 85.0
    min_sample_size: int = 30
    validation_score_floor: float = 85.0   # Below this a weakness is reported
    validation_score_target: float = 90.0  # Below this an insight is reported
    learning_interval_seconds: int = 3600
    best_performing_limit: int = 5


@dataclass
class OpenAIConfig:
    """OpenAI text-completion client configuration"""
    model: str = DEFAULT_MODEL
    base_url: str | None = None
    timeout_seconds: int = 120
    max_retries: int = 3
    max_tokens: int = 2048


@dataclass
class GaugeConfig:
    """Overall configuration"""
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    optimization: OptimizationConfig = field(default_factory=OptimizationConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary format"""
        return {"gauge_config": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "GaugeConfig":
        """Create from dictionary (handles presence/absence of gauge_config key)"""
        config_data = data.get("gauge_config", data)
        return cls(
            matching=MatchingConfig(**config_data.get("matching", {})),
            optimization=OptimizationConfig(**config_data.get("optimization", {})),
            openai=OpenAIConfig(**config_data.get("openai", {})),
        )


def load_config() -> GaugeConfig:
    """
    Load configuration from environment variables

    Uses default values when environment variables are not set.

    Returns:
        GaugeConfig
    """
    matching = MatchingConfig(
        match_threshold=_env_float("GAUGE_MATCH_THRESHOLD", DEFAULT_MATCH_THRESHOLD),
        match_by_type=_env_bool("GAUGE_MATCH_BY_TYPE", False),
    )
    optimization = OptimizationConfig(
        expected_improvement_pct=_env_float("GAUGE_EXPECTED_IMPROVEMENT_PCT", 15.0),
        statistical_significance=_env_float("GAUGE_STATISTICAL_SIGNIFICANCE", 0.95),
        base_confidence=_env_float("GAUGE_BASE_CONFIDENCE", 85.0),
        min_sample_size=_env_int("GAUGE_MIN_SAMPLE_SIZE", 30),
        validation_score_floor=_env_float("GAUGE_VALIDATION_SCORE_FLOOR", 85.0),
        validation_score_target=_env_float("GAUGE_VALIDATION_SCORE_TARGET", 90.0),
        learning_interval_seconds=_env_int("GAUGE_LEARNING_INTERVAL_SECONDS", 3600),
        best_performing_limit=_env_int("GAUGE_BEST_PERFORMING_LIMIT", 5),
    )
    openai = OpenAIConfig(
        model=_env_str("OPENAI_MODEL", DEFAULT_MODEL),
        base_url=_env_str("OPENAI_BASE_URL", None),
        timeout_seconds=_env_int("OPENAI_TIMEOUT_SECONDS", 120),
        max_retries=_env_int("OPENAI_MAX_RETRIES", 3),
        max_tokens=_env_int("OPENAI_MAX_TOKENS", 2048),
    )
    return GaugeConfig(
        matching=matching,
        optimization=optimization,
        openai=openai,
    )
