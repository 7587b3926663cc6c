"""
Configuration management for the Storm Intel service
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
from typing import Dict, Optional


class Settings(BaseSettings):
    """Application settings"""

    # Service configuration
    app_name: str = "Storm Intel Service"
    debug: bool = False
    log_level: str = "INFO"

    # NWS alert feed configuration
    nws_base_url: str = "https://api.weather.gov"
    nws_user_agent: str = "(Storm Intel Service, contact@stormintel.dev)"  # Required by NWS

    # SPC ground-truth storm report feed
    spc_base_url: str = "https://www.spc.noaa.gov/climo/reports"
    spc_user_agent: str = "StormIntel-Service/1.0"

    feed_timeout_seconds: float = 30.0

    # Retry policy shared by every feed adapter
    feed_max_retries: int = 2
    feed_retry_base_delay_seconds: float = 0.5
    feed_retry_max_delay_seconds: float = 4.0

    # Feed rate limiting
    feed_requests_per_second: int = 5
    feed_requests_per_day: int = 10000
    feed_rate_limit_buffer: float = 0.8  # Use 80% of limits for safety

    # Relevance radius per event type (miles)
    radius_hail_miles: float = 8.0
    radius_wind_miles: float = 15.0
    radius_storm_miles: float = 20.0
    radius_watch_miles: float = 20.0
    radius_warning_miles: float = 20.0

    # Magnitude normalization caps
    magnitude_cap_hail_inches: float = 2.0
    magnitude_cap_wind_mph: float = 70.0

    # Fixed magnitude scores for events that carry no magnitude
    nominal_score_storm: float = 0.8
    nominal_score_wind_unmeasured: float = 0.5
    nominal_score_watch: float = 0.5
    nominal_score_warning: float = 0.6

    # Confidence curve
    confidence_single_source_factor: float = 0.85
    confidence_per_extra_source_factor: float = 0.15
    confidence_high_percent: int = 70
    confidence_medium_percent: int = 40

    # Hail severity thresholds (size inches, max distance miles)
    hail_severe_min_inches: float = 1.75
    hail_severe_max_miles: float = 2.0
    hail_moderate_min_inches: float = 1.0
    hail_moderate_max_miles: float = 5.0
    hail_minor_min_inches: float = 0.5
    hail_minor_max_miles: float = 8.0

    # Ingestion
    lookback_days: int = 120
    bbox_radius_degrees: float = 0.5
    ingestion_workers: int = 4
    batch_timeout_seconds: float = 3600.0
    on_demand_timeout_seconds: float = 8.0
    ingestion_cron_hour: int = 2
    ingestion_cron_minute: int = 0
    scheduler_enabled: bool = True

    # Result storage
    result_store_dir: Optional[str] = None  # In-memory store when unset
    timeline_max_entries: int = 50

    class Config:
        env_file = ".env"
        case_sensitive = False


class HailSeverityThresholds(BaseModel):
    """Inclusive (size, distance) cut-offs for hail severity labels."""

    severe_min_inches: float = 1.75
    severe_max_miles: float = 2.0
    moderate_min_inches: float = 1.0
    moderate_max_miles: float = 5.0
    minor_min_inches: float = 0.5
    minor_max_miles: float = 8.0


class ScoringConfig(BaseModel):
    """
    Tunables for proximity scoring, DOL confidence and severity labels.

    Keys of the per-type maps are event type values
    (hail, wind, storm, watch, warning).
    """

    radius_miles: Dict[str, float] = Field(
        default_factory=lambda: {
            "hail": 8.0,
            "wind": 15.0,
            "storm": 20.0,
            "watch": 20.0,
            "warning": 20.0,
        }
    )
    magnitude_caps: Dict[str, float] = Field(
        default_factory=lambda: {"hail": 2.0, "wind": 70.0}
    )
    nominal_magnitude_scores: Dict[str, float] = Field(
        default_factory=lambda: {"storm": 0.8, "wind": 0.5, "watch": 0.5, "warning": 0.6}
    )
    single_source_factor: float = 0.85
    per_extra_source_factor: float = 0.15
    confidence_high_percent: int = 70
    confidence_medium_percent: int = 40
    hail_severity: HailSeverityThresholds = Field(default_factory=HailSeverityThresholds)
    timeline_max_entries: int = 50

    @classmethod
    def from_settings(cls, source: "Settings") -> "ScoringConfig":
        """Build the scoring configuration from application settings."""
        return cls(
            radius_miles={
                "hail": source.radius_hail_miles,
                "wind": source.radius_wind_miles,
                "storm": source.radius_storm_miles,
                "watch": source.radius_watch_miles,
                "warning": source.radius_warning_miles,
            },
            magnitude_caps={
                "hail": source.magnitude_cap_hail_inches,
                "wind": source.magnitude_cap_wind_mph,
            },
            nominal_magnitude_scores={
                "storm": source.nominal_score_storm,
                "wind": source.nominal_score_wind_unmeasured,
                "watch": source.nominal_score_watch,
                "warning": source.nominal_score_warning,
            },
            single_source_factor=source.confidence_single_source_factor,
            per_extra_source_factor=source.confidence_per_extra_source_factor,
            confidence_high_percent=source.confidence_high_percent,
            confidence_medium_percent=source.confidence_medium_percent,
            hail_severity=HailSeverityThresholds(
                severe_min_inches=source.hail_severe_min_inches,
                severe_max_miles=source.hail_severe_max_miles,
                moderate_min_inches=source.hail_moderate_min_inches,
                moderate_max_miles=source.hail_moderate_max_miles,
                minor_min_inches=source.hail_minor_min_inches,
                minor_max_miles=source.hail_minor_max_miles,
            ),
            timeline_max_entries=source.timeline_max_entries,
        )


# Global settings instance
settings = Settings()
