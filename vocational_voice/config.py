"""
Configuration management using Pydantic Settings.
Loads voice controller settings from environment variables with validation.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Voice controller settings loaded from environment variables.
    Uses .env file in development, environment variables in production.
    All variables are prefixed with VOICE_ (e.g. VOICE_SPEECH_LOCALE).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="VOICE_",
        case_sensitive=False,
        extra="ignore"
    )

    # Test Session Service
    session_api_url: str = Field(
        default="http://localhost:3001/api",
        description="Base URL of the test session backend"
    )
    session_api_timeout_s: float = Field(
        default=30.0,
        gt=0,
        description="Total HTTP timeout for backend requests in seconds"
    )
    backend_timeout_ms: Optional[int] = Field(
        default=None,
        ge=100,
        description="Upper bound on a single backend call; None waits indefinitely"
    )

    # Speech recognition
    speech_locale: str = Field(
        default="es-VE",
        description="Locale passed to the speech recognizer"
    )
    speech_continuous: bool = Field(
        default=False,
        description="Keep recognizing after the first utterance"
    )
    speech_interim_results: bool = Field(
        default=True,
        description="Request provisional (interim) recognition results"
    )
    auto_submit_on_speech_end: bool = Field(
        default=False,
        description="Stop listening automatically when the recognizer ends on its own"
    )

    # Question announcement
    announcement_delay_ms: int = Field(
        default=3000,
        ge=0,
        le=60000,
        description="Fixed announcement delay used when no narrator is available"
    )
    announcement_ms_per_char: Optional[int] = Field(
        default=None,
        ge=0,
        le=1000,
        description="Stretch the fixed delay with question length; None keeps it fixed"
    )
    announcement_padding_ms: int = Field(
        default=1000,
        ge=0,
        le=10000,
        description="Added to the length-based announcement estimate"
    )

    # Turn taking while listening
    silence_submit_ms: Optional[int] = Field(
        default=2000,
        ge=10,
        le=60000,
        description="Finish the answer after this much silence following speech; None disables"
    )
    listening_timeout_ms: Optional[int] = Field(
        default=20000,
        ge=10,
        le=600000,
        description="Finish the answer after this long in LISTENING; None disables"
    )

    # Audio level sampling
    sampler_frame_rate: float = Field(
        default=60.0,
        gt=0,
        le=240,
        description="Audio level callbacks per second (display refresh rate)"
    )
    analyser_fft_size: int = Field(
        default=256,
        ge=32,
        le=32768,
        description="FFT size of the frequency analyser"
    )
    analyser_smoothing: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Smoothing time constant of the frequency analyser"
    )

    # Submission retry policy
    submit_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Automatic submission attempts before reporting failure"
    )
    submit_initial_backoff_ms: int = Field(
        default=250,
        ge=0,
        le=10000,
        description="Delay before the first submission retry"
    )
    submit_backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Backoff growth factor between submission retries"
    )
    submit_max_backoff_ms: int = Field(
        default=4000,
        ge=0,
        le=60000,
        description="Cap on the delay between submission retries"
    )
    max_verbal_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Times a question may be re-asked after failed submissions"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Environment: development, staging, or production"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v_lower

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def announcement_delay_s(self) -> float:
        return self.announcement_delay_ms / 1000.0

    @property
    def backend_timeout_s(self) -> Optional[float]:
        if self.backend_timeout_ms is None:
            return None
        return self.backend_timeout_ms / 1000.0


# Global settings instance
settings = Settings()
