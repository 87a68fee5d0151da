"""
Centralized Application Configuration using Pydantic

This module provides a type-safe, validated configuration system for the ECG
processing core. Configuration can be loaded from environment variables,
.env files, or settings.json.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any, Tuple
from enum import Enum

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

from ecgstream.config import constants
from ecgstream.domain.models.ecg_models import Gender

# Load .env file if it exists
load_dotenv()

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StreamConfig(BaseSettings):
    """Acquisition and polling configuration"""

    sample_rate: float = Field(
        default=constants.DEFAULT_SAMPLE_RATE,
        description="Sampling rate of the incoming stream in Hz",
        gt=0,
        le=10000
    )

    window_size: int = Field(
        default=constants.ROLLING_WINDOW_SIZE,
        description="Capacity of the rolling window in samples",
        ge=100,
        le=100000
    )

    poll_interval_ms: int = Field(
        default=constants.POLL_INTERVAL_MS,
        description="Detection cadence in milliseconds",
        ge=20,
        le=5000
    )

    min_signal_amplitude: float = Field(
        default=constants.MIN_SIGNAL_AMPLITUDE,
        description="Ticks whose peak |amplitude| is below this are skipped",
        ge=0.0,
        le=1.0
    )

    min_signal_variance: float = Field(
        default=constants.MIN_SIGNAL_VARIANCE,
        description="Ticks whose variance is below this are skipped",
        ge=0.0,
        le=1.0
    )

    use_qrs_detector: bool = Field(
        default=False,
        description="Pick live R-peaks with the adaptive QRS detector instead of the amplitude scan"
    )

    bpm_update_interval_ms: int = Field(
        default=constants.BPM_UPDATE_INTERVAL_MS,
        description="Minimum stream time between smoothed BPM updates",
        ge=0,
        le=10000
    )

    class Config:
        env_prefix = "STREAM_"


class FilterConfig(BaseSettings):
    """Filter chain configuration (used to design stages off 360 Hz)"""

    highpass_cutoff_hz: float = Field(
        default=0.5,
        description="Baseline wander highpass cutoff",
        gt=0.0,
        le=5.0
    )

    lowpass_cutoff_hz: float = Field(
        default=30.0,
        description="High-frequency noise lowpass cutoff",
        ge=10.0,
        le=150.0
    )

    notch_band_hz: Tuple[float, float] = Field(
        default=(48.0, 52.0),
        description="Power-line band-stop edges"
    )

    clamp_output: bool = Field(
        default=True,
        description="Clamp filtered samples to [-1, 1]"
    )

    @validator("notch_band_hz")
    def check_notch_band(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        """Band edges must be ordered"""
        low, high = v
        if not 0 < low < high:
            raise ValueError("notch band must satisfy 0 < low < high")
        return v

    class Config:
        env_prefix = "FILTER_"


class QRSDetectorConfig(BaseSettings):
    """Adaptive dual-threshold QRS detector configuration"""

    use_prefiltered: bool = Field(
        default=True,
        description="Skip the internal 5-15 Hz bandpass for already-filtered input"
    )

    integration_window_ms: float = Field(
        default=150.0,
        description="Moving-window integration length",
        ge=50.0,
        le=300.0
    )

    refractory_ms: float = Field(
        default=200.0,
        description="Minimum spacing between accepted peaks",
        ge=100.0,
        le=400.0
    )

    signal_learning_rate: float = Field(
        default=0.125,
        description="EMA weight of the signal threshold update",
        gt=0.0,
        le=1.0
    )

    noise_learning_rate: float = Field(
        default=0.125,
        description="EMA weight of the noise threshold update",
        gt=0.0,
        le=1.0
    )

    initial_signal_threshold: float = Field(
        default=0.25,
        description="Signal threshold after reset",
        ge=0.0
    )

    initial_noise_threshold: float = Field(
        default=0.1,
        description="Noise threshold after reset",
        ge=0.0
    )

    refine_window_ms: float = Field(
        default=30.0,
        description="Half-width of the refinement search in the filtered signal",
        ge=5.0,
        le=100.0
    )

    refine_amplitude_ratio: float = Field(
        default=0.25,
        description="Refined peaks below this fraction of the recent mean are rejected",
        ge=0.0,
        le=1.0
    )

    t_wave_window_ms: float = Field(
        default=360.0,
        description="Window after a kept peak in which T-wave rejection applies",
        ge=100.0,
        le=600.0
    )

    t_wave_amplitude_ratio: float = Field(
        default=0.5,
        description="Peaks below this fraction of the previous peak are treated as T-waves",
        ge=0.0,
        le=1.0
    )

    history_length: int = Field(
        default=8,
        description="Number of recent peak amplitudes averaged for threshold updates",
        ge=1,
        le=64
    )

    @validator("initial_noise_threshold")
    def check_threshold_order(cls, v: float, values: Dict[str, Any]) -> float:
        """Noise threshold must sit below the signal threshold"""
        signal_threshold = values.get("initial_signal_threshold")
        if signal_threshold is not None and v >= signal_threshold:
            raise ValueError("initial_noise_threshold must be below initial_signal_threshold")
        return v

    class Config:
        env_prefix = "QRS_"


class RPeakConfig(BaseSettings):
    """Unified R-peak detector configuration"""

    adaptive_threshold: bool = Field(
        default=True,
        description="Rescale weak signals by peak amplitude and retry once"
    )

    class Config:
        env_prefix = "RPEAK_"


class IntervalConfig(BaseSettings):
    """Clinical interval calculator configuration"""

    gender: Gender = Field(
        default=Gender.MALE,
        description="Selects QT/QTc prolongation thresholds"
    )

    min_rr_distance_ms: float = Field(
        default=600.0,
        description="R points closer than this to the previous complex are dropped",
        ge=200.0,
        le=1500.0
    )

    @validator("gender", pre=True)
    def normalize_gender(cls, v: Any) -> Any:
        """Accept 'Male', 'FEMALE', ..."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    class Config:
        env_prefix = "INTERVAL_"


class HRVConfig(BaseSettings):
    """Heart rate variability configuration"""

    max_intervals: int = Field(
        default=constants.RR_HISTORY_CAPACITY,
        description="Capacity of the RR history FIFO",
        ge=30,
        le=5000
    )

    min_rr_ms: float = Field(
        default=constants.MIN_RR_MS,
        description="Shortest RR interval accepted into the history",
        ge=200.0,
        le=600.0
    )

    max_rr_ms: float = Field(
        default=constants.MAX_RR_MS,
        description="Longest RR interval accepted into the history",
        ge=1000.0,
        le=4000.0
    )

    min_state_samples: int = Field(
        default=constants.MIN_HRV_STATE_SAMPLES,
        description="RR samples required before a physiological state is reported",
        ge=2,
        le=300
    )

    triangular_bin_ms: float = Field(
        default=constants.TRIANGULAR_BIN_MS,
        description="Histogram bin width of the triangular index",
        gt=0.0,
        le=50.0
    )

    class Config:
        env_prefix = "HRV_"


class ApplicationConfig(BaseSettings):
    """Main application configuration"""

    # General settings
    app_name: str = Field(
        default=constants.APP_NAME,
        description="Application name"
    )

    version: str = Field(
        default=constants.APP_VERSION,
        description="Application version"
    )

    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    log_to_file: bool = Field(
        default=False,
        description="Enable logging to file"
    )

    log_dir: Path = Field(
        default=Path("logs"),
        description="Directory for log files"
    )

    # Sub-configurations
    stream: StreamConfig = Field(
        default_factory=StreamConfig,
        description="Acquisition settings"
    )

    filters: FilterConfig = Field(
        default_factory=FilterConfig,
        description="Filter chain settings"
    )

    qrs: QRSDetectorConfig = Field(
        default_factory=QRSDetectorConfig,
        description="QRS detector settings"
    )

    rpeak: RPeakConfig = Field(
        default_factory=RPeakConfig,
        description="Unified R-peak detector settings"
    )

    intervals: IntervalConfig = Field(
        default_factory=IntervalConfig,
        description="Interval calculator settings"
    )

    hrv: HRVConfig = Field(
        default_factory=HRVConfig,
        description="HRV settings"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @classmethod
    def load_from_json(cls, json_path: Path) -> "ApplicationConfig":
        """Load configuration from JSON file"""
        try:
            if json_path.exists():
                with open(json_path, 'r') as f:
                    data = json.load(f)
                return cls(**data)
            else:
                logger.warning(f"Config file not found: {json_path}")
                return cls()
        except Exception as e:
            logger.error(f"Error loading config from {json_path}: {e}")
            return cls()

    def save_to_json(self, json_path: Path) -> None:
        """Save configuration to JSON file"""
        try:
            with open(json_path, 'w') as f:
                json.dump(self.dict(), f, indent=2, default=str)
            logger.info(f"Config saved to {json_path}")
        except Exception as e:
            logger.error(f"Error saving config to {json_path}: {e}")

    def get_nested(self, key_path: str, default: Any = None) -> Any:
        """Get nested configuration value using dot notation

        Example: config.get_nested('qrs.refractory_ms')
        """
        keys = key_path.split('.')
        value = self

        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            else:
                return default

        return value

    def set_nested(self, key_path: str, value: Any) -> bool:
        """Set nested configuration value using dot notation

        Example: config.set_nested('intervals.gender', Gender.FEMALE)
        """
        keys = key_path.split('.')
        target = self

        # Navigate to parent object
        for key in keys[:-1]:
            if hasattr(target, key):
                target = getattr(target, key)
            else:
                return False

        if hasattr(target, keys[-1]):
            setattr(target, keys[-1], value)
            return True

        return False


# Singleton instance
_config_instance: Optional[ApplicationConfig] = None


def get_config() -> ApplicationConfig:
    """Get the global configuration instance"""
    global _config_instance

    if _config_instance is None:
        # Try to load from settings.json first
        settings_path = Path("settings.json")
        if settings_path.exists():
            _config_instance = ApplicationConfig.load_from_json(settings_path)
        else:
            # Fall back to environment variables and defaults
            _config_instance = ApplicationConfig()

    return _config_instance


def reload_config() -> ApplicationConfig:
    """Reload configuration from files"""
    global _config_instance
    _config_instance = None
    return get_config()


def is_debug_mode() -> bool:
    """Check if debug mode is enabled"""
    return get_config().debug_mode
