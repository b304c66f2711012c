"""Application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings

# Analysis tuning defaults. Detection and summary modules read these too.
SAMPLE_INTERVAL_FLOOR = 0.08  # Seconds between samples on short clips
MAX_SAMPLES = 320  # Long clips are sub-sampled to stay under this
WORKING_WIDTH = 480  # Frames wider than this are downscaled first
MIN_CONTOUR_AREA = 15.0  # Pixels, at working resolution
# Score (circularity * area) that maps to confidence 1.0.
# Empirical normalization, not a probability.
CONFIDENCE_DIVISOR = 1500.0
RELEASE_WINDOW = 5  # Earliest samples used for release speed
# Height drop (metres) required to call a bounce. 0 keeps "first descent".
MIN_BOUNCE_DROP = 0.0


class Settings(BaseSettings):
    """Application settings."""

    # Server
    host: str = "127.0.0.1"
    port: int = 8430
    debug: bool = True
    log_level: str = "INFO"

    # Paths
    temp_dir: Path = Path.home() / ".pitchtrace" / "temp"
    upload_dir: Path = Path.home() / ".pitchtrace" / "uploads"
    db_path: Path = Path.home() / ".pitchtrace" / "pitchtrace.db"

    # Sampling
    sample_interval_floor: float = SAMPLE_INTERVAL_FLOOR
    max_samples: int = MAX_SAMPLES

    # Ball localization
    working_width: int = WORKING_WIDTH
    min_contour_area: float = MIN_CONTOUR_AREA
    confidence_divisor: float = CONFIDENCE_DIVISOR

    # Summary
    release_window: int = RELEASE_WINDOW
    min_bounce_drop: float = MIN_BOUNCE_DROP

    class Config:
        env_prefix = "PITCHTRACE_"
        env_file = ".env"


settings = Settings()

# Ensure directories exist
settings.temp_dir.mkdir(parents=True, exist_ok=True)
settings.upload_dir.mkdir(parents=True, exist_ok=True)
