"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Numeric thresholds for sampling and classification live in
    ``moodwatch/sampling/sampling_config.yaml``; this object only carries
    intervals, wiring and credentials.
    """

    # --- App ---
    app_name: str = "moodwatch"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Owner ---
    user_id: str = "testUser"

    # --- Loops (milliseconds) ---
    periodic_interval_ms: int = 60_000
    event_interval_ms: int = 60_000
    dummy_interval_ms: int = 3_600_000
    capture_window_ms: int = 2_000
    first_reading_wait_ms: int = 0  # 0 = first tick falls back immediately
    enable_periodic_loop: bool = True
    enable_audio_loop: bool = True

    # --- Sensor / audio ---
    sensor_enabled: bool = True
    sensor_max_skew_ms: int = 5_000  # future observed_at beyond this is rejected
    audio_backend: str = "arecord"  # arecord | none
    audio_device: str = "default"
    sample_rate_hz: int = 8_000
    storage_bucket: str = "mood-manager-storage"  # bucket named in manual event storage_path

    # --- Sink ---
    sink_backend: str = "memory"  # memory | firestore | postgres
    sink_max_retries: int = 0
    sink_retry_backoff_ms: int = 500

    # --- Firestore ---
    firestore_project_id: str = ""
    firestore_database: str = "(default)"
    firestore_access_token: str = ""
    firestore_api_key: str = ""

    # --- Postgres / Supabase ---
    database_url: str = ""

    # --- Security ---
    device_token: str = ""  # empty = no device auth on /api/v1

    # --- Randomness ---
    random_seed: int | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
