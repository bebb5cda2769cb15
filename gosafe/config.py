from pathlib import Path
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent


def setup_logging(log_level: str | int = "INFO", log_file: Path | None = None) -> None:
    """Centralized logging configuration with environment variable support"""
    level = (
        log_level
        if isinstance(log_level, int)
        else getattr(logging, str(log_level).upper(), logging.INFO)
    )
    log_path = (log_file or (BASE_DIR.parent / "gosafe.log")).resolve()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    has_file_handler = False
    has_stream_handler = False

    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            existing_path = Path(getattr(handler, "baseFilename", "")).resolve()
            if existing_path == log_path:
                has_file_handler = True
        elif isinstance(handler, logging.StreamHandler):
            has_stream_handler = True

    if not has_file_handler:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if not has_stream_handler:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR.parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    log_level: str = "INFO"

    # Upstream GoSafe backend (route search, contacts, auth)
    api_base_url: str = "http://localhost:5000/api"
    api_timeout_s: float = 30.0

    # Where live positions come from: "simulated" or "mqtt"
    geo_source: str = "simulated"
    simulated_interval_s: float = 1.0
    simulated_accuracy_m: float = 15.0

    # OwnTracks-style location feed
    mqtt_broker: str = ""
    mqtt_port: int = 1883
    mqtt_user: str = ""
    mqtt_pass: str = ""
    mqtt_use_tls: bool = False
    mqtt_ca_certs: str = ""
    location_topic: str = "owntracks/+/+"

    # Live tracking watch options
    tracking_high_accuracy: bool = True
    tracking_timeout_s: float = 10.0
    tracking_max_sample_age_s: float = 5.0
    tracking_log_interval_s: float = 5.0

    # SOS alert dispatch
    sos_location_timeout_s: float = 8.0
    sos_max_sample_age_s: float = 5.0
    sos_stagger_s: float = 0.8
    sos_success_display_s: float = 5.0
    messaging_base_url: str = "https://wa.me"
    maps_base_url: str = "https://maps.google.com/"

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000"


settings = Settings()
