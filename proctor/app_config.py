from pydantic import BaseModel

from proctor.shared.config import config


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get("DEBUG", "false").strip().lower() == "true"

    # Server. The registry and hub live in process memory, so keep a single worker.
    API_HOST: str = config.get("API_HOST", "0.0.0.0").strip()
    API_PORT: int = int((config.get("API_PORT") or "").strip() or 8080)
    API_WORKERS: int = int((config.get("API_WORKERS") or "").strip() or 1)
    API_CORS_ORIGINS: list[str] = _split_csv(config.get("API_CORS_ORIGINS", "*"))

    # Registry snapshot file
    DATA_FILE: str = config.get("DATA_FILE", "rooms.json").strip()

    # Viewer push connections (seconds / bytes / messages)
    VIEWER_QUEUE_SIZE: int = int((config.get("VIEWER_QUEUE_SIZE") or "").strip() or 256)
    WS_WRITE_WAIT: float = float((config.get("WS_WRITE_WAIT") or "").strip() or 10)
    WS_PONG_WAIT: float = float((config.get("WS_PONG_WAIT") or "").strip() or 60)
    # Must be shorter than WS_PONG_WAIT
    WS_PING_PERIOD: float = float((config.get("WS_PING_PERIOD") or "").strip() or 54)
    WS_MAX_MESSAGE_SIZE: int = int((config.get("WS_MAX_MESSAGE_SIZE") or "").strip() or 512)

    # Process scan
    FORBIDDEN_APPS: list[str] = _split_csv(
        config.get("FORBIDDEN_APPS", "firefox,hotspotshield,discord,slack,spotify,zen")
    )

    # Observability
    LOGFIRE_ENABLE: bool = config.get("LOGFIRE_ENABLE", "false").strip().lower() == "true"
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
