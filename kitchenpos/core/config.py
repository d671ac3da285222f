from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = Field(default="Kitchen POS", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    database_url: str = Field(default="sqlite:///./kitchenpos.db", alias="DATABASE_URL")
    currency: str = Field(default="ARS", alias="CURRENCY")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    # Sincronización con la cocina (KDS)
    kds_poll_seconds: float = Field(default=10.0, alias="KDS_POLL_SECONDS")
    kds_reconnect_seconds: float = Field(default=3.0, alias="KDS_RECONNECT_SECONDS")
    kds_completed_removal_seconds: float = Field(default=2.0, alias="KDS_COMPLETED_REMOVAL_SECONDS")
    kds_event_removal_seconds: float = Field(default=0.5, alias="KDS_EVENT_REMOVAL_SECONDS")
    kds_http_timeout: float = Field(default=10.0, alias="KDS_HTTP_TIMEOUT")
    # Cambio limitado por los billetes presentes en la caja
    use_drawer_limits: bool = Field(default=False, alias="USE_DRAWER_LIMITS")

    class Config:
        env_file = ".env"


settings = Settings()
