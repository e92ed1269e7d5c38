from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MT_", env_file=".env", extra="ignore")

    ENV: str = Field(default="dev")
    DB_URL: str = Field(default="sqlite:///./mtfoundry.db")
    # 日志：LOG_DIR 为空时只输出到控制台
    LOG_DIR: str = Field(default="logs")
    LOG_FILE: str = Field(default="mtfoundry.log")
    LOG_LEVEL: str = Field(default="INFO")

    # 模拟节奏：1 个时间单位 = TIME_UNIT_SECONDS 秒（默认毫秒）
    TIME_UNIT_SECONDS: float = Field(default=0.001, ge=0)
    EXECUTION_BASE_DELAY: int = Field(default=40, ge=0)
    JITTER_FRACTION: float = Field(default=0.2, ge=0, le=1)
    DEFAULT_PASS_RATIO: float = Field(default=0.9, ge=0, le=1)

    # Optional relation catalog override (YAML)
    CATALOG_PATH: str | None = Field(default=None)

settings = Settings()
