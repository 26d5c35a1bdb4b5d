from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "querycontract"

    QUERY_DEFAULT_LIMIT: int = 10
    QUERY_MAX_LIMIT: int = 100
    QUERY_MIN_LIMIT: int = 1
    QUERY_STRICT_UNKNOWN_FIELDS: bool = True  # False -> unclaimed keys are ignored
    QUERY_FILTER_MAX_DEPTH: int = 3
    QUERY_FILTER_MAX_CONDITIONS: Optional[int] = None  # None -> no cap on filter entries
    QUERY_SEARCH_MAX_LENGTH: int = 500
    QUERY_LIST_SEPARATOR: str = ","


settings = Settings()
