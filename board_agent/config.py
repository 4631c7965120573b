from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    langfuse_secret_key: str = ""
    langfuse_public_key: str = ""
    langfuse_host: str = "https://cloud.langfuse.com"
    log_level: str = "INFO"
    history_limit: int = Field(default=20, ge=1, le=50)
    # Delay between node acknowledgement and connector persistence on the client
    connector_settle_seconds: float = Field(default=0.5, ge=0)


settings = Settings()
