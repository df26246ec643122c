from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "carbonlog"
    LOG_LEVEL: str = "INFO"

    # Gemini is optional. Empty key means rule-based estimates only.
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"


settings = Settings()
