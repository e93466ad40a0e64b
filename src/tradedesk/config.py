"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM provider credentials (API_KEY is the shared fallback for both)
    OPENAI_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    API_KEY: str | None = None

    # Tool-call loop
    MAX_TOOL_ITERATIONS: int = 5
    MODEL_CALL_TIMEOUT: float = 60.0
    TOOL_CALL_TIMEOUT: float = 15.0
    AGENT_TURN_TIMEOUT: float = 180.0
    MAX_OUTPUT_TOKENS: int = 1024

    # Sentinel text protocol
    JOURNAL_MARKER: str = "JOURNAL_JSON:"
    TRADE_PLAN_MARKER: str = "TRADE_PLAN_JSON:"

    # Round-table
    MODERATOR_AGENT_ID: str = "strategist_main"

    # Journal audit trail (JSON lines); disabled when unset
    JOURNAL_LOG_PATH: str | None = None

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"

    def openai_key(self) -> str | None:
        """Return the chat-style provider key, falling back to ``API_KEY``."""
        return self.OPENAI_API_KEY or self.API_KEY

    def gemini_key(self) -> str | None:
        """Return the generate-style provider key, falling back to ``API_KEY``."""
        return self.GEMINI_API_KEY or self.API_KEY


settings = Settings()
