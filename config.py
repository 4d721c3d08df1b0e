from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = "Capital Filing Workflow API"
    debug: bool = False
    log_level: str = "info"

    database_url: str = "sqlite+aiosqlite:///./capital_filing.db"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Completion gates, percent 0-100
    submission_completion_threshold: int = 80
    section_completion_threshold: int = 80

    # Auto-save
    autosave_debounce_ms: int = 800
    autosave_max_retries: int = 3
    autosave_backoff_ms: int = 200
    # Idle sections whose optimistic state is kept in memory
    autosave_max_idle_sections: int = 1024

    # Compare-and-set retries for field-scoped section merges
    field_merge_retries: int = 5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def autosave_debounce_seconds(self) -> float:
        return self.autosave_debounce_ms / 1000.0

    @property
    def autosave_backoff_seconds(self) -> float:
        return self.autosave_backoff_ms / 1000.0

settings = Settings()
