from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    TABLE_DIR: str = "./tables"
    TABLE_KEY_COLUMN: str = "age"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"
    PSA_MAX_WORKERS: int = 4
    PSA_MAX_DRAWS: int = 10_000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
