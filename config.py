import os
from functools import lru_cache
from pathlib import Path

CATEGORY_DELETE_POLICIES = ("nullify", "restrict", "cascade")


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_ttl_hours: int,
        environment: str,
        category_delete_policy: str,
        log_level: str,
    ) -> None:
        if category_delete_policy not in CATEGORY_DELETE_POLICIES:
            raise ValueError(
                f"Unknown category delete policy: {category_delete_policy}"
            )
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_ttl_hours = token_ttl_hours
        self.environment = environment
        self.category_delete_policy = category_delete_policy
        self.log_level = log_level

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("EXPENSES_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "expenses.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("EXPENSES_TIMEZONE", "UTC")
    token_secret = os.getenv(
        "EXPENSES_TOKEN_SECRET",
        "3c1f0b8e9a7d4e52b6f1c0a98d7e6f5a4b3c2d1e0f9a8b7c6d5e4f3a2b1c0d9e",
    )
    token_ttl_hours = int(os.getenv("EXPENSES_TOKEN_TTL_HOURS", "168"))
    environment = os.getenv("EXPENSES_ENVIRONMENT", "production")
    category_delete_policy = os.getenv("EXPENSES_CATEGORY_DELETE_POLICY", "nullify")
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_ttl_hours=token_ttl_hours,
        environment=environment,
        category_delete_policy=category_delete_policy,
        log_level=log_level,
    )
