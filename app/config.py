from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from functools import lru_cache

from app.models.tagging import ScopeKind, TagPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Tag Threads"
    debug: bool = False

    # Slack
    slack_bot_token: str = ""
    slack_signing_secret: str = ""  # Empty disables request verification (local dev)

    # Database
    database_url: str = "sqlite:///./tag_threads.db"

    # Aggregation behaviour
    thread_scope: ScopeKind = ScopeKind.MESSAGE
    tag_policy: TagPolicy = TagPolicy.UNION
    aggregation_channel_id: str = ""  # Required when thread_scope is "global"
    aggregation_concurrency: int = 4  # Background jobs running at once
    preview_length: int = 200  # Characters of message text quoted in an entry
    acknowledgment_reaction: str = "label"

    # Tag form
    popular_tag_limit: int = 20
    allow_multiple_tag_selection: bool = False
    include_delete_controls: bool = True

    model_config = ConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
