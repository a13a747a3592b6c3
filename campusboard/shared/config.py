"""Environment-driven settings for the console core."""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from campusboard.specs.common.errors import ConfigurationError

DEFAULT_NOTIFICATIONS_COLLECTION = "tic-utas-notifications"
ARTICLES_COLLECTION = "news"


class Settings(BaseModel):
    """Runtime configuration.

    Values come from the environment via :meth:`from_env`; tests construct the
    model directly.
    """

    store: Literal["memory", "cosmos"] = "memory"
    cosmos_connection_string: Optional[str] = None
    cosmos_database: Optional[str] = None
    cosmos_endpoint: Optional[str] = None
    blob_connection_string: Optional[str] = None
    blob_account_url: Optional[str] = None
    blob_container: str = "thumbnails"
    timezone: str = "Asia/Tokyo"
    notifications_collection: str = DEFAULT_NOTIFICATIONS_COLLECTION
    poll_interval: float = Field(default=2.0, gt=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        raw = {
            "store": os.environ.get("CAMPUSBOARD_STORE", "memory").lower(),
            "cosmos_connection_string": os.environ.get("COSMOS_DB_CONNECTION_STRING"),
            "cosmos_database": os.environ.get("COSMOS_DB_NAME"),
            "cosmos_endpoint": os.environ.get("COSMOS_DB_ENDPOINT"),
            "blob_connection_string": os.environ.get("PUBLIC_BLOB_CONNECTION_STRING"),
            "blob_account_url": os.environ.get("PUBLIC_BLOB_ACCOUNT_URL"),
            "blob_container": os.environ.get("CAMPUSBOARD_BLOB_CONTAINER", "thumbnails"),
            "timezone": os.environ.get("CAMPUSBOARD_TIMEZONE", "Asia/Tokyo"),
            "notifications_collection": os.environ.get(
                "CAMPUSBOARD_NOTIFICATIONS_COLLECTION", DEFAULT_NOTIFICATIONS_COLLECTION
            ),
            "poll_interval": os.environ.get("CAMPUSBOARD_POLL_INTERVAL", "2.0"),
            "log_level": os.environ.get("CAMPUSBOARD_LOG_LEVEL", "INFO"),
        }
        try:
            settings = cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid environment configuration\n{exc}") from exc

        if settings.store == "cosmos" and (
            not (settings.cosmos_connection_string or settings.cosmos_endpoint) or not settings.cosmos_database
        ):
            raise ConfigurationError("Missing Cosmos DB connection string or database name")
        return settings

    def container_for(self, collection: str) -> str:
        """Resolve a logical collection name to its Cosmos container name."""
        key = "COSMOS_DB_CONTAINER_" + collection.upper().replace("-", "_")
        return os.environ.get(key) or collection
