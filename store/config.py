"""
Store settings, read from ORDERSTORE_* environment variables or a .env file.
Constructor arguments on OrderStoreServer / StoreClient take precedence.
"""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DATA_DIR = os.path.join(
    os.path.dirname(__file__), "..", ".pgdata", "orderstore"
)


class StoreSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ORDERSTORE_", env_file=".env", extra="ignore"
    )

    data_dir: str = DEFAULT_DATA_DIR
    dbname: str = "postgres"
    lock_timeout_ms: int = 5000  # how long a transition waits for another one on the same order


settings = StoreSettings()
