from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal, Optional


class Settings(BaseSettings):
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    # "memory" keeps the ledger in-process; "supabase" commits through the
    # commit_documents_atomic RPC
    store_backend: Literal["memory", "supabase"] = "memory"
    max_transaction_attempts: int = Field(5, ge=1)
    starting_points: int = Field(1000, ge=0)

    log_level: str = "INFO"
    log_file: Optional[str] = None

    rate_limit_enabled: bool = True
    trust_x_forwarded_for: bool = False
    trusted_proxy_ips: str = ""
    
    model_config = SettingsConfigDict(env_file=".env")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
