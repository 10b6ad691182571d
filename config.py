"""
Application settings.

Values come from the environment, with a `.env` file next to this module
loaded first. Environment variables:
- SALES_REPOSITORY_BACKEND: "memory" (default) or "supabase"
- SUPABASE_URL / SUPABASE_KEY: required only for the supabase backend
- SALES_TABLE / SALE_ITEMS_TABLE: Supabase table names
- DEFAULT_PAGE_SIZE: page size used when a listing does not give one
- LOG_LEVEL: root logging level for the API process
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from services.sale_service import DEFAULT_PAGE_SIZE

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)

BACKEND_MEMORY = "memory"
BACKEND_SUPABASE = "supabase"


@dataclass(frozen=True, slots=True)
class Settings:
    repository_backend: str = BACKEND_MEMORY
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    sales_table: str = "sales"
    sale_items_table: str = "sale_items"
    default_page_size: int = DEFAULT_PAGE_SIZE
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "Settings":
        backend = os.getenv("SALES_REPOSITORY_BACKEND", BACKEND_MEMORY).strip().lower()
        if backend not in (BACKEND_MEMORY, BACKEND_SUPABASE):
            raise RuntimeError(
                f"Invalid SALES_REPOSITORY_BACKEND '{backend}'. "
                f"Use '{BACKEND_MEMORY}' or '{BACKEND_SUPABASE}'."
            )

        return Settings(
            repository_backend=backend,
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_KEY"),
            sales_table=os.getenv("SALES_TABLE", "sales"),
            sale_items_table=os.getenv("SALE_ITEMS_TABLE", "sale_items"),
            default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", str(DEFAULT_PAGE_SIZE))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


__all__ = ["BACKEND_MEMORY", "BACKEND_SUPABASE", "Settings", "get_settings"]
