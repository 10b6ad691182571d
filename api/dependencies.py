"""
API dependencies.

Builds the process-wide SaleService for the configured storage backend.
Tests replace it through `app.dependency_overrides[get_sale_service]`.
"""

import logging
from functools import lru_cache

from config import BACKEND_SUPABASE, get_settings
from repositories.memory_sale_repository import InMemorySaleRepository
from services.sale_service import SaleService

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_sale_service() -> SaleService:
    settings = get_settings()

    if settings.repository_backend == BACKEND_SUPABASE:
        from repositories.supabase_sale_repository import SupabaseSaleRepository

        repository = SupabaseSaleRepository()
    else:
        repository = InMemorySaleRepository()

    logger.info(
        f"Sale service using '{settings.repository_backend}' repository",
        extra={"repository_backend": settings.repository_backend},
    )
    return SaleService(repository, default_page_size=settings.default_page_size)
