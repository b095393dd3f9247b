"""
Dependencies for FastAPI routes.
"""
from functools import lru_cache

from database import SessionLocal
from config import settings
from Currency_module.exchange_rate import ExchangeRateService, RateCache


def get_db():
    """
    Database session dependency.
    Yields a database session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache(maxsize=1)
def get_exchange_rate_service() -> ExchangeRateService:
    """
    Process-wide exchange rate service.
    The cache lives on the service instance so tests can swap the whole thing out.
    """
    return ExchangeRateService(
        cache=RateCache(ttl_seconds=settings.EXCHANGE_RATE_CACHE_TTL_SECONDS),
        api_url=settings.EXCHANGE_RATE_API_URL,
        timeout=settings.EXCHANGE_RATE_TIMEOUT_SECONDS,
    )
