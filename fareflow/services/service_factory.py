# fareflow/services/service_factory.py
import logging
from typing import Dict, Any, Optional

from fareflow.config import Settings
from fareflow.storage.db_service import StorageService
from fareflow.storage.schema_manager import SchemaManager
from fareflow.storage.services.booking_storage_service import BookingStorageService
from fareflow.services.redis_storage_manager import RedisStorageManager
from fareflow.services.api.flights.pkfare_provider import PKfareProvider
from fareflow.services.api.flights.flight_service import FlightService
from fareflow.services.booking_lifecycle import BookingLifecycle
from fareflow.services.webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


class ServiceFactory:
    """Factory for creating and managing services"""

    @staticmethod
    def create_services(settings: Optional[Settings] = None, initialize_schema: bool = True) -> Dict[str, Any]:
        """Create all services from settings"""
        settings = settings or Settings.from_env()

        base_storage_service = StorageService(
            settings.database_url,
            min_connections=settings.db_pool_min,
            max_connections=settings.db_pool_max,
        )

        if initialize_schema:
            schema_manager = SchemaManager(base_storage_service)
            logger.info("Initializing database schemas...")
            if not schema_manager.create_all_tables():
                logger.error("Failed to initialize database schemas")
            elif not schema_manager.verify_tables_exist():
                logger.warning("Some required tables may be missing")

        booking_storage_service = BookingStorageService(base_storage_service)
        cache = RedisStorageManager(settings.redis_url, settings.use_local_redis)
        provider = PKfareProvider(settings.provider)

        flight_service = FlightService(provider, cache, settings.pricing_cache_ttl_seconds)
        booking_lifecycle = BookingLifecycle(provider, base_storage_service, booking_storage_service)
        webhook_reconciler = WebhookReconciler(base_storage_service, booking_storage_service)

        return {
            "settings": settings,
            # storage services
            "base_storage_service": base_storage_service,
            "booking_storage_service": booking_storage_service,
            "cache": cache,
            # services
            "provider": provider,
            "flight_service": flight_service,
            "booking_lifecycle": booking_lifecycle,
            "webhook_reconciler": webhook_reconciler,
        }
