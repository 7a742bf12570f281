import logging
from typing import Optional

from fareflow.services.redis_storage_manager import RedisStorageManager
from fareflow.utils.request_validators import SearchRequest, PricingRequest
from .base_provider import FlightProvider, ProviderUnavailableError
from .error_codes import (
    ProviderEndpoint, ProviderError, ProviderErrorKind,
    is_success, error_from_response, unknown_outcome_error,
)
from .offer_normalizer import normalize_search
from .pricing_normalizer import normalize_precise_pricing, NO_SEGMENTS_ERROR
from .response_models import (
    PricedOffer, SearchResult, PricingResult,
    create_error_search_result, create_error_pricing_result,
)

logger = logging.getLogger(__name__)

PRICING_CACHE_PREFIX = "pricing"


class FlightService:
    """Search and precise-pricing orchestration over the PKFare gateway"""

    def __init__(self, provider: FlightProvider, cache: RedisStorageManager,
                 pricing_cache_ttl_seconds: int = 1800):
        self.provider = provider
        self.cache = cache
        self.pricing_cache_ttl_seconds = pricing_cache_ttl_seconds

    def search(self, request: SearchRequest) -> SearchResult:
        logger.info("Flight search initiated", extra={
            'origin': request.origin,
            'destination': request.destination,
            'departure_date': request.departure_date.isoformat(),
            'return_date': request.return_date.isoformat() if request.return_date else None,
            'passengers': {'adults': request.adults, 'children': request.children, 'infants': request.infants},
            'cabin_class': request.cabin_class
        })

        try:
            response = self.provider.search_flights(
                origin=request.origin,
                destination=request.destination,
                departure_date=request.departure_date.isoformat(),
                return_date=request.return_date.isoformat() if request.return_date else None,
                adults=request.adults,
                children=request.children,
                infants=request.infants,
                cabin_class=request.cabin_class,
                nonstop=request.nonstop,
                airline=request.airline,
                solutions=request.solutions,
            )
        except ProviderUnavailableError as e:
            return create_error_search_result(unknown_outcome_error(ProviderEndpoint.SEARCH, str(e)))

        if not is_success(response):
            error = error_from_response(ProviderEndpoint.SEARCH, response)
            logger.warning(f"Flight search failed: {error.code} - {error.message}")
            return create_error_search_result(error)

        offers = normalize_search(response.get("data"))
        logger.info(f"Flight search returned {len(offers)} offers", extra={
            'origin': request.origin,
            'destination': request.destination,
            'offers': len(offers)
        })
        return SearchResult(success=True, offers=offers)

    def precise_pricing(self, request: PricingRequest) -> PricingResult:
        logger.info("Precise pricing requested", extra={'solution_id': request.solution_id})

        try:
            response = self.provider.precise_pricing(
                solution_id=request.solution_id,
                solution_key=request.solution_key,
                journeys=request.journeys,
                adults=request.adults,
                children=request.children,
                infants=request.infants,
                cabin=request.cabin,
                tag=request.tag,
            )
        except ProviderUnavailableError as e:
            return create_error_pricing_result(unknown_outcome_error(ProviderEndpoint.PRECISE_PRICING, str(e)))

        if not is_success(response):
            error = error_from_response(ProviderEndpoint.PRECISE_PRICING, response)
            logger.warning(f"Precise pricing failed: {error.code} - {error.message}")
            return create_error_pricing_result(error)

        data = response.get("data")
        priced = normalize_precise_pricing(data)
        if priced is None:
            return create_error_pricing_result(ProviderError(
                code=None,
                kind=ProviderErrorKind.INVALID_RESPONSE,
                message=NO_SEGMENTS_ERROR,
                endpoint=ProviderEndpoint.PRECISE_PRICING,
            ))

        # Cache under the requested id as well, in case the provider re-keys the solution
        for solution_id in {request.solution_id, priced.offer.solution_id}:
            if solution_id:
                self.cache.set_data(self._pricing_key(solution_id), data, ttl=self.pricing_cache_ttl_seconds)

        return PricingResult(success=True, priced_offer=priced)

    def get_priced_offer(self, solution_id: str) -> Optional[PricedOffer]:
        """The most recent precise-pricing result for a solution, if still cached"""
        data = self.cache.get_data(self._pricing_key(solution_id))
        if data is None:
            return None
        return normalize_precise_pricing(data)

    @staticmethod
    def _pricing_key(solution_id: str) -> str:
        return f"{PRICING_CACHE_PREFIX}:{solution_id}"
