"""
Sale API Endpoints.

Endpoints for sale statistics and price history.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import ServiceContainer, get_container
from api.models import PriceSampleResponse, SaleStatsResponse

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_HISTORY_LIMIT = 24
MAX_HISTORY_LIMIT = 500


def resolve_history_limit(raw: Optional[str]) -> int:
    """Missing, non-numeric or non-positive limits fall back to the default; large ones are capped."""
    try:
        limit = int(raw) if raw is not None else 0
    except ValueError:
        limit = 0
    if limit < 1:
        return DEFAULT_HISTORY_LIMIT
    return min(limit, MAX_HISTORY_LIMIT)


@router.get(
    "/stats",
    response_model=SaleStatsResponse,
    summary="Sale Statistics",
    description="Supply, current price and dividend statistics of the sale."
)
def get_stats(container: ServiceContainer = Depends(get_container)):
    try:
        state = container.pricing_engine.snapshot()

        return SaleStatsResponse(
            total_supply=state.total_supply,
            sold_supply=state.sold_supply,
            remaining_supply=state.remaining_supply,
            current_price=state.current_price,
            total_dividends_distributed=state.total_dividends_distributed,
            active_dividend_holders=state.active_holders,
            updated_at=state.updated_at,
        )

    except Exception as e:
        logger.exception("Failed to fetch sale statistics")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch sale statistics: {str(e)}"
        )


@router.get(
    "/price-history",
    response_model=List[PriceSampleResponse],
    summary="Price History",
    description="Most recent price samples, newest first."
)
def get_price_history(
    limit: Optional[str] = Query(None, description="Maximum number of samples (default 24, at most 500)"),
    container: ServiceContainer = Depends(get_container),
):
    try:
        samples = container.pricing_engine.sample_history(resolve_history_limit(limit))

        return [
            PriceSampleResponse(
                id=sample.sample_id,
                price=sample.price,
                change_percent=sample.change_percent,
                timestamp=sample.timestamp,
            )
            for sample in samples
        ]

    except Exception as e:
        logger.exception("Failed to fetch price history")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch price history: {str(e)}"
        )
