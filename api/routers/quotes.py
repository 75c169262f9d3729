"""
Quotes API Endpoints.

Endpoints for previewing purchases at the current price.
"""

import logging
import random
from decimal import ROUND_HALF_UP, Decimal

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import ServiceContainer, get_container
from api.models import CalculatePurchaseRequest, CalculatePurchaseResponse, RandomAmountResponse
from domain.errors import InvalidInput

logger = logging.getLogger(__name__)

router = APIRouter()

PRICE_PRECISION = Decimal("0.0001")
DELTA_PRECISION = Decimal("0.000001")


@router.post(
    "/calculate-purchase",
    response_model=CalculatePurchaseResponse,
    summary="Calculate Purchase",
    description="Preview how many tokens an amount buys at the current price. Does not change the price."
)
def calculate_purchase(
    request: CalculatePurchaseRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Preview a purchase.

    **How it works:**
    1. Validates the amount (positive, minimum 70 USDC)
    2. Divides the amount by the current unit price
    3. Projects the price after this purchase settles

    **Example request:**
    ```json
    {"amount": "100"}
    ```
    """
    try:
        quote = container.pricing_engine.quote(request.amount)

        return CalculatePurchaseResponse(
            token_amount=quote.token_amount,
            current_price=quote.current_price,
            new_price=quote.new_price.quantize(PRICE_PRECISION, rounding=ROUND_HALF_UP),
            price_increase=quote.price_delta.quantize(DELTA_PRECISION, rounding=ROUND_HALF_UP),
        )

    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to calculate purchase")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to calculate purchase: {str(e)}"
        )


@router.get(
    "/random-amount",
    response_model=RandomAmountResponse,
    summary="Random Purchase Amount",
    description="Suggest a purchase amount sampled uniformly between min and max."
)
def random_amount(
    min_amount: float = Query(10, alias="min", description="Lower bound (inclusive)"),
    max_amount: float = Query(1000, alias="max", description="Upper bound (inclusive)"),
):
    if min_amount > max_amount:
        raise HTTPException(status_code=400, detail="min must not be greater than max")

    try:
        value = Decimal(str(random.uniform(min_amount, max_amount))).quantize(PRICE_PRECISION, rounding=ROUND_HALF_UP)
        return RandomAmountResponse(amount=value)
    except Exception as e:
        logger.exception("Failed to generate random amount")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to generate random amount: {str(e)}"
        )
