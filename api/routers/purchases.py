"""
Purchases API Endpoints.

Endpoints for recording purchases.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import ServiceContainer, get_container
from api.models import PurchaseCreateRequest, PurchaseResponse
from domain.errors import InvalidInput, SupplyExhausted
from domain.purchase import Purchase
from services.purchase_service import PurchaseRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def to_purchase_response(purchase: Purchase) -> PurchaseResponse:
    return PurchaseResponse(
        id=purchase.purchase_id,
        amount=purchase.amount,
        price=purchase.price,
        token_amount=purchase.token_amount,
        email=purchase.buyer_email,
        referral_code=purchase.referral_code,
        transaction_hash=purchase.transaction_hash,
        created_at=purchase.created_at,
    )


@router.post(
    "/purchase",
    response_model=PurchaseResponse,
    summary="Record Purchase",
    description="Settle and record a purchase. The price moves up by one curve step."
)
def create_purchase(
    request: PurchaseCreateRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Record a purchase.

    **Process:**
    1. Validates the payload (minimum 70 USDC, valid email, referral code up to 5 characters)
    2. Settles at the current price (the quoted `price` is only used to log drift)
    3. Records the purchase and a price history sample

    The recorded `price` and `tokenAmount` are the settlement values, which
    can differ from the quoted ones if other purchases settled in between.

    **Example request:**
    ```json
    {
      "amount": "100",
      "price": "17.0000",
      "tokenAmount": "5.8824",
      "email": "buyer@example.com",
      "referralCode": "AB12C"
    }
    ```
    """
    try:
        purchase = container.purchase_ledger.execute_purchase(
            PurchaseRequest(
                amount=request.amount,
                buyer_email=request.email,
                referral_code=request.referral_code,
                transaction_hash=request.transaction_hash,
                quoted_price=request.price,
            )
        )
        if purchase.token_amount != request.token_amount:
            logger.info(
                "Quoted token amount differs from settlement",
                extra={
                    "quoted_token_amount": str(request.token_amount),
                    "settled_token_amount": str(purchase.token_amount),
                },
            )
        return to_purchase_response(purchase)

    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SupplyExhausted as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.exception("Failed to record purchase")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to record purchase: {str(e)}"
        )
