"""
Deposits API Endpoints.

Endpoints for the deposit address, one-shot deposit validation and deposit
sessions (open, read, check, close).
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response

from api.dependencies import ServiceContainer, get_container
from api.models import (
    DepositAddressResponse,
    DepositSessionCreateRequest,
    DepositSessionResponse,
    ValidateDepositRequest,
    ValidateDepositResponse,
)
from domain.deposit import Checking, Confirmed, DepositSession, DepositState
from domain.errors import InvalidInput
from services.qr_service import render_qr_data_url

logger = logging.getLogger(__name__)

router = APIRouter()


def to_validation_response(state: DepositState) -> ValidateDepositResponse:
    if isinstance(state, Confirmed):
        confirmation = state.confirmation
        return ValidateDepositResponse(
            is_valid=True,
            message=state.message,
            wallet_phrase=list(confirmation.wallet_phrase),
            actual_amount=confirmation.actual_amount,
            user_referral_code=confirmation.user_referral_code,
            referral_message=confirmation.referral_message,
        )
    return ValidateDepositResponse(is_valid=False, message=state.message)


def to_session_response(session: DepositSession, container: ServiceContainer) -> DepositSessionResponse:
    response = DepositSessionResponse(
        session_id=session.session_id,
        status=session.status.value,
        message=session.message,
        quoted_amount=session.quoted_amount,
        fee_amount=session.fee_amount,
        total_due=session.total_due,
        token_amount=session.token_amount,
        deposit_address=session.deposit_address,
        deadline=session.deadline,
        seconds_remaining=session.seconds_remaining(container.session_manager.now()),
        attempt_count=session.attempt_count,
    )

    state = session.state
    if isinstance(state, Checking):
        response.observed_amount = state.observed_amount
    elif isinstance(state, Confirmed):
        confirmation = state.confirmation
        response.wallet_phrase = list(confirmation.wallet_phrase)
        response.actual_amount = confirmation.actual_amount
        response.user_referral_code = confirmation.user_referral_code
        response.referral_message = confirmation.referral_message
    return response


@router.get(
    "/deposit-address",
    response_model=DepositAddressResponse,
    summary="Deposit Address",
    description="Custodial address buyers deposit USDC to, with a QR code image."
)
def get_deposit_address(container: ServiceContainer = Depends(get_container)):
    try:
        address = container.settings.deposit_address
        return DepositAddressResponse(
            deposit_address=address,
            qr_image=render_qr_data_url(address),
        )
    except Exception as e:
        logger.exception("Failed to generate QR code")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to generate QR code: {str(e)}"
        )


@router.post(
    "/validate-deposit",
    response_model=ValidateDepositResponse,
    response_model_exclude_none=True,
    summary="Validate Deposit",
    description="Check the deposit address balance once against the expected amount."
)
def validate_deposit(
    request: ValidateDepositRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Validate a deposit.

    **How it works:**
    1. Reads the USDC balance at `address` from the Solana network
    2. If it matches `expectedAmount` within 0.001 USDC:
       - Settles and records the purchase
       - Creates or updates the buyer account (issues a referral code)
       - Returns a 12 word wallet phrase
       - Announces the referral reward, if `referralCode` belongs to an account
    3. Otherwise returns `isValid: false` with the reason

    A network failure is not an error: the response asks the buyer to try again.

    **Success response:**
    ```json
    {
      "isValid": true,
      "message": "Deposit confirmed successfully! ...",
      "walletPhrase": ["abandon", "..."],
      "actualAmount": "100.0027",
      "userReferralCode": "Q7Z2K",
      "referralMessage": "Referral reward (10% dividend) will be credited to friend@example.com"
    }
    ```
    """
    try:
        state = container.deposit_service.validate_deposit(
            address=request.address,
            expected_amount=request.expected_amount,
            buyer_email=request.email,
            referral_code=request.referral_code,
        )
        return to_validation_response(state)

    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to validate deposit")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to validate deposit: {str(e)}"
        )


@router.post(
    "/deposit-sessions",
    response_model=DepositSessionResponse,
    response_model_exclude_none=True,
    status_code=201,
    summary="Open Deposit Session",
    description="Quote a purchase and wait up to five minutes for its deposit."
)
async def open_deposit_session(
    request: DepositSessionCreateRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Open a deposit session.

    The amount due is the purchase amount plus a fixed 0.0027 USDC fee. When
    background polling is enabled the balance is checked every 10 seconds
    until the deposit is confirmed or the five minute deadline passes.
    """
    try:
        session = container.session_manager.open_session(
            amount=request.amount,
            buyer_email=request.email,
            referral_code=request.referral_code,
        )
        if container.settings.deposit_auto_poll:
            container.session_manager.start_polling(session.session_id)
        return to_session_response(session, container)

    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to open deposit session")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to open deposit session: {str(e)}"
        )


@router.get(
    "/deposit-sessions/{session_id}",
    response_model=DepositSessionResponse,
    response_model_exclude_none=True,
    summary="Get Deposit Session"
)
def get_deposit_session(session_id: UUID, container: ServiceContainer = Depends(get_container)):
    session = container.session_manager.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Deposit session not found: {session_id}")
    return to_session_response(session, container)


@router.post(
    "/deposit-sessions/{session_id}/check",
    response_model=DepositSessionResponse,
    response_model_exclude_none=True,
    summary="Check Deposit Now",
    description="Check the balance immediately instead of waiting for the next poll."
)
def check_deposit_session(session_id: UUID, container: ServiceContainer = Depends(get_container)):
    try:
        session = container.session_manager.check(session_id)
    except Exception as e:
        logger.exception("Failed to check deposit", extra={"session_id": str(session_id)})
        raise HTTPException(
            status_code=500,
            detail=f"Failed to check deposit: {str(e)}"
        )

    if session is None:
        raise HTTPException(status_code=404, detail=f"Deposit session not found: {session_id}")
    return to_session_response(session, container)


@router.delete(
    "/deposit-sessions/{session_id}",
    status_code=204,
    summary="Close Deposit Session",
    description="Discard the session. A confirmed purchase stays settled."
)
def close_deposit_session(session_id: UUID, container: ServiceContainer = Depends(get_container)):
    if not container.session_manager.close(session_id):
        raise HTTPException(status_code=404, detail=f"Deposit session not found: {session_id}")
    return Response(status_code=204)
