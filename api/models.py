"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
JSON keys are camelCase; decimals serialize as strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from domain.account import EMAIL_PATTERN, REFERRAL_CODE_LENGTH


class ApiModel(BaseModel):
    """Base model: camelCase aliases, snake_case accepted on input."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================================
# Sale Models
# ============================================================================

class SaleStatsResponse(ApiModel):
    """Sale-wide statistics."""
    total_supply: int
    sold_supply: int
    remaining_supply: int
    current_price: Decimal
    total_dividends_distributed: Decimal
    active_dividend_holders: int
    updated_at: datetime

    class Config:
        json_schema_extra = {
            "example": {
                "totalSupply": 600000000000,
                "soldSupply": 271838183177,
                "remainingSupply": 328161816823,
                "currentPrice": "17.0000",
                "totalDividendsDistributed": "2847293.47",
                "activeDividendHolders": 15847,
                "updatedAt": "2025-01-01T12:00:00Z"
            }
        }


class PriceSampleResponse(ApiModel):
    """Single point of the price history."""
    id: UUID
    price: Decimal
    change_percent: Decimal
    timestamp: datetime


# ============================================================================
# Quote Models
# ============================================================================

class CalculatePurchaseRequest(ApiModel):
    """Request to preview a purchase."""
    amount: Decimal = Field(..., description="Purchase amount in USDC (minimum 70)")

    class Config:
        json_schema_extra = {"example": {"amount": "100"}}


class CalculatePurchaseResponse(ApiModel):
    """Purchase preview at the current price."""
    token_amount: Decimal
    current_price: Decimal
    new_price: Decimal
    price_increase: Decimal

    class Config:
        json_schema_extra = {
            "example": {
                "tokenAmount": "5.8824",
                "currentPrice": "17.0000",
                "newPrice": "17.0005",
                "priceIncrease": "0.000459"
            }
        }


class RandomAmountResponse(ApiModel):
    """Randomly suggested purchase amount."""
    amount: Decimal


# ============================================================================
# Purchase Models
# ============================================================================

class PurchaseCreateRequest(ApiModel):
    """Request to record a purchase."""
    amount: Decimal = Field(..., ge=70, description="Purchase amount in USDC (minimum 70)")
    price: Decimal = Field(..., gt=0, description="Unit price the buyer was quoted")
    token_amount: Decimal = Field(..., ge=0, description="Token amount the buyer was quoted")
    email: str = Field(..., pattern=EMAIL_PATTERN, description="Buyer email")
    referral_code: Optional[str] = Field(None, max_length=REFERRAL_CODE_LENGTH)
    transaction_hash: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "amount": "100",
                "price": "17.0000",
                "tokenAmount": "5.8824",
                "email": "buyer@example.com",
                "referralCode": "AB12C"
            }
        }


class PurchaseResponse(ApiModel):
    """Recorded purchase."""
    id: UUID
    amount: Decimal
    price: Decimal
    token_amount: Decimal
    email: str
    referral_code: Optional[str] = None
    transaction_hash: Optional[str] = None
    created_at: datetime


# ============================================================================
# Deposit Models
# ============================================================================

class DepositAddressResponse(ApiModel):
    """Custodial deposit address and its QR code."""
    deposit_address: str
    qr_image: str


class ValidateDepositRequest(ApiModel):
    """Request to check a deposit once."""
    address: str = Field(..., min_length=1)
    expected_amount: Decimal = Field(..., gt=0, description="Purchase amount plus the fixed fee")
    email: str = Field(..., pattern=EMAIL_PATTERN)
    referral_code: Optional[str] = Field(None, max_length=REFERRAL_CODE_LENGTH)

    class Config:
        json_schema_extra = {
            "example": {
                "address": "FcRRT7yLx3dZV6kD2N5cWU9UG6TxPm99azsxNUUzQNmx",
                "expectedAmount": "100.0027",
                "email": "buyer@example.com",
                "referralCode": "AB12C"
            }
        }


class ValidateDepositResponse(ApiModel):
    """Outcome of a deposit check. Success-only fields are omitted otherwise."""
    is_valid: bool
    message: str
    wallet_phrase: Optional[List[str]] = None
    actual_amount: Optional[Decimal] = None
    user_referral_code: Optional[str] = None
    referral_message: Optional[str] = None


class DepositSessionCreateRequest(ApiModel):
    """Request to open a deposit session."""
    amount: Decimal = Field(..., description="Purchase amount in USDC (minimum 70)")
    email: str = Field(..., pattern=EMAIL_PATTERN)
    referral_code: Optional[str] = Field(None, max_length=REFERRAL_CODE_LENGTH)


class DepositSessionResponse(ApiModel):
    """Current view of a deposit session."""
    session_id: UUID
    status: str  # waiting, checking, confirmed, timeout
    message: str
    quoted_amount: Decimal
    fee_amount: Decimal
    total_due: Decimal
    token_amount: Decimal
    deposit_address: str
    deadline: datetime
    seconds_remaining: int
    attempt_count: int
    observed_amount: Optional[Decimal] = None
    wallet_phrase: Optional[List[str]] = None
    actual_amount: Optional[Decimal] = None
    user_referral_code: Optional[str] = None
    referral_message: Optional[str] = None


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid request",
                "detail": "amount: Input should be greater than or equal to 70",
                "status_code": 400
            }
        }
