"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    Cadence,
    InvestmentStatus,
    KycStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    ReturnStatus,

    # Entities
    Investment,
    InvestmentPlan,
    Payment,
    ReturnRecord,
    RoiRecord,
    RoiSnapshot,
    UserProfile,

    # Payout destinations
    BankPayout,
    CardPayout,
    CashPayout,
    CryptoPayout,
    PayoutDestination,

    # Results
    ConfirmationResult,
    SettlementResult,
    TickSummary,
)

__all__ = [
    # Enums
    "Cadence",
    "InvestmentStatus",
    "KycStatus",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "ReturnStatus",

    # Entities
    "Investment",
    "InvestmentPlan",
    "Payment",
    "ReturnRecord",
    "RoiRecord",
    "RoiSnapshot",
    "UserProfile",

    # Payout destinations
    "BankPayout",
    "CardPayout",
    "CashPayout",
    "CryptoPayout",
    "PayoutDestination",

    # Results
    "ConfirmationResult",
    "SettlementResult",
    "TickSummary",
]
