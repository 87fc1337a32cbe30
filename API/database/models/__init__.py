"""
Database models package.
Export all models for easy importing.
"""

from .student import (
    PaymentMethod,
    Student,
    SessionToken,
)

from .charges import (
    Subscription,
    MonthlyCharge,
    Degree,
)

from .ledger import (
    Invoice,
    Payment,
)


__all__ = [
    # Student
    'PaymentMethod',
    'Student',
    'SessionToken',

    # Charges
    'Subscription',
    'MonthlyCharge',
    'Degree',

    # Ledger
    'Invoice',
    'Payment',
]
