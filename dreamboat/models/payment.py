"""
Payment Credit Model
Single-use authorization to run one generation job.
"""

from sqlalchemy import Column, String, DateTime, Integer, Boolean

from dreamboat.core.database import Base, utcnow


class PaymentCredit(Base):
    """
    A confirmed payment that can be redeemed exactly once.

    Credits are created by the payment-confirmation event (store receipt or
    checkout webhook) and only ever flip redeemed False -> True.
    """

    __tablename__ = "payment_credits"

    id = Column(String, primary_key=True)  # pay_xxxx format
    owner_id = Column(String, nullable=False, index=True)

    # External reference (store transaction / checkout session)
    transaction_id = Column(String, nullable=False, unique=True)

    amount = Column(Integer, nullable=False)  # Minor units (cents)
    currency = Column(String, nullable=False, default="usd")

    redeemed = Column(Boolean, nullable=False, default=False, index=True)

    # Timestamps
    paid_at = Column(DateTime, nullable=False, default=utcnow)
    redeemed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        state = "redeemed" if self.redeemed else "open"
        return f"<PaymentCredit {self.id} {self.amount} {self.currency} ({state})>"
