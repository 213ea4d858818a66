"""
Payment Gate
Finds and atomically redeems exactly one payment credit per generation run.
"""

import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from dreamboat.core.database import new_id, utcnow
from dreamboat.models.payment import PaymentCredit

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Base class for payment gating errors."""


class NoCreditError(PaymentError):
    """The owner has no unredeemed credit."""


class AlreadyRedeemedError(PaymentError):
    """The requested credit has already been redeemed."""


class InvalidReferenceError(PaymentError):
    """The supplied payment reference does not match any of the owner's credits."""


class PaymentLedger:
    """Read/redeem access to the owner's payment credits."""

    def __init__(self, db: Session):
        self.db = db

    def latest_unredeemed(self, owner_id: str) -> Optional[PaymentCredit]:
        """Most recently paid credit that has not been redeemed."""
        return (
            self.db.query(PaymentCredit)
            .filter(PaymentCredit.owner_id == owner_id, PaymentCredit.redeemed.is_(False))
            .order_by(PaymentCredit.paid_at.desc())
            .first()
        )

    def find_by_reference(self, owner_id: str, reference: str) -> Optional[PaymentCredit]:
        """Credit matching either its id or its external transaction id."""
        return (
            self.db.query(PaymentCredit)
            .filter(
                PaymentCredit.owner_id == owner_id,
                or_(PaymentCredit.id == reference, PaymentCredit.transaction_id == reference),
            )
            .first()
        )

    def redeem(self, credit_id: str) -> bool:
        """
        Flip redeemed False -> True with one conditional update.

        Returns:
            True if this call redeemed the credit, False if it was already redeemed
        """
        updated = (
            self.db.query(PaymentCredit)
            .filter(PaymentCredit.id == credit_id, PaymentCredit.redeemed.is_(False))
            .update(
                {PaymentCredit.redeemed: True, PaymentCredit.redeemed_at: utcnow()},
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            return False
        self.db.commit()
        return True

    def get(self, credit_id: str) -> Optional[PaymentCredit]:
        return self.db.query(PaymentCredit).filter(PaymentCredit.id == credit_id).first()

    def record_payment(
        self,
        owner_id: str,
        transaction_id: str,
        amount: int,
        currency: str = "usd",
    ) -> PaymentCredit:
        """
        Record a confirmed payment as a new credit.

        Idempotent on transaction_id: confirming the same purchase twice
        returns the existing credit.
        """
        existing = (
            self.db.query(PaymentCredit)
            .filter(PaymentCredit.transaction_id == transaction_id)
            .first()
        )
        if existing:
            if existing.owner_id != owner_id:
                raise InvalidReferenceError(f"Transaction {transaction_id} belongs to another owner")
            logger.info(f"[Payments] Transaction {transaction_id} already recorded as {existing.id}")
            return existing

        credit = PaymentCredit(
            id=new_id("pay"),
            owner_id=owner_id,
            transaction_id=transaction_id,
            amount=amount,
            currency=currency.lower(),
            redeemed=False,
            paid_at=utcnow(),
        )
        self.db.add(credit)
        self.db.commit()
        self.db.refresh(credit)

        logger.info(f"[Payments] Recorded credit {credit.id} for {owner_id} ({amount} {credit.currency})")
        return credit

    def history(self, owner_id: str) -> List[PaymentCredit]:
        """All credits for an owner, newest first."""
        return (
            self.db.query(PaymentCredit)
            .filter(PaymentCredit.owner_id == owner_id)
            .order_by(PaymentCredit.paid_at.desc())
            .all()
        )


class PaymentGate:
    """
    Reserves one credit per generation request.

    The reservation is committed before any generation work starts, so a
    crash mid-run never leaves the payment state ambiguous.
    """

    def __init__(self, ledger: PaymentLedger):
        self.ledger = ledger

    def check_access(self, owner_id: str) -> Optional[PaymentCredit]:
        """The credit a reserve() call would pick, without redeeming it."""
        return self.ledger.latest_unredeemed(owner_id)

    def reserve(self, owner_id: str, reference: Optional[str] = None) -> PaymentCredit:
        """
        Redeem a credit for `owner_id`.

        Args:
            owner_id: Credit owner
            reference: Optional credit id or transaction id to redeem specifically

        Returns:
            The redeemed PaymentCredit

        Raises:
            NoCreditError: the owner has no unredeemed credit
            InvalidReferenceError: `reference` matches none of the owner's credits
            AlreadyRedeemedError: the referenced credit was redeemed already,
                or a concurrent caller redeemed it first
        """
        credit = self.ledger.latest_unredeemed(owner_id)
        if credit is None:
            raise NoCreditError(f"No unredeemed payment found for {owner_id}")

        if reference and reference not in (credit.id, credit.transaction_id):
            specific = self.ledger.find_by_reference(owner_id, reference)
            if specific is None:
                raise InvalidReferenceError(f"Payment {reference} not found for {owner_id}")
            if specific.redeemed:
                raise AlreadyRedeemedError(f"Payment {reference} has already been redeemed")
            credit = specific

        if not self.ledger.redeem(credit.id):
            raise AlreadyRedeemedError(f"Payment {credit.id} has already been redeemed")

        redeemed = self.ledger.get(credit.id)
        self.ledger.db.refresh(redeemed)
        logger.info(f"[Payments] Credit {redeemed.id} redeemed by {owner_id}")
        return redeemed


__all__ = [
    "PaymentError",
    "NoCreditError",
    "AlreadyRedeemedError",
    "InvalidReferenceError",
    "PaymentLedger",
    "PaymentGate",
]
