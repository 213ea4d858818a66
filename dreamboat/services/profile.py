"""
Profile Selection
Curated default set of up to six generated results per owner.
"""

import logging
import random
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from dreamboat.models.result import GeneratedResult

logger = logging.getLogger(__name__)

DEFAULT_SLOTS = 6


class SelectionError(ValueError):
    """Invalid manual profile selection."""


class ProfileSelector:
    """
    Assigns profile_order slots 1..N to an owner's results.

    For a given owner each slot is held by at most one result. Every write
    clears before it sets, inside a single transaction.
    """

    def __init__(self, db: Session, rng: Optional[random.Random] = None, slots: int = DEFAULT_SLOTS):
        self.db = db
        self.rng = rng or random.Random()
        self.slots = slots

    def _owner_results(self, owner_id: str):
        return self.db.query(GeneratedResult).filter(GeneratedResult.owner_id == owner_id)

    def has_selection(self, owner_id: str) -> bool:
        return (
            self._owner_results(owner_id)
            .filter(GeneratedResult.profile_order.isnot(None))
            .first()
            is not None
        )

    def selected(self, owner_id: str) -> List[GeneratedResult]:
        """The owner's selected results, ordered by slot."""
        return (
            self._owner_results(owner_id)
            .filter(GeneratedResult.profile_order.isnot(None))
            .order_by(GeneratedResult.profile_order)
            .all()
        )

    def _clear(self, owner_id: str):
        (
            self._owner_results(owner_id)
            .filter(GeneratedResult.profile_order.isnot(None))
            .update({GeneratedResult.profile_order: None}, synchronize_session="fetch")
        )

    def auto_select(self, owner_id: str) -> List[GeneratedResult]:
        """
        Pick a uniformly random subset of the owner's results as the default
        profile set.

        The caller checks has_selection() first; this method does not.

        Returns:
            The selected results, in slot order
        """
        results = self._owner_results(owner_id).order_by(GeneratedResult.created_at).all()
        if not results:
            logger.info(f"[Profile] No results to auto-select for {owner_id}")
            return []

        self.rng.shuffle(results)
        chosen = results[:min(self.slots, len(results))]

        try:
            self._clear(owner_id)
            for order, result in enumerate(chosen, start=1):
                result.profile_order = order
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"[Profile] Auto-selected {len(chosen)} of {len(results)} result(s) for {owner_id}")
        return chosen

    def set_selections(self, owner_id: str, selections: Iterable[Tuple[str, int]]) -> List[GeneratedResult]:
        """
        Replace the owner's whole selection.

        Args:
            owner_id: Result owner
            selections: (result_id, order) pairs

        Raises:
            SelectionError: too many entries, bad or duplicate orders, or a
                result the owner does not have. Nothing changes in that case.
        """
        selections = list(selections)
        if len(selections) > self.slots:
            raise SelectionError(f"At most {self.slots} results can be selected")

        orders = [order for _, order in selections]
        if len(set(orders)) != len(orders):
            raise SelectionError("Profile orders must be unique")
        if any(order < 1 or order > self.slots for order in orders):
            raise SelectionError(f"Profile orders must be between 1 and {self.slots}")

        result_ids = [result_id for result_id, _ in selections]
        if len(set(result_ids)) != len(result_ids):
            raise SelectionError("A result can only hold one slot")

        found = {
            r.id: r
            for r in self._owner_results(owner_id).filter(GeneratedResult.id.in_(result_ids)).all()
        } if result_ids else {}
        missing = [rid for rid in result_ids if rid not in found]
        if missing:
            raise SelectionError(f"Results not found: {', '.join(missing)}")

        try:
            self._clear(owner_id)
            for result_id, order in selections:
                found[result_id].profile_order = order
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"[Profile] Set {len(selections)} selection(s) for {owner_id}")
        return self.selected(owner_id)

    def toggle(self, owner_id: str, result_id: str, order: Optional[int]) -> GeneratedResult:
        """
        Put one result into slot `order`, or take it out when `order` is None.

        The slot's previous holder is cleared first.
        """
        if order is not None and (order < 1 or order > self.slots):
            raise SelectionError(f"Profile order must be between 1 and {self.slots}")

        result = self._owner_results(owner_id).filter(GeneratedResult.id == result_id).first()
        if result is None:
            raise SelectionError(f"Result {result_id} not found")

        try:
            if order is not None:
                (
                    self._owner_results(owner_id)
                    .filter(GeneratedResult.profile_order == order, GeneratedResult.id != result_id)
                    .update({GeneratedResult.profile_order: None}, synchronize_session="fetch")
                )
            result.profile_order = order
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(result)
        return result


__all__ = ["SelectionError", "ProfileSelector", "DEFAULT_SLOTS"]
