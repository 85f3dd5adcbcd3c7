"""
Settlement calculation.

Every expense is split between the two members of a couple by an allocation
ratio. The member who paid is owed the other member's share:

    husband_amount    = round_half_up(amount * husband_ratio)
    wife_amount       = round_half_up(amount * wife_ratio)
    settlement_amount = share of the member who did not pay

The ratio is the expense's own custom ratio when it has one, otherwise the
couple's current ratio (or the configured default when none was stored).
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from config import get_settings
from database import AllocationRatio, Expense, Settlement
from logger import get_logger

logger = get_logger(__name__)

HUSBAND = "husband"
WIFE = "wife"
ROLES = (HUSBAND, WIFE)

PENDING = "pending"
APPROVED = "approved"
COMPLETED = "completed"

# allowed status moves: current -> next
TRANSITIONS = {PENDING: APPROVED, APPROVED: COMPLETED}

RATIO_TOLERANCE = 0.001


class InvalidStatusTransition(Exception):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move settlement from {current} to {target}")


@dataclass(frozen=True)
class Split:
    husband_amount: int
    wife_amount: int
    payer: str
    receiver: str
    settlement_amount: int


def other_role(role: str) -> str:
    return WIFE if role == HUSBAND else HUSBAND


def round_half_up(value) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def ratios_sum_to_one(husband_ratio: float, wife_ratio: float) -> bool:
    return abs(husband_ratio + wife_ratio - 1.0) <= RATIO_TOLERANCE


def split_amount(
    amount: int, husband_ratio: float, wife_ratio: float, payer_role: str
) -> Split:
    """Split ``amount`` by the ratio and work out who owes whom."""
    if payer_role not in ROLES:
        raise ValueError(f"Unknown payer role: {payer_role}")

    husband_amount = round_half_up(Decimal(str(amount)) * Decimal(str(husband_ratio)))
    wife_amount = round_half_up(Decimal(str(amount)) * Decimal(str(wife_ratio)))

    receiver = other_role(payer_role)
    settlement_amount = wife_amount if payer_role == HUSBAND else husband_amount

    return Split(
        husband_amount=husband_amount,
        wife_amount=wife_amount,
        payer=payer_role,
        receiver=receiver,
        settlement_amount=settlement_amount,
    )


def current_ratio(db: Session, couple_id: str) -> Optional[AllocationRatio]:
    return (
        db.query(AllocationRatio)
        .filter(AllocationRatio.couple_id == couple_id)
        .order_by(AllocationRatio.created_at.desc())
        .first()
    )


def couple_ratio(db: Session, couple_id: str) -> Tuple[float, float]:
    ratio = current_ratio(db, couple_id)
    if ratio is None:
        settings = get_settings()
        return settings.default_husband_ratio, settings.default_wife_ratio
    return ratio.husband_ratio, ratio.wife_ratio


def expense_ratio(db: Session, expense: Expense) -> Tuple[float, float]:
    if (
        expense.uses_custom_ratio
        and expense.custom_husband_ratio is not None
        and expense.custom_wife_ratio is not None
    ):
        return expense.custom_husband_ratio, expense.custom_wife_ratio
    return couple_ratio(db, expense.couple_id)


def calculate_settlement(db: Session, expense: Expense) -> Settlement:
    """
    Create or refresh the settlement of ``expense``.

    An existing settlement is updated in place. If its figures change it goes
    back to pending. The caller commits.
    """
    husband_ratio, wife_ratio = expense_ratio(db, expense)
    split = split_amount(expense.amount, husband_ratio, wife_ratio, expense.payer.role)

    settlement = expense.settlement
    if settlement is None:
        settlement = Settlement(
            expense=expense,
            husband_amount=split.husband_amount,
            wife_amount=split.wife_amount,
            payer=split.payer,
            receiver=split.receiver,
            settlement_amount=split.settlement_amount,
            status=PENDING,
        )
        db.add(settlement)
        logger.info(
            "settlement_created",
            expense_id=expense.id,
            payer=split.payer,
            settlement_amount=split.settlement_amount,
        )
        return settlement

    changed = (
        settlement.husband_amount != split.husband_amount
        or settlement.wife_amount != split.wife_amount
        or settlement.payer != split.payer
        or settlement.receiver != split.receiver
        or settlement.settlement_amount != split.settlement_amount
    )
    if changed:
        settlement.husband_amount = split.husband_amount
        settlement.wife_amount = split.wife_amount
        settlement.payer = split.payer
        settlement.receiver = split.receiver
        settlement.settlement_amount = split.settlement_amount
        settlement.status = PENDING
        logger.info(
            "settlement_recalculated",
            expense_id=expense.id,
            payer=split.payer,
            settlement_amount=split.settlement_amount,
        )
    return settlement


def recalculate_couple_settlements(db: Session, couple_id: str) -> int:
    """Refresh every settlement of a couple that follows the couple ratio."""
    expenses = (
        db.query(Expense)
        .filter(Expense.couple_id == couple_id, Expense.uses_custom_ratio.is_(False))
        .all()
    )
    refreshed = 0
    for expense in expenses:
        if expense.settlement is not None and expense.settlement.status == COMPLETED:
            continue
        calculate_settlement(db, expense)
        refreshed += 1
    logger.info(
        "settlements_recalculated",
        couple_id=couple_id,
        refreshed=refreshed,
        skipped=len(expenses) - refreshed,
    )
    return refreshed


def advance_status(settlement: Settlement, target: str) -> Settlement:
    if TRANSITIONS.get(settlement.status) != target:
        raise InvalidStatusTransition(settlement.status, target)
    settlement.status = target
    return settlement
