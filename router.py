from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import case, func
from database import get_db, AllocationRatio, Expense, Settlement, User, utcnow
from schemas import (
    AllocationRatioResponse,
    AllocationRatioUpdate,
    ApiResponse,
    BulkDeleteRequest,
    BulkDeleteResult,
    ExpenseAllocationRatioUpdate,
    ExpenseCreate,
    ExpenseResponse,
    ExpenseStats,
    ExpenseUpdate,
    MonthlyExpenseStats,
    MonthlyExpenseSummary,
    SettlementResponse,
    YearToDate,
)
from auth import get_current_member
from config import get_settings
from settlement import (
    APPROVED,
    COMPLETED,
    HUSBAND,
    WIFE,
    InvalidStatusTransition,
    advance_status,
    calculate_settlement,
    current_ratio,
    ratios_sum_to_one,
    recalculate_couple_settlements,
    round_half_up,
)
from logger import get_logger
from datetime import date
from dateutil.relativedelta import relativedelta
from typing import List, Optional


router = APIRouter()
logger = get_logger(__name__)

RATIO_SUM_ERROR = "Husband and wife ratios must sum to 1.0"


def _check_ratio_sum(husband_ratio: float, wife_ratio: float):
    if not ratios_sum_to_one(husband_ratio, wife_ratio):
        raise HTTPException(status_code=400, detail=RATIO_SUM_ERROR)


def _get_couple_expense(db: Session, expense_id: str, member: User) -> Expense:
    expense = (
        db.query(Expense)
        .filter(Expense.id == expense_id, Expense.couple_id == member.couple_id)
        .first()
    )
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


def _get_couple_payer(db: Session, payer_id: str, member: User) -> User:
    payer = (
        db.query(User)
        .filter(User.id == payer_id, User.couple_id == member.couple_id)
        .first()
    )
    if not payer:
        raise HTTPException(
            status_code=400, detail="Payer is not a member of this couple"
        )
    return payer


def _settlement_response(settlement: Settlement) -> SettlementResponse:
    expense = settlement.expense
    return SettlementResponse(
        id=settlement.id,
        expense_id=settlement.expense_id,
        husband_amount=settlement.husband_amount,
        wife_amount=settlement.wife_amount,
        payer=settlement.payer,
        receiver=settlement.receiver,
        settlement_amount=settlement.settlement_amount,
        status=settlement.status,
        created_at=settlement.created_at,
        updated_at=settlement.updated_at,
        expense_description=expense.description,
        expense_amount=expense.amount,
        custom_husband_ratio=expense.custom_husband_ratio,
        custom_wife_ratio=expense.custom_wife_ratio,
        uses_custom_ratio=bool(expense.uses_custom_ratio),
    )


def _expense_list(expenses) -> List[ExpenseResponse]:
    return [ExpenseResponse.model_validate(e) for e in expenses]


# Expenses


@router.post(
    "/expenses",
    response_model=ApiResponse[ExpenseResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_expense(
    expense: ExpenseCreate,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    payer = _get_couple_payer(db, expense.payer_id, member)

    custom_husband_ratio = None
    custom_wife_ratio = None
    if expense.uses_custom_ratio:
        if expense.custom_husband_ratio is None or expense.custom_wife_ratio is None:
            raise HTTPException(
                status_code=400,
                detail="Custom ratios are required when usesCustomRatio is set",
            )
        _check_ratio_sum(expense.custom_husband_ratio, expense.custom_wife_ratio)
        custom_husband_ratio = expense.custom_husband_ratio
        custom_wife_ratio = expense.custom_wife_ratio

    today = date.today()
    db_expense = Expense(
        description=expense.description,
        amount=expense.amount,
        payer=payer,
        couple_id=member.couple_id,
        expense_year=expense.expense_year or today.year,
        expense_month=expense.expense_month or today.month,
        custom_husband_ratio=custom_husband_ratio,
        custom_wife_ratio=custom_wife_ratio,
        uses_custom_ratio=expense.uses_custom_ratio,
    )
    db.add(db_expense)
    db.flush()
    calculate_settlement(db, db_expense)
    db.commit()
    db.refresh(db_expense)

    logger.info(
        "expense_created",
        expense_id=db_expense.id,
        couple_id=member.couple_id,
        amount=db_expense.amount,
    )
    return ApiResponse(
        data=ExpenseResponse.model_validate(db_expense),
        message="Expense created successfully",
    )


@router.get("/expenses", response_model=ApiResponse[List[ExpenseResponse]])
async def get_expenses(
    db: Session = Depends(get_db), member: User = Depends(get_current_member)
):
    expenses = (
        db.query(Expense)
        .filter(Expense.couple_id == member.couple_id)
        .order_by(
            Expense.expense_year.desc(),
            Expense.expense_month.desc(),
            Expense.created_at.desc(),
        )
        .all()
    )
    return ApiResponse(data=_expense_list(expenses))


@router.get("/expenses/stats", response_model=ApiResponse[ExpenseStats])
async def get_expense_stats(
    db: Session = Depends(get_db), member: User = Depends(get_current_member)
):
    row = (
        db.query(
            func.count(Expense.id).label("expense_count"),
            func.sum(Expense.amount).label("total"),
            func.avg(Expense.amount).label("average"),
            func.min(Expense.amount).label("minimum"),
            func.max(Expense.amount).label("maximum"),
        )
        .filter(Expense.couple_id == member.couple_id)
        .one()
    )
    if not row.expense_count:
        return ApiResponse(data=ExpenseStats())

    return ApiResponse(
        data=ExpenseStats(
            total_expenses=row.expense_count,
            total_amount=int(row.total),
            average_amount=round_half_up(row.average),
            min_amount=int(row.minimum),
            max_amount=int(row.maximum),
        )
    )


def _monthly_totals(db: Session, couple_id: str):
    """Per-period totals keyed by (year, month); husband/wife are amounts paid."""
    rows = (
        db.query(
            Expense.expense_year,
            Expense.expense_month,
            func.count(Expense.id).label("expense_count"),
            func.sum(Expense.amount).label("total"),
            func.sum(case((User.role == HUSBAND, Expense.amount), else_=0)).label(
                "husband_total"
            ),
            func.sum(case((User.role == WIFE, Expense.amount), else_=0)).label(
                "wife_total"
            ),
        )
        .join(User, Expense.payer_id == User.id)
        .filter(Expense.couple_id == couple_id)
        .group_by(Expense.expense_year, Expense.expense_month)
        .all()
    )
    return {
        (row.expense_year, row.expense_month): MonthlyExpenseSummary(
            year=row.expense_year,
            month=row.expense_month,
            total_amount=int(row.total or 0),
            total_expenses=row.expense_count,
            husband_amount=int(row.husband_total or 0),
            wife_amount=int(row.wife_total or 0),
        )
        for row in rows
    }


def _validate_period(year: int, month: int):
    if not 1900 <= year <= 9999 or not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Invalid year or month")


@router.get("/expenses/monthly/stats", response_model=ApiResponse[MonthlyExpenseStats])
async def get_monthly_expense_stats(
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    today = date.today()
    year = year or today.year
    month = month or today.month
    _validate_period(year, month)

    totals = _monthly_totals(db, member.couple_id)
    previous = date(year, month, 1) - relativedelta(months=1)

    current_summary = totals.get(
        (year, month), MonthlyExpenseSummary(year=year, month=month)
    )
    previous_summary = totals.get(
        (previous.year, previous.month),
        MonthlyExpenseSummary(year=previous.year, month=previous.month),
    )

    year_months = [s for (y, _), s in totals.items() if y == year]
    ytd_total = sum(s.total_amount for s in year_months)
    ytd_count = sum(s.total_expenses for s in year_months)

    return ApiResponse(
        data=MonthlyExpenseStats(
            current_month=current_summary,
            previous_month=previous_summary,
            year_to_date=YearToDate(
                total_amount=ytd_total,
                total_expenses=ytd_count,
                monthly_averages=ytd_total / len(year_months) if year_months else 0.0,
            ),
        )
    )


@router.get(
    "/expenses/monthly/{year}/{month}",
    response_model=ApiResponse[List[ExpenseResponse]],
)
async def get_monthly_expenses(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    _validate_period(year, month)
    expenses = (
        db.query(Expense)
        .filter(
            Expense.couple_id == member.couple_id,
            Expense.expense_year == year,
            Expense.expense_month == month,
        )
        .order_by(Expense.created_at.desc())
        .all()
    )
    return ApiResponse(data=_expense_list(expenses))


@router.get(
    "/expenses/monthly/{year}/{month}/summary",
    response_model=ApiResponse[MonthlyExpenseSummary],
)
async def get_monthly_expense_summary(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    _validate_period(year, month)
    totals = _monthly_totals(db, member.couple_id)
    return ApiResponse(
        data=totals.get((year, month), MonthlyExpenseSummary(year=year, month=month))
    )


@router.get("/expenses/{expense_id}", response_model=ApiResponse[ExpenseResponse])
async def get_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    expense = _get_couple_expense(db, expense_id, member)
    return ApiResponse(data=ExpenseResponse.model_validate(expense))


@router.put("/expenses/{expense_id}", response_model=ApiResponse[ExpenseResponse])
async def update_expense(
    expense_id: str,
    changes: ExpenseUpdate,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    fields = changes.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")

    expense = _get_couple_expense(db, expense_id, member)
    old_amount, old_payer_id = expense.amount, expense.payer_id

    if "payer_id" in fields:
        expense.payer = _get_couple_payer(db, fields.pop("payer_id"), member)
    for field, value in fields.items():
        setattr(expense, field, value)
    expense.updated_at = utcnow()

    if expense.amount != old_amount or expense.payer.id != old_payer_id:
        calculate_settlement(db, expense)

    db.commit()
    db.refresh(expense)
    logger.info("expense_updated", expense_id=expense.id, fields=sorted(fields))
    return ApiResponse(
        data=ExpenseResponse.model_validate(expense),
        message="Expense updated successfully",
    )


@router.put(
    "/expenses/{expense_id}/allocation-ratio",
    response_model=ApiResponse[ExpenseResponse],
)
async def update_expense_allocation_ratio(
    expense_id: str,
    ratio: ExpenseAllocationRatioUpdate,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    expense = _get_couple_expense(db, expense_id, member)

    if ratio.uses_custom_ratio:
        if ratio.custom_husband_ratio is None or ratio.custom_wife_ratio is None:
            raise HTTPException(
                status_code=400,
                detail="Custom ratios are required when usesCustomRatio is set",
            )
        _check_ratio_sum(ratio.custom_husband_ratio, ratio.custom_wife_ratio)
        expense.custom_husband_ratio = ratio.custom_husband_ratio
        expense.custom_wife_ratio = ratio.custom_wife_ratio
    else:
        expense.custom_husband_ratio = None
        expense.custom_wife_ratio = None
    expense.uses_custom_ratio = ratio.uses_custom_ratio
    expense.updated_at = utcnow()

    calculate_settlement(db, expense)
    db.commit()
    db.refresh(expense)

    logger.info(
        "expense_ratio_updated",
        expense_id=expense.id,
        uses_custom_ratio=expense.uses_custom_ratio,
    )
    return ApiResponse(data=ExpenseResponse.model_validate(expense))


@router.delete("/expenses/bulk", response_model=ApiResponse[BulkDeleteResult])
async def bulk_delete_expenses(
    request: BulkDeleteRequest,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    deleted = 0
    if request.ids:
        expenses = (
            db.query(Expense)
            .filter(
                Expense.id.in_(request.ids), Expense.couple_id == member.couple_id
            )
            .all()
        )
        for expense in expenses:
            db.delete(expense)
        db.commit()
        deleted = len(expenses)

    logger.info("expenses_bulk_deleted", couple_id=member.couple_id, count=deleted)
    return ApiResponse(data=BulkDeleteResult(deleted_count=deleted))


@router.delete("/expenses/{expense_id}", response_model=ApiResponse)
async def delete_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    expense = _get_couple_expense(db, expense_id, member)
    db.delete(expense)
    db.commit()
    logger.info("expense_deleted", expense_id=expense_id)
    return ApiResponse(message="Expense deleted successfully")


# Allocation ratio


@router.get("/allocation-ratio", response_model=ApiResponse[AllocationRatioResponse])
async def get_allocation_ratio(
    db: Session = Depends(get_db), member: User = Depends(get_current_member)
):
    ratio = current_ratio(db, member.couple_id)
    if ratio is not None:
        return ApiResponse(data=AllocationRatioResponse.model_validate(ratio))

    settings = get_settings()
    now = utcnow()
    return ApiResponse(
        data=AllocationRatioResponse(
            id="default",
            husband_ratio=settings.default_husband_ratio,
            wife_ratio=settings.default_wife_ratio,
            created_at=now,
            updated_at=now,
        )
    )


@router.put("/allocation-ratio", response_model=ApiResponse[AllocationRatioResponse])
async def update_allocation_ratio(
    ratio: AllocationRatioUpdate,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    _check_ratio_sum(ratio.husband_ratio, ratio.wife_ratio)

    db_ratio = AllocationRatio(
        couple_id=member.couple_id,
        husband_ratio=ratio.husband_ratio,
        wife_ratio=ratio.wife_ratio,
    )
    db.add(db_ratio)
    db.flush()
    recalculated = recalculate_couple_settlements(db, member.couple_id)
    db.commit()
    db.refresh(db_ratio)

    logger.info(
        "allocation_ratio_updated",
        couple_id=member.couple_id,
        husband_ratio=ratio.husband_ratio,
        wife_ratio=ratio.wife_ratio,
    )
    return ApiResponse(
        data=AllocationRatioResponse.model_validate(db_ratio),
        message=f"Recalculated {recalculated} settlements",
    )


# Settlements


def _couple_settlements(db: Session, member: User):
    return (
        db.query(Settlement)
        .join(Expense, Settlement.expense_id == Expense.id)
        .filter(Expense.couple_id == member.couple_id)
    )


def _get_couple_settlement(db: Session, settlement_id: str, member: User) -> Settlement:
    settlement = (
        _couple_settlements(db, member).filter(Settlement.id == settlement_id).first()
    )
    if not settlement:
        raise HTTPException(status_code=404, detail="Settlement not found")
    return settlement


@router.get("/settlements", response_model=ApiResponse[List[SettlementResponse]])
async def get_settlements(
    db: Session = Depends(get_db), member: User = Depends(get_current_member)
):
    settlements = (
        _couple_settlements(db, member).order_by(Settlement.created_at.desc()).all()
    )
    return ApiResponse(data=[_settlement_response(s) for s in settlements])


@router.get(
    "/settlements/monthly/{year}/{month}",
    response_model=ApiResponse[List[SettlementResponse]],
)
async def get_monthly_settlements(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    _validate_period(year, month)
    settlements = (
        _couple_settlements(db, member)
        .filter(Expense.expense_year == year, Expense.expense_month == month)
        .order_by(Settlement.created_at.desc())
        .all()
    )
    return ApiResponse(data=[_settlement_response(s) for s in settlements])


@router.post(
    "/settlements/calculate/{expense_id}",
    response_model=ApiResponse[SettlementResponse],
)
async def calculate_expense_settlement(
    expense_id: str,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    expense = _get_couple_expense(db, expense_id, member)
    settlement = calculate_settlement(db, expense)
    db.commit()
    db.refresh(settlement)
    return ApiResponse(data=_settlement_response(settlement))


def _move_settlement(db: Session, settlement_id: str, member: User, target: str):
    settlement = _get_couple_settlement(db, settlement_id, member)
    try:
        advance_status(settlement, target)
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    settlement.updated_at = utcnow()
    db.commit()
    db.refresh(settlement)
    logger.info("settlement_status_changed", settlement_id=settlement.id, status=target)
    return ApiResponse(data=_settlement_response(settlement))


@router.put(
    "/settlements/approve/{settlement_id}",
    response_model=ApiResponse[SettlementResponse],
)
async def approve_settlement(
    settlement_id: str,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    return _move_settlement(db, settlement_id, member, APPROVED)


@router.put(
    "/settlements/complete/{settlement_id}",
    response_model=ApiResponse[SettlementResponse],
)
async def complete_settlement(
    settlement_id: str,
    db: Session = Depends(get_db),
    member: User = Depends(get_current_member),
):
    return _move_settlement(db, settlement_id, member, COMPLETED)
