from datetime import date, datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from attendance_engine.db import get_db
from attendance_engine.errors import ApiError
from attendance_engine.logging_utils import bind_log_context
from attendance_engine.schemas import EmployeeMonthlyStatsRead, MonthlyStatsRequest, MonthlyStatsResponse
from attendance_engine.services.ingestion import (
    employee_months_from_raw,
    holiday_calendar_from_raw,
    resolve_timezone,
)
from attendance_engine.services.monthly_stats import EvaluationContext, evaluate_company_month
from attendance_engine.services.rule_store import load_rule_config
from attendance_engine.settings import get_settings

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


@router.post("/{company_id}/monthly-stats", response_model=MonthlyStatsResponse)
def monthly_stats(
    company_id: str,
    payload: MonthlyStatsRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> MonthlyStatsResponse:
    request.state.company_id = company_id
    bind_log_context(company_id=company_id)
    settings = get_settings()
    config = load_rule_config(db, company_id)

    tz = resolve_timezone(settings.attendance_timezone)
    context = EvaluationContext(
        year=payload.year,
        month=payload.month,
        as_of=payload.as_of or datetime.now(tz).date(),
    )
    if context.as_of < date(context.year, context.month, 1):
        raise ApiError(
            status_code=422,
            code="AS_OF_BEFORE_MONTH",
            message=f"as_of {context.as_of.isoformat()} precedes {context.year}-{context.month:02d}.",
        )
    employees = employee_months_from_raw(payload.employees, tz=tz)
    results = evaluate_company_month(
        employees,
        config=config,
        calendar=holiday_calendar_from_raw(payload.holidays),
        context=context,
        max_workers=settings.evaluation_max_workers,
    )

    flagged = sorted({flag for stats in results for flag in stats.flags})
    request.state.flags = flagged or None
    return MonthlyStatsResponse(
        company_id=company_id,
        rule_version=config.version,
        year=context.year,
        month=context.month,
        as_of=context.as_of,
        results=[EmployeeMonthlyStatsRead.model_validate(stats.to_dict()) for stats in results],
    )
