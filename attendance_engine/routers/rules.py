from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session

from attendance_engine.db import get_db
from attendance_engine.logging_utils import bind_log_context
from attendance_engine.schemas import (
    RuleChangeLogPage,
    RuleChangeLogRead,
    RuleConfigRead,
    RuleConfigUpdateRequest,
    RuleRollbackRequest,
)
from attendance_engine.services.rule_store import (
    get_full_config,
    list_change_history,
    rollback_rule_config,
    rule_config_to_schema,
    update_rule_config,
)

router = APIRouter(prefix="/api/rules", tags=["rules"])


@router.get("/{company_id}", response_model=RuleConfigRead)
def read_rules(
    company_id: str,
    request: Request,
    db: Session = Depends(get_db),
) -> RuleConfigRead:
    request.state.company_id = company_id
    bind_log_context(company_id=company_id)
    return get_full_config(db, company_id)


@router.put("/{company_id}", response_model=RuleConfigRead)
def replace_rules(
    company_id: str,
    payload: RuleConfigUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(default=None),
) -> RuleConfigRead:
    request.state.company_id = company_id
    bind_log_context(company_id=company_id)
    config = update_rule_config(
        db,
        company_id,
        payload,
        updated_by=payload.updated_by or x_user_id or "anonymous",
        change_reason=payload.change_reason,
    )
    return rule_config_to_schema(config)


@router.get("/{company_id}/history", response_model=RuleChangeLogPage)
def read_rule_history(
    company_id: str,
    request: Request,
    page: int = Query(default=1, ge=1),
    size: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> RuleChangeLogPage:
    request.state.company_id = company_id
    bind_log_context(company_id=company_id)
    items, total = list_change_history(db, company_id, page=page, size=size)
    return RuleChangeLogPage(
        items=[RuleChangeLogRead.model_validate(item) for item in items],
        total=total,
        page=page,
        size=size,
    )


@router.post("/{company_id}/rollback", response_model=RuleConfigRead)
def rollback_rules(
    company_id: str,
    payload: RuleRollbackRequest,
    request: Request,
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(default=None),
) -> RuleConfigRead:
    request.state.company_id = company_id
    bind_log_context(company_id=company_id)
    config = rollback_rule_config(
        db,
        company_id,
        payload.history_id,
        changed_by=payload.changed_by or x_user_id or "anonymous",
        change_reason=payload.change_reason,
    )
    return rule_config_to_schema(config)
