from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class RuleEngineError(Exception):
    """Base class for rule configuration and evaluation failures."""


class RuleConfigNotLoadedError(RuleEngineError):
    """No active rule configuration exists for a company.

    Evaluation must not guess a company's policy, so this is fatal to the
    evaluation run. Callers surface it as a "rules not loaded" state.
    """

    def __init__(self, company_id: str):
        super().__init__(f"No active attendance rules for company: {company_id}")
        self.company_id = company_id


class RuleHistoryNotFoundError(RuleEngineError):
    def __init__(self, company_id: str, history_id: int):
        super().__init__(f"Rule change log entry {history_id} not found for company: {company_id}")
        self.company_id = company_id
        self.history_id = history_id


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
