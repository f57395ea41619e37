"""
Analysis Errors

Every error the analyze entrypoint can surface carries an HTTP status,
a stable code and a to_dict() body. Provider-level failures never appear
here; they are recorded on the result instead.
"""

from typing import Any, Dict, List, Optional


class CompetiscopeError(Exception):
    """Base for errors returned to callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.code, "message": self.message}


class InvalidRequestError(CompetiscopeError):
    status_code = 400
    code = "INVALID_REQUEST"


class AdmissionRejected(CompetiscopeError):
    """Request not admitted; retryable after retry_after seconds."""

    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["retry_after"] = self.retry_after
        return body


class RateLimited(AdmissionRejected):
    status_code = 429
    code = "RATE_LIMITED"


class AnalysisInProgress(AdmissionRejected):
    status_code = 409
    code = "ANALYSIS_IN_PROGRESS"


class CompetitorLimitReached(CompetiscopeError):
    status_code = 403
    code = "COMPETITOR_LIMIT"

    def __init__(self, message: str, plan: str, limit: int, usage: int,
                 upgrade_required: Optional[str] = None):
        super().__init__(message)
        self.plan = plan
        self.limit = limit
        self.usage = usage
        self.upgrade_required = upgrade_required

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({
            "current_plan": self.plan,
            "limit": self.limit,
            "usage": self.usage,
            "upgrade_required": self.upgrade_required,
        })
        return body


class AnalysisFailedError(CompetiscopeError):
    """Every provider failed and nothing cached could stand in."""

    status_code = 500
    code = "ANALYSIS_FAILED"

    def __init__(self, message: str, failures: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.failures = failures or []

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["failures"] = self.failures
        return body
