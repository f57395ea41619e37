"""
Analysis Module

Data models, payload schemas and errors for competitive analyses. The
orchestrator, compositor and service entrypoint are imported from their
own modules (competiscope.analysis.service etc.).
"""

from .models import (
    Side,
    AnalysisRequest,
    OutcomeStatus,
    ProviderOutcome,
    CompositeResult,
    REFRESH_GROUPS,
    ALL_SECTIONS,
    unavailable,
    is_unavailable,
)
from .errors import (
    CompetiscopeError,
    InvalidRequestError,
    AdmissionRejected,
    RateLimited,
    AnalysisInProgress,
    CompetitorLimitReached,
    AnalysisFailedError,
)
