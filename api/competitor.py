"""
Competitor Analysis API

Endpoints:
- POST /api/competitor/analyze          full comparison (cached when possible)
- POST /api/competitor/refresh-section  re-run one section group of a cached report
- GET  /api/competitor/cache            cache status for a pair
"""

import logging
from functools import lru_cache
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from competiscope.analysis.errors import AdmissionRejected, CompetiscopeError
from competiscope.analysis.service import AnalysisService, create_analysis_service
from competiscope.auth.dependencies import get_current_identity

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/competitor", tags=["Competitor Analysis"])


@lru_cache(maxsize=1)
def get_analysis_service() -> AnalysisService:
    return create_analysis_service()


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SocialHandles(BaseModel):
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    linkedin: Optional[str] = None


class AnalyzeRequest(BaseModel):
    your_site: str = Field(..., description="Your domain or URL")
    competitor_site: str = Field(..., description="Competitor domain or URL")
    force_refresh: bool = Field(default=False, description="Bypass the cached report")
    own_handles: Optional[SocialHandles] = Field(
        default=None, description="Override your connected social accounts"
    )
    competitor_handles: Optional[SocialHandles] = Field(
        default=None, description="Competitor social accounts (saved ones are used otherwise)"
    )


class RefreshSectionRequest(AnalyzeRequest):
    section: Literal["seo", "technical", "content", "traffic", "social", "ads"]


def _handles(handles: Optional[SocialHandles]) -> Dict[str, Optional[str]]:
    return handles.model_dump() if handles else {}


def error_response(error: CompetiscopeError) -> JSONResponse:
    headers = {}
    if isinstance(error, AdmissionRejected):
        headers["Retry-After"] = str(error.retry_after)
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    identity: str = Depends(get_current_identity),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Compare your site against a competitor."""
    try:
        return await service.analyze(
            identity,
            body.your_site,
            body.competitor_site,
            own_handles=_handles(body.own_handles),
            competitor_handles=_handles(body.competitor_handles),
            force_refresh=body.force_refresh,
        )
    except CompetiscopeError as e:
        logger.info(f"Analyze rejected for {identity}: {e.code} {e.message}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Analyze failed for {identity}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/refresh-section")
async def refresh_section(
    body: RefreshSectionRequest,
    identity: str = Depends(get_current_identity),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Refresh one section group of a cached comparison."""
    try:
        return await service.refresh_section(
            identity,
            body.your_site,
            body.competitor_site,
            body.section,
            own_handles=_handles(body.own_handles),
            competitor_handles=_handles(body.competitor_handles),
        )
    except CompetiscopeError as e:
        logger.info(f"Section refresh rejected for {identity}: {e.code} {e.message}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Section refresh failed for {identity}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/cache")
async def cache_status(
    your_site: str = Query(...),
    competitor_site: str = Query(...),
    identity: str = Depends(get_current_identity),
    service: AnalysisService = Depends(get_analysis_service),
):
    """Whether an unfiltered report is cached for the pair, and until when."""
    try:
        return service.cache_status(identity, your_site, competitor_site)
    except CompetiscopeError as e:
        return error_response(e)
