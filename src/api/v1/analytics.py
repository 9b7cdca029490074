"""
Closure analytics endpoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_actor_id, get_analytics_service
from src.domain.summary import AepUserSummary
from src.services.closure_analytics import ClosureAnalyticsService

router = APIRouter()


@router.get("/teams/{team_id}/aep-summary", response_model=list[AepUserSummary])
async def aep_summary(
    team_id: str,
    project_id: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    actor_id: str = Depends(get_actor_id),
    analytics: ClosureAnalyticsService = Depends(get_analytics_service),
) -> list[AepUserSummary]:
    """Per-user closure counts, most closed first. Keys are camelCase."""
    return await analytics.get_closure_summary(
        team_id, actor_id, project_id=project_id, user_id=user_id
    )
