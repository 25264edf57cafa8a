from typing import List, Optional

from fastapi import APIRouter, Depends
from shortlink_app.dependencies import get_caller_id, get_statistics_service, get_url_service
from shortlink_app.exceptions import AuthenticationRequired
from shortlink_app.schemas.url import StatisticsResponse, URLResponse
from shortlink_app.services.statistics_service import StatisticsService
from shortlink_app.services.url_service import URLService

router = APIRouter(prefix="/me", tags=["owner"])


def require_caller(caller_id: Optional[str] = Depends(get_caller_id)) -> str:
    if caller_id is None:
        raise AuthenticationRequired()
    return caller_id


@router.get("/urls", response_model=List[URLResponse])
async def list_my_urls(
    caller_id: str = Depends(require_caller),
    url_service: URLService = Depends(get_url_service),
):
    """Caller's live URLs, newest first"""
    return await url_service.list_for_owner(caller_id)


@router.get("/stats", response_model=List[StatisticsResponse])
async def list_my_stats(
    caller_id: str = Depends(require_caller),
    statistics_service: StatisticsService = Depends(get_statistics_service),
):
    """Statistics for every URL the caller owns"""
    return await statistics_service.get_by_owner(caller_id)
