from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import RedirectResponse
from user_agents import parse as parse_user_agent

from shortlink_app.config import settings
from shortlink_app.dependencies import get_click_recorder, get_url_service
from shortlink_app.schemas.records import ClickInfo
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.url_service import URLService

router = APIRouter(tags=["redirect"])

# Values edge proxies send when they could not locate the client
UNKNOWN_COUNTRIES = {"", "XX", "T1"}


def click_info_from_request(request: Request) -> ClickInfo:
    """Referrer, browser and country for the click statistics"""
    browser_name: Optional[str] = None
    user_agent = request.headers.get("user-agent")
    if user_agent:
        family = parse_user_agent(user_agent).browser.family
        if family and family != "Other":
            browser_name = family

    country_code = (request.headers.get(settings.country_header) or "").strip().upper()

    return ClickInfo(
        referrer=request.headers.get("referer"),
        browser_name=browser_name,
        country_code=None if country_code in UNKNOWN_COUNTRIES else country_code,
    )


@router.get("/{short_code}")
async def redirect_to_long_url(
    short_code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    url_service: URLService = Depends(get_url_service),
    recorder: ClickRecorder = Depends(get_click_recorder),
):
    """
    Redirect to the original URL.

    Flow:
    1. Resolve the target (cache first, then the store)
    2. Schedule click recording as a background task
    3. Redirect; the background task runs after the response is sent

    Click recording failures are logged by the recorder and never change
    the response.
    """
    long_url = await url_service.resolve_target(short_code)

    background_tasks.add_task(recorder.dispatch, short_code, click_info_from_request(request))

    return RedirectResponse(url=long_url, status_code=status.HTTP_302_FOUND)
