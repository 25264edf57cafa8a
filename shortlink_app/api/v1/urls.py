from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from shortlink_app.config import settings
from shortlink_app.dependencies import get_caller_id, get_url_service
from shortlink_app.schemas.url import (
    ExpirationUpdate,
    StatisticsResponse,
    URLCreate,
    URLResponse,
    URLUpdate,
)
from shortlink_app.services.url_service import URLService

router = APIRouter(prefix="/urls", tags=["urls"])


@router.post("/", response_model=URLResponse, status_code=status.HTTP_201_CREATED)
async def create_short_url(
    payload: URLCreate,
    url_service: URLService = Depends(get_url_service),
    caller_id: Optional[str] = Depends(get_caller_id),
):
    """Create a short URL (idempotent per owner and target)"""
    return await url_service.shorten(
        original_url=str(payload.original_url),
        base_url=settings.base_url,
        expiration_days=payload.expiration_days,
        description=payload.description,
        domain=payload.domain,
        owner_id=caller_id,
        custom_slug=payload.custom_slug,
    )


@router.get("/{short_code}", response_model=URLResponse)
async def get_url_info(
    short_code: str,
    url_service: URLService = Depends(get_url_service),
):
    """Information about a live short URL"""
    return await url_service.resolve(short_code)


@router.get("/{short_code}/qr")
async def get_qr_code(
    short_code: str,
    url_service: URLService = Depends(get_url_service),
):
    """QR code PNG rendered when the URL was created"""
    image = await url_service.get_qr_image(short_code)
    return Response(
        content=image,
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="qr-{short_code}.png"'},
    )


@router.get("/{short_code}/stats", response_model=StatisticsResponse)
async def get_url_stats(
    short_code: str,
    url_service: URLService = Depends(get_url_service),
    caller_id: Optional[str] = Depends(get_caller_id),
):
    """Click statistics (owner only for owned URLs)"""
    return await url_service.get_statistics(short_code, caller_id=caller_id)


@router.patch("/{short_code}/expiration", response_model=URLResponse)
async def update_expiration(
    short_code: str,
    payload: ExpirationUpdate,
    url_service: URLService = Depends(get_url_service),
    caller_id: Optional[str] = Depends(get_caller_id),
):
    """Reset expiration to now + expirationDays"""
    return await url_service.update_expiration(short_code, payload.expiration_days, caller_id=caller_id)


@router.patch("/{short_code}", response_model=URLResponse)
async def update_url(
    short_code: str,
    payload: URLUpdate,
    url_service: URLService = Depends(get_url_service),
    caller_id: Optional[str] = Depends(get_caller_id),
):
    """Partial update; a new customSlug renames the short code"""
    return await url_service.update(
        short_code,
        payload.model_dump(exclude_none=True),
        caller_id=caller_id,
    )


@router.delete("/{short_code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_url(
    short_code: str,
    url_service: URLService = Depends(get_url_service),
    caller_id: Optional[str] = Depends(get_caller_id),
):
    """Delete a short URL and its statistics"""
    await url_service.delete(short_code, caller_id=caller_id)
