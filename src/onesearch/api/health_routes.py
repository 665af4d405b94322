from typing import Annotated

from fastapi import APIRouter, Depends

from ..auth.models import SiteContext
from ..auth.security import require_site_token
from ..config import Settings
from .dependencies import get_app_settings
from .models import HealthResponse

router = APIRouter(prefix="/onesearch/v1", tags=["health"])


@router.get("/health-check", response_model=HealthResponse)
async def health_check(
    site: Annotated[SiteContext, Depends(require_site_token)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> HealthResponse:
    return HealthResponse(site_url=settings.site_url, site_type=settings.site_type, caller=site.site_url)
