# app/api/v1/endpoints/email_settings.py
"""
API endpoints for the current owner's sending account.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from app import crud
from app.api import deps
from app.core.exceptions import CRMError
from app.core.limiter import limiter
from app.db.session import get_db
from app.models.email_account import EmailAccountConfig
from app.schemas.email_settings import EmailSettingsResponse, EmailSettingsUpdate
from app.schemas.token import TokenPayload
from app.services.email.provider_factory import get_provider_factory

logger = logging.getLogger(__name__)
router = APIRouter()


def _to_response(account: EmailAccountConfig) -> dict:
    """Settings view with secrets replaced by has_* flags."""
    if account is None:
        return {
            "provider": None,
            "active_provider": None,
            "from_email": None,
            "from_name": None,
            "smtp_host": None,
            "smtp_port": None,
            "smtp_username": None,
            "has_smtp_password": False,
            "has_google_access_token": False,
            "has_sendgrid_api_key": False,
            "has_resend_api_key": False,
            "has_brevo_api_key": False,
            "is_configured": False,
            "updated_at": None,
        }

    usable = get_provider_factory().usable_providers(account)
    active = account.provider if account.provider in usable else (usable[0] if usable else None)
    return {
        "provider": account.provider,
        "active_provider": active,
        "from_email": account.from_email,
        "from_name": account.from_name,
        "smtp_host": account.smtp_host,
        "smtp_port": account.smtp_port,
        "smtp_username": account.smtp_username,
        "has_smtp_password": bool(account.smtp_password),
        "has_google_access_token": bool(account.google_access_token),
        "has_sendgrid_api_key": bool(account.sendgrid_api_key),
        "has_resend_api_key": bool(account.resend_api_key),
        "has_brevo_api_key": bool(account.brevo_api_key),
        "is_configured": account.is_configured,
        "updated_at": account.updated_at,
    }


@router.get("/email-settings", response_model=EmailSettingsResponse)
async def get_email_settings(
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    account = crud.email_account.get_by_owner(db, current_user.owner_id)
    return _to_response(account)


@router.put("/email-settings", response_model=EmailSettingsResponse)
@limiter.limit("10/minute")
async def update_email_settings(
    request: Request,
    settings_in: EmailSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Save email settings. Secrets left out of the request keep their stored value.

    At least one email service must end up usable.
    """
    data = settings_in.model_dump(exclude_unset=True)
    # An explicit null provider means "auto", anything else null means "keep"
    data = {k: v for k, v in data.items() if v is not None or k == "provider"}
    try:
        account = crud.email_account.upsert(db, owner_id=current_user.owner_id, data=data)
    except CRMError as e:
        raise deps.http_error(e)

    logger.info(f"Email settings saved for {current_user.owner_id}")
    return _to_response(account)
