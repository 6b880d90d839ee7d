import json
import logging

from fastapi import APIRouter, Depends, Request

from ..config import Settings
from ..dependencies import app_settings, get_report_service
from ..delivery import ReportService
from ..errors import AuthError, ConflictError, NotFoundError, ValidationError
from ..security import verify_shopify_hmac
from ..token_store import token_preview

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])
logger = logging.getLogger("melodie.webhooks")

TOKEN_ATTRIBUTE = "premiumToken"


def premium_token_from_order(order: dict) -> str | None:
    attributes = order.get("note_attributes") or []
    if not isinstance(attributes, list):
        return None
    for item in attributes:
        if isinstance(item, dict) and item.get("name") == TOKEN_ATTRIBUTE:
            value = str(item.get("value") or "").strip()
            return value or None
    return None


@router.post("/shopify")
async def shopify_order(
    request: Request,
    settings: Settings = Depends(app_settings),
    service: ReportService = Depends(get_report_service),
):
    """Paid order -> premium report for the token in ``note_attributes``.

    Missing, expired or in-flight tokens are acknowledged with 200 so the
    platform does not keep retrying; only a failed email returns 500.
    """
    raw = await request.body()
    if not verify_shopify_hmac(raw, request.headers.get("x-shopify-hmac-sha256"), settings.shopify_webhook_secret):
        logger.warning("Shopify webhook signature failed")
        raise AuthError("Unauthorized")

    try:
        order = json.loads(raw)
    except ValueError as exc:
        raise ValidationError("Bad JSON") from exc
    if not isinstance(order, dict):
        raise ValidationError("Bad JSON")

    token = premium_token_from_order(order)
    if not token:
        logger.warning("Shopify order without premium token | order_id=%s", order.get("id"))
        return {"ok": True, "status": "no_premium_token"}

    try:
        sent = await service.redeem_premium(token, order=order)
    except NotFoundError:
        return {"ok": True, "status": "token_expired"}
    except ConflictError:
        return {"ok": True, "status": "in_progress"}
    except ValidationError as exc:
        logger.warning("Stored premium submission unusable | token=%s | err=%s", token_preview(token), exc.message)
        return {"ok": True, "status": "invalid_submission"}

    logger.info("Shopify premium delivered | token=%s | order_id=%s", token_preview(token), order.get("id"))
    return {"ok": True, "status": "delivered", "emailId": sent.id}
