import logging

from fastapi import APIRouter, Depends, Request

from .. import schemas
from ..dependencies import client_ip, get_report_service
from ..delivery import ReportService
from ..intake import build_intake, read_submission
from ..limiter import limiter
from ..token_store import token_preview

router = APIRouter(prefix="/v1/premium", tags=["premium"])
logger = logging.getLogger("melodie.premium")


@router.post("/submissions", response_model=schemas.PremiumCaptureResponse, response_model_by_alias=True)
@limiter.limit("10/minute")
async def capture_submission(
    request: Request,
    service: ReportService = Depends(get_report_service),
):
    submission = await read_submission(request)
    intake = await build_intake(submission, max_upload_bytes=service.max_upload_bytes)
    token = await service.capture_premium(intake, client_ip(request))
    return schemas.PremiumCaptureResponse(
        premium_token=token,
        expires_in=service.store.ttl_seconds,
    )


@router.post("/redeem")
@limiter.limit("10/minute")
async def redeem(
    request: Request,
    payload: schemas.PremiumRedeemRequest,
    service: ReportService = Depends(get_report_service),
):
    logger.info("Premium redeem requested | token=%s", token_preview(payload.premium_token))
    sent = await service.redeem_premium(payload.premium_token)
    return {"ok": True, "emailId": sent.id}
