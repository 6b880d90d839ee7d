import logging

from fastapi import APIRouter, Depends, Request

from .. import schemas
from ..dependencies import client_ip, get_report_service
from ..delivery import ReportService
from ..intake import build_intake, read_submission
from ..limiter import limiter

router = APIRouter(prefix="/v1/reports", tags=["reports"])
logger = logging.getLogger("melodie.reports")


@router.post("", response_model=schemas.ReportResponse, response_model_by_alias=True)
@limiter.limit("10/minute")
async def create_report(
    request: Request,
    service: ReportService = Depends(get_report_service),
):
    """Generate a report for a JSON or multipart submission and email it.

    ``mode`` may be ``personal``, ``technical`` or ``compat``; without it the
    question classifier picks between the first two.
    """
    submission = await read_submission(request)
    intake = await build_intake(submission, max_upload_bytes=service.max_upload_bytes)
    logger.info(
        "Report requested | mode=%s | palm_image=%s | tech_file=%s",
        intake.requested_mode or "auto",
        intake.palm_image is not None,
        bool(intake.tech_file_text),
    )

    outcome = await service.deliver_report(intake, client_ip(request))
    return schemas.ReportResponse(
        mode=outcome.mode,
        question_type=outcome.question_type,
        email_id=outcome.email_id,
        summary_html=outcome.summary_html,
        result=schemas.dump_result(outcome.result),
    )
