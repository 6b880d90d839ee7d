import logging

from fastapi import APIRouter, Depends, Request

from .. import schemas
from ..classifier import classify_question
from ..dependencies import get_llm
from ..limiter import limiter
from ..llm_engine import LLMClient

router = APIRouter(prefix="/v1/classify", tags=["classify"])
logger = logging.getLogger("melodie.classify")


@router.post("", response_model=schemas.ClassifyResponse)
@limiter.limit("30/minute")
async def classify(
    request: Request,
    payload: schemas.ClassifyRequest,
    llm: LLMClient | None = Depends(get_llm),
):
    kind = await classify_question(payload.question, llm)
    logger.info("Question classified | type=%s | length=%s", kind, len(payload.question))
    return schemas.ClassifyResponse(type=kind)
