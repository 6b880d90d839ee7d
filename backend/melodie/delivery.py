"""Report delivery: CAPTCHA, classify, synthesize, render, email.

States run ``received -> validated -> classified -> synthesized -> rendered
-> emailed``. Each failure leaves through a ``ReportError`` subclass; engine
degradation never does.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from html import escape

from .astrology_api import AstrologyAPIClient
from .captcha import RecaptchaVerifier
from .classifier import classify_question
from .errors import CaptchaError, ConflictError, DeliveryError, InternalError, NotFoundError, ReportError
from .intake import ReportIntake, intake_from_snapshot
from .llm_engine import LLMClient
from .mailer import Attachment, EmailResult, ResendMailer
from .orchestrator import EngineOrchestrator, SynthesisRequest
from .reporting import build_full_report_html, build_report_document, build_summary_html, render_pdf
from .schemas import Mode, QuestionType, SynthesisResult
from .security import generate_token
from .token_store import PremiumTokenStore, token_preview

logger = logging.getLogger("melodie.delivery")

SUBJECTS: dict[str, str] = {
    "personal": "Your Personal Spiritual Report",
    "technical": "Your Technical Report",
    "compat": "Your Compatibility Report",
    "premium": "Your Premium Spiritual Report",
}

TITLES: dict[str, str] = {
    "personal": "Your Personal Insight Report",
    "technical": "Your Technical Report",
    "compat": "Compatibility Report",
    "premium": "Your Premium Spiritual Report",
}


@dataclass
class DeliveryOutcome:
    mode: Mode
    question_type: QuestionType
    result: SynthesisResult
    summary_html: str
    email_id: str | None = None


class ReportService:
    def __init__(
        self,
        *,
        llm: LLMClient | None,
        astrology: AstrologyAPIClient | None,
        mailer: ResendMailer,
        captcha: RecaptchaVerifier,
        store: PremiumTokenStore,
        brand: str = "Melodie Says",
        pdf_backend: str = "reportlab",
        max_upload_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self.llm = llm
        self.mailer = mailer
        self.captcha = captcha
        self.store = store
        self.brand = brand
        self.pdf_backend = pdf_backend
        self.max_upload_bytes = max_upload_bytes
        self.orchestrator = EngineOrchestrator(llm, astrology)

    async def check_captcha(self, intake: ReportIntake, remote_ip: str | None) -> None:
        outcome = await self.captcha.verify(intake.captcha_token, remote_ip)
        if not outcome.ok:
            raise CaptchaError(outcome.error or "CAPTCHA verification failed")

    async def _synthesize(self, intake: ReportIntake, mode: Mode) -> SynthesisResult:
        request = SynthesisRequest(
            mode=mode,
            question=intake.question,
            person=intake.person,
            palm_image=intake.palm_image,
            partner=intake.partner,
            partner_palm_image=intake.partner_palm_image,
            tech_file_text=intake.tech_file_text,
        )
        try:
            return await self.orchestrator.synthesize(request)
        except ReportError:
            raise
        except Exception as exc:
            logger.exception("Synthesis failed | mode=%s", mode)
            raise InternalError("Report generation failed") from exc

    async def _render_and_send(
        self, intake: ReportIntake, result: SynthesisResult, *, kind: str, lead_html: str
    ) -> EmailResult:
        title = TITLES[kind]
        report_html = build_full_report_html(
            title=title,
            question=intake.question,
            result=result,
            person=intake.person,
            partner=intake.partner,
            brand=self.brand,
            lead_html=lead_html,
        )
        document = build_report_document(
            title=title,
            question=intake.question,
            result=result,
            person=intake.person,
            partner=intake.partner,
            brand=self.brand,
        )
        try:
            pdf_bytes = await asyncio.to_thread(render_pdf, document, self.pdf_backend)
        except Exception as exc:
            logger.exception("PDF rendering failed | backend=%s", self.pdf_backend)
            raise InternalError("Report rendering failed") from exc

        filename = "premium-spiritual-report.pdf" if kind == "premium" else f"{result.mode}-report.pdf"
        return await self.mailer.send(
            to=intake.email,
            subject=SUBJECTS[kind],
            html=report_html,
            attachments=[Attachment(filename=filename, content=pdf_bytes)],
        )

    async def deliver_report(self, intake: ReportIntake, remote_ip: str | None = None) -> DeliveryOutcome:
        started_at = time.time()
        await self.check_captcha(intake, remote_ip)

        question_type = await classify_question(intake.question, self.llm)
        mode: Mode = intake.requested_mode or question_type
        result = await self._synthesize(intake, mode)
        summary_html = build_summary_html(intake.question, result)

        sent = await self._render_and_send(intake, result, kind=mode, lead_html=summary_html)
        if not sent.success:
            logger.error("Report email failed | mode=%s | err=%s", mode, sent.error)
            raise DeliveryError("Email failed to send")

        logger.info(
            "Report delivered | mode=%s | type=%s | email_id=%s | time=%.2fs",
            mode,
            question_type,
            sent.id,
            time.time() - started_at,
        )
        return DeliveryOutcome(
            mode=mode,
            question_type=question_type,
            result=result,
            summary_html=summary_html,
            email_id=sent.id,
        )

    async def capture_premium(self, intake: ReportIntake, remote_ip: str | None = None) -> str:
        await self.check_captcha(intake, remote_ip)
        token = generate_token("pt_")
        await self.store.save(token, intake.snapshot())
        logger.info("Premium submission captured | token=%s", token_preview(token))
        return token

    async def redeem_premium(self, token: str, *, order: dict | None = None) -> EmailResult:
        """Deliver the premium report for ``token`` and consume it.

        The token is deleted only after the email transport succeeds; a
        ``DeliveryError`` leaves it redeemable. Raises ``ConflictError`` while
        another redemption of the same token is in flight.
        """
        if not await self.store.claim(token):
            logger.warning("Premium token already being redeemed | token=%s", token_preview(token))
            raise ConflictError("Premium token is already being redeemed")
        try:
            snapshot = await self.store.load(token)
            if snapshot is None:
                logger.warning("Premium token not found or expired | token=%s", token_preview(token))
                raise NotFoundError("Premium token not found or expired")

            intake = intake_from_snapshot(snapshot, max_upload_bytes=self.max_upload_bytes, order=order)
            result = await self._synthesize(intake, "personal")
            greeting = (
                '<div style="font-family:system-ui;">'
                f"<p>Hi {escape(intake.person.full_name or 'there')},</p>"
                "<p>Your complete premium astrology, numerology and palmistry report is below "
                "and attached as a PDF.</p></div>"
            )
            sent = await self._render_and_send(intake, result, kind="premium", lead_html=greeting)
            if not sent.success:
                logger.error(
                    "Premium email failed, token kept | token=%s | err=%s", token_preview(token), sent.error
                )
                raise DeliveryError("Email failed to send")

            await self.store.delete(token)
            logger.info("Premium report delivered | token=%s | email_id=%s", token_preview(token), sent.id)
            return sent
        finally:
            await self.store.release(token)
