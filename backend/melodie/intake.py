"""Turn an inbound JSON or multipart body into a validated ``ReportIntake``."""
from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from starlette.datastructures import UploadFile

from .engines import PalmImage
from .errors import ValidationError
from .fields import first_field, normalize_field, normalize_submission, person_from_fields
from .schemas import Mode, Person

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DATA_URL_RE = re.compile(r"^data:(?P<type>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)

MAX_QUESTION_LENGTH = 2000
MODES: tuple[str, ...] = ("personal", "technical", "compat")
CAPTCHA_FIELDS = ("g-recaptcha-response", "recaptchaToken", "captchaToken")
PALM_FIELDS = ("palmImage", "handImage")
PARTNER_PALM_FIELDS = ("partnerPalmImage", "partnerHandImage")
TECH_FILE_FIELD = "techFile"
TECH_FILE_EXTENSIONS = (".txt", ".csv", ".json", ".log")
EXECUTABLE_EXTENSIONS = (".exe", ".msi", ".bat", ".sh", ".php", ".py", ".js", ".dll", ".scr")
# Fields that never go into a stored premium snapshot
_TRANSIENT_FIELDS = set(CAPTCHA_FIELDS)


@dataclass
class ReportIntake:
    email: str
    question: str
    person: Person
    requested_mode: Mode | None = None
    partner: Person | None = None
    palm_image: PalmImage | None = None
    partner_palm_image: PalmImage | None = None
    captcha_token: str = ""
    tech_file_text: str = ""

    def snapshot(self) -> dict[str, str]:
        """Flat string mapping that ``intake_from_snapshot`` can rebuild from."""
        data = {
            "email": self.email,
            "question": self.question,
            "fullName": self.person.full_name,
            "birthDate": self.person.date_of_birth,
            "birthTime": self.person.time_of_birth,
            "birthPlace": self.person.birth_place,
        }
        if self.palm_image is not None:
            data["palmImageBase64"] = self.palm_image.data_url()
        return {key: value for key, value in data.items() if value}


@dataclass
class RawSubmission:
    fields: dict[str, Any]
    uploads: dict[str, UploadFile]


async def read_submission(request: Request) -> RawSubmission:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data") or content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        try:
            form = await request.form()
        except Exception as exc:
            raise ValidationError("Malformed form body") from exc
        fields: dict[str, Any] = {}
        uploads: dict[str, UploadFile] = {}
        for key in form.keys():
            values = form.getlist(key)
            files = [v for v in values if isinstance(v, UploadFile)]
            if files:
                uploads[key] = files[0]
            else:
                fields[key] = [str(v) for v in values]
        return RawSubmission(fields=fields, uploads=uploads)

    body = await request.body()
    if not body:
        raise ValidationError("Request body is empty")
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Malformed JSON body") from exc
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")
    return RawSubmission(fields=payload, uploads={})


async def _read_upload(upload: UploadFile, max_bytes: int) -> PalmImage | None:
    content_type = (upload.content_type or "").lower()
    content = await upload.read(max_bytes + 1)
    if not content:
        return None
    if not content_type.startswith("image/"):
        raise ValidationError("Palm image must be an image file")
    if len(content) > max_bytes:
        raise ValidationError("Palm image is too large")
    return PalmImage(content=content, content_type=content_type)


def decode_image_field(value: str, max_bytes: int) -> PalmImage | None:
    """Accept a ``data:image/...;base64,`` URL or bare base64 (assumed JPEG)."""
    value = (value or "").strip()
    if not value:
        return None
    content_type = "image/jpeg"
    match = _DATA_URL_RE.match(value)
    if match:
        content_type = match.group("type").lower()
        value = match.group("data")
    if not content_type.startswith("image/"):
        raise ValidationError("Palm image must be an image file")
    try:
        content = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Palm image is not valid base64") from exc
    if len(content) > max_bytes:
        raise ValidationError("Palm image is too large")
    return PalmImage(content=content, content_type=content_type)


async def _palm_image(
    submission: RawSubmission, upload_keys: tuple[str, ...], base64_key: str, max_bytes: int
) -> PalmImage | None:
    for key in upload_keys:
        upload = submission.uploads.get(key)
        if upload is not None:
            image = await _read_upload(upload, max_bytes)
            if image is not None:
                return image
    return decode_image_field(normalize_field(submission.fields, base64_key), max_bytes)


async def _tech_file_text(submission: RawSubmission, max_bytes: int) -> str:
    """Text of an optional ``techFile`` upload or ``techFileText`` field."""
    upload = submission.uploads.get(TECH_FILE_FIELD)
    if upload is None:
        text = normalize_field(submission.fields, "techFileText")
        if len(text.encode("utf-8")) > max_bytes:
            raise ValidationError("Technical file is too large")
        return text

    name = (upload.filename or "").lower()
    if not name:
        return ""
    if name.endswith(EXECUTABLE_EXTENSIONS):
        raise ValidationError("Executable file types are not allowed")
    if not name.endswith(TECH_FILE_EXTENSIONS):
        raise ValidationError("File type not allowed. Allowed: txt, csv, json, log")
    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ValidationError("Technical file is too large")
    if b"\x00" in content:
        raise ValidationError("Technical file must be plain text")
    return content.decode("utf-8", errors="replace").strip()


def _validate_core(fields: dict[str, Any]) -> tuple[str, str]:
    email = normalize_field(fields, "email")
    question = normalize_field(fields, "question")
    if not email:
        raise ValidationError("Missing email")
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    if not question:
        raise ValidationError("Missing question")
    if len(question) > MAX_QUESTION_LENGTH:
        raise ValidationError("Question is too long")
    return email, question


def _requested_mode(fields: dict[str, Any]) -> Mode | None:
    mode = normalize_field(fields, "mode").lower()
    if not mode:
        return None
    if mode not in MODES:
        raise ValidationError(f"Unknown mode: {mode}")
    return mode  # type: ignore[return-value]


async def build_intake(submission: RawSubmission, *, max_upload_bytes: int) -> ReportIntake:
    fields = submission.fields
    email, question = _validate_core(fields)
    mode = _requested_mode(fields)

    intake = ReportIntake(
        email=email,
        question=question,
        person=person_from_fields(fields),
        requested_mode=mode,
        palm_image=await _palm_image(submission, PALM_FIELDS, "palmImageBase64", max_upload_bytes),
        captcha_token=first_field(fields, *CAPTCHA_FIELDS),
        tech_file_text=await _tech_file_text(submission, max_upload_bytes),
    )

    if mode == "compat":
        partner = person_from_fields(fields, prefix="partner")
        if not partner.full_name:
            raise ValidationError("Missing partnerName")
        if not partner.date_of_birth:
            raise ValidationError("Missing partnerBirthDate")
        intake.partner = partner
        intake.partner_palm_image = await _palm_image(
            submission, PARTNER_PALM_FIELDS, "partnerPalmImageBase64", max_upload_bytes
        )
    return intake


def intake_from_snapshot(
    snapshot: dict[str, Any], *, max_upload_bytes: int, order: dict[str, Any] | None = None
) -> ReportIntake:
    """Rebuild a premium intake from a stored snapshot.

    A commerce order can fill in the email and name when the snapshot lacks them.
    """
    fields = {k: v for k, v in normalize_submission(snapshot).items() if k not in _TRANSIENT_FIELDS}
    order = order or {}
    if not fields.get("email") and isinstance(order.get("email"), str):
        fields["email"] = order["email"]
    if not first_field(fields, "fullName", "name"):
        customer = order.get("customer") if isinstance(order.get("customer"), dict) else {}
        name = " ".join(
            str(customer.get(part) or "").strip() for part in ("first_name", "last_name")
        ).strip()
        if name:
            fields["fullName"] = name

    email, question = _validate_core(fields)
    return ReportIntake(
        email=email,
        question=question,
        person=person_from_fields(fields),
        requested_mode="personal",
        palm_image=decode_image_field(fields.get("palmImageBase64", ""), max_upload_bytes),
    )
