"""In-process stand-ins for the external collaborators."""
from melodie.captcha import CaptchaResult
from melodie.errors import LLMError
from melodie.mailer import EmailResult


class RecordingMailer:
    configured = True

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, *, to, subject, html, attachments=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "attachments": attachments or []})
        if self.fail:
            return EmailResult(success=False, error="transport down")
        return EmailResult(success=True, id=f"email_{len(self.sent)}")


class FakeLLM:
    """Answers ``complete_json`` from a callable of the prompt.

    The callable may return a dict or raise; ``LLMError`` mimics the real
    client's failure modes.
    """

    configured = True

    def __init__(self, respond=None):
        self.respond = respond or (lambda prompt, **kwargs: {})
        self.calls: list[dict] = []

    def label(self):
        return "fake:llm"

    async def complete_json(self, prompt, **kwargs):
        self.calls.append({"prompt": prompt, **kwargs})
        return self.respond(prompt, **kwargs)


class FailingLLM(FakeLLM):
    def __init__(self):
        def fail(prompt, **kwargs):
            raise LLMError("LLM request timed out")

        super().__init__(fail)


class FixedCaptcha:
    bypass = False
    configured = True

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.calls: list[tuple] = []

    async def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        if self.ok:
            return CaptchaResult(ok=True)
        return CaptchaResult(ok=False, error="CAPTCHA verification failed")
