import base64
from typing import Optional

import openai
import structlog
from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from src.config import config
from src.domain.exceptions import ExternalServiceError
from src.models import AnaliseFotoSST

# Configuração de Logs
logger = structlog.get_logger()

USER_INSTRUCTION = "Analise esta foto da inspeção e retorne os riscos encontrados."


def guess_mime_type(image_bytes: bytes) -> str:
    """Sniff the image type from magic bytes; the provider needs it in the data URL."""
    if image_bytes.startswith(b"\x89PNG"):
        return "image/png"
    if image_bytes.startswith(b"GIF8"):
        return "image/gif"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


class OpenAIAnalyzer:
    """
    Cliente do classificador de IA (OpenAI Vision + Structured Outputs).

    analyze() devolve AnaliseFotoSST ou levanta ExternalServiceError já
    classificado como transitório ou permanente. O SDK não faz retries:
    quem decide tentar de novo é o orquestrador.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None,
                 timeout: Optional[float] = None, client=None):
        self.model_name = model_name or config.OPENAI_MODEL
        self.timeout = timeout or config.AI_TIMEOUT_SECONDS
        api_key = api_key or config.OPENAI_API_KEY

        if client is not None:
            self.client = client
        elif api_key:
            # Security Log: Only show prefix and suffix
            prefix = api_key[:10] if len(api_key) > 10 else "SHORT"
            suffix = api_key[-4:] if len(api_key) > 4 else "????"
            logger.info("OpenAI Key Status", prefix=f"{prefix}...", suffix=f"...{suffix}")
            self.client = OpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
        else:
            logger.warning("OPENAI_API_KEY não encontrada nas variáveis de ambiente.")
            self.client = None

    def analyze(self, image_bytes: bytes, prompt: str) -> AnaliseFotoSST:
        if self.client is None:
            raise ExternalServiceError("OpenAI API key not configured", transient=False, error_code="ERR_2004")
        if not image_bytes:
            raise ExternalServiceError("Image is empty", transient=False, error_code="ERR_1001")

        image_b64 = base64.b64encode(image_bytes).decode("ascii")
        data_url = f"data:{guess_mime_type(image_bytes)};base64,{image_b64}"

        try:
            completion = self.client.chat.completions.parse(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": [
                        {"type": "text", "text": USER_INSTRUCTION},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ]},
                ],
                response_format=AnaliseFotoSST,
                timeout=self.timeout,
            )
        except Exception as e:
            classified = self.classify_error(e)
            logger.error("OpenAI Error", error=str(e), transient=classified.transient, code=classified.error_code)
            raise classified from e

        message = completion.choices[0].message
        if getattr(message, "refusal", None):
            raise ExternalServiceError(f"Model refused the image: {message.refusal}", transient=False, error_code="ERR_2005")
        if message.parsed is None:
            raise ExternalServiceError("Empty structured output", transient=False, error_code="ERR_2005")

        if completion.usage:
            logger.info("OpenAI usage",
                        prompt_tokens=completion.usage.prompt_tokens,
                        completion_tokens=completion.usage.completion_tokens,
                        findings=len(message.parsed.achados))
        return message.parsed

    @staticmethod
    def classify_error(error: Exception) -> ExternalServiceError:
        """Map SDK/parsing exceptions to transient or permanent ExternalServiceError."""
        if isinstance(error, ExternalServiceError):
            return error

        # APITimeoutError é subclasse de APIConnectionError: checar antes
        if isinstance(error, openai.APITimeoutError):
            return ExternalServiceError(f"AI request timeout: {error}", transient=True, error_code="ERR_2001")
        if isinstance(error, openai.APIConnectionError):
            return ExternalServiceError(f"AI connection error: {error}", transient=True, error_code="ERR_2006")
        if isinstance(error, openai.RateLimitError):
            # Sem créditos não volta sozinho
            if getattr(error, "code", None) == "insufficient_quota":
                return ExternalServiceError(f"AI quota exceeded: {error}", transient=False, error_code="ERR_2002")
            return ExternalServiceError(f"AI rate limit: {error}", transient=True, error_code="ERR_2002")
        if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return ExternalServiceError(f"AI authentication failed: {error}", transient=False, error_code="ERR_2004")
        if isinstance(error, openai.APIStatusError):
            status = error.status_code
            if status == 408:
                return ExternalServiceError(f"AI request timeout: {error}", transient=True, error_code="ERR_2001")
            if status == 409 or status >= 500:
                return ExternalServiceError(f"AI provider unavailable ({status}): {error}", transient=True, error_code="ERR_2006")
            if status == 413:
                return ExternalServiceError(f"Image too large: {error}", transient=False, error_code="ERR_1003")
            return ExternalServiceError(f"AI rejected the request ({status}): {error}", transient=False, error_code="ERR_1002")
        if isinstance(error, openai.ContentFilterFinishReasonError):
            return ExternalServiceError(f"AI content filter: {error}", transient=False, error_code="ERR_2005")
        if isinstance(error, (openai.LengthFinishReasonError, PydanticValidationError)):
            return ExternalServiceError(f"AI structured output validation failed: {error}", transient=False, error_code="ERR_2003")
        return ExternalServiceError(f"Unexpected AI error: {type(error).__name__}: {error}", transient=False, error_code="ERR_9001")
