"""Tests for OpenAIAnalyzer: request shape and error classification."""
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from src.domain.exceptions import ExternalServiceError
from src.models import AchadoSST, AnaliseFotoSST
from src.services.ai_analyzer import OpenAIAnalyzer, guess_mime_type

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
JPEG = b'\xff\xd8\xff\xe0' + b'\x00' * 16


def _status_error(cls, status, body=None):
    response = httpx.Response(status, request=REQUEST)
    return cls(f"HTTP {status}", response=response, body=body)


def _completion(parsed=None, refusal=None):
    message = MagicMock()
    message.parsed = parsed
    message.refusal = refusal
    completion = MagicMock()
    completion.choices = [MagicMock(message=message)]
    completion.usage.prompt_tokens = 100
    completion.usage.completion_tokens = 20
    return completion


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def analyzer(client):
    return OpenAIAnalyzer(model_name="gpt-4o-mini", timeout=5, client=client)


class TestAnalyze:

    def test_returns_parsed_findings(self, analyzer, client):
        parsed = AnaliseFotoSST(achados=[AchadoSST(
            descricao='Cabeamento exposto', nivel_risco='Alto',
            acao_corretiva='Isolar o cabo', acao_preventiva='Inspeção mensal',
        )])
        client.chat.completions.parse.return_value = _completion(parsed=parsed)

        result = analyzer.analyze(JPEG, "prompt do sistema")

        assert result.achados[0].nivel_risco == 'Alto'
        kwargs = client.chat.completions.parse.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] is AnaliseFotoSST
        assert kwargs["messages"][0] == {"role": "system", "content": "prompt do sistema"}
        image_part = kwargs["messages"][1]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")

    def test_empty_findings_is_a_valid_answer(self, analyzer, client):
        client.chat.completions.parse.return_value = _completion(parsed=AnaliseFotoSST(achados=[]))
        assert analyzer.analyze(JPEG, "p").achados == []

    def test_refusal_is_permanent(self, analyzer, client):
        client.chat.completions.parse.return_value = _completion(refusal="Não posso ajudar")
        with pytest.raises(ExternalServiceError) as exc_info:
            analyzer.analyze(JPEG, "p")
        assert exc_info.value.transient is False
        assert exc_info.value.error_code == "ERR_2005"

    def test_missing_parsed_output_is_permanent(self, analyzer, client):
        client.chat.completions.parse.return_value = _completion(parsed=None)
        with pytest.raises(ExternalServiceError) as exc_info:
            analyzer.analyze(JPEG, "p")
        assert exc_info.value.error_code == "ERR_2005"

    def test_empty_image_never_reaches_provider(self, analyzer, client):
        with pytest.raises(ExternalServiceError) as exc_info:
            analyzer.analyze(b"", "p")
        assert exc_info.value.error_code == "ERR_1001"
        client.chat.completions.parse.assert_not_called()

    def test_without_api_key(self, monkeypatch):
        monkeypatch.setattr("src.services.ai_analyzer.config.OPENAI_API_KEY", None)
        analyzer = OpenAIAnalyzer(api_key=None)
        with pytest.raises(ExternalServiceError) as exc_info:
            analyzer.analyze(JPEG, "p")
        assert exc_info.value.error_code == "ERR_2004"

    def test_sdk_errors_are_classified(self, analyzer, client):
        client.chat.completions.parse.side_effect = openai.APITimeoutError(request=REQUEST)
        with pytest.raises(ExternalServiceError) as exc_info:
            analyzer.analyze(JPEG, "p")
        assert exc_info.value.transient is True
        assert exc_info.value.error_code == "ERR_2001"


class TestClassifyError:

    @pytest.mark.parametrize("error,transient,code", [
        (openai.APITimeoutError(request=REQUEST), True, "ERR_2001"),
        (openai.APIConnectionError(request=REQUEST), True, "ERR_2006"),
        (_status_error(openai.RateLimitError, 429), True, "ERR_2002"),
        (_status_error(openai.RateLimitError, 429, body={"code": "insufficient_quota"}), False, "ERR_2002"),
        (_status_error(openai.AuthenticationError, 401), False, "ERR_2004"),
        (_status_error(openai.PermissionDeniedError, 403), False, "ERR_2004"),
        (_status_error(openai.InternalServerError, 500), True, "ERR_2006"),
        (_status_error(openai.APIStatusError, 503), True, "ERR_2006"),
        (_status_error(openai.APIStatusError, 408), True, "ERR_2001"),
        (_status_error(openai.ConflictError, 409), True, "ERR_2006"),
        (_status_error(openai.APIStatusError, 413), False, "ERR_1003"),
        (_status_error(openai.BadRequestError, 400), False, "ERR_1002"),
        (openai.ContentFilterFinishReasonError(), False, "ERR_2005"),
        (RuntimeError("boom"), False, "ERR_9001"),
    ])
    def test_mapping(self, error, transient, code):
        classified = OpenAIAnalyzer.classify_error(error)
        assert classified.transient is transient
        assert classified.error_code == code

    def test_pydantic_validation_error(self):
        with pytest.raises(Exception) as exc_info:
            AnaliseFotoSST.model_validate({"achados": [{"descricao": "x"}]})
        classified = OpenAIAnalyzer.classify_error(exc_info.value)
        assert classified.error_code == "ERR_2003"
        assert classified.transient is False

    def test_already_classified_passes_through(self):
        error = ExternalServiceError("x", transient=True, error_code="ERR_2002")
        assert OpenAIAnalyzer.classify_error(error) is error


class TestGuessMimeType:

    @pytest.mark.parametrize("data,expected", [
        (b"\x89PNG\r\n\x1a\n", "image/png"),
        (b"GIF89a", "image/gif"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (JPEG, "image/jpeg"),
    ])
    def test_sniffing(self, data, expected):
        assert guess_mime_type(data) == expected
