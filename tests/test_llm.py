from collections.abc import Generator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from hmrc_categorizer.classifiers.llm import OpenAIClassifier
from hmrc_categorizer.errors import AIClassifierError, ClassificationError
from hmrc_categorizer.models import AIRequest


@pytest.fixture
def mock_openai_client() -> Generator[MagicMock, None, None]:
    with patch("hmrc_categorizer.classifiers.llm.AsyncOpenAI") as mock:
        yield mock


def _request() -> AIRequest:
    return AIRequest(prompt="Categorize: Canva Pro", business_type="freelancer", timeout_ms=15000)


@pytest.mark.anyio
async def test_llm_classify(mock_openai_client: MagicMock) -> None:
    mock_instance = mock_openai_client.return_value
    mock_instance.responses.create = AsyncMock(
        return_value=SimpleNamespace(output_text=" advertisingCosts\n")
    )

    classifier = OpenAIClassifier(api_key="sk-fake", model="gpt-4o-mini")
    answer = await classifier.classify(_request())

    assert answer == "advertisingCosts"
    mock_instance.responses.create.assert_awaited_once()
    kwargs = mock_instance.responses.create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["input"] == "Categorize: Canva Pro"
    assert kwargs["temperature"] == 0.0
    assert kwargs["timeout"] == 15.0


@pytest.mark.anyio
async def test_llm_reads_output_blocks(mock_openai_client: MagicMock) -> None:
    response = SimpleNamespace(
        output_text=None,
        output=[SimpleNamespace(content=[SimpleNamespace(type="output_text", text="PERSONAL")])],
    )
    mock_openai_client.return_value.responses.create = AsyncMock(return_value=response)

    classifier = OpenAIClassifier(api_key="sk-fake")
    assert await classifier.classify(_request()) == "PERSONAL"


@pytest.mark.anyio
async def test_llm_empty_response_is_not_retryable(mock_openai_client: MagicMock) -> None:
    mock_openai_client.return_value.responses.create = AsyncMock(
        return_value=SimpleNamespace(output_text="", output=[])
    )

    classifier = OpenAIClassifier(api_key="sk-fake")
    with pytest.raises(ClassificationError) as exc_info:
        await classifier.classify(_request())
    assert not isinstance(exc_info.value, AIClassifierError)


@pytest.mark.anyio
async def test_llm_connection_errors_are_retryable(mock_openai_client: MagicMock) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    mock_openai_client.return_value.responses.create = AsyncMock(
        side_effect=openai.APIConnectionError(request=request)
    )

    classifier = OpenAIClassifier(api_key="sk-fake")
    with pytest.raises(AIClassifierError):
        await classifier.classify(_request())


@pytest.mark.anyio
async def test_llm_auth_errors_are_not_retryable(mock_openai_client: MagicMock) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(401, request=request)
    mock_openai_client.return_value.responses.create = AsyncMock(
        side_effect=openai.AuthenticationError("invalid_api_key", response=response, body=None)
    )

    classifier = OpenAIClassifier(api_key="sk-fake")
    with pytest.raises(ClassificationError) as exc_info:
        await classifier.classify(_request())
    assert not isinstance(exc_info.value, AIClassifierError)
