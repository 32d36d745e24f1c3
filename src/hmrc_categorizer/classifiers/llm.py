import os

import openai
from openai import AsyncOpenAI

from hmrc_categorizer.errors import AIClassifierError, ClassificationError
from hmrc_categorizer.logger import get_logger
from hmrc_categorizer.models import AIRequest

from .base import AIClassifier

logger = get_logger(__name__)

SYSTEM_INSTRUCTIONS = (
    "You are an expert UK tax advisor specializing in HMRC Making Tax Digital "
    "categorization. Answer with a single category code, PERSONAL or MANUAL_REVIEW."
)

# Retrying these cannot succeed until the configuration changes
_NON_RETRYABLE_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.BadRequestError,
)


class OpenAIClassifier(AIClassifier):
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
    ):
        self.client = AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
            max_retries=0,
        )
        self.model = model

    async def classify(self, request: AIRequest) -> str:
        try:
            response = await self.client.responses.create(
                model=self.model,
                instructions=SYSTEM_INSTRUCTIONS,
                input=request.prompt,
                temperature=0.0,
                timeout=request.timeout_ms / 1000,
            )
        except _NON_RETRYABLE_ERRORS as e:
            logger.error("[AI] Non-retryable error from %s: %s", self.model, e)
            raise ClassificationError(f"AI classifier rejected the request: {e}") from e
        except openai.RateLimitError as e:
            if getattr(e, "code", None) == "insufficient_quota":
                raise ClassificationError(f"AI classifier quota exhausted: {e}") from e
            raise AIClassifierError(f"AI classifier rate limited: {e}") from e
        except openai.APIError as e:
            logger.warning("[AI] Request to %s failed: %s", self.model, e)
            raise AIClassifierError(f"AI classifier request failed: {e}") from e

        text = self._extract_output_text(response)
        if text is None or not text.strip():
            raise ClassificationError("AI classifier returned an empty response")
        return text.strip()

    @staticmethod
    def _extract_output_text(response: object) -> str | None:
        output_text = getattr(response, "output_text", None)
        if output_text:
            return output_text

        output = getattr(response, "output", None)
        if not output:
            return None

        parts: list[str] = []
        for item in output:
            content = getattr(item, "content", None)
            if not content:
                continue
            for block in content:
                block_type = getattr(block, "type", None)
                if block_type in {"output_text", "text"}:
                    text = getattr(block, "text", None)
                    if text:
                        parts.append(text)

        if parts:
            return "".join(parts)
        return None
