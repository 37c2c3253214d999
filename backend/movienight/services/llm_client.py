"""
LLM client
──────────
Chat completions against Groq's OpenAI-compatible endpoint, always asking
for a JSON object back.
"""
import json
import logging

from openai import AsyncOpenAI, OpenAIError

from movienight.core.config import settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a movie recommendation expert. Always respond with valid JSON only."
DEFAULT_TEMPERATURE = 0.7


class LLMConfigError(Exception):
    """Raised when the LLM client is used without an API key."""


class LLMResponseError(Exception):
    """Raised when the completion fails or does not contain the expected JSON."""


class GroqChatService:
    """Thin async wrapper around the chat-completion call."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        api_key = api_key or settings.GROQ_API_KEY
        if not api_key:
            raise LLMConfigError(
                "GROQ_API_KEY is not set. "
                "Add it to your .env file or pass it explicitly."
            )
        self.model = model or settings.GROQ_MODEL
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url or settings.GROQ_BASE_URL)

    async def complete_json(self, prompt: str, max_tokens: int = 2000) -> dict:
        """Send *prompt* and return the parsed JSON object from the reply."""
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=DEFAULT_TEMPERATURE,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.error("LLM completion failed: %s", exc)
            raise LLMResponseError(f"AI request failed: {exc}") from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise LLMResponseError("No response from AI")
        return parse_json_reply(content)


def parse_json_reply(content: str) -> dict:
    """Parse the model's reply, which must be a JSON object."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse AI response: %s", content)
        raise LLMResponseError("Invalid JSON response from AI") from exc
    if not isinstance(data, dict):
        raise LLMResponseError("Invalid response format from AI")
    return data
