"""
AI Client - Gemini API client for reply generation.

This module builds a persona-flavoured prompt from an inbound post and
calls the Gemini ``generateContent`` endpoint to produce a reply.

Configuration:
    AI_BASE_URL=https://generativelanguage.googleapis.com/v1beta
    AI_API_KEY=AIza...          (GEMINI_API_KEY is accepted too)
    AI_MODEL=gemini-2.0-flash

Usage:
    from src.ai_client import AIClient
    from config import settings

    client = AIClient(
        base_url=settings.ai_base_url,
        api_key=settings.ai_api_key,
        model=settings.ai_model,
    )

    result = await client.generate_reply(
        text="料金を教えてください",
        persona=persona,
    )
    print(result.reply, result.metadata)
"""

import logging
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.prompts import (
    CLOSING_INSTRUCTION,
    DEFAULT_MAX_LENGTH,
    DEFAULT_MIN_LENGTH,
    EXAMPLE_POST_LINE,
    EXAMPLE_POSTS_HEADER,
    ORIGINAL_POST_TEMPLATE,
    PERSONA_TEMPLATE,
    TEMPLATE_BODY_LINE,
    TEMPLATE_CTA_LINE,
    TEMPLATE_INTENT_LINE,
    TEMPLATE_LENGTH_LINE,
)
from src.errors import AIGenerationError, ConfigurationError
from src.models import GeneratedReply, Persona, Template

logger = logging.getLogger(__name__)

# Provider statuses worth another attempt when retries are enabled
TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


def build_prompt(
    text: str,
    persona: Persona,
    template: Optional[Template] = None,
    language: str = "日本語",
) -> str:
    """
    Assemble the generation prompt.

    Sections appear in a fixed order: original text, persona, example
    posts, template constraints, closing instruction. The same inputs
    always produce the same prompt.
    """
    parts = [
        ORIGINAL_POST_TEMPLATE.format(text=text),
        PERSONA_TEMPLATE.format(display_name=persona.display_name, style=persona.style),
    ]

    if persona.recent_posts:
        parts.append(EXAMPLE_POSTS_HEADER)
        for index, post in enumerate(persona.recent_posts, start=1):
            parts.append(EXAMPLE_POST_LINE.format(index=index, post=post))
        parts.append("\n")

    if template is not None:
        parts.append(TEMPLATE_BODY_LINE.format(body=template.body))
        if template.intent:
            parts.append(TEMPLATE_INTENT_LINE.format(intent=template.intent))
        if template.cta:
            parts.append(TEMPLATE_CTA_LINE.format(cta=template.cta))
        if template.min_len is not None or template.max_len is not None:
            parts.append(TEMPLATE_LENGTH_LINE.format(
                min_len=template.min_len if template.min_len is not None else DEFAULT_MIN_LENGTH,
                max_len=template.max_len if template.max_len is not None else DEFAULT_MAX_LENGTH,
            ))
        parts.append("\n")

    parts.append(CLOSING_INSTRUCTION.format(language=language))
    return "".join(parts)


def _is_transient_error(e: BaseException) -> bool:
    """Connection problems, timeouts, rate limits and 5xx are worth retrying."""
    if isinstance(e, httpx.TransportError):
        return True
    if isinstance(e, AIGenerationError) and e.provider_status in TRANSIENT_STATUSES:
        return True
    return False


class AIClient:
    """
    Gemini API client for generating persona replies.

    One call to ``generate_reply`` makes one provider request unless
    ``max_attempts`` is raised above 1, in which case transient failures
    are retried with exponential backoff.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        max_attempts: int = 1,
        language: str = "日本語",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the AI client.

        Args:
            base_url: API root (e.g., https://generativelanguage.googleapis.com/v1beta).
            api_key: Gemini API key.
            model: Model identifier (e.g., gemini-2.0-flash).
            timeout: Request timeout in seconds.
            max_attempts: Total attempts for transient errors (1 = no retry).
            language: Reply language named in the closing instruction.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.language = language
        self._transport = transport

        logger.info(f"AI Client initialized: {self.base_url} / {model}")

    async def generate_reply(
        self,
        text: str,
        persona: Persona,
        template: Optional[Template] = None,
    ) -> GeneratedReply:
        """
        Generate a reply to ``text`` in the voice of ``persona``.

        Args:
            text: Original post text.
            persona: Persona to speak as.
            template: Optional structured constraints.

        Returns:
            GeneratedReply with the cleaned reply and its metadata.

        Raises:
            ConfigurationError: No API key configured.
            AIGenerationError: Non-2xx status, empty text, or timeout.
        """
        if not self.api_key:
            raise ConfigurationError("AI API key is not configured")

        prompt = build_prompt(text, persona, template, self.language)
        logger.debug(f"Generated prompt ({len(prompt)} chars) for persona {persona.name}")

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=1, min=2, max=30),
                retry=retry_if_exception(_is_transient_error),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    content = await self._generate(prompt)
        except httpx.TimeoutException as e:
            raise AIGenerationError(f"AI provider timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise AIGenerationError(f"AI provider request failed: {e}") from e

        reply = self._clean_reply(content)
        if not reply:
            raise AIGenerationError("AI provider returned empty reply text")

        logger.debug(f"Generated reply ({len(reply)} chars): {reply[:50]}...")
        return GeneratedReply(
            reply=reply,
            model=self.model,
            persona_name=persona.name,
            template_id=template.template_id if template else None,
        )

    async def _generate(self, prompt: str) -> str:
        """
        Make one ``generateContent`` request and return the raw text.

        Raises:
            AIGenerationError: Non-2xx status or missing generated text.
            httpx.HTTPError: Transport failures, left for the caller to wrap.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                url=f"{self.base_url}/models/{self.model}:generateContent",
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json={"contents": [{"parts": [{"text": prompt}]}]},
            )

        if not response.is_success:
            logger.error(f"AI provider returned {response.status_code}: {response.text[:200]}")
            raise AIGenerationError(
                f"AI provider error: {response.status_code}",
                provider_status=response.status_code,
                raw_body=response.text,
            )

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
            if text is not None and not isinstance(text, str):
                raise TypeError(f"text is {type(text).__name__}, not str")
            return text or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected AI response structure: {e}")
            raise AIGenerationError(
                "AI provider returned no generated text",
                provider_status=response.status_code,
                raw_body=response.text,
            ) from e

    def _clean_reply(self, reply: str) -> str:
        """
        Clean up the generated reply.

        Removes surrounding whitespace, and a pair of wrapping quotes when
        the model quoted the whole reply. Quotes that belong to the text
        (another one of the same kind inside) are kept. Does NOT truncate.
        """
        reply = reply.strip()
        quote = reply[:1]
        if len(reply) >= 2 and quote in "\"'" and reply[-1] == quote and quote not in reply[1:-1]:
            reply = reply[1:-1]
        return reply.strip()

    async def health_check(self) -> bool:
        """
        Check if the AI service is available.

        Returns:
            True if the model endpoint responds, False otherwise.
        """
        if not self.api_key:
            return False
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.get(
                    url=f"{self.base_url}/models/{self.model}",
                    params={"key": self.api_key},
                )
                return response.status_code == 200
        except Exception as e:
            logger.error(f"AI health check failed: {e}")
            return False
