"""
Gemini client for the optional model-generated plan skeleton.

The rule-based builder never needs it: PlanService asks for a skeleton first
and falls back to the rules whenever this client raises ExternalAPIError.

Usage:
    from clients.gemini_client import GeminiClient

    client = GeminiClient()
    text = await client.generate_content(
        prompt="渋谷で初デートのプランをJSONで...",
        system_instruction="あなたはデートプランナーです。",
        response_mime_type="application/json",
        request_id="plan_20260101_abcd1234",
    )
"""

import asyncio
import functools
import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from config.settings import settings

logger = logging.getLogger(__name__)

# pause between attempts; patched to 0 in tests
RETRY_BACKOFF_SECONDS = 0.5


class ExternalAPIError(Exception):
    """An external service still failed after every retry."""

    def __init__(self, service: str, error: str, retry_count: int = 0):
        self.service = service
        self.error = error
        self.retry_count = retry_count
        super().__init__(f"{service} API failed: {error} (retries: {retry_count})")


class GeminiClient:
    """Runs blocking google-genai calls in the executor, one bounded attempt at a time."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.GEMINI_KEY
        if not self.api_key:
            raise ValueError("GEMINI_KEY is not set in backend/.env")

        self.model_name = model_name or settings.GEMINI_MODEL
        attempts = settings.GEMINI_MAX_RETRIES if max_retries is None else max_retries
        self.max_retries = max(1, attempts)
        self.timeout = settings.GEMINI_TIMEOUT if timeout is None else timeout
        self.client = genai.Client(api_key=self.api_key)

    @staticmethod
    def _config(
        system_instruction: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
        response_mime_type: Optional[str],
    ) -> types.GenerateContentConfig:
        if temperature is None:
            temperature = settings.GEMINI_ITINERARY_TEMPERATURE
        return types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens or settings.GEMINI_ITINERARY_MAX_TOKENS,
            system_instruction=system_instruction,
            response_mime_type=response_mime_type,
        )

    async def _attempt(self, call: Any) -> str:
        """One executor round-trip; raises on timeout or on an empty reply."""
        loop = asyncio.get_running_loop()
        response = await asyncio.wait_for(loop.run_in_executor(None, call), timeout=self.timeout)
        if not response.text:
            raise ValueError("empty response")
        return response.text

    async def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_mime_type: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> str:
        """
        Send one prompt and return the model's text.

        Args:
            prompt: Full user prompt.
            system_instruction: Optional persona/instruction block.
            temperature: Defaults to GEMINI_ITINERARY_TEMPERATURE.
            max_tokens: Defaults to GEMINI_ITINERARY_MAX_TOKENS.
            response_mime_type: "application/json" for the plan skeleton.
            request_id: Plan id carried into log records.

        Raises:
            ExternalAPIError: After max_retries failed, timed out or empty attempts.
        """
        call = functools.partial(
            self.client.models.generate_content,
            model=self.model_name,
            contents=prompt,
            config=self._config(system_instruction, temperature, max_tokens, response_mime_type),
        )
        log_extra = {"request_id": request_id}
        logger.debug("Gemini request: model=%s prompt=%d chars", self.model_name, len(prompt), extra=log_extra)

        failure = "no attempt made"
        for attempt in range(1, self.max_retries + 1):
            try:
                text = await self._attempt(call)
            except asyncio.TimeoutError:
                failure = f"timeout after {self.timeout}s"
            except Exception as exc:
                failure = str(exc) or type(exc).__name__
            else:
                logger.info("Gemini reply: %d chars", len(text), extra=log_extra)
                return text

            logger.warning(
                "Gemini attempt %d/%d failed: %s", attempt, self.max_retries, failure, extra=log_extra
            )
            if attempt < self.max_retries:
                await asyncio.sleep(RETRY_BACKOFF_SECONDS)

        raise ExternalAPIError(service="Gemini", error=failure, retry_count=self.max_retries)
