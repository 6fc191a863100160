"""
OpenAI (and OpenAI-compatible API) model client
"""

import os
import time

import openai
from openai import OpenAI

from layout_gauge_core.domain.value_objects import ModelResponse
from layout_gauge_core.infrastructure.model_clients.base import ModelClient, RetryMixin


class OpenAIClient(RetryMixin, ModelClient):
    """Client using the OpenAI chat completions API"""

    def __init__(
        self,
        model_name: str,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: int = 120,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        max_tokens: int = 2048,
    ):
        """
        Args:
            model_name: Model name (e.g. gpt-4o-mini or openai/gpt-4o-mini)
            base_url: API endpoint (falls back to OPENAI_BASE_URL env var; None uses the OpenAI default)
            api_key: API key (falls back to OPENAI_API_KEY env var if not specified)
            timeout_seconds: Request timeout (default: 120)
            max_retries: Maximum number of attempts (default: 3)
            retry_delay_seconds: Base delay of the exponential backoff (default: 1.0)
            max_tokens: Maximum number of completion tokens (default: 2048)
        """
        self.model_name = model_name
        # Strip the openai/ prefix to get the model name for the API
        self.api_model_name = model_name.removeprefix("openai/")
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_tokens = max_tokens

        # Configuration priority: argument > environment variable > SDK default
        base_url = base_url or os.environ.get("OPENAI_BASE_URL")
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is not set.")

        self.base_url = base_url
        # Retries are handled by RetryMixin, not by the SDK
        self.client = OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )

    def generate(self, prompt: str) -> ModelResponse:
        """
        Send a prompt and retrieve the response

        Args:
            prompt: Input prompt

        Returns:
            ModelResponse: The model's response

        Raises:
            Exception: If the maximum number of retries is exceeded
        """
        def _call():
            start_time = time.time()
            response = self.client.chat.completions.create(
                model=self.api_model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.0,
                max_tokens=self.max_tokens,
            )
            end_time = time.time()

            latency_ms = int((end_time - start_time) * 1000)
            output = (response.choices[0].message.content or "").strip()

            # Retrieve token usage
            input_tokens = 0
            output_tokens = 0
            if response.usage:
                input_tokens = response.usage.prompt_tokens or 0
                output_tokens = response.usage.completion_tokens or 0

            return ModelResponse(
                output=output,
                latency_ms=latency_ms,
                model_name=self.model_name,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        return self._with_retry(
            _call,
            retryable_exceptions=(
                openai.APIConnectionError,
                openai.RateLimitError,
                openai.APIStatusError,
            ),
        )
