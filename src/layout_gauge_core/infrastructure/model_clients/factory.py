"""
Model client factory

Creates the text-completion client from configuration.
"""

from __future__ import annotations

from layout_gauge_core.gauge_config import GaugeConfig, load_config
from layout_gauge_core.infrastructure.model_clients.base import ModelClient
from layout_gauge_core.infrastructure.model_clients.openai_client import OpenAIClient


def create_client(model_name: str | None = None, config: GaugeConfig | None = None) -> ModelClient:
    """
    Create a text-completion client

    Args:
        model_name: Model name (uses the configured model if not provided)
        config: GaugeConfig (loads from env if not provided)

    Returns:
        ModelClient: The client instance
    """
    if config is None:
        config = load_config()

    return OpenAIClient(
        model_name or config.openai.model,
        base_url=config.openai.base_url,
        timeout_seconds=config.openai.timeout_seconds,
        max_retries=config.openai.max_retries,
        max_tokens=config.openai.max_tokens,
    )
