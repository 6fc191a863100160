"""
Model client package

Provides the text-completion interface used to synthesize prompt variants.
"""

from layout_gauge_core.infrastructure.model_clients.base import ModelClient
from layout_gauge_core.infrastructure.model_clients.factory import create_client
from layout_gauge_core.domain.value_objects import ModelResponse

__all__ = ["ModelClient", "ModelResponse", "create_client"]
