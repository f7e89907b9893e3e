"""
Database models for model configs, server config and request logs.
"""
from aiproxy.models.model_config import (
    ModelConfig,
    ModelPreset,
    MODEL_PRESETS,
    ProviderType,
    ServerConfig,
)
from aiproxy.models.request_log import RequestLog

__all__ = [
    "ModelConfig",
    "ModelPreset",
    "MODEL_PRESETS",
    "ProviderType",
    "ServerConfig",
    "RequestLog",
]
