"""
Model and server configuration database models.
"""
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple
from sqlalchemy import Column, Integer, String, Text, Boolean, Float, DateTime, Index

from aiproxy.core.database import Base


class ProviderType(str, Enum):
    """Upstream provider tag."""
    ZHIPU = "zhipu"
    KIMI = "kimi"
    DEEPSEEK = "deepseek"
    T8STAR = "t8star"
    OPENAI = "openai"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES[self]

    @classmethod
    def from_tag(cls, tag: str) -> "ProviderType":
        """Resolve a stored tag, treating unknown tags as custom."""
        try:
            return cls(tag)
        except ValueError:
            return cls.CUSTOM


PROVIDER_DISPLAY_NAMES = {
    ProviderType.ZHIPU: "Zhipu AI",
    ProviderType.KIMI: "Kimi (Moonshot)",
    ProviderType.DEEPSEEK: "DeepSeek",
    ProviderType.T8STAR: "T8Star",
    ProviderType.OPENAI: "OpenAI",
    ProviderType.CUSTOM: "Custom",
}


class ModelConfig(Base):
    """Upstream model configuration, routed by ``model_id``."""

    __tablename__ = "models"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)  # Display name
    model_id = Column(String(100), nullable=False, index=True)  # Not unique
    provider_type = Column(String(50), nullable=False, default=ProviderType.CUSTOM.value)
    api_url = Column(String(500), nullable=False)
    api_key = Column(Text, nullable=False, default="")
    enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_model_id_enabled', 'model_id', 'enabled'),
    )

    @property
    def provider(self) -> ProviderType:
        return ProviderType.from_tag(self.provider_type)

    def __repr__(self) -> str:
        return f"<ModelConfig {self.model_id} ({self.provider_type}) enabled={self.enabled}>"


class ServerConfig(Base):
    """
    Persisted gateway settings.

    Only the first row is used. ``max_retries`` and ``retry_delay`` are
    stored for the management surface; forwarding makes a single attempt.
    """

    __tablename__ = "server_config"

    id = Column(Integer, primary_key=True, index=True)
    host = Column(String(255), default="127.0.0.1", nullable=False)
    port = Column(Integer, default=3000, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    retry_delay = Column(Float, default=1.0, nullable=False)  # seconds
    request_timeout = Column(Float, default=60.0, nullable=False)  # seconds
    is_running = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ModelPreset(NamedTuple):
    """Built-in model template that becomes a config once a key is given."""
    provider_type: ProviderType
    name: str
    model_id: str
    api_url: str

    def create(self, api_key: str = "", enabled: bool = True) -> ModelConfig:
        return ModelConfig(
            name=self.name,
            model_id=self.model_id,
            provider_type=self.provider_type.value,
            api_url=self.api_url,
            api_key=api_key,
            enabled=enabled,
        )


MODEL_PRESETS: List[ModelPreset] = [
    ModelPreset(ProviderType.ZHIPU, "GLM-4.7", "glm-4.7", "https://open.bigmodel.cn/api/paas/v4"),
    ModelPreset(ProviderType.KIMI, "Kimi K2", "kimi-k2-0905-preview", "https://api.moonshot.cn/v1"),
    ModelPreset(ProviderType.DEEPSEEK, "DeepSeek V3", "deepseek-chat", "https://api.deepseek.com"),
    ModelPreset(ProviderType.DEEPSEEK, "DeepSeek Reasoner", "deepseek-reasoner", "https://api.deepseek.com"),
    ModelPreset(ProviderType.OPENAI, "GPT-4o", "gpt-4o", "https://api.openai.com/v1"),
    ModelPreset(ProviderType.OPENAI, "GPT-4o Mini", "gpt-4o-mini", "https://api.openai.com/v1"),
]
