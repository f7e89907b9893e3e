"""
Model store: persistence access for model configs, server config and logs.
"""
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aiproxy.core.database import AsyncSessionLocal
from aiproxy.core.logger import get_logger
from aiproxy.models.model_config import ModelConfig, ServerConfig
from aiproxy.models.request_log import RequestLog

logger = get_logger(__name__)


class ModelStore:
    """
    Per-operation access to the gateway's records.

    Every method opens its own session, so no transaction spans more than
    one call and model changes are visible to the next request.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        """
        Initialize model store.

        Args:
            session_factory: Session factory (defaults to the app database)
        """
        self.session_factory = session_factory or AsyncSessionLocal

    # ------------------------------------------------------------------
    # Model configurations
    # ------------------------------------------------------------------

    async def list_enabled_models(self) -> List[ModelConfig]:
        """Get all enabled model configurations in creation order."""
        async with self.session_factory() as session:
            query = (
                select(ModelConfig)
                .where(ModelConfig.enabled == True)  # noqa: E712
                .order_by(ModelConfig.created_at, ModelConfig.id)
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_enabled_model(self, model_id: str) -> Optional[ModelConfig]:
        """
        Get the enabled configuration routed by ``model_id``.

        Duplicate ids resolve to the most recently created config.
        """
        async with self.session_factory() as session:
            query = (
                select(ModelConfig)
                .where(
                    ModelConfig.model_id == model_id,
                    ModelConfig.enabled == True  # noqa: E712
                )
                .order_by(ModelConfig.created_at.desc(), ModelConfig.id.desc())
                .limit(1)
            )
            result = await session.execute(query)
            return result.scalars().first()

    async def add_model(self, model: ModelConfig) -> ModelConfig:
        """Persist a new model configuration."""
        async with self.session_factory() as session:
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("Model config added", model_id=model.model_id, provider=model.provider_type)
            return model

    async def set_model_enabled(self, config_id: int, enabled: bool) -> bool:
        """
        Toggle a model configuration.

        Returns:
            False if no configuration has ``config_id``
        """
        async with self.session_factory() as session:
            model = await session.get(ModelConfig, config_id)
            if model is None:
                return False
            model.enabled = enabled
            await session.commit()
            return True

    # ------------------------------------------------------------------
    # Request logs
    # ------------------------------------------------------------------

    async def add_request_log(self, entry: RequestLog) -> RequestLog:
        """Append a request log row."""
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
            return entry

    async def list_request_logs(self, limit: int = 100) -> List[RequestLog]:
        """Get the most recent request log rows, newest first."""
        async with self.session_factory() as session:
            query = (
                select(RequestLog)
                .order_by(RequestLog.timestamp.desc(), RequestLog.id.desc())
                .limit(limit)
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Server configuration
    # ------------------------------------------------------------------

    async def get_server_config(self) -> ServerConfig:
        """Get the singleton server config, creating it with defaults."""
        async with self.session_factory() as session:
            result = await session.execute(select(ServerConfig).order_by(ServerConfig.id).limit(1))
            config = result.scalars().first()
            if config is None:
                config = ServerConfig()
                session.add(config)
                await session.commit()
                await session.refresh(config)
                logger.info("Created default server config")
            return config

    async def update_server_config(self, **values) -> ServerConfig:
        """
        Update fields of the singleton server config.

        Args:
            **values: Column values to set

        Returns:
            The updated config
        """
        async with self.session_factory() as session:
            result = await session.execute(select(ServerConfig).order_by(ServerConfig.id).limit(1))
            config = result.scalars().first()
            if config is None:
                config = ServerConfig()
                session.add(config)

            for key, value in values.items():
                if not hasattr(ServerConfig, key):
                    raise AttributeError(f"Unknown server config field: {key}")
                setattr(config, key, value)

            await session.commit()
            await session.refresh(config)
            return config
