"""
Model resolver: maps a requested model id onto an enabled configuration.
"""
from aiproxy.core.exceptions import ModelNotFoundError
from aiproxy.core.logger import get_logger
from aiproxy.models.model_config import ModelConfig
from aiproxy.services.store import ModelStore

logger = get_logger(__name__)


class ModelResolver:
    """Look up enabled model configurations, fresh from the store each time."""

    def __init__(self, store: ModelStore):
        self.store = store

    async def resolve(self, model_id: str) -> ModelConfig:
        """
        Resolve a model id.

        Args:
            model_id: Model id from the request body

        Returns:
            The enabled model configuration

        Raises:
            ModelNotFoundError: If no enabled configuration matches
        """
        model = await self.store.get_enabled_model(model_id)
        if model is None:
            logger.warning("Model not resolved", model_id=model_id)
            raise ModelNotFoundError(model_id)
        return model
