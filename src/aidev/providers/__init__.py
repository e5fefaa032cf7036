from .base import BaseProvider, ModelProvider, ProviderError, RequestAborted, get_model_provider

__all__ = ["BaseProvider", "ModelProvider", "ProviderError", "RequestAborted", "get_model_provider"]
