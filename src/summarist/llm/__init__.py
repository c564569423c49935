from .providers import (
    AnthropicProvider,
    GenerationRequest,
    GenerationResult,
    GoogleProvider,
    OpenAICompatibleProvider,
    ProviderError,
    TextProvider,
    build_providers,
)

__all__ = [
    "AnthropicProvider",
    "GenerationRequest",
    "GenerationResult",
    "GoogleProvider",
    "OpenAICompatibleProvider",
    "ProviderError",
    "TextProvider",
    "build_providers",
]
