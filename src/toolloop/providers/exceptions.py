"""
Provider exceptions for toolloop.

Defines custom exceptions for provider and transport errors.
"""


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class CapabilityError(ProviderError):
    """Model cannot satisfy the request's requirements.

    Raised before any network I/O. Carries every violated constraint,
    not just the first one found.
    """

    def __init__(self, model_id: str, errors: list[str]):
        super().__init__(
            f"Model '{model_id}' cannot satisfy request: {'; '.join(errors)}",
            provider=model_id.split("/")[0] if "/" in model_id else None,
        )
        self.model_id = model_id
        self.errors = list(errors)


class TransportError(ProviderError):
    """The model transport failed (network, provider or stream error)."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, provider)
        self.status_code = status_code


class ModelNotFoundError(ProviderError):
    """Requested model not found or not configured."""

    pass
