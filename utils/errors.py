"""Exception hierarchy for the recording-to-metadata pipeline."""

# Environment variable names per provider
API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GOOGLE_API_KEY",
}


class ScreenContextError(Exception):
    """Base exception carrying a human-readable reason."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ConfigError(ScreenContextError):
    """Raised when a configuration value is invalid."""


# =============================================================================
# Fatal pipeline errors
# =============================================================================


class PipelineError(ScreenContextError):
    """A failure that aborts the whole pipeline run."""


class CaptureError(PipelineError):
    """Raised when every capture constraint set has been rejected."""

    def __init__(self, reason: str, attempts: list[str] | None = None):
        super().__init__(reason)
        self.attempts = attempts or []


class FrameSamplingError(PipelineError):
    """Raised when the recorded video cannot be decoded into frames."""


class PipelineBusyError(PipelineError):
    """Raised when a recording is started while another one is in flight."""


class ProcessingCancelledError(PipelineError):
    """Raised when a recording is cancelled and partial data is discarded."""


class SessionStateError(ScreenContextError):
    """Raised on an illegal recording session transition."""


# =============================================================================
# Provider errors (degraded, never fatal inside the pipeline)
# =============================================================================


class ProviderError(ScreenContextError):
    """Raised when a remote AI call fails."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider


class ProviderUnavailableError(ProviderError):
    """Raised when a provider does not offer the requested capability."""


class MissingAPIKeyError(ProviderUnavailableError):
    """Raised when a required API key is not configured."""

    def __init__(self, provider: str):
        env_var = API_KEY_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
        super().__init__(provider, f"API key not found. Set the {env_var} environment variable.")
