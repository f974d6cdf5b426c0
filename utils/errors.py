"""Custom exceptions for the sales coach agent."""


class SalesCoachError(Exception):
    """Base exception for the sales coach application."""

    pass


class ConfigError(SalesCoachError):
    """Configuration-related errors."""

    pass


class ValidationError(SalesCoachError):
    """Data validation errors."""

    pass


class ModeResolutionError(ValidationError):
    """A retrieval mode matched but a field it requires is missing."""

    def __init__(self, mode: str, detail: str) -> None:
        super().__init__(detail)
        self.mode = mode
        self.detail = detail


class ToolExecutionError(SalesCoachError):
    """Errors during data source access."""

    pass


class SupabaseError(ToolExecutionError):
    """Errors related to Supabase operations."""

    pass


class SourceFetchError(ToolExecutionError):
    """A context source could not produce its fragment."""

    pass


class LLMError(SalesCoachError):
    """Errors related to LLM API calls."""

    pass


class AgentTimeoutError(LLMError):
    """The agent exceeded its wall-clock budget."""

    pass


class RunLogError(SalesCoachError):
    """Errors while persisting agent run records."""

    pass
