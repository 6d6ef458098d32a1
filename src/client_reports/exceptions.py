"""Custom exceptions for Client Reports."""


class ClientReportsError(Exception):
    """Base exception for all Client Reports errors."""


class ProviderError(ClientReportsError):
    """Exception raised when the mailbox API is unreachable or returns garbage."""


class AuthenticationError(ProviderError):
    """Exception raised when no usable mailbox access token is available."""


class EmbeddingApiError(ClientReportsError):
    """Exception raised when embedding generation fails."""


class SummarizationError(ClientReportsError):
    """Exception raised when summary generation fails."""


class StorageError(ClientReportsError):
    """Exception raised for relational or vector storage failures."""


class ConfigurationError(ClientReportsError):
    """Exception raised for configuration related errors."""


class ValidationError(ClientReportsError):
    """Exception raised for malformed request parameters."""
