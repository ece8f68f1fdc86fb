from typing import List, Optional


class ServiceError(Exception):
    """Base for failures that end a request with a JSON error body.

    ``message`` is what the caller sees; anything sensitive belongs in the
    chained cause and the server log.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(ServiceError):
    status_code = 400


class InvalidInputError(ValidationError):
    pass


class UploadError(ServiceError):
    pass


class LedgerError(ServiceError):
    pass


class ConfigurationError(ServiceError):
    pass


class GraphApiError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Graph API error {status}: {message}")
        self.status = status
        self.message = message


class GraphAuthError(GraphApiError):
    def __init__(self, message: str) -> None:
        super().__init__(401, message)
