"""
Domain exceptions - Business-level errors.

These exceptions represent business rule violations and domain-specific errors.
They should be caught at the application layer and translated to appropriate responses.
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ValidationError(DomainError):
    """Raised when validation fails."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class NotFoundError(DomainError):
    """
    Raised when an entity is not found.

    Also used for entities owned by another organization, so callers can't
    tell a foreign id from a missing one.
    """

    def __init__(self, entity_type: str, identifier: str = None):
        self.entity_type = entity_type
        self.identifier = identifier
        message = f"{entity_type} não encontrado"
        if identifier:
            message = f"{entity_type} '{identifier}' não encontrado"
        super().__init__(message, f"{entity_type.upper()}_NOT_FOUND")


class ConflictError(DomainError):
    """Raised when the request conflicts with work already in flight."""

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(message, code)


class ExternalServiceError(DomainError):
    """
    Raised when an external collaborator (AI provider, scheduler) fails.

    `transient` tells the caller whether retrying can help (timeouts, rate
    limits, connection drops) or not (rejected input, invalid output).
    """

    def __init__(self, message: str, transient: bool = False, service: str = "AI", error_code: str = None):
        self.transient = transient
        self.service = service
        self.error_code = error_code  # ERR_xxxx do catálogo, quando já conhecido
        kind = "TRANSIENT" if transient else "PERMANENT"
        super().__init__(message, f"{service.upper()}_{kind}_ERROR")


class PersistenceError(DomainError):
    """Raised when the database fails. Always fatal to the current operation."""

    def __init__(self, message: str):
        super().__init__(message, "PERSISTENCE_ERROR")


# Specific domain errors

class InspectionNotFoundError(NotFoundError):
    """Raised when an inspection is not found."""

    def __init__(self, inspection_id: str = None):
        super().__init__("Inspeção", inspection_id)


class AnalysisInProgressError(ConflictError):
    """Raised when an analysis run is already active for the inspection."""

    def __init__(self, inspection_id: str):
        self.inspection_id = inspection_id
        message = f"Inspeção '{inspection_id}' já está em análise"
        super().__init__(message, "ANALYSIS_IN_PROGRESS")


class InvalidStatusTransitionError(ConflictError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: str, target_status: str):
        self.current_status = current_status
        self.target_status = target_status
        message = f"Não é possível mudar de '{current_status}' para '{target_status}'"
        super().__init__(message, "STATUS_TRANSITION")
