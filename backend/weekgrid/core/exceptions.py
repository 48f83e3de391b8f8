class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class InputValidationError(AppError):
    """Raised when a user edit is rejected before any mutation happens."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested week, class or teacher does not exist."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class SyncError(AppError):
    """Raised by snapshot stores when a load or save fails."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=503, details=details)
