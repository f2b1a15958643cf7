# farmpulse/errors.py
from typing import Optional


class FarmPulseError(Exception):
    """Base class for errors that are reported back to a caller."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FarmPulseError):
    """A sensor batch failed structural or range validation. Nothing was written."""
    status_code = 400

    def __init__(self, message: str, sensor_type: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.sensor_type = sensor_type
        self.field = field


class AuthError(FarmPulseError):
    status_code = 401


class NotFoundError(FarmPulseError):
    status_code = 404


class PersistenceError(FarmPulseError):
    """One store failed a read or write. Callers log it and carry on."""

    def __init__(self, message: str, store: str):
        super().__init__(message)
        self.store = store


class InternalError(FarmPulseError):
    pass
