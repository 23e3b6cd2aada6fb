import logging

logger = logging.getLogger("formstate")


def global_error_handler(error: Exception, description: str = None):
    logger.error(
        "%s%s: %s",
        f"{description} - " if description else "",
        error.__class__.__name__,
        error,
        exc_info=(type(error), error, error.__traceback__),
    )


class FormStateError(Exception):
    """Base class for programmer errors raised by formstate."""


class UnknownFieldError(FormStateError, KeyError):
    """Raised when an operation names a field the schema does not define."""

    def __init__(self, field_name, known_fields=None):
        self.field_name = field_name
        self.known_fields = sorted(known_fields or [])
        super().__init__(field_name)

    def __str__(self):
        if self.known_fields:
            return f"Unknown field '{self.field_name}'. Known fields: {', '.join(self.known_fields)}"
        return f"Unknown field '{self.field_name}'"


class SchemaError(FormStateError, TypeError):
    pass


class ConfigurationError(FormStateError, ValueError):
    pass


class SchedulingError(FormStateError, RuntimeError):
    pass
