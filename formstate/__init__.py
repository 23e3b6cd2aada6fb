from .core import after_update, batch_updates, create_effect, create_signal, set_global_error_handler, untrack
from .exceptions import (
    ConfigurationError,
    FormStateError,
    SchedulingError,
    SchemaError,
    UnknownFieldError,
)
from .form import (
    UNSET,
    FieldHandle,
    FieldMeta,
    FieldResult,
    Form,
    FormMeta,
    FormOptions,
    FormResult,
    PostSubmitMode,
    Schema,
    ValidationMode,
    create_form,
)

__version__ = "0.1.0"

get_version = lambda: __version__
