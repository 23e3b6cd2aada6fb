from .adapter import NativeSchemaAdapter, PydanticSchemaAdapter, SchemaAdapter, ValidationOutcome, adapt_schema
from .engine import FieldResult, FormResult, ValidationEngine
from .form import FieldAccessProxy, FieldHandle, Form, FormOptions, create_form
from .policy import Action, Event, PostSubmitMode, ValidationMode, decide
from .schema import UNSET, Field, Schema
from .store import ErrorStore, FieldMeta, FieldStore, FormMeta, MetaStore, derive_form_meta
from .validator import Validator
