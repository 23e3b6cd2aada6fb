import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from formstate.exceptions import UnknownFieldError
from formstate.form.validator import Validator

logger = logging.getLogger(__name__)


class _Unset:
    """Marks a field that has no value at all, distinct from None."""
    __slots__ = ()

    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return "UNSET"


UNSET = _Unset()

Number = Union[int, float]


class Field:
    """
    Represents a single field in a form schema.

    Fields are required unless marked `.optional()`: an UNSET value (or None
    without `.nullable()`) fails with the required message. `.required()`
    additionally rejects empty strings and empty collections.
    """
    def __init__(self, name: str):
        self.name = name
        self.type: Optional[type] = None
        self.type_message: Optional[str] = None
        self.required_flag: bool = False
        self.optional_flag: bool = False
        self.nullable_flag: bool = False
        self.trim_flag: bool = False
        self.validation_functions: List[Callable[[Any], Optional[str]]] = []
        self.async_validation_functions: List[Callable[[Any], Union[Optional[str], Awaitable[Optional[str]]]]] = []
        self.default_value_attr: Any = UNSET
        self.required_message: str = "This field is required."

    # -- Primitives ---
    def _typed(self, expected: type, error_message: Optional[str]) -> 'Field':
        self.type = expected
        self.type_message = error_message
        return self

    def string(self, error_message: str = None) -> 'Field':
        return self._typed(str, error_message)

    def int(self, error_message: str = None) -> 'Field':
        return self._typed(int, error_message)

    def float(self, error_message: str = None) -> 'Field':
        return self._typed(float, error_message)

    def number(self, error_message: str = None) -> 'Field':
        """Accepts ints and floats."""
        return self._typed(float, error_message)

    def bool(self, error_message: str = None) -> 'Field':
        return self._typed(bool, error_message)

    def list(self, error_message: str = None) -> 'Field':
        return self._typed(list, error_message)

    def dict(self, error_message: str = None) -> 'Field':
        return self._typed(dict, error_message)
    # -- End Primitives ---

    def trim(self) -> 'Field':
        """Strips string values before validation."""
        self.trim_flag = True
        return self

    def required(self, error_message: str = "This field is required.") -> 'Field':
        """Rejects empty strings and collections as well as missing values."""
        self.required_flag = True
        self.optional_flag = False
        self.required_message = error_message
        return self

    def optional(self) -> 'Field':
        """Lets the field be UNSET. Overrides `.required()`."""
        self.optional_flag = True
        self.required_flag = False
        return self

    def nullable(self) -> 'Field':
        """Allows None; other rules are skipped for None."""
        self.nullable_flag = True
        return self

    def default_value(self, value: Any) -> 'Field':
        """Seed value used by `create_form` unless `initial_values` overrides it."""
        self.default_value_attr = value
        return self

    def min_length(self, length: int, error_message: str = None) -> 'Field':
        self.validation_functions.append(Validator.min_length(length, error_message))
        return self

    def max_length(self, length: int, error_message: str = None) -> 'Field':
        self.validation_functions.append(Validator.max_length(length, error_message))
        return self

    def email(self, error_message: str = "Must be a valid email address.") -> 'Field':
        self.validation_functions.append(lambda value: Validator.email(value, error_message))
        return self

    def url(self, error_message: str = "Must be a valid URL.") -> 'Field':
        self.validation_functions.append(lambda value: Validator.url(value, error_message))
        return self

    def regex(self, pattern: str, error_message: str = "Invalid format.") -> 'Field':
        self.validation_functions.append(Validator.regex(pattern, error_message))
        return self

    def min_value(self, min_val: Number, error_message: str = None) -> 'Field':
        self.validation_functions.append(Validator.min_value(min_val, error_message))
        return self

    def max_value(self, max_val: Number, error_message: str = None) -> 'Field':
        self.validation_functions.append(Validator.max_value(max_val, error_message))
        return self

    def between(self, min_val: Number, max_val: Number, error_message: str = None) -> 'Field':
        return self.min_value(min_val, error_message).max_value(max_val, error_message)

    def date_min(self, min_date, error_message: str = None) -> 'Field':
        self.validation_functions.append(Validator.date_min(min_date, error_message))
        return self

    def custom(self, validation_func: Callable[[Any], Optional[str]]) -> 'Field':
        self.validation_functions.append(Validator.custom(validation_func))
        return self

    def async_validator(self, validation_func: Callable[[Any], Any]) -> 'Field':
        """Adds a validator that may return a coroutine. It only runs once the sync rules pass."""
        self.async_validation_functions.append(validation_func)
        return self

    def check(self, value: Any) -> List[str]:
        """Runs the synchronous rules and returns every issue, in rule order."""
        if value is UNSET or (value is None and not self.nullable_flag):
            return [] if self.optional_flag else [self.required_message]
        if value is None:
            return []

        if self.trim_flag and isinstance(value, str):
            value = value.strip()

        if self.required_flag:
            message = Validator.required(value, self.required_message, allow_none=self.nullable_flag)
            if message:
                return [message]

        if self.type is not None:
            message = Validator.of_type(self.type, self.type_message)(value)
            if message:
                # Range and format rules are meaningless on the wrong type
                return [message]

        issues = []
        for validation_func in self.validation_functions:
            message = validation_func(value)
            if message:
                issues.append(message)
        return list(dict.fromkeys(issues))

    async def check_async(self, value: Any) -> List[str]:
        issues = self.check(value)
        if issues or not self.async_validation_functions or value is UNSET or value is None:
            return issues

        if self.trim_flag and isinstance(value, str):
            value = value.strip()

        results = await asyncio.gather(
            *(self._run_async_validator(validator, value) for validator in self.async_validation_functions)
        )
        return list(dict.fromkeys(message for message in results if message))

    async def _run_async_validator(self, validator: Callable[[Any], Any], value: Any) -> Optional[str]:
        """Runs a single async validator, turning crashes into an issue message."""
        try:
            result = validator(value)
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                result = await result
        except Exception as e:
            logger.exception("Error executing async validator for '%s'", self.name)
            return f"Validation error: {e}"

        if result is not None and not isinstance(result, str):
            logger.warning("Async validator for '%s' returned non-string: %r", self.name, result)
            return "Invalid validation result."
        return result


class Schema:
    """
    Defines the fields of a form and their validation rules.

    >>> schema = Schema()
    >>> schema.field("age").number().between(18, 99)
    """
    def __init__(self):
        self.fields: Dict[str, Field] = {}

    def field(self, name: str) -> Field:
        """Adds a field to the schema and returns it for chaining."""
        field = Field(name)
        self.fields[name] = field
        return field

    @property
    def field_names(self) -> List[str]:
        return list(self.fields)

    def get_field(self, name: str) -> Field:
        try:
            return self.fields[name]
        except KeyError:
            raise UnknownFieldError(name, self.fields) from None

    def pick(self, name: str) -> 'Schema':
        """Returns a schema holding only `name`."""
        narrowed = Schema()
        narrowed.fields[name] = self.get_field(name)
        return narrowed

    def defaults(self) -> Dict[str, Any]:
        """UNSET for every field, overlaid with schema defaults."""
        return {name: field.default_value_attr for name, field in self.fields.items()}

    def validate(self, form_data: Dict[str, Any]) -> Dict[str, List[str]]:
        """Validates every field synchronously. Only failing fields appear in the result."""
        errors: Dict[str, List[str]] = {}
        for name, field in self.fields.items():
            issues = field.check(form_data.get(name, UNSET))
            if issues:
                errors[name] = issues
        return errors

    async def validate_async(self, form_data: Dict[str, Any]) -> Dict[str, List[str]]:
        """Validates every field, async validators included, concurrently across fields."""
        names = list(self.fields)
        results = await asyncio.gather(
            *(self.fields[name].check_async(form_data.get(name, UNSET)) for name in names)
        )
        return {name: issues for name, issues in zip(names, results) if issues}
