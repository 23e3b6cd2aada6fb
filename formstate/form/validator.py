import datetime
import logging
import re
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

_TYPE_MESSAGES = {
    str: "Must be a string.",
    int: "Must be a whole number.",
    float: "Must be a number.",
    bool: "Must be a boolean (true or false).",
    list: "Must be a list.",
    dict: "Must be an object.",
}


class Validator:
    """
    Provides a set of built-in validation functions.

    Every function returns an error message, or None when the value passes.
    """

    @staticmethod
    def required(value: Any, error_message: str = "This field is required.", allow_none: bool = False) -> Optional[str]:
        """Checks if a value is required, potentially allowing None."""
        if allow_none and value is None:
            return None
        return Validator.not_empty(value, error_message, allow_none)

    @staticmethod
    def not_empty(value: Any, error_message: str = "This field cannot be empty.", allow_none: bool = False) -> Optional[str]:
        """Checks if a value is not empty, potentially allowing None."""
        if value is None:
            return None if allow_none else error_message

        # 0 and False are values, not emptiness
        if isinstance(value, (str, list, dict, tuple, set)) and not value:
            return error_message
        return None

    @staticmethod
    def of_type(expected: type, error_message: str = None) -> Callable[[Any], Optional[str]]:
        """Creates a validation function that checks the Python type of a value."""
        message = error_message or _TYPE_MESSAGES.get(expected, f"Must be of type {expected.__name__}.")

        def validate(value: Any) -> Optional[str]:
            # bool is an int subclass but never a number here
            if isinstance(value, bool) and expected is not bool:
                return message
            if expected is float and isinstance(value, int):
                return None
            if not isinstance(value, expected):
                return message
            return None
        return validate

    @staticmethod
    def min_length(length: int, error_message: str = None) -> Callable[[str], Optional[str]]:
        """Creates a validation function that checks for minimum length."""
        def validate(value: str) -> Optional[str]:
            if value is not None and len(str(value)) < length:
                return error_message or f"Must be at least {length} characters long."
            return None
        return validate

    @staticmethod
    def max_length(length: int, error_message: str = None) -> Callable[[str], Optional[str]]:
        """Creates a validation function that checks for maximum length."""
        def validate(value: str) -> Optional[str]:
            if value is not None and len(str(value)) > length:
                return error_message or f"Must be at most {length} characters long."
            return None
        return validate

    @staticmethod
    def email(value: str, error_message: str = None) -> Optional[str]:
        """
        Checks if a value is a valid email address.
        Empty values pass; 'required' handles mandatory fields.
        """
        if value is None or value == "":
            return None

        email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
        return Validator.regex(email_pattern, error_message or "Must be a valid email address.")(value)

    @staticmethod
    def url(value: str, error_message: str = None) -> Optional[str]:
        if value is None or value == "":
            return None

        url_pattern = r"^https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)$"
        return Validator.regex(url_pattern, error_message or "Must be a valid URL.")(value)

    @staticmethod
    def regex(pattern: str, error_message: str = None) -> Callable[[str], Optional[str]]:
        """Creates a validation function that checks against a regex pattern."""
        compiled_pattern = re.compile(pattern)

        def validate(value: str) -> Optional[str]:
            if value is not None and not compiled_pattern.fullmatch(str(value)):
                return error_message or "Invalid format."
            return None
        return validate

    @staticmethod
    def min_value(min_val: Union[int, float], error_message: str = None) -> Callable[[Union[int, float]], Optional[str]]:
        """Creates a validation function that checks for minimum value."""
        def validate(value: Union[int, float]) -> Optional[str]:
            if value is None:
                return None
            try:
                if float(value) < min_val:
                    return error_message or f"Must be at least {min_val}."
            except (ValueError, TypeError):
                return "Must be a valid number."
            return None
        return validate

    @staticmethod
    def max_value(max_val: Union[int, float], error_message: str = None) -> Callable[[Union[int, float]], Optional[str]]:
        """Creates a validation function that checks for maximum value."""
        def validate(value: Union[int, float]) -> Optional[str]:
            if value is None:
                return None
            try:
                if float(value) > max_val:
                    return error_message or f"Must be at most {max_val}."
            except (ValueError, TypeError):
                return "Must be a valid number."
            return None
        return validate

    @staticmethod
    def date_min(min_date: Union[str, datetime.date], error_message: str = None) -> Callable[[Union[str, datetime.date]], Optional[str]]:
        """Creates a validation function that checks for minimum date."""
        if isinstance(min_date, str):
            try:
                min_date = datetime.date.fromisoformat(min_date)
            except ValueError:
                raise ValueError(f"Invalid date format: {min_date}. Use ISO format (YYYY-MM-DD).")
        if isinstance(min_date, datetime.datetime):
            min_date = min_date.date()

        def validate(value: Union[str, datetime.date]) -> Optional[str]:
            if value is None or value == "":
                return None
            try:
                date_value = datetime.date.fromisoformat(value) if isinstance(value, str) else value
            except ValueError:
                return "Invalid date format. Use ISO format (YYYY-MM-DD)."
            # datetime is a date subclass but does not compare with one
            if isinstance(date_value, datetime.datetime):
                date_value = date_value.date()
            elif not isinstance(date_value, datetime.date):
                return "Must be a date."
            if date_value < min_date:
                return error_message or f"Date must be on or after {min_date.isoformat()}."
            return None
        return validate

    @staticmethod
    def custom(validation_func: Callable[[Any], Optional[str]]) -> Callable[[Any], Optional[str]]:
        """Wraps a custom validation function so that a crash becomes an issue message."""
        def safe_validate(value: Any) -> Optional[str]:
            try:
                return validation_func(value)
            except Exception:
                logger.exception("Error in custom validator %r", validation_func)
                return "Validation failed due to an internal error."
        return safe_validate
