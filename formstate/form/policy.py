"""When does an interaction validate a field?

The pre-submit behaviour is the table below, one rule per mode and event.
After the first submit the post-submit table replaces it entirely.

    event  mode        action
    input  aggressive  validate
    input  touch       validate once touched, otherwise nothing
    input  eager       validate once touched, otherwise dry run
    input  smart_lazy  validate while the field is invalid
    input  lazy        nothing
    input  submit      nothing
    blur   submit      nothing
    blur   any other   validate

Input always marks the field dirty and blur always marks it touched, before
anything is scheduled.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Type, TypeVar, Union

from formstate.exceptions import ConfigurationError
from formstate.form.store import FieldMeta


class ValidationMode(str, Enum):
    AGGRESSIVE = "aggressive"
    TOUCH = "touch"
    EAGER = "eager"
    SMART_LAZY = "smart_lazy"
    LAZY = "lazy"
    SUBMIT = "submit"


class PostSubmitMode(str, Enum):
    INPUT = "input"
    BLUR = "blur"
    SUBMIT = "submit"


class Event(str, Enum):
    INPUT = "input"
    BLUR = "blur"


class Action(Enum):
    NONE = "none"
    VALIDATE = "validate"
    # Validate silently; on success mark touched and validate for real
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class Transition:
    action: Action
    mark_dirty: bool = False
    mark_touched: bool = False


Rule = Callable[[FieldMeta], Action]


def _always(action: Action) -> Rule:
    return lambda meta: action


INPUT_RULES: Dict[ValidationMode, Rule] = {
    ValidationMode.AGGRESSIVE: _always(Action.VALIDATE),
    ValidationMode.TOUCH: lambda meta: Action.VALIDATE if meta.touched else Action.NONE,
    ValidationMode.EAGER: lambda meta: Action.VALIDATE if meta.touched else Action.DRY_RUN,
    ValidationMode.SMART_LAZY: lambda meta: Action.VALIDATE if meta.invalid else Action.NONE,
    ValidationMode.LAZY: _always(Action.NONE),
    ValidationMode.SUBMIT: _always(Action.NONE),
}

BLUR_RULES: Dict[ValidationMode, Rule] = {
    mode: _always(Action.NONE if mode is ValidationMode.SUBMIT else Action.VALIDATE)
    for mode in ValidationMode
}

POST_SUBMIT_RULES: Dict[PostSubmitMode, Dict[Event, Action]] = {
    PostSubmitMode.INPUT: {Event.INPUT: Action.VALIDATE, Event.BLUR: Action.NONE},
    PostSubmitMode.BLUR: {Event.INPUT: Action.NONE, Event.BLUR: Action.VALIDATE},
    PostSubmitMode.SUBMIT: {Event.INPUT: Action.NONE, Event.BLUR: Action.NONE},
}


def decide(
        event: Event,
        meta: FieldMeta,
        mode: ValidationMode,
        mode_after_submit: PostSubmitMode,
        is_submitted: bool,
) -> Transition:
    """Picks the transition for `event` on a field currently in state `meta`."""
    marks = {"mark_dirty": True} if event is Event.INPUT else {"mark_touched": True}

    if is_submitted:
        return Transition(POST_SUBMIT_RULES[mode_after_submit][event], **marks)

    rules = INPUT_RULES if event is Event.INPUT else BLUR_RULES
    return Transition(rules[mode](meta), **marks)


E = TypeVar("E", bound=Enum)


def parse_mode(value: Union[str, E], enum_type: Type[E], option: str) -> E:
    """Accepts an enum member or its string value ('smartLazy' style is accepted too)."""
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        normalized = "".join(f"_{c.lower()}" if c.isupper() else c for c in value).lstrip("_")
        try:
            return enum_type(normalized)
        except ValueError:
            pass
    choices = ", ".join(member.value for member in enum_type)
    raise ConfigurationError(f"Invalid {option} {value!r}. Expected one of: {choices}")
