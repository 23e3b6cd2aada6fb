import asyncio
import logging
from copy import deepcopy
from dataclasses import dataclass
from inspect import isawaitable
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from formstate.core import batch_updates, create_signal, settle
from formstate.exceptions import ConfigurationError
from formstate.form.adapter import SchemaAdapter, adapt_schema
from formstate.form.engine import FieldResult, FormResult, ValidationEngine
from formstate.form.policy import Action, Event, PostSubmitMode, ValidationMode, decide, parse_mode
from formstate.form.store import ErrorStore, FieldMeta, FieldStore, FormMeta, MetaStore
from formstate.utils.async_task import ValidationScheduler

logger = logging.getLogger(__name__)

# Tuple keys never collide with field names
_MOUNT_KEY = ("form", "mount")


@dataclass
class FormOptions:
    """
    Construction options of a form.

    Attributes:
        mode: pre-submit trigger policy, see `formstate.form.policy`
        mode_after_submit: policy once the form has been submitted
        validate_on_mount: run a full validation right after construction
        dry_validate_on_mount: silently pre-validate every field after
            construction; fields that pass become validated and touched
        debounce_ms: delay applied to input-triggered validations
    """
    mode: Union[str, ValidationMode] = ValidationMode.SMART_LAZY
    mode_after_submit: Union[str, PostSubmitMode] = PostSubmitMode.INPUT
    validate_on_mount: bool = False
    dry_validate_on_mount: bool = False
    debounce_ms: int = 0

    def __post_init__(self):
        self.mode = parse_mode(self.mode, ValidationMode, "mode")
        self.mode_after_submit = parse_mode(self.mode_after_submit, PostSubmitMode, "mode_after_submit")
        if isinstance(self.debounce_ms, bool) or not isinstance(self.debounce_ms, int) or self.debounce_ms < 0:
            raise ConfigurationError(f"debounce_ms must be a non-negative integer, got {self.debounce_ms!r}")


class FieldHandle:
    """
    Bindable handle of one form field.

    Assigning `value` writes the raw value the way an input binding does and
    leaves metadata alone; `set_value` is the programmatic setter that also
    marks the field dirty and touched.
    """
    def __init__(self, form: 'Form', name: str):
        self._form = form
        self.name = name

    @property
    def value(self) -> Any:
        return self._form._values.get(self.name)

    @value.setter
    def value(self, new_value: Any) -> None:
        self._form._values.set(self.name, new_value)

    def set_value(self, new_value: Any) -> None:
        self._form.set_field_value(self.name, new_value)

    @property
    def meta(self) -> FieldMeta:
        return self._form.field_meta(self.name)

    @property
    def error(self) -> Optional[str]:
        return self._form.get_error(self.name)

    @property
    def valid(self) -> bool:
        return self.error is None

    def on_input(self) -> Optional[asyncio.Task]:
        return self._form.handle_input(self.name)

    def on_blur(self) -> Optional[asyncio.Task]:
        return self._form.handle_blur(self.name)

    def __repr__(self):
        return f"<FieldHandle {self.name}={self.value!r} {self.meta}>"


class FieldAccessProxy:
    """
    Proxy for cleaner field access syntax.
    Enables usage like: form.F.email.value or form.F["email"].on_blur()
    """
    def __init__(self, form: 'Form'):
        self._form = form

    def __getattr__(self, name: str) -> FieldHandle:
        try:
            return self._form.fields[name]
        except KeyError:
            raise AttributeError(f"Field '{name}' not found") from None

    def __getitem__(self, name: str) -> FieldHandle:
        return self._form.fields[name]


class FieldEvents:
    """Interaction entry points: form.on_field.input("age"), form.on_field.blur("age")."""

    def __init__(self, form: 'Form'):
        self._form = form

    def input(self, field_name: str) -> Optional[asyncio.Task]:
        return self._form.handle_input(field_name)

    def blur(self, field_name: str) -> Optional[asyncio.Task]:
        return self._form.handle_blur(field_name)


class Form:
    """
    Manages form state, validation triggering, and submission.
    """
    def __init__(self, schema: Any, initial_values: Optional[Mapping[str, Any]] = None,
                 options: Optional[FormOptions] = None):
        self.adapter: SchemaAdapter = adapt_schema(schema)
        self.options = options or FormOptions()

        provided = dict(initial_values or {})
        for field_name in provided:
            self.adapter.ensure_field(field_name)

        names = self.adapter.field_names
        self._values = FieldStore({**self.adapter.defaults(), **deepcopy(provided)})
        self._metas = MetaStore(names)
        self._errors = ErrorStore(names)
        self._engine = ValidationEngine(self.adapter, self._values, self._metas, self._errors)
        self._scheduler = ValidationScheduler()

        self.submit_count_signal, self._set_submit_count = create_signal(0)
        self.is_submitting_signal, self._set_is_submitting = create_signal(False)
        self._submit_generation = 0
        self.values_signal = self._values.values
        self.errors_signal = self._errors.errors
        self.meta_signal = self._metas.metas

        self.fields: Mapping[str, FieldHandle] = MappingProxyType({name: FieldHandle(self, name) for name in names})
        self.on_field = FieldEvents(self)

        if self.options.validate_on_mount:
            self._scheduler.schedule(_MOUNT_KEY, self.validate_form)
        elif self.options.dry_validate_on_mount:
            self._scheduler.schedule(_MOUNT_KEY, self._dry_validate_on_mount)

    @property
    def F(self) -> FieldAccessProxy:
        """
        Returns a FieldAccessProxy for cleaner field access syntax.
        Usage: form.F.email
        """
        return FieldAccessProxy(self)

    # -- Read-only views ---
    @property
    def values(self) -> Mapping[str, Any]:
        return self._values.snapshot()

    @property
    def errors(self) -> Mapping[str, str]:
        return self._errors.snapshot()

    @property
    def submit_count(self) -> int:
        return self.submit_count_signal()

    @property
    def is_submitted(self) -> bool:
        return self.submit_count > 0

    @property
    def is_submitting(self) -> bool:
        return self.is_submitting_signal()

    @property
    def meta(self) -> FormMeta:
        return self._metas.form_meta()

    @property
    def fields_meta(self) -> Mapping[str, FieldMeta]:
        return self._metas.all()

    def field_meta(self, field_name: str) -> FieldMeta:
        return self._metas.get(field_name)

    def get_error(self, field_name: str) -> Optional[str]:
        return self._errors.get(field_name)

    # -- Interaction ---
    def handle_input(self, field_name: str) -> Optional[asyncio.Task]:
        """The bound input's value changed. Returns the scheduled validation, if any."""
        return self._dispatch(Event.INPUT, field_name)

    def handle_blur(self, field_name: str) -> Optional[asyncio.Task]:
        """The bound input lost focus. Returns the scheduled validation, if any."""
        return self._dispatch(Event.BLUR, field_name)

    def _dispatch(self, event: Event, field_name: str) -> Optional[asyncio.Task]:
        transition = decide(
            event,
            self._metas.get(field_name),
            self.options.mode,
            self.options.mode_after_submit,
            self.is_submitted,
        )

        changes = {}
        if transition.mark_dirty:
            changes["dirty"] = True
        if transition.mark_touched:
            changes["touched"] = True
        self._metas.update(field_name, **changes)

        logger.debug("%s on '%s' -> %s", event.value, field_name, transition.action.value)
        delay_ms = self.options.debounce_ms if event is Event.INPUT else 0
        if transition.action is Action.VALIDATE:
            return self._scheduler.schedule(field_name, self._engine.validate_field, field_name, delay_ms=delay_ms)
        if transition.action is Action.DRY_RUN:
            return self._scheduler.schedule(field_name, self._probe_then_validate, field_name, delay_ms=delay_ms)
        return None

    async def _probe_then_validate(self, field_name: str) -> bool:
        """Surfaces the clean state of an untouched field as soon as it becomes valid."""
        if not await self._engine.validate_field_dry_run(field_name):
            return False
        self._metas.update(field_name, touched=True)
        self._scheduler.schedule(field_name, self._engine.validate_field, field_name)
        return True

    async def _dry_validate_on_mount(self) -> None:
        names = self.adapter.field_names
        verdicts = await asyncio.gather(*(self._engine.validate_field_dry_run(name) for name in names))

        def mark_passed():
            for name, passed in zip(names, verdicts):
                if passed:
                    self._metas.update(name, validated=True, touched=True)

        batch_updates(mark_passed)

    # -- Validation ---
    async def validate_field(self, field_name: str) -> FieldResult:
        return await self._engine.validate_field(field_name)

    async def validate_field_dry_run(self, field_name: str) -> bool:
        return await self._engine.validate_field_dry_run(field_name)

    async def validate_form(self) -> FormResult:
        return await self._engine.validate_form()

    validate = validate_form

    # -- Programmatic mutation ---
    def set_field_value(self, field_name: str, value: Any) -> None:
        """Writes a value and marks the field dirty and touched. Does not validate."""
        def perform_updates():
            self._values.set(field_name, value)
            self._metas.update(field_name, dirty=True, touched=True)

        batch_updates(perform_updates)

    def set_form_values(self, values: Mapping[str, Any]) -> None:
        """Writes the supplied values and marks every field, supplied or not, dirty and touched."""
        def perform_updates():
            self._values.set_many(values)
            self._metas.update_all(dirty=True, touched=True)

        batch_updates(perform_updates)

    def set_field_error(self, field_name: str, message: Optional[str]) -> None:
        """Shows an externally sourced error (e.g. from a server). None clears it."""
        self._errors.set_field(field_name, message)

    def clear_errors(self) -> None:
        self._errors.clear()

    # -- Submission ---
    def handle_submit(
            self,
            on_valid: Callable[[Mapping[str, Any]], Union[None, Awaitable[None]]],
            on_invalid: Optional[Callable[[Mapping[str, FieldResult]], Union[None, Awaitable[None]]]] = None,
    ) -> Callable[..., Awaitable[bool]]:
        """
        Creates a submit handler.

        The handler validates the whole form, then calls `on_valid` with a
        read-only snapshot of the values or `on_invalid` with the per-field
        results. Either callback may be a coroutine function. A call made
        while a previous submission is still running is rejected and returns
        False without counting as an attempt. A submission overtaken by
        `reset()` returns False without calling either callback.
        """
        async def submit(*_args, **_kwargs) -> bool:
            if self.is_submitting_signal.peek():
                logger.warning("Submit ignored: a submission is already in flight")
                return False

            generation = self._submit_generation
            self._set_submit_count(self.submit_count_signal.peek() + 1)
            self._set_is_submitting(True)
            try:
                result = await self.validate_form()
                if generation != self._submit_generation:
                    logger.debug("Submit discarded: the form was reset while it validated")
                    return False
                if result.valid:
                    outcome = on_valid(self._values.snapshot())
                elif on_invalid is not None:
                    outcome = on_invalid(result.results)
                else:
                    outcome = None
                    logger.debug("Form validation failed on submit: %s", dict(result.errors))
                if isawaitable(outcome):
                    await outcome
                return result.valid
            finally:
                # After a reset, `is_submitting` belongs to the next submission
                if generation == self._submit_generation:
                    self._set_is_submitting(False)

        return submit

    # -- Reset ---
    def reset(self) -> None:
        """
        Restores the seed values and clears metadata, errors and the submit count.
        Pending and in-flight validations are cancelled or discarded, and so
        is a submission that is still validating.
        """
        self._scheduler.cancel_all()
        self._engine.invalidate()
        self._submit_generation += 1

        def perform_updates():
            self._values.reset()
            self._metas.reset()
            self._errors.clear()
            self._set_submit_count(0)
            self._set_is_submitting(False)

        batch_updates(perform_updates)

    def reset_field(self, field_name: str) -> None:
        """Resets a single field to its seed value and pristine metadata."""
        self.adapter.ensure_field(field_name)
        self._scheduler.cancel(field_name)
        self._engine.invalidate(field_name)

        def perform_updates():
            self._values.reset_field(field_name)
            self._metas.reset_field(field_name)
            self._errors.set_field(field_name, None)

        batch_updates(perform_updates)

    async def settle(self) -> None:
        """Waits for every scheduled validation and every pending effect."""
        await self._scheduler.wait()
        await settle()


def create_form(form_schema: Any, initial_values: Optional[Dict[str, Any]] = None,
                mode: Union[str, ValidationMode] = ValidationMode.SMART_LAZY,
                mode_after_submit: Union[str, PostSubmitMode] = PostSubmitMode.INPUT,
                validate_on_mount: bool = False, dry_validate_on_mount: bool = False,
                debounce_ms: int = 0) -> Form:
    """
    Factory function to create and initialize a Form instance.

    Args:
        form_schema: a `Schema`, a pydantic model class or a `SchemaAdapter`.
        initial_values: optional partial values. They take precedence over
                        schema defaults; unknown names raise UnknownFieldError.
        mode: pre-submit validation mode, see `formstate.form.policy`.
        mode_after_submit: "input", "blur" or "submit".
        validate_on_mount / dry_validate_on_mount: see `FormOptions`. Both
                        need a running event loop.
        debounce_ms: delay for input-triggered validations.

    Returns:
        A configured Form instance.
    """
    options = FormOptions(
        mode=mode,
        mode_after_submit=mode_after_submit,
        validate_on_mount=validate_on_mount,
        dry_validate_on_mount=dry_validate_on_mount,
        debounce_ms=debounce_ms,
    )
    return Form(form_schema, initial_values, options)
