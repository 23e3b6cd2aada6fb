from copy import deepcopy
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

from formstate.core import create_signal
from formstate.exceptions import UnknownFieldError


@dataclass(frozen=True)
class FieldMeta:
    """Interaction and validation flags of one field."""
    touched: bool = False
    dirty: bool = False
    invalid: bool = False
    validated: bool = False

    def update(self, **changes) -> 'FieldMeta':
        return replace(self, **changes)


@dataclass(frozen=True)
class FormMeta:
    touched: bool = False
    dirty: bool = False
    invalid: bool = False
    validated: bool = False
    any_validated: bool = False


def derive_form_meta(field_metas: Iterable[FieldMeta]) -> FormMeta:
    """Aggregates field flags: any for touched/dirty/invalid, all for validated."""
    metas = list(field_metas)
    return FormMeta(
        touched=any(meta.touched for meta in metas),
        dirty=any(meta.dirty for meta in metas),
        invalid=any(meta.invalid for meta in metas),
        validated=bool(metas) and all(meta.validated for meta in metas),
        any_validated=any(meta.validated for meta in metas),
    )


class _FieldKeyed:
    """Shared field-name guard for the per-field stores."""

    def __init__(self, field_names: Iterable[str]):
        self.field_names = list(field_names)

    def _check(self, field_name: str) -> None:
        if field_name not in self.field_names:
            raise UnknownFieldError(field_name, self.field_names)


class FieldStore(_FieldKeyed):
    """
    Holds the current value of every field.

    Values are deep-copied on the way in and on the way out, so neither the
    caller's objects nor returned snapshots alias the stored state.
    """
    def __init__(self, seed: Mapping[str, Any]):
        super().__init__(seed.keys())
        self._seed = deepcopy(dict(seed))
        self.values, self._set_values = create_signal(deepcopy(self._seed))

    def get(self, field_name: str) -> Any:
        self._check(field_name)
        return deepcopy(self.values()[field_name])

    def set(self, field_name: str, value: Any) -> None:
        self._check(field_name)
        self._set_values({**self.values.peek(), field_name: deepcopy(value)})

    def set_many(self, partial: Mapping[str, Any]) -> None:
        for field_name in partial:
            self._check(field_name)
        self._set_values({**self.values.peek(), **deepcopy(dict(partial))})

    def reset(self) -> None:
        self._set_values(deepcopy(self._seed))

    def reset_field(self, field_name: str) -> None:
        self.set(field_name, self._seed[field_name])

    def snapshot(self) -> Mapping[str, Any]:
        return MappingProxyType(deepcopy(self.values()))


class MetaStore(_FieldKeyed):
    def __init__(self, field_names: Iterable[str]):
        super().__init__(field_names)
        self.metas, self._set_metas = create_signal(self._pristine())

    def _pristine(self) -> Dict[str, FieldMeta]:
        return {name: FieldMeta() for name in self.field_names}

    def get(self, field_name: str) -> FieldMeta:
        self._check(field_name)
        return self.metas()[field_name]

    def update(self, field_name: str, **changes) -> FieldMeta:
        self._check(field_name)
        current = self.metas.peek()
        meta = current[field_name].update(**changes)
        self._set_metas({**current, field_name: meta})
        return meta

    def update_all(self, **changes) -> None:
        current = self.metas.peek()
        self._set_metas({name: meta.update(**changes) for name, meta in current.items()})

    def reset(self) -> None:
        self._set_metas(self._pristine())

    def reset_field(self, field_name: str) -> None:
        self._check(field_name)
        self._set_metas({**self.metas.peek(), field_name: FieldMeta()})

    def all(self) -> Mapping[str, FieldMeta]:
        return MappingProxyType(dict(self.metas()))

    def form_meta(self) -> FormMeta:
        return derive_form_meta(self.metas().values())


class ErrorStore(_FieldKeyed):
    """First error message per field. A field without an error has no key."""

    def __init__(self, field_names: Iterable[str]):
        super().__init__(field_names)
        self.errors, self._set_errors = create_signal({})

    def get(self, field_name: str) -> Optional[str]:
        self._check(field_name)
        return self.errors().get(field_name)

    def set_field(self, field_name: str, message: Optional[str]) -> None:
        self._check(field_name)
        current = self.errors.peek()
        if message is None:
            new_errors = {k: v for k, v in current.items() if k != field_name}
        else:
            new_errors = {**current, field_name: message}
        self._set_errors(new_errors)

    def replace_all(self, errors: Mapping[str, Optional[str]]) -> None:
        for field_name in errors:
            self._check(field_name)
        # One signal write: observers never see a half-replaced map
        self._set_errors({k: v for k, v in errors.items() if v is not None})

    def clear(self) -> None:
        self._set_errors({})

    def snapshot(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self.errors()))
