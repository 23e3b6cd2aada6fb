import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from formstate.core import batch_updates
from formstate.form.adapter import SchemaAdapter
from formstate.form.store import ErrorStore, FieldStore, MetaStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldResult:
    valid: bool
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: List[str]) -> 'FieldResult':
        if not issues:
            return cls(valid=True)
        return cls(valid=False, error=issues[0], errors=list(issues))


@dataclass(frozen=True)
class FormResult:
    valid: bool
    errors: Mapping[str, str]
    results: Mapping[str, FieldResult]


class ValidationEngine:
    """
    Runs validations and writes their outcome into the stores.

    Every real validation captures a per-field generation token before it
    awaits the adapter. The outcome is written only if the token is still
    current when the adapter returns; a later validation of the same field,
    a full-form validation or a reset makes it stale.

    A full-form validation always marks the fields it covered touched and
    validated, even those a newer validation superseded. Only a reset (tracked
    by a separate per-field epoch) withdraws that.
    """

    def __init__(self, adapter: SchemaAdapter, values: FieldStore, metas: MetaStore, errors: ErrorStore):
        self.adapter = adapter
        self.values = values
        self.metas = metas
        self.errors = errors
        self._generations: Dict[str, int] = {name: 0 for name in adapter.field_names}
        self._epochs: Dict[str, int] = {name: 0 for name in adapter.field_names}

    def _next_token(self, field_name: str) -> int:
        self._generations[field_name] += 1
        return self._generations[field_name]

    def invalidate(self, field_name: str = None) -> None:
        """Discards in-flight validations of `field_name` (or of every field) entirely. Used by resets."""
        names = [field_name] if field_name is not None else list(self._generations)
        for name in names:
            self._next_token(name)
            self._epochs[name] += 1

    def _is_current(self, field_name: str, token: int) -> bool:
        return self._generations[field_name] == token

    async def validate_field(self, field_name: str) -> FieldResult:
        self.adapter.ensure_field(field_name)
        token = self._next_token(field_name)

        outcome = await self.adapter.validate_one(field_name, self.values.get(field_name))
        result = FieldResult.from_issues(outcome.issues_for(field_name))

        if not self._is_current(field_name, token):
            logger.debug("Discarding superseded result for '%s'", field_name)
            return result

        def apply():
            self.errors.set_field(field_name, result.error)
            self.metas.update(field_name, invalid=not result.valid, validated=True)

        batch_updates(apply)
        logger.debug("Validated '%s': valid=%s", field_name, result.valid)
        return result

    async def validate_field_dry_run(self, field_name: str) -> bool:
        """Validates without writing errors or metadata; only the verdict is observable."""
        self.adapter.ensure_field(field_name)
        outcome = await self.adapter.validate_one(field_name, self.values.get(field_name))
        return not outcome.issues_for(field_name)

    async def validate_form(self) -> FormResult:
        names = self.adapter.field_names
        tokens = {name: self._next_token(name) for name in names}
        epochs = dict(self._epochs)

        outcome = await self.adapter.validate_all(self.values.snapshot())

        results = {name: FieldResult.from_issues(outcome.issues_for(name)) for name in names}
        first_errors = {name: result.error for name, result in results.items() if not result.valid}
        form_result = FormResult(
            valid=outcome.success and not first_errors,
            errors=MappingProxyType(dict(first_errors)),
            results=MappingProxyType(results),
        )

        covered = [name for name in names if self._epochs[name] == epochs[name]]
        if not covered:
            logger.debug("Discarding form validation interrupted by a reset")
            return form_result
        current = [name for name in covered if self._is_current(name, tokens[name])]

        def apply():
            merged = {name: self.errors.get(name) for name in names if name not in current}
            merged.update({name: first_errors.get(name) for name in current})
            self.errors.replace_all(merged)
            for name in covered:
                # A newer validation of the field owns its error and `invalid`
                if name in current:
                    self.metas.update(name, touched=True, validated=True, invalid=not results[name].valid)
                else:
                    self.metas.update(name, touched=True, validated=True)

        batch_updates(apply)
        logger.debug("Validated form: valid=%s, failing=%s", form_result.valid, sorted(first_errors))
        return form_result
