"""Adapters between a form and the validator that knows its constraints.

A form never inspects its schema directly. It asks an adapter for the field
names, for a single-field narrowing, and for validation outcomes. Failing
validation is an ordinary `ValidationOutcome`, never an exception; only
naming a field the schema does not define raises (`UnknownFieldError`).
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from formstate.exceptions import SchemaError, UnknownFieldError
from formstate.form.schema import UNSET, Schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of one adapter call.

    `field_issues` maps each failing field to its messages in validator order.
    `success` can be False with no field issues when the validator rejects
    the object as a whole.
    """
    success: bool
    field_issues: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_issues(cls, issues: Mapping[str, Sequence[str]]) -> 'ValidationOutcome':
        cleaned = {name: list(messages) for name, messages in issues.items() if messages}
        return cls(success=not cleaned, field_issues=cleaned)

    def issues_for(self, field_name: str) -> List[str]:
        return list(self.field_issues.get(field_name, []))


class SchemaAdapter(ABC):

    @property
    @abstractmethod
    def field_names(self) -> List[str]:
        """Every field the schema defines, in declaration order."""

    @abstractmethod
    def pick(self, field_name: str) -> 'SchemaAdapter':
        """Returns an adapter restricted to a single field."""

    @abstractmethod
    async def validate_all(self, values: Mapping[str, Any]) -> ValidationOutcome:
        """Validates every field, collecting issues even after the first failure."""

    async def validate_one(self, field_name: str, value: Any) -> ValidationOutcome:
        """Validates `value` as the value of `field_name` alone."""
        return await self.pick(field_name).validate_all({field_name: value})

    def ensure_field(self, field_name: str) -> None:
        if field_name not in self.field_names:
            raise UnknownFieldError(field_name, self.field_names)

    def defaults(self) -> Dict[str, Any]:
        return {name: UNSET for name in self.field_names}


class NativeSchemaAdapter(SchemaAdapter):
    def __init__(self, schema: Schema):
        self.schema = schema

    @property
    def field_names(self) -> List[str]:
        return self.schema.field_names

    def pick(self, field_name: str) -> 'NativeSchemaAdapter':
        return NativeSchemaAdapter(self.schema.pick(field_name))

    async def validate_all(self, values: Mapping[str, Any]) -> ValidationOutcome:
        return ValidationOutcome.from_issues(await self.schema.validate_async(dict(values)))

    async def validate_one(self, field_name: str, value: Any) -> ValidationOutcome:
        issues = await self.schema.get_field(field_name).check_async(value)
        return ValidationOutcome.from_issues({field_name: issues})

    def defaults(self) -> Dict[str, Any]:
        return self.schema.defaults()


class PydanticSchemaAdapter(SchemaAdapter):
    """Validates form values with a pydantic model.

    Issues are keyed by the first element of each error's `loc`. UNSET values
    are left out of the payload so pydantic reports them as missing.
    Narrowed adapters validate only the picked fields and ignore issues
    raised for the rest of the model.
    """
    def __init__(self, model: Type[BaseModel], fields: Optional[Sequence[str]] = None):
        self.model = model
        self._fields = list(fields) if fields is not None else list(model.model_fields)
        self._narrowed = fields is not None

    @property
    def field_names(self) -> List[str]:
        return list(self._fields)

    def pick(self, field_name: str) -> 'PydanticSchemaAdapter':
        self.ensure_field(field_name)
        return PydanticSchemaAdapter(self.model, [field_name])

    async def validate_all(self, values: Mapping[str, Any]) -> ValidationOutcome:
        payload = {name: value for name, value in values.items() if value is not UNSET}
        try:
            self.model.model_validate(payload)
        except ValidationError as e:
            issues = self._collect(e)
            if self._narrowed:
                return ValidationOutcome.from_issues(issues)
            return ValidationOutcome(success=False, field_issues=issues)
        return ValidationOutcome(success=True)

    def _collect(self, error: ValidationError) -> Dict[str, List[str]]:
        issues: Dict[str, List[str]] = {}
        for detail in error.errors():
            loc = detail.get("loc") or ()
            name = str(loc[0]) if loc else None
            if name not in self._fields:
                logger.debug("Ignoring issue outside %s: %s", self._fields, detail.get("msg"))
                continue
            issues.setdefault(name, []).append(detail["msg"])
        return issues

    def defaults(self) -> Dict[str, Any]:
        defaults = {}
        for name in self._fields:
            info = self.model.model_fields[name]
            defaults[name] = UNSET if info.is_required() else info.get_default(call_default_factory=True)
        return defaults


def adapt_schema(schema: Any) -> SchemaAdapter:
    """Wraps a native `Schema` or a pydantic model class; adapters pass through."""
    if isinstance(schema, SchemaAdapter):
        return schema
    if isinstance(schema, Schema):
        return NativeSchemaAdapter(schema)
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return PydanticSchemaAdapter(schema)
    raise SchemaError(f"Cannot build a form from {schema!r}: expected a Schema, a pydantic model or a SchemaAdapter")
