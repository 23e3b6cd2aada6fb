import asyncio
import datetime
import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../')))

from pydantic import BaseModel, Field as PydanticField, field_validator

from formstate.exceptions import SchemaError, UnknownFieldError
from formstate.form.adapter import NativeSchemaAdapter, PydanticSchemaAdapter, adapt_schema
from formstate.form.schema import UNSET, Schema


def build_signup_schema():
    schema = Schema()
    schema.field("name").string().trim().min_length(3)
    schema.field("age").number().between(18, 99)
    schema.field("email").string().email().optional()
    return schema


class Signup(BaseModel):
    name: str = PydanticField(min_length=3)
    age: int = PydanticField(ge=18, le=99)
    newsletter: bool = False

    @field_validator("name")
    @classmethod
    def name_is_alpha(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("Name must be letters only")
        return v


class TestNativeSchema(unittest.TestCase):
    def test_unset_and_none_are_required_unless_optional(self):
        schema = build_signup_schema()
        self.assertEqual(schema.fields["age"].check(UNSET), ["This field is required."])
        self.assertEqual(schema.fields["age"].check(None), ["This field is required."])
        self.assertEqual(schema.fields["email"].check(UNSET), [])

    def test_nullable_accepts_none(self):
        schema = Schema()
        field = schema.field("nickname").string().nullable().min_length(2)
        self.assertEqual(field.check(None), [])
        self.assertEqual(field.check("a"), ["Must be at least 2 characters long."])

    def test_type_error_stops_other_rules(self):
        schema = build_signup_schema()
        self.assertEqual(schema.fields["age"].check("abc"), ["Must be a number."])
        self.assertEqual(schema.fields["age"].check(True), ["Must be a number."])

    def test_collects_every_issue_in_rule_order(self):
        schema = Schema()
        schema.field("code").string().min_length(5).regex(r"[0-9]+", "Digits only.")
        self.assertEqual(schema.fields["code"].check("ab"), ["Must be at least 5 characters long.", "Digits only."])

    def test_trim_applies_before_rules(self):
        schema = build_signup_schema()
        self.assertEqual(schema.fields["name"].check("  ab  "), ["Must be at least 3 characters long."])

    def test_required_rejects_empty_string(self):
        schema = Schema()
        schema.field("title").string().required("Title is required.")
        self.assertEqual(schema.fields["title"].check(""), ["Title is required."])

    def test_custom_validator_crash_becomes_issue(self):
        schema = Schema()
        schema.field("n").int().custom(lambda value: 1 / 0)
        self.assertEqual(schema.fields["n"].check(3), ["Validation failed due to an internal error."])

    def test_format_rules(self):
        schema = Schema()
        schema.field("email").string().email()
        schema.field("site").string().url()
        schema.field("bio").string().max_length(5)
        schema.field("starts").string().date_min("2024-01-01")

        self.assertEqual(schema.validate({
            "email": "ada@example.com",
            "site": "https://example.com/about",
            "bio": "hi",
            "starts": "2024-06-01",
        }), {})
        self.assertEqual(schema.validate({
            "email": "ada@",
            "site": "example",
            "bio": "too long",
            "starts": "2023-12-31",
        }), {
            "email": ["Must be a valid email address."],
            "site": ["Must be a valid URL."],
            "bio": ["Must be at most 5 characters long."],
            "starts": ["Date must be on or after 2024-01-01."],
        })

    def test_date_min_accepts_date_objects(self):
        schema = Schema()
        field = schema.field("starts").date_min(datetime.date(2024, 1, 1))
        self.assertEqual(field.check(datetime.date(2024, 1, 1)), [])
        self.assertEqual(field.check(datetime.datetime(2024, 3, 1, 9, 30)), [])
        self.assertEqual(field.check(datetime.datetime(2023, 12, 31, 23, 59)),
                         ["Date must be on or after 2024-01-01."])
        self.assertEqual(field.check("31/12/2023"), ["Invalid date format. Use ISO format (YYYY-MM-DD)."])
        self.assertEqual(field.check(20240101), ["Must be a date."])

    def test_url_rule(self):
        schema = Schema()
        field = schema.field("site").string().url()
        self.assertEqual(field.check("http://www.example.org/path?q=1"), [])
        self.assertEqual(field.check("ftp://example.org"), ["Must be a valid URL."])
        self.assertEqual(field.check(""), [])

    def test_validate_reports_missing_keys_as_unset(self):
        self.assertEqual(build_signup_schema().validate({"name": "Ada"}), {"age": ["This field is required."]})

    def test_pick_unknown_field(self):
        with self.assertRaises(UnknownFieldError):
            build_signup_schema().pick("nope")

    def test_defaults(self):
        schema = Schema()
        schema.field("theme").string().default_value("dark")
        schema.field("name").string()
        self.assertEqual(schema.defaults(), {"theme": "dark", "name": UNSET})


class TestNativeAdapter(unittest.IsolatedAsyncioTestCase):
    async def test_validate_all_collects_every_field(self):
        adapter = NativeSchemaAdapter(build_signup_schema())
        outcome = await adapter.validate_all({"name": "", "age": 10, "email": UNSET})
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.field_issues, {
            "name": ["Must be at least 3 characters long."],
            "age": ["Must be at least 18."],
        })

    async def test_validate_all_success(self):
        adapter = NativeSchemaAdapter(build_signup_schema())
        outcome = await adapter.validate_all({"name": "Ada", "age": 36, "email": "ada@example.com"})
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.field_issues, {})

    async def test_validate_one_ignores_other_fields(self):
        adapter = NativeSchemaAdapter(build_signup_schema())
        outcome = await adapter.validate_one("age", 24)
        self.assertTrue(outcome.success)

    async def test_validate_one_unknown_field(self):
        adapter = NativeSchemaAdapter(build_signup_schema())
        with self.assertRaises(UnknownFieldError):
            await adapter.validate_one("nope", 1)

    async def test_async_validators_run_after_sync_rules(self):
        seen = []

        async def username_free(value):
            seen.append(value)
            await asyncio.sleep(0)
            return "Username is taken." if value == "admin" else None

        schema = Schema()
        schema.field("username").string().min_length(3).async_validator(username_free)
        adapter = NativeSchemaAdapter(schema)

        self.assertEqual((await adapter.validate_one("username", "ab")).issues_for("username"),
                         ["Must be at least 3 characters long."])
        self.assertEqual(seen, [])
        self.assertEqual((await adapter.validate_one("username", "admin")).issues_for("username"),
                         ["Username is taken."])

    async def test_async_validator_crash_becomes_issue(self):
        async def boom(value):
            raise RuntimeError("service down")

        schema = Schema()
        schema.field("username").string().async_validator(boom)
        outcome = await NativeSchemaAdapter(schema).validate_one("username", "ada")
        self.assertEqual(outcome.issues_for("username"), ["Validation error: service down"])


class TestPydanticAdapter(unittest.IsolatedAsyncioTestCase):
    async def test_validate_all_reports_missing_and_invalid(self):
        adapter = PydanticSchemaAdapter(Signup)
        outcome = await adapter.validate_all({"name": UNSET, "age": 10, "newsletter": False})
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.field_issues["name"], ["Field required"])
        self.assertEqual(len(outcome.field_issues["age"]), 1)
        self.assertIn("greater than or equal to 18", outcome.field_issues["age"][0])
        self.assertNotIn("newsletter", outcome.field_issues)

    async def test_validate_one_only_reports_that_field(self):
        adapter = PydanticSchemaAdapter(Signup)
        self.assertTrue((await adapter.validate_one("age", 30)).success)

        outcome = await adapter.validate_one("name", "R2D2")
        self.assertFalse(outcome.success)
        self.assertEqual(list(outcome.field_issues), ["name"])
        self.assertIn("Name must be letters only", outcome.field_issues["name"][0])

    async def test_pick_and_defaults(self):
        adapter = PydanticSchemaAdapter(Signup)
        self.assertEqual(adapter.field_names, ["name", "age", "newsletter"])
        self.assertEqual(adapter.pick("age").field_names, ["age"])
        self.assertEqual(adapter.defaults(), {"name": UNSET, "age": UNSET, "newsletter": False})
        with self.assertRaises(UnknownFieldError):
            adapter.pick("nope")


class TestAdaptSchema(unittest.TestCase):
    def test_dispatch(self):
        self.assertIsInstance(adapt_schema(build_signup_schema()), NativeSchemaAdapter)
        self.assertIsInstance(adapt_schema(Signup), PydanticSchemaAdapter)
        adapter = PydanticSchemaAdapter(Signup)
        self.assertIs(adapt_schema(adapter), adapter)

    def test_rejects_other_objects(self):
        with self.assertRaises(SchemaError):
            adapt_schema({"name": str})


if __name__ == "__main__":
    unittest.main()
