import asyncio
import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../')))

from formstate.exceptions import UnknownFieldError
from formstate.form.engine import FieldResult
from formstate.form.form import create_form
from formstate.form.schema import UNSET, Schema
from formstate.form.store import FieldMeta


def build_schema():
    schema = Schema()
    schema.field("name").string().min_length(3).regex(r"[A-Za-z]+", "Letters only.")
    schema.field("age").number().between(18, 99)
    return schema


class TestValidateField(unittest.IsolatedAsyncioTestCase):
    async def test_failure_stores_first_issue(self):
        form = create_form(build_schema(), {"name": "a1"})
        result = await form.validate_field("name")

        self.assertEqual(result, FieldResult(
            valid=False,
            error="Must be at least 3 characters long.",
            errors=["Must be at least 3 characters long.", "Letters only."],
        ))
        self.assertEqual(form.errors["name"], "Must be at least 3 characters long.")
        self.assertEqual(form.field_meta("name"), FieldMeta(invalid=True, validated=True))

    async def test_clearing_law(self):
        form = create_form(build_schema(), {"name": "Ada", "age": 24})
        form.set_field_error("name", "Taken on the server.")
        result = await form.validate_field("name")
        self.assertTrue(result.valid)
        self.assertNotIn("name", form.errors)
        self.assertEqual(form.field_meta("name"), FieldMeta(invalid=False, validated=True))

    async def test_does_not_touch_other_fields(self):
        form = create_form(build_schema(), {"name": "x"})
        await form.validate_field("age")
        self.assertEqual(form.field_meta("name"), FieldMeta())
        self.assertEqual(dict(form.errors), {"age": "This field is required."})

    async def test_unknown_field(self):
        form = create_form(build_schema())
        with self.assertRaises(UnknownFieldError):
            await form.validate_field("nope")


class TestDryRun(unittest.IsolatedAsyncioTestCase):
    async def test_dry_run_purity(self):
        form = create_form(build_schema(), {"name": "a", "age": 50})
        await form.validate_field("age")
        form.set_field_error("age", "Injected.")
        errors_before = dict(form.errors)
        metas_before = dict(form.fields_meta)

        self.assertFalse(await form.validate_field_dry_run("name"))
        self.assertTrue(await form.validate_field_dry_run("age"))

        self.assertEqual(dict(form.errors), errors_before)
        self.assertEqual(dict(form.fields_meta), metas_before)


class TestValidateForm(unittest.IsolatedAsyncioTestCase):
    async def test_results_cover_every_field(self):
        form = create_form(build_schema(), {"name": "Ada"})
        result = await form.validate_form()

        self.assertFalse(result.valid)
        self.assertEqual(dict(result.errors), {"age": "This field is required."})
        self.assertEqual(result.results["name"], FieldResult(valid=True))
        self.assertEqual(result.results["age"].errors, ["This field is required."])
        for name in ("name", "age"):
            meta = form.field_meta(name)
            self.assertTrue(meta.touched)
            self.assertTrue(meta.validated)
        self.assertTrue(form.field_meta("age").invalid)
        self.assertFalse(form.field_meta("name").invalid)

    async def test_idempotent(self):
        form = create_form(build_schema(), {"name": "a1", "age": 7})
        first = await form.validate_form()
        errors_first = dict(form.errors)
        second = await form.validate_form()
        self.assertEqual(dict(first.errors), dict(second.errors))
        self.assertEqual(dict(first.results), dict(second.results))
        self.assertEqual(dict(form.errors), errors_first)

    async def test_replaces_whole_error_map(self):
        form = create_form(build_schema(), {"name": "Ada", "age": 30})
        form.set_field_error("name", "Stale.")
        result = await form.validate()
        self.assertTrue(result.valid)
        self.assertEqual(dict(form.errors), {})

    async def test_invalid_implies_validated(self):
        form = create_form(build_schema(), {"name": "a"})
        await form.validate_field("name")
        await form.validate_form()
        for meta in form.fields_meta.values():
            if meta.invalid:
                self.assertTrue(meta.validated)


class TestSupersededResults(unittest.IsolatedAsyncioTestCase):
    def build_form(self, gate):
        async def username_free(value):
            if value == "slow":
                await gate.wait()
                return "Username is taken."
            return None

        schema = Schema()
        schema.field("username").string().async_validator(username_free)
        return create_form(schema, {"username": "slow"}, mode="aggressive")

    async def test_slow_earlier_validation_does_not_overwrite_later_one(self):
        gate = asyncio.Event()
        form = self.build_form(gate)

        first = asyncio.ensure_future(form.validate_field("username"))
        await asyncio.sleep(0)
        form.fields["username"].value = "fast"
        second = await form.validate_field("username")
        self.assertTrue(second.valid)

        gate.set()
        stale = await first
        self.assertFalse(stale.valid)
        self.assertIsNone(form.get_error("username"))
        self.assertFalse(form.field_meta("username").invalid)

    async def test_submit_right_after_input_still_touches_every_field(self):
        form = create_form(build_schema(), {"name": "ab", "age": 30}, mode="aggressive")
        form.on_field.input("name")
        valid = await form.handle_submit(on_valid=lambda values: None)()
        await form.settle()

        self.assertFalse(valid)
        self.assertEqual(form.field_meta("name"), FieldMeta(touched=True, dirty=True, invalid=True, validated=True))
        self.assertEqual(form.field_meta("age"), FieldMeta(touched=True, validated=True))
        self.assertEqual(form.get_error("name"), "Must be at least 3 characters long.")
        self.assertTrue(form.meta.validated)

    async def test_superseded_form_validation_keeps_newer_field_result(self):
        gate = asyncio.Event()
        form = self.build_form(gate)

        pending = asyncio.ensure_future(form.validate_form())
        await asyncio.sleep(0)
        form.fields["username"].value = "fast"
        self.assertTrue((await form.validate_field("username")).valid)

        gate.set()
        stale = await pending
        self.assertFalse(stale.valid)
        self.assertEqual(form.field_meta("username"), FieldMeta(touched=True, validated=True))
        self.assertIsNone(form.get_error("username"))

    async def test_reset_discards_in_flight_validation(self):
        gate = asyncio.Event()
        form = self.build_form(gate)

        pending = asyncio.ensure_future(form.validate_form())
        await asyncio.sleep(0)
        form.reset()
        gate.set()
        await pending

        self.assertEqual(dict(form.errors), {})
        self.assertEqual(form.field_meta("username"), FieldMeta())
        self.assertEqual(form.values["username"], "slow")

    async def test_unset_value_reaches_validator_as_unset(self):
        form = create_form(build_schema())
        self.assertIs(form.values["age"], UNSET)
        result = await form.validate_field("age")
        self.assertEqual(result.error, "This field is required.")


if __name__ == "__main__":
    unittest.main()
