"""
Unit tests for the transform engine, rule validator and record processor.
"""
import copy

import pytest

from importer.models import FieldMapping, TransformKind, TransformRule, ValidationKind, ValidationRule
from importer.services import RecordProcessor, RuleValidator, TransformEngine, default_validator, get_field_value
from conftest import FIXED_NOW


@pytest.fixture()
def engine(fixed_clock):
    return TransformEngine(clock=fixed_clock)


def fn(name):
    return TransformRule(type=TransformKind.FUNCTION, function=name)


class TestTransformEngine:
    """Test each transform kind."""

    def test_no_rule_is_direct_copy(self, engine):
        assert engine.apply("x", None, {}) == "x"

    def test_static(self, engine):
        rule = TransformRule(type=TransformKind.STATIC, value="active")
        assert engine.apply("ignored", rule, {}) == "active"

    @pytest.mark.parametrize("name,value,expected", [
        ("lowercase", "ACME", "acme"),
        ("toLowerCase", "ACME", "acme"),
        ("UPPERCASE", "acme", "ACME"),
        ("trim", "  acme ", "acme"),
        ("parseInt", "42abc", 42),
        ("parseInt", "abc", 0),
        ("parseFloat", "3.5kg", 3.5),
        ("parseFloat", "n/a", 0),
        ("formatDate", "2024-03-05T10:00:00", "2024-03-05"),
        ("formatDate", "not a date", "not a date"),
        ("formatCurrency", 1234.5, "$1234.50"),
        ("formatCurrency", "12", "$12.00"),
        ("slugify", "Acme Corp, Inc.", "acme-corp-inc"),
        ("noSuchFunction", "same", "same"),
    ])
    def test_named_functions(self, engine, name, value, expected):
        assert engine.apply(value, fn(name), {}) == expected

    def test_clock_functions_use_injected_clock(self, engine):
        assert engine.apply(None, fn("now"), {}) == FIXED_NOW.isoformat()
        assert engine.apply(None, fn("today"), {}) == "2024-06-15"

    def test_register_function(self, engine):
        engine.register_function("Reverse", lambda v: v[::-1])
        assert engine.apply("abc", fn("reverse"), {}) == "cba"
        assert "reverse" in engine.available_functions()

    def test_lookup(self, engine):
        rule = TransformRule(type=TransformKind.LOOKUP, lookup_table={"1": "gold", "2": "silver"})
        assert engine.apply(1, rule, {}) == "gold"
        assert engine.apply("3", rule, {}) == "3"

        rule.lookup_default = "bronze"
        assert engine.apply("3", rule, {}) == "bronze"

    def test_concatenate_skips_empty_values(self, engine):
        rule = TransformRule(
            type=TransformKind.CONCATENATE,
            source_fields=["first", "middle", "last"],
            separator=" ",
        )
        record = {"first": "Ada", "middle": "", "last": "Lovelace"}
        assert engine.apply(None, rule, record) == "Ada Lovelace"

    def test_split(self, engine):
        rule = TransformRule(type=TransformKind.SPLIT, delimiter="@", index=1)
        assert engine.apply("ops@acme.test", rule, {}) == "acme.test"

        rule.index = 5
        assert engine.apply("ops@acme.test", rule, {}) == ""

    def test_format_date_tokens(self, engine):
        rule = TransformRule(type=TransformKind.FORMAT, format="DD/MM/YYYY")
        assert engine.apply("2024-03-05", rule, {}) == "05/03/2024"

    def test_format_numbers(self, engine):
        thousands = TransformRule(type=TransformKind.FORMAT, format="0,0")
        currency = TransformRule(type=TransformKind.FORMAT, format="$0,0.00")
        assert engine.apply("1234567", thousands, {}) == "1,234,567"
        assert engine.apply(1234.5, currency, {}) == "$1,234.50"

    def test_get_field_value_paths(self):
        record = {"a.b": 1, "user": {"emails": ["x@test", "y@test"]}}
        assert get_field_value(record, "a.b") == 1
        assert get_field_value(record, "user.emails.1") == "y@test"
        assert get_field_value(record, "user.missing.deep") is None


class TestRuleValidator:
    """Test validation rules and their messages."""

    @pytest.fixture()
    def validator(self):
        return RuleValidator()

    def check(self, validator, subject, **rule):
        rule_type = rule.pop("type")
        return validator.validate(subject, [ValidationRule(type=rule_type, **rule)], "name")

    def test_required(self, validator):
        result = self.check(validator, "", type=ValidationKind.REQUIRED)
        assert not result.valid
        assert result.message == "name is required"
        assert result.rule == "required"

    def test_lengths(self, validator):
        assert self.check(validator, "ab", type=ValidationKind.MIN_LENGTH, value=3).message == \
            "name must be at least 3 characters"
        assert self.check(validator, "abcd", type=ValidationKind.MAX_LENGTH, value=3).message == \
            "name must be no more than 3 characters"
        assert self.check(validator, 12345, type=ValidationKind.MAX_LENGTH, value=3).valid

    def test_pattern(self, validator):
        result = self.check(validator, "abc", type=ValidationKind.PATTERN, pattern=r"^\d+$")
        assert result.message == "name format is invalid"

    def test_range(self, validator):
        result = self.check(validator, "150", type=ValidationKind.RANGE, min=0, max=100)
        assert result.message == "name must be between 0 and 100"
        assert self.check(validator, "n/a", type=ValidationKind.RANGE, min=0, max=100).valid

    def test_enum(self, validator):
        result = self.check(validator, "x", type=ValidationKind.ENUM, enum_values=["a", "b"])
        assert result.message == "name must be one of: a, b"

    def test_custom_message_overrides(self, validator):
        result = self.check(validator, None, type=ValidationKind.REQUIRED, message="Give it a name")
        assert result.message == "Give it a name"

    def test_custom_passes_unless_registered(self):
        validator = default_validator()
        assert self.check(validator, "whatever", type=ValidationKind.CUSTOM).valid
        result = self.check(validator, "not-an-email", type=ValidationKind.CUSTOM, value="email")
        assert result.message == "Invalid email format"

    def test_stops_at_first_failure(self, validator):
        rules = [
            ValidationRule(type=ValidationKind.MIN_LENGTH, value=5),
            ValidationRule(type=ValidationKind.PATTERN, pattern=r"^\d+$"),
        ]
        assert validator.validate("ab", rules, "code").rule == "minLength"


class TestRecordProcessor:
    """Test per-row processing."""

    @pytest.fixture()
    def processor(self, fixed_clock):
        return RecordProcessor(clock=fixed_clock)

    def test_required_empty_field_is_an_error(self, processor):
        mappings = [FieldMapping(source_field="name", target_field="accountName", required=True)]
        record = processor.process_record({"name": ""}, mappings, 4)

        assert not record.is_successful
        assert record.errors[0].message == "Required field accountName is missing or empty"
        assert record.errors[0].record_index == 4
        assert record.transformed_data == {"accountName": ""}

    def test_default_value_substituted_before_transform(self, processor):
        mappings = [FieldMapping(
            source_field="status",
            target_field="status",
            default_value="ACTIVE",
            transform=fn("lowercase"),
        )]
        record = processor.process_record({"status": None}, mappings, 0)
        assert record.transformed_data["status"] == "active"

    def test_validation_failure_is_warning_unless_required(self, processor):
        rule = ValidationRule(type=ValidationKind.MAX_LENGTH, value=3)
        optional = FieldMapping(source_field="code", target_field="code", validation=[rule])
        required = FieldMapping(source_field="code", target_field="code", validation=[rule], required=True)

        soft = processor.process_record({"code": "ABCD"}, [optional], 0)
        assert soft.is_successful
        assert soft.warnings[0].message == "code must be no more than 3 characters"

        hard = processor.process_record({"code": "ABCD"}, [required], 0)
        assert not hard.is_successful
        assert hard.errors[0].message == "code must be no more than 3 characters"

    def test_custom_rules_pass_by_default(self, processor, fixed_clock):
        """Named custom validators only run when the caller registers them."""
        mapping = FieldMapping(
            source_field="e",
            target_field="email",
            required=True,
            validation=[ValidationRule(type=ValidationKind.CUSTOM, value="email")],
        )

        record = processor.process_record({"e": "not-an-email"}, [mapping], 0)
        assert record.is_successful
        assert record.warnings == []

        strict = RecordProcessor(validator=default_validator(), clock=fixed_clock)
        record = strict.process_record({"e": "not-an-email"}, [mapping], 0)
        assert record.errors[0].message == "Invalid email format"

    def test_failing_field_does_not_stop_other_fields(self, processor):
        processor.transform_engine.register_function("explode", lambda v: 1 / 0)
        mappings = [
            FieldMapping(source_field="a", target_field="first", transform=fn("explode")),
            FieldMapping(source_field="b", target_field="second"),
        ]
        record = processor.process_record({"a": 1, "b": 2}, mappings, 0)

        assert record.transformed_data == {"first": None, "second": 2}
        assert record.errors[0].message.startswith("Error processing field first:")

    def test_processing_is_pure(self, processor):
        raw = {"name": " Acme ", "tier": "1"}
        snapshot = copy.deepcopy(raw)
        mappings = [
            FieldMapping(source_field="name", target_field="name", transform=fn("trim")),
            FieldMapping(
                source_field="tier",
                target_field="tier",
                transform=TransformRule(type=TransformKind.LOOKUP, lookup_table={"1": "gold"}),
            ),
        ]

        first = processor.process_record(raw, mappings, 0)
        second = processor.process_record(raw, mappings, 0)

        assert raw == snapshot
        assert first.transformed_data == second.transformed_data == {"name": "Acme", "tier": "gold"}
