"""
Tests for kblookup/lookup/values.py

Covers value construction invariants, literal rendering, casting and the
tagged serialization format.
"""
import pytest

from kblookup.lookup.errors import LookupEvaluationError
from kblookup.lookup.fragment import EntryQuery
from kblookup.lookup.values import (
    AnnotatedEntryValue, EntryTypeValue, EntryValue, ErrorValue, IntegerValue,
    LazyEntrySetValue, NullValue, PageValue, RelationshipFactValue,
    RelationshipTypeValue, StringValue, ValueKind
)


class TestIntegerValue:
    """Test IntegerValue."""

    def test_literal(self):
        assert IntegerValue(42).as_literal() == "42"
        assert IntegerValue(-7).as_literal() == "-7"

    def test_serializes_as_string(self):
        assert IntegerValue(5).to_dict() == {"type": "Integer", "value": "5"}

    def test_big_integers_keep_precision(self):
        big = 2 ** 80 + 1
        assert IntegerValue(big).to_dict()["value"] == str(big)

    def test_rejects_bool(self):
        with pytest.raises(TypeError):
            IntegerValue(True)

    def test_rejects_float(self):
        with pytest.raises(TypeError):
            IntegerValue(1.5)

    def test_equality(self):
        assert IntegerValue(3) == IntegerValue(3)
        assert IntegerValue(3) != IntegerValue(4)


class TestSimpleValues:
    """Test Null, String, Error and identity values."""

    def test_null(self):
        assert NullValue().as_literal() == "null"
        assert NullValue().to_dict() == {"type": "Null"}

    def test_string(self):
        assert StringValue("both").as_literal() == '"both"'
        assert StringValue("both").to_dict() == {"type": "String", "value": "both"}

    def test_string_literal_escapes(self):
        assert StringValue('say "hi"').as_literal() == r'"say \"hi\""'
        assert StringValue('a\\b').as_literal() == r'"a\\b"'

    def test_error_has_no_literal(self):
        error = ErrorValue("LookupEvaluationError", "boom")
        assert error.as_literal() is None
        assert error.to_dict() == {
            "type": "Error",
            "errorClass": "LookupEvaluationError",
            "message": "boom",
        }

    @pytest.mark.parametrize("value,literal,tag", [
        (EntryValue("_abc"), "E[_abc]", "Entry"),
        (EntryTypeValue("_t1"), "ET[_t1]", "EntryType"),
        (RelationshipTypeValue("_HAS_A"), "RT[_HAS_A]", "RelationshipType"),
        (RelationshipFactValue("_rf-9"), "RF[_rf-9]", "RelationshipFact"),
    ])
    def test_identity_values(self, value, literal, tag):
        assert value.as_literal() == literal
        assert value.to_dict() == {"type": tag, "id": value.id}

    def test_unrenderable_id_has_no_literal(self):
        assert EntryValue("has space").as_literal() is None
        assert EntryValue("a]b").as_literal() is None

    def test_kinds_are_distinct(self):
        assert EntryValue("_x") != EntryTypeValue("_x")
        assert EntryValue.kind == ValueKind.ENTRY

    def test_concrete_resolve_is_identity(self):
        value = EntryValue("_x")
        assert value.resolve() is value
        assert not value.is_lazy


class TestAnnotatedEntryValue:
    """Test AnnotatedEntryValue."""

    def test_requires_annotations(self):
        with pytest.raises(ValueError):
            AnnotatedEntryValue("_x", {})

    def test_serializes_annotations(self):
        value = AnnotatedEntryValue("_x", {"distance": IntegerValue(2), "weight": NullValue()})
        assert value.to_dict() == {
            "type": "AnnotatedEntry",
            "id": "_x",
            "annotations": {
                "distance": {"type": "Integer", "value": "2"},
                "weight": {"type": "Null"},
            },
        }

    def test_has_no_literal(self):
        assert AnnotatedEntryValue("_x", {"distance": IntegerValue(1)}).as_literal() is None

    def test_is_an_entry(self):
        value = AnnotatedEntryValue("_x", {"distance": IntegerValue(1)})
        assert value.cast_to(EntryValue, None) is value

    def test_has_its_own_tag(self):
        value = AnnotatedEntryValue("_x", {"distance": IntegerValue(1)})
        assert value.kind == ValueKind.ANNOTATED_ENTRY
        assert value.kind != EntryValue("_x").kind
        assert value.to_dict()["type"] == "AnnotatedEntry"


class TestPageValue:
    """Test PageValue."""

    def test_serialization(self):
        page = PageValue([EntryValue("_a")], started_at=0, page_size=10, total_count=1)
        assert page.to_dict() == {
            "type": "Page",
            "values": [{"type": "Entry", "id": "_a"}],
            "startedAt": 0,
            "pageSize": 10,
            "totalCount": 1,
        }

    def test_count(self):
        page = PageValue([EntryValue("_a")], started_at=3, page_size=1, total_count=9)
        assert page.has_count
        assert page.get_count() == 9

    def test_rejects_values_past_total(self):
        with pytest.raises(ValueError):
            PageValue([EntryValue("_a"), EntryValue("_b")], started_at=5, page_size=10, total_count=6)

    def test_rejects_negative_offset(self):
        with pytest.raises(ValueError):
            PageValue([], started_at=-1, page_size=10, total_count=0)


class TestCasting:
    """Test cast_to between value kinds."""

    def test_no_conversion_returns_none(self, context):
        assert IntegerValue(1).cast_to(EntryValue, context) is None
        assert NullValue().cast_to(LazyEntrySetValue, context) is None

    def test_entry_to_lazy_set(self, context):
        lazy = EntryValue("_PINUS").cast_to(LazyEntrySetValue, context)
        assert isinstance(lazy, LazyEntrySetValue)
        assert lazy.query == EntryQuery.starting_at("_PINUS")

    def test_lazy_set_to_page(self, context):
        lazy = EntryValue("_PINUS").cast_to(LazyEntrySetValue, context)
        page = lazy.cast_to(PageValue, context)
        assert page == PageValue([EntryValue("_PINUS")], started_at=0, page_size=100, total_count=1)


class TestLazyEntrySetValue:
    """Test LazyEntrySetValue pagination and row conversion."""

    def test_default_limit_from_context(self, context):
        lazy = LazyEntrySetValue(context, EntryQuery.starting_at("_PINE"))
        assert lazy.skip == 0
        assert lazy.limit == context.default_page_size
        assert lazy.is_lazy

    def test_negative_limit_rejected(self, context):
        with pytest.raises(LookupEvaluationError):
            LazyEntrySetValue(context, EntryQuery.starting_at("_PINE"), limit=-1)

    def test_with_page_keeps_query_and_annotations(self, context):
        convert = {"distance": IntegerValue}
        lazy = LazyEntrySetValue(context, EntryQuery.starting_at("_PINE"), annotations=convert)
        paged = lazy.with_page(skip=2, limit=3)
        assert paged is not lazy
        assert paged.query == lazy.query
        assert paged.annotations == lazy.annotations
        assert (paged.skip, paged.limit) == (2, 3)
        assert (lazy.skip, lazy.limit) == (0, 100)

    def test_resolve_skips_count_when_everything_fits(self, context, monkeypatch):
        calls = []
        monkeypatch.setattr(context.tx, "count_entries", lambda *a, **kw: calls.append(a) or 0)
        page = LazyEntrySetValue(context, EntryQuery.starting_at("_PINE")).resolve()
        assert page.total_count == 1
        assert calls == []

    def test_resolve_counts_when_page_is_full(self, context, monkeypatch):
        calls = []
        original = context.tx.count_entries

        def counting(*args, **kwargs):
            calls.append(args)
            return original(*args, **kwargs)

        monkeypatch.setattr(context.tx, "count_entries", counting)
        page = LazyEntrySetValue(context, EntryQuery.starting_at("_PINE"), limit=1).resolve()
        assert page.total_count == 1
        assert len(calls) == 1

    def test_bad_annotation_data_is_an_evaluation_error(self, context, monkeypatch):
        from kblookup.lookup.expressions import _weight_to_value

        monkeypatch.setattr(
            context.tx, "fetch_entries",
            lambda *a, **kw: [{"entry": "_CONE", "annotations": {"weight": "heavy"}}],
        )
        lazy = LazyEntrySetValue(context, EntryQuery.starting_at("_PINE"), annotations={"weight": _weight_to_value})
        with pytest.raises(LookupEvaluationError):
            lazy.resolve()
