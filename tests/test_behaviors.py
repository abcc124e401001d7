"""Tests for generation and representation behaviours."""

import random
from types import SimpleNamespace

import pytest
from pyorion.core.behaviors import (
    GENERATORS, REPRESENTERS, Representer, get_generator, get_representer,
    register_representer,
)
from pyorion.core.errors import ConfigurationError
from pyorion.core.scope import SourceDescriptor
from pyorion.core.symbols import GrammarSymbol


class FakeContext:
    """Hands fixed child texts to a representer."""

    def __init__(self, texts=(), rng=None):
        self.texts = list(texts)
        self.rng = rng or random.Random(0)
        self.aborted = None

    def child_texts(self, node):
        return list(self.texts)

    def abort(self, reason, symbol=None):
        self.aborted = (reason, symbol)
        raise RuntimeError(reason)


def node(payload=None, name="x"):
    return SimpleNamespace(symbol=GrammarSymbol(name), payload=payload, scope=None)


def render(behaviour_id, texts=(), payload=None):
    return get_representer(behaviour_id).represent(node(payload), FakeContext(texts))


class TestRegistry:

    def test_defaults(self):
        assert get_generator(None) is None
        assert get_representer(None) is REPRESENTERS["default"]

    def test_unknown_ids(self):
        with pytest.raises(ConfigurationError, match="Available"):
            get_generator("nope")
        with pytest.raises(ConfigurationError, match="Available"):
            get_representer("nope")

    def test_duplicate_registration(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            @register_representer("default")
            class Again(Representer):
                def represent(self, node, ctx):
                    return ""

    def test_registered_ids(self):
        for gen_id in ("subquery", "end_of_subquery", "register_table", "register_schema",
                       "define_alias", "integer", "number", "string"):
            assert gen_id in GENERATORS
            assert GENERATORS[gen_id].id == gen_id
        for rep_id in ("tight", "tight_unary", "tight_binary", "tight_paren", "comma_list",
                       "column_ref", "column_alias", "table_alias", "schema_name",
                       "sources_first", "output_column"):
            assert rep_id in REPRESENTERS


class TestStructural:

    def test_default_skips_empty_children(self):
        assert render("default", ["a", "", "b"]) == "a b"

    def test_tight(self):
        assert render("tight", ["a", "b"]) == "ab"

    def test_tight_binary(self):
        assert render("tight_binary", ["a", " . ", "b"]) == "a.b"

    def test_tight_unary(self):
        assert render("tight_unary", ["-", " 5"]) == "-5"

    def test_tight_paren(self):
        assert render("tight_paren", ["(", " 1 + 2 ", ")"]) == "(1 + 2)"

    def test_comma_list(self):
        assert render("comma_list", ["a", ",", "b", ",", "c"]) == "a, b, c"

    def test_end_of_subquery_is_silent(self):
        assert render("end_of_subquery", ["x"]) == ""

    def test_unimplemented_aborts(self):
        ctx = FakeContext()
        with pytest.raises(RuntimeError):
            get_representer("unimplemented").represent(node(name="window_clause"), ctx)
        reason, symbol = ctx.aborted
        assert "window_clause" in reason
        assert symbol == "window_clause"


class TestPayload:

    def test_payload_text(self):
        assert render("payload_text", payload="42") == "42"
        assert render("payload_text", ["a", "b"]) == "a b"

    def test_payload_name(self):
        assert render("payload_name", payload=SourceDescriptor(name="emp")) == "emp"
        with pytest.raises(RuntimeError):
            render("payload_name", payload="emp")

    def test_payload_schema(self):
        assert render("payload_schema", payload=SourceDescriptor("scott", "emp")) == "scott"
        assert render("payload_schema", payload=SourceDescriptor(name="emp")) == "UNKNOWN_SCHEMA"

    def test_sequence_literal(self):
        assert render("sequence_literal", payload=SourceDescriptor(name="emp_seq")) == "'emp_seq'"


class TestLiteralGenerators:

    def ctx(self, seed=3):
        return SimpleNamespace(rng=random.Random(seed), catalog=None)

    def test_integer(self):
        value = GENERATORS["integer"].generate(node(), self.ctx())
        assert 0 <= int(value) <= 1000

    def test_number(self):
        value = GENERATORS["number"].generate(node(), self.ctx())
        assert -1000.0 <= float(value) <= 1000.0
        assert len(value.split(".")[1]) == 2

    def test_string(self):
        value = GENERATORS["string"].generate(node(), self.ctx())
        assert value.startswith("'") and value.endswith("'")
        assert value[1:-1].isalpha() or value == "''"

    def test_same_rng_state_same_literal(self):
        a = GENERATORS["string"].generate(node(), self.ctx(9))
        b = GENERATORS["string"].generate(node(), self.ctx(9))
        assert a == b
