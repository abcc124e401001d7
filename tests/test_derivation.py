"""Tests for the derivation engine."""

import random
import re

import pytest
from grammars.arith import g as arith
from grammars.select_core import g as select_core
from pyorion.core.consistency import ConsistencyAnalyzer
from pyorion.core.derivation import FALLBACK_STATEMENT, DerivationEngine
from pyorion.core.errors import ScopeSequenceError
from pyorion.core.universe import Universe
from pyorion.dsl.core import GrammarDefinition


def scoped_definition():
    g = GrammarDefinition("scoped")
    g.nonterminals("stmt", "column_ref", "from_item", "table_ref", "alias_def")
    g.keywords("select", "from")
    g.rule("N", "stmt", "SELECT column_ref FROM from_item", gen="subquery", rep="subquery")
    g.rule("N", "column_ref", (), rep="column_ref")
    g.rule("N", "from_item", "table_ref alias_def")
    g.rule("N", "table_ref", (), gen="register_table", rep="payload_name")
    g.rule("N", "alias_def", (), gen="define_alias", rep="payload_text")
    g.start("stmt")
    return g


def inline_view_definition():
    """SELECT item FROM ( SELECT item FROM table alias ) alias"""
    g = GrammarDefinition("inline_view")
    g.nonterminals("stmt", "block", "inner", "item", "column_ref", "from_item",
                   "subquery", "end_of_subquery", "table_ref", "alias_def")
    g.keywords("select", "from")
    g.terminals("(", ")")
    g.rule("N", "stmt", "block", gen="subquery", rep="subquery")
    g.rule("N", "block", "SELECT item FROM from_item", rep="sources_first")
    g.rule("N", "from_item", "subquery alias_def")
    g.rule("N", "subquery", "( inner end_of_subquery )", gen="subquery", rep="subquery")
    g.rule("N", "inner", "SELECT item FROM table_ref alias_def", rep="sources_first")
    g.rule("N", "end_of_subquery", (), gen="end_of_subquery", rep="end_of_subquery")
    g.rule("N", "item", "column_ref", rep="output_column")
    g.rule("N", "column_ref", (), rep="column_ref")
    g.rule("N", "table_ref", (), gen="register_table", rep="payload_name")
    g.rule("N", "alias_def", (), gen="define_alias", rep="payload_text")
    g.start("stmt")
    return g


INLINE_VIEW = re.compile(r"\) (QB\d+_\d+)(?![\w.])")
QUALIFIED_COLUMN = re.compile(r"\b(QB\d+_\d+)\.(\w+)")


def split_top_level(text, sep):
    """Split ``text`` on ``sep`` outside parentheses."""
    parts, depth, start, i = [], 0, 0, 0
    while i < len(text):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
        elif depth == 0 and text.startswith(sep, i):
            parts.append(text[start:i])
            i += len(sep)
            start = i
            continue
        i += 1
    parts.append(text[start:])
    return parts


def inline_view_outputs(text, close):
    """Names written once in the select list of the block closed at ``close``."""
    depth, i = 0, close
    while True:
        if text[i] == ")":
            depth += 1
        elif text[i] == "(":
            depth -= 1
            if depth == 0:
                break
        i -= 1
    body = text[i + 1:close].strip()
    select_list = split_top_level(body, " FROM ")[0]
    select_list = re.sub(r"^SELECT (DISTINCT )?", "", select_list)
    names = [item.split(" AS ")[-1] if " AS " in item else item.rsplit(".", 1)[-1]
             for item in split_top_level(select_list, ", ")]
    return {n for n in names if names.count(n) == 1}


class TestDeterminism:

    @pytest.fixture
    def engine(self):
        return DerivationEngine(select_core.build(), Universe.default())

    def test_same_seed_same_text(self, engine):
        first = engine.generate(seed=42).text
        assert engine.generate(seed=42).text == first
        other = DerivationEngine(select_core.build(), Universe.default())
        assert other.generate(seed=42).text == first

    def test_different_seeds_differ(self, engine):
        texts = {engine.generate(seed=s).text for s in range(20)}
        assert len(texts) > 1

    def test_generate_many_uses_consecutive_seeds(self, engine):
        results = list(engine.generate_many(3, seed=10))
        assert [r.seed for r in results] == [10, 11, 12]
        assert results[1].text == engine.generate(seed=11).text

    def test_random_seed_when_none(self, engine):
        result = engine.generate()
        assert isinstance(result.seed, int)
        assert engine.generate(seed=result.seed).text == result.text


class TestSelectStatements:

    def test_statements_are_selects(self):
        engine = DerivationEngine(select_core.build(), Universe.default())
        for seed in range(30):
            result = engine.generate(seed=seed)
            if result.success:
                assert result.text.startswith("SELECT ")
                assert " FROM " in result.text
            else:
                assert result.text == FALLBACK_STATEMENT

    def test_column_qualifier_matches_from_alias(self):
        universe = Universe.default()
        engine = DerivationEngine(scoped_definition().build(), universe)
        for seed in range(10):
            text = engine.generate(seed=seed).text
            m = re.fullmatch(r"SELECT (\w+)\.(\w+) FROM (\w+) (\w+)", text)
            assert m, text
            qualifier, column, table, alias = m.groups()
            assert qualifier == alias
            assert alias != table
            assert column in universe.get(f"scott.{table}").columns

    def test_outer_select_list_sees_inline_view_columns(self):
        engine = DerivationEngine(inline_view_definition().build(), Universe.default())
        for seed in range(10):
            text = engine.generate(seed=seed).text
            m = re.fullmatch(r"SELECT (\w+)\.(\w+) FROM \( SELECT (\w+)\.(\w+) "
                             r"FROM (\w+) (\w+) \) (\w+)", text)
            assert m, text
            qualifier, column, inner_qualifier, inner_column, _, table_alias, view_alias = m.groups()
            assert qualifier == view_alias
            assert column == inner_column
            assert inner_qualifier == table_alias

    def test_inline_view_references_use_its_select_list(self):
        grammar = select_core.build()
        ConsistencyAnalyzer(grammar).validate_and_repair(
            [1] * grammar.rule_count, 1000, rng=random.Random(0))
        engine = DerivationEngine(grammar, Universe.default())
        checked = 0
        for seed in range(300):
            result = engine.generate(seed=seed)
            if not result.success:
                continue
            text = result.text
            outputs = {m.group(1): inline_view_outputs(text, m.start())
                       for m in INLINE_VIEW.finditer(text)}
            for qualifier, column in QUALIFIED_COLUMN.findall(text):
                if column.startswith("UNKNOWN_"):
                    continue
                assert column in outputs.get(qualifier, set()), (seed, text)
                checked += 1
        assert checked > 0

    def test_probe_text_carries_seed(self):
        engine = DerivationEngine(arith.build())
        result = engine.generate(seed=42)
        assert result.probe_text == f"/*42*/ {result.text}"


class TestFailures:

    def test_stub_renders_fallback(self):
        g = GrammarDefinition("stubbed")
        g.nonterminals("S")
        g.rule("N", "S", "window_clause")
        g.stub("window_clause")
        g.start("S")

        result = DerivationEngine(g.build()).generate(seed=1)

        assert not result.success
        assert result.text == FALLBACK_STATEMENT
        assert "window_clause" in result.reason
        assert result.error.symbol == "window_clause"

    def test_node_limit(self):
        engine = DerivationEngine(arith.build(), max_nodes=1)
        result = engine.generate(seed=3)
        assert not result.success
        assert "exceeded" in result.reason

    def test_scope_sequence_error_propagates(self):
        g = GrammarDefinition("broken")
        g.nonterminals("S", "col_alias")
        g.rule("N", "S", "col_alias", gen="subquery", rep="subquery")
        g.rule("N", "col_alias", (), rep="column_alias")
        g.start("S")
        with pytest.raises(ScopeSequenceError):
            DerivationEngine(g.build()).generate(seed=1)

    def test_missing_start_symbol(self):
        g = GrammarDefinition("no_start")
        g.nonterminals("S")
        g.terminal("a")
        g.rule("N", "S", "a")
        engine = DerivationEngine(g.build())
        with pytest.raises(ValueError):
            engine.generate(seed=1)
        assert engine.generate(start="S", seed=1).text == "a"


class TestInstrumentation:

    @pytest.fixture
    def engine(self):
        return DerivationEngine(arith.build())

    def test_production_counts(self, engine):
        result = engine.generate(seed=5, count_productions=True)
        assert result.production_counts
        assert all(re.fullmatch(r"Rule\.\w+\.\d+", k) for k in result.production_counts)
        assert any(k.startswith("Rule.expr.") for k in result.production_counts)

    def test_counts_off_by_default(self, engine):
        assert not engine.generate(seed=5).production_counts

    def test_trace_matches_counts(self, engine):
        result = engine.generate(seed=5, count_productions=True, trace=True)
        assert len(result.trace) == sum(result.production_counts.values())
        assert result.trace[0].rule_name.startswith("Rule.expr.")
        assert result.trace[-1].frontier == [] or all(
            s in ("+", "-", "*", "/", "(", ")") for s in result.trace[-1].frontier)

    def test_keep_tree(self, engine):
        result = engine.generate(seed=5, keep_tree=True)
        assert result.tree is not None
        assert result.tree.root.symbol.name == "expr"
        assert "expr" in result.tree.format()
        assert engine.generate(seed=5).tree is None

    def test_arith_output_is_an_expression(self, engine):
        for seed in range(20):
            text = engine.generate(seed=seed).text
            assert re.fullmatch(r"[-0-9+*/() ]+", text), text
