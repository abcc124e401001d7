"""Tests for the weighted grammar."""

import pytest
from pyorion.core.consistency import ConsistencyAnalyzer
from pyorion.core.errors import ConfigurationError
from pyorion.core.grammar import NonterminalGene, WeightedGrammar
from pyorion.core.rules import RuleCatalog
from pyorion.core.symbols import SymbolCatalog


def make_grammar(w_stop=1, w_recurse=1):
    """S -> a | S b"""
    symbols = SymbolCatalog()
    rules = RuleCatalog()
    s = symbols.register("S")
    a = symbols.register("a")
    b = symbols.register("b")
    g = WeightedGrammar("s_grammar", symbols, rules, s)
    g.add_rule(rules.register(s, [a]), w_stop)
    g.add_rule(rules.register(s, [s, b]), w_recurse)
    return g


class FixedDraw:
    """Stands in for random.Random, returning a fixed randint draw."""

    def __init__(self, value):
        self.value = value

    def randint(self, lo, hi):
        assert lo <= self.value <= hi
        return self.value


class TestConstruction:

    def test_counts(self):
        g = make_grammar()
        assert g.rule_count == 2
        assert g.nt_count == 1
        assert [s.name for s in g.nonterminals()] == ["S"]
        assert [s.name for s in g.terminals()] == ["a", "b"]

    def test_is_nonterminal(self):
        g = make_grammar()
        assert g.is_nonterminal(g.symbol("S"))
        assert not g.is_nonterminal(g.symbol("a"))

    def test_weight_below_one_rejected(self):
        g = make_grammar()
        rule = g.rules.register(g.symbol("S"), [g.symbol("b")])
        with pytest.raises(ConfigurationError):
            g.add_rule(rule, 0)

    def test_duplicate_rule_rejected(self):
        g = make_grammar()
        rule = g.entry(0).rule
        with pytest.raises(ConfigurationError, match="Duplicate"):
            g.add_rule(rule, 3)

    def test_unknown_symbol(self):
        with pytest.raises(ConfigurationError):
            make_grammar().symbol("nope")

    def test_undefined_nonterminals(self):
        g = make_grammar()
        assert [s.name for s in g.undefined_nonterminals()] == ["a", "b"]
        g.declare_terminals([g.symbol("a"), g.symbol("b")])
        assert g.undefined_nonterminals() == []

    def test_text_of_defaults_to_name(self):
        g = make_grammar()
        assert g.text_of(g.symbol("a")) == "a"
        g.terminal_text[g.symbol("a")] = "A!"
        assert g.text_of(g.symbol("a")) == "A!"


class TestSelection:

    @pytest.mark.parametrize("draw,expected", [(1, 0), (2, 1), (4, 1)])
    def test_cumulative_walk(self, draw, expected):
        g = make_grammar(1, 3)
        choice = g.random_rule(g.symbol("S"), FixedDraw(draw))
        assert choice.index == expected
        assert choice.name == f"Rule.S.{expected}"

    def test_random_rule_on_terminal(self):
        g = make_grammar()
        with pytest.raises(ConfigurationError):
            g.random_rule(g.symbol("a"), FixedDraw(1))

    def test_probabilities(self):
        g = make_grammar(1, 3)
        assert g.probabilities(g.symbol("S")) == [0.25, 0.75]


class TestWeights:

    def test_round_trip_leaves_grammar_unchanged(self):
        g = make_grammar(2, 7)
        s = g.symbol("S")
        weights = g.to_weights()
        total = g.total_weight(s)
        probs = g.probabilities(s)
        consistent = ConsistencyAnalyzer(g).is_consistent()

        g.set_weights(weights)

        assert g.to_weights() == weights
        assert g.total_weight(s) == total
        assert g.probabilities(s) == probs
        assert ConsistencyAnalyzer(g).is_consistent() == consistent

    def test_set_weights_recomputes_totals(self):
        g = make_grammar()
        g.set_weights([4, 6])
        assert g.total_weight(g.symbol("S")) == 10

    def test_length_mismatch(self):
        with pytest.raises(ConfigurationError, match="length"):
            make_grammar().set_weights([1, 2, 3])

    def test_non_positive(self):
        g = make_grammar()
        with pytest.raises(ConfigurationError):
            g.set_weights([0, 1])
        g.set_weights([0, 1], require_positive=False)
        assert g.to_weights() == [0, 1]

    def test_set_rule_weight(self):
        g = make_grammar()
        g.set_rule_weight(1, 9)
        assert g.total_weight(g.symbol("S")) == 10

    def test_copy_owns_weights(self):
        g = make_grammar()
        c = g.copy()
        c.set_weights([5, 5])
        assert g.to_weights() == [1, 1]
        assert c.entry(0).rule is g.entry(0).rule

    def test_nonterminal_genes(self):
        g = make_grammar(2, 3)
        s = g.symbol("S")
        gene = g.project_nt(s)
        assert gene == NonterminalGene(s, [2, 3])
        g.update_nt(NonterminalGene(s, [7, 8]))
        assert g.to_weights() == [7, 8]
        assert g.total_weight(s) == 15
        with pytest.raises(ConfigurationError):
            g.update_nt(NonterminalGene(s, [1]))


class TestReports:

    def test_dump(self):
        text = make_grammar(1, 5).dump()
        assert "Rules starting with S; weight = 6" in text
        assert "S ==> S b" in text
        assert "Terminals:" in text

    def test_to_bnf(self):
        assert make_grammar().to_bnf() == "S ::= a\n    | S b ;"
