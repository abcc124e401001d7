"""Tests for the genetic breeder."""

import random

import pytest
from unittest.mock import patch
from grammars.arith import g as arith
from pyorion.config import OrionConfig
from pyorion.core.consistency import ConsistencyAnalyzer
from pyorion.evolution.breeder import Breeder


def make_breeder(**overrides):
    values = dict(population=4, seed=1, mutation_rate=0.0)
    values.update(overrides)
    return Breeder(arith.build(), OrionConfig(**values), rng=random.Random(1))


def scaled(breeder, factor, score=0.0, special=False):
    c = breeder.spawn([w * factor for w in breeder.prototype.to_weights()])
    c.score = score
    c.special = special
    return c


class TestMutation:

    @pytest.mark.parametrize("mode", ["rule", "nt"])
    def test_accepted_mutation_changes_weights(self, mode):
        breeder = make_breeder(mutation=mode)
        c = scaled(breeder, 1000)
        before = c.weights
        outcome = breeder.mutate(c)
        assert outcome.changed
        assert outcome.attempts == 1
        assert c.weights != before
        assert ConsistencyAnalyzer(c.grammar).is_consistent()

    @pytest.mark.parametrize("mode", ["rule", "nt"])
    def test_rejected_mutation_leaves_weights_unchanged(self, mode):
        breeder = make_breeder(mutation=mode)
        c = breeder.spawn()
        before = c.weights
        with patch.object(Breeder, "_is_consistent", return_value=False):
            outcome = breeder.mutate(c)
        assert not outcome.changed
        assert outcome.attempts == breeder.retries == 4
        assert outcome.reason
        assert c.weights == before

    def test_weights_stay_positive(self):
        breeder = make_breeder(mutation="rule")
        c = breeder.spawn()
        for _ in range(20):
            breeder.mutate(c)
        assert min(c.weights) >= 1

    def test_mutate_generation_rate(self):
        breeder = make_breeder()
        population = [breeder.spawn() for _ in range(3)]
        assert breeder.mutate_generation(population, rate=0.0) == []
        assert len(breeder.mutate_generation(population, rate=0.0, force=True)) == 3

    def test_prototype_untouched(self):
        breeder = make_breeder()
        before = breeder.prototype.to_weights()
        breeder.mutate(breeder.spawn())
        assert breeder.prototype.to_weights() == before


class TestCrossover:

    def test_rule_crossover_copies_a_segment(self):
        breeder = make_breeder(crossover="rule")
        mother, father = scaled(breeder, 1), scaled(breeder, 2)

        outcome = breeder.crossover(mother, father)

        child = outcome.candidate
        assert outcome.changed
        assert child.parents == (mother.id, father.id)
        pairs = list(zip(child.weights, mother.weights, father.weights))
        assert all(c in (m, f) for c, m, f in pairs)
        assert any(c == f for c, m, f in pairs)
        assert sum(c == m for c, m, f in pairs) >= len(pairs) // 2
        assert mother.weights == scaled(breeder, 1).weights

    def test_nt_crossover_copies_whole_genes(self):
        breeder = make_breeder(crossover="nt")
        mother, father = scaled(breeder, 1), scaled(breeder, 3)

        child = breeder.crossover(mother, father).candidate

        donated = 0
        for nt in child.grammar.nonterminals():
            gene = child.grammar.project_nt(nt).weights
            assert gene in (mother.grammar.project_nt(nt).weights,
                            father.grammar.project_nt(nt).weights)
            donated += gene == father.grammar.project_nt(nt).weights
        assert donated == child.grammar.nt_count // 2 + 1

    def test_failed_crossover_keeps_mother(self):
        breeder = make_breeder(crossover="rule")
        mother, father = scaled(breeder, 1), scaled(breeder, 2)
        with patch.object(Breeder, "_is_consistent", return_value=False):
            outcome = breeder.crossover(mother, father)
        assert not outcome.changed
        assert outcome.candidate.weights == mother.weights


class TestBreed:

    def test_fitness_vector(self):
        assert Breeder.fitness_vector(["a", "b", "c"]) == ["a", "b", "b", "c", "c", "c"]

    def test_generation_size_and_winner(self):
        breeder = make_breeder()
        candidates = [scaled(breeder, k, score=float(k)) for k in (1, 2, 3)]

        generation = breeder.breed(candidates)

        assert len(generation) == 4
        assert generation[0].weights == candidates[2].weights
        assert generation[0].parents == (candidates[2].id,)
        assert len({c.id for c in generation}) == 4
        assert not {c.id for c in generation} & {c.id for c in candidates}

    def test_special_candidates_pass_through(self):
        breeder = make_breeder()
        candidates = [scaled(breeder, 1, score=1.0, special=True),
                      scaled(breeder, 2, score=2.0),
                      scaled(breeder, 3, score=3.0)]

        generation = breeder.breed(candidates, size=5)

        assert len(generation) == 5
        assert generation[0].weights == candidates[0].weights
        assert generation[1].weights == candidates[2].weights

    def test_special_winner_passed_once(self):
        breeder = make_breeder()
        candidates = [scaled(breeder, 1, score=1.0), scaled(breeder, 2, score=2.0, special=True)]
        generation = breeder.breed(candidates, size=2)
        assert generation[0].parents == (candidates[1].id,)
        assert len(generation) == 2

    def test_empty_population(self):
        breeder = make_breeder()
        generation = breeder.breed([])
        assert len(generation) == 4
        assert all(c.weights == breeder.prototype.to_weights() for c in generation)

    def test_single_parent_crossover(self):
        breeder = make_breeder()
        only = scaled(breeder, 1, score=1.0)
        generation = breeder.breed([only], size=3)
        assert len(generation) == 3
        assert all(c.weights == only.weights for c in generation)
