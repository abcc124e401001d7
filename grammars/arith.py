"""
Arithmetic Expression Grammar
Small integer expressions; handy for demos and for exercising the engine.
"""

from pyorion.dsl.core import GrammarDefinition

g = GrammarDefinition("arith", "Integer arithmetic expressions")

g.nonterminals("expr", "term", "factor", "number")
g.terminals("+", "-", "*", "/", "(", ")")

g.rule("N", "expr", "term")
g.rule("M", "expr", "expr + term")
g.rule("M", "expr", "expr - term")

g.rule("N", "term", "factor")
g.rule("M", "term", "term * factor")
g.rule("L", "term", "term / factor")

g.rule("N", "factor", "number")
g.rule("L", "factor", "( expr )", rep="tight_paren")
g.rule("O", "factor", "- factor", rep="tight_unary")

g.rule("N", "number", (), gen="integer", rep="payload_text")

g.start("expr")
