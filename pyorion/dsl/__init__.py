"""Python DSL for grammar definition"""

from .core import GrammarDefinition, WEIGHT_CLASSES

__all__ = ['GrammarDefinition', 'WEIGHT_CLASSES']
