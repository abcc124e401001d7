"""
Grammar Loading Utilities for PyOrion.

Grammar definition modules expose a GrammarDefinition as ``g``. They are
loaded from:
- Built-in modules in the ``grammars`` package
- Plugin modules listed in the PYORION_GRAMMARS environment variable
- Python files on disk
"""
import os
import logging
import importlib
import importlib.util
from pathlib import Path
from types import ModuleType
from typing import Dict, List, Optional

from pyorion.core.errors import ConfigurationError
from pyorion.core.grammar import WeightedGrammar
from pyorion.dsl.core import GrammarDefinition

logger = logging.getLogger(__name__)

BUILTIN_GRAMMARS = {
    "select_core": "grammars.select_core",
    "arith": "grammars.arith",
}

GRAMMARS_ENV_VAR = "PYORION_GRAMMARS"


class GrammarLoader:
    """Loads and manages grammar definitions from various sources."""

    def __init__(self):
        self.definitions: Dict[str, GrammarDefinition] = {}

    def _register(self, name: str, module: ModuleType, source: str,
                  grammar_attr: str = 'g') -> bool:
        definition = getattr(module, grammar_attr, None)
        if definition is None:
            logger.warning("Grammar module '%s' does not expose '%s'", source, grammar_attr)
            return False
        if not isinstance(definition, GrammarDefinition):
            logger.warning("'%s.%s' is not a GrammarDefinition", source, grammar_attr)
            return False
        self.definitions[name] = definition
        return True

    def load_builtin(self, name: str, module_path: str, grammar_attr: str = 'g') -> bool:
        """Load a built-in grammar module (e.g. 'grammars.select_core')."""
        try:
            module = importlib.import_module(module_path)
        except ImportError as e:
            logger.warning("Could not import builtin grammar '%s': %s", module_path, e)
            return False
        return self._register(name, module, module_path, grammar_attr)

    def load_builtins(self) -> int:
        return sum(self.load_builtin(name, path) for name, path in BUILTIN_GRAMMARS.items())

    def load_from_env(self, env_var: str = GRAMMARS_ENV_VAR) -> int:
        """
        Load grammars listed as comma-separated module paths in ``env_var``.

        Returns:
            Number of grammars successfully loaded.
        """
        value = os.environ.get(env_var)
        if not value:
            return 0

        loaded = 0
        for module_path in [p.strip() for p in value.split(',') if p.strip()]:
            try:
                module = importlib.import_module(module_path)
            except Exception as e:
                logger.warning("Failed to load plugin grammar '%s': %s", module_path, e)
                continue
            name = self._unique_name(module_path.split('.')[-1])
            if self._register(name, module, module_path):
                loaded += 1
        return loaded

    def load_from_file(self, name: str, file_path: str, grammar_attr: str = 'g') -> bool:
        """Load a grammar definition from a Python file."""
        path = Path(file_path)
        if not path.exists():
            logger.error("Grammar file not found: %s", file_path)
            return False

        try:
            spec = importlib.util.spec_from_file_location(f"grammar_{name}", str(path))
            if spec is None or spec.loader is None:
                logger.error("Could not load spec for: %s", file_path)
                return False
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            logger.error("Failed to load grammar from '%s': %s", file_path, e)
            return False
        return self._register(name, module, file_path, grammar_attr)

    def load_by_name(self, grammar_name: str, grammars_dir: Optional[Path] = None) -> bool:
        """Load a grammar by name, trying the grammars package then a file."""
        if grammar_name in self.definitions:
            return True

        module_path = f"grammars.{grammar_name.replace('/', '.')}".rstrip('.')
        try:
            module = importlib.import_module(module_path)
        except ImportError:
            module = None
        if module is not None and self._register(grammar_name, module, module_path):
            return True

        if grammars_dir is None:
            grammars_dir = Path(__file__).parent.parent.parent / "grammars"
        file_path = grammars_dir / (str(Path(*grammar_name.split('.'))) + ".py")
        if file_path.exists():
            return self.load_from_file(grammar_name, str(file_path))

        path = Path(grammar_name)
        if path.suffix == ".py" and path.exists():
            return self.load_from_file(path.stem, str(path)) and self._alias(path.stem, grammar_name)
        return False

    def _alias(self, name: str, alias: str) -> bool:
        self.definitions[alias] = self.definitions[name]
        return True

    def get(self, name: str) -> Optional[GrammarDefinition]:
        return self.definitions.get(name)

    def build(self, name: str) -> WeightedGrammar:
        """Return a freshly built grammar for ``name``, loading it if needed."""
        if not self.load_by_name(name):
            available = ", ".join(sorted(self.definitions))
            raise ConfigurationError(f"Grammar '{name}' not found. Available: {available}")
        return self.definitions[name].build()

    def list_names(self) -> List[str]:
        return list(self.definitions.keys())

    def _unique_name(self, base_name: str) -> str:
        name = base_name
        i = 2
        while name in self.definitions:
            name = f"{base_name}_{i}"
            i += 1
        return name
