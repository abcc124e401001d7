"""
Persisted weight vectors.

A weight file is a JSON array of integers, one per rule in rule-table
order. The writer annotates each entry with its rule so the file can be
read and edited by hand:

    [
    1000,  # query ==> query_block
    10  # query ==> set_operation
    ]

The reader strips the annotations, so it accepts that format as well as a
plain JSON array.
"""
import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from pyorion.core.errors import ConfigurationError
from pyorion.core.grammar import WeightedGrammar

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"#[^\n]*")
_TRAILING_COMMA_RE = re.compile(r",\s*\]")


def format_weights(grammar: WeightedGrammar, weights: Optional[List[int]] = None) -> str:
    weights = grammar.to_weights() if weights is None else list(weights)
    if len(weights) != grammar.rule_count:
        raise ConfigurationError(
            f"Weights length {len(weights)} != rule table length {grammar.rule_count}")
    lines = ["["]
    last = len(weights) - 1
    for i, (w, e) in enumerate(zip(weights, grammar.entries)):
        sep = "," if i < last else ""
        lines.append(f"{int(w)}{sep}  # {e.rule}")
    lines.append("]")
    return "\n".join(lines) + "\n"


def write_weights(grammar: WeightedGrammar, path: str,
                  weights: Optional[List[int]] = None) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(format_weights(grammar, weights), encoding="utf-8")
    logger.info("Wrote %d weights to %s", grammar.rule_count, p)
    return p


def parse_weights(text: str) -> List[int]:
    cleaned = _TRAILING_COMMA_RE.sub("]", _COMMENT_RE.sub("", text))
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed weights: {e}") from e
    if not isinstance(data, list) or not all(isinstance(w, int) and not isinstance(w, bool)
                                             for w in data):
        raise ConfigurationError("Weights must be a JSON array of integers")
    return data


def read_weights(path: str, grammar: Optional[WeightedGrammar] = None) -> List[int]:
    """Read a weight vector, checking its length against ``grammar`` if given."""
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"No weights file |{path}|")
    weights = parse_weights(p.read_text(encoding="utf-8"))
    if grammar is not None and len(weights) != grammar.rule_count:
        raise ConfigurationError(
            f"Weights file {path} has {len(weights)} entries; "
            f"grammar '{grammar.name}' has {grammar.rule_count} rules")
    return weights
