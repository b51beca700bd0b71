"""Pattern catalog models shared by the loader and the detector."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Pattern, Tuple

from .finding import Severity


@dataclass(frozen=True)
class Matcher:
    """A single compiled matcher of a category."""
    id: str
    name: str
    expression: str
    regex: Pattern
    weight: float = 0.5
    description: Optional[str] = None

    def display_pattern(self, limit: int = 50) -> str:
        """Truncated expression text for reports."""
        if len(self.expression) <= limit:
            return self.expression
        return self.expression[:limit] + "..."


@dataclass(frozen=True)
class PatternCategory:
    """A named group of matchers with a base severity."""
    key: str
    name: str
    severity: Severity
    matchers: Tuple[Matcher, ...] = ()

    @property
    def weight_key(self) -> str:
        """Key used to look the category up in the threat weight table."""
        return "_".join(self.name.lower().split())


@dataclass(frozen=True)
class PatternCatalog:
    """Validated, immutable pattern catalog loaded once per run."""
    version: str
    categories: Tuple[PatternCategory, ...]
    threat_weights: Dict[str, float] = field(default_factory=dict)
    context_modifiers: Dict[str, float] = field(default_factory=dict)
    safe_patterns: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    def threat_weight(self, category: PatternCategory) -> float:
        return float(self.threat_weights.get(category.weight_key, 1.0))

    def modifier(self, name: str, default: float) -> float:
        return float(self.context_modifiers.get(name, default))

    def matcher_count(self) -> int:
        return sum(len(c.matchers) for c in self.categories)
