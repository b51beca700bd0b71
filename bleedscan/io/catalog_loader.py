"""Pattern catalog loader (JSON, YAML, CSV, Excel)."""

from typing import Dict, List, Optional, Any
from pathlib import Path
import json
import logging

import pandas as pd
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..models.catalog import Matcher, PatternCategory, PatternCatalog
from ..models.finding import Severity
from .matcher_compiler import MatcherCompileError, compile_expression

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """The catalog document is missing or structurally invalid."""
    pass


class PatternSpec(BaseModel):
    """One named matcher in the catalog document."""

    model_config = ConfigDict(extra="allow")

    regex: Optional[str] = None
    weight: float = Field(default=0.5, ge=0.0)
    description: Optional[str] = None


class CategorySpec(BaseModel):
    """One category in the catalog document."""

    model_config = ConfigDict(extra="allow")

    severity: str = "medium"
    patterns: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("severity")
    @classmethod
    def _check_severity(cls, value: str) -> str:
        value = str(value).lower().strip()
        if value not in {s.value for s in Severity}:
            raise ValueError(f"unknown severity: {value}")
        return value


class CatalogDocument(BaseModel):
    """Validated catalog document.

    Keys follow the signature file format:

    ```json
    {
      "version": "2",
      "categories": {
        "credential_exfiltration": {
          "severity": "critical",
          "patterns": {"env_dump": {"regex": "JSON\\\\.stringify\\\\(process\\\\.env\\\\)"}}
        }
      },
      "agenticThreatWeights": {"credential_exfiltration": 1.8},
      "contextualModifiers": {"startup_script": 1.8},
      "safePatterns": ["for documentation purposes"]
    }
    ```
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: str = "1"
    categories: Dict[str, CategorySpec]
    threat_weights: Dict[str, float] = Field(
        default_factory=dict, alias="agenticThreatWeights"
    )
    context_modifiers: Dict[str, float] = Field(
        default_factory=dict, alias="contextualModifiers"
    )
    safe_patterns: List[str] = Field(default_factory=list, alias="safePatterns")

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: Any) -> str:
        return str(value)


def category_display_name(key: str) -> str:
    """``credential_exfiltration`` -> ``Credential Exfiltration``."""
    return " ".join(word.capitalize() for word in key.replace("_", " ").split())


class CatalogLoader:
    """Load the pattern catalog from various sources."""

    def __init__(self, max_expression_length: int = 2000):
        """Initialize the catalog loader.

        Args:
            max_expression_length: Longest accepted matcher expression
        """
        self.max_expression_length = max_expression_length

    def load(self, config: dict) -> PatternCatalog:
        """Load the catalog based on configuration.

        Args:
            config: Catalog source configuration with keys:
                - type: "json", "yaml", "csv" or "excel"
                - path: Path to the catalog file
                - sheet: Pattern sheet name for Excel (optional)
                - threat_weights / contextual_modifiers / safe_patterns:
                  side tables for tabular sources (optional)

        Returns:
            Immutable PatternCatalog

        Raises:
            CatalogError: If the source is missing or invalid
        """
        path = config.get("path")
        if not path:
            raise CatalogError("No catalog source path specified")

        path = Path(path)
        if not path.exists():
            raise CatalogError(f"Catalog file not found: {path}")

        source_type = config.get("type") or self._guess_type(path)
        source_type = source_type.lower()

        if source_type == "json":
            data = self.load_json(str(path))
        elif source_type == "yaml":
            data = self.load_yaml(str(path))
        elif source_type == "csv":
            data = self.load_csv(str(path), config)
        elif source_type == "excel":
            data = self.load_excel(str(path), config)
        else:
            raise CatalogError(f"Unsupported catalog source type: {source_type}")

        catalog = self.build(data)
        logger.info(
            f"Loaded {catalog.matcher_count()} matchers in "
            f"{len(catalog.categories)} categories from {path}"
        )
        return catalog

    def _guess_type(self, path: Path) -> str:
        suffix = path.suffix.lower()
        if suffix in (".yml", ".yaml"):
            return "yaml"
        if suffix == ".csv":
            return "csv"
        if suffix in (".xlsx", ".xls"):
            return "excel"
        return "json"

    def load_json(self, path: str) -> dict:
        """Load a catalog document from JSON."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise CatalogError(f"Invalid JSON catalog {path}: {e}")

    def load_yaml(self, path: str) -> dict:
        """Load a catalog document from YAML."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CatalogError(f"Invalid YAML catalog {path}: {e}")

    def load_csv(self, path: str, config: dict) -> dict:
        """Load pattern rows from CSV.

        Expected columns: category, severity, pattern, regex, weight (optional).
        Side tables come from the source configuration.
        """
        df = pd.read_csv(path, encoding=config.get("encoding", "utf-8"))
        data = self._rows_to_document(df)
        self._merge_inline_tables(data, config)
        return data

    def load_excel(self, path: str, config: dict) -> dict:
        """Load pattern rows and side tables from an Excel workbook.

        Sheets: patterns (or ``sheet``), weights (category, weight),
        modifiers (modifier, value), safe_patterns (phrase).
        """
        sheets = pd.read_excel(path, sheet_name=None)
        pattern_sheet = config.get("sheet") or "patterns"
        if pattern_sheet not in sheets:
            pattern_sheet = next(iter(sheets))

        data = self._rows_to_document(sheets[pattern_sheet])

        if "weights" in sheets:
            for _, row in sheets["weights"].iterrows():
                data["agenticThreatWeights"][str(row["category"]).strip()] = float(row["weight"])
        if "modifiers" in sheets:
            for _, row in sheets["modifiers"].iterrows():
                data["contextualModifiers"][str(row["modifier"]).strip()] = float(row["value"])
        if "safe_patterns" in sheets:
            data["safePatterns"].extend(
                str(v).strip() for v in sheets["safe_patterns"]["phrase"].dropna()
            )

        self._merge_inline_tables(data, config)
        return data

    def _rows_to_document(self, df: "pd.DataFrame") -> dict:
        """Convert pattern rows into the catalog document shape."""
        missing = {"category", "pattern", "regex"} - set(df.columns)
        if missing:
            raise CatalogError(f"Missing catalog columns: {', '.join(sorted(missing))}")

        data: Dict[str, Any] = {
            "categories": {},
            "agenticThreatWeights": {},
            "contextualModifiers": {},
            "safePatterns": [],
        }

        for category, rows in df.groupby("category", sort=False):
            first = rows.iloc[0]
            severity = first.get("severity", "medium")
            category_data = {
                "severity": "medium" if pd.isna(severity) else str(severity),
                "patterns": {},
            }
            for _, row in rows.iterrows():
                spec: Dict[str, Any] = {
                    "regex": None if pd.isna(row["regex"]) else str(row["regex"]),
                }
                weight = row.get("weight")
                if weight is not None and not pd.isna(weight):
                    spec["weight"] = float(weight)
                category_data["patterns"][str(row["pattern"]).strip()] = spec
            data["categories"][str(category).strip()] = category_data

        return data

    def _merge_inline_tables(self, data: dict, config: dict) -> None:
        data["agenticThreatWeights"].update(config.get("threat_weights", {}))
        data["contextualModifiers"].update(config.get("contextual_modifiers", {}))
        data["safePatterns"].extend(config.get("safe_patterns", []))

    def build(self, data: dict) -> PatternCatalog:
        """Validate a catalog document and compile its matchers.

        Malformed matchers are dropped with a warning; the rest of the
        catalog loads normally.

        Args:
            data: Raw catalog document

        Returns:
            Immutable PatternCatalog

        Raises:
            CatalogError: If the document is structurally invalid
        """
        try:
            document = CatalogDocument.model_validate(data)
        except ValidationError as e:
            raise CatalogError(f"Invalid catalog document: {e}")

        categories = []
        warnings = []

        for key, category_spec in document.categories.items():
            matchers = []
            for pattern_name, raw_spec in category_spec.patterns.items():
                matcher_id = f"{key}.{pattern_name}"
                try:
                    pattern_spec = PatternSpec.model_validate(raw_spec)
                except ValidationError as e:
                    message = f"Invalid pattern {matcher_id}: {e.errors()[0]['msg']}"
                    logger.warning(message)
                    warnings.append(message)
                    continue

                try:
                    regex = compile_expression(
                        pattern_spec.regex,
                        max_length=self.max_expression_length
                    )
                except MatcherCompileError as e:
                    message = f"Invalid regex in pattern {matcher_id}: {e}"
                    logger.warning(message)
                    warnings.append(message)
                    continue

                matchers.append(Matcher(
                    id=matcher_id,
                    name=pattern_name,
                    expression=pattern_spec.regex,
                    regex=regex,
                    weight=pattern_spec.weight,
                    description=pattern_spec.description
                ))

            categories.append(PatternCategory(
                key=key,
                name=category_display_name(key),
                severity=Severity.parse(category_spec.severity),
                matchers=tuple(matchers)
            ))

        return PatternCatalog(
            version=document.version,
            categories=tuple(categories),
            threat_weights=dict(document.threat_weights),
            context_modifiers=dict(document.context_modifiers),
            safe_patterns=tuple(document.safe_patterns),
            warnings=tuple(warnings)
        )
