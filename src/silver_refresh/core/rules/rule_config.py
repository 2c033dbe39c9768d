"""
Rule catalog management.

Loads the per-entity rule sets from YAML and provides a builder for
assembling catalogs programmatically (tests, ad-hoc runs).
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from silver_refresh.core.errors import RuleCatalogError
from silver_refresh.core.models import EntityRuleSet, EntityType, NormalizeRule

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[2] / "config" / "silver_rules.yaml"


class RuleCatalog:
    """
    Mapping from entity type to its ordered rule set.

    The catalog is the only place where domain knowledge lives: the
    evaluator interprets it and the quality suite derives its closed label
    sets from it.
    """

    def __init__(self, rule_sets: dict[EntityType, EntityRuleSet]):
        self.rule_sets = rule_sets

    @classmethod
    def from_mapping(cls, entities: dict[str, Any]) -> "RuleCatalog":
        """
        Build a catalog from the ``entities`` section of a catalog document.

        Args:
            entities: Entity name -> list of rule dictionaries

        Raises:
            RuleCatalogError: If an entity or rule definition is invalid
        """
        if not isinstance(entities, dict):
            raise RuleCatalogError("'entities' section must be a mapping of entity name to rule list")

        rule_sets: dict[EntityType, EntityRuleSet] = {}
        for entity_name, rule_list in entities.items():
            try:
                entity = EntityType.parse(entity_name)
            except ValueError as e:
                raise RuleCatalogError(str(e))

            rule_list = rule_list or []
            if not isinstance(rule_list, list):
                raise RuleCatalogError(f"Rules for entity '{entity_name}' must be a list")

            rules = [_with_name(entity, rule_def, idx) for idx, rule_def in enumerate(rule_list)]

            try:
                rule_sets[entity] = EntityRuleSet(entity=entity, rules=rules)
            except ValidationError as e:
                raise RuleCatalogError(f"Invalid rules for entity '{entity.value}': {e}")

        return cls(rule_sets)

    @property
    def entities(self) -> list[EntityType]:
        return list(self.rule_sets)

    def rules_for(self, entity: EntityType | str) -> EntityRuleSet:
        """
        Get the rule set of an entity type.

        Raises:
            RuleCatalogError: If the catalog has no entry for the entity
        """
        entity = EntityType.parse(entity)
        try:
            return self.rule_sets[entity]
        except KeyError:
            raise RuleCatalogError(f"Rule catalog has no rule set for entity '{entity.value}'")

    def normalize_rules(self, entity: EntityType | str) -> dict[str, NormalizeRule]:
        """Enabled normalize rules of an entity, keyed by the field they map."""
        return {
            rule.field: rule
            for rule in self.rules_for(entity).active_rules()
            if isinstance(rule, NormalizeRule)
        }

    def closed_set(self, entity: EntityType | str, field_name: str) -> list[str]:
        """
        Sorted labels a normalized field may take.

        Raises:
            RuleCatalogError: If the field is not normalized for the entity
        """
        rule = self.normalize_rules(entity).get(field_name)
        if rule is None:
            raise RuleCatalogError(f"Field '{field_name}' is not normalized for entity '{EntityType.parse(entity).value}'")
        return sorted(rule.labels())

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of loaded rules.

        Returns:
            Dictionary with rule counts per entity, type and category
        """
        by_type: dict[str, int] = {}
        by_category: dict[str, int] = {}
        per_entity: dict[str, list[str]] = {}

        for entity, rule_set in self.rule_sets.items():
            active = rule_set.active_rules()
            per_entity[entity.value] = [rule.name for rule in active]
            for rule in active:
                by_type[rule.type] = by_type.get(rule.type, 0) + 1
                by_category[rule.category] = by_category.get(rule.category, 0) + 1

        return {
            "total_rules": sum(by_type.values()),
            "rules_by_type": by_type,
            "rules_by_category": by_category,
            "rules_by_entity": per_entity,
        }


def _with_name(entity: EntityType, rule_def: Any, idx: int) -> Any:
    """Generate a rule name if not provided."""
    if not isinstance(rule_def, dict):
        raise RuleCatalogError(f"Rule #{idx} for entity '{entity.value}' must be a mapping")
    if "type" not in rule_def:
        raise RuleCatalogError(f"Rule #{idx} for entity '{entity.value}' is missing 'type'")
    if not rule_def.get("name"):
        rule_def = {**rule_def, "name": f"{entity.value}_{rule_def['type']}_{idx}"}
    return rule_def


class RuleCatalogLoader:
    """
    Loads the rule catalog from a YAML file.

    Expected YAML format:
    ```yaml
    entities:
      customer:
        - type: deduplicate
          key: [cst_id]
          recency: cst_create_date
        - type: normalize
          field: cst_gndr
          mapping: {F: Female, M: Male}
          default: n/a
      product_category: []
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the catalog loader.

        Args:
            config_path: Path to the YAML catalog file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise RuleCatalogError(f"Rule catalog file not found: {config_path}")

    def load(self) -> RuleCatalog:
        """
        Load and parse the rule catalog.

        Raises:
            RuleCatalogError: If YAML is invalid or missing required sections
        """
        try:
            with open(self.config_path) as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleCatalogError(f"Invalid YAML in {self.config_path}: {e}")

        if not config or "entities" not in config:
            raise RuleCatalogError("Rule catalog must contain an 'entities' section")

        return RuleCatalog.from_mapping(config["entities"])


def load_catalog(config_path: str | Path | None = None) -> RuleCatalog:
    """
    Load the rule catalog.

    Args:
        config_path: Explicit path; falls back to SILVER_RULES_PATH, then the
                     catalog shipped with the package
    """
    path = config_path or os.getenv("SILVER_RULES_PATH") or DEFAULT_CATALOG_PATH
    return RuleCatalogLoader(path).load()


class RuleCatalogBuilder:
    """
    Programmatically build rule catalogs (for testing or dynamic rules).

    Usage:
        catalog = RuleCatalogBuilder() \\
            .entity("customer") \\
            .deduplicate(["cst_id"], "cst_create_date") \\
            .trim(["cst_firstname"]) \\
            .build()
    """

    def __init__(self):
        """Initialize empty catalog."""
        self.entities: dict[str, list[dict[str, Any]]] = {}
        self._current: list[dict[str, Any]] | None = None

    def entity(self, entity: EntityType | str) -> "RuleCatalogBuilder":
        """Start (or continue) the rule list of an entity."""
        name = EntityType.parse(entity).value
        self._current = self.entities.setdefault(name, [])
        return self

    def add_rule(self, rule_type: str, **params: Any) -> "RuleCatalogBuilder":
        """Append a rule of any type to the current entity."""
        if self._current is None:
            raise RuleCatalogError("Call entity() before adding rules")
        self._current.append({"type": rule_type, **params})
        return self

    def deduplicate(self, key: list[str], recency: str, descending: bool = True) -> "RuleCatalogBuilder":
        return self.add_rule("deduplicate", key=key, recency=recency, descending=descending)

    def trim(self, fields: list[str]) -> "RuleCatalogBuilder":
        return self.add_rule("trim", fields=fields)

    def default_if_null(self, field: str, value: Any) -> "RuleCatalogBuilder":
        return self.add_rule("default_if_null", field=field, value=value)

    def strip_prefix(self, field: str, prefix: str) -> "RuleCatalogBuilder":
        return self.add_rule("strip_prefix", field=field, prefix=prefix)

    def remove_chars(self, field: str, chars: str) -> "RuleCatalogBuilder":
        return self.add_rule("remove_chars", field=field, chars=chars)

    def split_key(
        self,
        field: str,
        prefix_field: str,
        prefix_length: int,
        separator_length: int = 1,
        prefix_replace: dict[str, str] | None = None
    ) -> "RuleCatalogBuilder":
        return self.add_rule(
            "split_key",
            field=field,
            prefix_field=prefix_field,
            prefix_length=prefix_length,
            separator_length=separator_length,
            prefix_replace=prefix_replace or {},
        )

    def parse_yyyymmdd(self, fields: list[str]) -> "RuleCatalogBuilder":
        return self.add_rule("parse_yyyymmdd", fields=fields)

    def normalize(self, field: str, mapping: dict[str, str], default: str | None = None) -> "RuleCatalogBuilder":
        return self.add_rule("normalize", field=field, mapping=mapping, default=default)

    def lead_date(self, **params: Any) -> "RuleCatalogBuilder":
        return self.add_rule("lead_date", **params)

    def recompute_product(
        self, target: str, factors: list[str], absolute: list[str] | None = None, tolerance: str = "0"
    ) -> "RuleCatalogBuilder":
        return self.add_rule(
            "recompute_product", target=target, factors=factors, absolute=absolute or [], tolerance=tolerance
        )

    def recompute_quotient(self, target: str, numerator: str, denominator: str, scale: int = 4) -> "RuleCatalogBuilder":
        return self.add_rule(
            "recompute_quotient", target=target, numerator=numerator, denominator=denominator, scale=scale
        )

    def null_if_future(self, field: str) -> "RuleCatalogBuilder":
        return self.add_rule("null_if_future", field=field)

    def build(self) -> RuleCatalog:
        """Validate and return the catalog."""
        return RuleCatalog.from_mapping(self.entities)
