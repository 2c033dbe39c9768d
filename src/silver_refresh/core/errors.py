"""
Exception hierarchy for the silver refresh engine.

Every error carries a stable ``error_code`` plus the identity of the entity,
rule or quality check involved so that a failed batch can be traced back to
the step that caused it.
"""

from typing import Any


class SilverRefreshError(Exception):
    """Base exception for all silver refresh failures."""

    error_code = "SILVER_REFRESH"

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Structured form used for log records and CLI output."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
        }


class RuleCatalogError(SilverRefreshError):
    """Raised when the rule catalog cannot be loaded or is invalid."""

    error_code = "RULE_CATALOG"


class EntityParseError(SilverRefreshError):
    """Raised when a raw record does not have the shape of its entity type."""

    error_code = "ENTITY_PARSE"

    def __init__(self, entity: str, record_key: Any, details: str):
        self.entity = entity
        self.record_key = record_key
        self.details = details
        super().__init__(f"[{entity}] malformed raw record (key={record_key!r}): {details}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"entity": self.entity, "record_key": repr(self.record_key)})
        return data


class RuleEvaluationError(SilverRefreshError):
    """Raised when a rule step cannot be evaluated for a record."""

    error_code = "RULE_EVALUATION"

    def __init__(self, entity: str, rule_name: str, message: str):
        self.entity = entity
        self.rule_name = rule_name
        super().__init__(f"[{entity}:{rule_name}] {message}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"entity": self.entity, "rule_name": self.rule_name})
        return data


class StorageError(SilverRefreshError):
    """Raised when reading a snapshot or replacing an extent fails."""

    error_code = "STORAGE"

    def __init__(self, relation: str, message: str, sqlstate: str | None = None):
        self.relation = relation
        self.sqlstate = sqlstate
        super().__init__(f"[{relation}] {message}", error_code=sqlstate)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"relation": self.relation, "sqlstate": self.sqlstate})
        return data


class ValidationExecutionError(SilverRefreshError):
    """Raised when a quality check itself cannot run (not when it finds violations)."""

    error_code = "VALIDATION_EXECUTION"

    def __init__(self, check_id: str, message: str, sqlstate: str | None = None):
        self.check_id = check_id
        self.sqlstate = sqlstate
        super().__init__(f"[{check_id}] {message}", error_code=sqlstate)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"check_id": self.check_id, "sqlstate": self.sqlstate})
        return data
