"""tasky_mongodb package initializer

Collection specs for the Tasky database and the bootstrap that creates the
collections with their ``$jsonSchema`` validators.
"""

from .create_collections import BootstrapReport, OutcomeStatus, SpecOutcome, ensure_collections
from .errors import (
    BootstrapError,
    CollectionCreationError,
    DuplicateSpecError,
    InvalidSpecError,
    ValidationConflict,
)
from .schema import DEFAULT_SPECS, TASKS_SPEC, USERS_SPEC, CollectionSpec, FieldType, ValidationRule

__all__ = [
    "BootstrapError",
    "BootstrapReport",
    "CollectionCreationError",
    "CollectionSpec",
    "DEFAULT_SPECS",
    "DuplicateSpecError",
    "FieldType",
    "InvalidSpecError",
    "OutcomeStatus",
    "SpecOutcome",
    "TASKS_SPEC",
    "USERS_SPEC",
    "ValidationConflict",
    "ValidationRule",
    "ensure_collections",
]
