# create_collections.py
import argparse
import logging
import sys
from collections import Counter
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

import pymongo
from pymongo.errors import CollectionInvalid, PyMongoError

from .connect_db import VALIDATION_ACTION, VALIDATION_LEVEL, database_session
from .errors import (
    BootstrapError,
    CollectionCreationError,
    DuplicateSpecError,
    ValidationConflict,
)
from .schema import DEFAULT_SPECS, CollectionSpec, ValidationRule

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    CREATED = "created"
    ALREADY_SATISFIED = "already_satisfied"
    VALIDATOR_ATTACHED = "validator_attached"
    VALIDATOR_UPDATED = "validator_updated"
    FAILED = "failed"


@dataclass
class SpecOutcome:
    name: str
    status: OutcomeStatus
    error: Optional[BootstrapError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BootstrapReport:
    outcomes: List[SpecOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failures(self) -> List[SpecOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def created(self) -> List[str]:
        return [o.name for o in self.outcomes if o.status == OutcomeStatus.CREATED]

    def raise_for_errors(self) -> None:
        """Raise the first recorded error, for callers that want all-or-nothing."""
        for outcome in self.outcomes:
            if outcome.error is not None:
                raise outcome.error


def _check_unique(specs: List[CollectionSpec]) -> None:
    counts = Counter(spec.name for spec in specs)
    duplicates = [name for name, n in counts.items() if n > 1]
    if duplicates:
        raise DuplicateSpecError(duplicates)


def _apply_validator(db, name: str, rule: ValidationRule) -> None:
    db.command(
        "collMod",
        name,
        validator=rule.to_validator(),
        validationLevel=VALIDATION_LEVEL,
        validationAction=VALIDATION_ACTION,
    )


def _current_options(db, name: str) -> dict:
    for info in db.list_collections(filter={"name": name}):
        return info.get("options") or {}
    return {}


def _enforcement_mismatch(options: dict) -> Optional[str]:
    # listCollections leaves out the server defaults
    level = options.get("validationLevel", "strict")
    action = options.get("validationAction", "error")
    if (level, action) == (VALIDATION_LEVEL, VALIDATION_ACTION):
        return None
    return (
        f"validationLevel={level!r}, validationAction={action!r} "
        f"(expected {VALIDATION_LEVEL!r}, {VALIDATION_ACTION!r})"
    )


def _ensure_one(db, spec: CollectionSpec, update_conflicting: bool) -> SpecOutcome:
    expected = spec.rule()

    if spec.name not in db.list_collection_names(filter={"name": spec.name}):
        try:
            db.create_collection(
                spec.name,
                validator=expected.to_validator(),
                validationLevel=VALIDATION_LEVEL,
                validationAction=VALIDATION_ACTION,
            )
            return SpecOutcome(spec.name, OutcomeStatus.CREATED)
        except CollectionInvalid:
            # created concurrently; fall through and inspect it
            logger.info("Collection '%s' appeared while creating it", spec.name)

    options = _current_options(db, spec.name)
    validator = options.get("validator")
    if not validator:
        _apply_validator(db, spec.name, expected)
        return SpecOutcome(spec.name, OutcomeStatus.VALIDATOR_ATTACHED)

    same_rule = expected.matches_validator(validator)
    enforcement = _enforcement_mismatch(options)
    if same_rule and enforcement is None:
        return SpecOutcome(spec.name, OutcomeStatus.ALREADY_SATISFIED)

    if update_conflicting:
        _apply_validator(db, spec.name, expected)
        return SpecOutcome(spec.name, OutcomeStatus.VALIDATOR_UPDATED)

    existing = ValidationRule.from_validator(validator)
    return SpecOutcome(
        spec.name,
        OutcomeStatus.FAILED,
        ValidationConflict(
            spec.name,
            existing=existing,
            expected=expected,
            reason="validator differs" if not same_rule else enforcement,
        ),
    )


def ensure_collections(
    db,
    specs: Iterable[CollectionSpec],
    *,
    timeout: Optional[float] = None,
    update_conflicting: bool = False,
) -> BootstrapReport:
    """Make sure every spec has a collection carrying its validator.

    Collections that already exist with a matching validator are left alone.
    A differing validator is reported as a ``ValidationConflict`` unless
    ``update_conflicting`` is set. Per-collection errors are collected in the
    returned report; only duplicate spec names raise.

    ``timeout`` bounds the whole batch, in seconds.
    """
    specs = list(specs)
    _check_unique(specs)

    report = BootstrapReport()
    with pymongo.timeout(timeout) if timeout is not None else nullcontext():
        for spec in specs:
            try:
                outcome = _ensure_one(db, spec, update_conflicting)
            except PyMongoError as e:
                error = CollectionCreationError(spec.name, str(e))
                error.__cause__ = e
                outcome = SpecOutcome(spec.name, OutcomeStatus.FAILED, error)
            except BootstrapError as e:
                # unreadable validator on an existing collection
                outcome = SpecOutcome(spec.name, OutcomeStatus.FAILED, e)
            report.outcomes.append(outcome)

            if isinstance(outcome.error, ValidationConflict):
                logger.warning("%s", outcome.error)
            elif outcome.error is not None:
                logger.error("%s", outcome.error)
            else:
                logger.info("Collection '%s': %s", spec.name, outcome.status.value)
    return report


def create_collections(timeout=None, update_conflicting=False) -> BootstrapReport:
    with database_session() as db:
        report = ensure_collections(
            db,
            DEFAULT_SPECS,
            timeout=timeout,
            update_conflicting=update_conflicting,
        )

    for outcome in report.outcomes:
        if outcome.ok:
            print(f"✅ {outcome.name}: {outcome.status.value.replace('_', ' ')}")
        else:
            print(f"⚠️ {outcome.name}: {outcome.error}")
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the Tasky collections and their validators")
    parser.add_argument("--timeout", type=float, default=None, help="Deadline for the whole run, in seconds")
    parser.add_argument(
        "--update-conflicting",
        action="store_true",
        help="Replace validators that differ from the declared schema",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    report = create_collections(timeout=args.timeout, update_conflicting=args.update_conflicting)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
