"""Typed failures raised by the engine."""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for every failure the engine reports to its caller."""


class NotFoundError(GamificationError):
    """A referenced user, achievement, reward or onboarding record is missing."""

    def __init__(self, kind: str, key: object) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ValidationError(GamificationError):
    """Input rejected before any store mutation."""


class StoreUnavailableError(GamificationError):
    """The record store could not be reached or failed mid-operation."""


class DuplicateRecordError(GamificationError):
    """A uniqueness constraint rejected an insert."""

    def __init__(self, collection: str, record: dict | None = None) -> None:
        self.collection = collection
        self.record = record or {}
        super().__init__(f"Duplicate record in {collection}")
