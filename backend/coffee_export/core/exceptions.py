"""Exceptions raised by the entity layer and the store boundary.

Business-rule non-satisfaction (quantity below minimum, missing documents,
RFQ not quotable) is never an exception; callers read the boolean result.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class FieldError:
    """A single violated field constraint."""

    field: str
    message: str
    error_type: str = "value_error"

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "type": self.error_type}


class EntityValidationError(ValueError):
    """Raised when a payload fails shape or invariant checks.

    Carries every failing field, not just the first, so callers can report
    the whole set back to the user in one round trip.
    """

    def __init__(self, entity: str, errors: Sequence[FieldError]):
        self.entity = entity
        self.errors: List[FieldError] = list(errors)
        fields = ", ".join(e.field for e in self.errors) or "<root>"
        super().__init__(f"Invalid {entity}: {len(self.errors)} error(s) in {fields}")

    @classmethod
    def from_pydantic(cls, entity: str, exc: Any) -> "EntityValidationError":
        """Translate a ``pydantic.ValidationError`` into field errors."""
        errors = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
            message = err.get("msg", "invalid value")
            errors.append(FieldError(field=loc, message=message, error_type=err.get("type", "value_error")))
        return cls(entity, errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "errors": [e.to_dict() for e in self.errors],
        }


class VersionConflictError(Exception):
    """Raised when a write loses the optimistic-lock race for a record."""

    def __init__(self, entity: str, record_id: str, expected: Optional[int], current: int):
        self.entity = entity
        self.record_id = record_id
        self.expected = expected
        self.current = current
        super().__init__(
            f"Version conflict on {entity} {record_id}: expected {expected}, current {current}"
        )
