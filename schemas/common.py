from typing import Any, TypeVar
from pydantic import BaseModel, ValidationError as PydanticValidationError
from core.errors import ValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def coerce(schema: type[SchemaT], payload: Any) -> SchemaT:
    """Validate ``payload`` into ``schema``, raising the store ValidationError."""
    if isinstance(payload, schema):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    if payload is None:
        payload = {}
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'payload'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ValidationError(message, field=field) from exc


def non_blank(value: str | None, name: str) -> str | None:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError(f"{name} must not be empty")
    return value
