"""Strict Pydantic base model and JSON-friendly field types."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

import pydantic

__all__ = [
    'JsonDatetime',
    'StrictModel',
]

# Datetime that accepts ISO strings when loading from dicts (strict mode rejects them otherwise)
JsonDatetime = Annotated[datetime, pydantic.Field(strict=False)]


class StrictModel(pydantic.BaseModel):
    """Base model with strict validation.

    Config:
    - extra='forbid': Reject unknown fields (fail-fast)
    - strict=True: No implicit type coercion
    - frozen=True: Immutable after creation
    """

    model_config = pydantic.ConfigDict(
        extra='forbid',
        strict=True,
        frozen=True,
    )
