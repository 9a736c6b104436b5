"""Pydantic base schema utilities for agent loop models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base Pydantic model for all agent loop schemas.

    Configures common Pydantic behaviors:
    - ``populate_by_name=True``: Allow initialization by alias or field name.
    - ``extra="forbid"``: Reject unknown fields, including in stored session state.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )
