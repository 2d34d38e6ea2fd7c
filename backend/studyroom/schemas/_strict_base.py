"""Strict schema baselines with forbidden extras by default."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Neutral strict base for response DTOs; fields serialize by their camelCase alias."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, populate_by_name=True)


class StrictRequestModel(StrictModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
