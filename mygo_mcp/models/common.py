"""
Common data models for the MyGo supplier client.

Provides base models shared by request and response structures.
"""

from pydantic import BaseModel, ConfigDict


class MyGoBaseModel(BaseModel):
    """Base model for all entities parsed from MyGo responses."""

    model_config = ConfigDict(
        extra="allow",  # Upstream schema drifts between versions
        use_enum_values=True,
        validate_assignment=True,
        populate_by_name=True,
    )


class MyGoRequestModel(BaseModel):
    """Base model for validated, immutable request inputs."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        use_enum_values=True,
        populate_by_name=True,
    )
