"""Base model for obsbridge payloads.

Every wire-facing model inherits from :class:`BridgeBaseModel` which
provides:

* ``alias_generator=to_camel`` so the camelCase keys used by OBS, the
  events API and HTTP clients map automatically to snake_case fields.
* ``populate_by_name=True`` so Python code may construct models with
  snake_case keyword arguments.
* ``frozen=True``: payloads are values, never mutated after validation.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BridgeBaseModel(BaseModel):
    """Base for obsbridge request/response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, object]:
        """Dump using camelCase keys, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)
