"""Base model for records persisted in the key-value store.

Every stored record inherits from :class:`MatrixModel` which provides:

* frozen instances (records are values, never mutated in place)
* ``extra="ignore"`` so older or newer writers can add keys freely
* :meth:`MatrixModel.from_stored`, a non-raising loader used by the read
  paths where one unparseable blob must not fail the whole response
"""

from __future__ import annotations

import logging
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, ValidationError

_logger = logging.getLogger(__name__)


class MatrixModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def from_stored(cls, raw: Any) -> Self | None:
        """Validate a decoded store value, returning ``None`` when unusable."""
        if not isinstance(raw, dict):
            return None
        try:
            return cls.model_validate(raw)
        except ValidationError:
            _logger.debug("Discarding unparseable %s record", cls.__name__, exc_info=True)
            return None

    def to_stored(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
