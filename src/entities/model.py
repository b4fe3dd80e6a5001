import dataclasses
import enum
import pathlib

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict


class BaseModel(PydanticBaseModel):
    """Frozen model that accepts both AWS API keys (aliases) and python field names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def to_aws(self) -> dict:  # noqa: ANN101
        """AWS shaped representation. Unset optional fields are left out, never emitted as null."""
        return self.model_dump(by_alias=True, exclude_none=True)


def json_default(o: object) -> str | dict | list:
    if isinstance(o, PydanticBaseModel):
        return o.model_dump(by_alias=True, exclude_none=True)
    elif dataclasses.is_dataclass(o) and not isinstance(o, type):
        return dataclasses.asdict(o)
    elif isinstance(o, enum.Enum):
        return o.value
    elif isinstance(o, (set, frozenset, tuple)):
        return list(o)
    elif isinstance(o, pathlib.PurePath):
        return str(o)
    return str(o)
