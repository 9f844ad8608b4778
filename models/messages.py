"""Pydantic schemas for the ``Message`` bodies emitted by rtlamr."""

from __future__ import annotations

from abc import abstractmethod
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

Identifier = Union[StrictInt, StrictStr]


class MeterMessage(BaseModel):
    """Fields common to every supported meter protocol."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    consumption: Union[StrictInt, StrictFloat] = Field(..., alias="Consumption")

    @property
    @abstractmethod
    def meter_id(self) -> str:
        ...

    @property
    def meter_type(self) -> Optional[str]:
        return None


class ScmMessage(MeterMessage):
    """Standard Consumption Message."""

    id: Identifier = Field(..., alias="ID")
    type: Identifier = Field(..., alias="Type")

    @property
    def meter_id(self) -> str:
        return str(self.id)

    @property
    def meter_type(self) -> Optional[str]:
        return str(self.type)


class ScmPlusMessage(MeterMessage):
    """SCM+ carries its identity in the endpoint fields."""

    endpoint_id: Identifier = Field(..., alias="EndpointID")
    endpoint_type: Identifier = Field(..., alias="EndpointType")

    @property
    def meter_id(self) -> str:
        return str(self.endpoint_id)

    @property
    def meter_type(self) -> Optional[str]:
        return str(self.endpoint_type)


class R900Message(MeterMessage):
    """Neptune R900 water meter message; carries no type field."""

    id: Identifier = Field(..., alias="ID")

    @property
    def meter_id(self) -> str:
        return str(self.id)
