"""Wire schemas and delivery results for the render service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class RenderRequest(BaseModel):
    """Chart description posted to ``/render``.

    Only ``type`` is interpreted here. Every other key is kept as-is and handed
    to the rendering engine.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Chart type, e.g. line, column, pie")

    def to_engine_options(self) -> dict[str, Any]:
        return self.model_dump()


class RenderResponse(BaseModel):
    """Response envelope for ``/render``."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    result_obj: str | None = Field(default=None, alias="resultObj")
    error_message: str | None = Field(default=None, alias="errorMessage")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class HealthResponse(BaseModel):
    """Liveness probe payload."""

    status: Literal["ok", "error"] = "ok"
    timestamp: str
    uptime: float


@dataclass(frozen=True)
class InlineEncoded:
    """Image returned inside the response as a data URI."""

    data_uri: str
    kind: Literal["inline"] = "inline"

    @property
    def result_obj(self) -> str:
        return self.data_uri


@dataclass(frozen=True)
class StoredLink:
    """Image persisted to the artifact store and returned as a URL."""

    url: str
    kind: Literal["stored"] = "stored"

    @property
    def result_obj(self) -> str:
        return self.url


DeliveryResult = InlineEncoded | StoredLink
