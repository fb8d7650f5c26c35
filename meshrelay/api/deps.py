"""Shared FastAPI dependencies, schema base and response helpers."""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import Depends, Request, Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from meshrelay.runtime import RelayRuntime


async def get_runtime(request: Request) -> RelayRuntime:
    runtime: RelayRuntime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        runtime = RelayRuntime()
        request.app.state.runtime = runtime
    await runtime.ensure_seeded()
    return runtime


RuntimeDep = Annotated[RelayRuntime, Depends(get_runtime)]


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def json_response(status: int, data: dict[str, Any]) -> Response:
    return Response(
        content=json.dumps(data),
        status_code=status,
        media_type="application/json; charset=utf-8",
    )
