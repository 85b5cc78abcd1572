from datetime import datetime, timezone
from typing import Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from schemas import Pagination


def dump(value: object, *, exclude_none: bool = False) -> object:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)
    if isinstance(value, list):
        return [dump(item, exclude_none=exclude_none) for item in value]
    return jsonable_encoder(value)


def success(
    message: str, data: Optional[object] = None, *, status_code: int = 200
) -> JSONResponse:
    body: dict[str, object] = {"message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


def paginated(
    data: list[object], *, page: int, limit: int, total_pages: int, total_items: int
) -> JSONResponse:
    pagination = Pagination(
        page=page, limit=limit, total_pages=total_pages, total_items=total_items
    )
    return JSONResponse(
        status_code=200, content={"data": data, "pagination": dump(pagination)}
    )


def error(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[object] = None,
) -> JSONResponse:
    err: dict[str, object] = {"code": code, "message": message}
    if details is not None:
        err["details"] = jsonable_encoder(details)
    timestamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
    return JSONResponse(
        status_code=status_code,
        content={
            "error": err,
            "timestamp": timestamp.replace("+00:00", "Z"),
            "path": request.url.path,
        },
    )
