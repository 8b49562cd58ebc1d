"""
Records Router - the public read contract.

``GET /records/{record_id}`` answers 200 with the payload whichever tier holds
the record, or 404. Store failures surface as 503 and unverifiable tier state
as 500 through the exception handlers registered in ``src.api.main``.
"""

from fastapi import APIRouter, Depends, HTTPException, Response

from src.api.dependencies import get_read_router
from src.tiering.errors import PermanentError
from src.tiering.locator import validate_record_id
from src.tiering.router import ReadRouter


router = APIRouter(tags=["records"])

TIER_HEADER = "X-Record-Tier"
TIMESTAMP_HEADER = "X-Record-Timestamp"


@router.get(
    "/records/{record_id}",
    response_class=Response,
    responses={
        200: {"content": {"application/octet-stream": {}}},
        404: {"description": "Record not found in any tier"},
        500: {"description": "Tier state cannot be verified against the stores"},
        503: {"description": "A store is unavailable or timed out"},
    },
)
def read_record(
    record_id: str,
    read_router: ReadRouter = Depends(get_read_router),
) -> Response:
    """Read a record payload from the hot tier, falling back to the cold tier.

    Runs in FastAPI's threadpool since the router blocks on store calls.
    """
    try:
        validate_record_id(record_id)
    except PermanentError:
        # No record can be stored under a malformed id.
        raise HTTPException(status_code=404, detail=f"Record {record_id} not found")

    result = read_router.read(record_id)
    return Response(
        content=result.record.payload,
        media_type="application/octet-stream",
        headers={
            TIER_HEADER: result.status.value,
            TIMESTAMP_HEADER: result.record.timestamp.isoformat(),
        },
    )
