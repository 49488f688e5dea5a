from fastapi import Request
from fastapi.responses import JSONResponse

from services.exceptions import InvalidScheduleError


async def invalid_schedule_exception_handler(request: Request, exc: InvalidScheduleError):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation Error",
            "message": str(exc),
            "field": getattr(exc, "field", None),
        },
    )
