"""
FastAPI application for DocketCC.
"""

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from docketcc import __version__
from docketcc.exceptions import DocketCCError, InvalidDocketError, SubscriptionLimitError
from docketcc.web.lifespan import lifespan

# Load .env before anything else
load_dotenv()

app = FastAPI(
    title="DocketCC",
    description="FCC docket monitoring and filing digests",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(DocketCCError)
async def docketcc_error_handler(request: Request, exc: DocketCCError):
    if isinstance(exc, InvalidDocketError):
        status = 400
    elif isinstance(exc, SubscriptionLimitError):
        status = 409
    else:
        status = 502
    return JSONResponse(status_code=status, content={"error": str(exc)})


from docketcc.web.health import router as health_router
from docketcc.web.routes import admin, subscriptions

app.include_router(health_router)
app.include_router(subscriptions.router, prefix="/api")
app.include_router(admin.router, prefix="/admin")
