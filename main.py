from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime, timezone
import uvicorn
from router import router
from household import household_router
from auth import auth_router
from config import get_settings
from database import engine, init_db
from logger import configure_logging, get_logger

VERSION = "1.0.0"

configure_logging()
logger = get_logger(__name__)
settings = get_settings()

init_db()

app = FastAPI(
    title="SplitMate API",
    description="Shared household expenses, allocation ratios and settlements.",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=500, content={"success": False, "error": "Internal server error"}
    )


app.include_router(household_router, prefix="/api", tags=["household"])
app.include_router(router, prefix="/api", tags=["expenses"])
app.include_router(auth_router, prefix="/auth", tags=["authentication"])


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": engine.dialect.name,
        "version": VERSION,
    }


@app.get("/")
def home():
    return {"message": "SplitMate Backend API", "version": VERSION}


if __name__ == "__main__":
    logger.info("starting", database=engine.dialect.name, env=settings.app_env)
    uvicorn.run(app, host="127.0.0.1", port=8000)
