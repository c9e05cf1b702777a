from fastapi import FastAPI, Depends, HTTPException, status, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import timedelta
import logging

from config import settings
from database import init_db, async_session_maker
from document_store import DocumentStore, SqlDocumentStore
from exceptions import RetailError, PartialWriteError
from seed_demo_data import seed_demo_data
from schemas import RegisterRequest, LoginRequest, Token, SessionContext
from auth import (
    create_access_token, authenticate_account, register_account,
    get_session_context, get_store,
)
from catalog import router as catalog_router
from sales import router as sales_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

# Strip whitespace from each origin to prevent configuration errors
CORS_ORIGINS = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight responses for 1 hour
)

# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(PartialWriteError)
async def partial_write_exception_handler(request: Request, exc: PartialWriteError):
    """Steps that already ran are listed so an operator can repair them"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RetailError)
async def retail_exception_handler(request: Request, exc: RetailError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler for unexpected errors"""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

# ==================== END EXCEPTION HANDLERS ====================

app.include_router(catalog_router)
app.include_router(sales_router)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME} ({settings.CONSISTENCY_MODE} writes)...")
    logger.info("=" * 60)

    try:
        await init_db()
    except Exception as e:
        logger.error("=" * 60)
        logger.error(f"CRITICAL: Application startup failed: {e}")
        logger.error("=" * 60)
        raise

    if settings.SEED_DEMO_DATA:
        await seed_demo_data(SqlDocumentStore(async_session_maker))


# ==================== AUTH ====================

@app.post("/auth/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, store: DocumentStore = Depends(get_store)):
    account = await register_account(store, data)
    access_token = create_access_token(
        data={"sub": account["id"]},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return Token(access_token=access_token)


@app.post("/auth/login", response_model=Token)
async def login(login_data: LoginRequest, store: DocumentStore = Depends(get_store)):
    account = await authenticate_account(store, login_data.email, login_data.password)
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    if not account["is_active"]:
        raise HTTPException(status_code=400, detail="Inactive user")

    access_token = create_access_token(
        data={"sub": account["id"]},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info(f"Login: {account['email']}")
    return Token(access_token=access_token)


@app.get("/auth/me", response_model=SessionContext)
async def get_me(session: SessionContext = Depends(get_session_context)):
    return session


# ==================== HEALTH CHECK ====================

@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
