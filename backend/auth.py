from datetime import datetime, timedelta
from typing import Optional
import logging

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from config import settings
from database import async_session_maker
from document_store import DocumentStore, SqlDocumentStore
from exceptions import ValidationError
from models import UserRole
from schemas import RegisterRequest, SessionContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token; `sub` carries the account uid"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_store() -> DocumentStore:
    """Dependency for the document store (overridden in tests)"""
    return SqlDocumentStore(async_session_maker)


async def find_account_by_email(store: DocumentStore, email: str) -> Optional[dict]:
    accounts = await store.query("accounts", [("email", "==", email.lower())], limit=1)
    return accounts[0] if accounts else None


async def register_account(store: DocumentStore, data: RegisterRequest) -> dict:
    """Create a sign-in identity. No shop profile is written; see resolve_session."""
    if await find_account_by_email(store, data.email):
        raise ValidationError("Email already registered")

    account_id = await store.create("accounts", {
        "email": data.email.lower(),
        "hashed_password": get_password_hash(data.password),
        "display_name": data.display_name,
        "is_active": True,
    })
    logger.info(f"Registered account {data.email} ({account_id})")
    return await store.get("accounts", account_id)


async def authenticate_account(store: DocumentStore, email: str, password: str) -> Optional[dict]:
    account = await find_account_by_email(store, email)
    if not account or not verify_password(password, account["hashed_password"]):
        return None
    return account


def default_session(account: dict) -> SessionContext:
    """Synthesized admin profile: the account uid doubles as the shop id"""
    return SessionContext(
        uid=account["id"],
        email=account["email"] or "",
        display_name=account.get("display_name") or account["email"] or "User",
        role=UserRole.ADMIN,
        shop_id=account["id"],
        is_active=True,
    )


async def resolve_session(store: DocumentStore, account: dict) -> SessionContext:
    """
    Load the caller's shop profile from `users`.

    A missing profile, or one that cannot be read, is not fatal: the caller
    gets the default admin profile scoped to a shop keyed by their own uid.
    """
    try:
        profile = await store.get("users", account["id"])
    except Exception as e:
        logger.warning(f"Profile lookup failed for {account['id']}, using default profile: {e}")
        return default_session(account)

    if profile is None:
        return default_session(account)

    return SessionContext(
        uid=account["id"],
        email=profile["email"] or account["email"],
        display_name=profile["display_name"] or account["email"],
        role=profile["role"],
        shop_id=profile["shop_id"],
        is_active=bool(profile["is_active"]),
    )


async def get_current_account(
    token: str = Depends(oauth2_scheme),
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Get the authenticated account"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        uid: str = payload.get("sub")
        if uid is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    account = await store.get("accounts", uid)
    if account is None:
        raise credentials_exception
    if not account["is_active"]:
        raise HTTPException(status_code=400, detail="Inactive user")
    return account


async def get_session_context(
    account: dict = Depends(get_current_account),
    store: DocumentStore = Depends(get_store),
) -> SessionContext:
    """
    Caller identity and shop scope.
    This is the dependency every shop-scoped endpoint uses.
    """
    session = await resolve_session(store, account)
    if not session.is_active:
        raise HTTPException(status_code=403, detail="User is inactive in this shop")
    return session
