"""Authentication routes for WOFlow."""

from datetime import datetime, timedelta, timezone
import hmac
import logging
import os
import secrets
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from src.api.middleware.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

# Without AUTH_SECRET_KEY a random key is generated per process; tokens
# then stop validating after a restart.
_DEFAULT_INSECURE_KEY = "your-secret-key-change-in-production"
_env_key = os.getenv("AUTH_SECRET_KEY", "")
if _env_key and _env_key != _DEFAULT_INSECURE_KEY:
    SECRET_KEY = _env_key
else:
    SECRET_KEY = secrets.token_hex(32)
    logger.warning(
        "AUTH_SECRET_KEY is not set or uses the insecure default. "
        "Generated a random session-scoped key."
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("AUTH_TOKEN_EXPIRE_MINUTES", "720"))
AUTH_PASSWORD = os.getenv("AUTH_PASSWORD", "woflow")


class Token(BaseModel):
    access_token: str
    token_type: str
    roles: list[str] = Field(default_factory=list)


class Actor(BaseModel):
    """The authenticated caller: who acts, and in which roles."""

    username: str
    roles: list[str] = Field(default_factory=list)

    def has_any_role(self, allowed: list[str]) -> bool:
        return any(role in allowed for role in self.roles)


def create_access_token(
    data: dict, expires_delta: Optional[timedelta] = None, roles: Optional[list[str]] = None
) -> str:
    to_encode = data.copy()
    if roles is not None:
        to_encode["roles"] = list(roles)
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        username: Optional[str] = payload.get("sub")
        if username is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc
    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        roles = []
    return Actor(username=username, roles=[str(r) for r in roles])


async def get_current_user(actor: Actor = Depends(get_current_actor)) -> str:
    return actor.username


def require_roles(roles_from_config: Callable[[Request], list[str]]):
    """Dependency factory: the actor needs one of the roles the config names."""

    async def dependency(request: Request, actor: Actor = Depends(get_current_actor)) -> Actor:
        allowed = roles_from_config(request)
        if not actor.has_any_role(allowed):
            logger.warning(
                "User %s (roles %s) denied %s %s; needs one of %s",
                actor.username, actor.roles, request.method, request.url.path, allowed,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(allowed)}",
            )
        request.state.actor = actor
        return actor

    return dependency


def release_roles(request: Request) -> list[str]:
    return request.app.state.config.engine.gates.release_roles


def completion_roles(request: Request) -> list[str]:
    return request.app.state.config.engine.gates.completion_roles


@router.post("/token", response_model=Token)
@limiter.limit("5/minute")
async def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends()):
    if not hmac.compare_digest(form_data.password.encode(), AUTH_PASSWORD.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )
    roles = request.app.state.config.auth.roles_for(form_data.username)
    access_token = create_access_token(data={"sub": form_data.username}, roles=roles)
    return {"access_token": access_token, "token_type": "bearer", "roles": roles}


@router.get("/verify")
async def verify_token(actor: Actor = Depends(get_current_actor)):
    """Verify that the current token is valid. Returns 401 if expired/invalid."""
    return {"valid": True, "username": actor.username, "roles": actor.roles}
