# erp_backend/auth/auth_router.py

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from erp_backend.auth.permissions import RequestContext, UserRole
from erp_backend.config import Settings, get_settings
from erp_backend.database import get_db
from erp_backend.errors import InvalidParameters, NotFound, Unauthorized
from erp_backend.models.user import Role, User

# ================= SECURITY =================
router = APIRouter(tags=["auth"])
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# auto_error=False: a missing token is answered by our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


# ================= HELPERS =================
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(sub: str, settings: Settings, minutes: Optional[int] = None) -> str:
    settings.require("secret_key")
    exp = datetime.now(timezone.utc) + timedelta(
        minutes=minutes or settings.access_token_expire_minutes
    )
    return jwt.encode({"sub": sub, "exp": exp}, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str, settings: Settings) -> int:
    settings.require("secret_key")
    try:
        data = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return int(data["sub"])
    except (JWTError, KeyError, ValueError):
        raise Unauthorized(
            "Invalid JWT",
            {"details": "Invalid or expired JWT token. Please refresh your session and try again."},
        )


# ================= DEPENDENCIES =================
def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    if not token:
        raise Unauthorized("Missing authorization header")

    user_id = decode_access_token(token, settings)
    user = db.get(User, user_id)
    if not user or user.deleted_at is not None:
        raise NotFound("User not found")
    return user


def get_request_context(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RequestContext:
    return RequestContext.for_user(db, user)


# ================= SCHEMAS =================
class RegisterRequest(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None
    password: str
    confirm_password: str

    @field_validator("confirm_password")
    def passwords_match(cls, v, info):
        if v != info.data.get("password"):
            raise ValueError("Passwords do not match.")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


# ================= ROUTES =================
@router.post("/register", status_code=201)
def register_user(request: RegisterRequest, db: Session = Depends(get_db)):
    exists = db.query(User).filter(User.email == request.email).first()
    if exists:
        raise InvalidParameters("Email already registered")

    # new accounts start as staff
    role = db.query(Role).filter(Role.name == UserRole.USER.value).first()

    user = User(
        email=request.email,
        full_name=request.full_name,
        password_hash=hash_password(request.password),
        role_id=role.id if role else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    return {"message": "User registered", "email": user.email}


@router.post("/login")
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = db.query(User).filter(User.email == request.email, User.deleted_at.is_(None)).first()

    if not user or not user.password_hash or not verify_password(request.password, user.password_hash):
        raise Unauthorized("Invalid credentials")
    if not user.is_active:
        raise Unauthorized("Account is inactive")

    token = create_access_token(str(user.id), settings)
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me")
def read_current_user(ctx: RequestContext = Depends(get_request_context)):
    return {
        "id": ctx.user.id,
        "email": ctx.user.email,
        "full_name": ctx.user.full_name,
        "role": ctx.role.value,
        "capabilities": sorted(c.value for c in ctx.capabilities),
    }
