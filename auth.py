import hashlib
import logging
import os
from datetime import timedelta
from typing import Literal, Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, serialize_doc, to_object_id, utcnow
from schemas import User as UserSchema

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

router = APIRouter(prefix="/auth", tags=["auth"])


# ----------------------- Utils -----------------------
def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def create_token(payload: dict) -> str:
    exp = utcnow() + timedelta(days=JWT_EXPIRE_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "name": user.get("name", ""),
        "email": user.get("email", ""),
        "role": user.get("role", "user"),
    }


def issue_token(user: dict) -> str:
    return create_token({"id": user["id"], "email": user["email"], "role": user.get("role", "user")})


def _load_user(db, token: str) -> dict:
    payload = decode_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    try:
        _id = to_object_id(user_id, "User")
    except HTTPException:
        raise HTTPException(status_code=401, detail="User not found")
    user = db["user"].find_one({"_id": _id})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return serialize_doc(user)


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), db=Depends(get_db)):
    return _load_user(db, credentials.credentials)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db=Depends(get_db),
):
    """Guest checkout: no header means no user, a bad token is still rejected."""
    if credentials is None:
        return None
    return _load_user(db, credentials.credentials)


async def require_admin(user=Depends(get_current_user)):
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == "admin"


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class RoleBody(BaseModel):
    role: Literal["user", "admin"]


# ----------------------- Routes -----------------------
@router.post("/signup", status_code=201)
def signup(body: SignupBody, db=Depends(get_db)):
    user = UserSchema(
        name=body.name.strip(),
        email=body.email,
        password_hash=hash_password(body.password),
        role="user",
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email already registered")
    out = {"id": user_id, "name": user.name, "email": user.email, "role": user.role}
    return {"ok": True, "data": {"token": issue_token(out), "user": out}}


@router.post("/login")
def login(body: LoginBody, db=Depends(get_db)):
    user = db["user"].find_one({"email": body.email})
    if not user or user.get("password_hash") != hash_password(body.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    out = public_user(serialize_doc(user))
    return {"ok": True, "data": {"token": issue_token(out), "user": out}}


@router.get("/me")
def me(user=Depends(get_current_user)):
    return {"ok": True, "data": public_user(user)}


@router.get("/users")
def list_users(db=Depends(get_db), admin=Depends(require_admin)):
    users = db["user"].find({}).sort("created_at", -1)
    return {"ok": True, "data": [public_user(serialize_doc(u)) for u in users]}


@router.put("/users/{user_id}")
def set_user_role(user_id: str, body: RoleBody, db=Depends(get_db), admin=Depends(require_admin)):
    _id = to_object_id(user_id, "User")
    res = db["user"].update_one({"_id": _id}, {"$set": {"role": body.role, "updated_at": utcnow()}})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User %s role set to %s by %s", user_id, body.role, admin["id"])
    return {"ok": True, "data": public_user(serialize_doc(db["user"].find_one({"_id": _id})))}
