import os
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
import jwt
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from database import collection, find_by_id, create_document, serialize, to_object_id
from schemas import Address, Gender, User
from responses import ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# Security/JWT setup
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", str(7 * 24 * 60)))
security = HTTPBearer(auto_error=False)
password_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")


def hash_password(password: str) -> str:
    return password_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return password_ctx.verify(password, hashed)


def create_token(user: dict) -> str:
    payload = {
        "sub": str(user["_id"]),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "exp": datetime.utcnow() + timedelta(minutes=JWT_EXPIRES_MIN),
        "iat": datetime.utcnow(),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def public_user(user: dict) -> dict:
    user = serialize(user)
    user.pop("hashed_password", None)
    return user


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> dict:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authorized. No token provided.")
    payload = decode_token(credentials.credentials)
    user = find_by_id("user", payload.get("sub"))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return user


async def admin_only(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Access denied. Admin only.")
    return user


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


# Request schemas
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class GoogleLoginRequest(BaseModel):
    credential: str = Field(..., min_length=1, description="ID token from Google Sign-In")


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    gender: Optional[Gender] = None
    address: Optional[Address] = None


class RoleUpdate(BaseModel):
    role: str


def _token_response(user: dict, message: Optional[str] = None) -> dict:
    return ok(message=message, token=create_token(user), user=public_user(user))


@router.post("/register", status_code=201)
def register(payload: RegisterRequest):
    email = payload.email.lower()
    if collection("user").find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists with this email")
    doc = User(
        name=payload.name.strip(),
        email=email,
        hashed_password=hash_password(payload.password),
        phone=payload.phone,
    )
    try:
        user_id = create_document("user", doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists with this email")
    logger.info("Registered user %s", email)
    return _token_response(find_by_id("user", user_id), "Registration successful")


@router.post("/login")
def login(payload: LoginRequest):
    user = collection("user").find_one({"email": payload.email.lower()})
    if not user:
        logger.info("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if user.get("auth_provider") == "google":
        raise HTTPException(status_code=400, detail="This account uses Google login. Please sign in with Google.")
    if not verify_password(payload.password, user.get("hashed_password") or ""):
        logger.info("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Your account has been deactivated. Please contact support.")
    now = datetime.utcnow()
    collection("user").update_one({"_id": user["_id"]}, {"$set": {"last_login": now}})
    user["last_login"] = now
    return _token_response(user, "Login successful")


def verify_google_credential(credential: str) -> dict:
    """Check a Google Sign-In ID token against our client id and return its claims."""
    if not GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=503, detail="Google sign-in is not configured")
    try:
        claims = google_id_token.verify_oauth2_token(credential, google_requests.Request(), GOOGLE_CLIENT_ID)
    except (ValueError, GoogleAuthError) as e:
        logger.info("Google token verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid Google credential")
    if not claims.get("sub") or not claims.get("email") or not claims.get("email_verified"):
        raise HTTPException(status_code=401, detail="Invalid Google credential")
    return claims


@router.post("/google")
def google_login(payload: GoogleLoginRequest):
    claims = verify_google_credential(payload.credential)
    google_id = claims["sub"]
    email = claims["email"].lower()
    users = collection("user")

    user = users.find_one({"google_id": google_id})
    if user is None:
        user = users.find_one({"email": email})
        if user is not None:
            # Existing local account: link it to Google
            link = {"google_id": google_id, "auth_provider": "google", "is_email_verified": True}
            if not user.get("profile_image") and claims.get("picture"):
                link["profile_image"] = claims["picture"]
            users.update_one({"_id": user["_id"]}, {"$set": dict(link, updated_at=datetime.utcnow())})
            user.update(link)
            logger.info("Linked Google account to %s", email)
        else:
            doc = User(
                name=claims.get("name") or email.split("@")[0],
                email=email,
                google_id=google_id,
                auth_provider="google",
                is_email_verified=True,
                profile_image=claims.get("picture"),
            )
            try:
                user = find_by_id("user", create_document("user", doc))
            except DuplicateKeyError:
                user = users.find_one({"email": email})
            logger.info("Registered user %s with Google", email)

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Your account has been deactivated. Please contact support.")
    now = datetime.utcnow()
    users.update_one({"_id": user["_id"]}, {"$set": {"last_login": now}})
    user["last_login"] = now
    return _token_response(user, "Login successful")


@router.get("/me")
async def me(current_user: dict = Depends(get_current_user)):
    return ok(user=public_user(current_user))


@router.put("/profile")
async def update_profile(payload: ProfileUpdate, current_user: dict = Depends(get_current_user)):
    update = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "address" in update:
        # Only the address fields that were sent replace the stored ones
        merged = dict(current_user.get("address") or {})
        merged.update(update["address"])
        update["address"] = merged
    if update:
        update["updated_at"] = datetime.utcnow()
        collection("user").update_one({"_id": current_user["_id"]}, {"$set": update})
    user = collection("user").find_one({"_id": current_user["_id"]})
    return ok(message="Profile updated successfully", user=public_user(user))


# Admin: user management
@router.get("/users")
async def list_users(_: dict = Depends(admin_only)):
    users = [public_user(u) for u in collection("user").find().sort("created_at", -1)]
    return ok(users, count=len(users))


@router.put("/users/{user_id}/role")
async def update_user_role(user_id: str, payload: RoleUpdate, admin: dict = Depends(admin_only)):
    if payload.role not in ("user", "admin"):
        raise HTTPException(status_code=400, detail="Invalid role")
    oid = to_object_id(user_id)
    if oid is None or not collection("user").find_one({"_id": oid}):
        raise HTTPException(status_code=404, detail="User not found")
    collection("user").update_one({"_id": oid}, {"$set": {"role": payload.role, "updated_at": datetime.utcnow()}})
    logger.info("User %s role set to %s by %s", user_id, payload.role, admin.get("email"))
    return ok(public_user(collection("user").find_one({"_id": oid})), message=f"User role updated to {payload.role}")
