from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import bcrypt
import hashlib
import os
from dotenv import load_dotenv
from pathlib import Path
from database import get_db
from errors import AuthenticationRequired
from models import Profile

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

def _load_jwt_secret() -> str:
    secret = os.environ.get('JWT_SECRET_KEY')
    if not secret:
        raise RuntimeError('JWT_SECRET_KEY is required and must be set in environment')
    weak_values = {
        'default_secret_key',
        'changeme',
        'change_me',
        'secret',
        'jwt_secret',
        'password',
        'admin123',
    }
    if len(secret) < 32 or secret.strip().lower() in weak_values:
        raise RuntimeError('JWT_SECRET_KEY is too weak; use a random secret with at least 32 characters')
    return secret


SECRET_KEY = _load_jwt_secret()
ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get('ACCESS_TOKEN_EXPIRE_MINUTES', 30))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.environ.get('REFRESH_TOKEN_EXPIRE_DAYS', 7))

security = HTTPBearer(auto_error=False)


def _prehash(password: str) -> bytes:
    # bcrypt truncates at 72 bytes, so the SHA-256 digest is what gets hashed
    try:
        pw_bytes = password.encode('utf-8')
    except Exception:
        pw_bytes = str(password).encode('utf-8')
    return hashlib.sha256(pw_bytes).digest()


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_prehash(plain_password), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    hashed = bcrypt.hashpw(_prehash(password), bcrypt.gensalt())
    return hashed.decode('utf-8')


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access"})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def create_refresh_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": expire, "type": "refresh"})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def issue_tokens(profile: Profile) -> dict:
    claims = {"sub": str(profile.id), "role": profile.role.value}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
        "token_type": "bearer",
    }


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        raise AuthenticationRequired("Could not validate credentials")


def load_profile_from_token(db: Session, token: str, token_type: str = "access") -> Profile:
    payload = decode_token(token)
    if payload.get("type") != token_type:
        raise AuthenticationRequired("Invalid token type")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise AuthenticationRequired("Could not validate credentials")

    profile = db.query(Profile).filter(Profile.id == int(subject)).first()
    if profile is None:
        raise AuthenticationRequired("User not found")
    if profile.is_disabled:
        raise AuthenticationRequired("Account disabled")
    return profile


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Profile:
    if not credentials:
        raise AuthenticationRequired()
    return load_profile_from_token(db, credentials.credentials)
