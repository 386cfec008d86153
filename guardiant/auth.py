from datetime import timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext

from guardiant.clock import utcnow
from guardiant.config import (
    JWT_SECRET,
    ALGORITHM,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    BCRYPT_ROUNDS,
)
from guardiant.errors import ServiceError, UNAUTHENTICATED


pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


# ---------------- PASSWORD / PIN ----------------

def hash_password(password: str):
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str):
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


# ---------------- TOKEN ----------------

def create_access_token(data: dict):

    to_encode = data.copy()

    expire = utcnow() + timedelta(
        minutes=ACCESS_TOKEN_EXPIRE_MINUTES
    )

    to_encode.update({"exp": expire})

    token = jwt.encode(
        to_encode,
        JWT_SECRET,
        algorithm=ALGORITHM
    )

    return token


def decode_access_token(token: str) -> str:
    """Return the user id carried by a bearer token."""

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        raise ServiceError(UNAUTHENTICATED, "Invalid authentication token")

    user_id = payload.get("sub")

    if not user_id:
        raise ServiceError(UNAUTHENTICATED, "Invalid authentication token")

    return user_id
