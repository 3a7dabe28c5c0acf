import enum
import uuid
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from app.core.config import settings

http_bearer = HTTPBearer(auto_error=False)

class Role(str, enum.Enum):
    DOCTOR = "doctor"
    PATIENT = "patient"

# Tokens are issued by the external identity service; we only verify and read them.
class Principal(BaseModel):
    subject_id: uuid.UUID
    role: Role

def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
        return payload
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")

def issue_token(subject_id: uuid.UUID, role: Role, **claims) -> str:
    """Mint a token the way the identity service does; used by scripts and tests."""
    payload = {"sub": str(subject_id), "role": role.value, **claims}
    if settings.REQUIRED_AUDIENCE and "aud" not in payload:
        payload["aud"] = settings.REQUIRED_AUDIENCE
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")

    data = _decode_token(creds.credentials)
    try:
        subject_id = uuid.UUID(str(data.get("sub") or data.get("user_id")))
        role = Role(str(data.get("role", "")).lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Token is missing a valid subject or role")
    return Principal(subject_id=subject_id, role=role)

def require_role(*allowed: Role):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return principal
    return dep
