"""
API dependencies
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from atelier.core.security import decode_token

security = HTTPBearer()


@dataclass
class Operator:
    """Authenticated back-office user, as carried by the access token."""
    id: str
    email: Optional[str] = None


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Operator:
    """Get current authenticated operator"""
    payload = decode_token(credentials.credentials)

    if not payload or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )

    operator_id = payload.get("sub")
    if not operator_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject"
        )

    return Operator(id=str(operator_id), email=payload.get("email"))
