import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.principal import Principal
from backend.database import get_db
from backend.models.user import User

security = HTTPBearer()


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    try:
        return jwt_handler.principal_from_payload(payload)
    except jwt_handler.InvalidTokenSubject as exc:
        raise HTTPException(status_code=401, detail="Invalid token subject") from exc


def require_patient(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Principal:
    if not principal.is_patient:
        raise HTTPException(status_code=403, detail="Only patients can perform this action.")
    user = db.query(User).filter(User.id == principal.id).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return principal


def require_doctor(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_doctor:
        raise HTTPException(status_code=403, detail="Only doctors can perform this action.")
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Only admins can perform this action.")
    return principal


def require_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not (principal.is_doctor or principal.is_admin):
        raise HTTPException(status_code=403, detail="Only doctors or admins can perform this action.")
    return principal
