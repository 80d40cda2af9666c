from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import client_ip, get_db, require_identity
from app.api.envelope import respond
from app.schemas.accounts import AccountRead
from app.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ResetPasswordRequest,
)
from app.services import auth as auth_service
from app.services.identity import IdentityContext

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    result = auth_service.auth.login(db, payload, ip_address=client_ip(request))
    if result.is_success:
        result.data = LoginResponse.model_validate(result.data, from_attributes=True).model_dump(
            mode="json", by_alias=True
        )
    return respond(result)


@router.get("/me")
def me(identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(auth_service.auth.me(db, identity), AccountRead)


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(auth_service.auth.change_password(db, identity, payload))


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, request: Request, db: Session = Depends(get_db)):
    return respond(auth_service.auth.forgot_password(db, payload, ip_address=client_ip(request)))


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    return respond(auth_service.auth.reset_password(db, payload))
