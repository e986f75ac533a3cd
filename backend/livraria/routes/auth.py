"""Account endpoints: register, login, email verification and password reset."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import get_current_user
from ..config import settings
from ..database import get_session
from ..dependencies import get_mailer
from ..utils.mail import Mailer
from ..utils.rate_limit import limiter

logger = logging.getLogger("routes.auth")

router = APIRouter(prefix="/auth", tags=["Auth"])


def _service(session: Session = Depends(get_session), mailer: Mailer = Depends(get_mailer)) -> services.AuthService:
    return services.AuthService(session, mailer)


@router.post("/register", status_code=201)
def register(data: schemas.RegisterIn, request: Request, svc: services.AuthService = Depends(_service)):
    limiter.enforce(request, settings.AUTH_RATE_LIMIT_PER_MIN)
    user, sent = svc.register(data)
    out = schemas.UserOut.model_validate(user).model_dump(mode="json")
    out["verification_email_sent"] = sent
    return out


@router.post("/login", response_model=schemas.TokenOut)
def login(data: schemas.LoginIn, request: Request, svc: services.AuthService = Depends(_service)):
    limiter.enforce(request, settings.AUTH_RATE_LIMIT_PER_MIN)
    token = svc.authenticate(data.email, data.password)
    if not token:
        logger.info("login_failed email=%s", data.email)
        raise HTTPException(status_code=401, detail="invalid credentials")
    return schemas.TokenOut(access_token=token)


@router.get("/me", response_model=schemas.UserOut)
def me(user: models.User = Depends(get_current_user)):
    return schemas.UserOut.model_validate(user)


@router.get("/verify-email", response_model=schemas.MessageOut)
def verify_email(token: str = Query(default=""), svc: services.AuthService = Depends(_service)):
    svc.verify_email(token)
    return schemas.MessageOut(message="email verified successfully")


@router.post("/request-password-reset", response_model=schemas.MessageOut)
def request_password_reset(
    data: schemas.PasswordResetRequestIn,
    request: Request,
    svc: services.AuthService = Depends(_service),
):
    limiter.enforce(request, settings.AUTH_RATE_LIMIT_PER_MIN)
    svc.request_password_reset(data.email)
    return schemas.MessageOut(message=services.PASSWORD_RESET_MESSAGE)


@router.post("/reset-password", response_model=schemas.MessageOut)
def reset_password(data: schemas.PasswordResetIn, svc: services.AuthService = Depends(_service)):
    svc.reset_password(data.token, data.password, data.confirm_password)
    return schemas.MessageOut(message="password updated successfully")
