"""
Authentication API routes.

- POST /api/auth/signup: create an unverified account, no session
- POST /api/auth/login: open a session (Set-Cookie)
- POST /api/auth/logout: clear the session cookie
- GET  /api/auth/me: current user
- PUT  /api/auth/change-password
- POST /api/auth/forgot-password / reset-password / resend-verification
- GET  /api/verify-email?token=: verify and open the first session
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from pydantic import BaseModel, EmailStr

from wavscan.core.auth import clear_session_cookie, get_current_user, issue_session_cookie
from wavscan.features.accounts import service as accounts
from wavscan.features.mail.service import Mailer, get_mailer
from wavscan.models.user import User

router = APIRouter(prefix="/api/auth", tags=["auth"])
verify_router = APIRouter(prefix="/api", tags=["auth"])


class SignupIn(BaseModel):
    email: EmailStr
    username: str
    password: str


class LoginIn(BaseModel):
    email: str
    password: str


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str


class ForgotPasswordIn(BaseModel):
    email: str


class ResetPasswordIn(BaseModel):
    email: str
    token: str
    new_password: str


class ResendVerificationIn(BaseModel):
    email: str


@router.post("/signup", status_code=201)
def signup(data: SignupIn, mailer: Mailer = Depends(get_mailer)):
    user = accounts.signup(data.email, data.username, data.password, mailer)
    return {
        "ok": True,
        "message": "Account created. Check your inbox to verify your email address.",
        "user": user.public_dict(),
    }


@router.post("/login")
def login(data: LoginIn, response: Response):
    user = accounts.login(data.email, data.password)
    response.headers["set-cookie"] = issue_session_cookie(user)
    return {"ok": True, "user": user.public_dict()}


@router.post("/logout")
def logout(response: Response):
    response.headers["set-cookie"] = clear_session_cookie()
    return {"ok": True}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": user.public_dict()}


@router.put("/change-password")
@router.post("/change-password")
def change_password(data: ChangePasswordIn, user: User = Depends(get_current_user)):
    accounts.change_password(user, data.current_password, data.new_password)
    return {"ok": True, "message": "Password updated"}


@router.post("/forgot-password")
def forgot_password(data: ForgotPasswordIn, background_tasks: BackgroundTasks, mailer: Mailer = Depends(get_mailer)):
    # Reset mail goes out after the response is written
    message = accounts.forgot_password(data.email, mailer, dispatch=background_tasks.add_task)
    return {"ok": True, "message": message}


@router.post("/reset-password")
def reset_password(data: ResetPasswordIn):
    accounts.reset_password(data.email, data.token, data.new_password)
    return {"ok": True, "message": "Password updated"}


@router.post("/resend-verification")
def resend_verification(data: ResendVerificationIn, background_tasks: BackgroundTasks, mailer: Mailer = Depends(get_mailer)):
    message = accounts.resend_verification(data.email, mailer, dispatch=background_tasks.add_task)
    return {"ok": True, "message": message}


@verify_router.get("/verify-email")
def verify_email(response: Response, token: str = Query("")):
    user = accounts.verify_email(token)
    response.headers["set-cookie"] = issue_session_cookie(user)
    return {"ok": True, "user": user.public_dict()}
