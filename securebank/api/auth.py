"""
Authentication endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from .dependencies import BankingSystem, get_banking_system, get_current_session, get_session_token
from .schemas import LoginRequest, SignupRequest
from ..exceptions import BankingError, NotFoundError
from ..logging_config import get_logger
from ..models import Session


logger = get_logger("securebank.api.auth")

router = APIRouter()


def _set_session_cookie(response: Response, system: BankingSystem, token: str) -> None:
    response.set_cookie(
        key=system.config.session_cookie_name,
        value=token,
        max_age=int(system.config.session_lifetime.total_seconds()),
        path="/",
        httponly=True,
        samesite="strict",
    )


def _clear_session_cookie(response: Response, system: BankingSystem) -> None:
    response.delete_cookie(
        key=system.config.session_cookie_name,
        path="/",
        httponly=True,
        samesite="strict",
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    request: SignupRequest,
    response: Response,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a user and start their session"""
    user = system.user_manager.signup(request.to_signup_data())
    session = system.session_manager.issue(user.id)
    _set_session_cookie(response, system, session.token)
    return {"user": user.to_dict(), "token": session.token}


@router.post("/login")
def login(
    request: LoginRequest,
    response: Response,
    system: BankingSystem = Depends(get_banking_system)
):
    """Check credentials and replace any existing session"""
    user = system.user_manager.authenticate(request.email, request.password)
    session = system.session_manager.issue(user.id)
    _set_session_cookie(response, system, session.token)
    return {"user": user.to_dict(), "token": session.token}


@router.post("/logout")
def logout(
    token: Optional[str] = Depends(get_session_token),
    system: BankingSystem = Depends(get_banking_system)
):
    """
    End the session. The cookie is cleared whatever happens server-side; a
    failed delete is still reported as an error.
    """
    try:
        removed = system.session_manager.terminate(token)
    except BankingError as exc:
        logger.error(f"Logout could not confirm session deletion: {exc.message}")
        response = JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )
        _clear_session_cookie(response, system)
        return response

    response = JSONResponse(content={
        "success": True,
        "message": "Logged out successfully" if removed else "No active session",
    })
    _clear_session_cookie(response, system)
    return response


@router.get("/me")
def current_user(
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """User behind the current session"""
    user = system.user_manager.get_user(session.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return {"user": user.to_dict(), "expires_at": session.expires_at.isoformat()}
