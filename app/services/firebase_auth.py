from dataclasses import dataclass
from typing import Optional

import firebase_admin
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from firebase_admin import auth

from app.services.firebase_app import get_firebase_app

# Scheme to extract the Firebase ID token from "Authorization: Bearer <token>".
# auto_error=False so a missing token gets our own 401 message.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


@dataclass(frozen=True)
class Caller:
    uid: str
    email: Optional[str] = None


async def get_caller(
        token: Optional[str] = Depends(oauth2_scheme),
        firebase_app: Optional[firebase_admin.App] = Depends(get_firebase_app),
) -> Caller:
    """
    Required dependency: verifies the Firebase ID token and returns the caller's identity.
    Raises HTTPException 401 if the token is missing or invalid.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="The function must be called while authenticated.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception

    try:
        decoded_token = auth.verify_id_token(token, app=firebase_app)
    except auth.ExpiredIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (auth.InvalidIdTokenError, auth.CertificateFetchError, ValueError):
        raise credentials_exception

    return Caller(uid=decoded_token["uid"], email=decoded_token.get("email"))
