import logging
from typing import Optional

import firebase_admin
from fastapi import Request
from firebase_admin import credentials

from app.config import Settings, get_settings
from app.services.dispatcher import Dispatcher, FirebasePushGateway

logger = logging.getLogger(__name__)


def _credential(settings: Settings):
    if settings.firebase_credentials:
        return credentials.Certificate(settings.firebase_credentials)

    if settings.has_service_account:
        return credentials.Certificate({
            "type": "service_account",
            "project_id": settings.firebase_project_id,
            "private_key_id": settings.firebase_private_key_id,
            # keys pasted into env files usually carry escaped newlines
            "private_key": settings.firebase_private_key.replace("\\n", "\n"),
            "client_email": settings.firebase_client_email,
            "client_id": settings.firebase_client_id,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
            "client_x509_cert_url": settings.firebase_cert_url,
        })

    return credentials.ApplicationDefault()


def init_firebase_app(settings: Optional[Settings] = None) -> firebase_admin.App:
    """Builds the Firebase app handle once per process; later calls return the same handle."""
    settings = settings or get_settings()
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
    app = firebase_admin.initialize_app(_credential(settings), options)
    logger.info("Firebase Admin SDK initialized (project=%s)", app.project_id)
    return app


def build_dispatcher(app: firebase_admin.App, dry_run: bool = False) -> Dispatcher:
    """With dry_run, FCM validates each message without delivering it."""
    return Dispatcher(FirebasePushGateway(app, dry_run=dry_run))


# --- FastAPI dependencies ---

def get_firebase_app(request: Request) -> Optional[firebase_admin.App]:
    return getattr(request.app.state, "firebase_app", None)


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher
