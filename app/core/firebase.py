"""Firebase Admin SDK initialization and identity helpers."""

import json
import os

import firebase_admin
import httpx
from firebase_admin import auth, credentials, firestore, firestore_async
from structlog import get_logger

logger = get_logger(__name__)

_firebase_app: firebase_admin.App | None = None

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"


def initialize_firebase(
    firebase_credentials_path: str | None = None, firebase_config_json: str | None = None
) -> None:
    """
    Initialize Firebase Admin SDK.

    Args:
        firebase_credentials_path: Optional path to service account JSON file.
        firebase_config_json: Optional raw JSON string of service account.

    Looks for Firebase credentials in order:
    1. firebase_config_json parameter
    2. firebase_credentials_path parameter
    3. Default application credentials
    """
    global _firebase_app

    if _firebase_app is not None:
        logger.info("Firebase already initialized")
        return

    try:
        cred = None

        if firebase_config_json:
            logger.info("Initializing Firebase with JSON string from environment")
            cred = credentials.Certificate(json.loads(firebase_config_json))
        elif firebase_credentials_path and os.path.exists(firebase_credentials_path):
            logger.info("Initializing Firebase with JSON file", path=firebase_credentials_path)
            cred = credentials.Certificate(firebase_credentials_path)

        if cred:
            _firebase_app = firebase_admin.initialize_app(cred)
        else:
            _firebase_app = firebase_admin.initialize_app()
            logger.info("Firebase initialized with default credentials")

    except Exception as e:
        logger.error("Failed to initialize Firebase", error=str(e))
        raise


def get_firebase_app() -> firebase_admin.App:
    """
    Get the Firebase app instance.

    Raises:
        RuntimeError: If Firebase is not initialized
    """
    if _firebase_app is None:
        raise RuntimeError("Firebase not initialized. Call initialize_firebase() first.")
    return _firebase_app


def get_firestore_clients() -> tuple[object, object]:
    """Return the (async, sync) Firestore clients bound to the Firebase app."""
    app = get_firebase_app()
    return firestore_async.client(app), firestore.client(app)


async def verify_firebase_token(id_token: str) -> dict:
    """
    Verify a Firebase ID token.

    Args:
        id_token: Firebase ID token from the client

    Returns:
        Decoded token containing user information

    Raises:
        ValueError: If token is invalid or expired
    """
    try:
        decoded_token = auth.verify_id_token(id_token, clock_skew_seconds=10)

        logger.info(
            "Firebase token verified",
            uid=decoded_token.get("uid"),
            email=decoded_token.get("email"),
        )

        return decoded_token

    except auth.InvalidIdTokenError as e:
        logger.warning("Invalid or expired Firebase ID token", error=str(e))
        raise ValueError(f"Invalid Firebase ID token: {e!s}")
    except Exception as e:
        logger.error("Firebase token verification failed", error=str(e))
        raise ValueError(f"Token verification failed: {e!s}")


def create_firebase_user(email: str, password: str, display_name: str) -> auth.UserRecord:
    """Register a user with email/password and a display name."""
    user = auth.create_user(email=email, password=password, display_name=display_name)
    logger.info("firebase_user_created", uid=user.uid)
    return user


def delete_firebase_user(uid: str) -> None:
    """Delete a Firebase Authentication user; missing users are ignored."""
    try:
        auth.delete_user(uid)
        logger.info("firebase_user_deleted", uid=uid)
    except auth.UserNotFoundError:
        logger.warning("firebase_user_not_found", uid=uid)


async def sign_in_with_password(email: str, password: str, api_key: str) -> dict:
    """
    Sign in with email and password through the Identity Toolkit REST API.

    Returns:
        Response payload with ``idToken``, ``refreshToken`` and ``localId``

    Raises:
        ValueError: If the credentials are rejected
    """
    if not api_key:
        raise ValueError("FIREBASE_WEB_API_KEY is not configured")

    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(
            IDENTITY_TOOLKIT_URL,
            params={"key": api_key},
            json={"email": email, "password": password, "returnSecureToken": True},
        )

    if response.status_code != 200:
        message = response.json().get("error", {}).get("message", "INVALID_LOGIN_CREDENTIALS")
        logger.warning("firebase_sign_in_failed", email=email, reason=message)
        raise ValueError(message)

    return response.json()
