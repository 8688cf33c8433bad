"""
Google Analytics OAuth

Connect flow (consent screen -> callback code -> tokens), per-user token
storage with refresh shortly before expiry, and property discovery through
the Analytics Admin API.
"""
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ghost_cro.config import get_settings
from ghost_cro.models.ga4_connection import GA4Connection
from ghost_cro.utils.logger import log

settings = get_settings()

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
ACCOUNT_SUMMARIES_URL = "https://analyticsadmin.googleapis.com/v1beta/accountSummaries"
GA4_SCOPE = "https://www.googleapis.com/auth/analytics.readonly"
REFRESH_BUFFER = timedelta(minutes=5)

STATE_COOKIE = "google_analytics_oauth_state"
USER_COOKIE = "google_analytics_oauth_user"
STATE_MAX_AGE = 60 * 10

EXPIRED_MESSAGE = "GA4 connection expired. Please reconnect your Google Analytics account."


class GA4ConnectionError(Exception):
    pass


def generate_state() -> str:
    return secrets.token_urlsafe(16)


def callback_url() -> str:
    return f"{settings.app_url.rstrip('/')}/api/auth/google-analytics/callback"


def build_authorize_url(state: str) -> str:
    """Consent URL asking for offline access so Google issues a refresh token"""
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": callback_url(),
        "response_type": "code",
        "scope": GA4_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code(code: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict:
    """Swap the callback code for access and refresh tokens"""
    try:
        async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "redirect_uri": callback_url(),
                    "grant_type": "authorization_code",
                },
            )
    except httpx.HTTPError as e:
        log.error(f"Google token exchange failed: {str(e)}")
        raise GA4ConnectionError("Could not reach Google") from e

    if not response.is_success:
        log.error(f"Google token exchange rejected: {response.text}")
        raise GA4ConnectionError(response.text or f"HTTP {response.status_code}")

    tokens = response.json()
    if not tokens.get("access_token") or not tokens.get("refresh_token"):
        raise GA4ConnectionError("No access token received from Google")

    return tokens


def get_connection(db: Session, user_id: str) -> Optional[GA4Connection]:
    return db.query(GA4Connection).filter(GA4Connection.user_id == user_id).first()


def has_ga4_connection(db: Session, user_id: str) -> bool:
    return get_connection(db, user_id) is not None


def get_selected_property_id(db: Session, user_id: str) -> Optional[str]:
    connection = get_connection(db, user_id)
    return connection.selected_property_id if connection else None


def save_connection(
    db: Session,
    user_id: str,
    access_token: str,
    refresh_token: Optional[str] = None,
    expires_in: int = 3600,
    property_id: Optional[str] = None,
) -> GA4Connection:
    connection = get_connection(db, user_id) or GA4Connection(user_id=user_id)
    connection.access_token = access_token
    if refresh_token:
        connection.refresh_token = refresh_token
    connection.expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
    if property_id:
        connection.selected_property_id = property_id

    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def select_property(db: Session, user_id: str, property_id: str) -> bool:
    connection = get_connection(db, user_id)
    if connection is None:
        return False

    connection.selected_property_id = property_id
    db.commit()
    log.info(f"User {user_id} selected GA4 property {property_id}")
    return True


def disconnect(db: Session, user_id: str) -> bool:
    deleted = db.query(GA4Connection).filter(GA4Connection.user_id == user_id).delete()
    db.commit()
    if deleted:
        log.info(f"Disconnected GA4 for user {user_id}")
    return bool(deleted)


async def refresh_access_token_if_needed(
    db: Session,
    user_id: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Current tokens for the user, refreshing when fewer than five minutes
    remain. Raises GA4ConnectionError when there is no connection or the
    refresh fails.
    """
    connection = get_connection(db, user_id)
    if connection is None:
        raise GA4ConnectionError("No GA4 connection found. Please connect your Google Analytics account.")

    now = now or datetime.utcnow()
    if connection.expires_at and connection.expires_at - now > REFRESH_BUFFER:
        return {
            "access_token": connection.access_token,
            "refresh_token": connection.refresh_token,
            "expires_at": connection.expires_at,
        }

    if not connection.refresh_token:
        raise GA4ConnectionError(EXPIRED_MESSAGE)

    try:
        async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "refresh_token": connection.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        response.raise_for_status()
        credentials = response.json()
    except (httpx.HTTPError, ValueError) as e:
        log.error(f"Token refresh failed for user {user_id}: {str(e)}")
        raise GA4ConnectionError(EXPIRED_MESSAGE) from e

    if not credentials.get("access_token"):
        raise GA4ConnectionError(EXPIRED_MESSAGE)

    connection.access_token = credentials["access_token"]
    connection.expires_at = now + timedelta(seconds=int(credentials.get("expires_in") or 3600))
    db.commit()

    log.info(f"Refreshed GA4 access token for user {user_id}")
    return {
        "access_token": connection.access_token,
        "refresh_token": connection.refresh_token,
        "expires_at": connection.expires_at,
    }


async def list_properties(access_token: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> List[Dict]:
    """
    Every GA4 property the token can see, flattened across accounts.

    Account summaries come back paged; each carries its properties as
    ``properties/<id>`` resource names.
    """
    properties = []
    params = {"pageSize": 200}

    async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
        while True:
            response = await client.get(
                ACCOUNT_SUMMARIES_URL,
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if response.status_code == 401:
                raise GA4ConnectionError(EXPIRED_MESSAGE)
            response.raise_for_status()
            data = response.json()

            for account in data.get("accountSummaries", []):
                for prop in account.get("propertySummaries", []):
                    properties.append({
                        "id": prop.get("property", "").split("/")[-1],
                        "displayName": prop.get("displayName"),
                        "accountName": account.get("displayName"),
                    })

            if not data.get("nextPageToken"):
                break
            params = {"pageSize": 200, "pageToken": data["nextPageToken"]}

    return properties
