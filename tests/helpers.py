"""
Shared test helpers
"""

import base64
import json
from datetime import date, datetime, timedelta, timezone

from app.core.security import create_access_token


def future_date(days: int = 30) -> date:
    return datetime.now(timezone.utc).date() + timedelta(days=days)


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


def esewa_callback_data(**fields) -> str:
    """Base64 JSON blob as eSewa appends it to the success URL"""
    return base64.b64encode(json.dumps(fields).encode()).decode()
