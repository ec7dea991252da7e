"""
Google Calendar Gateway
Reads upcoming events from the practice calendar over the REST API
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx

from ..config import (
    GATEWAY_TIMEOUT_SECONDS,
    GOOGLE_CALENDAR_ID,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
)
from ..schemas import CalendarEvent
from ..shared.validators import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

MAX_RESULTS = 50
TOKEN_REFRESH_SKEW = timedelta(minutes=5)


class CalendarGatewayError(Exception):
    """Calendar provider unreachable or returned an error"""


def parse_event_time(value: Optional[dict]) -> Optional[datetime]:
    """
    Parse a Google start/end object to naive UTC.

    Timed events carry "dateTime"; all-day events only carry "date" and map
    to midnight.
    """
    if not value:
        return None
    if value.get("dateTime"):
        raw = value["dateTime"].replace("Z", "+00:00")
        return to_naive_utc(datetime.fromisoformat(raw))
    if value.get("date"):
        return datetime.fromisoformat(value["date"])
    return None


def extract_meet_link(item: dict) -> Optional[str]:
    """hangoutLink first, then the video entry point of conferenceData"""
    if item.get("hangoutLink"):
        return item["hangoutLink"]
    entry_points = (item.get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return None


def map_event(item: dict) -> CalendarEvent:
    return CalendarEvent(
        id=item.get("id") or "",
        title=item.get("summary") or "",
        description=item.get("description") or None,
        start=parse_event_time(item.get("start")),
        end=parse_event_time(item.get("end")),
        meet_link=extract_meet_link(item),
    )


class GoogleCalendarGateway:
    """Refresh-token authenticated client for a single calendar"""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        refresh_token: Optional[str],
        calendar_id: str = "primary",
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.calendar_id = calendar_id
        self.timeout = timeout
        self.transport = transport
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _get_access_token(self) -> str:
        """Return the cached token, refreshing it 5 minutes before expiry"""
        if (
            self._access_token
            and self._token_expires_at
            and self._token_expires_at > utcnow() + TOKEN_REFRESH_SKEW
        ):
            return self._access_token

        if not self.refresh_token:
            raise CalendarGatewayError("Google refresh token not configured")

        logger.info("🔄 Refreshing Google Calendar access token")
        try:
            async with self._client() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "refresh_token": self.refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            raise CalendarGatewayError(f"Token refresh failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            raise CalendarGatewayError(f"Token refresh failed with status {response.status_code}")

        try:
            tokens = response.json()
            access_token = tokens.get("access_token")
        except (ValueError, AttributeError) as e:
            raise CalendarGatewayError("Unreadable token refresh response") from e

        if not access_token:
            raise CalendarGatewayError("No access token in refresh response")

        self._access_token = access_token
        self._token_expires_at = utcnow() + timedelta(seconds=tokens.get("expires_in", 3600))
        return access_token

    async def list_events(self, time_min: datetime, time_max: datetime) -> list[CalendarEvent]:
        """List single (expanded) events in [time_min, time_max] ordered by start time"""
        access_token = await self._get_access_token()

        params: dict[str, Any] = {
            "timeMin": time_min.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "timeMax": time_max.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_RESULTS,
        }

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events",
                    headers={"Authorization": f"Bearer {access_token}"},
                    params=params,
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to fetch calendar events: {e}")
            raise CalendarGatewayError("Calendar service unavailable") from e

        if response.status_code != 200:
            logger.error(f"❌ Calendar API error {response.status_code}: {response.text}")
            if response.status_code == 401:
                # Force a refresh next time
                self._access_token = None
            raise CalendarGatewayError("Calendar service unavailable")

        try:
            items = response.json().get("items", [])
        except (ValueError, AttributeError) as e:
            logger.error(f"❌ Calendar API returned an unreadable body: {e}")
            raise CalendarGatewayError("Calendar service unavailable") from e

        logger.debug(f"Fetched {len(items)} calendar events")
        return [map_event(item) for item in items]


def create_calendar_gateway() -> GoogleCalendarGateway:
    return GoogleCalendarGateway(
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
        refresh_token=GOOGLE_REFRESH_TOKEN,
        calendar_id=GOOGLE_CALENDAR_ID,
    )
