"""
Провайдер календаря: ближайшие события из Google Calendar.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx

from fiesta.core.config import get_settings
from fiesta.models.calendar_integration import CalendarIntegration
from fiesta.schemas.chat import CalendarEvent


logger = logging.getLogger(__name__)


class CalendarUnavailableError(RuntimeError):
    """Календарь не подключен или API вернул ошибку"""


def _parse_event_time(value: Optional[Dict[str, Any]]) -> Optional[datetime]:
    if not value:
        return None
    if value.get("dateTime"):
        return datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
    if value.get("date"):
        # Событие на весь день
        return datetime.fromisoformat(value["date"])
    return None


def parse_google_event(item: Dict[str, Any]) -> CalendarEvent:
    return CalendarEvent(
        title=item.get("summary") or "Untitled Event",
        start=_parse_event_time(item.get("start")),
        end=_parse_event_time(item.get("end")),
        location=item.get("location"),
        description=item.get("description"),
        attendees=len(item.get("attendees") or []),
    )


class GoogleCalendarService:
    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self.base_url = settings.google_calendar_base_url
        self.tz = ZoneInfo(settings.timezone)
        self._http_client = http_client

    async def get_integration(self, user_id: str) -> Optional[CalendarIntegration]:
        return await CalendarIntegration.filter(user_id=user_id, provider="google").first()

    async def list_upcoming_events(self, user_id: str, horizon_days: int = 30) -> List[CalendarEvent]:
        """
        Возвращает события на ближайшие horizon_days дней.

        Raises:
            CalendarUnavailableError: календарь не подключен или API недоступен
        """
        integration = await self.get_integration(user_id)
        if not integration or not integration.access_token:
            raise CalendarUnavailableError(
                "Google Calendar ikke forbundet. Kontakt support for at få hjælp til opsætning."
            )

        now = datetime.now(timezone.utc)
        params = {
            "timeMin": now.isoformat(),
            "timeMax": (now + timedelta(days=horizon_days)).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": "50",
        }
        url = f"{self.base_url}/calendars/{integration.calendar_id}/events"
        headers = {
            "Authorization": f"Bearer {integration.access_token}",
            "Accept": "application/json",
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise CalendarUnavailableError(f"Google Calendar API fejl: {e}") from e

        if response.status_code != 200:
            raise CalendarUnavailableError(f"Google Calendar API fejl: {response.status_code}")

        items = response.json().get("items") or []
        logger.info(f"Google Calendar: {len(items)} событий для пользователя {user_id}")
        return [parse_google_event(item) for item in items]

    def format_events_for_ai(self, events: List[CalendarEvent]) -> str:
        """Форматирует события для промпта"""
        if not events:
            return "Ingen events fundet i den angivne periode."

        blocks = []
        for event in events:
            lines = [
                f"📅 **{event.title}**",
                f"📍 {event.location or 'Ingen lokation angivet'}",
                f"🕐 {self._format_period(event)}",
            ]
            if event.description:
                lines.append(f"📝 {event.description}")
            if event.attendees:
                lines.append(f"👥 {event.attendees} deltagere")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    def _format_period(self, event: CalendarEvent) -> str:
        if event.start is None:
            return "Tidspunkt ikke angivet"
        start = self._local(event.start)
        text = f"{start.day}.{start.month}.{start.year} {start:%H:%M}"
        if event.end is not None:
            text += f" - {self._local(event.end):%H:%M}"
        return text

    def _local(self, value: datetime) -> datetime:
        return value.astimezone(self.tz) if value.tzinfo else value
