"""
iCal feed gateway.

Fetches an .ics feed over HTTP and returns its VEVENTs as plain dicts so the
calendar service never touches `requests` or `icalendar` objects directly.

Testability: pass a mock `session` to ICalGateway() in tests, or patch
``ical_gateway.session``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import requests
from icalendar import Calendar

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


class FeedError(Exception):
    """Raised when a feed cannot be downloaded or parsed."""


def _as_date(value) -> date | None:
    """All-day values stay as-is; timestamps are converted to their UTC date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


class ICalGateway:
    """HTTP access to iCal feeds.

    Usage:
        from app.integrations.ical_gateway import ical_gateway
        events = ical_gateway.fetch_events(url)
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @session.setter
    def session(self, value: requests.Session) -> None:
        self._session = value

    def fetch_events(self, url: str, timeout: int = _DEFAULT_TIMEOUT) -> list[dict]:
        """Download ``url`` and return its events.

        Each event is ``{"uid", "summary", "start", "end", "start_raw"}`` where
        start/end are dates (end exclusive, as in iCal) and ``start_raw`` is
        the original DTSTART value.

        Raises:
            FeedError: network failure, non-2xx response or invalid iCal data.
        """
        try:
            resp = self.session.get(url, timeout=timeout)
            resp.raise_for_status()
        except requests.Timeout as exc:
            logger.warning("iCal feed timed out after %ss url=%s", timeout, url[:50])
            raise FeedError(f"Request timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            logger.warning("iCal feed request failed url=%s error=%s", url[:50], exc)
            raise FeedError(str(exc)[:500]) from exc

        try:
            calendar = Calendar.from_ical(resp.content)
        except ValueError as exc:
            raise FeedError(f"Invalid iCal data: {exc}") from exc

        events = []
        for component in calendar.walk("VEVENT"):
            dtstart = component.get("dtstart")
            dtend = component.get("dtend")
            start_raw = dtstart.dt if dtstart is not None else None
            events.append({
                "uid": str(component.get("uid") or ""),
                "summary": str(component.get("summary") or ""),
                "start": _as_date(start_raw),
                "end": _as_date(dtend.dt if dtend is not None else None),
                "start_raw": start_raw,
            })
        logger.info("Fetched %d events from iCal feed %s...", len(events), url[:50])
        return events


# Module-level singleton
ical_gateway = ICalGateway()
