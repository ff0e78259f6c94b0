from __future__ import annotations

import logging
from datetime import datetime, timezone

import requests

from .errors import DataUnavailable
from .models import ACTIVE, INACTIVE, RawEvent, Source

DEFAULT_SERVER_URL = "http://localhost:5600"
DEFAULT_TIMEOUT_SECONDS = 10.0

# aw-watcher-afk reports presence with these two status values.
STATUS_MAP = {"not-afk": ACTIVE, "afk": INACTIVE}


def parse_timestamp(value: str) -> datetime:
    """Parse an aw-server ISO timestamp and normalize to UTC."""
    # Python < 3.11 does not accept the trailing "Z" designator.
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ActivityWatchSource:
    """Blocking client for the local ActivityWatch server REST API."""

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def _request(self, endpoint: str, params: dict | None = None):
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.get(
                url,
                params=params,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.ConnectionError as exc:
            raise DataUnavailable(
                f"Unable to connect to ActivityWatch server at {self.base_url}. "
                "Please ensure ActivityWatch is running."
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise DataUnavailable(f"Failed to fetch {endpoint}: {exc}") from exc
        except ValueError as exc:
            raise DataUnavailable(f"Invalid JSON from {endpoint}") from exc

    def check_connection(self) -> bool:
        try:
            self._request("/api/0/info")
        except DataUnavailable:
            return False
        return True

    def list_sources(self) -> list[Source]:
        buckets = self._request("/api/0/buckets/")
        if not isinstance(buckets, dict):
            raise DataUnavailable("Unexpected bucket listing from ActivityWatch server")
        return [
            Source(id=str(bucket.get("id", bucket_id)), type=str(bucket.get("type", "")))
            for bucket_id, bucket in buckets.items()
        ]

    def list_raw_events(self, source_id: str, start: datetime, end: datetime) -> list[RawEvent]:
        payload = self._request(
            f"/api/0/buckets/{source_id}/events",
            params={
                "start": start.astimezone(timezone.utc).isoformat(),
                "end": end.astimezone(timezone.utc).isoformat(),
                "limit": -1,
            },
        )
        if not isinstance(payload, list):
            raise DataUnavailable(f"Unexpected event listing for bucket {source_id}")

        events: list[RawEvent] = []
        skipped = 0
        for item in payload:
            status = STATUS_MAP.get((item.get("data") or {}).get("status"))
            if status is None:
                skipped += 1
                continue
            try:
                events.append(
                    RawEvent(
                        timestamp=parse_timestamp(item["timestamp"]),
                        duration_seconds=float(item.get("duration", 0)),
                        status=status,
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise DataUnavailable(f"Malformed event in bucket {source_id}: {item!r}") from exc

        if skipped:
            self.logger.debug("Skipped %d events with unknown status in %s", skipped, source_id)
        return events
