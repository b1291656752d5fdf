"""
xAPI LRS event log source
─────────────────────────────────────────────────────────────────────────────
Reads activity logs from a Learning Record Store and turns statements into
``Event`` records for the log index. Two API modes, auto-detected:

  1. TRAX LRS, custom envelope format:
       GET /xapi/ext/statements?limit=N&filters=...
       Response: { "data": [...], "paging": {...} }, statement in data[i]["data"]

  2. Standard xAPI LRS, ADL format:
       GET /statements?activity=...&since=...&until=...
       Response: { "statements": [...], "more": "/statements?..." }

Auth: Basic Auth or Bearer token

"""

from __future__ import annotations

import json
import os
import re
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Dict, List, Iterable, Iterator, Any
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import ConfigurationError
from .models import CRUD_CREATE, CRUD_DELETE, CRUD_READ, CRUD_UPDATE, Event
from .sources import EventLogSource

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
DEFAULT_TIMEOUT = 120
MAX_STATEMENTS = 50_000
RATE_LIMIT_SLEEP = 0.1

# Verbs that write something; everything else reads.
VERB_CRUD = {
    "http://activitystrea.ms/schema/1.0/create": CRUD_CREATE,
    "http://adlnet.gov/expapi/verbs/answered": CRUD_CREATE,
    "http://adlnet.gov/expapi/verbs/commented": CRUD_CREATE,
    "http://adlnet.gov/expapi/verbs/shared": CRUD_CREATE,
    "http://activitystrea.ms/schema/1.0/submit": CRUD_CREATE,
    "http://id.tincanapi.com/verb/replied": CRUD_CREATE,
    "http://activitystrea.ms/schema/1.0/update": CRUD_UPDATE,
    "http://id.tincanapi.com/verb/edited": CRUD_UPDATE,
    "http://activitystrea.ms/schema/1.0/delete": CRUD_DELETE,
}


def _iso(ts: Optional[int]) -> Optional[str]:
    if ts is None:
        return None
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def _unwrap_trax(raw: Dict) -> Dict:
    """
    TRAX wraps the xAPI statement inside raw["data"].
    Returns the inner statement dict, or raw if already a plain statement.
    """
    inner = raw.get("data")
    if isinstance(inner, dict) and "verb" in inner:
        return inner
    return raw


class StatementParser:
    """Extract the fields the log index needs from xAPI statement dicts."""

    @staticmethod
    def actor_id(stmt: Dict) -> str:
        actor = stmt.get("actor", {})
        account = actor.get("account", {})
        return account.get("name", "") or actor.get("mbox", "") or actor.get("name", "")

    @staticmethod
    def verb_id(stmt: Dict) -> str:
        return stmt.get("verb", {}).get("id", "")

    @staticmethod
    def verb_display(stmt: Dict) -> str:
        display = stmt.get("verb", {}).get("display", {})
        return (
            display.get("en-US")
            or display.get("en")
            or StatementParser.verb_id(stmt).split("/")[-1]
        )

    @staticmethod
    def activity_id(stmt: Dict) -> str:
        return stmt.get("object", {}).get("id", "")

    @staticmethod
    def activity_type(stmt: Dict) -> str:
        return stmt.get("object", {}).get("definition", {}).get("type", "")

    @staticmethod
    def course_id(stmt: Dict) -> Optional[str]:
        """Course from context.contextActivities.grouping, when present."""
        groupings = stmt.get("context", {}).get("contextActivities", {}).get("grouping", [])
        for grouping in groupings:
            grouping_type = grouping.get("definition", {}).get("type", "")
            if "course" in grouping_type:
                return grouping.get("id")
        return None

    @staticmethod
    def platform(stmt: Dict) -> str:
        return stmt.get("context", {}).get("platform", "") or ""

    @staticmethod
    def timestamp(stmt: Dict) -> Optional[int]:
        ts_str = stmt.get("timestamp") or stmt.get("stored")
        if not ts_str:
            return None
        try:
            ts_str = ts_str.replace("Z", "+00:00")
            ts_str = re.sub(r"(\+\d{2}:\d{2}):\d{2}$", r"\1", ts_str)
            dt = datetime.fromisoformat(ts_str)
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())

    @staticmethod
    def crud(stmt: Dict, verb_crud: Dict[str, str] = VERB_CRUD) -> str:
        return verb_crud.get(StatementParser.verb_id(stmt), CRUD_READ)

    @staticmethod
    def to_event(stmt: Dict, verb_crud: Dict[str, str] = VERB_CRUD) -> Optional[Event]:
        """Map a statement to an Event, None when it lacks actor, object, verb or time."""
        user_id = StatementParser.actor_id(stmt)
        context_id = StatementParser.activity_id(stmt)
        kind = StatementParser.verb_id(stmt)
        timestamp = StatementParser.timestamp(stmt)
        if not (user_id and context_id and kind) or timestamp is None:
            return None
        return Event(
            context_id=context_id,
            user_id=user_id,
            kind=kind,
            crud=StatementParser.crud(stmt, verb_crud),
            timestamp=timestamp,
            course_id=StatementParser.course_id(stmt),
            component=StatementParser.activity_type(stmt),
            action=StatementParser.verb_display(stmt),
            event_id=stmt.get("id"),
            origin=StatementParser.platform(stmt),
        )


class XAPIEventSource(EventLogSource):
    """
    Event log source over a TRAX or standard xAPI endpoint.
    Context ids are activity IRIs and user ids are actor account names.
    Statements are fetched one context at a time; more than ``max_statements``
    in-window statements for one context is a ConfigurationError.
    """

    def __init__(
        self,
        endpoint: str,
        username: str = "",
        password: str = "",
        token: str = "",
        mode: str = "auto",
        timeout: int = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_retries: int = 3,
        rate_limit_sleep: float = RATE_LIMIT_SLEEP,
        max_statements: int = MAX_STATEMENTS,
        verb_crud: Optional[Dict[str, str]] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.username = username or os.getenv("LRS_USERNAME", "")
        self.password = password or os.getenv("LRS_PASSWORD", "")
        self.token = token or os.getenv("LRS_TOKEN", "")
        self.timeout = timeout
        self.page_size = page_size
        self.rate_limit_sleep = rate_limit_sleep
        self.max_statements = max_statements
        self.verb_crud = {**VERB_CRUD, **(verb_crud or {})}

        self.session = requests.Session()
        retry = Retry(
            total=max_retries,
            backoff_factor=1.0,
            status_forcelist=[429, 500, 502, 503, 504],
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)
        self.session.headers.update({
            "X-Experience-API-Version": "1.0.3",
            "Accept": "application/json",
        })
        if self.token:
            self.session.headers["Authorization"] = f"Bearer {self.token}"
        elif self.username:
            self.session.auth = (self.username, self.password)

        if mode == "auto":
            if "ext/statements" in self.endpoint or "trax" in self.endpoint.lower():
                self._mode = "trax"
            else:
                self._mode = "standard"
        else:
            self._mode = mode

    @property
    def detected_mode(self) -> str:
        return self._mode

    def _trax_url(self) -> str:
        if self.endpoint.endswith("statements"):
            return self.endpoint
        return self.endpoint + "/ext/statements"

    def _standard_url(self) -> str:
        if self.endpoint.endswith("statements"):
            return self.endpoint
        return self.endpoint + "/statements"

    def _trax_filters(self, context_id: str, start: Optional[int], end: Optional[int], last_id: int) -> str:
        filters: Dict[str, Any] = {"data->object->id": context_id}
        timestamp: Dict[str, str] = {}
        if start is not None:
            timestamp["$gt"] = _iso(start)
        if end is not None:
            timestamp["$lte"] = _iso(end)
        if timestamp:
            filters["data->timestamp"] = timestamp
        if last_id:
            filters["id"] = {"$gt": last_id}
        return json.dumps(filters, separators=(",", ":"))

    def _iter_trax(self, context_id: str, start: Optional[int], end: Optional[int]) -> Iterator[Dict]:
        url = self._trax_url()
        logger.info(f"Fetching from TRAX: {url} for {context_id} ({_iso(start)} -> {_iso(end)})")

        last_id = 0
        page_num = 0
        while True:
            page_num += 1
            params = {"limit": self.page_size, "filters": self._trax_filters(context_id, start, end, last_id)}

            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            raw_items = resp.json().get("data", [])
            if not raw_items:
                logger.debug(f"No more statements (page {page_num} was empty)")
                break

            last_id = raw_items[-1].get("id", 0)
            logger.debug(f"Page {page_num}: got {len(raw_items)}, last_id={last_id}")
            for raw in raw_items:
                yield _unwrap_trax(raw)

            if len(raw_items) < self.page_size:
                break
            time.sleep(self.rate_limit_sleep)

    def _iter_standard(self, context_id: str, start: Optional[int], end: Optional[int]) -> Iterator[Dict]:
        params: Dict[str, Any] = {"activity": context_id, "limit": self.page_size, "ascending": "true"}
        if start is not None:
            params["since"] = _iso(start)
        if end is not None:
            params["until"] = _iso(end)

        url: Optional[str] = self._standard_url()
        current_params: Optional[Dict] = params

        while url:
            resp = self.session.get(url, params=current_params, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()

            page = body.get("statements", [])
            yield from page

            more = body.get("more")
            if more and page:
                parsed = urlparse(self.endpoint)
                base = f"{parsed.scheme}://{parsed.netloc}"
                url = base + more if more.startswith("/") else more
                current_params = None
                time.sleep(self.rate_limit_sleep)
            else:
                url = None

    def iter_statements(self, context_id: str, start: Optional[int] = None, end: Optional[int] = None) -> Iterator[Dict]:
        """Statements whose object is ``context_id``, page by page."""
        if self._mode == "trax":
            return self._iter_trax(context_id, start, end)
        return self._iter_standard(context_id, start, end)

    def query_events(self, context_ids: Iterable, start: Optional[int], end: Optional[int]) -> List[Event]:
        wanted = list(dict.fromkeys(context_ids))
        events: List[Event] = []
        skipped = 0
        for context_id in wanted:
            matched = 0
            for stmt in self.iter_statements(context_id, start, end):
                event = StatementParser.to_event(stmt, self.verb_crud)
                if event is None:
                    skipped += 1
                    continue
                if event.context_id != context_id:
                    continue
                # since/until are inclusive on the LRS side.
                if (start is not None and event.timestamp <= start) or (end is not None and event.timestamp > end):
                    continue
                matched += 1
                if self.max_statements and matched > self.max_statements:
                    raise ConfigurationError(
                        f"LRS holds more than {self.max_statements:,} statements for {context_id} "
                        f"in the window; raise max_statements"
                    )
                events.append(event)
        if skipped:
            logger.warning(f"Skipped {skipped} statements without actor, object, verb or timestamp")
        events.sort(key=lambda e: e.timestamp)
        logger.info(f"LRS returned {len(events):,} events for {len(wanted)} contexts")
        return events

    def ping(self) -> bool:
        try:
            if self._mode == "trax":
                resp = self.session.get(self._trax_url(), params={"limit": 1}, timeout=10)
            else:
                resp = self.session.get(self._standard_url(), params={"limit": 1}, timeout=10)
            return resp.status_code in (200, 400)
        except requests.exceptions.RequestException:
            return False

