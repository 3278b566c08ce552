"""Resolve place coordinates by driving one remote browser session."""

from __future__ import annotations

import logging
import math
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, quote_plus, unquote, urlparse

from gmaps_coords.core.config import Settings, get_settings
from gmaps_coords.core.errors import LookupTimeout, PlaceNotFound, SessionError
from gmaps_coords.models import Coordinates
from gmaps_coords.vendors.webdriver import WebDriverError, WebDriverSession

logger = logging.getLogger(__name__)

# A latitude,longitude pair such as "-25.0,160.0".
LATLNG_PATTERN = r"(-?\d+(?:\.\d+)?),(-?\d+(?:\.\d+)?)"
LATLNG_REGEX = re.compile(r"\s*" + LATLNG_PATTERN + r"\s*")
# The map service rewrites its URL to "@lat,lng,zoom" once it has centred on a place.
VIEWPORT_REGEX = re.compile("@" + LATLNG_PATTERN)
SEARCH_PAGE_MARKER = "/maps/search/"


def is_url(query: str) -> bool:
    return urlparse(query).scheme in {"http", "https"}


def is_search_page(url: str) -> bool:
    return SEARCH_PAGE_MARKER in urlparse(url).path


def _valid_coordinates(lat_text: str, lon_text: str) -> Optional[Coordinates]:
    try:
        lat, lon = float(lat_text), float(lon_text)
    except ValueError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    return lat, lon


def coords_from_url(url: str) -> Optional[Coordinates]:
    """Return the valid ``(lat, lon)`` the map has centred on, read from ``@lat,lng`` in ``url``."""
    match = VIEWPORT_REGEX.search(unquote(url))
    if match is None:
        return None
    return _valid_coordinates(match.group(1), match.group(2))


def coords_from_query(url: str) -> Optional[Coordinates]:
    """Read an explicit ``q=lat,lng`` parameter; the map is not centred on it, so it is read directly."""
    for value in parse_qs(urlparse(url).query).get("q", []):
        match = LATLNG_REGEX.fullmatch(value)
        if match is not None:
            return _valid_coordinates(match.group(1), match.group(2))
    return None


class SessionClient:
    """Wrapper around one WebDriver session that turns a query into coordinates."""

    def __init__(
        self,
        driver: WebDriverSession,
        *,
        maps_base_url: str = "https://www.google.com/maps",
        timeout: float = 10.0,
        poll_interval: float = 0.1,
        headless: bool = True,
        settle_window: Optional[float] = None,
    ) -> None:
        self._driver = driver
        self.maps_base_url = maps_base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.headless = headless
        self.settle_window = settle_window if settle_window is not None else timeout / 2

    @classmethod
    def for_slot(cls, slot_index: int, settings: Optional[Settings] = None) -> "SessionClient":
        settings = settings or get_settings()
        return cls(
            WebDriverSession(settings.webdriver_url(slot_index)),
            maps_base_url=settings.maps_base_url,
            timeout=settings.lookup_timeout,
            poll_interval=settings.poll_interval,
            headless=settings.headless,
        )

    @property
    def endpoint(self) -> str:
        return self._driver.base_url

    def capabilities(self) -> Dict[str, Any]:
        caps: Dict[str, Any] = {
            "browserName": "firefox",
            "timeouts": {"pageLoad": int(self.timeout * 1000)},
        }
        if self.headless:
            caps["moz:firefoxOptions"] = {"args": ["-headless"]}
        return caps

    def connect(self) -> None:
        try:
            self._driver.start(self.capabilities())
        except WebDriverError as exc:
            raise SessionError(f"Cannot open a session on {self.endpoint}: {exc}") from exc
        logger.info("Connected to WebDriver at %s", self.endpoint)

    def reconnect(self) -> None:
        try:
            self._driver.quit()
        except WebDriverError as exc:
            logger.debug("Ignoring error while dropping stale session on %s: %s", self.endpoint, exc)
        self.connect()

    def close(self) -> None:
        try:
            self._driver.quit()
        except WebDriverError as exc:
            logger.warning("Failed to close WebDriver session on %s: %s", self.endpoint, exc)

    def search_url(self, text: str) -> str:
        return f"{self.maps_base_url}/search/?api=1&query={quote_plus(text)}"

    def resolve(self, query: str) -> Coordinates:
        """Navigate to the place and return its ``(lat, lon)``.

        Raises LookupTimeout when no coordinates show up inside the wait window,
        PlaceNotFound when the page settles somewhere without a place, and
        SessionError when the remote session misbehaves.
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("A non-empty query is required for coordinate lookups")

        if is_url(query):
            url = query
            direct = coords_from_query(url)
            if direct is not None:
                return direct
        else:
            url = self.search_url(query)

        started = time.monotonic()
        self._command(self._driver.navigate, url)

        last_url = url
        stable_since = started
        while True:
            time.sleep(self.poll_interval)
            now = time.monotonic()
            current = self._command(self._driver.current_url)

            if current != last_url:
                last_url = current
                stable_since = now

            if current != url and not is_search_page(current):
                coords = coords_from_url(current)
                if coords is not None:
                    logger.info("Fetched coordinates in %.1f seconds via %s", now - started, self.endpoint)
                    return coords

            if current != url and now - stable_since >= self.settle_window:
                raise PlaceNotFound(f"{query!r} settled on {current} without a place")
            if now - started >= self.timeout:
                raise LookupTimeout(f"No coordinates for {query!r} after {self.timeout:.1f} seconds")

    def _command(self, fn, *args):
        try:
            return fn(*args)
        except WebDriverError as exc:
            if exc.error == "timeout":
                raise LookupTimeout(f"Page load timed out on {self.endpoint}: {exc}") from exc
            raise SessionError(f"WebDriver at {self.endpoint} failed: {exc}") from exc

    def __enter__(self) -> "SessionClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.close()
