"""Sea Around Us API client: LME catch tonnage by functional group.

One request per Large Marine Ecosystem returns every functional group's
annual tonnage series.  Requests are rate-limited through a shared lock,
cached on disk, retried with backoff according to the error class, and
retried again in slower "waves" after the concurrent pass finishes.

Usage:
    fetcher = SauFetcher(cache_dir=Path("data/cache"))
    raw, failures = fetcher.fetch_panel(range(1, 67))
"""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

import polars as pl
import requests

from shoal.config import (
    BASE_URL,
    CACHE_FILENAME_MAX_LENGTH,
    MAX_RETRIES,
    MAX_WORKERS,
    REQUEST_DELAY,
    REQUEST_SOURCE,
    REQUEST_TIMEOUT,
    RETRY_DELAY,
    RETRY_WAVES,
    TONNAGE_ENDPOINT,
    USER_AGENT,
    WAVE_COOLDOWN,
    WAVE_DELAY,
    WAVE_WORKERS,
    YEAR_END,
    YEAR_START,
)

RAW_SCHEMA = {
    "region_id": pl.Int64,
    "year": pl.Int64,
    "group": pl.Utf8,
    "tonnes": pl.Float64,
}


@dataclass
class FetchResult:
    """Outcome of one GET: payload text on success, classified error otherwise.

    error_type is one of "permanent", "transient", "timeout", "connection", or
    None on success.  Only non-permanent failures are retried in waves.
    """

    url: str
    text: str | None
    status_code: int | None = None
    error_type: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.text is not None and self.error_type is None


class SauFetcher:
    """Rate-limited, caching, retrying client for the Sea Around Us LME endpoints."""

    def __init__(
        self,
        cache_dir: Path | None = None,
        delay: float = REQUEST_DELAY,
        base_url: str = BASE_URL,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.delay = delay
        self.cache_dir = cache_dir
        if self.cache_dir is not None:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.http = requests.Session()
        self.http.headers.update(
            {"User-Agent": USER_AGENT, "X-Request-Source": REQUEST_SOURCE}
        )

        self._rate_lock = threading.Lock()
        self._last_request = 0.0

    # ── HTTP layer ──────────────────────────────────────────────────────────

    def region_url(self, region_id: int) -> str:
        return f"{self.base_url}{TONNAGE_ENDPOINT}?region_id={region_id}"

    def _rate_limit(self) -> None:
        """Sleep so consecutive requests (across threads) are >= self.delay apart."""
        with self._rate_lock:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self.delay:
                time.sleep(self.delay - elapsed)
            self._last_request = time.monotonic()

    def _cache_path(self, url: str) -> Path | None:
        if self.cache_dir is None:
            return None
        key = url.replace("/", "_").replace(":", "_").replace("?", "_").replace("=", "_")
        return self.cache_dir / f"{key[:CACHE_FILENAME_MAX_LENGTH]}.json"

    def _get(self, url: str) -> FetchResult:
        """GET a URL with per-error-class retries.

        Permanent errors (4xx, empty or non-JSON bodies) get one extra attempt;
        transient 5xx, timeouts, and connection errors get MAX_RETRIES total.
        Successful responses are cached; failures never are.
        """
        cache_file = self._cache_path(url)
        if cache_file is not None and cache_file.exists():
            return FetchResult(url=url, text=cache_file.read_text(encoding="utf-8"))

        result = FetchResult(url=url, text=None)
        attempt = 0
        while attempt < MAX_RETRIES:
            attempt += 1
            self._rate_limit()
            try:
                resp = self.http.get(url, timeout=REQUEST_TIMEOUT)
                resp.raise_for_status()
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status is not None and 400 <= status < 500:
                    result = FetchResult(url, None, status, "permanent", f"HTTP {status}")
                    if attempt >= 2:
                        break
                else:
                    result = FetchResult(url, None, status, "transient", f"HTTP {status}")
                time.sleep(RETRY_DELAY * attempt if self.delay > 0 else 0)
                continue
            except requests.Timeout as e:
                result = FetchResult(url, None, None, "timeout", str(e))
                time.sleep(RETRY_DELAY * attempt if self.delay > 0 else 0)
                continue
            except requests.RequestException as e:
                result = FetchResult(url, None, None, "connection", str(e))
                time.sleep(RETRY_DELAY * attempt if self.delay > 0 else 0)
                continue

            text = resp.text
            if not text or not text.lstrip().startswith(("{", "[")):
                result = FetchResult(
                    url, None, resp.status_code, "permanent", "Response body is not JSON"
                )
                if attempt >= 2:
                    break
                continue

            if cache_file is not None:
                cache_file.write_text(text, encoding="utf-8")
            return FetchResult(url=url, text=text, status_code=resp.status_code)

        return result

    def _fetch_many(
        self,
        urls: list[str],
        max_waves: int = RETRY_WAVES,
        wave_cooldown: float = WAVE_COOLDOWN,
    ) -> dict[str, FetchResult]:
        """Fetch URLs concurrently, then retry non-permanent failures in slower waves.

        Results are keyed by URL, never by completion order.
        """
        results: dict[str, FetchResult] = {}
        with ThreadPoolExecutor(max_workers=MAX_WORKERS) as pool:
            futures = {pool.submit(self._get, url): url for url in urls}
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        normal_delay = self.delay
        try:
            for wave in range(1, max_waves + 1):
                retry = [u for u, r in results.items() if not r.ok and r.error_type != "permanent"]
                if not retry:
                    break
                print(
                    f"  Retry wave {wave}/{max_waves}: {len(retry)} URL(s) "
                    f"after {wave_cooldown:.0f}s cooldown"
                )
                time.sleep(wave_cooldown)
                self.delay = max(WAVE_DELAY, normal_delay) if normal_delay > 0 else 0.0
                with ThreadPoolExecutor(max_workers=WAVE_WORKERS) as pool:
                    futures = {pool.submit(self._get, url): url for url in retry}
                    for future in as_completed(futures):
                        results[futures[future]] = future.result()
        finally:
            self.delay = normal_delay

        return results

    # ── Panel assembly ──────────────────────────────────────────────────────

    def fetch_panel(
        self,
        region_ids: list[int] | range,
        year_start: int = YEAR_START,
        year_end: int = YEAR_END,
        max_waves: int = RETRY_WAVES,
        wave_cooldown: float = WAVE_COOLDOWN,
    ) -> tuple[pl.DataFrame, dict[int, str]]:
        """Fetch all regions and return (raw long frame, {region_id: failure reason}).

        Regions that fail (after retries and waves) or whose payload cannot be
        parsed are reported in the failure dict and left out of the frame.
        """
        url_to_region = {self.region_url(r): int(r) for r in region_ids}
        results = self._fetch_many(list(url_to_region), max_waves, wave_cooldown)

        rows: list[dict] = []
        failures: dict[int, str] = {}
        for url, region_id in sorted(url_to_region.items(), key=lambda kv: kv[1]):
            result = results[url]
            if not result.ok:
                failures[region_id] = f"{result.error_type}: {result.error_message}"
                continue
            try:
                rows.extend(parse_tonnage(result.text or "", region_id))
            except ValueError as e:
                failures[region_id] = f"parse: {e}"

        if not rows:
            return pl.DataFrame(schema=RAW_SCHEMA), failures

        raw = pl.DataFrame(rows, schema=RAW_SCHEMA).filter(
            pl.col("year").is_between(year_start, year_end)
        )
        return raw.sort("region_id", "year", "group"), failures


def parse_tonnage(text: str, region_id: int) -> list[dict]:
    """Parse a functional-group tonnage payload.

    Expected shape::

        {"data": [{"key": "Pelagic (<30 cm)", "values": [[1950, 1234.5], ...]}, ...]}

    Null tonnages are skipped (they are unobserved, not zero).

    Raises:
        ValueError: If the payload is not JSON, lacks the ``data`` series list,
            or holds a series entry or point of the wrong shape.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        msg = f"invalid JSON for region {region_id}: {e}"
        raise ValueError(msg) from e

    series = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(series, list):
        msg = f"payload for region {region_id} has no 'data' series list"
        raise ValueError(msg)

    rows: list[dict] = []
    for entry in series:
        if not isinstance(entry, dict):
            msg = f"payload for region {region_id} has a non-object series entry: {entry!r}"
            raise ValueError(msg)
        group = entry.get("key", "")
        values = entry.get("values", [])
        if not isinstance(values, list):
            msg = f"payload for region {region_id} has no values list for {group!r}"
            raise ValueError(msg)
        for point in values:
            try:
                year, tonnes = point
                year = int(year)
                tonnes = None if tonnes is None else float(tonnes)
            except (TypeError, ValueError) as e:
                msg = f"region {region_id}: malformed point {point!r} in {group!r}"
                raise ValueError(msg) from e
            if tonnes is None:
                continue
            rows.append({"region_id": region_id, "year": year, "group": group, "tonnes": tonnes})
    return rows
