from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

import requests

from .errors import FetchError

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": BROWSER_UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

MAX_PAGE_BYTES = 3 * 1024 * 1024


@dataclass(frozen=True)
class HttpClient:
    base_url: str
    token: str
    timeout_s: float = 30.0

    def post(self, path: str, *, json: dict) -> requests.Response:
        url = self.base_url.rstrip("/") + "/" + path.lstrip("/")
        return requests.post(
            url,
            json=json,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
            timeout=self.timeout_s,
        )


class CancelToken:
    """Thread-safe cancellation flag with close callbacks.

    Fetches register a callback (usually ``response.close``) so that
    cancelling from another thread releases their sockets immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_id = 0

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for cb in callbacks:
            try:
                cb()
            except Exception:
                # closing an already-dead socket
                pass

    def register(self, cb: Callable[[], None]) -> Callable[[], None]:
        """Run *cb* on cancel; returns a function that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                handle = self._next_id
                self._next_id += 1
                self._callbacks[handle] = cb
                return lambda: self._callbacks.pop(handle, None)
        cb()
        return lambda: None

    def child(self) -> "CancelToken":
        """A token cancelled together with this one, but not the reverse."""
        child = CancelToken()
        self.register(child.cancel)
        return child

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)


@dataclass(frozen=True)
class PageFetcher:
    """Plain HTTP page fetch with a browser-like header set."""

    timeout_s: float = 10.0
    max_bytes: int = MAX_PAGE_BYTES

    def fetch(self, url: str, *, cancel: CancelToken | None = None) -> str:
        cancel = cancel or CancelToken()
        if cancel.cancelled:
            raise FetchError(f"cancelled before fetch: {url}")

        started = time.monotonic()
        try:
            resp = requests.get(url, headers=BROWSER_HEADERS, timeout=self.timeout_s, stream=True)
        except requests.RequestException as exc:
            raise FetchError(f"GET {url} failed: {exc}") from exc

        unregister = cancel.register(resp.close)
        try:
            if resp.status_code >= 400:
                raise FetchError(f"GET {url} returned {resp.status_code}")
            body = bytearray()
            for chunk in resp.iter_content(chunk_size=16_384):
                if cancel.cancelled:
                    raise FetchError(f"cancelled while reading {url}")
                if time.monotonic() - started > self.timeout_s:
                    raise FetchError(f"timed out reading {url}")
                body.extend(chunk)
                if len(body) > self.max_bytes:
                    break
            return _decode(bytes(body), resp)
        except (requests.RequestException, AttributeError, ValueError, OSError) as exc:
            # A cancel-triggered close surfaces as one of these mid-read.
            raise FetchError(f"reading {url} failed: {exc}") from exc
        finally:
            unregister()
            resp.close()


def _decode(body: bytes, resp: requests.Response) -> str:
    content_type = resp.headers.get("Content-Type", "").lower()
    encoding = resp.encoding if "charset" in content_type and resp.encoding else "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")
