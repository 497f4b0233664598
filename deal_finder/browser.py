from __future__ import annotations

from dataclasses import dataclass

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .errors import FetchError
from .http import BROWSER_UA, CancelToken


def browserless_ws_endpoint(*, base_ws_url: str, token: str) -> str:
    """Compose a Browserless CDP websocket endpoint.

    http(s)://host:port is rewritten to ws(s)://host:port and the token is
    appended as a query parameter unless one is already present.
    """
    base = base_ws_url.strip()
    if base.startswith("http://"):
        base = "ws://" + base.removeprefix("http://")
    elif base.startswith("https://"):
        base = "wss://" + base.removeprefix("https://")

    if "token=" in base:
        return base
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}token={token}"


@dataclass(frozen=True)
class BrowserPageFetcher:
    """Fetch pages through a remote Chromium (Browserless) over CDP.

    Used for retailers that serve challenge pages to plain HTTP clients.
    Each call opens its own playwright instance, so fetches can run on
    separate worker threads.
    """

    ws_endpoint: str
    timeout_s: float = 10.0

    def fetch(self, url: str, *, cancel: CancelToken | None = None) -> str:
        if cancel is not None and cancel.cancelled:
            raise FetchError(f"cancelled before fetch: {url}")
        timeout_ms = int(self.timeout_s * 1000)
        try:
            with sync_playwright() as p:
                browser = p.chromium.connect_over_cdp(self.ws_endpoint, timeout=timeout_ms)
                try:
                    context = browser.new_context(user_agent=BROWSER_UA, ignore_https_errors=True)
                    page = context.new_page()
                    page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                    if cancel is not None and cancel.cancelled:
                        raise FetchError(f"cancelled while loading {url}")
                    return page.content()
                finally:
                    browser.close()
        except PlaywrightError as exc:
            raise FetchError(f"browser fetch of {url} failed: {exc}") from exc
