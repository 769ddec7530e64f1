import os
import random
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from agents.errors import BrowserLaunchError


AGENT_NAME = "playwright_session"
DEFAULT_CHROME_PATH = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
DEFAULT_REMOTE_DEBUG_PORT = 9222
DEFAULT_USER_DATA_DIR = "/tmp/chrome-remote-profile"
DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000


def random_viewport() -> Dict[str, int]:
    return {
        "width": random.randint(1280, 1679),
        "height": random.randint(720, 1079),
    }


def system_timezone(localtime_path: str = "/etc/localtime") -> str:
    """IANA name of the host zone: `TZ` first, then the zoneinfo symlink target."""
    configured = os.getenv("TZ", "").strip().lstrip(":")
    if configured and not configured.startswith("/"):
        return configured
    try:
        target = str(Path(localtime_path).resolve())
    except OSError:
        return configured
    marker = "zoneinfo/"
    if marker in target:
        return target.split(marker, 1)[1]
    return configured


class PlaywrightSession:
    """BrowserSession over a Chrome instance exposing the DevTools protocol.

    The session attaches with `connect_over_cdp` and reuses the browser's
    default context so the persistent profile (and the ChatGPT login) is kept.
    Nothing here closes the browser.
    """

    def __init__(
        self,
        logger,
        remote_debug_port: int = DEFAULT_REMOTE_DEBUG_PORT,
        user_data_dir: str = DEFAULT_USER_DATA_DIR,
        chrome_path: str = DEFAULT_CHROME_PATH,
        timezone: str = "",
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        playwright_factory=sync_playwright,
        popen=subprocess.Popen,
    ) -> None:
        self.logger = logger
        self.remote_debug_port = int(remote_debug_port)
        self.user_data_dir = user_data_dir
        self.chrome_path = chrome_path
        self.timezone = str(timezone or "").strip()
        self.navigation_timeout_ms = int(navigation_timeout_ms)
        self.endpoint = f"http://localhost:{self.remote_debug_port}"
        self._playwright_factory = playwright_factory
        self._popen = popen
        self._chrome_process = None
        self._playwright = None
        self.browser = None
        self.page = None

    @staticmethod
    def _now_text() -> str:
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def _debug(self, message: str, **meta: Any) -> None:
        suffix = " | " + ", ".join(f"{k}={v}" for k, v in meta.items()) if meta else ""
        self.logger.debug("[DEBUG][%s] %s | timestamp_text=%s%s", AGENT_NAME, message, self._now_text(), suffix)

    def _ensure_playwright(self):
        if self._playwright is None:
            self._playwright = self._playwright_factory().start()
        return self._playwright

    def connect(self) -> bool:
        playwright = self._ensure_playwright()
        try:
            self.browser = playwright.chromium.connect_over_cdp(self.endpoint)
        except PlaywrightError as err:
            self._debug("CDP attach failed", endpoint=self.endpoint, error=str(err).splitlines()[0] if str(err) else "-")
            return False
        self._debug("CDP attached", endpoint=self.endpoint)
        return True

    def launch(self) -> None:
        args = [
            self.chrome_path,
            f"--remote-debugging-port={self.remote_debug_port}",
            f"--user-data-dir={self.user_data_dir}",
        ]
        self.logger.info("Launching Chrome with remote debugging: %s", " ".join(args))
        try:
            # Detached so Chrome outlives this process.
            self._chrome_process = self._popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as err:
            raise BrowserLaunchError(f"Could not start Chrome at {self.chrome_path}: {err}") from err

    @property
    def chrome_pid(self) -> Optional[int]:
        return self._chrome_process.pid if self._chrome_process is not None else None

    def _apply_timezone(self, context, page) -> None:
        if not self.timezone:
            return
        try:
            cdp = context.new_cdp_session(page)
            cdp.send("Emulation.setTimezoneOverride", {"timezoneId": self.timezone})
            self._debug("Timezone emulated", timezone=self.timezone)
        except Exception as err:
            self._debug("Timezone emulation skipped", timezone=self.timezone, error=err)

    def navigate(self, url: str) -> None:
        if self.browser is None:
            raise BrowserLaunchError("Browser session is not connected.")
        context = self.browser.contexts[0] if self.browser.contexts else self.browser.new_context()
        page = context.new_page()
        viewport = random_viewport()
        page.set_viewport_size(viewport)
        self._apply_timezone(context, page)
        self._debug("Opening target", url=url, width=viewport["width"], height=viewport["height"])
        try:
            page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
        except PlaywrightTimeoutError as err:
            # Chat pages keep long-polling; the input wait below is the real gate.
            self._debug(
                "Network never settled, continuing",
                url=url,
                timeout_ms=self.navigation_timeout_ms,
                error=str(err).splitlines()[0] if str(err) else "-",
            )
        self.page = page

    def _require_page(self):
        if self.page is None:
            raise BrowserLaunchError("No page is open in the browser session.")
        return self.page

    def wait_for_element(self, selector: str) -> None:
        self._require_page().wait_for_selector(selector, timeout=0)

    def type_text(self, selector: str, text: str) -> None:
        page = self._require_page()
        page.focus(selector)
        page.keyboard.type(text, delay=0)

    def find_and_click_by_label(self, label: str) -> Optional[str]:
        page = self._require_page()
        wanted = str(label or "").strip().lower()
        if not wanted:
            return None
        buttons = page.locator("button")
        for index in range(buttons.count()):
            button = buttons.nth(index)
            text = str(button.inner_text() or "").strip()
            if text and text.lower() == wanted:
                self.logger.info("Clicking Codex button: %s", text)
                button.click()
                return text
        self._debug("No button matched label", label=wanted, buttons=buttons.count())
        return None
