import enum
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from agents.errors import BrowserLaunchError


AGENT_NAME = "codex_driver"
DEFAULT_CODEX_URL = "https://chatgpt.com/codex"
INPUT_SELECTOR = "textarea"
ACTION_CHOICES = ("code", "ask", "none")
DEFAULT_ACTION = "code"
MAX_ATTACH_ATTEMPTS = 20
ATTACH_INTERVAL_SECONDS = 0.5


class DriverState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PAGE_LOADED = "page_loaded"
    AWAITING_INPUT = "awaiting_input"
    INPUT_FILLED = "input_filled"
    ACTION_TRIGGERED = "action_triggered"


class DriverEvent(str, enum.Enum):
    ATTACH = "attach"
    ATTACHED = "attached"
    LAUNCHED = "launched"
    PAGE_LOADED = "page_loaded"
    INPUT_READY = "input_ready"
    INPUT_FILLED = "input_filled"
    ACTION_DONE = "action_done"


TRANSITIONS: Dict[Tuple[DriverState, DriverEvent], DriverState] = {
    (DriverState.DISCONNECTED, DriverEvent.ATTACH): DriverState.CONNECTING,
    (DriverState.CONNECTING, DriverEvent.ATTACHED): DriverState.CONNECTED,
    (DriverState.CONNECTING, DriverEvent.LAUNCHED): DriverState.CONNECTED,
    (DriverState.CONNECTED, DriverEvent.PAGE_LOADED): DriverState.PAGE_LOADED,
    (DriverState.PAGE_LOADED, DriverEvent.INPUT_READY): DriverState.AWAITING_INPUT,
    (DriverState.AWAITING_INPUT, DriverEvent.INPUT_FILLED): DriverState.INPUT_FILLED,
    (DriverState.INPUT_FILLED, DriverEvent.ACTION_DONE): DriverState.ACTION_TRIGGERED,
}


def advance(state: DriverState, event: DriverEvent) -> DriverState:
    try:
        return TRANSITIONS[(DriverState(state), DriverEvent(event))]
    except KeyError:
        raise ValueError(f"Invalid driver transition: {state} --{event}-->") from None


class BrowserSession(Protocol):
    endpoint: str
    chrome_pid: Optional[int]

    def connect(self) -> bool: ...

    def launch(self) -> None: ...

    def navigate(self, url: str) -> None: ...

    def wait_for_element(self, selector: str) -> None: ...

    def type_text(self, selector: str, text: str) -> None: ...

    def find_and_click_by_label(self, label: str) -> Optional[str]: ...


@dataclass(frozen=True)
class DriverResult:
    state: DriverState
    action: str
    clicked_label: Optional[str] = None
    launched_browser: bool = False
    browser_pid: Optional[int] = None


def normalize_action(value: Any) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in ACTION_CHOICES else "none"


class CodexDriver:
    """Sequence the Codex page automation over a BrowserSession."""

    def __init__(
        self,
        session: BrowserSession,
        logger,
        target_url: str = DEFAULT_CODEX_URL,
        max_attach_attempts: int = MAX_ATTACH_ATTEMPTS,
        attach_interval_seconds: float = ATTACH_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        echo: Callable[[str], None] = print,
    ) -> None:
        self.session = session
        self.logger = logger
        self.target_url = target_url
        self.max_attach_attempts = max(1, int(max_attach_attempts))
        self.attach_interval_seconds = attach_interval_seconds
        self._sleep = sleep
        self._echo = echo
        self.state = DriverState.DISCONNECTED

    @staticmethod
    def _now_text() -> str:
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def _debug(self, message: str, **meta: Any) -> None:
        suffix = " | " + ", ".join(f"{k}={v}" for k, v in meta.items()) if meta else ""
        self.logger.debug("[DEBUG][%s] %s | timestamp_text=%s%s", AGENT_NAME, message, self._now_text(), suffix)

    def _advance(self, event: DriverEvent) -> None:
        previous = self.state
        self.state = advance(self.state, event)
        self._debug("State transition", previous=previous.value, event=event.value, state=self.state.value)

    def _attach_or_launch(self) -> bool:
        self._advance(DriverEvent.ATTACH)
        if self.session.connect():
            self._advance(DriverEvent.ATTACHED)
            return False

        self._echo(f"No Chrome instance detected on {self.session.endpoint}. Launching a new one...")
        self.session.launch()
        for attempt in range(1, self.max_attach_attempts + 1):
            if self.session.connect():
                self._debug("Attached to launched browser", attempt=attempt)
                self._advance(DriverEvent.LAUNCHED)
                return True
            self._sleep(self.attach_interval_seconds)
        raise BrowserLaunchError("Failed to start or connect to Chrome with remote debugging.")

    def run(self, prompt_text: str, choose_action: Callable[[], str]) -> DriverResult:
        launched = self._attach_or_launch()

        self._echo("Opening ChatGPT Codex page...")
        self.session.navigate(self.target_url)
        self._advance(DriverEvent.PAGE_LOADED)

        # No timeout: the operator may have to log in inside the same window first.
        self._echo("Waiting for ChatGPT Codex editor to be fully loaded (please log in if prompted)...")
        self.session.wait_for_element(INPUT_SELECTOR)
        self._advance(DriverEvent.INPUT_READY)

        self.session.type_text(INPUT_SELECTOR, prompt_text)
        self._advance(DriverEvent.INPUT_FILLED)

        action = normalize_action(choose_action())
        clicked_label = None
        if action != "none":
            clicked_label = self.session.find_and_click_by_label(action)
            if clicked_label:
                self._echo(f'Triggered Codex "{clicked_label}" action.')
            else:
                self.logger.warning("Codex action button not found (action=%s); leaving it to the operator", action)
                self._echo(f'Could not find a "{action}" button. Please trigger the action manually.')
        self._advance(DriverEvent.ACTION_DONE)

        # The browser is intentionally left open for review.
        self._echo("Done! Check the browser for the Codex response.")
        self.logger.info(
            "Codex flow finish: action=%s clicked=%s launched_browser=%s",
            action,
            clicked_label or "-",
            launched,
        )
        return DriverResult(
            state=self.state,
            action=action,
            clicked_label=clicked_label,
            launched_browser=launched,
            browser_pid=self.session.chrome_pid,
        )
