import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from pydantic import BaseModel

from agents.codex_driver.playwright_session import (
    DEFAULT_CHROME_PATH,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_REMOTE_DEBUG_PORT,
    DEFAULT_USER_DATA_DIR,
    PlaywrightSession,
    system_timezone,
)
from agents.codex_driver.service import ACTION_CHOICES, DEFAULT_ACTION, DEFAULT_CODEX_URL, CodexDriver
from agents.context_compiler.service import (
    ClickPrompter,
    Prompter,
    collect_context,
    compile_prompt_text,
    review_prompt_text,
)
from agents.errors import ConfigError, LinearCodexError
from agents.issue_fetcher.service import DEFAULT_LINEAR_API_URL, DEFAULT_TIMEOUT_SECONDS, LinearIssueFetcher


__version__ = "1.0.0"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "WARNING").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("linear_codex")

MISSING_KEY_MESSAGE = "Please set the LINEAR_API_KEY environment variable to your Linear API token."


def _options_path() -> Path:
    explicit = os.getenv("LINEAR_CODEX_OPTIONS", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    return Path("~/.linear_codex/options.json").expanduser()


def _load_options(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load optional overrides from the JSON options file."""
    options_path = path or _options_path()
    if not options_path.exists():
        return {}
    try:
        options = json.loads(options_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.exception("Could not parse %s; using environment and defaults", options_path)
        return {}
    if not isinstance(options, dict):
        logger.warning("Ignoring %s: root must be a JSON object", options_path)
        return {}
    logger.debug("Options loaded from %s", options_path)
    return options


def _setting(options: Dict[str, Any], name: str, default: str = "") -> str:
    """ENV first, then the options file, then the default."""
    env_name = name.upper()
    if env_name in os.environ:
        return os.getenv(env_name, default)
    return str(options.get(name.lower(), default))


class Settings(BaseModel):
    linear_api_key: str
    linear_api_url: str = DEFAULT_LINEAR_API_URL
    linear_timeout: float = DEFAULT_TIMEOUT_SECONDS
    codex_url: str = DEFAULT_CODEX_URL
    chrome_path: str = DEFAULT_CHROME_PATH
    remote_debug_port: int = DEFAULT_REMOTE_DEBUG_PORT
    chrome_user_data_dir: str = DEFAULT_USER_DATA_DIR
    browser_timezone: str = ""
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS


def load_settings(options: Optional[Dict[str, Any]] = None) -> Settings:
    options = _load_options() if options is None else options
    api_key = _setting(options, "linear_api_key").strip()
    if not api_key:
        raise ConfigError(MISSING_KEY_MESSAGE)
    try:
        return Settings(
            linear_api_key=api_key,
            linear_api_url=_setting(options, "linear_api_url", DEFAULT_LINEAR_API_URL),
            linear_timeout=_setting(options, "linear_timeout", str(DEFAULT_TIMEOUT_SECONDS)),
            codex_url=_setting(options, "codex_url", DEFAULT_CODEX_URL),
            chrome_path=_setting(options, "chrome_path", DEFAULT_CHROME_PATH),
            remote_debug_port=_setting(options, "remote_debug_port", str(DEFAULT_REMOTE_DEBUG_PORT)),
            chrome_user_data_dir=_setting(options, "chrome_user_data_dir", DEFAULT_USER_DATA_DIR),
            browser_timezone=_setting(options, "browser_timezone", system_timezone()),
            navigation_timeout_ms=_setting(options, "navigation_timeout_ms", str(DEFAULT_NAVIGATION_TIMEOUT_MS)),
        )
    except ValueError as err:
        raise ConfigError(f"Invalid configuration: {err}") from err


def build_fetcher(settings: Settings) -> LinearIssueFetcher:
    return LinearIssueFetcher(
        api_key=settings.linear_api_key,
        endpoint=settings.linear_api_url,
        timeout=settings.linear_timeout,
        logger=logging.getLogger("linear_codex.issue_fetcher"),
    )


def build_driver(settings: Settings) -> CodexDriver:
    session = PlaywrightSession(
        logger=logging.getLogger("linear_codex.playwright"),
        remote_debug_port=settings.remote_debug_port,
        user_data_dir=settings.chrome_user_data_dir,
        chrome_path=settings.chrome_path,
        timezone=settings.browser_timezone,
        navigation_timeout_ms=settings.navigation_timeout_ms,
    )
    return CodexDriver(
        session=session,
        logger=logging.getLogger("linear_codex.codex_driver"),
        target_url=settings.codex_url,
        echo=click.echo,
    )


def run_code_flow(ticket_id: str, settings: Settings, prompter: Prompter) -> int:
    """Fetch, compile, review and hand the issue to Codex. Returns the exit code."""
    issue = build_fetcher(settings).fetch_issue(ticket_id)
    answers = collect_context(issue, prompter)
    prompt_text = compile_prompt_text(issue, answers)
    if not review_prompt_text(prompt_text, prompter):
        prompter.echo("Aborted. The content was not sent to Codex.")
        return 0

    driver = build_driver(settings)
    driver.run(
        prompt_text,
        choose_action=lambda: prompter.choose(
            "Which Codex action should be triggered? (code = generate code, ask = normal question, none = click manually)",
            ACTION_CHOICES,
            DEFAULT_ACTION,
        ),
    )
    return 0


def _error_line(err: BaseException) -> str:
    text = str(err).strip()
    return text.splitlines()[0] if text else type(err).__name__


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="linear-codex %(version)s")
def cli() -> None:
    """CLI to fetch Linear tickets and send them to ChatGPT Codex."""


@cli.command("code")
@click.argument("ticket_id")
def code(ticket_id: str) -> None:
    """Fetch a Linear ticket by ID and send it to ChatGPT Codex."""
    try:
        settings = load_settings()
    except ConfigError as err:
        click.echo(f"Error: {_error_line(err)}", err=True)
        raise SystemExit(1)

    try:
        exit_code = run_code_flow(ticket_id, settings, ClickPrompter())
    except LinearCodexError as err:
        logger.debug("Codex flow failed for %s: %s", ticket_id, err)
        click.echo(f"Error: {_error_line(err)}", err=True)
        raise SystemExit(1)
    except Exception as err:
        logger.debug("Unexpected failure for %s", ticket_id, exc_info=True)
        click.echo(f"Error: {_error_line(err)}", err=True)
        raise SystemExit(1)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    cli()
