"""Test configuration and fixtures."""

import logging
from pathlib import Path
from typing import Callable

import pytest

from connectgw.config import Config
from connectgw.connectors import DummyPlatform
from connectgw.gateway import ConnectorGateway, Tenant

SHEETS_ADD_ROW = "sheets.addRow"


def _close_loggers():
    """Drop handlers the CLI attached, their streams belong to a finished test."""
    for logger_name in ["connectgw"] + list(logging.Logger.manager.loggerDict):
        if logger_name == "connectgw" or logger_name.startswith("connectgw."):
            logger = logging.getLogger(logger_name)
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    _close_loggers()


@pytest.fixture
def make_config(monkeypatch, tmp_path: Path) -> Callable[..., Config]:
    """Build a Config from environment overrides (no .env file is read)."""

    def _make(**env: str) -> Config:
        defaults = {
            "CONNECTGW_PLATFORM": "dummy",
            "CONNECTGW_REQUEST_TIMEOUT_S": "0.2",
            "CONNECTGW_CASCADE_CONCURRENCY": "2",
            "CONNECTGW_PAGE_SIZE": "2",
            "CONNECTGW_DEFAULT_ORIGIN": "http://localhost:3000",
        }
        defaults.update(env)
        for key, value in defaults.items():
            monkeypatch.setenv(key, value)
        return Config(env_file=tmp_path / ".env")

    return _make


@pytest.fixture
def gw_config(make_config) -> Config:
    """Config with a small page size so listings span several pages."""
    return make_config()


@pytest.fixture
def platform() -> DummyPlatform:
    """In-memory platform with two tenants and a dependent-prop component."""
    pd = DummyPlatform()
    pd.add_app("slack", app_id="app_OkrhR1", name="Slack")
    pd.add_app("google_sheets", app_id="app_1Z2hw1", name="Google Sheets")
    pd.add_app("github", app_id="app_OrZhaO", name="GitHub")

    pd.add_account("user-1", "slack", account_id="a1", name="Work Slack")
    pd.add_account("user-1", "slack", account_id="a2", healthy=False, dead=True)
    pd.add_account(
        "user-1",
        "google_sheets",
        account_id="a3",
        credentials={"oauth_access_token": "ya29.secret"},
    )
    pd.add_account("user-2", "slack", account_id="b1")

    pd.add_component(
        "action",
        SHEETS_ADD_ROW,
        name="Add Single Row",
        props=[
            {"name": "googleSheets", "type": "app", "app": "google_sheets"},
            {"name": "spreadsheet", "type": "string", "remoteOptions": True},
            {"name": "sheet", "type": "string", "remoteOptions": True, "dependsOn": ["spreadsheet"]},
            {"name": "worksheetId", "type": "string", "remoteOptions": True},
        ],
    )
    pd.add_component("action", "slack-send-message", name="Send Message")
    pd.add_component("action", "slack-list-channels", name="List Channels")
    pd.add_component("action", "github-create-issue", name="Create Issue")
    pd.add_component("trigger", "slack-new-message", name="New Message")

    pd.set_configure_response(
        SHEETS_ADD_ROW,
        "spreadsheet",
        {"options": [{"label": "Budget", "value": "ss-1"}, {"label": "Roadmap", "value": "ss-2"}]},
    )
    pd.set_configure_response(
        SHEETS_ADD_ROW,
        "sheet",
        {"options": [{"label": "Sheet1", "value": 0}, {"label": "Q3", "value": 1}]},
    )
    pd.set_configure_response(
        SHEETS_ADD_ROW,
        "worksheetId",
        {"options": [], "string_options": ["default"]},
    )
    return pd


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(external_user_id="user-1")


@pytest.fixture
def gateway(platform: DummyPlatform, gw_config: Config) -> ConnectorGateway:
    return ConnectorGateway(platform, gw_config)
