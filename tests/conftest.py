"""Shared fixtures for pymigrate tests."""

import sqlite3

import pytest
from loguru import logger

from pymigrate.config import reset_config


@pytest.fixture(autouse=True)
def clean_config(tmp_path, monkeypatch):
    """Fresh global config per test, isolated from any pymigrate.config.yaml."""
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "app.db"


@pytest.fixture
def conn(db_path):
    """SQLite connection in the driver's default transaction mode."""
    connection = sqlite3.connect(db_path)
    yield connection
    connection.close()


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
