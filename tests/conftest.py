"""Shared fixtures for the bashscan test suite."""

from __future__ import annotations

import os

import pytest

from bashscan.core.config import BashscanSettings, Config
from bashscan.core.safety.audit import AuditLogger
from bashscan.core.safety.sandbox import PathClassifier
from bashscan.core.safety.scanner import Scanner

PROJECT_DIR = "/work/project"
HOME_DIR = "/home/tester"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Prevent .env files, shell env and the real home directory from leaking into tests.

    BashscanSettings.model_config has env_file=".env" which loads the project
    .env relative to cwd. Nullify it at the source. HOME points at a directory
    that does not exist so no user-level config files are picked up.
    """
    monkeypatch.setitem(BashscanSettings.model_config, "env_file", None)
    for key in list(os.environ):
        if key.startswith("BASHSCAN_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", HOME_DIR)


@pytest.fixture
def classifier():
    return PathClassifier(PROJECT_DIR)


@pytest.fixture
def scanner():
    return Scanner(PROJECT_DIR)


@pytest.fixture
def configured_scanner():
    config = Config(
        safe_paths=["/var/cache/build/*", "$HOME/.cache/*"],
        whitelisted_commands=["curl https://example.com/health", "wget"],
    )
    return Scanner(PROJECT_DIR, config)


@pytest.fixture
def audit_logger(tmp_path):
    return AuditLogger(tmp_path / "test_audit.jsonl")
