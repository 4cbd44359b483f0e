"""
Pytest configuration file.

Ensures the repo root is on sys.path so that 'import gasless...' works, and
provides shared config / account fixtures. No test needs network access.
"""
import sys
from pathlib import Path

import pytest

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from eth_account import Account  # noqa: E402

from gasless.config import load_config  # noqa: E402

OWNER_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32


@pytest.fixture
def config():
    """Bundled configuration with no environment overrides (no API key)."""
    return load_config(env={})


@pytest.fixture
def keyed_config():
    """Bundled configuration with a Relay API key."""
    return load_config(env={"RELAY_API_KEY": "test-key"})


@pytest.fixture
def account():
    return Account.from_key(OWNER_KEY)


@pytest.fixture
def other_account():
    return Account.from_key(OTHER_KEY)
