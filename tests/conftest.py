import pytest
from loguru import logger

from reflinker.models import AutolinkReference


@pytest.fixture
def hash_ref():
    return AutolinkReference(prefix="#", url="https://x/issues/<num>")


@pytest.fixture
def jira_ref():
    return AutolinkReference(prefix="JIRA-", url="https://jira.example.com/browse/JIRA-<num>", alphanumeric=True)


@pytest.fixture
def log_messages():
    """Capture loguru output for the duration of a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda msg: messages.append(str(msg)), level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)
