import pytest

from mailcomposer.config import Settings

FIXED_DATE = "Sat, 21 Jun 2014 10:52:44 +0000"


@pytest.fixture
def test_settings():
    return Settings(boundary_prefix="----sinikael-")


@pytest.fixture
def fixed_date():
    return FIXED_DATE


@pytest.fixture
def alternative_description():
    return {
        "text": "abc",
        "html": "def",
        "baseBoundary": "test",
        "messageId": "zzzzzz",
        "date": FIXED_DATE,
    }


@pytest.fixture
def bcc_description():
    return {
        "from": "test1@example.com",
        "to": "test2@example.com",
        "bcc": "test3@example.com",
        "text": "def",
        "messageId": "zzzzzz",
        "date": FIXED_DATE,
    }


@pytest.fixture
def related_description():
    return {
        "html": '<img src="cid:aaa">',
        "attachments": [
            {"content": "abc", "cid": "aaa"},
            {"content": "def", "cid": "bbb"},
        ],
        "baseBoundary": "test",
        "messageId": "zzzzzz",
        "date": FIXED_DATE,
    }
