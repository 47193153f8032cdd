"""
Tests for repository fetching with a mocked HTTP session.
"""
import base64

import pytest
import requests
from unittest.mock import MagicMock, patch

from scanguard.core.config import settings
from scanguard.core.exceptions import RepositoryFetchError
from scanguard.services.repository_service import (
    RepositoryService,
    is_relevant_path,
    parse_repository_url,
    repository_display_name,
)

API = "https://api.github.com/repos/acme/body-ecu"


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    return response


def _content(text):
    encoded = base64.b64encode(text.encode()).decode()
    # GitHub wraps base64 payloads at 60 characters
    return {"encoding": "base64", "content": "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))}


@pytest.fixture
def session():
    routes = {
        API: _response(payload={"default_branch": "develop"}),
        f"{API}/git/trees/develop?recursive=1": _response(payload={"tree": [
            {"type": "blob", "path": "src/can.c", "size": 120},
            {"type": "blob", "path": "docs/logo.png", "size": 4000},
            {"type": "tree", "path": "src"},
            {"type": "blob", "path": "include/can.h"},
            {"type": "blob", "path": "config/broken.json"},
        ]}),
        f"{API}/contents/src/can.c?ref=develop": _response(payload=_content("void can_rx(void) {}\n" * 5)),
        f"{API}/contents/include/can.h?ref=develop": _response(payload=_content("#define CAN_DLC 8\n")),
        f"{API}/contents/config/broken.json?ref=develop": _response(404, text="Not Found"),
    }
    mock_session = MagicMock()
    mock_session.get.side_effect = lambda url, headers, timeout: routes[url]
    return mock_session


@pytest.mark.parametrize("url,expected", [
    ("https://github.com/acme/body-ecu", ("acme", "body-ecu")),
    ("https://github.com/acme/body-ecu.git", ("acme", "body-ecu")),
    ("https://github.com/acme/body-ecu/", ("acme", "body-ecu")),
    ("git@github.com:acme/body-ecu.git", ("acme", "body-ecu")),
])
def test_parse_repository_url(url, expected):
    assert parse_repository_url(url) == expected


def test_parse_repository_url_rejects_other_hosts():
    with pytest.raises(RepositoryFetchError, match="Not a GitHub repository URL"):
        parse_repository_url("https://gitlab.com/acme/body-ecu")


def test_repository_display_name():
    assert repository_display_name("https://github.com/acme/body-ecu.git") == "acme/body-ecu"
    assert repository_display_name("ftp://example.org/fw") == "ftp://example.org/fw"


def test_is_relevant_path():
    assert is_relevant_path("src/Main.C")
    assert is_relevant_path("bsw/Com.arxml")
    assert not is_relevant_path("docs/logo.png")


def test_fetch_default_branch_and_skips_failures(session):
    snapshot = RepositoryService(session=session).fetch("https://github.com/acme/body-ecu")

    assert snapshot.full_name == "acme/body-ecu"
    assert snapshot.branch == "develop"
    assert [f.path for f in snapshot.files] == ["src/can.c", "include/can.h"]
    assert snapshot.files[0].size == 120
    assert snapshot.files[1].content == "#define CAN_DLC 8\n"
    assert snapshot.files[1].size == len("#define CAN_DLC 8\n")


def test_fetch_sends_token_and_respects_max_files(session):
    with patch.object(settings, "REPOSITORY_MAX_FILES", 1):
        snapshot = RepositoryService(session=session).fetch(
            "https://github.com/acme/body-ecu", access_token="ghp_secret"
        )

    assert [f.path for f in snapshot.files] == ["src/can.c"]
    headers = session.get.call_args_list[0].kwargs["headers"]
    assert headers["Authorization"] == "token ghp_secret"
    assert headers["User-Agent"] == "ECU-ScanGuard/1.0"


def test_fetch_explicit_branch_is_used(session):
    session.get.side_effect = None
    session.get.return_value = _response(payload={"default_branch": "main", "tree": []})

    snapshot = RepositoryService(session=session).fetch("https://github.com/acme/body-ecu", branch="release/2.0")

    assert snapshot.branch == "release/2.0"
    assert session.get.call_args_list[1].args[0] == f"{API}/git/trees/release%2F2.0?recursive=1"


def test_fetch_missing_repository(session):
    session.get.side_effect = None
    session.get.return_value = _response(404, text='{"message": "Not Found"}')

    with pytest.raises(RepositoryFetchError, match="Failed to fetch repository acme/body-ecu: 404"):
        RepositoryService(session=session).fetch("https://github.com/acme/body-ecu")


def test_fetch_network_error(session):
    session.get.side_effect = requests.ConnectionError("connection reset")

    with pytest.raises(RepositoryFetchError, match="Network error"):
        RepositoryService(session=session).fetch("https://github.com/acme/body-ecu")


def test_fetch_unsupported_provider(session):
    with pytest.raises(RepositoryFetchError, match="not supported"):
        RepositoryService(session=session).fetch("https://github.com/acme/body-ecu", provider="gitlab")
    session.get.assert_not_called()
