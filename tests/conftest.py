import json
import os

import pytest
from unittest.mock import AsyncMock, MagicMock

from marksync.models import BookmarkNode, SyncRecord
from marksync.store import MemoryConfigStore
from marksync.tree import BookmarkTree


def build_sample_root():
    """
    A small bookmark tree:

        0 (root)
        ├── 1 Bookmarks bar
        │   ├── 10 Python Documentation
        │   └── 11 Dev
        │       ├── 12 GitHub
        │       └── 13 Deep
        │           └── 14 Rust
        └── 2 Other bookmarks
            └── 20 Stack Overflow
    """
    return BookmarkNode(id="0", children=[
        BookmarkNode(id="1", title="Bookmarks bar", parent_id="0", index=0,
                     date_added=1677247196000, date_group_modified=1677247197000, children=[
            BookmarkNode(id="10", title="Python Documentation", url="https://docs.python.org",
                         parent_id="1", index=0, date_added=1677247196000),
            BookmarkNode(id="11", title="Dev", parent_id="1", index=1, children=[
                BookmarkNode(id="12", title="GitHub", url="https://github.com",
                             parent_id="11", index=0),
                BookmarkNode(id="13", title="Deep", parent_id="11", index=1, children=[
                    BookmarkNode(id="14", title="Rust", url="https://www.rust-lang.org",
                                 parent_id="13", index=0),
                ]),
            ]),
        ]),
        BookmarkNode(id="2", title="Other bookmarks", parent_id="0", index=1, children=[
            BookmarkNode(id="20", title="Stack Overflow", url="https://stackoverflow.com",
                         parent_id="2", index=0),
        ]),
    ])


@pytest.fixture
def sample_tree():
    """BookmarkTree built from the sample root."""
    return BookmarkTree(build_sample_root())


@pytest.fixture
def memory_store():
    """Empty in-memory config store."""
    return MemoryConfigStore()


@pytest.fixture
def configured_store():
    """In-memory store with an endpoint, a secret and two selected bookmarks."""
    return MemoryConfigStore(SyncRecord(
        endpoint_url="https://example.com/api/bookmarks",
        shared_secret="s3cret",
        selected_ids=["10", "12"],
    ))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_session(status=200, json_data=None, reason="OK", body=None, post_error=None):
    """
    Build a MagicMock standing in for an aiohttp ClientSession.

    ``session.post(...)`` returns an async context manager yielding a
    response with the given status; ``response.text()`` returns ``body``
    if given, else ``json_data`` encoded as JSON.
    """
    if body is None:
        body = json.dumps(json_data if json_data is not None else {"ok": True})
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.reason = reason
    mock_response.text = AsyncMock(return_value=body)

    mock_session = MagicMock()
    if post_error is not None:
        mock_session.post = MagicMock(side_effect=post_error)
    else:
        mock_session.post = MagicMock(return_value=AsyncMock(
            __aenter__=AsyncMock(return_value=mock_response),
            __aexit__=AsyncMock(return_value=False)
        ))
    return mock_session


def posted_payload(session, call_index=-1):
    """Decode the JSON body of a recorded ``session.post`` call."""
    call = session.post.call_args_list[call_index]
    return json.loads(call.kwargs["data"])


def posted_url(session, call_index=-1):
    call = session.post.call_args_list[call_index]
    return call.args[0]


@pytest.fixture
def chromium_bookmarks_data():
    """Parsed Chromium Bookmarks file content."""
    return {
        "checksum": "0",
        "roots": {
            "bookmark_bar": {
                "children": [
                    {
                        "date_added": "13320000000000000",
                        "id": "5",
                        "name": "Example",
                        "type": "url",
                        "url": "https://example.com"
                    },
                    {
                        "children": [
                            {
                                "date_added": "13320000000000000",
                                "id": "7",
                                "name": "Python",
                                "type": "url",
                                "url": "https://python.org"
                            }
                        ],
                        "date_added": "13320000000000000",
                        "date_modified": "13320000001000000",
                        "id": "6",
                        "name": "Programming",
                        "type": "folder"
                    }
                ],
                "date_added": "13320000000000000",
                "date_modified": "0",
                "id": "1",
                "name": "Bookmarks bar",
                "type": "folder"
            },
            "other": {
                "children": [],
                "date_added": "13320000000000000",
                "id": "2",
                "name": "Other bookmarks",
                "type": "folder"
            },
            "synced": {
                "children": [],
                "date_added": "13320000000000000",
                "id": "3",
                "name": "Mobile bookmarks",
                "type": "folder"
            }
        },
        "version": 1
    }


@pytest.fixture
def chromium_bookmarks_file(tmp_path, chromium_bookmarks_data):
    """Chromium Bookmarks file on disk."""
    path = tmp_path / "Bookmarks"
    path.write_text(json.dumps(chromium_bookmarks_data), encoding="utf-8")
    return path


@pytest.fixture
def clean_marksync_env(monkeypatch, tmp_path):
    """
    Clean environment without affecting real config.

    Removes MARKSYNC_ environment variables and sets HOME to a temp directory.
    """
    for key in list(os.environ.keys()):
        if key.startswith("MARKSYNC_"):
            monkeypatch.delenv(key, raising=False)

    mock_home = tmp_path / "home"
    mock_home.mkdir()
    monkeypatch.setenv("HOME", str(mock_home))
    monkeypatch.chdir(tmp_path)

    return tmp_path
