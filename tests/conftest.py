from datetime import datetime, timezone

import pytest

from onesearch.content.models import Author, ContentItem, Term
from onesearch.content.source import InMemoryContentSource
from onesearch.core.crypto import Encryptor
from onesearch.index.memory import MemoryBackend
from onesearch.index.records import RecordBuilder
from onesearch.scope import ScopeKey
from onesearch.sync.governing import GoverningSettings
from onesearch.sync.store import MemoryConfigStore

GOVERNING_URL = "https://gov.example/"
BRAND_URL = "https://brand.example/"
OTHER_URL = "https://other.example/"


class FakeClock:
    """Settable time source for TTL tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_item(content_id=1, type="post", status="publish", content="<p>Hello world</p>", **overrides):
    data = dict(
        id=content_id,
        type=type,
        status=status,
        title=f"Item {content_id}",
        excerpt="An excerpt",
        content=content,
        name=f"item-{content_id}",
        permalink=f"https://gov.example/item-{content_id}/",
        date_gmt=datetime(2024, 1, content_id % 28 + 1, tzinfo=timezone.utc),
        modified_gmt=datetime(2024, 2, 1, tzinfo=timezone.utc),
        author=Author(author_id=7, display_name="Ada", login="ada", posts_url="https://gov.example/author/ada/"),
        terms={"category": [Term(term_id=3, name="News", slug="news", taxonomy="category")]},
    )
    data.update(overrides)
    return ContentItem(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def governing_scope():
    return ScopeKey.of(GOVERNING_URL)


@pytest.fixture
def brand_scope():
    return ScopeKey.of(BRAND_URL)


@pytest.fixture
def backend():
    return MemoryBackend("onesearch_gov_example_wp_posts")


@pytest.fixture
def builder(governing_scope):
    return RecordBuilder(governing_scope, site_name="Governing")


@pytest.fixture
def source():
    return InMemoryContentSource([make_item(1), make_item(2, type="page"), make_item(3, status="draft")])


@pytest.fixture
def store(clock):
    return MemoryConfigStore(clock=clock)


@pytest.fixture
def encryptor():
    return Encryptor("test-passphrase")


@pytest.fixture
def governing_settings(store, encryptor, governing_scope):
    return GoverningSettings(store, encryptor, governing_scope)
