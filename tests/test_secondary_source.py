import pytest

from conftest import FakeResponse, FakeSession

from metadata.errors import SourceUnavailable
from metadata.http import HttpClient
from metadata.secondary import VOLUMES_URL, SecondarySource, parse_volume, volume_to_record

PAYLOAD = {
    "items": [
        {"volumeInfo": {}},
        {
            "volumeInfo": {
                "title": "Comic",
                "subtitle": "Stories",
                "publisher": "Big Publisher",
                "authors": ["Writer"],
                "categories": ["Comics & Graphic Novels"],
                "description": "About a comic.",
                "publishedDate": "2020-02-02",
                "imageLinks": {"thumbnail": "http://books.example.com/c.jpg"},
            }
        },
    ]
}


def test_parse_volume_joins_subtitle_and_upgrades_thumbnail() -> None:
    volume = parse_volume(PAYLOAD["items"][1])

    assert volume.title == "Comic Stories"
    assert volume.thumbnail_url == "https://books.example.com/c.jpg"
    assert parse_volume(PAYLOAD["items"][0]) is None
    assert parse_volume("garbage") is None


def test_search_sends_restricted_query() -> None:
    session = FakeSession({VOLUMES_URL: FakeResponse(200, payload=PAYLOAD)})
    source = SecondarySource(HttpClient(session), max_results=99, language="ja", api_key="secret-key")

    volumes = source.search("Comic")

    assert [volume.title for volume in volumes] == ["Comic Stories"]
    _, params, _ = session.calls[0]
    assert params == {"q": "intitle:Comic", "maxResults": 40, "langRestrict": "ja", "key": "secret-key"}


def test_search_without_items_is_empty() -> None:
    session = FakeSession({VOLUMES_URL: FakeResponse(200, payload={"totalItems": 0})})
    assert SecondarySource(HttpClient(session), language=None).search("Nothing") == []
    assert "langRestrict" not in session.calls[0][1]


def test_search_raises_on_bad_status_or_body() -> None:
    with pytest.raises(SourceUnavailable):
        SecondarySource(HttpClient(FakeSession({VOLUMES_URL: FakeResponse(503)}))).search("x")
    with pytest.raises(SourceUnavailable):
        SecondarySource(HttpClient(FakeSession({VOLUMES_URL: FakeResponse(200, "oops")}))).search("x")


def test_volume_to_record_keeps_caller_identity() -> None:
    record = volume_to_record(parse_volume(PAYLOAD["items"][1]), "LOCAL_COMIC_12VEPN", "/lib/Comic.zip")

    assert record.id == "LOCAL_COMIC_12VEPN"
    assert record.circle == "Big Publisher"
    assert record.tags == ["Comics & Graphic Novels"]
    assert record.work_type == "book"
    assert record.release_date == "2020-02-02"
