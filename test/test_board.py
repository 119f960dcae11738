import pytest
import requests

from driver_verification.tools.board import (
    FIRST_PAGE_QUERY,
    NEXT_PAGE_QUERY,
    BoardClient,
    BoardError,
    load_column_map,
)

COLUMNS = {
    "email": "Email Address",
    "license_issued_by": "Licence Issued By",
    "poa1_valid_until": "POA1 Valid Until",
}


def _item(item_id, email, issuer="DVLA", poa1="2025-10-01"):
    return {
        "id": item_id,
        "name": email,
        "column_values": [
            {"id": "email", "text": email, "column": {"title": "Email Address"}},
            {"id": "text1", "text": issuer, "column": {"title": "Licence Issued By"}},
            {"id": "date4", "text": poa1, "column": {"title": "POA1 Valid Until"}},
            {"id": "notes", "text": "ignored", "column": {"title": "Notes"}},
        ],
    }


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _first_page(items, cursor=None):
    return FakeResponse({"data": {"boards": [{"items_page": {"cursor": cursor, "items": items}}]}})


def _next_page(items, cursor=None):
    return FakeResponse({"data": {"next_items_page": {"cursor": cursor, "items": items}}})


def _client(*responses) -> BoardClient:
    return BoardClient("tok", 42, api_url="https://board.test/v2", columns=COLUMNS, session=FakeSession(*responses))


def test_find_driver_matches_email_case_insensitively():
    client = _client(_first_page([_item("1", "other@example.com"), _item("2", "Driver@Example.com", "RDW")]))
    driver = client.find_driver(" driver@example.COM ")
    assert driver.email == "Driver@Example.com"
    assert driver.license_issued_by == "RDW"
    assert driver.poa1_valid_until.isoformat() == "2025-10-01"

    call = client.session.calls[0]
    assert call["json"]["query"] == FIRST_PAGE_QUERY
    assert call["json"]["variables"]["boardId"] == ["42"]
    assert call["headers"]["Authorization"] == "Bearer tok"


def test_find_driver_follows_cursor():
    client = _client(
        _first_page([_item("1", "a@example.com")], cursor="c1"),
        _next_page([_item("2", "b@example.com")]),
    )
    assert client.find_driver("b@example.com").email == "b@example.com"
    assert client.session.calls[1]["json"]["query"] == NEXT_PAGE_QUERY
    assert client.session.calls[1]["json"]["variables"]["cursor"] == "c1"


def test_missing_driver_returns_none():
    client = _client(_first_page([_item("1", "a@example.com")]))
    assert client.find_driver("nobody@example.com") is None


def test_blank_email_does_not_call_api():
    client = _client()
    assert client.find_driver("  ") is None
    assert client.session.calls == []


def test_list_drivers():
    client = _client(_first_page([_item("1", "a@example.com"), _item("2", "b@example.com", poa1="")]))
    drivers = client.list_drivers()
    assert [d.email for d in drivers] == ["a@example.com", "b@example.com"]
    assert drivers[1].poa1_valid_until is None


@pytest.mark.parametrize("response", [
    requests.ConnectionError("boom"),
    FakeResponse(status_code=500, text="server error"),
    FakeResponse(ValueError("not json")),
    FakeResponse({"errors": [{"message": "Not authenticated"}]}),
    FakeResponse({"data": {"boards": []}}),
])
def test_api_failures_raise_board_error(response):
    with pytest.raises(BoardError):
        _client(response).find_driver("a@example.com")


def test_from_env_requires_token_and_board(monkeypatch):
    monkeypatch.delenv("MONDAY_API_TOKEN", raising=False)
    monkeypatch.setenv("MONDAY_BOARD_ID", "1")
    with pytest.raises(BoardError):
        BoardClient.from_env()


def test_default_column_map_names_driver_fields():
    columns = load_column_map()
    assert "email" in columns
    assert "poa1_valid_until" in columns


def test_column_map_rejects_unknown_fields(tmp_path):
    path = tmp_path / "columns.yaml"
    path.write_text("shoe_size: Shoe Size\n", encoding="utf-8")
    with pytest.raises(BoardError):
        load_column_map(path)
