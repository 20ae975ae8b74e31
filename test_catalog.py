"""
test_catalog.py
Query construction and the two-phase catalog search against a fake session.
"""

import pytest
import requests

from conftest import FakeResponse, FakeSession, api_card
from card_image import ExtractedFields
from catalog import (
    CatalogCandidate, CatalogClient, SearchError, ValidationError,
    build_query, catalog_number,
)


def make_catalog(*responses, error=None, api_key=""):
    session = FakeSession(responses=responses, error=error)
    return CatalogClient(session=session, base_url="https://api.test/v2", api_key=api_key), session


def ok(*cards):
    return FakeResponse(200, {"data": list(cards)})


# ── Query ──

def test_build_query_all_fields():
    q = build_query(name="Pikachu", set_name="Base Set", card_number="58/102")
    assert q == 'name:"Pikachu" (set.id:"Base Set" OR set.name:"Base Set") number:58'


def test_build_query_set_id():
    assert build_query(set_name="base1") == '(set.id:base1 OR set.name:"base1")'


def test_build_query_requires_a_field():
    with pytest.raises(ValidationError):
        build_query()
    with pytest.raises(ValidationError):
        build_query(name="", set_name=None, card_number="")


def test_catalog_number():
    assert catalog_number("058/203") == "58"
    assert catalog_number("TG05/TG30") == "TG05"
    assert catalog_number("SWSH001") == "SWSH001"
    assert catalog_number("000") == "0"


# ── Search ──

def test_search_sends_single_q_param():
    catalog, session = make_catalog(ok(api_card("base1-58", "Pikachu", "Base Set", "58")),
                                    api_key="secret")
    results = catalog.search(name="Pikachu", card_number="58")

    assert session.requests[0]["url"] == "https://api.test/v2/cards"
    assert session.requests[0]["params"] == {"q": 'name:"Pikachu" number:58'}
    assert session.requests[0]["headers"] == {"X-Api-Key": "secret"}
    assert results == [CatalogCandidate(
        id="base1-58", name="Pikachu", set="Base Set", card_number="58",
        image_url="https://images.pokemontcg.io/base1/58_hires.png",
        rarity="Common", set_id="base1",
    )]


def test_search_without_api_key_sends_no_header():
    catalog, session = make_catalog(ok())
    assert catalog.search(name="Missingno") == []
    assert session.requests[0]["headers"] == {}


def test_validation_error_never_hits_network():
    catalog, session = make_catalog()
    with pytest.raises(ValidationError):
        catalog.search()
    with pytest.raises(ValidationError):
        catalog.find_matches(ExtractedFields())
    assert session.requests == []


def test_non_2xx_raises_search_error_with_status():
    catalog, _ = make_catalog(FakeResponse(429, text="Too Many Requests"))
    with pytest.raises(SearchError) as exc:
        catalog.search(name="Pikachu")
    assert exc.value.status == 429
    assert "429" in exc.value.message


def test_network_error_has_no_status():
    catalog, _ = make_catalog(error=requests.ConnectionError("connection refused"))
    with pytest.raises(SearchError) as exc:
        catalog.search(name="Pikachu")
    assert exc.value.status is None


def test_invalid_json_raises_search_error():
    catalog, _ = make_catalog(FakeResponse(200, payload=None, text="<html>"))
    with pytest.raises(SearchError):
        catalog.search(name="Pikachu")


# ── Two-phase matching ──

def test_phase_one_hit_makes_one_request():
    catalog, session = make_catalog(ok(api_card("base1-58", "Pikachu", "Base Set", "58")))
    fields = ExtractedFields(name="Pikachu", set="Base", card_number="58/102")

    results = catalog.find_matches(fields)

    assert [c.id for c in results] == ["base1-58"]
    assert len(session.requests) == 1
    assert "set." not in session.requests[0]["params"]["q"]


def test_phase_two_adds_set_clause():
    catalog, session = make_catalog(
        ok(),
        ok(api_card("base1-58", "Pikachu", "Base Set", "58")),
    )
    fields = ExtractedFields(name="Pikachu", set="Base Set", card_number="58/102")

    results = catalog.find_matches(fields)

    assert len(results) == 1
    assert len(session.requests) == 2
    assert "set." not in session.requests[0]["params"]["q"]
    assert 'set.name:"Base Set"' in session.requests[1]["params"]["q"]


def test_no_set_means_no_second_request():
    catalog, session = make_catalog(ok())
    assert catalog.find_matches(ExtractedFields(name="Pikachu")) == []
    assert len(session.requests) == 1


def test_set_only_goes_straight_to_set_search():
    catalog, session = make_catalog(ok(api_card("sv3-1", "Oddish", "Obsidian Flames", "1", "sv3")))
    results = catalog.find_matches(ExtractedFields(set="Obsidian Flames"))
    assert len(results) == 1
    assert len(session.requests) == 1
    assert session.requests[0]["params"]["q"] == \
        '(set.id:"Obsidian Flames" OR set.name:"Obsidian Flames")'


def test_duplicates_are_preserved():
    card = api_card("base1-58", "Pikachu", "Base Set", "58")
    catalog, _ = make_catalog(ok(card, card))
    assert len(catalog.search(name="Pikachu")) == 2


def test_candidate_to_dict():
    candidate = CatalogCandidate.from_api(api_card("base1-4", "Charizard", "Base Set", "4"))
    assert candidate.to_dict() == {
        "id": "base1-4",
        "name": "Charizard",
        "set": "Base Set",
        "cardNumber": "4",
        "imageUrl": "https://images.pokemontcg.io/base1/4_hires.png",
        "rarity": "Common",
        "setId": "base1",
    }


def test_default_client_makes_independent_requests(monkeypatch):
    calls = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append(params["q"])
        return ok()

    monkeypatch.setattr(requests, "get", fake_get)
    catalog = CatalogClient(base_url="https://api.test/v2", api_key="")

    catalog.search(name="Pikachu")
    catalog.search(name="Raichu")

    assert catalog.session is None
    assert calls == ['name:"Pikachu"', 'name:"Raichu"']
