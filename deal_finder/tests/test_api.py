import pytest
from fastapi.testclient import TestClient

from deal_finder import api
from deal_finder.config import Config
from deal_finder.errors import AuthorizationError, FetchError
from deal_finder.models import GateBreakdown, GateReason, IdentityGateResult, PageSignals, ProductIdentity
from deal_finder.page import PageReading
from deal_finder.pipeline import Verification
from deal_finder.schemas import DealOut, DealsResponse

AUTH = {"Authorization": "Bearer token"}


class FakeFinder:
    def __init__(self, error=None, response=None):
        self.cfg = Config(search_api_key="test")
        self.error = error
        self.response = response
        self.requests = []

    def find_deals(self, request, *, cancel=None):
        self.requests.append(request)
        if self.error:
            raise self.error
        if self.response is not None:
            return self.response
        return DealsResponse(
            deals=[
                DealOut(
                    retailer="Amazon",
                    price=16.0,
                    deal_url="https://www.amazon.com/dp/B01MSSDEPK",
                    availability="Available",
                    title="CeraVe Hydrating Facial Cleanser 16 fl oz",
                    display_name="CeraVe Hydrating Facial Cleanser 16 fl oz - 16 fl oz",
                    product_name="CeraVe Hydrating Facial Cleanser 16 fl oz",
                    size="16 fl oz",
                    price_per_unit=1.0,
                )
            ]
        )

    def verify_listing(self, url, wanted, *, cancel=None):
        if self.error:
            raise self.error
        result = IdentityGateResult(
            score=4.0, passed=True, reason=GateReason.NONE, breakdown=GateBreakdown(brand_match=True)
        )
        reading = PageReading(signals=PageSignals(url_host="ulta.com"), identity=ProductIdentity())
        return Verification(url=url, result=result, reading=reading)


@pytest.fixture
def client():
    api.app.dependency_overrides[api.get_current_user] = lambda: {"id": "user-1"}
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


def _use(finder):
    api.app.dependency_overrides[api.get_finder] = lambda: finder
    return finder


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_find_deals(client):
    finder = _use(FakeFinder())
    resp = client.post("/find-deals", json={"product_title": "CeraVe Cleanser", "product_id": "p1"}, headers=AUTH)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["cached"] is False
    assert body["deals"][0]["retailer"] == "Amazon"
    assert "message" not in body
    assert finder.requests[0].product_id == "p1"


def test_blank_title_rejected_before_lookup(client):
    finder = _use(FakeFinder())
    resp = client.post("/find-deals", json={"product_title": "   "}, headers=AUTH)
    assert resp.status_code == 422
    assert finder.requests == []


def test_unexpected_error_is_generic(client):
    _use(FakeFinder(error=KeyError("supabase internals")))
    resp = client.post("/find-deals", json={"product_title": "CeraVe Cleanser"}, headers=AUTH)
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Failed to find deals"}


def test_verify_listing(client):
    _use(FakeFinder())
    resp = client.post(
        "/verify-listing",
        json={"url": "https://www.ulta.com/p/x", "brand": "CeraVe", "name": "Hydrating Facial Cleanser", "size": "3 fl oz"},
        headers=AUTH,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["passed"] is True
    assert body["reason"] == "none"
    assert body["brand_match"] is True


def test_verify_listing_fetch_failure(client):
    _use(FakeFinder(error=FetchError("GET failed")))
    resp = client.post(
        "/verify-listing",
        json={"url": "https://www.ulta.com/p/x", "brand": "CeraVe", "name": "Cleanser"},
        headers=AUTH,
    )
    assert resp.status_code == 502


def test_missing_bearer_token_is_401():
    _use(FakeFinder())
    try:
        resp = TestClient(api.app).post("/find-deals", json={"product_title": "CeraVe Cleanser"})
    finally:
        api.app.dependency_overrides.clear()
    assert resp.status_code == 401


def test_invalid_token_is_401(monkeypatch):
    class FakeAuth:
        def get_user(self, token):
            raise ValueError("invalid JWT")

    class FakeClient:
        auth = FakeAuth()

    monkeypatch.setattr(api, "get_supabase", lambda: FakeClient())
    _use(FakeFinder())
    try:
        resp = TestClient(api.app).post("/find-deals", json={"product_title": "x"}, headers=AUTH)
    finally:
        api.app.dependency_overrides.clear()
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


def test_unpriced_deal_keeps_null_fields(client):
    unpriced = DealOut(
        retailer="Target",
        deal_url="https://www.target.com/p/cerave-hydrating-cleanser/-/A-1000",
        availability="Check website",
        title="CeraVe Hydrating Facial Cleanser",
        display_name="CeraVe Hydrating Facial Cleanser",
        product_name="CeraVe Hydrating Facial Cleanser",
    )
    _use(FakeFinder(response=DealsResponse(deals=[unpriced])))
    resp = client.post("/find-deals", json={"product_title": "CeraVe Cleanser"}, headers=AUTH)
    assert resp.status_code == 200
    body = resp.json()
    deal = body["deals"][0]
    assert deal["price"] is None
    assert deal["price_per_unit"] is None
    assert deal["size"] is None
    assert deal["currency"] == "USD"
    assert "message" not in body


def test_no_results_message_is_returned(client):
    _use(FakeFinder(response=DealsResponse(message="No shopping results found.")))
    resp = client.post("/find-deals", json={"product_title": "CeraVe Cleanser"}, headers=AUTH)
    assert resp.json() == {
        "success": True, "deals": [], "cached": False, "message": "No shopping results found.",
    }


class _Auth:
    def __init__(self, user=None, error=None):
        self.user = user
        self.error = error

    def get_user(self, token):
        if self.error:
            raise self.error
        return type("UserResponse", (), {"user": self.user})()


class _AuthClient:
    def __init__(self, **kw):
        self.auth = _Auth(**kw)


def test_authenticate_returns_user():
    assert api.authenticate(_AuthClient(user={"id": "u1"}), "Bearer abc") == {"id": "u1"}


@pytest.mark.parametrize(
    "auth_client,header,detail",
    [
        (_AuthClient(user={"id": "u1"}), None, "Missing bearer token"),
        (_AuthClient(user={"id": "u1"}), "Basic abc", "Missing bearer token"),
        (_AuthClient(error=ValueError("invalid JWT")), "Bearer abc", "Invalid or expired token"),
        (_AuthClient(user=None), "Bearer abc", "User not found"),
    ],
)
def test_authenticate_raises_authorization_error(auth_client, header, detail):
    with pytest.raises(AuthorizationError, match=detail):
        api.authenticate(auth_client, header)
