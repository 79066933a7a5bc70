import json
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from config import settings
from relay import app as relay_app
from routes.payments import parse_amount
from utils.stripe_client import stripe_client


@pytest.fixture
def relay():
    with TestClient(relay_app) as c:
        yield c


@pytest.fixture
def stripe_calls(monkeypatch):
    """Configure a Stripe key and record every request sent to the processor."""
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(200, json={"id": "pi_abc", "client_secret": "pi_abc_secret_xyz"})

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(stripe_client, "_transport", httpx.MockTransport(handler))
    return calls


def test_zero_amount_is_rejected_without_processor_call(relay, stripe_calls):
    r = relay.post("/create-payment-intent", json={"amount": 0})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid amount"}
    assert stripe_calls == []


@pytest.mark.parametrize("body", [{}, {"amount": -5}, {"amount": "abc"}, {"amount": 10.5}, {"amount": True}, {"amount": None}])
def test_invalid_amounts(relay, stripe_calls, body):
    r = relay.post("/create-payment-intent", json=body)
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid amount"}
    assert stripe_calls == []


@pytest.mark.parametrize("raw", [b'{"amount": NaN}', b'{"amount": 1e400}', b'{"amount": "nan"}', b'{"amount": "inf"}'])
def test_non_finite_amounts_are_invalid(relay, stripe_calls, raw):
    r = relay.post("/create-payment-intent", content=raw, headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid amount"}
    assert stripe_calls == []


def test_malformed_json_counts_as_empty_body(relay, stripe_calls):
    r = relay.post("/create-payment-intent", content=b"{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid amount"}


def test_creates_intent(relay, stripe_calls):
    r = relay.post(
        "/create-payment-intent",
        json={"amount": 1500, "currency": "usd", "email": "a@example.com", "fullName": "Ann Buyer", "userId": "7"},
    )
    assert r.status_code == 200
    assert r.json() == {"clientSecret": "pi_abc_secret_xyz", "id": "pi_abc"}
    assert r.headers["access-control-allow-origin"] == "*"

    (request,) = stripe_calls
    assert request.method == "POST"
    assert request.url.path == "/v1/payment_intents"
    assert request.headers["authorization"] == "Bearer sk_test_123"
    form = parse_qs(request.content.decode())
    assert form["amount"] == ["1500"]
    assert form["currency"] == ["usd"]
    assert form["payment_method_types[]"] == ["card"]
    assert form["metadata[email]"] == ["a@example.com"]
    assert form["metadata[fullName]"] == ["Ann Buyer"]
    assert form["metadata[userId]"] == ["7"]
    assert form["description"] == ["Payment for Ann Buyer"]


def test_currency_defaults_to_usd(relay, stripe_calls):
    assert relay.post("/create-payment-intent", json={"amount": "250"}).status_code == 200
    form = parse_qs(stripe_calls[0].content.decode())
    assert form["currency"] == ["usd"]
    assert form["description"] == ["Payment"]


def test_missing_key_is_a_server_error(relay, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    r = relay.post("/create-payment-intent", json={"amount": 1500})
    assert r.status_code == 500
    assert r.json() == {"error": "Stripe secret key not configured on server"}


def test_processor_error_message_is_surfaced(relay, monkeypatch):
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Amount must be at least 50 cents"}})

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(stripe_client, "_transport", httpx.MockTransport(handler))

    r = relay.post("/create-payment-intent", json={"amount": 10})
    assert r.status_code == 500
    assert r.json() == {"error": "Amount must be at least 50 cents"}


def test_preflight(relay):
    r = relay.options("/create-payment-intent")
    assert r.status_code == 204
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"
    assert r.headers["access-control-allow-headers"] == "Content-Type"


def test_health(relay):
    r = relay.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


@pytest.mark.parametrize("method, path", [("GET", "/nope"), ("GET", "/create-payment-intent"), ("PUT", "/health")])
def test_everything_else_is_not_found(relay, method, path):
    r = relay.request(method, path)
    assert r.status_code == 404
    assert r.json() == {"error": "Not found"}
    assert r.headers["access-control-allow-origin"] == "*"


def test_relay_is_mounted_in_main_app(client):
    r = client.get("/relay/health")
    assert r.status_code == 200
    assert json.loads(r.content) == {"ok": True}


@pytest.mark.parametrize("value, expected", [
    (1500, 1500), (1500.0, 1500), ("42", 42), (0, None), (-1, None), (1.5, None), ("", None), (False, None), ([], None),
    (float("nan"), None), (float("inf"), None), ("nan", None), ("inf", None), ("-inf", None),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


def test_mounted_relay_accepts_any_origin_preflight(client):
    headers = {"Origin": "https://shop.example.com", "Access-Control-Request-Method": "POST"}
    r = client.options("/relay/create-payment-intent", headers=headers)
    assert r.status_code == 204
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"


def test_mounted_relay_answers_cross_origin_post(client, stripe_calls):
    r = client.post("/relay/create-payment-intent", json={"amount": 1500}, headers={"Origin": "https://shop.example.com"})
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"
    assert len(stripe_calls) == 1


def test_api_keeps_its_origin_allow_list(client):
    headers = {"Origin": "https://shop.example.com", "Access-Control-Request-Method": "GET"}
    assert client.options("/products", headers=headers).status_code == 400

    headers["Origin"] = "http://localhost:5173"
    r = client.options("/products", headers=headers)
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "http://localhost:5173"
