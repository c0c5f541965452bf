"""Unit tests for checkout, portal and status flows."""
from __future__ import annotations

import pytest

from booklyo.app.billing import (
    BillingService,
    EntitlementReconciler,
    InvalidRequestError,
    StoreWriteError,
    UnresolvedAccountError,
)

FRONTEND = "https://plataforma-tau.vercel.app"
ALLOWED = ("http://localhost:5173", "https://booklyo.pt", FRONTEND)


@pytest.fixture
def service(accounts, provider):
    return BillingService(
        accounts,
        provider,
        EntitlementReconciler(accounts, provider),
        frontend_base_url=FRONTEND + "/",
        allowed_origins=ALLOWED,
        default_price_id="price_default",
    )


def test_checkout_reuses_stored_customer(service, provider):
    session = service.create_checkout_session(account_id="acc_456", email="rui@booklyo.pt")

    assert session.customer_ref == "cus_456"
    assert provider.created_customers == []
    assert provider.checkout_calls[0]["customer_ref"] == "cus_456"


def test_checkout_reuses_customer_found_by_email(service, provider, accounts):
    provider.customers_by_email["ana@booklyo.pt"] = "cus_existing"

    session = service.create_checkout_session(account_id="acc_123", email="ana@booklyo.pt")

    assert session.customer_ref == "cus_existing"
    assert provider.created_customers == []
    assert accounts.get_account("acc_123").payment_customer_ref == "cus_existing"
    assert provider.tagged == [("cus_existing", "acc_123")]


def test_checkout_does_not_take_over_customer_of_another_account(service, provider, accounts):
    provider.customers_by_email["rui@booklyo.pt"] = "cus_456"
    provider.customer_accounts["cus_456"] = "acc_456"

    session = service.create_checkout_session(account_id="acc_123", email="rui@booklyo.pt")

    assert session.customer_ref != "cus_456"
    assert provider.created_customers == [{"account_id": "acc_123", "email": "rui@booklyo.pt", "name": None}]
    assert provider.tagged == []
    assert provider.customer_accounts["cus_456"] == "acc_456"
    assert accounts.get_account("acc_123").payment_customer_ref == session.customer_ref
    assert accounts.get_account("acc_456").payment_customer_ref == "cus_456"


def test_customer_is_tagged_only_after_local_attach(service, provider, accounts, monkeypatch):
    provider.customers_by_email["ana@booklyo.pt"] = "cus_existing"

    def _conflict(account_id, customer_ref):
        raise StoreWriteError(f"Customer {customer_ref} already belongs to another account")

    monkeypatch.setattr(accounts, "attach_customer_ref", _conflict)

    with pytest.raises(StoreWriteError):
        service.create_checkout_session(account_id="acc_123", email="ana@booklyo.pt")

    assert provider.tagged == []
    assert provider.checkout_calls == []


def test_checkout_creates_customer_when_none_exists(service, provider, accounts):
    session = service.create_checkout_session(account_id="acc_123", email="ana@booklyo.pt", name="Ana")

    assert provider.created_customers == [{"account_id": "acc_123", "email": "ana@booklyo.pt", "name": "Ana"}]
    assert accounts.get_account("acc_123").payment_customer_ref == session.customer_ref


def test_checkout_defaults(service, provider):
    service.create_checkout_session(account_id="acc_456", email="rui@booklyo.pt")

    call = provider.checkout_calls[0]
    assert call["price_id"] == "price_default"
    assert call["success_url"] == f"{FRONTEND}/payment-success?session_id={{CHECKOUT_SESSION_ID}}"
    assert call["cancel_url"] == f"{FRONTEND}/pricing"


def test_checkout_explicit_values_win(service, provider):
    service.create_checkout_session(
        account_id="acc_456",
        email="rui@booklyo.pt",
        price_id="price_annual",
        success_url="https://booklyo.pt/ok",
        cancel_url="https://booklyo.pt/no",
    )

    call = provider.checkout_calls[0]
    assert call["price_id"] == "price_annual"
    assert call["success_url"] == "https://booklyo.pt/ok"
    assert call["cancel_url"] == "https://booklyo.pt/no"



def test_checkout_redirects_outside_allowed_origins_fall_back(service, provider):
    service.create_checkout_session(
        account_id="acc_456",
        email="rui@booklyo.pt",
        success_url="https://evil.example/ok",
        cancel_url="javascript:alert(1)",
    )

    call = provider.checkout_calls[0]
    assert call["success_url"] == f"{FRONTEND}/payment-success?session_id={{CHECKOUT_SESSION_ID}}"
    assert call["cancel_url"] == f"{FRONTEND}/pricing"


def test_checkout_for_unknown_account(service, provider):
    with pytest.raises(UnresolvedAccountError):
        service.create_checkout_session(account_id="acc_missing", email="x@booklyo.pt")
    assert provider.checkout_calls == []


@pytest.mark.parametrize("customer_ref", [None, "", "sub_1", "CUS_1", 123])
def test_portal_rejects_non_customer_ids(service, provider, customer_ref):
    with pytest.raises(InvalidRequestError) as excinfo:
        service.create_portal_session(customer_ref)

    assert excinfo.value.status_code == 400
    assert provider.portal_calls == []


@pytest.mark.parametrize(
    "return_url, origin, expected",
    [
        (None, "https://booklyo.pt", "https://booklyo.pt/dashboard"),
        (None, "https://evil.example", f"{FRONTEND}/dashboard"),
        (None, None, f"{FRONTEND}/dashboard"),
        ("http://localhost:5173/settings", None, "http://localhost:5173/settings"),
        ("https://evil.example/phish", "https://booklyo.pt", "https://booklyo.pt/dashboard"),
    ],
)
def test_portal_return_url(service, provider, return_url, origin, expected):
    service.create_portal_session("cus_456", return_url=return_url, origin=origin)

    assert provider.portal_calls[0]["return_url"] == expected


def test_subscription_status(service):
    account = service.get_subscription_status("acc_456")

    assert account.payment_customer_ref == "cus_456"
    assert account.is_entitled is False


def test_subscription_status_unknown_account(service):
    with pytest.raises(UnresolvedAccountError) as excinfo:
        service.get_subscription_status("acc_missing")

    assert excinfo.value.status_code == 404
