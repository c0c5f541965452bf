from __future__ import annotations

import hashlib
import hmac
import json
import pathlib
import sys
import time
from typing import Any, Dict, List, Optional

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from booklyo.app.billing import (  # noqa: E402
    Account,
    AuditLogEntry,
    CheckoutSession,
    EntitlementUpdate,
    PortalSession,
    StoreWriteError,
    UnresolvedAccountError,
)
from booklyo.app.billing.models import SubscriptionObject  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
EVENT_CREATED = 1700000000


class InMemoryAccountRepository:
    def __init__(self, *accounts: Account) -> None:
        self.accounts: Dict[str, Account] = {account.account_id: account for account in accounts}
        self.writes: List[tuple] = []
        self.fail_writes = False

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def find_account_by_customer_ref(self, customer_ref: str) -> Optional[Account]:
        for account in self.accounts.values():
            if account.payment_customer_ref == customer_ref:
                return account
        return None

    def apply_entitlement_update(self, account_id: str, update: EntitlementUpdate) -> Account:
        if self.fail_writes:
            raise StoreWriteError("Account store unavailable: OperationalError")
        account = self.accounts.get(account_id)
        if account is None:
            raise UnresolvedAccountError(
                f"Account {account_id} does not exist", detail={"account_id": account_id}
            )
        updated = account.model_copy(update=update.changes())
        self.accounts[account_id] = updated
        self.writes.append((account_id, update))
        return updated

    def attach_customer_ref(self, account_id: str, customer_ref: str) -> Optional[Account]:
        account = self.accounts.get(account_id)
        if account is None:
            return None
        if not account.payment_customer_ref:
            owner = self.find_account_by_customer_ref(customer_ref)
            if owner is not None:
                raise StoreWriteError(f"Customer {customer_ref} already belongs to {owner.account_id}")
            account = account.model_copy(update={"payment_customer_ref": customer_ref})
            self.accounts[account_id] = account
        return account


class FakePaymentProvider:
    def __init__(self) -> None:
        self.customer_accounts: Dict[str, str] = {}
        self.customers_by_email: Dict[str, str] = {}
        self.subscriptions: Dict[str, SubscriptionObject] = {}
        self.created_customers: List[Dict[str, Any]] = []
        self.checkout_calls: List[Dict[str, Any]] = []
        self.portal_calls: List[Dict[str, Any]] = []
        self.lookups: List[str] = []
        self.tagged: List[tuple] = []

    def find_customer_by_email(self, email: str) -> Optional[str]:
        return self.customers_by_email.get(email)

    def create_customer(self, *, account_id: str, email: str, name: Optional[str] = None) -> str:
        customer_ref = f"cus_new{len(self.created_customers) + 1}"
        self.created_customers.append({"account_id": account_id, "email": email, "name": name})
        self.customers_by_email[email] = customer_ref
        self.customer_accounts[customer_ref] = account_id
        return customer_ref

    def tag_customer(self, customer_ref: str, account_id: str) -> None:
        self.tagged.append((customer_ref, account_id))
        self.customer_accounts[customer_ref] = account_id

    def lookup_account_reference(self, customer_ref: str) -> Optional[str]:
        self.lookups.append(customer_ref)
        return self.customer_accounts.get(customer_ref)

    def retrieve_subscription(self, subscription_ref: str) -> SubscriptionObject:
        return self.subscriptions[subscription_ref]

    def create_checkout_session(self, **kwargs: Any) -> CheckoutSession:
        self.checkout_calls.append(kwargs)
        session_id = f"cs_test_{len(self.checkout_calls)}"
        return CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.stripe.com/c/pay/{session_id}",
            customer_ref=kwargs["customer_ref"],
        )

    def create_portal_session(self, *, customer_ref: str, return_url: str) -> PortalSession:
        self.portal_calls.append({"customer_ref": customer_ref, "return_url": return_url})
        return PortalSession(url=f"https://billing.stripe.com/p/session/{customer_ref}")


class RecordingAuditStore:
    def __init__(self) -> None:
        self.entries: List[AuditLogEntry] = []
        self.fail = False

    def append(self, entry: AuditLogEntry) -> None:
        if self.fail:
            raise RuntimeError("audit_logs unavailable")
        self.entries.append(entry)


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_body(event_type: str, obj: Dict[str, Any], *, event_id: str = "evt_1", created: int = EVENT_CREATED) -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": created,
            "data": {"object": obj},
        }
    ).encode("utf-8")


@pytest.fixture
def accounts() -> InMemoryAccountRepository:
    return InMemoryAccountRepository(
        Account(account_id="acc_123", contact_email="ana@booklyo.pt"),
        Account(account_id="acc_456", contact_email="rui@booklyo.pt", payment_customer_ref="cus_456"),
    )


@pytest.fixture
def provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def audit_store() -> RecordingAuditStore:
    return RecordingAuditStore()


@pytest.fixture
def signer():
    return sign


@pytest.fixture
def make_event_body():
    return event_body
