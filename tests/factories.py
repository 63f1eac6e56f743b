"""
Factory Boy factories for generating test data
"""

import time
from datetime import datetime, timedelta, timezone

import factory

from delve_x402.microsubs.models import Microsub
from delve_x402.payments.models import PaymentMetadata, TransferAuthorization


class MicrosubFactory(factory.Factory):
    """Factory for a usable Microsub"""
    class Meta:
        model = Microsub

    tx_hash = factory.Sequence(lambda n: f"0x{n:064x}")
    is_valid = True
    is_expired = False
    is_exhausted = False
    queries_remaining = 5
    query_limit = 25
    expires_at = factory.LazyFunction(lambda: datetime.now(timezone.utc) + timedelta(days=30))
    created_by_address = "0x1111111111111111111111111111111111111111"
    agent_id = factory.Sequence(lambda n: f"agent_{n}")


class ExpiredMicrosubFactory(MicrosubFactory):
    is_expired = True
    expires_at = factory.LazyFunction(lambda: datetime.now(timezone.utc) - timedelta(days=1))


class ExhaustedMicrosubFactory(MicrosubFactory):
    is_exhausted = True
    queries_remaining = 0


class InvalidMicrosubFactory(MicrosubFactory):
    is_valid = False


class TransferAuthorizationFactory(factory.Factory):
    """Factory for TransferAuthorization"""
    class Meta:
        model = TransferAuthorization

    from_address = "0x1111111111111111111111111111111111111111"
    to = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb1"
    value = "10000"
    valid_after = factory.LazyFunction(lambda: str(int(time.time())))
    valid_before = factory.LazyAttribute(lambda o: str(int(o.valid_after) + 300))
    nonce = factory.Sequence(lambda n: f"0x{n:064x}")


class PaymentMetadataFactory(factory.Factory):
    """Factory for backend PaymentMetadata"""
    class Meta:
        model = PaymentMetadata

    verified = True
    settled = True
    from_address = "0x1111111111111111111111111111111111111111"
    facilitator = "https://facilitator.example.com"
    tx_hash = None
    microsub_active = True
    queries_remaining = 4
    expires_at = factory.LazyFunction(lambda: datetime.now(timezone.utc) + timedelta(days=30))
