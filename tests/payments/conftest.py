import copy
import json
from decimal import Decimal
from typing import Optional

import pytest

from application.dtos.payments import (
    CourseSummary,
    GatewayPaymentRequest,
    GatewayPaymentResult,
    GatewayVerification,
    PaymentDetails,
    PlatformUser,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    VerifyPaymentResponse,
    WebhookEvent,
)
from domain.common.exceptions import PaymentAlreadyExistsException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentStatus
from domain.payment.repository import PaymentRepository


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self):
        self.rows: dict[str, object] = {}
        self._next_id = 1

    async def create(self, intent):
        if intent.reference_id in self.rows:
            raise PaymentAlreadyExistsException(intent.reference_id)
        intent.id = self._next_id
        self._next_id += 1
        self.rows[intent.reference_id] = copy.deepcopy(intent)
        return intent

    async def get_by_reference_id(self, reference_id):
        row = self.rows.get(reference_id)
        return copy.deepcopy(row) if row is not None else None

    async def list_by_user(self, user_id, status=None, limit=100):
        rows = [r for r in self.rows.values() if r.user_id == user_id and (status is None or r.status == status)]
        return [copy.deepcopy(r) for r in rows][:limit]

    async def update(self, intent):
        if intent.reference_id not in self.rows:
            raise ValueError(intent.reference_id)
        self.rows[intent.reference_id] = copy.deepcopy(intent)
        return intent


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, repository: InMemoryPaymentRepository, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.payment_repository = repository
        self.commits = 0

    async def commit(self):
        self.commits += 1
        self._committed = True

    async def rollback(self):
        self._committed = False


class StubGateway:
    provider = "stub"

    def __init__(self):
        self.created: list[GatewayPaymentRequest] = []
        self.result_status = PaymentStatus.PENDING
        self.create_error: Optional[Exception] = None
        self.verification: Optional[GatewayVerification] = None
        self.closed = False

    async def create_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        self.created.append(req)
        if self.create_error is not None:
            raise self.create_error
        return GatewayPaymentResult(
            reference_id=req.reference_id,
            provider=self.provider,
            status=self.result_status,
            redirect_url=f"https://pay.example.test/pay?ref={req.reference_id}",
        )

    async def verify_payment(self, reference_id: str) -> Optional[GatewayVerification]:
        return self.verification

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        payload = json.loads(body)
        status = {"COMPLETED": PaymentStatus.COMPLETED, "FAILED": PaymentStatus.FAILED}.get(
            payload["status"], PaymentStatus.PENDING
        )
        return WebhookEvent(
            id=f"{payload['transactionId']}:{payload['status']}",
            type=f"payment.{payload['status'].lower()}",
            provider=self.provider,
            reference_id=payload["referenceId"],
            status=status,
            transaction_id=payload["transactionId"],
            data=payload,
        )

    async def aclose(self):
        self.closed = True


class StubCatalog:
    def __init__(self, courses: Optional[dict[int, CourseSummary]] = None):
        self.courses = courses if courses is not None else {
            7: CourseSummary(id=7, title="Intro to Python", price=Decimal("300.00")),
        }

    async def get_course(self, course_id: int) -> Optional[CourseSummary]:
        return self.courses.get(course_id)


class FakePlatformApi:
    """Scripted stand-in for the course platform REST client."""

    def __init__(self, verify_results=None, user: Optional[PlatformUser] = None):
        self.processed: list[ProcessPaymentRequest] = []
        self.verify_calls = 0
        self.user_calls = 0
        self._verify_results = list(verify_results or [])
        self.user = user
        self.redirect_url: Optional[str] = None

    async def process_payment(self, req: ProcessPaymentRequest) -> ProcessPaymentResponse:
        self.processed.append(req)
        return ProcessPaymentResponse(reference_id="THUB-1-1-7", redirect_url=self.redirect_url)

    async def verify_payment(self, reference_id: str) -> VerifyPaymentResponse:
        self.verify_calls += 1
        outcome = self._verify_results.pop(0) if len(self._verify_results) > 1 else self._verify_results[0]
        if isinstance(outcome, Exception):
            raise outcome
        return VerifyPaymentResponse(payment=PaymentDetails(status=outcome, amount=Decimal("300.00")))

    async def get_current_user(self) -> Optional[PlatformUser]:
        self.user_calls += 1
        return self.user


@pytest.fixture
def repository():
    return InMemoryPaymentRepository()


@pytest.fixture
def uow_factory(repository):
    def factory(*, readonly: bool = False):
        return FakeUnitOfWork(repository, readonly=readonly)

    return factory


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def catalog():
    return StubCatalog()


@pytest.fixture
def student():
    return PlatformUser(id=1, name="Amina Ali", email="amina@example.test", phone="+252617123456")


@pytest.fixture
def make_platform_api():
    return FakePlatformApi
