import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import ProcessPaymentRequest
from domain.payment.entity import PaymentMethod, PaymentStatus, PaymentType
from infrastructure.external.api_clients import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    CoursePlatformClient,
    NotFoundError,
)


class NoSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_client(handler, **kwargs):
    sleep = NoSleep()
    client = CoursePlatformClient(
        "http://platform.test",
        transport=httpx.MockTransport(handler),
        sleep=sleep,
        **kwargs,
    )
    return client, sleep


def envelope(data, status=200):
    return httpx.Response(status, json={"code": 0, "message": "Success", "data": data, "error": None})


async def test_process_payment_posts_camel_case_json():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["cookie"] = request.headers.get("cookie")
        return envelope({"referenceId": "THUB-1-1-7", "redirectUrl": "https://pay.example.test"})

    client, _ = make_client(handler, cookies={"session": "abc"})
    req = ProcessPaymentRequest(
        amount=Decimal("300"),
        course_id=7,
        payment_type=PaymentType.ONE_TIME,
        payment_method=PaymentMethod.CARD,
        phone="+2527123456",
    )
    async with client:
        result = await client.process_payment(req)

    assert seen["method"] == "POST"
    assert seen["path"] == "/api/payment/process"
    assert seen["body"] == {
        "amount": 300.0,
        "courseId": 7,
        "paymentType": "one_time",
        "paymentMethod": "card",
        "phone": "+2527123456",
    }
    assert seen["cookie"] == "session=abc"
    assert result.reference_id == "THUB-1-1-7"
    assert result.redirect_url == "https://pay.example.test"


async def test_verify_accepts_bare_body():
    def handler(request):
        return httpx.Response(200, json={"payment": {"status": "completed", "courseName": "Intro", "amount": 300}})

    client, _ = make_client(handler)
    result = await client.verify_payment("THUB-1-1-7")
    await client.close()
    assert result.payment.status == PaymentStatus.COMPLETED
    assert result.payment.course_name == "Intro"
    assert result.payment.type == PaymentType.ONE_TIME


async def test_single_retry_on_server_error():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, text="busy")
        return envelope({"payment": {"status": "pending"}})

    client, sleep = make_client(handler)
    result = await client.verify_payment("THUB-1-1-7")
    await client.close()
    assert result.payment.status == PaymentStatus.PENDING
    assert len(calls) == 2
    assert len(sleep.calls) == 1


async def test_gives_up_after_one_retry():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"message": "Internal server error"})

    client, _ = make_client(handler)
    with pytest.raises(APIError) as exc_info:
        await client.verify_payment("THUB-1-1-7")
    await client.close()
    assert len(calls) == 2
    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Internal server error"


async def test_client_error_is_not_retried_and_keeps_text():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="no such payment")

    client, _ = make_client(handler)
    with pytest.raises(NotFoundError) as exc_info:
        await client.verify_payment("missing")
    await client.close()
    assert len(calls) == 1
    assert exc_info.value.status_code == 404
    assert exc_info.value.text == "no such payment"
    assert str(exc_info.value) == "404: no such payment"


async def test_timeout_maps_to_api_timeout_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client, sleep = make_client(handler)
    with pytest.raises(APITimeoutError) as exc_info:
        await client.verify_payment("THUB-1-1-7")
    await client.close()
    assert exc_info.value.status_code is None
    assert len(sleep.calls) == 1


async def test_connection_error_maps_to_api_connection_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client, _ = make_client(handler)
    with pytest.raises(APIConnectionError):
        await client.get_current_user()
    await client.close()


async def test_current_user_none_when_signed_out():
    def handler(request):
        return httpx.Response(401, json={"message": "Unauthorized"})

    client, _ = make_client(handler)
    assert await client.get_current_user() is None
    await client.close()


async def test_current_user_and_course_lookup():
    def handler(request):
        if request.url.path == "/api/user":
            return envelope({"id": 3, "name": "Hodan", "phone": "+252637000000", "role": "teacher"})
        if request.url.path == "/api/courses/7":
            return envelope({"id": 7, "title": "Intro", "price": 300, "isPublished": True, "extra": 1})
        return httpx.Response(404, json={"message": "Course not found"})

    client, _ = make_client(handler, auth_token="tok")
    user = await client.get_current_user()
    course = await client.get_course(7)
    missing = await client.get_course(8)
    await client.close()

    assert user.id == 3 and user.is_staff
    assert course.price == Decimal("300")
    assert missing is None


async def test_set_cookie_applies_to_open_client():
    seen = []

    def handler(request):
        seen.append(request.headers.get("cookie"))
        return envelope({"id": 1, "name": "Amina"})

    client, _ = make_client(handler)
    async with client:
        await client.get_current_user()
        client.set_cookie("session", "xyz")
        await client.get_current_user()

    assert seen == [None, "session=xyz"]
