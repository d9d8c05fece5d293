import json
import os
import sys
from urllib.parse import parse_qsl, urlsplit

import pytest
import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
from epay_client import (
    ClientBuilder,
    EPayClient,
    RequestsTransport,
    Transport,
    new_client,
    new_quick,
)
from epay_config import EPayConfig
from epay_errors import (
    APIError,
    ConfigError,
    NetworkError,
    ResponseError,
    SignatureError,
    ValidationError,
)
from epay_models import (
    FormPaymentRequest,
    OrderQueryRequest,
    PaymentRequest,
    RefundRequest,
    is_order_paid,
    is_refund_success,
)
from payment_gateway import Signer

KEY = "testkey123"
BASE = "https://pay.example.com"


class FakeTransport(Transport):
    def __init__(self, reply=None):
        self.reply = reply if reply is not None else {"code": 1, "msg": "ok"}
        self.calls = []

    def _body(self):
        if isinstance(self.reply, bytes):
            return self.reply
        return json.dumps(self.reply).encode("utf-8")

    def get(self, url, query):
        self.calls.append(("GET", url, dict(parse_qsl(query))))
        return self._body()

    def post(self, url, body):
        self.calls.append(("POST", url, dict(parse_qsl(body))))
        return self._body()


def make_client(reply=None):
    transport = FakeTransport(reply)
    config = EPayConfig(pid=1001, key=KEY, api_base_url=BASE + "/")
    return EPayClient(config, transport), transport


def assert_signed(params):
    assert params["sign_type"] == "MD5"
    assert Signer(KEY).verify(params, params["sign"])


@pytest.mark.parametrize(
    "pid,key,url",
    [(0, KEY, BASE), (1001, "", BASE), (1001, KEY, "")],
)
def test_invalid_config_rejected(pid, key, url):
    with pytest.raises(ConfigError):
        EPayClient(EPayConfig(pid=pid, key=key, api_base_url=url), FakeTransport())


def test_create_payment_sends_signed_get():
    client, transport = make_client(
        {"code": 1, "trade_no": "T1", "payurl": "https://pay/x", "qrcode": "weixin://q", "urlscheme": ""}
    )
    resp = client.create_payment(
        PaymentRequest(
            type="alipay",
            out_trade_no="ORDER001",
            notify_url="https://example.com/notify",
            name="Test Product",
            money=10,
            client_ip="127.0.0.1",
            device="pc",
        )
    )
    assert resp.trade_no == "T1"
    assert resp.pay_url == "https://pay/x"
    assert resp.qrcode == "weixin://q"

    method, url, params = transport.calls[0]
    assert method == "GET"
    assert url == BASE + "/mapi.php"
    assert params["pid"] == "1001"
    assert params["money"] == "10.00"
    assert params["clientip"] == "127.0.0.1"
    assert "return_url" not in params
    assert "param" not in params
    assert_signed(params)


def test_create_payment_validation_happens_before_sending():
    client, transport = make_client()
    with pytest.raises(ValidationError):
        client.create_payment(
            PaymentRequest(type="alipay", out_trade_no="", notify_url="n", name="x", money=1)
        )
    assert transport.calls == []


def test_create_payment_gateway_error():
    client, _ = make_client({"code": -1, "msg": "商户不存在"})
    with pytest.raises(APIError) as exc:
        client.create_payment(
            PaymentRequest(type="alipay", out_trade_no="O1", notify_url="n", name="x", money=1)
        )
    assert exc.value.message == "商户不存在"
    assert exc.value.code == 1004


def test_invalid_json_response():
    client, _ = make_client(b"<html>502</html>")
    with pytest.raises(ResponseError):
        client.query_order(OrderQueryRequest(out_trade_no="O1"))


def test_build_form_payment_url():
    client, transport = make_client()
    url = client.build_form_payment_url(
        FormPaymentRequest(
            type="alipay",
            out_trade_no="ORDER001",
            notify_url="https://example.com/notify",
            return_url="https://example.com/return",
            name="Test Product",
            money=10.0,
        )
    )
    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == BASE + "/submit.php"
    params = dict(parse_qsl(parts.query))
    assert params["name"] == "Test Product"
    assert params["return_url"] == "https://example.com/return"
    assert_signed(params)
    # keys appear sorted in the query string
    keys = [k for k, _ in parse_qsl(parts.query)]
    assert keys == sorted(keys)
    assert transport.calls == []


def test_build_form_payment_html():
    client, _ = make_client()
    page = client.build_form_payment(
        FormPaymentRequest(
            out_trade_no="ORDER001",
            notify_url="https://example.com/notify",
            name='<b>"x"</b>',
            money=0.01,
        )
    )
    assert 'action="https://pay.example.com/submit.php"' in page
    assert 'name="money" value="0.01"' in page
    assert "&lt;b&gt;&quot;x&quot;&lt;/b&gt;" in page
    assert 'name="sign"' in page
    assert 'name="type"' not in page


def test_query_order_prefers_out_trade_no():
    client, transport = make_client({"code": 1, "out_trade_no": "O1", "status": "1", "money": "1.00"})
    order = client.query_order(OrderQueryRequest(trade_no="T1", out_trade_no="O1"))
    assert is_order_paid(order)
    _, url, params = transport.calls[0]
    assert url == BASE + "/api.php"
    assert params["act"] == "order"
    assert params["out_trade_no"] == "O1"
    assert "trade_no" not in params
    assert_signed(params)


def test_query_order_requires_an_id():
    client, _ = make_client()
    with pytest.raises(ValidationError):
        client.query_order(OrderQueryRequest())


@pytest.mark.parametrize("limit,page,want_limit,want_page", [(0, 0, "10", "1"), (500, 3, "100", "3"), (20, -1, "20", "1")])
def test_query_orders_clamps_paging(limit, page, want_limit, want_page):
    client, transport = make_client({"code": 1, "count": 1, "orders": [{"trade_no": "T1", "status": 0}]})
    resp = client.query_orders(limit, page)
    assert resp.count == 1
    assert resp.orders[0].trade_no == "T1"
    params = transport.calls[0][2]
    assert params["act"] == "orders"
    assert params["limit"] == want_limit
    assert params["page"] == want_page


def test_refund_posts_signed_form():
    client, transport = make_client({"code": 1, "msg": "退款成功"})
    resp = client.refund_by_trade_no("T1", 5)
    assert is_refund_success(resp)
    method, url, params = transport.calls[0]
    assert method == "POST"
    assert url == BASE + "/api.php?act=refund"
    assert params["act"] == "refund"
    assert params["trade_no"] == "T1"
    assert params["money"] == "5.00"
    assert_signed(params)

    client.refund_by_out_trade_no("O1", 1.5)
    assert transport.calls[1][2]["out_trade_no"] == "O1"


def test_gateway_code_as_float_or_string_is_success():
    client, _ = make_client({"code": 1.0, "msg": "ok"})
    assert client.refund_by_trade_no("T1", 1).msg == "ok"
    client, _ = make_client({"code": "1", "out_trade_no": "O1"})
    assert client.query_order(OrderQueryRequest(out_trade_no="O1")).out_trade_no == "O1"
    client, _ = make_client({"code": 0.0, "msg": "no"})
    with pytest.raises(APIError):
        client.refund_by_trade_no("T1", 1)


def test_refund_validation():
    client, _ = make_client()
    with pytest.raises(ValidationError):
        client.refund(RefundRequest(trade_no="T1", money=0))
    with pytest.raises(ValidationError):
        client.refund(RefundRequest(money=1))


def notify_params():
    return {
        "pid": "1001",
        "trade_no": "T20231123001",
        "out_trade_no": "ORDER001",
        "type": "alipay",
        "name": "Test Product",
        "money": "10.00",
        "trade_status": "TRADE_SUCCESS",
    }


def test_verify_notify():
    client, _ = make_client()
    params = notify_params()
    params["sign"] = client.sign(params)
    params["sign_type"] = "MD5"

    data = client.verify_notify(params)
    assert data.pid == 1001
    assert data.out_trade_no == "ORDER001"
    assert data.trade_status == "TRADE_SUCCESS"
    assert data.is_success


def test_verify_notify_missing_sign():
    client, _ = make_client()
    with pytest.raises(SignatureError) as exc:
        client.verify_notify(notify_params())
    assert "missing sign" in str(exc.value)


def test_verify_notify_tampered():
    client, _ = make_client()
    params = notify_params()
    params["sign"] = client.sign(params)
    params["money"] = "0.01"
    with pytest.raises(SignatureError):
        client.verify_notify(params)


def test_builder():
    transport = FakeTransport()
    client = ClientBuilder(1001, KEY, BASE).with_timeout(5).with_debug().with_transport(transport).build()
    assert client.config.timeout == 5
    assert client.config.debug
    assert new_client(1001, KEY, BASE).build().config.timeout == 30
    assert new_quick(1001, KEY, BASE).config.pid == 1001
    with pytest.raises(ConfigError):
        new_quick(0, KEY, BASE)


def test_debug_logging_never_contains_key(caplog):
    client = ClientBuilder(1001, KEY, BASE).with_debug().with_transport(FakeTransport()).build()
    with caplog.at_level("INFO"):
        client.query_order(OrderQueryRequest(out_trade_no="O1"))
    assert "GET https://pay.example.com/api.php?" in caplog.text
    assert KEY not in caplog.text


class BrokenSession:
    def request(self, method, url, **kwargs):
        raise requests.ConnectionError("connection refused")


def test_requests_transport_wraps_errors():
    transport = RequestsTransport(timeout=3, session=BrokenSession())
    with pytest.raises(NetworkError) as exc:
        transport.get(BASE + "/api.php", "a=1")
    assert isinstance(exc.value.__cause__, requests.ConnectionError)
    assert "caused by: connection refused" in str(exc.value)


def test_requests_transport_passes_timeout_and_body():
    seen = {}

    class Response:
        content = b'{"code": 1}'

        def raise_for_status(self):
            pass

    class Session:
        def request(self, method, url, **kwargs):
            seen.update(method=method, url=url, **kwargs)
            return Response()

    transport = RequestsTransport(timeout=7, session=Session())
    assert transport.post(BASE + "/api.php", "a=1&b=2") == b'{"code": 1}'
    assert seen["method"] == "POST"
    assert seen["timeout"] == 7
    assert seen["data"] == b"a=1&b=2"
    assert seen["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
