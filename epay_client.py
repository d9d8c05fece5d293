"""HTTP client for the EPay gateway.

All outbound parameters are signed with :class:`payment_gateway.Signer`
before they are serialised; the transport only moves bytes.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import requests

from epay_config import DEFAULT_TIMEOUT, EPayConfig
from epay_errors import (
    MSG_MISSING_SIGN,
    MSG_SIGN_VERIFY_FAILED,
    APIError,
    NetworkError,
    ResponseError,
    SignatureError,
)
from epay_models import (
    FormPaymentRequest,
    NotifyData,
    OrderDetail,
    OrderListResponse,
    OrderQueryRequest,
    PaymentRequest,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
    as_int,
)
from epay_utils import build_auto_submit_form, format_money
from payment_gateway import SIGN_KEY, Signer, urlencoded_query

logger = logging.getLogger(__name__)

API_PATH_MAPI = "/mapi.php"
API_PATH_SUBMIT = "/submit.php"
API_PATH_QUERY = "/api.php"
API_PATH_ORDERS = "/api.php"
API_PATH_REFUND = "/api.php"

ORDERS_DEFAULT_LIMIT = 10
ORDERS_MAX_LIMIT = 100


class Transport(ABC):
    """Sends an already signed request and returns the raw response body."""

    @abstractmethod
    def get(self, url: str, query: str) -> bytes:
        pass

    @abstractmethod
    def post(self, url: str, body: str) -> bytes:
        pass


class RequestsTransport(Transport):
    def __init__(self, timeout: int = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _send(self, method: str, url: str, **kwargs) -> bytes:
        try:
            res = self.session.request(method, url, timeout=self.timeout, **kwargs)
            res.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError("HTTP request failed", cause=e) from e
        return res.content

    def get(self, url: str, query: str) -> bytes:
        return self._send("GET", f"{url}?{query}")

    def post(self, url: str, body: str) -> bytes:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        return self._send("POST", url, data=body.encode("utf-8"), headers=headers)


def _decode_json(body: bytes) -> dict:
    try:
        data = json.loads(body)
    except ValueError as e:
        raise ResponseError("parse JSON response failed", cause=e) from e
    if not isinstance(data, dict):
        raise ResponseError("parse JSON response failed: expected an object")
    return data


class EPayClient:
    def __init__(self, config: EPayConfig, transport: Optional[Transport] = None):
        config.validate()
        self._config = config
        self._signer = Signer(config.key)
        self._transport = transport or RequestsTransport(config.timeout_seconds)

    @property
    def config(self) -> EPayConfig:
        return self._config

    # ---------------------------
    # 簽名
    # ---------------------------
    def sign(self, params: Mapping[str, str]) -> str:
        return self._signer.sign(params)

    def verify(self, params: Mapping[str, str], sign: str) -> bool:
        return self._signer.verify(params, sign)

    def _base_params(self) -> dict:
        return {"pid": str(self._config.pid)}

    # ---------------------------
    # 傳輸
    # ---------------------------
    def _get(self, path: str, params: Mapping[str, str]) -> bytes:
        url = self._config.api_base + path
        query = urlencoded_query(self._signer.sign_with_params(params))
        if self._config.debug:
            logger.info("[EPay] GET %s?%s", url, query)
        body = self._transport.get(url, query)
        if self._config.debug:
            logger.info("[EPay] Response: %s", body.decode("utf-8", "replace"))
        return body

    def _post(self, path: str, params: Mapping[str, str]) -> bytes:
        url = self._config.api_base + path
        form = urlencoded_query(self._signer.sign_with_params(params))
        if self._config.debug:
            logger.info("[EPay] POST %s, params: %s", url, form)
        body = self._transport.post(url, form)
        if self._config.debug:
            logger.info("[EPay] Response: %s", body.decode("utf-8", "replace"))
        return body

    @staticmethod
    def _check(data: Mapping[str, Any]) -> None:
        code = data.get("code")
        if as_int(code) != 1:
            raise APIError(str(data.get("msg") or f"unexpected code {code!r}"))

    # ---------------------------
    # 支付
    # ---------------------------
    def create_payment(self, req: PaymentRequest) -> PaymentResponse:
        """API-mode payment; the response holds a pay URL, QR code or scheme."""
        req.validate()
        params = self._base_params()
        params.update(
            type=req.type,
            out_trade_no=req.out_trade_no,
            notify_url=req.notify_url,
            name=req.name,
            money=format_money(req.money),
        )
        if req.return_url:
            params["return_url"] = req.return_url
        if req.client_ip:
            params["clientip"] = req.client_ip
        if req.device:
            params["device"] = req.device
        if req.param:
            params["param"] = req.param

        data = _decode_json(self._get(API_PATH_MAPI, params))
        self._check(data)
        return PaymentResponse.from_dict(data)

    def _form_params(self, req: FormPaymentRequest) -> dict:
        req.validate()
        params = self._base_params()
        params.update(
            out_trade_no=req.out_trade_no,
            notify_url=req.notify_url,
            return_url=req.return_url,
            name=req.name,
            money=format_money(req.money),
        )
        if req.type:
            params["type"] = req.type
        if req.param:
            params["param"] = req.param
        return self._signer.sign_with_params(params)

    def build_form_payment_url(self, req: FormPaymentRequest) -> str:
        signed = self._form_params(req)
        return f"{self._config.api_base}{API_PATH_SUBMIT}?{urlencoded_query(signed)}"

    def build_form_payment(self, req: FormPaymentRequest) -> str:
        """Auto-submitting HTML form that can be written straight to the browser."""
        signed = self._form_params(req)
        return build_auto_submit_form(self._config.api_base + API_PATH_SUBMIT, signed)

    # ---------------------------
    # 訂單
    # ---------------------------
    def query_order(self, req: OrderQueryRequest) -> OrderDetail:
        req.validate()
        params = self._base_params()
        params["act"] = "order"
        # 優先使用商戶訂單號
        if req.out_trade_no:
            params["out_trade_no"] = req.out_trade_no
        else:
            params["trade_no"] = req.trade_no

        data = _decode_json(self._get(API_PATH_QUERY, params))
        self._check(data)
        return OrderDetail.from_dict(data)

    def query_orders(self, limit: int = ORDERS_DEFAULT_LIMIT, page: int = 1) -> OrderListResponse:
        if limit <= 0:
            limit = ORDERS_DEFAULT_LIMIT
        limit = min(limit, ORDERS_MAX_LIMIT)
        page = max(page, 1)

        params = self._base_params()
        params.update(act="orders", limit=str(limit), page=str(page))

        data = _decode_json(self._get(API_PATH_ORDERS, params))
        self._check(data)
        return OrderListResponse.from_dict(data)

    # ---------------------------
    # 退款
    # ---------------------------
    def refund(self, req: RefundRequest) -> RefundResponse:
        req.validate()
        params = self._base_params()
        params["act"] = "refund"
        params["money"] = format_money(req.money)
        if req.out_trade_no:
            params["out_trade_no"] = req.out_trade_no
        else:
            params["trade_no"] = req.trade_no

        # act 同時放在 URL 中，網關依 query string 路由
        data = _decode_json(self._post(API_PATH_REFUND + "?act=refund", params))
        self._check(data)
        return RefundResponse.from_dict(data)

    def refund_by_out_trade_no(self, out_trade_no: str, money: float) -> RefundResponse:
        return self.refund(RefundRequest(out_trade_no=out_trade_no, money=money))

    def refund_by_trade_no(self, trade_no: str, money: float) -> RefundResponse:
        return self.refund(RefundRequest(trade_no=trade_no, money=money))

    # ---------------------------
    # 回調
    # ---------------------------
    def verify_notify(self, params: Mapping[str, str]) -> NotifyData:
        """Check the signature of a notification and return its fields.

        Raises :class:`SignatureError` when ``sign`` is missing or wrong; the
        payload must not be trusted in that case.
        """
        sign = params.get(SIGN_KEY, "")
        if not sign:
            raise SignatureError(MSG_MISSING_SIGN)
        if not self._signer.verify(params, sign):
            raise SignatureError(MSG_SIGN_VERIFY_FAILED)
        return NotifyData.from_params(params)


class ClientBuilder:
    """Chained construction::

        client = ClientBuilder(1001, "key", "https://pay.example.com").with_timeout(10).build()
    """

    def __init__(self, pid: int, key: str, api_base_url: str):
        self._pid = pid
        self._key = key
        self._api_base_url = api_base_url
        self._timeout = DEFAULT_TIMEOUT
        self._debug = False
        self._transport: Optional[Transport] = None

    def with_timeout(self, seconds: int) -> "ClientBuilder":
        self._timeout = seconds
        return self

    def with_debug(self, debug: bool = True) -> "ClientBuilder":
        self._debug = debug
        return self

    def with_transport(self, transport: Transport) -> "ClientBuilder":
        self._transport = transport
        return self

    def build(self) -> EPayClient:
        config = EPayConfig(
            pid=self._pid,
            key=self._key,
            api_base_url=self._api_base_url,
            timeout=self._timeout,
            debug=self._debug,
        )
        return EPayClient(config, self._transport)

    must_build = build


def new_client(pid: int, key: str, api_base_url: str) -> ClientBuilder:
    return ClientBuilder(pid, key, api_base_url)


def new_quick(pid: int, key: str, api_base_url: str) -> EPayClient:
    """Build a client with default settings; raises ``ConfigError`` on bad input."""
    return ClientBuilder(pid, key, api_base_url).build()
