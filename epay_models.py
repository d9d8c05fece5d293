"""Request, response and notification types for the EPay gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from epay_errors import (
    MSG_INVALID_MONEY,
    MSG_MISSING_NAME,
    MSG_MISSING_NOTIFY_URL,
    MSG_MISSING_OUT_TRADE_NO,
    MSG_MISSING_TRADE_NO,
    ValidationError,
)

# 支付狀態
TRADE_STATUS_SUCCESS = "TRADE_SUCCESS"

# 訂單狀態
ORDER_STATUS_UNPAID = 0
ORDER_STATUS_PAID = 1

# 支付方式
PAY_TYPE_ALIPAY = "alipay"
PAY_TYPE_WXPAY = "wxpay"
PAY_TYPE_QQPAY = "qqpay"

PAY_TYPES = {
    PAY_TYPE_ALIPAY: "支付宝",
    PAY_TYPE_WXPAY: "微信支付",
    PAY_TYPE_QQPAY: "QQ钱包",
}

# 設備類型
DEVICE_PC = "pc"
DEVICE_MOBILE = "mobile"
DEVICE_WECHAT = "wechat"
DEVICE_ALIPAY = "alipay"


def as_int(value: Any, default: int = 0) -> int:
    """Lenient int for gateway fields that arrive as 1, "1" or 1.0."""
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _check_order_fields(out_trade_no: str, notify_url: str, name: str, money: float):
    if not out_trade_no:
        raise ValidationError(MSG_MISSING_OUT_TRADE_NO)
    if not notify_url:
        raise ValidationError(MSG_MISSING_NOTIFY_URL)
    if not name:
        raise ValidationError(MSG_MISSING_NAME)
    if money <= 0:
        raise ValidationError(MSG_INVALID_MONEY)


@dataclass
class PaymentRequest:
    """API-mode payment (``/mapi.php``) returning a pay URL or QR code."""

    type: str
    out_trade_no: str
    notify_url: str
    name: str
    money: float
    return_url: str = ""
    client_ip: str = ""
    device: str = ""
    param: str = ""

    def validate(self) -> None:
        _check_order_fields(self.out_trade_no, self.notify_url, self.name, self.money)


@dataclass
class FormPaymentRequest:
    """Redirect-mode payment (``/submit.php``).  ``type`` may be left empty
    to let the buyer pick a channel on the gateway's cashier page."""

    out_trade_no: str
    notify_url: str
    name: str
    money: float
    return_url: str = ""
    type: str = ""
    param: str = ""

    def validate(self) -> None:
        _check_order_fields(self.out_trade_no, self.notify_url, self.name, self.money)


@dataclass
class OrderQueryRequest:
    trade_no: str = ""
    out_trade_no: str = ""

    def validate(self) -> None:
        if not self.trade_no and not self.out_trade_no:
            raise ValidationError(MSG_MISSING_TRADE_NO)


@dataclass
class RefundRequest:
    trade_no: str = ""
    out_trade_no: str = ""
    money: float = 0

    def validate(self) -> None:
        if not self.trade_no and not self.out_trade_no:
            raise ValidationError(MSG_MISSING_TRADE_NO)
        if self.money <= 0:
            raise ValidationError(MSG_INVALID_MONEY)


@dataclass
class PaymentResponse:
    code: int = 0
    msg: str = ""
    trade_no: str = ""
    pay_url: str = ""
    qrcode: str = ""
    url_scheme: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaymentResponse":
        return cls(
            code=as_int(data.get("code")),
            msg=_as_str(data.get("msg")),
            trade_no=_as_str(data.get("trade_no")),
            pay_url=_as_str(data.get("payurl")),
            qrcode=_as_str(data.get("qrcode")),
            url_scheme=_as_str(data.get("urlscheme")),
        )


@dataclass
class OrderDetail:
    code: int = 0
    msg: str = ""
    trade_no: str = ""
    out_trade_no: str = ""
    api_trade_no: str = ""
    type: str = ""
    pid: int = 0
    add_time: str = ""
    end_time: str = ""
    name: str = ""
    money: str = ""
    status: int = ORDER_STATUS_UNPAID
    param: str = ""
    buyer: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderDetail":
        return cls(
            code=as_int(data.get("code")),
            msg=_as_str(data.get("msg")),
            trade_no=_as_str(data.get("trade_no")),
            out_trade_no=_as_str(data.get("out_trade_no")),
            api_trade_no=_as_str(data.get("api_trade_no")),
            type=_as_str(data.get("type")),
            pid=as_int(data.get("pid")),
            add_time=_as_str(data.get("addtime")),
            end_time=_as_str(data.get("endtime")),
            name=_as_str(data.get("name")),
            money=_as_str(data.get("money")),
            status=as_int(data.get("status")),
            param=_as_str(data.get("param")),
            buyer=_as_str(data.get("buyer")),
        )


@dataclass
class OrderListResponse:
    code: int = 0
    msg: str = ""
    count: int = 0
    orders: list[OrderDetail] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderListResponse":
        # 部分站點以 data 而非 orders 回傳列表
        rows = data.get("orders")
        if rows is None:
            rows = data.get("data") or []
        return cls(
            code=as_int(data.get("code")),
            msg=_as_str(data.get("msg")),
            count=as_int(data.get("count")),
            orders=[OrderDetail.from_dict(r) for r in rows if isinstance(r, Mapping)],
        )


@dataclass
class RefundResponse:
    code: int = 0
    msg: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RefundResponse":
        return cls(code=as_int(data.get("code")), msg=_as_str(data.get("msg")))


@dataclass
class NotifyData:
    """Fields of a verified asynchronous payment notification."""

    pid: int = 0
    trade_no: str = ""
    out_trade_no: str = ""
    type: str = ""
    name: str = ""
    money: str = ""
    trade_status: str = ""
    param: str = ""
    sign: str = ""
    sign_type: str = ""

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "NotifyData":
        return cls(
            pid=as_int(params.get("pid")),
            trade_no=params.get("trade_no", ""),
            out_trade_no=params.get("out_trade_no", ""),
            type=params.get("type", ""),
            name=params.get("name", ""),
            money=params.get("money", ""),
            trade_status=params.get("trade_status", ""),
            param=params.get("param", ""),
            sign=params.get("sign", ""),
            sign_type=params.get("sign_type", ""),
        )

    @property
    def is_success(self) -> bool:
        return self.trade_status == TRADE_STATUS_SUCCESS


def is_order_paid(order: Optional[OrderDetail]) -> bool:
    return order is not None and order.status == ORDER_STATUS_PAID


def is_order_unpaid(order: Optional[OrderDetail]) -> bool:
    return order is not None and order.status == ORDER_STATUS_UNPAID


def is_refund_success(resp: Optional[RefundResponse]) -> bool:
    return resp is not None and resp.code == 1
