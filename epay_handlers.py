"""FastAPI routes for the usual EPay flows.

::

    router = create_router(client, notify_url="https://example.com/notify",
                           return_url="https://example.com/return",
                           on_notify=mark_paid)
    app.include_router(router)
"""

import datetime
import html
import logging
import uuid
from typing import Callable, Optional

import pytz
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from epay_client import EPayClient
from epay_errors import EPayError
from epay_models import (
    DEVICE_PC,
    FormPaymentRequest,
    NotifyData,
    OrderQueryRequest,
    PaymentRequest,
)
from epay_utils import parse_notify_params

logger = logging.getLogger(__name__)

tz = pytz.timezone("Asia/Shanghai")

DEFAULT_GOODS_NAME = "商品"

NotifyCallback = Callable[[NotifyData], None]

RETURN_PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>支付结果</title>
</head>
<body>
    <h1>支付完成</h1>
    <p>订单号: {out_trade_no}</p>
    <p>支付金额: {money} 元</p>
    <p><a href="/">返回首页</a></p>
</body>
</html>"""


def new_trade_no(prefix: str = "ORDER") -> str:
    """Merchant order number: prefix + local time + random suffix."""
    return f"{prefix}{datetime.datetime.now(tz):%Y%m%d%H%M%S}{uuid.uuid4().hex[:6].upper()}"


def _fail(status: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status)


def _parse_money(raw) -> Optional[float]:
    try:
        money = float(raw)
    except (TypeError, ValueError):
        return None
    return money if money > 0 else None


def create_router(
    client: EPayClient,
    notify_url: str = "",
    return_url: str = "",
    on_notify: Optional[NotifyCallback] = None,
) -> APIRouter:
    router = APIRouter()

    @router.get("/pay/form")
    def form_payment(type: str = "", name: str = "", money: str = ""):
        amount = _parse_money(money)
        if amount is None:
            return PlainTextResponse("Invalid money parameter", status_code=400)
        try:
            page = client.build_form_payment(
                FormPaymentRequest(
                    type=type,
                    out_trade_no=new_trade_no("ORDER"),
                    notify_url=notify_url,
                    return_url=return_url,
                    name=name or DEFAULT_GOODS_NAME,
                    money=amount,
                )
            )
        except EPayError as e:
            logger.error("Build form payment failed: %s", e)
            return PlainTextResponse("Failed to create payment", status_code=500)
        return HTMLResponse(page)

    @router.post("/api/pay/qrcode")
    async def qrcode_payment(req: Request):
        try:
            body = await req.json()
        except ValueError:
            return _fail(400, "Invalid request body")
        if not isinstance(body, dict):
            return _fail(400, "Invalid request body")

        amount = _parse_money(body.get("money"))
        if amount is None:
            return _fail(400, "Invalid money")

        client_ip = req.headers.get("x-forwarded-for") or (req.client.host if req.client else "")
        out_trade_no = new_trade_no("API")
        try:
            resp = client.create_payment(
                PaymentRequest(
                    type=body.get("pay_type") or "",
                    out_trade_no=out_trade_no,
                    notify_url=notify_url,
                    return_url=return_url,
                    name=body.get("name") or DEFAULT_GOODS_NAME,
                    money=amount,
                    client_ip=client_ip,
                    device=DEVICE_PC,
                )
            )
        except EPayError as e:
            logger.error("Create payment failed: %s", e)
            return _fail(500, "Failed to create payment")

        return {
            "success": True,
            "data": {
                "out_trade_no": out_trade_no,
                "trade_no": resp.trade_no,
                "pay_url": resp.pay_url,
                "qr_code": resp.qrcode,
                "url_scheme": resp.url_scheme,
            },
        }

    @router.api_route("/notify", methods=["GET", "POST"], response_class=PlainTextResponse)
    async def notify(req: Request):
        params = await parse_notify_params(req)
        logger.info("Received payment notify: %s", params)

        try:
            data = client.verify_notify(params)
        except EPayError as e:
            logger.warning("Verify notify signature failed: %s", e)
            return "fail"

        if on_notify is not None:
            try:
                on_notify(data)
            except Exception as e:
                logger.exception("Notify callback failed: %s", e)
                return "fail"
        return "success"

    @router.api_route("/return", methods=["GET", "POST"], response_class=HTMLResponse)
    async def payment_return(req: Request):
        params = await parse_notify_params(req)
        return RETURN_PAGE.format(
            out_trade_no=html.escape(params.get("out_trade_no", "")),
            money=html.escape(params.get("money", "")),
        )

    @router.get("/api/order/query")
    def query_order(out_trade_no: str = "", trade_no: str = ""):
        if not out_trade_no and not trade_no:
            return _fail(400, "out_trade_no or trade_no is required")
        try:
            order = client.query_order(
                OrderQueryRequest(out_trade_no=out_trade_no, trade_no=trade_no)
            )
        except EPayError as e:
            logger.error("Query order failed: %s", e)
            return _fail(500, "Query failed")
        return {"success": True, "data": order}

    return router
