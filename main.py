import datetime
import logging
import threading
from typing import Optional

import uvicorn
from fastapi import FastAPI

import epay_config
from epay_client import EPayClient
from epay_config import EPayConfig
from epay_handlers import create_router, tz
from epay_models import NotifyData, PAY_TYPES

# ---------------------------
# 基本設定
# ---------------------------
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


# ---------------------------
# 記憶體訂單簿
# ---------------------------
class OrderBook:
    """Paid orders seen through verified notifications (demo only)."""

    def __init__(self):
        self._orders = {}
        self._lock = threading.Lock()

    def mark_paid(self, data: NotifyData):
        if not data.is_success:
            logger.info("notify %s ignored, trade_status=%s", data.out_trade_no, data.trade_status)
            return
        with self._lock:
            self._orders[data.out_trade_no] = {
                "out_trade_no": data.out_trade_no,
                "trade_no": data.trade_no,
                "type": data.type,
                "money": data.money,
                "paid_at": datetime.datetime.now(tz).isoformat(timespec="seconds"),
            }
        logger.info("order %s paid (%s)", data.out_trade_no, data.money)

    def get(self, out_trade_no: str) -> Optional[dict]:
        with self._lock:
            order = self._orders.get(out_trade_no)
            return dict(order) if order else None

    def all(self) -> list:
        with self._lock:
            return [dict(o) for o in self._orders.values()]


def create_app(config: Optional[EPayConfig] = None, client: Optional[EPayClient] = None) -> FastAPI:
    if client is None:
        client = EPayClient(config or EPayConfig.from_env())

    app = FastAPI()
    orders = OrderBook()
    app.state.orders = orders
    app.include_router(
        create_router(
            client,
            notify_url=epay_config.EPAY_NOTIFY_URL,
            return_url=epay_config.EPAY_RETURN_URL,
            on_notify=orders.mark_paid,
        )
    )

    # ---------------------------
    # FastAPI Endpoints
    # ---------------------------
    @app.get("/api/pay/types")
    async def pay_types():
        return PAY_TYPES

    @app.get("/api/orders/paid")
    async def paid_orders():
        return orders.all()

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


# ---------------------------
# 執行 FastAPI
# ---------------------------
if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000, log_level="warning")
