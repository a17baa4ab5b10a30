"""
StockAlertEvaluator -- low-stock / out-of-stock signals.

Pure read-side projection over inventory records: at most one primary
alert per product, derived from on-hand quantity and the product's
low-stock threshold.  Never mutates state.
"""

from sqlalchemy import select

from inventory_kernel.domain.dtos import StockAlert
from inventory_kernel.domain.stock_status import AlertType, evaluate_alert
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.selectors.inventory_selector import InventorySelector


class StockAlertEvaluator(InventorySelector):
    """Derives alerts from current counters and thresholds."""

    def _alert(self, record: InventoryRecord, reserved: int) -> StockAlert | None:
        evaluated = evaluate_alert(record.quantity, record.low_stock_threshold)
        if evaluated is None:
            return None
        alert_type, severity = evaluated
        return StockAlert(
            product_id=record.product_id,
            alert_type=alert_type,
            severity=severity,
            quantity=record.quantity,
            available_quantity=record.quantity - reserved,
            low_stock_threshold=record.low_stock_threshold,
        )

    def alert_for(self, product_id: str) -> StockAlert | None:
        record = self.session.execute(
            select(InventoryRecord).where(InventoryRecord.product_id == product_id)
        ).scalar_one_or_none()
        if record is None:
            return None
        return self._alert(record, self.live_reserved([product_id]).get(product_id, 0))

    def alerts(self, alert_type: AlertType | None = None) -> list[StockAlert]:
        """
        Every active alert, out-of-stock first, then by product_id.

        Args:
            alert_type: Restrict to one alert type.
        """
        records = self.session.execute(
            select(InventoryRecord).order_by(InventoryRecord.product_id)
        ).scalars().all()
        reserved = self.live_reserved()

        alerts = []
        for record in records:
            alert = self._alert(record, reserved.get(record.product_id, 0))
            if alert is None:
                continue
            if alert_type is not None and alert.alert_type != alert_type:
                continue
            alerts.append(alert)

        alerts.sort(key=lambda a: (a.alert_type != AlertType.OUT_OF_STOCK, a.product_id))
        return alerts
