"""
Background tasks for inventory module
"""
from app.core.celery import celery_app
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def notify_low_stock(self, tenant_id: str, alerts: list):
    """
    Report items that reached their minimum stock after a sale.

    alerts: list of LowStockAlert dicts (json mode)
    """
    try:
        for alert in alerts:
            logger.warning(
                f"Low stock for tenant {tenant_id}: item {alert['item_name']} "
                f"({alert['item_code']}) has {alert['stock']} units, minimum {alert['min_stock']}"
            )
        return {"status": "success", "alerts": len(alerts)}

    except Exception as e:
        logger.error(f"Low stock notification failed for tenant {tenant_id}: {str(e)}")
        raise self.retry(exc=e, countdown=60, max_retries=3)
