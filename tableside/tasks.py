"""
Celery Tasks
Background work that must not hold up a request: customer SMS and menu exports.
Tasks are never retried automatically; a failed SMS is logged and dropped.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor

from tableside.celery_worker import celery_app
from tableside.services.notifications import get_notification_service
from tableside.services.spreadsheet import export_menu

logger = logging.getLogger(__name__)


def run_async(coro):
    """
    Run a coroutine from a synchronous task.

    Eager tasks are called from inside the API's event loop, so the
    coroutine gets its own loop on a helper thread there.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


@celery_app.task(bind=True)
def notify_order_ready(self, order_id: str, customer_phone: str) -> dict:
    """
    Text the customer that their order is ready.

    Args:
        order_id: Order that reached the ready state
        customer_phone: Number given at checkout
    """
    task_id = self.request.id
    logger.info(f"📋 Task {task_id}: order-ready SMS for order {order_id}")

    service = get_notification_service()
    result = run_async(service.send_order_ready(order_id, customer_phone))

    if result.success:
        logger.info(f"✅ Task {task_id}: SMS {result.message_id} sent for order {order_id}")
    else:
        logger.warning(f"⚠️ Task {task_id}: SMS for order {order_id} failed - {result.error_message}")

    return {
        "success": result.success,
        "order_id": order_id,
        "message_id": result.message_id,
        "error_message": result.error_message,
        "task_id": task_id,
    }


@celery_app.task(bind=True)
def export_menu_to_excel(self, restaurant_id: str, rows: list[dict]) -> dict:
    """
    Write a restaurant's menu rows to its XLSX export.

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    logger.info(f"📋 Task {task_id}: exporting menu for restaurant {restaurant_id}")
    start_time = time.time()

    result = export_menu(restaurant_id, rows)

    elapsed = round(time.time() - start_time, 3)
    result["task_id"] = task_id
    result["processing_time_seconds"] = elapsed

    if result["success"]:
        logger.info(f"✅ Task {task_id}: menu export completed in {elapsed}s")
    else:
        logger.warning(f"⚠️ Task {task_id}: menu export failed - {result['message']}")

    return result

