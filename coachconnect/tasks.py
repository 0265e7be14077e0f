"""
coachconnect/tasks.py
─────────────────────────────────────────────────────────────────────
تسک‌های پس‌زمینه Celery

coachconnect_config/celery.py:
    app.conf.beat_schedule = {
        'session-lifecycle-tick': {'task': 'coachconnect.tasks.session_tick_task',
                                   'schedule': 10.0, 'options': {'expires': 10}},
    }
"""

from __future__ import annotations

import logging
import uuid

from celery import shared_task
from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

TICK_LOCK_KEY = "coachconnect:session-tick-lock"


# ─────────────────────────────────────────────────────────────────────
# 1. تیک چرخه عمر جلسات، هر ۱۰ ثانیه
# ─────────────────────────────────────────────────────────────────────
@shared_task(bind=True)
def session_tick_task(self):
    """
    شروع/پایان جلسات، تسویه مربی، تعلیق تسویه‌ها و تلاش مجدد بازگشت وجه.
    دو tick هم‌زمان اجرا نمی‌شوند؛ tick دوم بدون انجام کار برمی‌گردد.
    """
    from .services.lifecycle_service import SessionLifecycleService

    token = str(uuid.uuid4())
    if not cache.add(TICK_LOCK_KEY, token, timeout=settings.SESSION_TICK_LOCK_TIMEOUT):
        logger.info("[tick] tick قبلی هنوز در حال اجراست؛ رد شد.")
        return {"skipped": True}

    try:
        summary = SessionLifecycleService.tick()
        logger.debug("[tick] %s", summary)
        return {"skipped": False, **summary.as_dict()}
    except Exception as exc:
        # tick ناموفق دوباره صف نمی‌شود؛ tick بعدی beat کار را ادامه می‌دهد
        logger.exception("خطا در tick چرخه عمر جلسات: %s", exc)
        return {"skipped": False, "error": str(exc)}
    finally:
        if cache.get(TICK_LOCK_KEY) == token:
            cache.delete(TICK_LOCK_KEY)


# ─────────────────────────────────────────────────────────────────────
# 2. اجرای بازگشت وجه، پس از تأیید مدیر از پنل ادمین
# ─────────────────────────────────────────────────────────────────────
@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def execute_refund_task(self, refund_request_id):
    """اجرای یک بازگشت وجه. Idempotent: فقط intent های PENDING/FAILED برداشته می‌شوند."""
    from .services.refund_service import RefundService
    try:
        request = RefundService.execute_refund(refund_request_id)
        logger.info("[بازگشت وجه] %s → %s", refund_request_id, request.execution_status)
        return {"refund_request": str(refund_request_id), "execution_status": request.execution_status}
    except Exception as exc:
        logger.exception("خطا در اجرای بازگشت وجه %s: %s", refund_request_id, exc)
        raise self.retry(exc=exc)
