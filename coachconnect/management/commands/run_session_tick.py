"""
coachconnect/management/commands/run_session_tick.py
────────────────────────────────────────────────────────────────────
اجرای دستی یک tick چرخه عمر جلسات (بدون Celery).

استفاده:
  python manage.py run_session_tick              # اجرای کامل
  python manage.py run_session_tick --dry-run    # فقط پیش‌نمایش جلسات سررسیده

زمان‌بندی عادی با Celery beat انجام می‌شود (coachconnect_config/celery.py)؛
این دستور برای محیط توسعه یا بازیابی پس از قطعی worker است.
"""

import logging

from django.core.management.base import BaseCommand
from django.utils import timezone

from coachconnect.models import RefundRequest, Session
from coachconnect.services.lifecycle_service import SessionLifecycleService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "اجرای یک دور شروع/پایان جلسات، تسویه مربی و تلاش مجدد بازگشت وجه"

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="فقط پیش‌نمایش بدون ذخیره")

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        now = timezone.now()

        self.stdout.write(
            self.style.WARNING(
                f"\n{'[DRY-RUN] ' if dry_run else ''}"
                f"tick چرخه عمر جلسات — {timezone.localtime(now):%Y-%m-%d %H:%M:%S}\n"
                f"{'─' * 50}"
            )
        )

        if dry_run:
            to_start = Session.objects.filter(status=Session.Status.CREATED, started_at__lte=now).count()
            to_complete = Session.objects.filter(status=Session.Status.ONGOING, completed_at__lte=now).count()
            unsettled = Session.objects.filter(
                status=Session.Status.COMPLETED, due_payout__isnull=True,
            ).count()
            failed_refunds = RefundRequest.objects.filter(
                execution_status=RefundRequest.ExecutionStatus.FAILED,
            ).count()
            self.stdout.write(f"  جلسات آماده شروع:        {to_start}")
            self.stdout.write(f"  جلسات آماده پایان:       {to_complete}")
            self.stdout.write(f"  جلسات بدون تسویه:        {unsettled}")
            self.stdout.write(f"  بازگشت وجه‌های ناموفق:   {failed_refunds}")
            return

        summary = SessionLifecycleService.tick(now)
        logger.info("run_session_tick: %s", summary)

        self.stdout.write(f"  شروع‌شده:            {summary.started}")
        self.stdout.write(f"  پایان‌یافته:         {summary.completed}")
        self.stdout.write(f"  تسویه ایجادشده:      {summary.payouts_created}")
        self.stdout.write(f"  تسویه معوق:          {summary.payouts_deferred}")
        self.stdout.write(f"  تسویه معلق/آزاد:     {summary.payouts_held}/{summary.payouts_unheld}")
        self.stdout.write(f"  تلاش مجدد بازگشت:    {summary.refunds_retried}")
        self.stdout.write(self.style.SUCCESS("\n✅ tick با موفقیت اجرا شد."))
