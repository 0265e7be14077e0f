"""
services/jalali_utils.py
─────────────────────────────────────────────────────────────────────
ابزارهای تاریخ شمسی برای متن اعلان‌ها و زمان‌بندی جلسات تکراری
Jalali display helpers + weekday keys shared by recurrent session creation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional

import jdatetime
from dateutil import rrule
from django.utils import timezone


# ─── Weekday mapping ────────────────────────────────────────────────
#  Weekday keys accepted by recurrent session creation → dateutil weekday
WEEKDAY_TO_RRULE: Dict[str, rrule.weekday] = {
    "sat": rrule.SA,
    "sun": rrule.SU,
    "mon": rrule.MO,
    "tue": rrule.TU,
    "wed": rrule.WE,
    "thu": rrule.TH,
    "fri": rrule.FR,
}

WEEKDAY_PERSIAN: Dict[str, str] = {
    "sat": "شنبه",
    "sun": "یکشنبه",
    "mon": "دوشنبه",
    "tue": "سه‌شنبه",
    "wed": "چهارشنبه",
    "thu": "پنجشنبه",
    "fri": "جمعه",
}


def weekdays_to_rrule(keys: Iterable[str]) -> List[rrule.weekday]:
    """کلیدهای روز هفته را به weekday های dateutil تبدیل می‌کند؛ کلید ناشناخته KeyError می‌دهد."""
    return [WEEKDAY_TO_RRULE[k.strip().lower()[:3]] for k in keys]


def to_jalali(dt: datetime) -> jdatetime.datetime:
    if timezone.is_aware(dt):
        dt = timezone.localtime(dt)
    return jdatetime.datetime.fromgregorian(datetime=dt)


def jalali_datetime_display(dt: Optional[datetime]) -> str:
    """نمایش فارسی تاریخ و ساعت شمسی؛ در صورت None بودن خط تیره برمی‌گرداند."""
    if dt is None:
        return "—"
    j = to_jalali(dt)
    return f"{j.year}/{j.month:02d}/{j.day:02d} {j.hour:02d}:{j.minute:02d}"
