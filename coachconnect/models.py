"""
سامانه جلسات مربی‌گری و تسویه مالی
Coach session lifecycle & financial reconciliation
models.py - Designed with Persian localization for Iranian users
"""

import uuid
from datetime import date
from decimal import Decimal

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


# ─────────────────────────────────────────────
#  Validators
# ─────────────────────────────────────────────
phone_validator = RegexValidator(
    regex=r'^09\d{9}$',
    message=_('شماره موبایل باید ۱۱ رقم بوده و با ۰۹ شروع شود.')
)


# ─────────────────────────────────────────────
#  Role Choices
# ─────────────────────────────────────────────
class Role(models.TextChoices):
    COACH  = 'coach',  _('مربی')
    PLAYER = 'player', _('بازیکن')
    ADMIN  = 'admin',  _('مدیر سامانه')


# ─────────────────────────────────────────────
#  Custom User Manager
# ─────────────────────────────────────────────
class CustomUserManager(BaseUserManager):
    def create_user(self, username, password=None, **extra_fields):
        if not username:
            raise ValueError(_('نام کاربری الزامی است.'))
        user = self.model(username=username, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, username, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_platform_admin', True)
        return self.create_user(username, password, **extra_fields)


# ─────────────────────────────────────────────
#  Custom User (Multi-Role RBAC)
# ─────────────────────────────────────────────
class CustomUser(AbstractBaseUser, PermissionsMixin):
    """
    کاربر سفارشی با پشتیبانی از نقش‌های چندگانه.
    یک کاربر می‌تواند همزمان مربی و بازیکن باشد.
    """
    id          = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username    = models.CharField(_('نام کاربری'), max_length=150, unique=True)
    email       = models.EmailField(_('ایمیل'), blank=True)
    first_name  = models.CharField(_('نام'), max_length=100)
    last_name   = models.CharField(_('نام خانوادگی'), max_length=100)
    phone       = models.CharField(_('شماره موبایل'), max_length=11, validators=[phone_validator], blank=True)
    dob         = models.DateField(_('تاریخ تولد'), null=True, blank=True)

    # ── Multi-role booleans ──────────────────
    is_coach          = models.BooleanField(_('مربی'), default=False)
    is_player         = models.BooleanField(_('بازیکن'), default=False)
    is_platform_admin = models.BooleanField(_('مدیر سامانه'), default=False)

    is_blocked  = models.BooleanField(_('مسدود شده'), default=False)
    is_active   = models.BooleanField(_('فعال'), default=True)
    is_staff    = models.BooleanField(_('کارمند سیستم'), default=False)
    date_joined = models.DateTimeField(_('تاریخ عضویت'), default=timezone.now)

    objects = CustomUserManager()

    USERNAME_FIELD  = 'username'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    class Meta:
        verbose_name        = _('کاربر')
        verbose_name_plural = _('کاربران')

    def __str__(self):
        return f'{self.first_name} {self.last_name} ({self.username})'

    def get_full_name(self):
        name = f'{self.first_name} {self.last_name}'.strip()
        return name or self.username

    def get_short_name(self):
        return self.first_name or self.username

    def get_roles(self):
        roles = []
        if self.is_coach:          roles.append(Role.COACH)
        if self.is_player:         roles.append(Role.PLAYER)
        if self.is_platform_admin: roles.append(Role.ADMIN)
        return roles

    def has_role(self, role: str) -> bool:
        return role in self.get_roles()

    def age_on(self, day: date):
        """سن کامل در تاریخ داده‌شده؛ بدون تاریخ تولد None برمی‌گردد."""
        if self.dob is None:
            return None
        age = day.year - self.dob.year
        if (day.month, day.day) < (self.dob.month, self.dob.day):
            age -= 1
        return age


# ─────────────────────────────────────────────
#  Platform Fee (singleton)
# ─────────────────────────────────────────────
class PlatformFee(models.Model):
    """
    کارمزد سامانه که روی هزینه هر جلسه اضافه می‌شود.
    فقط یک ردیف معتبر است.
    """
    fee         = models.DecimalField(_('کارمزد (ریال)'), max_digits=14, decimal_places=0, default=0,
                                      validators=[MinValueValidator(0)])
    updated_at  = models.DateTimeField(_('آخرین ویرایش'), auto_now=True)

    class Meta:
        verbose_name        = _('کارمزد سامانه')
        verbose_name_plural = _('کارمزد سامانه')

    def __str__(self):
        return f'{self.fee:,.0f} ریال'

    @classmethod
    def current(cls) -> Decimal:
        row = cls.objects.order_by('-updated_at').first()
        return row.fee if row else Decimal('0')


# ─────────────────────────────────────────────
#  Session
# ─────────────────────────────────────────────
class Session(models.Model):
    """
    جلسه تمرینی گروهی که توسط یک مربی برگزار می‌شود.
    هرگز حذف فیزیکی نمی‌شود؛ فقط لغو.
    """

    class Status(models.TextChoices):
        CREATED   = 'created',   _('ایجاد شده')
        ONGOING   = 'ongoing',   _('در حال برگزاری')
        COMPLETED = 'completed', _('پایان یافته')
        CANCELLED = 'cancelled', _('لغو شده')

    # old → set of allowed new statuses
    ALLOWED_TRANSITIONS = {
        Status.CREATED:   {Status.ONGOING, Status.CANCELLED},
        Status.ONGOING:   {Status.COMPLETED, Status.CANCELLED},
        Status.COMPLETED: set(),
        Status.CANCELLED: set(),
    }
    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED)

    id                  = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    coach               = models.ForeignKey(
        CustomUser, on_delete=models.PROTECT,
        related_name='coached_sessions', verbose_name=_('مربی')
    )
    title               = models.CharField(_('عنوان'), max_length=200)
    description         = models.TextField(_('توضیحات'), blank=True)
    address             = models.CharField(_('آدرس'), max_length=500, blank=True)
    objectives          = models.JSONField(_('اهداف'), default=list)
    equipments          = models.JSONField(_('تجهیزات'), default=list, blank=True)
    additional_notes    = models.TextField(_('یادداشت‌های تکمیلی'), blank=True)
    fee                 = models.DecimalField(_('هزینه جلسه (ریال)'), max_digits=14, decimal_places=0, default=0,
                                              validators=[MinValueValidator(0)])
    max_participants    = models.PositiveIntegerField(_('حداکثر شرکت‌کننده'), validators=[MinValueValidator(1)])
    participant_min_age = models.PositiveSmallIntegerField(_('حداقل سن'), default=1, validators=[MinValueValidator(1)])
    started_at          = models.DateTimeField(_('زمان شروع'))
    completed_at        = models.DateTimeField(_('زمان پایان'))
    status              = models.CharField(_('وضعیت'), max_length=15, choices=Status.choices, default=Status.CREATED)
    report_valid        = models.BooleanField(_('امکان گزارش'), default=False)
    report_till         = models.DateTimeField(_('مهلت گزارش'), null=True, blank=True)
    recurrence_group    = models.UUIDField(_('گروه تکرار'), null=True, blank=True, db_index=True)

    cancelled_at        = models.DateTimeField(_('زمان لغو'), null=True, blank=True)
    cancelled_by        = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='cancelled_sessions', verbose_name=_('لغو شده توسط')
    )
    cancellation_note   = models.TextField(_('دلیل لغو'), blank=True)

    created_at          = models.DateTimeField(_('تاریخ ایجاد'), auto_now_add=True)
    updated_at          = models.DateTimeField(_('آخرین ویرایش'), auto_now=True)

    class Meta:
        verbose_name        = _('جلسه')
        verbose_name_plural = _('جلسات')
        ordering            = ['-started_at']
        indexes             = [
            models.Index(fields=['status', 'started_at'], name='session_status_start_idx'),
            models.Index(fields=['status', 'completed_at'], name='session_status_end_idx'),
        ]
        constraints         = [
            models.CheckConstraint(
                condition=Q(completed_at__gt=models.F('started_at')),
                name='session_completed_after_start',
            ),
            models.CheckConstraint(condition=Q(fee__gte=0), name='session_fee_non_negative'),
        ]

    def __str__(self):
        return f'{self.title} ({self.get_status_display()})'

    @property
    def is_free(self) -> bool:
        return self.fee <= 0

    @classmethod
    def is_allowed_transition(cls, old_status, new_status) -> bool:
        if old_status == new_status:
            return True
        allowed = cls.ALLOWED_TRANSITIONS.get(cls.Status(old_status), set())
        return cls.Status(new_status) in allowed

    def can_transition_to(self, new_status) -> bool:
        return self.is_allowed_transition(self.status, new_status)

    def attending_paid_count(self) -> int:
        """صندلی‌های اشغال‌شده: حاضر + (پرداخت آنلاین یا نقدی)."""
        return self.participants.filter(
            player_status=SessionParticipant.PlayerStatus.ATTENDING,
            payment_status__in=SessionParticipant.SEAT_PAYMENT_STATUSES,
        ).count()


# ─────────────────────────────────────────────
#  Session Participant
# ─────────────────────────────────────────────
class SessionParticipant(models.Model):
    """
    عضویت یک بازیکن در یک جلسه.
    پس از لغو، ثبت‌نام مجدد یک ردیف جدید می‌سازد.
    """

    class PlayerStatus(models.TextChoices):
        PENDING   = 'pending',   _('در انتظار پرداخت')
        ATTENDING = 'attending', _('حاضر')
        CANCELLED = 'cancelled', _('لغو شده')

    class PaymentStatus(models.TextChoices):
        PENDING  = 'pending',  _('در انتظار پرداخت')
        PAID     = 'paid',     _('پرداخت شده')
        CASH     = 'cash',     _('پرداخت نقدی')
        FAILED   = 'failed',   _('ناموفق')
        REFUNDED = 'refunded', _('بازگشت داده شده')

    class PaymentMethod(models.TextChoices):
        ONLINE = 'online', _('آنلاین')
        CASH   = 'cash',   _('نقدی')

    ACTIVE_PLAYER_STATUSES = (PlayerStatus.PENDING, PlayerStatus.ATTENDING)
    SEAT_PAYMENT_STATUSES  = (PaymentStatus.PAID, PaymentStatus.CASH)

    id              = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session         = models.ForeignKey(
        Session, on_delete=models.PROTECT,
        related_name='participants', verbose_name=_('جلسه')
    )
    player          = models.ForeignKey(
        CustomUser, on_delete=models.PROTECT,
        related_name='participations', verbose_name=_('بازیکن')
    )
    player_status   = models.CharField(_('وضعیت حضور'), max_length=15, choices=PlayerStatus.choices, default=PlayerStatus.PENDING)
    payment_status  = models.CharField(_('وضعیت پرداخت'), max_length=15, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_method  = models.CharField(_('روش پرداخت'), max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.ONLINE)
    cancelled_at    = models.DateTimeField(_('زمان لغو'), null=True, blank=True)
    created_at      = models.DateTimeField(_('تاریخ ثبت‌نام'), auto_now_add=True)
    updated_at      = models.DateTimeField(_('آخرین ویرایش'), auto_now=True)

    class Meta:
        verbose_name        = _('شرکت‌کننده')
        verbose_name_plural = _('شرکت‌کنندگان')
        ordering            = ['created_at']
        constraints         = [
            models.UniqueConstraint(
                fields=['session', 'player'],
                condition=Q(player_status__in=['pending', 'attending']),
                name='one_active_participant_per_session',
            ),
        ]

    def __str__(self):
        return f'{self.player} @ {self.session.title} ({self.get_player_status_display()})'

    @property
    def is_online_paid(self) -> bool:
        return (
            self.payment_method == self.PaymentMethod.ONLINE
            and self.payment_status == self.PaymentStatus.PAID
        )


# ─────────────────────────────────────────────
#  Payment
# ─────────────────────────────────────────────
class Payment(models.Model):
    """
    جابجایی پول: پرداخت ثبت‌نام یا بازگشت وجه.
    total_amount = session_fee + platform_fee
    """

    class PaymentType(models.TextChoices):
        ENROLLMENT = 'enrollment', _('ثبت‌نام')
        REFUND     = 'refund',     _('بازگشت وجه')

    class Status(models.TextChoices):
        PENDING   = 'pending',   _('در انتظار')
        SUCCEEDED = 'succeeded', _('موفق')
        FAILED    = 'failed',    _('ناموفق')
        REFUNDED  = 'refunded',  _('بازگشت داده شده')

    id              = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment_type    = models.CharField(_('نوع'), max_length=15, choices=PaymentType.choices, default=PaymentType.ENROLLMENT)
    session         = models.ForeignKey(
        Session, on_delete=models.PROTECT,
        related_name='payments', verbose_name=_('جلسه')
    )
    participant     = models.ForeignKey(
        SessionParticipant, on_delete=models.PROTECT,
        related_name='payments', verbose_name=_('شرکت‌کننده')
    )
    payer           = models.ForeignKey(
        CustomUser, on_delete=models.PROTECT,
        related_name='payments', verbose_name=_('پرداخت‌کننده')
    )
    session_fee     = models.DecimalField(_('هزینه جلسه (ریال)'), max_digits=14, decimal_places=0)
    platform_fee    = models.DecimalField(_('کارمزد سامانه (ریال)'), max_digits=14, decimal_places=0, default=0)
    total_amount    = models.DecimalField(_('مبلغ کل (ریال)'), max_digits=14, decimal_places=0)
    status          = models.CharField(_('وضعیت'), max_length=15, choices=Status.choices, default=Status.PENDING)
    authority       = models.CharField(_('Authority'), max_length=100, blank=True, db_index=True)
    ref_id          = models.CharField(_('Ref ID'), max_length=100, blank=True)
    refund_of       = models.ForeignKey(
        'self', on_delete=models.PROTECT, null=True, blank=True,
        related_name='refunds', verbose_name=_('بازگشت پرداختِ')
    )
    raw_response    = models.JSONField(_('پاسخ خام'), default=dict, blank=True)
    paid_at         = models.DateTimeField(_('تاریخ پرداخت'), null=True, blank=True)
    created_at      = models.DateTimeField(_('تاریخ ایجاد'), auto_now_add=True)
    updated_at      = models.DateTimeField(_('آخرین ویرایش'), auto_now=True)

    class Meta:
        verbose_name        = _('پرداخت')
        verbose_name_plural = _('پرداخت‌ها')
        ordering            = ['-created_at']

    def __str__(self):
        return f'{self.get_payment_type_display()} {self.total_amount:,.0f} — {self.get_status_display()}'

    def save(self, *args, **kwargs):
        self.total_amount = (self.session_fee or 0) + (self.platform_fee or 0)
        super().save(*args, **kwargs)


# ─────────────────────────────────────────────
#  Refund Request
# ─────────────────────────────────────────────
class RefundRequest(models.Model):
    """
    درخواست بازگشت وجه یک شرکت‌کننده.
    status مسیر داوری است؛ execution_status مسیر اجرای تراکنش در درگاه.
    """

    class Status(models.TextChoices):
        PENDING   = 'pending',   _('در انتظار بررسی')
        ACCEPTED  = 'accepted',  _('پذیرفته شده')
        CANCELLED = 'cancelled', _('رد شده')

    class RequestType(models.TextChoices):
        AUTO_ACCEPTED  = 'auto_accepted',  _('پذیرش خودکار')
        ADMIN_APPROVAL = 'admin_approval', _('نیازمند تأیید مدیر')

    class ExecutionStatus(models.TextChoices):
        NOT_REQUIRED = 'not_required', _('بدون اجرا')
        PENDING      = 'pending',      _('در صف اجرا')
        PROCESSING   = 'processing',   _('در حال اجرا')
        SUCCEEDED    = 'succeeded',    _('اجرا شد')
        FAILED       = 'failed',       _('خطا در اجرا')

    id                  = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session             = models.ForeignKey(
        Session, on_delete=models.PROTECT,
        related_name='refund_requests', verbose_name=_('جلسه')
    )
    participant         = models.ForeignKey(
        SessionParticipant, on_delete=models.PROTECT,
        related_name='refund_requests', verbose_name=_('شرکت‌کننده')
    )
    payment             = models.ForeignKey(
        Payment, on_delete=models.PROTECT,
        related_name='refund_requests', verbose_name=_('پرداخت ثبت‌نام')
    )
    refund_payment      = models.OneToOneField(
        Payment, on_delete=models.PROTECT, null=True, blank=True,
        related_name='refund_request', verbose_name=_('پرداخت بازگشت')
    )
    status              = models.CharField(_('وضعیت'), max_length=15, choices=Status.choices, default=Status.PENDING)
    refund_request_type = models.CharField(_('نوع'), max_length=20, choices=RequestType.choices)
    refunded_amount     = models.DecimalField(_('مبلغ بازگشتی (ریال)'), max_digits=14, decimal_places=0, default=0)
    reason              = models.TextField(_('دلیل'), blank=True)
    rejection_note      = models.TextField(_('دلیل رد'), blank=True)
    accepted_by         = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='accepted_refunds', verbose_name=_('تأیید شده توسط')
    )
    rejected_by         = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='rejected_refunds', verbose_name=_('رد شده توسط')
    )
    resolved_at         = models.DateTimeField(_('زمان تصمیم'), null=True, blank=True)

    # ── Execution (durable intent) ───────────
    execution_status    = models.CharField(_('وضعیت اجرا'), max_length=15, choices=ExecutionStatus.choices,
                                           default=ExecutionStatus.NOT_REQUIRED)
    idempotency_key     = models.UUIDField(_('کلید یکتایی'), default=uuid.uuid4, unique=True, editable=False)
    gateway_ref         = models.CharField(_('شناسه درگاه'), max_length=100, blank=True)
    attempts            = models.PositiveSmallIntegerField(_('تعداد تلاش'), default=0)
    last_error          = models.TextField(_('آخرین خطا'), blank=True)
    last_attempt_at     = models.DateTimeField(_('آخرین تلاش'), null=True, blank=True)

    created_at          = models.DateTimeField(_('تاریخ ایجاد'), auto_now_add=True)
    updated_at          = models.DateTimeField(_('آخرین ویرایش'), auto_now=True)

    class Meta:
        verbose_name        = _('درخواست بازگشت وجه')
        verbose_name_plural = _('درخواست‌های بازگشت وجه')
        ordering            = ['-created_at']
        constraints         = [
            models.UniqueConstraint(
                fields=['participant', 'session'],
                condition=Q(status__in=['pending', 'accepted']),
                name='one_open_refund_per_participant',
            ),
        ]
        indexes             = [
            models.Index(fields=['execution_status', 'last_attempt_at'], name='refund_exec_idx'),
        ]

    def __str__(self):
        return f'بازگشت {self.refunded_amount:,.0f} — {self.participant.player} ({self.get_status_display()})'


# ─────────────────────────────────────────────
#  Due Payout
# ─────────────────────────────────────────────
class DuePayout(models.Model):
    """
    مبلغ قابل پرداخت به مربی برای یک جلسه پایان‌یافته.
    یک ردیف به ازای هر جلسه (کلید یکتایی = session).
    """

    class Status(models.TextChoices):
        PENDING  = 'pending',  _('در انتظار پرداخت')
        HOLD     = 'hold',     _('معلق')
        RELEASED = 'released', _('پرداخت شده')

    session             = models.OneToOneField(
        Session, on_delete=models.PROTECT,
        related_name='due_payout', verbose_name=_('جلسه')
    )
    coach               = models.ForeignKey(
        CustomUser, on_delete=models.PROTECT,
        related_name='due_payouts', verbose_name=_('مربی')
    )
    total_amount        = models.DecimalField(_('مبلغ (ریال)'), max_digits=14, decimal_places=0)
    paid_participants   = models.PositiveIntegerField(_('تعداد پرداخت‌کننده'), default=0)
    status              = models.CharField(_('وضعیت'), max_length=15, choices=Status.choices, default=Status.PENDING)
    released_at         = models.DateTimeField(_('تاریخ پرداخت'), null=True, blank=True)
    created_at          = models.DateTimeField(_('تاریخ ایجاد'), auto_now_add=True)
    updated_at          = models.DateTimeField(_('آخرین ویرایش'), auto_now=True)

    class Meta:
        verbose_name        = _('تسویه مربی')
        verbose_name_plural = _('تسویه‌های مربی')
        ordering            = ['-created_at']

    def __str__(self):
        return f'تسویه {self.coach} — {self.session.title}: {self.total_amount:,.0f}'


# ─────────────────────────────────────────────
#  Session Report
# ─────────────────────────────────────────────
class SessionReport(models.Model):
    """گزارش بازیکن درباره جلسه‌ای که شروع شده است."""

    session         = models.ForeignKey(
        Session, on_delete=models.PROTECT,
        related_name='reports', verbose_name=_('جلسه')
    )
    participant     = models.ForeignKey(
        SessionParticipant, on_delete=models.PROTECT,
        related_name='reports', verbose_name=_('شرکت‌کننده')
    )
    description     = models.TextField(_('شرح گزارش'))
    need_refund     = models.BooleanField(_('درخواست بازگشت وجه'), default=False)
    created_at      = models.DateTimeField(_('تاریخ ثبت'), auto_now_add=True)

    class Meta:
        verbose_name        = _('گزارش جلسه')
        verbose_name_plural = _('گزارش‌های جلسه')
        ordering            = ['-created_at']

    def __str__(self):
        return f'گزارش {self.participant.player} — {self.session.title}'


# ─────────────────────────────────────────────
#  Notifications
# ─────────────────────────────────────────────
class Notification(models.Model):
    """
    اعلان درون‌برنامه‌ای.
    مثال: لغو جلسه، پذیرش بازگشت وجه، آماده بودن تسویه
    """

    class NotificationType(models.TextChoices):
        SESSION_CREATED   = 'session_created',   _('ایجاد جلسه')
        SESSION_CANCELLED = 'session_cancelled', _('لغو جلسه')
        ENROLLMENT        = 'enrollment',        _('ثبت‌نام در جلسه')
        PAYMENT_FAILED    = 'payment_failed',    _('پرداخت ناموفق')
        REFUND_ACCEPTED   = 'refund_accepted',   _('پذیرش بازگشت وجه')
        REFUND_PENDING    = 'refund_pending',    _('درخواست بازگشت وجه')
        REFUND_REJECTED   = 'refund_rejected',   _('رد بازگشت وجه')
        PAYOUT_READY      = 'payout_ready',      _('آماده بودن تسویه')
        COACH_WARNING     = 'coach_warning',     _('اخطار به مربی')
        GENERAL           = 'general',           _('عمومی')

    class Audience(models.TextChoices):
        USER  = 'user',  _('کاربر')
        ADMIN = 'admin', _('مدیر')

    class Level(models.TextChoices):
        INFO     = 'info',     _('اطلاع')
        WARNING  = 'warning',  _('هشدار')
        CRITICAL = 'critical', _('بحرانی')

    recipient       = models.ForeignKey(
        CustomUser, on_delete=models.CASCADE,
        related_name='notifications', verbose_name=_('دریافت‌کننده')
    )
    audience        = models.CharField(_('مخاطب'), max_length=10, choices=Audience.choices, default=Audience.USER)
    level           = models.CharField(_('سطح'), max_length=10, choices=Level.choices, default=Level.INFO)
    type            = models.CharField(_('نوع اعلان'), max_length=30, choices=NotificationType.choices, default=NotificationType.GENERAL)
    title           = models.CharField(_('عنوان'), max_length=255)
    message         = models.TextField(_('پیام'))
    is_read         = models.BooleanField(_('خوانده شده'), default=False)
    related_session = models.ForeignKey(
        Session, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='notifications', verbose_name=_('جلسه مرتبط')
    )
    created_at      = models.DateTimeField(_('تاریخ ارسال'), auto_now_add=True)
    read_at         = models.DateTimeField(_('تاریخ خواندن'), null=True, blank=True)

    class Meta:
        verbose_name        = _('اعلان')
        verbose_name_plural = _('اعلان‌ها')
        ordering            = ['-created_at']

    def __str__(self):
        return f'{self.recipient} — {self.title}'

    def mark_as_read(self):
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=['is_read', 'read_at'])
