import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import coachconnect.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="CustomUser",
            fields=[
                ("password", models.CharField(max_length=128, verbose_name="password")),
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                ("is_superuser", models.BooleanField(default=False, help_text="Designates that this user has all permissions without explicitly assigning them.", verbose_name="superuser status")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("username", models.CharField(max_length=150, unique=True, verbose_name="نام کاربری")),
                ("email", models.EmailField(blank=True, max_length=254, verbose_name="ایمیل")),
                ("first_name", models.CharField(max_length=100, verbose_name="نام")),
                ("last_name", models.CharField(max_length=100, verbose_name="نام خانوادگی")),
                ("phone", models.CharField(blank=True, max_length=11, validators=[coachconnect.models.phone_validator], verbose_name="شماره موبایل")),
                ("dob", models.DateField(blank=True, null=True, verbose_name="تاریخ تولد")),
                ("is_coach", models.BooleanField(default=False, verbose_name="مربی")),
                ("is_player", models.BooleanField(default=False, verbose_name="بازیکن")),
                ("is_platform_admin", models.BooleanField(default=False, verbose_name="مدیر سامانه")),
                ("is_blocked", models.BooleanField(default=False, verbose_name="مسدود شده")),
                ("is_active", models.BooleanField(default=True, verbose_name="فعال")),
                ("is_staff", models.BooleanField(default=False, verbose_name="کارمند سیستم")),
                ("date_joined", models.DateTimeField(default=django.utils.timezone.now, verbose_name="تاریخ عضویت")),
                ("groups", models.ManyToManyField(blank=True, help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.", related_name="user_set", related_query_name="user", to="auth.group", verbose_name="groups")),
                ("user_permissions", models.ManyToManyField(blank=True, help_text="Specific permissions for this user.", related_name="user_set", related_query_name="user", to="auth.permission", verbose_name="user permissions")),
            ],
            options={
                "verbose_name": "کاربر",
                "verbose_name_plural": "کاربران",
            },
            managers=[
                ("objects", coachconnect.models.CustomUserManager()),
            ],
        ),
        migrations.CreateModel(
            name="PlatformFee",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("fee", models.DecimalField(decimal_places=0, default=0, max_digits=14, validators=[django.core.validators.MinValueValidator(0)], verbose_name="کارمزد (ریال)")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="آخرین ویرایش")),
            ],
            options={
                "verbose_name": "کارمزد سامانه",
                "verbose_name_plural": "کارمزد سامانه",
            },
        ),
        migrations.CreateModel(
            name="Session",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=200, verbose_name="عنوان")),
                ("description", models.TextField(blank=True, verbose_name="توضیحات")),
                ("address", models.CharField(blank=True, max_length=500, verbose_name="آدرس")),
                ("objectives", models.JSONField(default=list, verbose_name="اهداف")),
                ("equipments", models.JSONField(blank=True, default=list, verbose_name="تجهیزات")),
                ("additional_notes", models.TextField(blank=True, verbose_name="یادداشت‌های تکمیلی")),
                ("fee", models.DecimalField(decimal_places=0, default=0, max_digits=14, validators=[django.core.validators.MinValueValidator(0)], verbose_name="هزینه جلسه (ریال)")),
                ("max_participants", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)], verbose_name="حداکثر شرکت‌کننده")),
                ("participant_min_age", models.PositiveSmallIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)], verbose_name="حداقل سن")),
                ("started_at", models.DateTimeField(verbose_name="زمان شروع")),
                ("completed_at", models.DateTimeField(verbose_name="زمان پایان")),
                ("status", models.CharField(choices=[("created", "ایجاد شده"), ("ongoing", "در حال برگزاری"), ("completed", "پایان یافته"), ("cancelled", "لغو شده")], default="created", max_length=15, verbose_name="وضعیت")),
                ("report_valid", models.BooleanField(default=False, verbose_name="امکان گزارش")),
                ("report_till", models.DateTimeField(blank=True, null=True, verbose_name="مهلت گزارش")),
                ("recurrence_group", models.UUIDField(blank=True, db_index=True, null=True, verbose_name="گروه تکرار")),
                ("cancelled_at", models.DateTimeField(blank=True, null=True, verbose_name="زمان لغو")),
                ("cancellation_note", models.TextField(blank=True, verbose_name="دلیل لغو")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="تاریخ ایجاد")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="آخرین ویرایش")),
                ("coach", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="coached_sessions", to=settings.AUTH_USER_MODEL, verbose_name="مربی")),
                ("cancelled_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="cancelled_sessions", to=settings.AUTH_USER_MODEL, verbose_name="لغو شده توسط")),
            ],
            options={
                "verbose_name": "جلسه",
                "verbose_name_plural": "جلسات",
                "ordering": ["-started_at"],
                "indexes": [
                    models.Index(fields=["status", "started_at"], name="session_status_start_idx"),
                    models.Index(fields=["status", "completed_at"], name="session_status_end_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("completed_at__gt", models.F("started_at"))), name="session_completed_after_start"),
                    models.CheckConstraint(condition=models.Q(("fee__gte", 0)), name="session_fee_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SessionParticipant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("player_status", models.CharField(choices=[("pending", "در انتظار پرداخت"), ("attending", "حاضر"), ("cancelled", "لغو شده")], default="pending", max_length=15, verbose_name="وضعیت حضور")),
                ("payment_status", models.CharField(choices=[("pending", "در انتظار پرداخت"), ("paid", "پرداخت شده"), ("cash", "پرداخت نقدی"), ("failed", "ناموفق"), ("refunded", "بازگشت داده شده")], default="pending", max_length=15, verbose_name="وضعیت پرداخت")),
                ("payment_method", models.CharField(choices=[("online", "آنلاین"), ("cash", "نقدی")], default="online", max_length=10, verbose_name="روش پرداخت")),
                ("cancelled_at", models.DateTimeField(blank=True, null=True, verbose_name="زمان لغو")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="تاریخ ثبت‌نام")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="آخرین ویرایش")),
                ("session", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="participants", to="coachconnect.session", verbose_name="جلسه")),
                ("player", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="participations", to=settings.AUTH_USER_MODEL, verbose_name="بازیکن")),
            ],
            options={
                "verbose_name": "شرکت‌کننده",
                "verbose_name_plural": "شرکت‌کنندگان",
                "ordering": ["created_at"],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("player_status__in", ["pending", "attending"])), fields=("session", "player"), name="one_active_participant_per_session"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("payment_type", models.CharField(choices=[("enrollment", "ثبت‌نام"), ("refund", "بازگشت وجه")], default="enrollment", max_length=15, verbose_name="نوع")),
                ("session_fee", models.DecimalField(decimal_places=0, max_digits=14, verbose_name="هزینه جلسه (ریال)")),
                ("platform_fee", models.DecimalField(decimal_places=0, default=0, max_digits=14, verbose_name="کارمزد سامانه (ریال)")),
                ("total_amount", models.DecimalField(decimal_places=0, max_digits=14, verbose_name="مبلغ کل (ریال)")),
                ("status", models.CharField(choices=[("pending", "در انتظار"), ("succeeded", "موفق"), ("failed", "ناموفق"), ("refunded", "بازگشت داده شده")], default="pending", max_length=15, verbose_name="وضعیت")),
                ("authority", models.CharField(blank=True, db_index=True, max_length=100, verbose_name="Authority")),
                ("ref_id", models.CharField(blank=True, max_length=100, verbose_name="Ref ID")),
                ("raw_response", models.JSONField(blank=True, default=dict, verbose_name="پاسخ خام")),
                ("paid_at", models.DateTimeField(blank=True, null=True, verbose_name="تاریخ پرداخت")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="تاریخ ایجاد")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="آخرین ویرایش")),
                ("session", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="coachconnect.session", verbose_name="جلسه")),
                ("participant", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="coachconnect.sessionparticipant", verbose_name="شرکت‌کننده")),
                ("payer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payments", to=settings.AUTH_USER_MODEL, verbose_name="پرداخت‌کننده")),
                ("refund_of", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="refunds", to="coachconnect.payment", verbose_name="بازگشت پرداختِ")),
            ],
            options={
                "verbose_name": "پرداخت",
                "verbose_name_plural": "پرداخت‌ها",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="RefundRequest",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=[("pending", "در انتظار بررسی"), ("accepted", "پذیرفته شده"), ("cancelled", "رد شده")], default="pending", max_length=15, verbose_name="وضعیت")),
                ("refund_request_type", models.CharField(choices=[("auto_accepted", "پذیرش خودکار"), ("admin_approval", "نیازمند تأیید مدیر")], max_length=20, verbose_name="نوع")),
                ("refunded_amount", models.DecimalField(decimal_places=0, default=0, max_digits=14, verbose_name="مبلغ بازگشتی (ریال)")),
                ("reason", models.TextField(blank=True, verbose_name="دلیل")),
                ("rejection_note", models.TextField(blank=True, verbose_name="دلیل رد")),
                ("resolved_at", models.DateTimeField(blank=True, null=True, verbose_name="زمان تصمیم")),
                ("execution_status", models.CharField(choices=[("not_required", "بدون اجرا"), ("pending", "در صف اجرا"), ("processing", "در حال اجرا"), ("succeeded", "اجرا شد"), ("failed", "خطا در اجرا")], default="not_required", max_length=15, verbose_name="وضعیت اجرا")),
                ("idempotency_key", models.UUIDField(default=uuid.uuid4, editable=False, unique=True, verbose_name="کلید یکتایی")),
                ("gateway_ref", models.CharField(blank=True, max_length=100, verbose_name="شناسه درگاه")),
                ("attempts", models.PositiveSmallIntegerField(default=0, verbose_name="تعداد تلاش")),
                ("last_error", models.TextField(blank=True, verbose_name="آخرین خطا")),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True, verbose_name="آخرین تلاش")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="تاریخ ایجاد")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="آخرین ویرایش")),
                ("session", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refund_requests", to="coachconnect.session", verbose_name="جلسه")),
                ("participant", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refund_requests", to="coachconnect.sessionparticipant", verbose_name="شرکت‌کننده")),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refund_requests", to="coachconnect.payment", verbose_name="پرداخت ثبت‌نام")),
                ("refund_payment", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="refund_request", to="coachconnect.payment", verbose_name="پرداخت بازگشت")),
                ("accepted_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="accepted_refunds", to=settings.AUTH_USER_MODEL, verbose_name="تأیید شده توسط")),
                ("rejected_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="rejected_refunds", to=settings.AUTH_USER_MODEL, verbose_name="رد شده توسط")),
            ],
            options={
                "verbose_name": "درخواست بازگشت وجه",
                "verbose_name_plural": "درخواست‌های بازگشت وجه",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["execution_status", "last_attempt_at"], name="refund_exec_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status__in", ["pending", "accepted"])), fields=("participant", "session"), name="one_open_refund_per_participant"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DuePayout",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("total_amount", models.DecimalField(decimal_places=0, max_digits=14, verbose_name="مبلغ (ریال)")),
                ("paid_participants", models.PositiveIntegerField(default=0, verbose_name="تعداد پرداخت‌کننده")),
                ("status", models.CharField(choices=[("pending", "در انتظار پرداخت"), ("hold", "معلق"), ("released", "پرداخت شده")], default="pending", max_length=15, verbose_name="وضعیت")),
                ("released_at", models.DateTimeField(blank=True, null=True, verbose_name="تاریخ پرداخت")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="تاریخ ایجاد")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="آخرین ویرایش")),
                ("session", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="due_payout", to="coachconnect.session", verbose_name="جلسه")),
                ("coach", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="due_payouts", to=settings.AUTH_USER_MODEL, verbose_name="مربی")),
            ],
            options={
                "verbose_name": "تسویه مربی",
                "verbose_name_plural": "تسویه‌های مربی",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="SessionReport",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.TextField(verbose_name="شرح گزارش")),
                ("need_refund", models.BooleanField(default=False, verbose_name="درخواست بازگشت وجه")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="تاریخ ثبت")),
                ("session", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="reports", to="coachconnect.session", verbose_name="جلسه")),
                ("participant", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="reports", to="coachconnect.sessionparticipant", verbose_name="شرکت‌کننده")),
            ],
            options={
                "verbose_name": "گزارش جلسه",
                "verbose_name_plural": "گزارش‌های جلسه",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("audience", models.CharField(choices=[("user", "کاربر"), ("admin", "مدیر")], default="user", max_length=10, verbose_name="مخاطب")),
                ("level", models.CharField(choices=[("info", "اطلاع"), ("warning", "هشدار"), ("critical", "بحرانی")], default="info", max_length=10, verbose_name="سطح")),
                ("type", models.CharField(choices=[("session_created", "ایجاد جلسه"), ("session_cancelled", "لغو جلسه"), ("enrollment", "ثبت‌نام در جلسه"), ("payment_failed", "پرداخت ناموفق"), ("refund_accepted", "پذیرش بازگشت وجه"), ("refund_pending", "درخواست بازگشت وجه"), ("refund_rejected", "رد بازگشت وجه"), ("payout_ready", "آماده بودن تسویه"), ("coach_warning", "اخطار به مربی"), ("general", "عمومی")], default="general", max_length=30, verbose_name="نوع اعلان")),
                ("title", models.CharField(max_length=255, verbose_name="عنوان")),
                ("message", models.TextField(verbose_name="پیام")),
                ("is_read", models.BooleanField(default=False, verbose_name="خوانده شده")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="تاریخ ارسال")),
                ("read_at", models.DateTimeField(blank=True, null=True, verbose_name="تاریخ خواندن")),
                ("recipient", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="notifications", to=settings.AUTH_USER_MODEL, verbose_name="دریافت‌کننده")),
                ("related_session", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="notifications", to="coachconnect.session", verbose_name="جلسه مرتبط")),
            ],
            options={
                "verbose_name": "اعلان",
                "verbose_name_plural": "اعلان‌ها",
                "ordering": ["-created_at"],
            },
        ),
    ]
