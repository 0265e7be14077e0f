"""
admin.py
─────────────────────────────────────────────────────────────────────
پنل مدیریت: جلسات، ثبت‌نام‌ها، پرداخت‌ها، داوری بازگشت وجه و تسویه مربی.
تأیید/رد بازگشت وجه از طریق RefundService انجام می‌شود، نه ویرایش مستقیم ردیف.
"""

from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin
from django.utils import timezone
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from .errors import DomainError
from .models import (
    CustomUser, DuePayout, Notification, Payment, PlatformFee,
    RefundRequest, Session, SessionParticipant, SessionReport,
)
from .services.jalali_utils import jalali_datetime_display
from .services.refund_service import RefundService
from .tasks import execute_refund_task

# ── Site branding ────────────────────────────────────────────────────
admin.site.site_header  = _("سامانه جلسات مربی‌گری")
admin.site.site_title   = _("پنل مدیریت")
admin.site.index_title  = _("خانه")


def _badge(color: str, label: str):
    return format_html(
        '<span style="background:{};color:#fff;padding:2px 8px;border-radius:4px">{}</span>',
        color, label,
    )


# ════════════════════════════════════════════════════════════════════
#  Users
# ════════════════════════════════════════════════════════════════════

@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    list_display    = ("username", "full_name", "phone", "role_badges", "is_blocked", "is_active")
    list_filter     = ("is_active", "is_blocked", "is_coach", "is_player", "is_platform_admin")
    search_fields   = ("username", "first_name", "last_name", "phone", "email")
    ordering        = ("last_name",)
    actions         = ["block_selected", "unblock_selected"]

    fieldsets = (
        (_("اطلاعات ورود"),  {"fields": ("username", "password")}),
        (_("اطلاعات شخصی"),  {"fields": ("first_name", "last_name", "email", "phone", "dob")}),
        (_("نقش‌ها"),         {"fields": ("is_coach", "is_player", "is_platform_admin", "is_blocked")}),
        (_("دسترسی‌ها"),      {"fields": ("is_active", "is_staff", "is_superuser",
                                          "groups", "user_permissions")}),
        (_("تاریخ‌ها"),       {"fields": ("date_joined", "last_login")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": (
            "username", "first_name", "last_name", "phone", "dob", "password1", "password2",
        )}),
    )

    def full_name(self, obj):
        return obj.get_full_name()
    full_name.short_description = _("نام کامل")

    def role_badges(self, obj):
        color_map = {"coach": "#fd7e14", "player": "#6f42c1", "admin": "#007bff"}
        roles = obj.get_roles()
        if not roles:
            return "—"
        return format_html(
            "".join(['<span style="background:{};color:#fff;padding:2px 7px;'
                     'border-radius:4px;margin:1px;font-size:11px">{}</span>'] * len(roles)),
            *[v for r in roles for v in (color_map.get(r, "#999"), r.label)],
        )
    role_badges.short_description = _("نقش‌ها")

    def block_selected(self, request, queryset):
        count = queryset.filter(is_coach=True).update(is_blocked=True)
        self.message_user(request, f"{count} مربی مسدود شد.")
    block_selected.short_description = _("⛔ مسدود کردن مربیان انتخاب‌شده")

    def unblock_selected(self, request, queryset):
        count = queryset.update(is_blocked=False)
        self.message_user(request, f"{count} کاربر رفع مسدودیت شد.")
    unblock_selected.short_description = _("✅ رفع مسدودیت")


@admin.register(PlatformFee)
class PlatformFeeAdmin(admin.ModelAdmin):
    list_display = ("fee", "updated_at")


# ════════════════════════════════════════════════════════════════════
#  Sessions
# ════════════════════════════════════════════════════════════════════

class ParticipantInline(admin.TabularInline):
    model           = SessionParticipant
    extra           = 0
    fields          = ("player", "player_status", "payment_status", "payment_method", "cancelled_at")
    readonly_fields = fields
    can_delete      = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display    = ("title", "coach", "jalali_start", "fee", "max_participants",
                       "seats_taken", "status_badge")
    list_filter     = ("status", "report_valid")
    search_fields   = ("title", "coach__username", "coach__last_name")
    readonly_fields = ("status", "report_valid", "report_till", "recurrence_group",
                       "cancelled_at", "cancelled_by", "created_at", "updated_at")
    inlines         = [ParticipantInline]

    def jalali_start(self, obj):
        return jalali_datetime_display(obj.started_at)
    jalali_start.short_description = _("زمان شروع (شمسی)")

    def seats_taken(self, obj):
        return obj.attending_paid_count()
    seats_taken.short_description = _("ثبت‌نام قطعی")

    def status_badge(self, obj):
        colors = {"created": "#17a2b8", "ongoing": "#ffc107",
                  "completed": "#28a745", "cancelled": "#dc3545"}
        return _badge(colors.get(obj.status, "#999"), obj.get_status_display())
    status_badge.short_description = _("وضعیت")

    # وضعیت فقط از مسیر سرویس‌ها تغییر می‌کند
    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SessionParticipant)
class SessionParticipantAdmin(admin.ModelAdmin):
    list_display    = ("player", "session", "player_status", "payment_status", "payment_method", "created_at")
    list_filter     = ("player_status", "payment_status", "payment_method")
    search_fields   = ("player__username", "player__last_name", "session__title")
    readonly_fields = ("session", "player", "player_status", "payment_status",
                       "payment_method", "cancelled_at", "created_at", "updated_at")

    def has_add_permission(self, request):    return False
    def has_delete_permission(self, request, obj=None): return False


@admin.register(SessionReport)
class SessionReportAdmin(admin.ModelAdmin):
    list_display    = ("session", "participant", "need_refund", "created_at")
    list_filter     = ("need_refund",)
    search_fields   = ("session__title", "description")
    readonly_fields = ("session", "participant", "description", "need_refund", "created_at")

    def has_add_permission(self, request):    return False


# ════════════════════════════════════════════════════════════════════
#  Money
# ════════════════════════════════════════════════════════════════════

@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display    = ("payer", "session", "payment_type", "total_amount", "status_badge", "paid_at")
    list_filter     = ("payment_type", "status")
    search_fields   = ("payer__username", "payer__last_name", "authority", "ref_id")
    readonly_fields = ("payment_type", "session", "participant", "payer", "session_fee",
                       "platform_fee", "total_amount", "status", "authority", "ref_id",
                       "refund_of", "raw_response", "paid_at", "created_at", "updated_at")

    def status_badge(self, obj):
        colors = {"pending": "#ffc107", "succeeded": "#28a745",
                  "failed": "#dc3545", "refunded": "#6c757d"}
        return _badge(colors.get(obj.status, "#999"), obj.get_status_display())
    status_badge.short_description = _("وضعیت")

    def has_add_permission(self, request):    return False
    def has_delete_permission(self, request, obj=None): return request.user.is_superuser


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display    = ("participant", "session", "refunded_amount", "refund_request_type",
                       "status_badge", "execution_badge", "attempts", "created_at")
    list_filter     = ("status", "refund_request_type", "execution_status")
    search_fields   = ("participant__player__username", "participant__player__last_name",
                       "session__title", "gateway_ref")
    readonly_fields = ("session", "participant", "payment", "refund_payment", "status",
                       "refund_request_type", "refunded_amount", "reason", "accepted_by",
                       "rejected_by", "resolved_at", "execution_status", "idempotency_key",
                       "gateway_ref", "attempts", "last_error", "last_attempt_at",
                       "created_at", "updated_at")
    fields          = readonly_fields[:8] + ("rejection_note",) + readonly_fields[8:]
    actions         = ["accept_selected", "reject_selected", "retry_execution"]

    def status_badge(self, obj):
        colors = {"pending": "#ffc107", "accepted": "#28a745", "cancelled": "#dc3545"}
        return _badge(colors.get(obj.status, "#999"), obj.get_status_display())
    status_badge.short_description = _("وضعیت")

    def execution_badge(self, obj):
        colors = {"not_required": "#6c757d", "pending": "#17a2b8", "processing": "#ffc107",
                  "succeeded": "#28a745", "failed": "#dc3545"}
        return _badge(colors.get(obj.execution_status, "#999"), obj.get_execution_status_display())
    execution_badge.short_description = _("اجرا")

    # ── Actions ──────────────────────────────────────────────────
    def accept_selected(self, request, queryset):
        count = 0
        for refund in queryset.filter(status=RefundRequest.Status.PENDING):
            try:
                RefundService.accept_refund_request(request.user, refund.pk)
                count += 1
            except DomainError as e:
                self.message_user(request, f"{refund.pk}: {e.message}", level=messages.ERROR)
        self.message_user(request, f"{count} درخواست بازگشت وجه تأیید شد.")
    accept_selected.short_description = _("✅ تأیید درخواست‌های انتخاب‌شده")

    def reject_selected(self, request, queryset):
        """دلیل رد از فیلد «دلیل رد» هر ردیف خوانده می‌شود."""
        count = 0
        for refund in queryset.filter(status=RefundRequest.Status.PENDING):
            try:
                RefundService.reject_refund_request(request.user, refund.pk, note=refund.rejection_note)
                count += 1
            except DomainError as e:
                self.message_user(request, f"{refund.pk}: {e.message}", level=messages.ERROR)
        self.message_user(request, f"{count} درخواست بازگشت وجه رد شد.")
    reject_selected.short_description = _("❌ رد درخواست‌های انتخاب‌شده")

    def retry_execution(self, request, queryset):
        ids = list(queryset.filter(
            execution_status=RefundRequest.ExecutionStatus.FAILED,
        ).values_list("pk", flat=True))
        for pk in ids:
            execute_refund_task.delay(str(pk))
        self.message_user(request, f"{len(ids)} بازگشت وجه برای اجرای مجدد در صف قرار گرفت.")
    retry_execution.short_description = _("🔁 اجرای مجدد بازگشت وجه ناموفق")

    def has_add_permission(self, request):    return False
    def has_delete_permission(self, request, obj=None): return False


@admin.register(DuePayout)
class DuePayoutAdmin(admin.ModelAdmin):
    list_display    = ("coach", "session", "total_amount", "paid_participants", "status_badge", "released_at")
    list_filter     = ("status",)
    search_fields   = ("coach__username", "coach__last_name", "session__title")
    readonly_fields = ("session", "coach", "total_amount", "paid_participants",
                       "status", "released_at", "created_at", "updated_at")
    actions         = ["mark_released"]

    def status_badge(self, obj):
        colors = {"pending": "#ffc107", "hold": "#dc3545", "released": "#28a745"}
        return _badge(colors.get(obj.status, "#999"), obj.get_status_display())
    status_badge.short_description = _("وضعیت")

    def mark_released(self, request, queryset):
        count = queryset.filter(status=DuePayout.Status.PENDING).update(
            status=DuePayout.Status.RELEASED, released_at=timezone.now(), updated_at=timezone.now(),
        )
        self.message_user(request, f"{count} تسویه پرداخت‌شده علامت خورد.")
    mark_released.short_description = _("✅ علامت‌گذاری پرداخت‌شده")

    def has_add_permission(self, request):    return False


# ════════════════════════════════════════════════════════════════════
#  Notifications
# ════════════════════════════════════════════════════════════════════

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display    = ("recipient", "audience", "level", "type", "title", "is_read", "created_at")
    list_filter     = ("audience", "level", "type", "is_read")
    search_fields   = ("recipient__username", "title", "message")
    readonly_fields = ("created_at", "read_at")

    actions = ["mark_read"]
    def mark_read(self, request, queryset):
        queryset.update(is_read=True, read_at=timezone.now())
    mark_read.short_description = _("✅ خوانده‌شده")
