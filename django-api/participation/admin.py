import logging

from django.contrib import admin, messages

from participation.domain.errors import DomainError
from participation.models import Event, FeedRecord, Participation, Payment, WaitlistEntry
from participation.services import build_participation_service

logger = logging.getLogger(__name__)


class ParticipationInline(admin.TabularInline):
    model = Participation
    extra = 0
    readonly_fields = ["user", "joined_at"]
    can_delete = False


class WaitlistEntryInline(admin.TabularInline):
    model = WaitlistEntry
    extra = 0
    fields = ["user", "sequence", "status", "offer_expires_at"]
    readonly_fields = fields
    can_delete = False


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "host",
        "status",
        "current_participants",
        "max_participants",
        "held_seats",
        "joining_fee",
        "starts_at",
    ]
    list_filter = ["status", "waitlist_enabled"]
    search_fields = ["name", "location"]
    readonly_fields = ["status", "current_participants", "held_seats", "waitlist_sequence"]
    inlines = [ParticipationInline, WaitlistEntryInline]
    actions = ["cancel_events", "reopen_events", "complete_events"]

    def save_model(self, request, obj, form, change):
        """Counters and status belong to the service; resizes go through it."""
        if not change:
            super().save_model(request, obj, form, change)
            return
        fields = [name for name in form.changed_data if name != "max_participants"]
        if fields:
            obj.save(update_fields=[*fields, "updated_at"])
        if "max_participants" in form.changed_data:
            try:
                build_participation_service().change_capacity(
                    obj.pk, request.user.pk, obj.max_participants
                )
            except DomainError as exc:
                logger.warning("Admin resize of event %s failed: %s", obj.pk, exc)
                self.message_user(request, exc.message, messages.ERROR)

    def _run_lifecycle(self, request, queryset, operation: str, done: str) -> None:
        service = build_participation_service()
        applied = 0
        for event in queryset:
            try:
                getattr(service, operation)(event.pk, request.user.pk)
            except DomainError as exc:
                logger.warning("Admin %s of event %s failed: %s", operation, event.pk, exc)
                self.message_user(request, f"{event.name}: {exc.message}", messages.ERROR)
            else:
                applied += 1
        self.message_user(request, f"{done} {applied} event(s).", messages.SUCCESS)

    @admin.action(description="Cancel selected events")
    def cancel_events(self, request, queryset):
        self._run_lifecycle(request, queryset, "cancel_event", "Cancelled")

    @admin.action(description="Reopen selected events")
    def reopen_events(self, request, queryset):
        self._run_lifecycle(request, queryset, "reopen_event", "Reopened")

    @admin.action(description="Complete selected events")
    def complete_events(self, request, queryset):
        self._run_lifecycle(request, queryset, "complete_event", "Completed")


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    list_display = ["event", "user", "sequence", "status", "offer_expires_at"]
    list_filter = ["status", "event"]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ["id", "event", "user", "amount", "currency", "status", "created_at"]
    list_filter = ["status"]
    search_fields = ["provider_reference"]
    actions = ["confirm_payments"]

    @admin.action(description="Confirm selected payments")
    def confirm_payments(self, request, queryset):
        gateway = build_participation_service().gateway
        confirmed = 0
        for payment in queryset.filter(status=Payment.Status.PENDING):
            try:
                gateway.confirm_payment(payment.pk)
            except DomainError as exc:
                logger.warning("Admin confirmation of payment %s failed: %s", payment.pk, exc)
                self.message_user(request, f"{payment.pk}: {exc.message}", messages.ERROR)
            else:
                confirmed += 1
        self.message_user(request, f"Confirmed {confirmed} payment(s).", messages.SUCCESS)


@admin.register(FeedRecord)
class FeedRecordAdmin(admin.ModelAdmin):
    list_display = ["kind", "type", "user", "related_event", "is_read", "created_at"]
    list_filter = ["kind", "type", "is_read"]
