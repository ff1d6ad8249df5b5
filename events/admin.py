from django.contrib import admin
from .models import Certificate, Event, EventCategory, EventTag, Feedback, Profile, Registration


class RegistrationInline(admin.TabularInline):
    model = Registration
    extra = 0
    fields = ('user', 'status', 'registration_date', 'check_in_time')
    readonly_fields = ('registration_date',)


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'role', 'approval_status', 'department')
    list_filter = ('role', 'approval_status')
    search_fields = ('user__username', 'user__email', 'student_id')


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ('title', 'organizer', 'category', 'start_time', 'approval_status', 'registration_count')
    list_filter = ('approval_status', 'category')
    search_fields = ('title', 'location')
    inlines = [RegistrationInline]

    def registration_count(self, obj):
        return obj.capacity_snapshot().registered_count


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = ('user', 'event', 'status', 'registration_date', 'check_in_time')
    list_filter = ('event', 'status')
    search_fields = ('user__username', 'user__email')


@admin.register(Feedback)
class FeedbackAdmin(admin.ModelAdmin):
    list_display = ('event', 'user', 'rating', 'created_at')
    list_filter = ('rating',)


@admin.register(Certificate)
class CertificateAdmin(admin.ModelAdmin):
    list_display = ('student', 'event', 'issued_by', 'issued_at')


admin.site.register(EventCategory)
admin.site.register(EventTag)
