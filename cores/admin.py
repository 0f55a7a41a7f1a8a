from django.contrib import admin

from .models import School, SchoolClass, AuditLog, Notification


@admin.register(School)
class SchoolAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'status', 'trial_ends_at', 'created_at')
    list_filter = ('status',)
    search_fields = ('name', 'code')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'actor', 'action', 'target_model', 'target_object_id')
    list_filter = ('action',)
    readonly_fields = [f.name for f in AuditLog._meta.fields]


admin.site.register(SchoolClass)
admin.site.register(Notification)
