from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Setting, AuditLog


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'company_name', 'first_name', 'last_name', 'is_active', 'date_joined']
    list_filter = ['is_active', 'is_superuser', 'groups', 'date_joined']
    search_fields = ['username', 'email', 'first_name', 'last_name', 'company_name']
    ordering = ['username']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Additional Info', {'fields': ('phone', 'company_name', 'country')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Additional Info', {'fields': ('phone', 'company_name', 'country')}),
    )


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ['key', 'value', 'updated_at']
    search_fields = ['key', 'description']
    ordering = ['key']
    readonly_fields = ['updated_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'event_type', 'resource_type', 'resource_reference', 'severity', 'ip_address', 'created_at']
    list_filter = ['event_type', 'resource_type', 'severity', 'created_at']
    search_fields = ['user__username', 'resource_type', 'resource_id', 'resource_reference']
    ordering = ['-created_at']
    readonly_fields = ['user', 'event_type', 'action', 'resource_type', 'resource_id', 'resource_reference',
                       'event_data', 'changes', 'severity', 'ip_address', 'user_agent', 'created_at']
