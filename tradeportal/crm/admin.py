from django.contrib import admin
from .models import Customer, Lead, Activity


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['company_name', 'contact_name', 'email', 'phone', 'country', 'customer_status', 'priority', 'created_at']
    list_filter = ['customer_status', 'priority', 'country']
    search_fields = ['company_name', 'contact_name', 'email', 'phone']


@admin.register(Lead)
class LeadAdmin(admin.ModelAdmin):
    list_display = ['contact_name', 'company_name', 'email', 'source', 'status', 'lead_score', 'assigned_to', 'created_at']
    list_filter = ['status', 'source']
    search_fields = ['contact_name', 'company_name', 'email']


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ['activity_type', 'subject', 'customer', 'lead', 'status', 'created_by', 'created_at']
    list_filter = ['activity_type', 'status']
    search_fields = ['subject', 'description']
