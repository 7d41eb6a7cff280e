from django.contrib import admin
from .models import Quote, QuoteItem, QuoteRequest, QuoteRequestItem, QuoteRevision, MagicLinkToken, QuoteApproval


class QuoteItemInline(admin.TabularInline):
    model = QuoteItem
    extra = 0


class QuoteRequestItemInline(admin.TabularInline):
    model = QuoteRequestItem
    extra = 0


@admin.register(Quote)
class QuoteAdmin(admin.ModelAdmin):
    list_display = ['quote_number', 'customer', 'status', 'total_amount', 'currency', 'valid_until', 'revision_number', 'deleted_at', 'created_at']
    list_filter = ['status', 'origin_type', 'currency']
    search_fields = ['quote_number', 'title', 'customer__company_name', 'customer_email']
    readonly_fields = ['quote_number', 'status', 'subtotal', 'tax_amount', 'total_amount', 'created_at', 'updated_at']
    inlines = [QuoteItemInline]


@admin.register(QuoteRequest)
class QuoteRequestAdmin(admin.ModelAdmin):
    list_display = ['request_number', 'customer', 'lead_company_name', 'status', 'urgency', 'created_at']
    list_filter = ['status', 'urgency', 'request_type']
    search_fields = ['request_number', 'title', 'lead_company_name', 'lead_email']
    inlines = [QuoteRequestItemInline]


@admin.register(QuoteRevision)
class QuoteRevisionAdmin(admin.ModelAdmin):
    list_display = ['quote', 'request_type', 'status', 'revision_number', 'created_at']
    list_filter = ['status', 'request_type']


@admin.register(MagicLinkToken)
class MagicLinkTokenAdmin(admin.ModelAdmin):
    list_display = ['token_type', 'email', 'quote', 'order', 'expires_at', 'used_at']
    list_filter = ['token_type']
    search_fields = ['email']


@admin.register(QuoteApproval)
class QuoteApprovalAdmin(admin.ModelAdmin):
    list_display = ['quote', 'customer_email', 'decision', 'ip_address', 'created_at']
    list_filter = ['decision']
