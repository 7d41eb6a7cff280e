from django.contrib import admin
from .models import Order, OrderItem, OrderStatusHistory, Invoice, Payment


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    readonly_fields = ['old_status', 'new_status', 'notes', 'changed_by', 'created_at']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer', 'status', 'total_amount', 'amount_paid', 'currency', 'created_at']
    list_filter = ['status', 'payment_method', 'currency']
    search_fields = ['order_number', 'tracking_number', 'customer__company_name']
    readonly_fields = ['order_number', 'status', 'amount_paid', 'created_at', 'updated_at']
    inlines = [OrderItemInline, OrderStatusHistoryInline]


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'invoice_type', 'order', 'customer', 'status', 'total_amount', 'issue_date']
    list_filter = ['invoice_type', 'status']
    search_fields = ['invoice_number', 'order__order_number']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['order', 'amount', 'payment_method', 'reference', 'recorded_by', 'created_at']
    list_filter = ['payment_method']
    search_fields = ['order__order_number', 'reference']
