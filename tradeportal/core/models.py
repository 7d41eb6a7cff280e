from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Staff and customer accounts. Role comes from group membership (see core.permissions)."""
    phone = models.CharField(max_length=20, blank=True, null=True)
    company_name = models.CharField(max_length=255, blank=True, null=True)
    country = models.CharField(max_length=100, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    @property
    def role(self):
        from .permissions import get_user_role
        return get_user_role(self)


class Setting(models.Model):
    """System settings"""
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'


class AuditLog(models.Model):
    """Audit trail for business events and data changes"""
    EVENT_TYPE_CHOICES = [
        ('user_signup', 'User Signup'),
        ('role_changed', 'Role Changed'),
        ('settings_changed', 'Settings Changed'),
        ('data_create', 'Record Created'),
        ('data_update', 'Record Updated'),
        ('data_delete', 'Record Deleted'),
        ('lead_converted', 'Lead Converted'),
        ('quote_request_submitted', 'Quote Request Submitted'),
        ('quote_request_converted', 'Quote Request Converted To Lead'),
        ('quote_created', 'Quote Created'),
        ('quote_updated', 'Quote Updated'),
        ('quote_status_changed', 'Quote Status Changed'),
        ('quote_pdf_generated', 'Quote PDF Generated'),
        ('quote_sent', 'Quote Sent'),
        ('quote_customer_response', 'Quote Customer Response'),
        ('quote_revision_requested', 'Quote Revision Requested'),
        ('quote_converted_to_order', 'Quote Converted To Order'),
        ('quote_linked_to_request', 'Quote Linked To Request'),
        ('quote_trashed', 'Quote Moved To Trash'),
        ('quote_restored', 'Quote Restored'),
        ('quote_deleted', 'Quote Permanently Deleted'),
        ('quote_expiry_reminder_sent', 'Quote Expiry Reminder Sent'),
        ('order_created', 'Order Created'),
        ('order_status_changed', 'Order Status Changed'),
        ('order_delivery_updated', 'Order Delivery Updated'),
        ('order_tracking_link_sent', 'Order Tracking Link Sent'),
        ('payment_recorded', 'Payment Recorded'),
        ('invoice_generated', 'Invoice Generated'),
        ('invoice_void', 'Invoice Void'),
    ]

    SEVERITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    event_type = models.CharField(max_length=50, choices=EVENT_TYPE_CHOICES)
    action = models.CharField(max_length=50)
    resource_type = models.CharField(max_length=100)
    resource_id = models.CharField(max_length=100)
    resource_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., quote number, order number)")
    event_data = models.JSONField(default=dict, blank=True)
    changes = models.JSONField(default=dict, blank=True, help_text="Before/after snapshot: {'before': {...}, 'after': {...}}")
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, default='low')
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_6f1e2b_idx'),
            models.Index(fields=['event_type'], name='audit_logs_event_t_9c4d1a_idx'),
            models.Index(fields=['resource_type', 'resource_id'], name='audit_logs_resourc_3b7e5f_idx'),
            models.Index(fields=['resource_reference'], name='audit_logs_resourc_8a2c4d_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} {self.resource_type}#{self.resource_id}"
