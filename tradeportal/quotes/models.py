import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from tradeportal.core.models import User
from tradeportal.catalog.models import Product
from tradeportal.crm.models import Customer, Lead


class QuoteRequest(models.Model):
    """Inbound inquiry from a portal customer or an anonymous lead, before pricing"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('reviewed', 'Reviewed'),
        ('quoted', 'Quoted'),
        ('converted', 'Converted'),
        ('declined', 'Declined'),
    ]

    REQUEST_TYPE_CHOICES = [
        ('customer', 'Customer'),
        ('lead', 'Lead'),
    ]

    URGENCY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    request_number = models.CharField(max_length=50, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='quote_requests')
    title = models.CharField(max_length=255, blank=True)
    message = models.TextField(blank=True)
    request_type = models.CharField(max_length=20, choices=REQUEST_TYPE_CHOICES, default='customer')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    urgency = models.CharField(max_length=10, choices=URGENCY_CHOICES, default='medium')
    lead_company_name = models.CharField(max_length=255, blank=True)
    lead_contact_name = models.CharField(max_length=200, blank=True)
    lead_email = models.EmailField(blank=True)
    lead_phone = models.CharField(max_length=30, blank=True)
    lead_country = models.CharField(max_length=100, blank=True)
    lead_industry = models.CharField(max_length=100, blank=True)
    admin_notes = models.TextField(blank=True)
    submitted_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='quote_requests')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.request_number

    class Meta:
        db_table = 'quote_requests'
        ordering = ['-created_at']

    @property
    def contact_email(self):
        if self.customer and self.customer.email:
            return self.customer.email
        return self.lead_email


class QuoteRequestItem(models.Model):
    quote_request = models.ForeignKey(QuoteRequest, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='quote_request_items')
    product_name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit = models.CharField(max_length=20, default='kg')
    specifications = models.TextField(blank=True)
    preferred_grade = models.CharField(max_length=100, blank=True)

    class Meta:
        db_table = 'quote_request_items'
        ordering = ['id']


class QuoteQuerySet(models.QuerySet):
    def active(self):
        """Quotes that are not in the trash"""
        return self.filter(deleted_at__isnull=True)

    def trashed(self):
        return self.filter(deleted_at__isnull=False)


class Quote(models.Model):
    """Priced proposal. Status changes only through quotes.services."""
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('pending_review', 'Pending Review'),
        ('approved', 'Approved'),
        ('sent', 'Sent'),
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
        ('converted', 'Converted To Order'),
        ('expired', 'Expired'),
    ]

    ORIGIN_CHOICES = [
        ('manual', 'Manual'),
        ('request', 'From Quote Request'),
        ('direct', 'Direct'),
    ]

    quote_number = models.CharField(max_length=50, unique=True)
    title = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotes')
    customer_email = models.EmailField(blank=True)
    lead = models.ForeignKey(Lead, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotes')
    linked_quote_request = models.ForeignKey(QuoteRequest, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotes')
    origin_type = models.CharField(max_length=20, choices=ORIGIN_CHOICES, default='manual')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft', db_index=True)
    currency = models.CharField(max_length=3, default='USD')
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    shipping_fee = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    valid_until = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    terms = models.TextField(blank=True)
    final_file_url = models.CharField(max_length=500, blank=True, help_text="Storage path of the generated PDF")
    pdf_generated_at = models.DateTimeField(null=True, blank=True)
    submitted_for_review_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotes_approved')
    approved_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)
    customer_response_notes = models.TextField(blank=True)
    revision_number = models.PositiveIntegerField(default=1)
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    deleted_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotes_deleted')
    status_before_delete = models.CharField(max_length=20, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotes_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = QuoteQuerySet.as_manager()

    def __str__(self):
        return self.quote_number

    class Meta:
        db_table = 'quotes'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'valid_until'], name='idx_quote_status_valid'),
            models.Index(fields=['customer', 'status'], name='idx_quote_customer_status'),
        ]

    @property
    def is_trashed(self):
        return self.deleted_at is not None

    @property
    def recipient_email(self):
        if self.customer_email:
            return self.customer_email
        if self.customer and self.customer.email:
            return self.customer.email
        return ''

    @property
    def recipient_name(self):
        if self.customer:
            return self.customer.contact_name or self.customer.company_name
        return ''


class QuoteItem(models.Model):
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='quote_items')
    product_name = models.CharField(max_length=255)
    product_description = models.TextField(blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit = models.CharField(max_length=20, default='kg')
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    specifications = models.TextField(blank=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'quote_items'
        ordering = ['sort_order', 'id']


class QuoteRevision(models.Model):
    """Customer request to change a sent quote"""
    STATUS_CHOICES = [
        ('submitted', 'Submitted'),
        ('reviewing', 'Reviewing'),
        ('revised_sent', 'Revised Quote Sent'),
        ('resolved', 'Resolved'),
        ('rejected', 'Rejected'),
    ]

    REQUEST_TYPE_CHOICES = [
        ('quantity_change', 'Quantity Change'),
        ('swap_items', 'Swap Items'),
        ('delivery_change', 'Delivery Change'),
        ('other', 'Other'),
    ]

    OPEN_STATUSES = ('submitted', 'reviewing')

    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name='revisions')
    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='quote_revisions')
    requested_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='quote_revisions')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='submitted')
    request_type = models.CharField(max_length=20, choices=REQUEST_TYPE_CHOICES, default='other')
    requested_changes = models.JSONField(default=dict, blank=True)
    customer_note = models.TextField(blank=True)
    admin_note = models.TextField(blank=True)
    revision_number = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'quote_revisions'
        ordering = ['-created_at']


class MagicLinkToken(models.Model):
    """Single-purpose expiring token letting a customer act without logging in"""
    TOKEN_TYPE_CHOICES = [
        ('quote_approval', 'Quote Approval'),
        ('order_tracking', 'Order Tracking'),
    ]

    token = models.CharField(max_length=64, unique=True)
    token_type = models.CharField(max_length=20, choices=TOKEN_TYPE_CHOICES)
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, null=True, blank=True, related_name='magic_links')
    order = models.ForeignKey('orders.Order', on_delete=models.CASCADE, null=True, blank=True, related_name='magic_links')
    email = models.EmailField()
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'magic_link_tokens'
        ordering = ['-created_at']

    @classmethod
    def issue(cls, token_type, email, quote=None, order=None, ttl_hours=None):
        ttl_hours = ttl_hours or settings.MAGIC_LINK_TTL_HOURS
        return cls.objects.create(
            token=secrets.token_urlsafe(32),
            token_type=token_type,
            quote=quote,
            order=order,
            email=email,
            expires_at=timezone.now() + timedelta(hours=ttl_hours),
        )

    @property
    def is_expired(self):
        return timezone.now() >= self.expires_at

    @property
    def is_used(self):
        return self.used_at is not None


class QuoteApproval(models.Model):
    """Customer decision recorded through a quote approval link"""
    DECISION_CHOICES = [
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name='approvals')
    token = models.ForeignKey(MagicLinkToken, on_delete=models.SET_NULL, null=True, blank=True, related_name='approvals')
    customer_email = models.EmailField(blank=True)
    decision = models.CharField(max_length=10, choices=DECISION_CHOICES)
    customer_notes = models.TextField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'quote_approvals'
        ordering = ['-created_at']
