"""
Quote service layer.

Every status change goes through here: views and commands never assign
`quote.status` themselves. Each mutating operation runs in one transaction
with the quote row locked, so two concurrent transitions cannot both win.
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from tradeportal.core import functions
from tradeportal.core.exceptions import ConflictError, FunctionInvocationError, MagicLinkError, WorkflowError
from tradeportal.core.models import AuditLog
from tradeportal.core.storage import save_base64_document
from tradeportal.core.utils import create_audit_log
from tradeportal.crm.models import Lead
from tradeportal.crm.services import compute_lead_score, find_or_create_customer
from . import workflow
from .models import (
    Quote, QuoteItem, QuoteRequest, QuoteRequestItem, QuoteRevision, MagicLinkToken, QuoteApproval,
)

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')

QUOTE_EDITABLE_FIELDS = (
    'title', 'description', 'notes', 'terms', 'currency', 'valid_until', 'tax_rate', 'shipping_fee',
    'customer', 'customer_email', 'lead',
)


def money(value):
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


# ==================== NUMBERING ====================

def generate_quote_number():
    """QT-YYYYMMDD-NNN, sequential per day. The suffix widens past 999."""
    prefix = f"QT-{timezone.now().strftime('%Y%m%d')}-"
    numbers = Quote.objects.filter(quote_number__startswith=prefix).values_list('quote_number', flat=True)
    # Compare suffixes as integers: '-1000' sorts below '-999' as text
    last = max((int(n[len(prefix):]) for n in numbers if n[len(prefix):].isdigit()), default=0)
    return f"{prefix}{last + 1:03d}"


def generate_request_number():
    request_number = f"QR-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while QuoteRequest.objects.filter(request_number=request_number).exists():
        request_number = f"QR-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return request_number


# ==================== HELPERS ====================

def _lock(quote):
    return Quote.objects.select_for_update().get(pk=quote.pk)


def recalculate_totals(quote):
    """subtotal = sum of line totals; tax on subtotal; shipping added after tax"""
    subtotal = Decimal('0.00')
    for item in quote.items.all():
        subtotal += item.total_price
    quote.subtotal = money(subtotal)
    quote.tax_amount = money(quote.subtotal * Decimal(quote.tax_rate) / Decimal('100'))
    quote.total_amount = money(quote.subtotal + quote.tax_amount + Decimal(quote.shipping_fee or 0))
    return quote


def _replace_items(quote, items):
    quote.items.all().delete()
    QuoteItem.objects.bulk_create([
        QuoteItem(
            quote=quote,
            product=item.get('product'),
            product_name=item['product_name'],
            product_description=item.get('product_description', ''),
            quantity=money(item['quantity']),
            unit=item.get('unit') or 'kg',
            unit_price=money(item.get('unit_price') or 0),
            total_price=money(Decimal(item['quantity']) * Decimal(item.get('unit_price') or 0)),
            specifications=item.get('specifications', ''),
            sort_order=index,
        )
        for index, item in enumerate(items)
    ])


def _clear_document(quote):
    quote.final_file_url = ''
    quote.pdf_generated_at = None


def _set_status(quote, new_status, user=None, request=None, notes=''):
    """Apply a checked transition to a locked quote and record it"""
    workflow.assert_transition(quote, new_status)
    old_status = quote.status
    quote.status = new_status
    quote.save()
    create_audit_log(
        request=request,
        user=user,
        event_type='quote_status_changed',
        action='status_change',
        resource_type='Quote',
        resource_id=quote.id,
        resource_reference=quote.quote_number,
        event_data={'old_status': old_status, 'new_status': new_status, 'notes': notes},
        changes={'before': {'status': old_status}, 'after': {'status': new_status}},
    )
    logger.info(f"Quote {quote.quote_number}: {old_status} -> {new_status}")
    return quote


def document_payload(quote):
    """JSON body describing a quote for the PDF and e-mail functions"""
    customer = quote.customer
    return {
        'quoteId': quote.id,
        'quoteNumber': quote.quote_number,
        'title': quote.title,
        'description': quote.description,
        'currency': quote.currency,
        'subtotal': str(quote.subtotal),
        'taxRate': str(quote.tax_rate),
        'taxAmount': str(quote.tax_amount),
        'shippingFee': str(quote.shipping_fee),
        'totalAmount': str(quote.total_amount),
        'validUntil': quote.valid_until.isoformat() if quote.valid_until else None,
        'notes': quote.notes,
        'terms': quote.terms,
        'revisionNumber': quote.revision_number,
        'customer': {
            'companyName': customer.company_name if customer else '',
            'contactName': customer.contact_name if customer else '',
            'email': quote.recipient_email,
            'phone': customer.phone if customer else '',
            'country': customer.country if customer else '',
            'address': customer.address if customer else '',
        },
        'items': [
            {
                'productName': item.product_name,
                'description': item.product_description,
                'quantity': str(item.quantity),
                'unit': item.unit,
                'unitPrice': str(item.unit_price),
                'totalPrice': str(item.total_price),
                'specifications': item.specifications,
            }
            for item in quote.items.all()
        ],
    }


def approval_url(token):
    return f"{settings.PUBLIC_SITE_URL.rstrip('/')}/quote-approval/{token.token}"


# ==================== CREATE / EDIT ====================

def create_quote(user, items, customer=None, customer_email='', lead=None, title='', description='',
                 currency='USD', valid_until=None, apply_tax=False, tax_rate=None, shipping_fee=0,
                 notes='', terms=None, origin_type='manual', quote_request=None, request=None):
    """Create a draft quote with its line items (the quote wizard)"""
    if not items:
        raise WorkflowError('A quote needs at least one item')
    if customer is None and not customer_email:
        raise WorkflowError('A quote needs a customer or a customer email')

    if tax_rate is None:
        tax_rate = Decimal(str(settings.QUOTE_TAX_RATE)) if apply_tax else Decimal('0.00')
    if valid_until is None:
        valid_until = timezone.localdate() + timedelta(days=settings.QUOTE_VALIDITY_DAYS)

    with transaction.atomic():
        quote = Quote.objects.create(
            quote_number=generate_quote_number(),
            title=title or '',
            description=description or '',
            customer=customer,
            customer_email=customer_email or '',
            lead=lead,
            linked_quote_request=quote_request,
            origin_type=origin_type,
            status='draft',
            currency=currency or 'USD',
            tax_rate=money(tax_rate),
            shipping_fee=money(shipping_fee or 0),
            valid_until=valid_until,
            notes=notes or '',
            terms=settings.QUOTE_DEFAULT_TERMS if terms is None else terms,
            created_by=user,
        )
        _replace_items(quote, items)
        recalculate_totals(quote)
        quote.save()

        create_audit_log(
            request=request,
            user=user,
            event_type='quote_created',
            action='create',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={
                'origin_type': origin_type,
                'item_count': len(items),
                'total_amount': str(quote.total_amount),
                'quote_request': quote_request.request_number if quote_request else None,
            },
        )

    logger.info(f"Quote {quote.quote_number} created by {user.username if user else 'system'}")
    return quote


def update_quote(quote, user, fields=None, items=None, request=None):
    """
    Editor save. Allowed only for draft / pending_review quotes.

    Any edit invalidates the generated PDF, and a quote under review goes
    back to draft so it is reviewed again.
    """
    fields = fields or {}
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_editable(quote)

        before = {
            'total_amount': str(quote.total_amount),
            'item_count': quote.items.count(),
        }
        for name, value in fields.items():
            if name not in QUOTE_EDITABLE_FIELDS:
                continue
            if name in ('tax_rate', 'shipping_fee'):
                value = money(value or 0)
            before[name] = str(getattr(quote, name)) if getattr(quote, name) is not None else None
            setattr(quote, name, value)

        if items is not None:
            if not items:
                raise WorkflowError('A quote needs at least one item')
            _replace_items(quote, items)

        recalculate_totals(quote)
        _clear_document(quote)
        quote.save()

        after = {'total_amount': str(quote.total_amount), 'item_count': quote.items.count()}
        for name in before:
            if name not in after:
                value = getattr(quote, name)
                after[name] = str(value) if value is not None else None

        create_audit_log(
            request=request,
            user=user,
            event_type='quote_updated',
            action='update',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            changes={'before': before, 'after': after},
        )

        if quote.status == 'pending_review':
            _set_status(quote, 'draft', user=user, request=request, notes='Edited during review')

    return quote


# ==================== DOCUMENT ====================

def generate_pdf(quote, user, request=None):
    """Render the quote PDF through the hosted function and store its path on the quote"""
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_not_trashed(quote)
        if quote.status not in workflow.PDF_GENERATION_STATUSES:
            raise WorkflowError(f"A PDF cannot be generated for a {quote.status} quote")
        if not quote.items.exists():
            raise WorkflowError('Add at least one item before generating the PDF')

        result = functions.invoke_function(functions.GENERATE_QUOTE_PDF, document_payload(quote))
        file_path = result.get('file_path') or result.get('filePath')
        if not file_path and result.get('content'):
            file_path = save_base64_document(f"quotes/{quote.quote_number}-r{quote.revision_number}.pdf", result['content'])
        if not file_path:
            raise FunctionInvocationError(functions.GENERATE_QUOTE_PDF, 'No document returned')

        quote.final_file_url = file_path
        quote.pdf_generated_at = timezone.now()
        quote.save()

        create_audit_log(
            request=request,
            user=user,
            event_type='quote_pdf_generated',
            action='generate',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={'file_path': file_path},
        )
    return quote


# ==================== REVIEW / SEND ====================

def submit_for_review(quote, user, request=None):
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_transition(quote, 'pending_review')
        items = list(quote.items.all())
        if not items:
            raise WorkflowError('A quote needs at least one item before review')
        unpriced = [item.product_name for item in items if item.unit_price <= 0]
        if unpriced:
            raise WorkflowError(f"Set a unit price for: {', '.join(unpriced)}")
        quote.submitted_for_review_at = timezone.now()
        _set_status(quote, 'pending_review', user=user, request=request)
    return quote


def approve(quote, user, request=None):
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_transition(quote, 'approved')
        quote.approved_by = user
        quote.approved_at = timezone.now()
        _set_status(quote, 'approved', user=user, request=request)
    return quote


def return_to_draft(quote, user, reason='', request=None):
    """Reviewer sends the quote back for changes; the PDF is discarded"""
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_transition(quote, 'draft')
        if quote.status not in ('pending_review', 'approved'):
            raise WorkflowError('Only quotes under review or approved can be returned to draft')
        _clear_document(quote)
        quote.approved_by = None
        quote.approved_at = None
        _set_status(quote, 'draft', user=user, request=request, notes=reason)
    return quote


def send_quote(quote, user, message='', request=None):
    """
    Send the quote to the customer with an approval link.

    Requires a generated PDF and a recipient e-mail. If the e-mail function
    fails the whole send is rolled back and the quote keeps its status.
    """
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_transition(quote, 'sent')
        if not quote.final_file_url:
            raise WorkflowError('Generate the quote PDF before sending')
        recipient = quote.recipient_email
        if not recipient:
            raise WorkflowError('Quote has no customer email address')

        now = timezone.now()
        if quote.status == 'pending_review' or quote.approved_by_id is None:
            quote.approved_by = user
            quote.approved_at = now

        token = MagicLinkToken.issue('quote_approval', recipient, quote=quote)
        body = document_payload(quote)
        body.update({
            'emailType': 'quote',
            'customerEmail': recipient,
            'customerName': quote.recipient_name,
            'approvalUrl': approval_url(token),
            'pdfPath': quote.final_file_url,
            'message': message,
        })
        functions.invoke_function(functions.SEND_QUOTE_EMAIL, body)

        quote.sent_at = now
        _set_status(quote, 'sent', user=user, request=request)
        create_audit_log(
            request=request,
            user=user,
            event_type='quote_sent',
            action='send',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={'recipient': recipient, 'token_expires_at': token.expires_at.isoformat()},
        )
    return quote


# ==================== CUSTOMER RESPONSE ====================

def _apply_customer_response(quote, decision, notes='', user=None, request=None, channel='admin'):
    new_status = 'accepted' if decision in ('accepted', 'approve', 'approved') else 'rejected'
    if quote.status != 'sent':
        workflow.assert_not_trashed(quote)
        raise WorkflowError(f"Quote {quote.quote_number} is not awaiting a customer response")
    quote.responded_at = timezone.now()
    quote.customer_response_notes = notes or ''
    _set_status(quote, new_status, user=user, request=request, notes=notes)
    create_audit_log(
        request=request,
        user=user,
        event_type='quote_customer_response',
        action=new_status,
        resource_type='Quote',
        resource_id=quote.id,
        resource_reference=quote.quote_number,
        event_data={'decision': new_status, 'notes': notes, 'channel': channel},
    )
    return quote


def record_customer_response(quote, decision, notes='', user=None, request=None, channel='admin'):
    """Accept/reject recorded by staff (phone, e-mail) or by the customer in the portal"""
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_not_trashed(quote)
        _apply_customer_response(quote, decision, notes=notes, user=user, request=request, channel=channel)
    return quote


def get_valid_token(token_value, token_type):
    token = MagicLinkToken.objects.select_related('quote', 'order').filter(token=token_value).first()
    if token is None or token.token_type != token_type:
        raise MagicLinkError('This link is not valid', reason='invalid')
    if token.is_used:
        raise MagicLinkError('This link has already been used', reason='used')
    if token.is_expired:
        raise MagicLinkError('This link has expired', reason='expired')
    return token


def get_quote_for_approval(token_value):
    token = get_valid_token(token_value, 'quote_approval')
    if token.quote is None or token.quote.is_trashed:
        raise MagicLinkError('This link is not valid', reason='invalid')
    return token.quote


def respond_via_token(token_value, decision, notes='', ip_address=None, user_agent=None):
    """Customer approves or rejects from the e-mailed link. The token is single use."""
    if decision not in ('approve', 'reject'):
        raise WorkflowError("Decision must be 'approve' or 'reject'")

    with transaction.atomic():
        token = get_valid_token(token_value, 'quote_approval')
        token = MagicLinkToken.objects.select_for_update().get(pk=token.pk)
        if token.is_used:
            raise MagicLinkError('This link has already been used', reason='used')
        if token.quote_id is None:
            raise MagicLinkError('This link is not valid', reason='invalid')

        quote = Quote.objects.select_for_update().get(pk=token.quote_id)
        if quote.is_trashed:
            raise MagicLinkError('This link is not valid', reason='invalid')
        if quote.valid_until and quote.valid_until < timezone.localdate():
            raise WorkflowError(f"Quote {quote.quote_number} expired on {quote.valid_until.isoformat()}")

        _apply_customer_response(quote, decision, notes=notes, channel='magic_link')

        token.used_at = timezone.now()
        token.save(update_fields=['used_at'])
        QuoteApproval.objects.create(
            quote=quote,
            token=token,
            customer_email=token.email,
            decision='approved' if decision == 'approve' else 'rejected',
            customer_notes=notes or '',
            ip_address=ip_address,
            user_agent=user_agent,
        )

    functions.invoke_function_best_effort(functions.SEND_EMAIL, {
        'type': 'quote_response_admin',
        'to': settings.ADMIN_NOTIFICATION_EMAIL,
        'data': {
            'quoteNumber': quote.quote_number,
            'decision': quote.status,
            'customerEmail': token.email,
            'notes': notes,
        },
    })
    return quote


# ==================== ORDER CONVERSION ====================

def convert_to_order(quote, user, confirmation_method, confirmation_notes='', payment_method=None,
                     initial_status='pending_payment', request=None):
    """Create the order for an approved/sent/accepted quote. At most one order per quote."""
    from tradeportal.orders.models import Order
    from tradeportal.orders.services import create_order_from_quote

    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_not_trashed(quote)
        if Order.objects.filter(quote=quote).exists():
            raise ConflictError(f"An order already exists for quote {quote.quote_number}")
        workflow.assert_transition(quote, 'converted')
        if quote.customer is None:
            raise WorkflowError('Link the quote to a customer before converting it to an order')

        order = create_order_from_quote(
            quote,
            user,
            confirmation_method=confirmation_method,
            confirmation_notes=confirmation_notes,
            payment_method=payment_method,
            initial_status=initial_status,
            request=request,
        )

        _set_status(quote, 'converted', user=user, request=request)
        if quote.linked_quote_request_id:
            QuoteRequest.objects.filter(pk=quote.linked_quote_request_id).update(
                status='converted', updated_at=timezone.now()
            )

        create_audit_log(
            request=request,
            user=user,
            event_type='quote_converted_to_order',
            action='convert',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={
                'order_id': order.id,
                'order_number': order.order_number,
                'confirmation_method': confirmation_method,
                'payment_method': payment_method,
                'initial_status': initial_status,
            },
        )
    return order


# ==================== TRASH ====================

def trash_quote(quote, user, reason='', request=None):
    with transaction.atomic():
        quote = _lock(quote)
        if quote.is_trashed:
            raise WorkflowError(f"Quote {quote.quote_number} is already in the trash")
        if quote.status == 'converted':
            raise WorkflowError('Converted quotes cannot be deleted')
        quote.deleted_at = timezone.now()
        quote.deleted_by = user
        quote.status_before_delete = quote.status
        quote.save()
        create_audit_log(
            request=request,
            user=user,
            event_type='quote_trashed',
            action='delete',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={'status': quote.status, 'reason': reason},
        )
    return quote


def restore_quote(quote, user, request=None):
    with transaction.atomic():
        quote = _lock(quote)
        if not quote.is_trashed:
            raise WorkflowError(f"Quote {quote.quote_number} is not in the trash")
        quote.status = quote.status_before_delete or quote.status
        quote.deleted_at = None
        quote.deleted_by = None
        quote.status_before_delete = ''
        quote.save()
        create_audit_log(
            request=request,
            user=user,
            event_type='quote_restored',
            action='restore',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={'status': quote.status},
        )
    return quote


def purge_quote(quote, user=None, request=None):
    """Permanently delete a trashed quote"""
    with transaction.atomic():
        quote = _lock(quote)
        if not quote.is_trashed:
            raise WorkflowError('Only quotes in the trash can be permanently deleted')
        quote_id, quote_number = quote.id, quote.quote_number
        quote.delete()
        create_audit_log(
            request=request,
            user=user,
            event_type='quote_deleted',
            action='delete',
            resource_type='Quote',
            resource_id=quote_id,
            resource_reference=quote_number,
            severity='high',
        )
    logger.info(f"Quote {quote_number} permanently deleted")


def purge_old_trash(days=None):
    days = settings.QUOTE_TRASH_RETENTION_DAYS if days is None else days
    cutoff = timezone.now() - timedelta(days=days)
    purged = 0
    for quote in Quote.objects.trashed().filter(deleted_at__lt=cutoff):
        purge_quote(quote)
        purged += 1
    return purged


# ==================== REVISIONS ====================

def reopen_quote(quote, user, request=None):
    """Start a new revision of a sent, rejected or expired quote"""
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_transition(quote, 'draft')
        if quote.status not in workflow.REOPENABLE_STATUSES:
            raise WorkflowError(f"A {quote.status} quote cannot be reopened")

        quote.revision_number += 1
        _clear_document(quote)
        quote.approved_by = None
        quote.approved_at = None
        quote.responded_at = None
        quote.customer_response_notes = ''
        # Outstanding approval links must not act on the new revision
        quote.magic_links.filter(token_type='quote_approval', used_at__isnull=True).update(expires_at=timezone.now())
        quote.revisions.filter(status='submitted').update(status='reviewing', updated_at=timezone.now())
        _set_status(quote, 'draft', user=user, request=request, notes=f"Reopened as revision {quote.revision_number}")
    return quote


def request_revision(quote, user, request_type='other', requested_changes=None, customer_note='', request=None):
    """Customer asks for changes to a sent quote"""
    with transaction.atomic():
        quote = _lock(quote)
        workflow.assert_not_trashed(quote)
        if quote.status != 'sent':
            raise WorkflowError('Revisions can only be requested for quotes awaiting your response')
        if quote.revisions.filter(status__in=QuoteRevision.OPEN_STATUSES).exists():
            raise ConflictError('A revision request for this quote is already open')

        revision = QuoteRevision.objects.create(
            quote=quote,
            customer=quote.customer,
            requested_by=user,
            request_type=request_type,
            requested_changes=requested_changes or {},
            customer_note=customer_note or '',
            revision_number=quote.revision_number,
        )
        create_audit_log(
            request=request,
            user=user,
            event_type='quote_revision_requested',
            action='create',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={'revision_id': revision.id, 'request_type': request_type},
        )

    functions.invoke_function_best_effort(functions.SEND_EMAIL, {
        'type': 'quote_revision_admin',
        'to': settings.ADMIN_NOTIFICATION_EMAIL,
        'data': {
            'quoteNumber': quote.quote_number,
            'requestType': request_type,
            'note': customer_note,
        },
    })
    return revision


def update_revision(revision, user, status=None, admin_note=None, request=None):
    old_status = revision.status
    if status:
        revision.status = status
    if admin_note is not None:
        revision.admin_note = admin_note
    revision.save()
    create_audit_log(
        request=request,
        user=user,
        event_type='data_update',
        action='update',
        resource_type='QuoteRevision',
        resource_id=revision.id,
        resource_reference=revision.quote.quote_number,
        changes={'before': {'status': old_status}, 'after': {'status': revision.status}},
    )
    return revision


# ==================== QUOTE REQUESTS ====================

def create_quote_request(items, customer=None, submitted_by=None, title='', message='', urgency='medium',
                         request_type='customer', lead_fields=None, request=None):
    lead_fields = lead_fields or {}
    if not items:
        raise WorkflowError('A quote request needs at least one item')

    with transaction.atomic():
        quote_request = QuoteRequest.objects.create(
            request_number=generate_request_number(),
            customer=customer,
            title=title or '',
            message=message or '',
            request_type=request_type,
            status='pending',
            urgency=urgency or 'medium',
            submitted_by=submitted_by,
            **{key: value for key, value in lead_fields.items() if key.startswith('lead_')},
        )
        QuoteRequestItem.objects.bulk_create([
            QuoteRequestItem(
                quote_request=quote_request,
                product=item.get('product'),
                product_name=item['product_name'],
                quantity=item['quantity'],
                unit=item.get('unit') or 'kg',
                specifications=item.get('specifications', ''),
                preferred_grade=item.get('preferred_grade', ''),
            )
            for item in items
        ])
        create_audit_log(
            request=request,
            user=submitted_by,
            event_type='quote_request_submitted',
            action='create',
            resource_type='QuoteRequest',
            resource_id=quote_request.id,
            resource_reference=quote_request.request_number,
            event_data={'item_count': len(items), 'request_type': request_type},
        )
    return quote_request


def create_quote_from_request(quote_request, user, request=None):
    """Draft quote pre-filled from a request; prices are left at zero for the sales team"""
    with transaction.atomic():
        quote_request = QuoteRequest.objects.select_for_update().get(pk=quote_request.pk)
        if quote_request.status in ('quoted', 'converted', 'declined'):
            raise WorkflowError(f"Quote request {quote_request.request_number} is already {quote_request.status}")
        if quote_request.customer is None:
            raise WorkflowError('Convert the request to a lead/customer before quoting it')

        items = []
        for item in quote_request.items.all():
            specifications = item.specifications
            if item.preferred_grade:
                specifications = f"{specifications}\nPreferred grade: {item.preferred_grade}".strip()
            items.append({
                'product': item.product,
                'product_name': item.product_name,
                'product_description': item.product.description if item.product else '',
                'quantity': item.quantity,
                'unit': item.unit,
                'unit_price': Decimal('0.00'),
                'specifications': specifications,
            })

        quote = create_quote(
            user,
            items,
            customer=quote_request.customer,
            title=quote_request.title or f"Quote for {quote_request.request_number}",
            description=quote_request.message,
            origin_type='request',
            quote_request=quote_request,
            request=request,
        )
        quote_request.status = 'quoted'
        quote_request.save(update_fields=['status', 'updated_at'])
    return quote


def convert_request_to_lead(quote_request, user, request=None):
    """Turn an anonymous request into a customer plus a pipeline lead"""
    with transaction.atomic():
        quote_request = QuoteRequest.objects.select_for_update().get(pk=quote_request.pk)
        if quote_request.status == 'converted':
            raise ConflictError(f"Quote request {quote_request.request_number} is already converted")

        email = quote_request.lead_email or (quote_request.customer.email if quote_request.customer else '')
        if not email:
            raise WorkflowError('The request has no contact email')

        customer = quote_request.customer
        if customer is None:
            customer, _ = find_or_create_customer(
                email=email,
                company_name=quote_request.lead_company_name,
                contact_name=quote_request.lead_contact_name,
                phone=quote_request.lead_phone,
                country=quote_request.lead_country,
                created_by=user,
            )
            if quote_request.lead_industry:
                customer.industry = quote_request.lead_industry
                customer.save(update_fields=['industry', 'updated_at'])

        lead = Lead(
            contact_name=quote_request.lead_contact_name or customer.contact_name or email,
            company_name=quote_request.lead_company_name or customer.company_name,
            email=email,
            phone=quote_request.lead_phone or customer.phone,
            country=quote_request.lead_country or customer.country,
            title=quote_request.title or f"Quote request {quote_request.request_number}",
            description=quote_request.message,
            source='quote_request',
            status='new',
            customer=customer,
            assigned_to=user,
        )
        lead.lead_score = compute_lead_score(lead)
        lead.save()

        quote_request.customer = customer
        quote_request.status = 'converted'
        quote_request.save(update_fields=['customer', 'status', 'updated_at'])

        create_audit_log(
            request=request,
            user=user,
            event_type='quote_request_converted',
            action='convert',
            resource_type='QuoteRequest',
            resource_id=quote_request.id,
            resource_reference=quote_request.request_number,
            event_data={'lead_id': lead.id, 'customer_id': customer.id},
        )
    return lead, customer


def link_quote_to_request(quote, request_number, user=None, request=None):
    """
    Attach a quote to an existing request by its number.
    Returns {'success': bool, 'error': str | None}; lookups that fail are not raised.
    """
    quote_request = QuoteRequest.objects.filter(request_number=request_number).first()
    if quote_request is None:
        return {'success': False, 'error': f"Quote request {request_number} not found"}

    with transaction.atomic():
        quote = _lock(quote)
        if quote.is_trashed:
            return {'success': False, 'error': 'Quote is in the trash'}
        if quote.status == 'converted':
            return {'success': False, 'error': 'Quote has already been converted to an order'}

        quote.linked_quote_request = quote_request
        quote.origin_type = 'request'
        if quote.customer is None and quote_request.customer is not None:
            quote.customer = quote_request.customer
        quote.save()

        if quote_request.status in ('pending', 'reviewed'):
            quote_request.status = 'quoted'
            quote_request.save(update_fields=['status', 'updated_at'])

        create_audit_log(
            request=request,
            user=user,
            event_type='quote_linked_to_request',
            action='link',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={'request_number': request_number},
        )
    return {'success': True, 'error': None}


# ==================== EXPIRY ====================

def find_expiring_quotes(days=None):
    days = settings.QUOTE_EXPIRY_REMINDER_DAYS if days is None else days
    today = timezone.localdate()
    return (
        Quote.objects.active()
        .filter(status__in=['sent', 'draft'], valid_until__isnull=False,
                valid_until__gte=today, valid_until__lte=today + timedelta(days=days))
        .select_related('customer')
        .order_by('valid_until')
    )


def send_expiry_reminders(days=None, dry_run=False):
    """
    E-mail a reminder for each quote about to expire, at most once per day per quote.
    Sent quotes remind the customer; drafts remind the sales inbox.
    """
    today = timezone.localdate()
    summary = {'checked': 0, 'reminded': 0, 'skipped': 0, 'failed': 0}

    for quote in find_expiring_quotes(days):
        summary['checked'] += 1
        already_reminded = AuditLog.objects.filter(
            event_type='quote_expiry_reminder_sent',
            resource_type='Quote',
            resource_id=str(quote.id),
            created_at__date=today,
        ).exists()
        recipient = quote.recipient_email if quote.status == 'sent' else settings.ADMIN_NOTIFICATION_EMAIL
        if already_reminded or not recipient:
            summary['skipped'] += 1
            continue
        if dry_run:
            summary['reminded'] += 1
            continue

        body = document_payload(quote)
        body.update({
            'emailType': 'expiry_reminder',
            'customerEmail': recipient,
            'customerName': quote.recipient_name,
            'daysRemaining': (quote.valid_until - today).days,
        })
        try:
            functions.invoke_function(functions.SEND_QUOTE_EMAIL, body)
        except FunctionInvocationError as e:
            logger.error(f"Expiry reminder for quote {quote.quote_number} failed: {e.message}")
            summary['failed'] += 1
            continue

        create_audit_log(
            event_type='quote_expiry_reminder_sent',
            action='notify',
            resource_type='Quote',
            resource_id=quote.id,
            resource_reference=quote.quote_number,
            event_data={'recipient': recipient, 'valid_until': quote.valid_until.isoformat()},
        )
        summary['reminded'] += 1

    return summary


def expire_quote(quote, user=None, request=None):
    with transaction.atomic():
        quote = _lock(quote)
        _set_status(quote, 'expired', user=user, request=request)
    return quote


def expire_overdue_quotes(dry_run=False):
    """Mark open quotes whose valid_until has passed as expired"""
    overdue = Quote.objects.active().filter(
        status__in=workflow.EXPIRABLE_STATUSES,
        valid_until__lt=timezone.localdate(),
    )
    expired = 0
    for quote in overdue:
        if not dry_run:
            expire_quote(quote)
        expired += 1
    return expired
