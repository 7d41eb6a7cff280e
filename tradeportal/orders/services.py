"""
Order service layer: creation, fulfilment status, payments, invoices and
customer tracking links. Status rules live in orders.workflow.
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from tradeportal.core import functions
from tradeportal.core.exceptions import FunctionInvocationError, MagicLinkError, WorkflowError
from tradeportal.core.storage import save_base64_document
from tradeportal.core.utils import create_audit_log
from tradeportal.quotes.models import MagicLinkToken
from . import workflow
from .models import Order, OrderItem, OrderStatusHistory, Invoice, Payment

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


def money(value):
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def generate_order_number():
    """ORD-YYYYMM-NNNN, sequential per month. The suffix widens past 9999."""
    prefix = f"ORD-{timezone.now().strftime('%Y%m')}-"
    numbers = Order.objects.filter(order_number__startswith=prefix).values_list('order_number', flat=True)
    last = max((int(n[len(prefix):]) for n in numbers if n[len(prefix):].isdigit()), default=0)
    return f"{prefix}{last + 1:04d}"


def generate_invoice_number(invoice_type):
    prefix = Invoice.NUMBER_PREFIXES[invoice_type]
    date_part = timezone.now().strftime('%Y%m%d')
    invoice_number = f"{prefix}-{date_part}-{str(uuid.uuid4())[:6].upper()}"
    while Invoice.objects.filter(invoice_number=invoice_number).exists():
        invoice_number = f"{prefix}-{date_part}-{str(uuid.uuid4())[:6].upper()}"
    return invoice_number


def _lock(order):
    return Order.objects.select_for_update().get(pk=order.pk)


def _record_history(order, old_status, new_status, user=None, notes=''):
    return OrderStatusHistory.objects.create(
        order=order,
        old_status=old_status or '',
        new_status=new_status,
        notes=notes or '',
        changed_by=user,
    )


def _create_order(customer, items, user, status, currency='USD', tax_amount=0, shipping_fee=0, quote=None,
                  **extra):
    subtotal = Decimal('0.00')
    for item in items:
        subtotal += money(Decimal(item['quantity']) * Decimal(item.get('unit_price') or 0))
    tax_amount = money(tax_amount or 0)
    shipping_fee = money(shipping_fee or 0)

    order = Order.objects.create(
        order_number=generate_order_number(),
        quote=quote,
        customer=customer,
        status=status,
        currency=currency or 'USD',
        subtotal=money(subtotal),
        tax_amount=tax_amount,
        shipping_fee=shipping_fee,
        total_amount=money(subtotal + tax_amount + shipping_fee),
        delivery_address=extra.pop('delivery_address', '') or customer.address,
        created_by=user,
        **extra,
    )
    OrderItem.objects.bulk_create([
        OrderItem(
            order=order,
            product=item.get('product'),
            product_name=item['product_name'],
            product_description=item.get('product_description', ''),
            quantity=money(item['quantity']),
            unit=item.get('unit') or 'kg',
            unit_price=money(item.get('unit_price') or 0),
            total_price=money(Decimal(item['quantity']) * Decimal(item.get('unit_price') or 0)),
            specifications=item.get('specifications', ''),
        )
        for item in items
    ])
    _record_history(order, '', status, user=user, notes='Order created')
    return order


def create_order_from_quote(quote, user, confirmation_method, confirmation_notes='', payment_method=None,
                            initial_status='pending_payment', request=None):
    """Copy a quote into a new order. Called inside the quote conversion transaction."""
    if initial_status not in workflow.INITIAL_STATUSES:
        raise WorkflowError(f"Invalid initial order status: {initial_status}")

    items = [
        {
            'product': item.product,
            'product_name': item.product_name,
            'product_description': item.product_description,
            'quantity': item.quantity,
            'unit': item.unit,
            'unit_price': item.unit_price,
            'specifications': item.specifications,
        }
        for item in quote.items.all()
    ]
    order = _create_order(
        quote.customer,
        items,
        user,
        initial_status,
        currency=quote.currency,
        tax_amount=quote.tax_amount,
        shipping_fee=quote.shipping_fee,
        quote=quote,
        payment_method=payment_method,
        manual_confirmation_method=confirmation_method,
        manual_confirmation_notes=confirmation_notes or '',
        notes=quote.notes,
    )
    create_audit_log(
        request=request,
        user=user,
        event_type='order_created',
        action='create',
        resource_type='Order',
        resource_id=order.id,
        resource_reference=order.order_number,
        event_data={'quote_number': quote.quote_number, 'total_amount': str(order.total_amount)},
    )
    logger.info(f"Order {order.order_number} created from quote {quote.quote_number}")
    return order


def create_manual_order(customer, items, user, currency='USD', shipping_fee=0, tax_amount=0, notes='',
                        delivery_address='', payment_method=None, request=None):
    """Staff order without a quote; starts as order_confirmed"""
    if not items:
        raise WorkflowError('An order needs at least one item')

    with transaction.atomic():
        order = _create_order(
            customer,
            items,
            user,
            'order_confirmed',
            currency=currency,
            tax_amount=tax_amount,
            shipping_fee=shipping_fee,
            notes=notes or '',
            delivery_address=delivery_address,
            payment_method=payment_method,
        )
        create_audit_log(
            request=request,
            user=user,
            event_type='order_created',
            action='create',
            resource_type='Order',
            resource_id=order.id,
            resource_reference=order.order_number,
            event_data={'manual': True, 'total_amount': str(order.total_amount)},
        )
    return order


def _apply_status(order, new_status, user, notes='', request=None):
    """Move a locked order along the workflow, with history and audit entries"""
    workflow.assert_transition(order, new_status)
    old_status = order.status
    order.status = new_status
    if new_status == 'delivered':
        order.delivered_at = timezone.now()
    order.save()
    _record_history(order, old_status, new_status, user=user, notes=notes)
    create_audit_log(
        request=request,
        user=user,
        event_type='order_status_changed',
        action='status_change',
        resource_type='Order',
        resource_id=order.id,
        resource_reference=order.order_number,
        event_data={'old_status': old_status, 'new_status': new_status, 'notes': notes},
        changes={'before': {'status': old_status}, 'after': {'status': new_status}},
    )
    logger.info(f"Order {order.order_number}: {old_status} -> {new_status}")
    return order


def change_status(order, new_status, user, notes='', request=None):
    with transaction.atomic():
        order = _apply_status(_lock(order), new_status, user, notes=notes, request=request)
    return order


DELIVERY_FIELDS = ('delivery_address', 'carrier', 'tracking_number', 'estimated_delivery_date')


def update_delivery(order, fields, user, request=None):
    with transaction.atomic():
        order = _lock(order)
        if order.status in workflow.TERMINAL_STATUSES:
            raise WorkflowError(f"Order {order.order_number} is {order.status}; delivery details are locked")
        before, after = {}, {}
        for name in DELIVERY_FIELDS:
            if name not in fields:
                continue
            old_value = getattr(order, name)
            before[name] = old_value.isoformat() if hasattr(old_value, 'isoformat') else old_value
            value = fields[name]
            if value is None and name != 'estimated_delivery_date':
                value = ''
            setattr(order, name, value)
            new_value = getattr(order, name)
            after[name] = new_value.isoformat() if hasattr(new_value, 'isoformat') else new_value
        order.save()
        create_audit_log(
            request=request,
            user=user,
            event_type='order_delivery_updated',
            action='update',
            resource_type='Order',
            resource_id=order.id,
            resource_reference=order.order_number,
            changes={'before': before, 'after': after},
        )
    return order


def record_payment(order, amount, payment_method, user, reference='', notes='', proof_file_url='', request=None):
    """
    Record a (partial) payment. A fully paid order still awaiting payment moves
    to payment_received, and its sent proforma/commercial invoices are marked paid.
    """
    amount = money(amount)
    if amount <= 0:
        raise WorkflowError('Payment amount must be greater than zero')

    with transaction.atomic():
        order = _lock(order)
        if order.status == 'cancelled':
            raise WorkflowError(f"Order {order.order_number} is cancelled")

        payment = Payment.objects.create(
            order=order,
            amount=amount,
            payment_method=payment_method,
            reference=reference or '',
            notes=notes or '',
            proof_file_url=proof_file_url or '',
            recorded_by=user,
        )
        order.amount_paid = money(order.amount_paid + amount)
        order.payment_method = payment_method
        if reference:
            order.payment_reference = reference
        order.save()

        if order.is_fully_paid:
            if order.status == 'order_confirmed':
                _apply_status(order, 'pending_payment', user, notes='Payment recorded', request=request)
            if order.status == 'pending_payment':
                _apply_status(order, 'payment_received', user, notes='Paid in full', request=request)
            order.invoices.filter(invoice_type__in=['proforma', 'commercial'], status='sent').update(
                status='paid', paid_at=timezone.now(), updated_at=timezone.now()
            )

        create_audit_log(
            request=request,
            user=user,
            event_type='payment_recorded',
            action='create',
            resource_type='Order',
            resource_id=order.id,
            resource_reference=order.order_number,
            event_data={
                'payment_id': payment.id,
                'amount': str(amount),
                'payment_method': payment_method,
                'amount_paid': str(order.amount_paid),
                'balance_due': str(order.balance_due),
            },
        )
    return payment


def invoice_payload(invoice):
    order = invoice.order
    customer = invoice.customer
    return {
        'invoiceNumber': invoice.invoice_number,
        'invoiceType': invoice.invoice_type,
        'orderNumber': order.order_number,
        'issueDate': invoice.issue_date.isoformat(),
        'dueDate': invoice.due_date.isoformat() if invoice.due_date else None,
        'paymentTerms': invoice.payment_terms,
        'currency': invoice.currency,
        'subtotal': str(invoice.subtotal),
        'taxAmount': str(invoice.tax_amount),
        'shippingFee': str(order.shipping_fee),
        'totalAmount': str(invoice.total_amount),
        'customer': {
            'companyName': customer.company_name,
            'contactName': customer.contact_name,
            'email': customer.email,
            'phone': customer.phone,
            'country': customer.country,
            'address': customer.address,
        },
        'delivery': {
            'address': order.delivery_address,
            'carrier': order.carrier,
            'trackingNumber': order.tracking_number,
            'estimatedDeliveryDate': order.estimated_delivery_date.isoformat() if order.estimated_delivery_date else None,
        },
        'items': [
            {
                'productName': item.product_name,
                'description': item.product_description,
                'quantity': str(item.quantity),
                'unit': item.unit,
                'unitPrice': str(item.unit_price),
                'totalPrice': str(item.total_price),
            }
            for item in order.items.all()
        ],
    }


def generate_invoice(order, invoice_type, user, request=None):
    """
    Generate (or return the existing) document of `invoice_type` for an order.
    Returns (invoice, created).
    """
    if invoice_type not in Invoice.NUMBER_PREFIXES:
        raise WorkflowError(f"Unknown invoice type: {invoice_type}")

    with transaction.atomic():
        order = _lock(order)
        existing = order.invoices.filter(invoice_type=invoice_type).exclude(status='void').exclude(file_url='').first()
        if existing:
            return existing, False

        if order.status == 'cancelled':
            raise WorkflowError(f"Order {order.order_number} is cancelled")
        if invoice_type == 'commercial' and not (order.delivery_address and order.carrier and order.tracking_number):
            raise WorkflowError('Delivery address, carrier and tracking number are required for a commercial invoice')

        issue_date = timezone.localdate()
        invoice = Invoice.objects.create(
            invoice_number=generate_invoice_number(invoice_type),
            invoice_type=invoice_type,
            order=order,
            customer=order.customer,
            status='draft',
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            total_amount=order.total_amount,
            currency=order.currency,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=settings.INVOICE_PAYMENT_TERMS_DAYS),
            payment_terms=f"Net {settings.INVOICE_PAYMENT_TERMS_DAYS} days",
            created_by=user,
        )

        result = functions.invoke_function(functions.GENERATE_INVOICE_PDF, invoice_payload(invoice))
        file_path = result.get('file_path') or result.get('filePath')
        if not file_path and result.get('content'):
            file_path = save_base64_document(f"invoices/{invoice.invoice_number}.pdf", result['content'])
        if not file_path:
            raise FunctionInvocationError(functions.GENERATE_INVOICE_PDF, 'No document returned')

        invoice.file_url = file_path
        invoice.status = 'paid' if order.is_fully_paid and invoice_type != 'packing_list' else 'sent'
        invoice.sent_at = timezone.now()
        if invoice.status == 'paid':
            invoice.paid_at = invoice.sent_at
        invoice.save()

        create_audit_log(
            request=request,
            user=user,
            event_type='invoice_generated',
            action='generate',
            resource_type='Invoice',
            resource_id=invoice.id,
            resource_reference=invoice.invoice_number,
            event_data={'order_number': order.order_number, 'invoice_type': invoice_type},
        )
    return invoice, True


def void_invoice(invoice, user, reason='', request=None):
    if invoice.status == 'void':
        raise WorkflowError(f"Invoice {invoice.invoice_number} is already void")
    if invoice.status == 'paid':
        raise WorkflowError('Paid invoices cannot be voided')
    invoice.status = 'void'
    invoice.notes = f"{invoice.notes}\nVoided: {reason}".strip() if reason else invoice.notes
    invoice.save()
    create_audit_log(
        request=request,
        user=user,
        event_type='invoice_void',
        action='void',
        resource_type='Invoice',
        resource_id=invoice.id,
        resource_reference=invoice.invoice_number,
        event_data={'reason': reason},
        severity='medium',
    )
    return invoice


def tracking_url(token):
    return f"{settings.PUBLIC_SITE_URL.rstrip('/')}/track-order/{token.token}"


def send_tracking_link(order, user, request=None):
    email = order.customer.email
    if not email:
        raise WorkflowError('Customer has no email address')

    with transaction.atomic():
        token = MagicLinkToken.issue('order_tracking', email, order=order)
        functions.invoke_function(functions.SEND_ORDER_TRACKING_LINK, {
            'orderNumber': order.order_number,
            'customerEmail': email,
            'customerName': order.customer.contact_name or order.customer.company_name,
            'trackingUrl': tracking_url(token),
            'status': order.status,
        })
        create_audit_log(
            request=request,
            user=user,
            event_type='order_tracking_link_sent',
            action='send',
            resource_type='Order',
            resource_id=order.id,
            resource_reference=order.order_number,
            event_data={'recipient': email, 'expires_at': token.expires_at.isoformat()},
        )
    return token


def get_order_for_tracking(token_value):
    """Tracking links stay valid until they expire; they are not consumed"""
    token = MagicLinkToken.objects.select_related('order').filter(
        token=token_value, token_type='order_tracking'
    ).first()
    if token is None or token.order is None:
        raise MagicLinkError('This link is not valid', reason='invalid')
    if token.is_expired:
        raise MagicLinkError('This link has expired', reason='expired')
    return token.order
