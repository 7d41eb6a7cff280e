"""Customer portal: cart handling and quote request submission"""
import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction

from tradeportal.core import functions
from tradeportal.core.exceptions import WorkflowError
from tradeportal.crm.models import Customer
from tradeportal.crm.services import find_or_create_customer
from tradeportal.quotes.services import create_quote_request
from .models import Cart, CartItem

logger = logging.getLogger(__name__)


def get_cart(user):
    cart, _ = Cart.objects.get_or_create(user=user)
    return cart


def get_portal_customer(user):
    """Customer record linked to a portal account, or None"""
    return Customer.objects.filter(user=user).first()


def add_to_cart(user, quantity, product=None, product_name='', unit='', specifications='', preferred_grade=''):
    """
    Add a line to the cart. Adding a catalog product already in the cart
    increases its quantity instead of adding a second line.
    """
    quantity = Decimal(quantity)
    if quantity <= 0:
        raise WorkflowError('Quantity must be greater than zero')
    if product is None and not product_name:
        raise WorkflowError('Choose a product or enter a product name')

    cart = get_cart(user)
    with transaction.atomic():
        if product is not None:
            existing_item = cart.items.select_for_update().filter(product=product).first()
            if existing_item:
                existing_item.quantity += quantity
                if specifications:
                    existing_item.specifications = specifications
                if preferred_grade:
                    existing_item.preferred_grade = preferred_grade
                existing_item.save()
                cart.save(update_fields=['updated_at'])
                return existing_item, False

        item = CartItem.objects.create(
            cart=cart,
            product=product,
            product_name=product.name if product is not None else product_name,
            quantity=quantity,
            unit=unit or (product.unit if product is not None else 'kg'),
            specifications=specifications or '',
            preferred_grade=preferred_grade or '',
        )
        cart.save(update_fields=['updated_at'])
    return item, True


def clear_cart(user):
    cart = get_cart(user)
    cart.items.all().delete()
    return cart


def submit_cart(user, message='', urgency='medium', title=''):
    """
    Turn the cart into a quote request. The portal account needs a company
    name, a contact name and an e-mail; a customer record is created on first submission.
    """
    cart = get_cart(user)
    items = list(cart.items.select_related('product'))
    if not items:
        raise WorkflowError('Your cart is empty')

    contact_name = user.get_full_name().strip()
    if not user.company_name or not contact_name or not user.email:
        raise WorkflowError('Complete your profile (company, contact name and email) before requesting a quote')

    with transaction.atomic():
        customer, created = find_or_create_customer(
            email=user.email,
            company_name=user.company_name,
            contact_name=contact_name,
            phone=user.phone,
            country=user.country,
            user=user,
        )
        quote_request = create_quote_request(
            [
                {
                    'product': item.product,
                    'product_name': item.product_name,
                    'quantity': item.quantity,
                    'unit': item.unit,
                    'specifications': item.specifications,
                    'preferred_grade': item.preferred_grade,
                }
                for item in items
            ],
            customer=customer,
            submitted_by=user,
            title=title or f"Quote request from {customer.company_name}",
            message=message,
            urgency=urgency,
            request_type='customer',
        )
        cart.items.all().delete()

    if created:
        logger.info(f"Portal user {user.username} linked to new customer {customer.id}")

    email_data = {
        'requestNumber': quote_request.request_number,
        'companyName': customer.company_name,
        'contactName': contact_name,
        'itemCount': len(items),
        'urgency': urgency,
        'message': message,
    }
    functions.invoke_function_best_effort(functions.SEND_EMAIL, {
        'type': 'quote_request_confirmation',
        'to': user.email,
        'data': email_data,
    })
    functions.invoke_function_best_effort(functions.SEND_EMAIL, {
        'type': 'new_quote_request_admin',
        'to': settings.ADMIN_NOTIFICATION_EMAIL,
        'data': email_data,
    })
    return quote_request
