"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from tradeportal.core.permissions import set_user_role
from tradeportal.catalog.models import Category, Product
from tradeportal.crm.models import Customer, Lead
from tradeportal.quotes.models import Quote, QuoteItem, QuoteRequest, QuoteRequestItem
from tradeportal.quotes.services import generate_quote_number, generate_request_number, recalculate_totals
from tradeportal.orders.models import Order, OrderItem, OrderStatusHistory
from tradeportal.orders.services import generate_order_number
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='staff', is_superuser=False,
                    first_name='Test', last_name='User', company_name=''):
        """Create a test user in the given role group (admin, staff or customer)"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username.lower()}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_superuser=is_superuser,
            first_name=first_name,
            last_name=last_name,
            company_name=company_name,
        )
        if role:
            set_user_role(user, role)
        return user

    @staticmethod
    def create_category(name=None, description=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            name=name,
            description=description or f'Test category {name}'
        )

    @staticmethod
    def create_product(name=None, sku=None, category=None, price=Decimal('12.50'), unit='kg',
                       origin_country='Brazil', is_active=True):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8)}'
        if not category:
            category = TestDataFactory.create_category()
        return Product.objects.create(
            name=name,
            sku=sku,
            category=category,
            description=f'Frozen {name}',
            origin_country=origin_country,
            pack_size='10kg carton',
            unit=unit,
            price=price,
            is_active=is_active
        )

    @staticmethod
    def create_customer(company_name=None, email=None, contact_name='Jane Buyer', user=None, **kwargs):
        """Create a test customer"""
        if not company_name:
            company_name = f'Customer_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{company_name.lower()}@test.com'
        kwargs.setdefault('country', 'Ghana')
        kwargs.setdefault('address', '12 Harbour Road, Tema')
        return Customer.objects.create(
            company_name=company_name,
            contact_name=contact_name,
            email=email,
            phone=f'+1{random.randint(100000000, 999999999)}',
            user=user,
            **kwargs
        )

    @staticmethod
    def create_lead(contact_name=None, email=None, source='website', status='new', **kwargs):
        """Create a test lead"""
        if not contact_name:
            contact_name = f'Lead_{TestDataFactory.random_string(6)}'
        if email is None:
            email = f'{contact_name.lower()}@test.com'
        return Lead.objects.create(
            contact_name=contact_name,
            email=email,
            source=source,
            status=status,
            **kwargs
        )

    @staticmethod
    def create_quote(customer=None, user=None, status='draft', items=None, tax_rate=Decimal('0.00'),
                     shipping_fee=Decimal('0.00'), with_pdf=False, **kwargs):
        """
        Create a quote directly in `status`, bypassing the workflow.
        `items` is a list of (product_name, quantity, unit_price) tuples.
        """
        if customer is None:
            customer = TestDataFactory.create_customer()
        if items is None:
            items = [('Frozen Chicken Wings', Decimal('100.00'), Decimal('2.50'))]
        quote = Quote.objects.create(
            quote_number=generate_quote_number(),
            title=kwargs.pop('title', 'Test quote'),
            customer=customer,
            status=status,
            tax_rate=tax_rate,
            shipping_fee=shipping_fee,
            valid_until=kwargs.pop('valid_until', timezone.localdate() + timedelta(days=30)),
            final_file_url='quotes/test.pdf' if with_pdf else '',
            created_by=user,
            **kwargs
        )
        for index, (product_name, quantity, unit_price) in enumerate(items):
            QuoteItem.objects.create(
                quote=quote,
                product_name=product_name,
                quantity=Decimal(quantity),
                unit='kg',
                unit_price=Decimal(unit_price),
                total_price=(Decimal(quantity) * Decimal(unit_price)).quantize(Decimal('0.01')),
                sort_order=index,
            )
        recalculate_totals(quote)
        quote.save()
        return quote

    @staticmethod
    def create_quote_request(customer=None, user=None, status='pending', items=None, **kwargs):
        """Create a test quote request. `items` is a list of (product_name, quantity) tuples."""
        if items is None:
            items = [('Frozen Hake Fillets', Decimal('500.00'))]
        quote_request = QuoteRequest.objects.create(
            request_number=generate_request_number(),
            customer=customer,
            title=kwargs.pop('title', 'Need frozen fish'),
            status=status,
            submitted_by=user,
            **kwargs
        )
        for product_name, quantity in items:
            QuoteRequestItem.objects.create(
                quote_request=quote_request,
                product_name=product_name,
                quantity=Decimal(quantity),
                unit='kg',
            )
        return quote_request

    @staticmethod
    def create_order(customer=None, user=None, status='pending_payment', total_amount=Decimal('250.00'),
                     quote=None, **kwargs):
        """Create a test order with a single line"""
        if customer is None:
            customer = TestDataFactory.create_customer()
        order = Order.objects.create(
            order_number=generate_order_number(),
            customer=customer,
            quote=quote,
            status=status,
            subtotal=total_amount,
            total_amount=total_amount,
            created_by=user,
            **kwargs
        )
        OrderItem.objects.create(
            order=order,
            product_name='Frozen Chicken Wings',
            quantity=Decimal('100.00'),
            unit='kg',
            unit_price=(total_amount / Decimal('100')).quantize(Decimal('0.01')),
            total_price=total_amount,
        )
        OrderStatusHistory.objects.create(order=order, old_status='', new_status=status, changed_by=user)
        return order


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
