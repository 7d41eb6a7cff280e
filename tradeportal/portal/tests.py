"""
Test suite for the customer portal
Tests: cart, cart submission as a quote request, scoped quote/order/invoice views,
quote responses and revision requests, profile
"""
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from tradeportal.core.exceptions import FunctionInvocationError
from tradeportal.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from tradeportal.crm.models import Customer
from tradeportal.orders.models import Invoice
from tradeportal.portal.models import CartItem
from tradeportal.portal import services
from tradeportal.quotes.models import QuoteRequest, QuoteRevision

INVOKE = 'tradeportal.core.functions.invoke_function'


class CartTests(TestCase):
    """Cart add/update/remove"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='customer', company_name='Harbour Foods')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(name='Frozen Hake Fillets', unit='carton')

    def test_add_product_twice_merges_line(self):
        response = self.client.post('/api/v1/portal/cart/items/', {'product': self.product.id, 'quantity': '10'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['product_name'], 'Frozen Hake Fillets')
        self.assertEqual(response.data['unit'], 'carton')

        response = self.client.post('/api/v1/portal/cart/items/', {'product': self.product.id, 'quantity': '5'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['quantity']), Decimal('15.00'))
        self.assertEqual(CartItem.objects.filter(cart__user=self.user).count(), 1)

    def test_add_free_text_item(self):
        response = self.client.post(
            '/api/v1/portal/cart/items/',
            {'product_name': 'Frozen Squid Rings', 'quantity': '200', 'preferred_grade': 'A'}
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['product'])
        self.assertEqual(response.data['unit'], 'kg')

    def test_add_requires_product_or_name(self):
        response = self.client.post('/api/v1/portal/cart/items/', {'quantity': '2'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_inactive_product_rejected(self):
        product = TestDataFactory.create_product(is_active=False)
        response = self.client.post('/api/v1/portal/cart/items/', {'product': product.id, 'quantity': '1'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_and_remove_item(self):
        item, _ = services.add_to_cart(self.user, Decimal('4'), product=self.product)
        response = self.client.patch(f'/api/v1/portal/cart/items/{item.id}/', {'quantity': '8'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['quantity']), Decimal('8.00'))

        response = self.client.patch(f'/api/v1/portal/cart/items/{item.id}/', {'quantity': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.delete(f'/api/v1/portal/cart/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        response = self.client.get('/api/v1/portal/cart/')
        self.assertEqual(response.data['item_count'], 0)

    def test_cannot_touch_another_users_cart(self):
        other = TestDataFactory.create_user(role='customer')
        item, _ = services.add_to_cart(other, Decimal('1'), product_name='Prawns')
        response = self.client.delete(f'/api/v1/portal/cart/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_staff_cannot_use_portal(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='staff'))
        response = self.client.get('/api/v1/portal/cart/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_rejected(self):
        self.client.logout()
        response = self.client.get('/api/v1/portal/cart/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class CartSubmitTests(TestCase):
    """Submitting the cart creates a quote request"""

    def setUp(self):
        self.user = TestDataFactory.create_user(
            username='harbour', email='orders@harbourfoods.test', role='customer',
            first_name='Ama', last_name='Owusu', company_name='Harbour Foods'
        )
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    @mock.patch(INVOKE)
    def test_submit_creates_customer_and_request(self, invoke):
        invoke.return_value = {}
        services.add_to_cart(self.user, Decimal('100'), product_name='Frozen Chicken Legs')
        services.add_to_cart(self.user, Decimal('20'), product_name='Frozen Gizzards')

        response = self.client.post('/api/v1/portal/cart/submit/', {'message': 'Need by Friday', 'urgency': 'high'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['request_number'].startswith('QR-'))
        self.assertEqual(response.data['urgency'], 'high')
        self.assertEqual(len(response.data['items']), 2)

        customer = Customer.objects.get(user=self.user)
        self.assertEqual(customer.company_name, 'Harbour Foods')
        self.assertEqual(customer.contact_name, 'Ama Owusu')
        quote_request = QuoteRequest.objects.get(pk=response.data['id'])
        self.assertEqual(quote_request.customer, customer)
        self.assertEqual(quote_request.submitted_by, self.user)
        self.assertFalse(CartItem.objects.filter(cart__user=self.user).exists())

        email_types = [call[0][1]['type'] for call in invoke.call_args_list]
        self.assertEqual(email_types, ['quote_request_confirmation', 'new_quote_request_admin'])

    @mock.patch(INVOKE)
    def test_email_failure_does_not_block_submission(self, invoke):
        invoke.side_effect = FunctionInvocationError('send-email', 'HTTP 500', 500)
        services.add_to_cart(self.user, Decimal('5'), product_name='Frozen Tuna')
        response = self.client.post('/api/v1/portal/cart/submit/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(QuoteRequest.objects.count(), 1)

    def test_existing_customer_with_same_email_is_not_claimed(self):
        staff = TestDataFactory.create_user(role='staff')
        existing = TestDataFactory.create_customer(
            company_name='Harbour Foods Ltd', email='ORDERS@harbourfoods.test', created_by=staff
        )
        services.add_to_cart(self.user, Decimal('5'), product_name='Frozen Tuna')
        response = self.client.post('/api/v1/portal/cart/submit/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        existing.refresh_from_db()
        self.assertIsNone(existing.user)
        own = Customer.objects.get(user=self.user)
        self.assertNotEqual(own.pk, existing.pk)
        self.assertEqual(QuoteRequest.objects.get().customer, own)

    def test_second_submission_reuses_linked_customer(self):
        services.add_to_cart(self.user, Decimal('5'), product_name='Frozen Tuna')
        self.client.post('/api/v1/portal/cart/submit/')
        services.add_to_cart(self.user, Decimal('8'), product_name='Frozen Hake')
        self.client.post('/api/v1/portal/cart/submit/')
        self.assertEqual(Customer.objects.count(), 1)
        self.assertEqual(QuoteRequest.objects.filter(customer__user=self.user).count(), 2)

    def test_empty_cart(self):
        response = self.client.post('/api/v1/portal/cart/submit/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Your cart is empty')

    def test_incomplete_profile(self):
        self.user.company_name = ''
        self.user.save()
        services.add_to_cart(self.user, Decimal('5'), product_name='Frozen Tuna')
        response = self.client.post('/api/v1/portal/cart/submit/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(QuoteRequest.objects.exists())
        self.assertEqual(CartItem.objects.filter(cart__user=self.user).count(), 1)


class PortalRecordsTests(TestCase):
    """Quotes, orders and invoices are scoped to the logged-in customer"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='customer', company_name='Harbour Foods')
        self.customer = TestDataFactory.create_customer(user=self.user)
        self.other_customer = TestDataFactory.create_customer()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_quote_visibility(self):
        sent = TestDataFactory.create_quote(customer=self.customer, status='sent', with_pdf=True)
        TestDataFactory.create_quote(customer=self.customer, status='draft')
        TestDataFactory.create_quote(customer=self.customer, status='approved')
        TestDataFactory.create_quote(
            customer=self.customer, status='sent', deleted_at=timezone.now(), status_before_delete='sent'
        )
        TestDataFactory.create_quote(customer=self.other_customer, status='sent')

        response = self.client.get('/api/v1/portal/quotes/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data], [sent.id])
        self.assertTrue(response.data[0]['can_respond'])
        self.assertIsNotNone(response.data[0]['pdf_url'])

    def test_other_customers_quote_not_found(self):
        quote = TestDataFactory.create_quote(customer=self.other_customer, status='sent')
        response = self.client.get(f'/api/v1/portal/quotes/{quote.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_accept_quote(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent')
        response = self.client.post(f'/api/v1/portal/quotes/{quote.id}/respond/', {'decision': 'accepted'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'accepted')
        self.assertFalse(response.data['can_respond'])

        response = self.client.post(f'/api/v1/portal/quotes/{quote.id}/respond/', {'decision': 'rejected'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_request_revision(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent')
        data = {
            'request_type': 'quantity_change',
            'requested_changes': {'Frozen Chicken Wings': '150'},
            'customer_note': 'Can we do 150kg?',
        }
        response = self.client.post(f'/api/v1/portal/quotes/{quote.id}/revisions/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'submitted')

        revision = QuoteRevision.objects.get(quote=quote)
        self.assertEqual(revision.requested_by, self.user)
        self.assertEqual(revision.customer, self.customer)

        response = self.client.post(f'/api/v1/portal/quotes/{quote.id}/revisions/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.get(f'/api/v1/portal/quotes/{quote.id}/revisions/')
        self.assertEqual(len(response.data), 1)

    def test_quote_requests_scoped(self):
        mine = TestDataFactory.create_quote_request(customer=self.customer)
        TestDataFactory.create_quote_request(customer=self.other_customer)
        response = self.client.get('/api/v1/portal/quote-requests/')
        self.assertEqual([row['id'] for row in response.data], [mine.id])

    def test_orders_and_history(self):
        order = TestDataFactory.create_order(customer=self.customer)
        other = TestDataFactory.create_order(customer=self.other_customer)

        response = self.client.get('/api/v1/portal/orders/')
        self.assertEqual([row['id'] for row in response.data], [order.id])
        self.assertIsNone(response.data[0]['status_history'])

        response = self.client.get(f'/api/v1/portal/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status_history'][0]['status'], 'pending_payment')

        response = self.client.get(f'/api/v1/portal/orders/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invoices_hide_drafts_and_void(self):
        order = TestDataFactory.create_order(customer=self.customer)
        today = timezone.localdate()
        common = {'order': order, 'customer': self.customer, 'total_amount': order.total_amount, 'issue_date': today}
        sent = Invoice.objects.create(invoice_number='PRO-1', invoice_type='proforma', status='sent', file_url='invoices/a.pdf', **common)
        Invoice.objects.create(invoice_number='PRO-2', invoice_type='proforma', status='void', **common)
        Invoice.objects.create(invoice_number='PL-1', invoice_type='packing_list', status='draft', **common)

        response = self.client.get('/api/v1/portal/invoices/')
        self.assertEqual([row['id'] for row in response.data], [sent.id])
        self.assertIsNotNone(response.data[0]['download_url'])

    def test_customer_without_record_sees_nothing(self):
        lonely = TestDataFactory.create_user(role='customer', email='nobody@nowhere.test')
        TestDataFactory.create_quote(customer=self.other_customer, status='sent')
        self.client.authenticate_user(lonely)
        self.assertEqual(self.client.get('/api/v1/portal/quotes/').data, [])
        self.assertEqual(self.client.get('/api/v1/portal/orders/').data, [])


class ProfileTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user(role='customer')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_update_profile(self):
        response = self.client.patch(
            '/api/v1/portal/profile/', {'company_name': 'Tema Cold Store', 'country': 'Ghana'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['company_name'], 'Tema Cold Store')

    def test_username_is_read_only(self):
        username = self.user.username
        self.client.patch('/api/v1/portal/profile/', {'username': 'renamed'}, format='json')
        self.user.refresh_from_db()
        self.assertEqual(self.user.username, username)

    def test_email_is_read_only(self):
        email = self.user.email
        response = self.client.patch('/api/v1/portal/profile/', {'email': 'someone@else.test'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], email)
        self.user.refresh_from_db()
        self.assertEqual(self.user.email, email)


class PortalAccountLinkTests(TestCase):
    """Portal records are reached through the account's customer link, never its e-mail"""

    def setUp(self):
        staff = TestDataFactory.create_user(role='staff')
        self.victim = TestDataFactory.create_customer(email='buyer@victim.example', created_by=staff)
        self.quote = TestDataFactory.create_quote(customer=self.victim, status='sent')
        TestDataFactory.create_order(customer=self.victim)
        self.client = AuthenticatedAPIClient()

    def test_same_email_account_sees_nothing(self):
        intruder = TestDataFactory.create_user(role='customer', email='buyer@victim.example')
        self.client.authenticate_user(intruder)

        self.assertEqual(self.client.get('/api/v1/portal/quotes/').data, [])
        self.assertEqual(self.client.get('/api/v1/portal/orders/').data, [])
        self.assertEqual(self.client.get('/api/v1/portal/invoices/').data, [])

        response = self.client.post(f'/api/v1/portal/quotes/{self.quote.id}/respond/', {'decision': 'accepted'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.quote.refresh_from_db()
        self.assertEqual(self.quote.status, 'sent')

    def test_profile_email_change_grants_nothing(self):
        intruder = TestDataFactory.create_user(role='customer', email='intruder@test.com')
        self.client.authenticate_user(intruder)
        self.client.patch('/api/v1/portal/profile/', {'email': 'buyer@victim.example'}, format='json')

        self.assertEqual(self.client.get('/api/v1/portal/quotes/').data, [])
        response = self.client.post(f'/api/v1/portal/quotes/{self.quote.id}/respond/', {'decision': 'accepted'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_linked_account_sees_records(self):
        buyer = TestDataFactory.create_user(role='customer', email='someone@victim.example')
        self.victim.user = buyer
        self.victim.save()
        self.client.authenticate_user(buyer)
        response = self.client.get('/api/v1/portal/quotes/')
        self.assertEqual([row['id'] for row in response.data], [self.quote.id])
