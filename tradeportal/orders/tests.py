"""
Test suite for the Orders module
Tests: order numbering, fulfilment status workflow, delivery details, payments,
invoice documents and customer tracking links
"""
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from tradeportal.core.exceptions import FunctionInvocationError, WorkflowError
from tradeportal.core.models import AuditLog
from tradeportal.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from tradeportal.orders import services, workflow
from tradeportal.orders.models import Order, OrderStatusHistory, Invoice
from tradeportal.quotes.models import MagicLinkToken

INVOKE = 'tradeportal.core.functions.invoke_function'


class OrderWorkflowRulesTests(TestCase):

    def test_transitions(self):
        self.assertTrue(workflow.can_transition('pending_payment', 'payment_received'))
        self.assertTrue(workflow.can_transition('on_hold', 'processing'))
        self.assertFalse(workflow.can_transition('pending_payment', 'shipped'))
        self.assertFalse(workflow.can_transition('delivered', 'cancelled'))
        self.assertEqual(workflow.ORDER_TRANSITIONS['cancelled'], set())

    def test_shipping_requires_tracking_details(self):
        order = TestDataFactory.create_order(status='ready_to_ship')
        with self.assertRaises(WorkflowError):
            workflow.assert_transition(order, 'shipped')
        order.carrier = 'Maersk'
        order.tracking_number = 'MSKU1234567'
        workflow.assert_transition(order, 'shipped')

    def test_order_number_sequence(self):
        prefix = f"ORD-{timezone.now().strftime('%Y%m')}-"
        first = TestDataFactory.create_order()
        second = TestDataFactory.create_order()
        self.assertEqual(first.order_number, f'{prefix}0001')
        self.assertEqual(second.order_number, f'{prefix}0002')

    def test_order_number_past_four_digits(self):
        prefix = f"ORD-{timezone.now().strftime('%Y%m')}-"
        order = TestDataFactory.create_order()
        Order.objects.filter(pk=order.pk).update(order_number=f'{prefix}9999')
        self.assertEqual(TestDataFactory.create_order().order_number, f'{prefix}10000')
        self.assertEqual(services.generate_order_number(), f'{prefix}10001')

    def test_invoice_number_prefixes(self):
        today = timezone.now().strftime('%Y%m%d')
        self.assertRegex(services.generate_invoice_number('proforma'), rf'^PRO-{today}-[0-9A-F]{{6}}$')
        self.assertRegex(services.generate_invoice_number('commercial'), rf'^INV-{today}-[0-9A-F]{{6}}$')
        self.assertRegex(services.generate_invoice_number('packing_list'), rf'^PL-{today}-[0-9A-F]{{6}}$')


class OrderAPITests(TestCase):
    """Order list, manual creation and status changes"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_create_manual_order(self):
        data = {
            'customer': self.customer.id,
            'shipping_fee': '30.00',
            'items': [
                {'product_name': 'Frozen Mackerel', 'quantity': '200', 'unit_price': '1.75'},
                {'product_name': 'Frozen Tilapia', 'quantity': '50', 'unit_price': '3.00', 'unit': 'carton'},
            ],
        }
        response = self.client.post('/api/v1/orders/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'order_confirmed')
        self.assertEqual(Decimal(response.data['subtotal']), Decimal('500.00'))
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('530.00'))
        self.assertEqual(response.data['delivery_address'], self.customer.address)
        self.assertEqual(len(response.data['items']), 2)
        self.assertEqual(response.data['status_history'][0]['new_status'], 'order_confirmed')

    def test_create_order_requires_items(self):
        response = self.client.post('/api/v1/orders/', {'customer': self.customer.id, 'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_orders_filtered(self):
        pending = TestDataFactory.create_order(customer=self.customer)
        TestDataFactory.create_order(customer=self.customer, status='processing')
        response = self.client.get('/api/v1/orders/?status=pending_payment')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data], [pending.id])

    def test_customer_role_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='customer'))
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_change_status_records_history(self):
        order = TestDataFactory.create_order(customer=self.customer, status='payment_received')
        response = self.client.post(
            f'/api/v1/orders/{order.id}/status/', {'status': 'processing', 'notes': 'Picking from cold store'}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'processing')

        history = OrderStatusHistory.objects.filter(order=order).last()
        self.assertEqual(history.old_status, 'payment_received')
        self.assertEqual(history.new_status, 'processing')
        self.assertEqual(history.notes, 'Picking from cold store')
        self.assertEqual(history.changed_by, self.user)

    def test_invalid_transition_rejected(self):
        order = TestDataFactory.create_order(customer=self.customer)
        response = self.client.post(f'/api/v1/orders/{order.id}/status/', {'status': 'delivered'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        order.refresh_from_db()
        self.assertEqual(order.status, 'pending_payment')

    def test_ship_after_delivery_details(self):
        order = TestDataFactory.create_order(customer=self.customer, status='ready_to_ship')
        response = self.client.post(f'/api/v1/orders/{order.id}/status/', {'status': 'shipped'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        eta = (timezone.localdate() + timedelta(days=21)).isoformat()
        response = self.client.patch(
            f'/api/v1/orders/{order.id}/delivery/',
            {'carrier': 'Maersk', 'tracking_number': 'MSKU1234567', 'estimated_delivery_date': eta},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['estimated_delivery_date'], eta)

        response = self.client.post(f'/api/v1/orders/{order.id}/status/', {'status': 'shipped'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post(f'/api/v1/orders/{order.id}/status/', {'status': 'delivered'})
        self.assertEqual(response.data['status'], 'delivered')
        self.assertIsNotNone(response.data['delivered_at'])

    def test_delivery_locked_when_delivered(self):
        order = TestDataFactory.create_order(customer=self.customer, status='delivered')
        response = self.client.patch(f'/api/v1/orders/{order.id}/delivery/', {'carrier': 'DHL'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_notes(self):
        order = TestDataFactory.create_order(customer=self.customer)
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'notes': 'Deliver before 9am'}, format='json')
        self.assertEqual(response.data['notes'], 'Deliver before 9am')


class PaymentTests(TestCase):
    """Partial and full payments"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.order = TestDataFactory.create_order(total_amount=Decimal('250.00'))

    def test_partial_payment_keeps_status(self):
        response = self.client.post(
            f'/api/v1/orders/{self.order.id}/payments/',
            {'amount': '100.00', 'payment_method': 'mobile_money', 'reference': 'MM-778'}
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.amount_paid, Decimal('100.00'))
        self.assertEqual(self.order.balance_due, Decimal('150.00'))
        self.assertEqual(self.order.status, 'pending_payment')
        self.assertEqual(self.order.payment_reference, 'MM-778')

    @mock.patch(INVOKE)
    def test_full_payment_moves_order_and_marks_invoices_paid(self, invoke):
        invoke.return_value = {'file_path': 'invoices/proforma.pdf'}
        proforma, _ = services.generate_invoice(self.order, 'proforma', self.user)
        self.assertEqual(proforma.status, 'sent')

        services.record_payment(self.order, Decimal('100.00'), 'bank_transfer', self.user)
        services.record_payment(self.order, Decimal('150.00'), 'bank_transfer', self.user)

        self.order.refresh_from_db()
        proforma.refresh_from_db()
        self.assertTrue(self.order.is_fully_paid)
        self.assertEqual(self.order.status, 'payment_received')
        self.assertEqual(proforma.status, 'paid')
        self.assertIsNotNone(proforma.paid_at)
        self.assertTrue(
            OrderStatusHistory.objects.filter(order=self.order, new_status='payment_received').exists()
        )

        response = self.client.get(f'/api/v1/orders/{self.order.id}/payments/')
        self.assertEqual(len(response.data), 2)

    def test_full_payment_status_change_is_audited(self):
        services.record_payment(self.order, Decimal('250.00'), 'bank_transfer', self.user)
        log = AuditLog.objects.get(event_type='order_status_changed', resource_id=str(self.order.id))
        self.assertEqual(log.changes, {'before': {'status': 'pending_payment'}, 'after': {'status': 'payment_received'}})
        self.assertEqual(log.user, self.user)

    def test_full_payment_on_confirmed_order_follows_workflow(self):
        order = TestDataFactory.create_order(status='order_confirmed', total_amount=Decimal('80.00'))
        services.record_payment(order, Decimal('80.00'), 'cash', self.user)
        order.refresh_from_db()
        self.assertEqual(order.status, 'payment_received')
        steps = list(
            OrderStatusHistory.objects.filter(order=order).exclude(old_status='')
            .order_by('id').values_list('old_status', 'new_status')
        )
        self.assertEqual(steps, [('order_confirmed', 'pending_payment'), ('pending_payment', 'payment_received')])
        self.assertEqual(
            AuditLog.objects.filter(event_type='order_status_changed', resource_id=str(order.id)).count(), 2
        )

    def test_full_payment_on_held_order_keeps_status(self):
        order = TestDataFactory.create_order(status='on_hold', total_amount=Decimal('80.00'))
        services.record_payment(order, Decimal('80.00'), 'cash', self.user)
        order.refresh_from_db()
        self.assertEqual(order.status, 'on_hold')
        self.assertFalse(AuditLog.objects.filter(event_type='order_status_changed', resource_id=str(order.id)).exists())

    def test_payment_on_cancelled_order(self):
        self.order.status = 'cancelled'
        self.order.save()
        with self.assertRaises(WorkflowError):
            services.record_payment(self.order, Decimal('50.00'), 'cash', self.user)

    def test_invalid_amount(self):
        response = self.client.post(
            f'/api/v1/orders/{self.order.id}/payments/', {'amount': '0', 'payment_method': 'cash'}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class InvoiceTests(TestCase):
    """Proforma, commercial invoice and packing list documents"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.order = TestDataFactory.create_order()

    @mock.patch(INVOKE)
    def test_generate_proforma_is_idempotent(self, invoke):
        invoke.return_value = {'filePath': 'invoices/PRO-1.pdf'}
        response = self.client.post(f'/api/v1/orders/{self.order.id}/invoices/', {'invoice_type': 'proforma'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['invoice_number'].startswith('PRO-'))
        self.assertEqual(response.data['status'], 'sent')
        self.assertEqual(response.data['file_url'], 'invoices/PRO-1.pdf')
        self.assertIsNotNone(response.data['download_url'])
        self.assertEqual(invoke.call_args[0][0], 'generate-invoice-pdf')

        response = self.client.post(f'/api/v1/orders/{self.order.id}/invoices/', {'invoice_type': 'proforma'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Invoice.objects.filter(order=self.order, invoice_type='proforma').count(), 1)
        self.assertEqual(invoke.call_count, 1)

    def test_commercial_invoice_requires_delivery_details(self):
        self.order.carrier = ''
        self.order.save()
        response = self.client.post(f'/api/v1/orders/{self.order.id}/invoices/', {'invoice_type': 'commercial'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Invoice.objects.exists())

    @mock.patch(INVOKE)
    def test_generation_failure_leaves_no_invoice(self, invoke):
        invoke.side_effect = FunctionInvocationError('generate-invoice-pdf', 'HTTP 500', 500)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/invoices/', {'invoice_type': 'packing_list'})
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertFalse(Invoice.objects.exists())

    @mock.patch(INVOKE)
    def test_void_invoice(self, invoke):
        invoke.return_value = {'file_path': 'invoices/PL.pdf'}
        invoice, _ = services.generate_invoice(self.order, 'packing_list', self.user)
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/void/', {'reason': 'Wrong weights'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'void')

        response = self.client.post(f'/api/v1/invoices/{invoice.id}/void/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        # A voided document can be generated again
        invoke.return_value = {'file_path': 'invoices/PL-2.pdf'}
        new_invoice, created = services.generate_invoice(self.order, 'packing_list', self.user)
        self.assertTrue(created)
        self.assertNotEqual(new_invoice.id, invoice.id)

    @mock.patch(INVOKE)
    def test_invoice_list_filter(self, invoke):
        invoke.return_value = {'file_path': 'invoices/doc.pdf'}
        services.generate_invoice(self.order, 'proforma', self.user)
        services.generate_invoice(self.order, 'packing_list', self.user)
        response = self.client.get('/api/v1/invoices/?invoice_type=packing_list')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['invoice_type'], 'packing_list')


class TrackingLinkTests(TestCase):
    """Order tracking links e-mailed to customers"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer(email='buyer@coldchain.test')
        self.order = TestDataFactory.create_order(customer=self.customer, status='processing')

    @mock.patch(INVOKE)
    def test_send_tracking_link_and_track(self, invoke):
        invoke.return_value = {}
        response = self.client.post(f'/api/v1/orders/{self.order.id}/send-tracking-link/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Tracking link sent to buyer@coldchain.test')

        token = MagicLinkToken.objects.get(order=self.order, token_type='order_tracking')
        name, body = invoke.call_args[0]
        self.assertEqual(name, 'send-order-tracking-link')
        self.assertTrue(body['trackingUrl'].endswith(f'/track-order/{token.token}'))

        public = APIClient()
        response = public.get(f'/api/v1/orders/track/{token.token}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['order_number'], self.order.order_number)
        self.assertEqual(response.data['status'], 'processing')
        self.assertNotIn('amount_paid', response.data)

        # Tracking links are reusable until they expire
        response = public.get(f'/api/v1/orders/track/{token.token}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    @mock.patch(INVOKE)
    def test_send_failure_discards_token(self, invoke):
        invoke.side_effect = FunctionInvocationError('send-order-tracking-link', 'HTTP 500', 500)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/send-tracking-link/')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertFalse(MagicLinkToken.objects.filter(order=self.order).exists())

    def test_expired_tracking_link(self):
        token = MagicLinkToken.issue('order_tracking', self.customer.email, order=self.order)
        MagicLinkToken.objects.filter(pk=token.pk).update(expires_at=timezone.now() - timedelta(hours=1))
        response = APIClient().get(f'/api/v1/orders/track/{token.token}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['reason'], 'expired')

    def test_quote_token_cannot_track(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent')
        token = MagicLinkToken.issue('quote_approval', self.customer.email, quote=quote)
        response = APIClient().get(f'/api/v1/orders/track/{token.token}/')
        self.assertEqual(response.data['reason'], 'invalid')


class OrderFromQuoteTests(TestCase):

    def test_order_copies_quote_lines_and_totals(self):
        user = TestDataFactory.create_user(role='staff')
        quote = TestDataFactory.create_quote(
            status='accepted',
            items=[('Beef Liver', Decimal('40'), Decimal('2.00')), ('Turkey Tails', Decimal('60'), Decimal('1.50'))],
            tax_rate=Decimal('10.00'),
            shipping_fee=Decimal('12.00'),
        )
        order = services.create_order_from_quote(quote, user, confirmation_method='phone', payment_method='cash')
        self.assertEqual(order.subtotal, quote.subtotal)
        self.assertEqual(order.tax_amount, quote.tax_amount)
        self.assertEqual(order.total_amount, quote.total_amount)
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.manual_confirmation_method, 'phone')
        self.assertEqual(order.customer, quote.customer)
        self.assertEqual(Order.objects.get(quote=quote), order)

    def test_invalid_initial_status(self):
        quote = TestDataFactory.create_quote(status='accepted')
        with self.assertRaises(WorkflowError):
            services.create_order_from_quote(quote, None, confirmation_method='phone', initial_status='shipped')
