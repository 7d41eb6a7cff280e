"""
Test suite for the Quotes module
Tests: quote wizard, editor, review/send workflow, magic-link approval, order conversion,
trash, revisions, quote requests and expiry handling
"""
import re
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from tradeportal.core.exceptions import ConflictError, FunctionInvocationError, WorkflowError
from tradeportal.core.models import AuditLog
from tradeportal.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from tradeportal.crm.models import Lead
from tradeportal.orders.models import Order
from tradeportal.quotes import services, workflow
from tradeportal.quotes.models import Quote, QuoteRevision, MagicLinkToken, QuoteApproval

INVOKE = 'tradeportal.core.functions.invoke_function'


class QuoteWorkflowRulesTests(TestCase):
    """Transition table checks without the API"""

    def test_allowed_transitions(self):
        self.assertTrue(workflow.can_transition('draft', 'pending_review'))
        self.assertTrue(workflow.can_transition('pending_review', 'sent'))
        self.assertTrue(workflow.can_transition('approved', 'converted'))
        self.assertTrue(workflow.can_transition('sent', 'accepted'))
        self.assertTrue(workflow.can_transition('rejected', 'draft'))

    def test_forbidden_transitions(self):
        self.assertFalse(workflow.can_transition('draft', 'sent'))
        self.assertFalse(workflow.can_transition('draft', 'converted'))
        self.assertFalse(workflow.can_transition('accepted', 'draft'))
        self.assertFalse(workflow.can_transition('converted', 'draft'))
        self.assertEqual(workflow.QUOTE_TRANSITIONS['converted'], set())

    def test_trashed_quote_has_no_transitions(self):
        quote = TestDataFactory.create_quote(deleted_at=timezone.now(), status_before_delete='draft')
        self.assertEqual(workflow.allowed_transitions(quote), [])
        with self.assertRaises(WorkflowError):
            workflow.assert_transition(quote, 'pending_review')

    def test_quote_number_format(self):
        quote = TestDataFactory.create_quote()
        today = timezone.now().strftime('%Y%m%d')
        self.assertRegex(quote.quote_number, rf'^QT-{today}-\d{{3}}$')
        self.assertTrue(services.generate_quote_number().endswith('-002'))

    def test_quote_number_past_three_digits(self):
        prefix = f"QT-{timezone.now().strftime('%Y%m%d')}-"
        quote = TestDataFactory.create_quote()
        Quote.objects.filter(pk=quote.pk).update(quote_number=f'{prefix}999')
        self.assertEqual(TestDataFactory.create_quote().quote_number, f'{prefix}1000')
        self.assertEqual(services.generate_quote_number(), f'{prefix}1001')

    def test_totals(self):
        quote = TestDataFactory.create_quote(
            items=[('Chicken', Decimal('3'), Decimal('1.35')), ('Hake', Decimal('10'), Decimal('4.00'))],
            tax_rate=Decimal('21.00'),
            shipping_fee=Decimal('15.00'),
        )
        self.assertEqual(quote.subtotal, Decimal('44.05'))
        self.assertEqual(quote.tax_amount, Decimal('9.25'))
        self.assertEqual(quote.total_amount, Decimal('68.30'))


class QuoteAPITests(TestCase):
    """Quote wizard and editor endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()
        self.product = TestDataFactory.create_product(name='Frozen Chicken Wings')

    def test_create_quote(self):
        """Wizard creates a draft with computed totals and default validity"""
        data = {
            'customer': self.customer.id,
            'title': 'Chicken wings for Q3',
            'apply_tax': True,
            'shipping_fee': '10.00',
            'items': [
                {'product': self.product.id, 'quantity': '100', 'unit_price': '2.50'},
            ],
        }
        response = self.client.post('/api/v1/quotes/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(Decimal(response.data['subtotal']), Decimal('250.00'))
        self.assertEqual(Decimal(response.data['tax_amount']), Decimal('52.50'))
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('312.50'))
        self.assertEqual(response.data['items'][0]['product_name'], 'Frozen Chicken Wings')
        self.assertEqual(response.data['valid_until'], (timezone.localdate() + timedelta(days=30)).isoformat())
        self.assertTrue(AuditLog.objects.filter(event_type='quote_created', resource_id=str(response.data['id'])).exists())

    def test_create_quote_requires_items(self):
        response = self.client.post('/api/v1/quotes/', {'customer': self.customer.id, 'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_quote_requires_customer_or_email(self):
        data = {'items': [{'product_name': 'Beef', 'quantity': '5', 'unit_price': '3.00'}]}
        response = self.client.post('/api/v1/quotes/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_role_cannot_manage_quotes(self):
        customer_user = TestDataFactory.create_user(role='customer')
        self.client.authenticate_user(customer_user)
        response = self.client.get('/api/v1/quotes/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update_draft_quote_recalculates(self):
        quote = TestDataFactory.create_quote(customer=self.customer, with_pdf=True)
        data = {'items': [{'product_name': 'Hake', 'quantity': '20', 'unit_price': '5.00'}], 'shipping_fee': '5.00'}
        response = self.client.patch(f'/api/v1/quotes/{quote.id}/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('105.00'))
        self.assertEqual(response.data['final_file_url'], '')
        self.assertEqual(len(response.data['items']), 1)

    def test_edit_pending_review_returns_to_draft(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='pending_review', with_pdf=True)
        response = self.client.patch(f'/api/v1/quotes/{quote.id}/', {'notes': 'Price adjusted'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(response.data['final_file_url'], '')

    def test_sent_quote_is_not_editable(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent', with_pdf=True)
        response = self.client.patch(f'/api/v1/quotes/{quote.id}/', {'notes': 'Too late'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_list_hides_trashed_quotes(self):
        visible = TestDataFactory.create_quote(customer=self.customer)
        trashed = TestDataFactory.create_quote(customer=self.customer, deleted_at=timezone.now(), status_before_delete='draft')
        response = self.client.get('/api/v1/quotes/')
        ids = [row['id'] for row in response.data]
        self.assertIn(visible.id, ids)
        self.assertNotIn(trashed.id, ids)

        response = self.client.get('/api/v1/quotes/?trash=true')
        self.assertEqual([row['id'] for row in response.data], [trashed.id])

    def test_list_filters_by_status(self):
        TestDataFactory.create_quote(customer=self.customer, status='draft')
        sent = TestDataFactory.create_quote(customer=self.customer, status='sent')
        response = self.client.get('/api/v1/quotes/?status=sent')
        self.assertEqual([row['id'] for row in response.data], [sent.id])


class QuoteReviewAndSendTests(TestCase):
    """PDF generation, review, approval and send"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer(email='buyer@coldchain.test')

    @mock.patch(INVOKE)
    def test_generate_pdf_stores_path(self, invoke):
        invoke.return_value = {'file_path': 'quotes/QT-test.pdf'}
        quote = TestDataFactory.create_quote(customer=self.customer)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/generate-pdf/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['final_file_url'], 'quotes/QT-test.pdf')
        self.assertIsNotNone(response.data['pdf_url'])
        self.assertEqual(invoke.call_args[0][0], 'generate-quote-pdf')
        self.assertEqual(invoke.call_args[0][1]['quoteNumber'], quote.quote_number)

    @mock.patch(INVOKE)
    def test_generate_pdf_failure_returns_502(self, invoke):
        invoke.side_effect = FunctionInvocationError('generate-quote-pdf', 'HTTP 500', 500)
        quote = TestDataFactory.create_quote(customer=self.customer)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/generate-pdf/')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        quote.refresh_from_db()
        self.assertEqual(quote.final_file_url, '')

    def test_generate_pdf_not_allowed_when_sent(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent', with_pdf=True)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/generate-pdf/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_submit_for_review_requires_prices(self):
        quote = TestDataFactory.create_quote(customer=self.customer, items=[('Tilapia', Decimal('10'), Decimal('0'))])
        response = self.client.post(f'/api/v1/quotes/{quote.id}/submit-for-review/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        quote.refresh_from_db()
        self.assertEqual(quote.status, 'draft')

    def test_submit_approve_and_return_to_draft(self):
        quote = TestDataFactory.create_quote(customer=self.customer, with_pdf=True)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/submit-for-review/')
        self.assertEqual(response.data['status'], 'pending_review')

        response = self.client.post(f'/api/v1/quotes/{quote.id}/approve/')
        self.assertEqual(response.data['status'], 'approved')
        self.assertEqual(response.data['approved_by'], self.user.id)

        response = self.client.post(f'/api/v1/quotes/{quote.id}/return-to-draft/', {'reason': 'Wrong price'})
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(response.data['final_file_url'], '')
        self.assertIsNone(response.data['approved_by'])

        transitions = AuditLog.objects.filter(event_type='quote_status_changed', resource_id=str(quote.id))
        self.assertEqual(transitions.count(), 3)
        self.assertEqual(
            transitions.order_by('created_at', 'id').first().event_data,
            {'old_status': 'draft', 'new_status': 'pending_review', 'notes': ''}
        )

    def test_send_requires_pdf(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='approved')
        response = self.client.post(f'/api/v1/quotes/{quote.id}/send/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_send_draft_not_allowed(self):
        quote = TestDataFactory.create_quote(customer=self.customer, with_pdf=True)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/send/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @mock.patch(INVOKE)
    def test_send_from_pending_review(self, invoke):
        """Sending straight from review records the sender as approver and issues an approval link"""
        invoke.return_value = {'success': True}
        quote = TestDataFactory.create_quote(customer=self.customer, status='pending_review', with_pdf=True)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/send/', {'message': 'Please review'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'sent')
        self.assertEqual(response.data['approved_by'], self.user.id)
        self.assertIsNotNone(response.data['sent_at'])

        token = MagicLinkToken.objects.get(quote=quote, token_type='quote_approval')
        self.assertEqual(token.email, 'buyer@coldchain.test')
        name, body = invoke.call_args[0]
        self.assertEqual(name, 'send-quote-email')
        self.assertTrue(body['approvalUrl'].endswith(f'/quote-approval/{token.token}'))
        self.assertEqual(body['customerEmail'], 'buyer@coldchain.test')

    @mock.patch(INVOKE)
    def test_send_email_failure_rolls_back(self, invoke):
        invoke.side_effect = FunctionInvocationError('send-quote-email', 'HTTP 503', 503)
        quote = TestDataFactory.create_quote(customer=self.customer, status='approved', with_pdf=True)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/send/')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        quote.refresh_from_db()
        self.assertEqual(quote.status, 'approved')
        self.assertIsNone(quote.sent_at)
        self.assertFalse(MagicLinkToken.objects.filter(quote=quote).exists())

    def test_manual_customer_response(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent', with_pdf=True)
        response = self.client.post(
            f'/api/v1/quotes/{quote.id}/customer-response/',
            {'decision': 'rejected', 'notes': 'Price too high'}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'rejected')
        self.assertEqual(response.data['customer_response_notes'], 'Price too high')


class MagicLinkResponseTests(TestCase):
    """Public approve/reject through the e-mailed link"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer(email='buyer@coldchain.test')
        self.quote = TestDataFactory.create_quote(customer=self.customer, status='sent', with_pdf=True)
        self.token = MagicLinkToken.issue('quote_approval', 'buyer@coldchain.test', quote=self.quote)
        self.client = APIClient()

    def test_get_quote_summary(self):
        response = self.client.get(f'/api/v1/quotes/respond/{self.token.token}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quote_number'], self.quote.quote_number)
        self.assertNotIn('id', response.data)

    @mock.patch(INVOKE)
    def test_approve_marks_token_used(self, invoke):
        invoke.return_value = {}
        response = self.client.post(
            f'/api/v1/quotes/respond/{self.token.token}/',
            {'action': 'approve', 'notes': 'Go ahead'},
            HTTP_USER_AGENT='Mozilla/5.0'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'accepted')

        self.token.refresh_from_db()
        self.assertIsNotNone(self.token.used_at)
        approval = QuoteApproval.objects.get(quote=self.quote)
        self.assertEqual(approval.decision, 'approved')
        self.assertEqual(approval.customer_notes, 'Go ahead')
        self.assertEqual(approval.user_agent, 'Mozilla/5.0')

        response = self.client.post(f'/api/v1/quotes/respond/{self.token.token}/', {'action': 'reject'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['reason'], 'used')

    def test_unparseable_forwarded_for_is_stored_as_null(self):
        response = self.client.post(
            f'/api/v1/quotes/respond/{self.token.token}/',
            {'action': 'reject'},
            HTTP_X_FORWARDED_FOR='unknown'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        approval = QuoteApproval.objects.get(quote=self.quote)
        self.assertIsNone(approval.ip_address)

    def test_reject(self):
        response = self.client.post(f'/api/v1/quotes/respond/{self.token.token}/', {'action': 'reject'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.quote.refresh_from_db()
        self.assertEqual(self.quote.status, 'rejected')

    def test_expired_token(self):
        self.token.expires_at = timezone.now() - timedelta(minutes=1)
        self.token.save()
        response = self.client.get(f'/api/v1/quotes/respond/{self.token.token}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['reason'], 'expired')

    def test_unknown_token(self):
        response = self.client.post('/api/v1/quotes/respond/not-a-token/', {'action': 'approve'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['reason'], 'invalid')

    def test_quote_past_validity_cannot_be_accepted(self):
        self.quote.valid_until = timezone.localdate() - timedelta(days=1)
        self.quote.save()
        response = self.client.post(f'/api/v1/quotes/respond/{self.token.token}/', {'action': 'approve'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.token.refresh_from_db()
        self.assertIsNone(self.token.used_at)


class QuoteConversionTests(TestCase):
    """Quote to order conversion"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_convert_accepted_quote(self):
        quote_request = TestDataFactory.create_quote_request(customer=self.customer, status='quoted')
        quote = TestDataFactory.create_quote(
            customer=self.customer, status='accepted', with_pdf=True,
            shipping_fee=Decimal('20.00'), linked_quote_request=quote_request
        )
        data = {'confirmation_method': 'whatsapp', 'payment_method': 'bank_transfer', 'initial_status': 'pending_payment'}
        response = self.client.post(f'/api/v1/quotes/{quote.id}/convert-to-order/', data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(re.match(r'^ORD-\d{6}-\d{4}$', response.data['order_number']))
        self.assertEqual(Decimal(response.data['total_amount']), quote.total_amount)
        self.assertEqual(len(response.data['items']), 1)

        quote.refresh_from_db()
        quote_request.refresh_from_db()
        self.assertEqual(quote.status, 'converted')
        self.assertEqual(quote_request.status, 'converted')
        self.assertTrue(AuditLog.objects.filter(event_type='quote_converted_to_order', resource_id=str(quote.id)).exists())

    def test_second_conversion_conflicts(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='approved', with_pdf=True)
        data = {'confirmation_method': 'phone'}
        self.client.post(f'/api/v1/quotes/{quote.id}/convert-to-order/', data)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/convert-to-order/', data)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(Order.objects.filter(quote=quote).count(), 1)

    def test_draft_quote_cannot_be_converted(self):
        quote = TestDataFactory.create_quote(customer=self.customer)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/convert-to-order/', {'confirmation_method': 'phone'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Order.objects.exists())

    def test_invalid_confirmation_method(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='accepted')
        response = self.client.post(f'/api/v1/quotes/{quote.id}/convert-to-order/', {'confirmation_method': 'fax'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class QuoteTrashTests(TestCase):
    """Soft delete, restore and purge"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.admin = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_trash_and_restore(self):
        quote = TestDataFactory.create_quote(status='pending_review')
        response = self.client.delete(f'/api/v1/quotes/{quote.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        quote.refresh_from_db()
        self.assertTrue(quote.is_trashed)
        self.assertEqual(quote.status_before_delete, 'pending_review')

        response = self.client.post(f'/api/v1/quotes/{quote.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/quotes/{quote.id}/restore/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'pending_review')
        self.assertFalse(response.data['is_trashed'])

    def test_converted_quote_cannot_be_trashed(self):
        quote = TestDataFactory.create_quote(status='converted')
        response = self.client.delete(f'/api/v1/quotes/{quote.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_purge_requires_admin_and_trash(self):
        quote = TestDataFactory.create_quote()
        response = self.client.delete(f'/api/v1/quotes/{quote.id}/purge/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/quotes/{quote.id}/purge/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        services.trash_quote(quote, self.admin)
        response = self.client.delete(f'/api/v1/quotes/{quote.id}/purge/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Quote.objects.filter(pk=quote.pk).exists())

    def test_purge_old_trash_command(self):
        old = TestDataFactory.create_quote(deleted_at=timezone.now() - timedelta(days=45), status_before_delete='draft')
        recent = TestDataFactory.create_quote(deleted_at=timezone.now() - timedelta(days=2), status_before_delete='draft')
        out = StringIO()
        call_command('purge_quote_trash', stdout=out)
        self.assertIn('Purged 1', out.getvalue())
        self.assertFalse(Quote.objects.filter(pk=old.pk).exists())
        self.assertTrue(Quote.objects.filter(pk=recent.pk).exists())


class QuoteRevisionTests(TestCase):
    """Reopen and customer revision requests"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_reopen_sent_quote(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent', with_pdf=True)
        token = MagicLinkToken.issue('quote_approval', self.customer.email, quote=quote)
        revision = services.request_revision(quote, None, request_type='quantity_change', customer_note='Need 200kg')

        response = self.client.post(f'/api/v1/quotes/{quote.id}/reopen/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(response.data['revision_number'], 2)
        self.assertEqual(response.data['final_file_url'], '')

        token.refresh_from_db()
        revision.refresh_from_db()
        self.assertTrue(token.is_expired)
        self.assertEqual(revision.status, 'reviewing')

    def test_reopen_draft_not_allowed(self):
        quote = TestDataFactory.create_quote(customer=self.customer)
        response = self.client.post(f'/api/v1/quotes/{quote.id}/reopen/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_one_open_revision(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent')
        services.request_revision(quote, None, customer_note='First')
        with self.assertRaises(ConflictError):
            services.request_revision(quote, None, customer_note='Second')
        self.assertEqual(QuoteRevision.objects.filter(quote=quote).count(), 1)

    def test_revision_requires_sent_quote(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='accepted')
        with self.assertRaises(WorkflowError):
            services.request_revision(quote, None)

    def test_staff_update_revision(self):
        quote = TestDataFactory.create_quote(customer=self.customer, status='sent')
        revision = services.request_revision(quote, None)
        response = self.client.patch(
            f'/api/v1/quote-revisions/{revision.id}/',
            {'status': 'resolved', 'admin_note': 'Adjusted quantities'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'resolved')


class QuoteRequestTests(TestCase):
    """Staff handling of inbound quote requests"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_list_and_filter(self):
        TestDataFactory.create_quote_request(customer=self.customer)
        TestDataFactory.create_quote_request(customer=self.customer, status='declined')
        response = self.client.get('/api/v1/quote-requests/?status=pending')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertTrue(response.data[0]['request_number'].startswith('QR-'))

    def test_update_status_and_notes(self):
        quote_request = TestDataFactory.create_quote_request(customer=self.customer)
        response = self.client.patch(
            f'/api/v1/quote-requests/{quote_request.id}/',
            {'status': 'reviewed', 'admin_notes': 'Call back Monday'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'reviewed')

    def test_create_quote_from_request(self):
        quote_request = TestDataFactory.create_quote_request(customer=self.customer)
        response = self.client.post(f'/api/v1/quote-requests/{quote_request.id}/create-quote/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['origin_type'], 'request')
        self.assertEqual(response.data['linked_quote_request'], quote_request.id)
        self.assertEqual(Decimal(response.data['items'][0]['unit_price']), Decimal('0.00'))
        quote_request.refresh_from_db()
        self.assertEqual(quote_request.status, 'quoted')

        response = self.client.post(f'/api/v1/quote-requests/{quote_request.id}/create-quote/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_quote_from_request_without_customer(self):
        quote_request = TestDataFactory.create_quote_request(request_type='lead', lead_email='anon@fish.test')
        response = self.client.post(f'/api/v1/quote-requests/{quote_request.id}/create-quote/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_convert_request_to_lead(self):
        quote_request = TestDataFactory.create_quote_request(
            request_type='lead',
            lead_company_name='Ocean Foods Ltd',
            lead_contact_name='Kofi Mensah',
            lead_email='kofi@oceanfoods.test',
            lead_phone='+233200000000',
            lead_country='Ghana',
        )
        response = self.client.post(f'/api/v1/quote-requests/{quote_request.id}/convert-to-lead/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['lead']['source'], 'quote_request')
        self.assertEqual(response.data['customer']['company_name'], 'Ocean Foods Ltd')

        quote_request.refresh_from_db()
        self.assertEqual(quote_request.status, 'converted')
        self.assertIsNotNone(quote_request.customer)
        self.assertTrue(Lead.objects.filter(email='kofi@oceanfoods.test', customer=quote_request.customer).exists())

    def test_link_quote_to_request(self):
        quote_request = TestDataFactory.create_quote_request(customer=self.customer)
        quote = TestDataFactory.create_quote(customer_email='buyer@test.com')
        Quote.objects.filter(pk=quote.pk).update(customer=None)
        response = self.client.post(
            f'/api/v1/quotes/{quote.id}/link-request/', {'request_number': quote_request.request_number}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'success': True, 'error': None})
        quote.refresh_from_db()
        quote_request.refresh_from_db()
        self.assertEqual(quote.linked_quote_request, quote_request)
        self.assertEqual(quote.customer, self.customer)
        self.assertEqual(quote_request.status, 'quoted')

    def test_link_quote_to_unknown_request(self):
        quote = TestDataFactory.create_quote()
        response = self.client.post(f'/api/v1/quotes/{quote.id}/link-request/', {'request_number': 'QR-NOPE'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])


class QuoteExpiryTests(TestCase):
    """Expiry reminders and automatic expiry"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer(email='buyer@coldchain.test')
        today = timezone.localdate()
        self.expiring = TestDataFactory.create_quote(customer=self.customer, status='sent', valid_until=today + timedelta(days=2))
        self.later = TestDataFactory.create_quote(customer=self.customer, status='sent', valid_until=today + timedelta(days=20))
        self.overdue = TestDataFactory.create_quote(customer=self.customer, status='approved', valid_until=today - timedelta(days=1))

    def test_find_expiring_quotes(self):
        found = list(services.find_expiring_quotes(3))
        self.assertEqual(found, [self.expiring])

    @mock.patch(INVOKE)
    def test_reminders_sent_once_per_day(self, invoke):
        invoke.return_value = {}
        summary = services.send_expiry_reminders(3)
        self.assertEqual(summary['reminded'], 1)
        self.assertEqual(invoke.call_args[0][1]['emailType'], 'expiry_reminder')

        summary = services.send_expiry_reminders(3)
        self.assertEqual(summary['reminded'], 0)
        self.assertEqual(summary['skipped'], 1)
        self.assertEqual(invoke.call_count, 1)

    @mock.patch(INVOKE)
    def test_command_expires_overdue_quotes(self, invoke):
        invoke.return_value = {}
        out = StringIO()
        call_command('check_expiring_quotes', '--expire', stdout=out)
        self.overdue.refresh_from_db()
        self.expiring.refresh_from_db()
        self.assertEqual(self.overdue.status, 'expired')
        self.assertEqual(self.expiring.status, 'sent')
        self.assertIn('Expired 1', out.getvalue())

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('check_expiring_quotes', '--expire', '--dry-run', stdout=out)
        self.overdue.refresh_from_db()
        self.assertEqual(self.overdue.status, 'approved')
        self.assertFalse(AuditLog.objects.filter(event_type='quote_expiry_reminder_sent').exists())


class QuoteAuditTrailTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_audit_trail_lists_quote_events(self):
        quote = TestDataFactory.create_quote()
        other = TestDataFactory.create_quote()
        self.client.post(f'/api/v1/quotes/{quote.id}/submit-for-review/')
        self.client.post(f'/api/v1/quotes/{other.id}/submit-for-review/')

        response = self.client.get(f'/api/v1/quotes/{quote.id}/audit-trail/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['event_type'], 'quote_status_changed')
        self.assertEqual(response.data[0]['username'], self.user.username)
