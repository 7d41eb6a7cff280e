"""
Test suite for the CRM module
Tests: customers, leads, lead scoring, website lead capture, lead conversion, activities
"""
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from tradeportal.core.exceptions import ConflictError, FunctionInvocationError
from tradeportal.core.models import AuditLog
from tradeportal.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import Customer, Lead, Activity
from .services import compute_lead_score, convert_lead, find_or_create_customer


class LeadScoreTests(TestCase):

    def test_complete_referral_lead(self):
        lead = Lead(
            contact_name='Kofi Mensah',
            company_name='Accra Cold Chain',
            email='kofi@accracold.test',
            phone='+233200000000',
            country='Ghana',
            value=Decimal('12000.00'),
            source='referral',
        )
        self.assertEqual(compute_lead_score(lead), 90)

    def test_bare_lead(self):
        lead = Lead(contact_name='Walk-in', email='walkin@test.com', source='other')
        self.assertEqual(compute_lead_score(lead), 10)

    def test_small_value(self):
        lead = Lead(contact_name='A', value=Decimal('500.00'), source='website')
        self.assertEqual(compute_lead_score(lead), 15)


class CustomerAPITests(TestCase):

    def setUp(self):
        self.staff = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)

    def test_create_customer(self):
        data = {
            'company_name': 'Tema Seafoods',
            'contact_name': 'Ama Owusu',
            'email': 'buying@temaseafoods.test',
            'country': 'Ghana',
            'priority': 'high',
        }
        response = self.client.post('/api/v1/customers/', data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by'], self.staff.id)
        self.assertEqual(response.data['industry'], 'Food & Beverage')
        self.assertTrue(AuditLog.objects.filter(resource_type='Customer', action='create').exists())

    def test_list_filters(self):
        TestDataFactory.create_customer(company_name='Tema Seafoods', priority='high')
        TestDataFactory.create_customer(company_name='Lagos Cold Store', customer_status='prospect')

        response = self.client.get('/api/v1/customers/?search=tema')
        self.assertEqual([row['company_name'] for row in response.data], ['Tema Seafoods'])

        response = self.client.get('/api/v1/customers/?status=prospect')
        self.assertEqual([row['company_name'] for row in response.data], ['Lagos Cold Store'])

    def test_detail_includes_totals(self):
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_quote(customer=customer)
        TestDataFactory.create_quote(customer=customer, deleted_at=timezone.now())
        TestDataFactory.create_order(customer=customer, total_amount=Decimal('300.00'))
        TestDataFactory.create_order(customer=customer, status='cancelled', total_amount=Decimal('90.00'))

        response = self.client.get(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quote_count'], 1)
        self.assertEqual(response.data['order_count'], 2)
        self.assertEqual(response.data['total_order_value'], '300.00')

    def test_update_customer(self):
        customer = TestDataFactory.create_customer()
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'priority': 'low'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        customer.refresh_from_db()
        self.assertEqual(customer.priority, 'low')

    def test_staff_links_portal_account(self):
        customer = TestDataFactory.create_customer()
        account = TestDataFactory.create_user(role='customer')
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'user': account.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        customer.refresh_from_db()
        self.assertEqual(customer.user, account)

    def test_only_customer_accounts_can_be_linked(self):
        customer = TestDataFactory.create_customer()
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'user': self.staff.id})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('user', response.data)

    def test_delete_customer_with_orders(self):
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_order(customer=customer)
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Customer.objects.filter(pk=customer.pk).exists())

    def test_delete_customer(self):
        customer = TestDataFactory.create_customer()
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Customer.objects.filter(pk=customer.pk).exists())

    def test_customer_role_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='customer'))
        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unauthenticated(self):
        response = APIClient().get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class FindOrCreateCustomerTests(TestCase):

    def test_matches_email_case_insensitively(self):
        existing = TestDataFactory.create_customer(email='buyer@harbour.test')
        customer, created = find_or_create_customer('BUYER@harbour.test', 'Harbour Foods')
        self.assertFalse(created)
        self.assertEqual(customer, existing)

    def test_portal_account_never_matched_by_email(self):
        user = TestDataFactory.create_user(role='customer', email='buyer@harbour.test')
        existing = TestDataFactory.create_customer(email='buyer@harbour.test')
        customer, created = find_or_create_customer(user.email, 'Harbour Foods', user=user)
        self.assertTrue(created)
        self.assertNotEqual(customer.pk, existing.pk)
        self.assertEqual(customer.user, user)
        existing.refresh_from_db()
        self.assertIsNone(existing.user)

    def test_portal_account_reuses_its_own_customer(self):
        user = TestDataFactory.create_user(role='customer')
        linked = TestDataFactory.create_customer(user=user)
        customer, created = find_or_create_customer('other@harbour.test', 'Harbour Foods', user=user)
        self.assertFalse(created)
        self.assertEqual(customer, linked)

    def test_creates_when_missing(self):
        customer, created = find_or_create_customer('new@buyer.test', '', contact_name='Esi')
        self.assertTrue(created)
        self.assertEqual(customer.company_name, 'Esi')


class LeadAPITests(TestCase):

    def setUp(self):
        self.staff = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)

    def test_create_lead_scores_it(self):
        data = {
            'contact_name': 'Kofi Mensah',
            'company_name': 'Accra Cold Chain',
            'email': 'kofi@accracold.test',
            'source': 'trade_show',
        }
        response = self.client.post('/api/v1/leads/', data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['lead_score'], 40)
        self.assertEqual(response.data['status'], 'new')

    def test_lead_needs_contact_channel(self):
        response = self.client.post('/api/v1/leads/', {'contact_name': 'Nobody'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_rescores_and_audits_status(self):
        lead = TestDataFactory.create_lead(source='website')
        response = self.client.patch(f'/api/v1/leads/{lead.id}/', {'status': 'qualified', 'phone': '+2330000'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['lead_score'], 30)
        log = AuditLog.objects.get(resource_type='Lead', action='update')
        self.assertEqual(log.changes, {'before': {'status': 'new'}, 'after': {'status': 'qualified'}})

    def test_pipeline_filters(self):
        TestDataFactory.create_lead(contact_name='Kofi', source='referral', assigned_to=self.staff)
        TestDataFactory.create_lead(contact_name='Esi', source='website', status='contacted')

        response = self.client.get('/api/v1/leads/?source=referral')
        self.assertEqual([row['contact_name'] for row in response.data], ['Kofi'])

        response = self.client.get('/api/v1/leads/?status=contacted')
        self.assertEqual([row['contact_name'] for row in response.data], ['Esi'])

        response = self.client.get(f'/api/v1/leads/?assigned_to={self.staff.id}')
        self.assertEqual(response.data[0]['assigned_to_username'], self.staff.username)
        self.assertEqual(len(response.data), 1)

        response = self.client.get('/api/v1/leads/?search=esi')
        self.assertEqual(len(response.data), 1)

    def test_delete_lead(self):
        lead = TestDataFactory.create_lead()
        response = self.client.delete(f'/api/v1/leads/{lead.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Lead.objects.filter(pk=lead.pk).exists())


class LeadCaptureTests(TestCase):
    """Public contact form"""

    def setUp(self):
        self.client = APIClient()
        self.data = {
            'contact_name': 'Yaw Boateng',
            'company_name': 'Kumasi Foods',
            'email': 'yaw@kumasifoods.test',
            'message': 'Looking for 2 containers of mackerel a month',
        }

    @mock.patch('tradeportal.core.functions.invoke_function')
    def test_capture_creates_website_lead(self, invoke):
        invoke.return_value = {'success': True}
        response = self.client.post('/api/v1/leads/capture/', self.data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('message', response.data)

        lead = Lead.objects.get(pk=response.data['id'])
        self.assertEqual(lead.source, 'website')
        self.assertEqual(lead.status, 'new')
        self.assertEqual(lead.lead_score, 35)
        self.assertEqual(lead.description, self.data['message'])

        invoke.assert_called_once()
        self.assertEqual(invoke.call_args[0][1]['type'], 'new_lead_admin')

    @mock.patch('tradeportal.core.functions.invoke_function')
    def test_notification_failure_does_not_block(self, invoke):
        invoke.side_effect = FunctionInvocationError('send-email', 'mail server down')
        response = self.client.post('/api/v1/leads/capture/', self.data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Lead.objects.count(), 1)

    def test_capture_requires_email(self):
        response = self.client.post('/api/v1/leads/capture/', {'contact_name': 'Yaw'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Lead.objects.count(), 0)


class LeadConversionTests(TestCase):

    def setUp(self):
        self.staff = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)
        self.lead = TestDataFactory.create_lead(
            contact_name='Kofi Mensah', company_name='Accra Cold Chain', country='Ghana', status='qualified'
        )

    def test_convert_lead(self):
        response = self.client.post(
            f'/api/v1/leads/{self.lead.id}/convert/',
            {'priority': 'high', 'expected_value': '25000.00'}
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['lead']['status'], 'closed_won')
        self.assertIsNotNone(response.data['lead']['converted_at'])
        self.assertEqual(response.data['customer']['company_name'], 'Accra Cold Chain')
        self.assertEqual(response.data['customer']['priority'], 'high')

        customer = Customer.objects.get(pk=response.data['customer']['id'])
        self.assertEqual(customer.created_by, self.staff)
        self.assertTrue(Activity.objects.filter(customer=customer, lead=self.lead, activity_type='conversion').exists())
        log = AuditLog.objects.get(event_type='lead_converted')
        self.assertEqual(log.changes['after'], {'status': 'closed_won'})

    def test_convert_reuses_linked_customer(self):
        customer = TestDataFactory.create_customer()
        self.lead.customer = customer
        self.lead.save()
        response = self.client.post(f'/api/v1/leads/{self.lead.id}/convert/', {})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['customer']['id'], customer.id)
        self.assertEqual(Customer.objects.count(), 1)

    def test_convert_twice(self):
        self.client.post(f'/api/v1/leads/{self.lead.id}/convert/', {})
        response = self.client.post(f'/api/v1/leads/{self.lead.id}/convert/', {})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(Customer.objects.count(), 1)

    def test_service_raises_conflict(self):
        convert_lead(self.lead, self.staff)
        with self.assertRaises(ConflictError):
            convert_lead(self.lead, self.staff)


class ActivityTests(TestCase):

    def setUp(self):
        self.staff = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)
        self.customer = TestDataFactory.create_customer()

    def test_log_and_list_activity(self):
        response = self.client.post('/api/v1/activities/', {
            'customer': self.customer.id,
            'activity_type': 'call',
            'subject': 'Discussed Q3 volumes',
        })
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by_username'], self.staff.username)

        response = self.client.get(f'/api/v1/activities/?customer={self.customer.id}')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['subject'], 'Discussed Q3 volumes')

    def test_activity_needs_owner(self):
        response = self.client.post('/api/v1/activities/', {'activity_type': 'note', 'subject': 'Orphan'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
