"""
Test suite for the Core module
Tests: registration, login, roles, users, audit logs, global search,
signed file links and the hosted functions client
"""
from io import StringIO
from unittest import mock

import requests
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.db import DatabaseError, transaction
from django.test import RequestFactory, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from tradeportal.core import functions
from tradeportal.core.exceptions import FunctionInvocationError, TradePortalError
from tradeportal.core.models import AuditLog
from tradeportal.core.permissions import get_user_role
from tradeportal.core.storage import save_base64_document, signed_url
from tradeportal.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from tradeportal.core.utils import create_audit_log, get_client_ip


class AuthTests(TestCase):
    """Sign-up, login and the current user endpoint"""

    def setUp(self):
        self.client = APIClient()

    def test_register_creates_customer(self):
        data = {
            'username': 'amaowusu',
            'email': 'ama@harbourfoods.test',
            'password': 'Fr0zen-Fish-2024',
            'password_confirm': 'Fr0zen-Fish-2024',
            'first_name': 'Ama',
            'last_name': 'Owusu',
            'company_name': 'Harbour Foods',
        }
        response = self.client.post('/api/v1/auth/register/', data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['role'], 'customer')
        self.assertTrue(AuditLog.objects.filter(event_type='user_signup', resource_reference='ama@harbourfoods.test').exists())

    def test_register_password_mismatch(self):
        data = {
            'username': 'amaowusu',
            'email': 'ama@harbourfoods.test',
            'password': 'Fr0zen-Fish-2024',
            'password_confirm': 'something-else-1',
        }
        response = self.client.post('/api/v1/auth/register/', data)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_register_duplicate_email(self):
        TestDataFactory.create_user(email='taken@test.com')
        data = {
            'username': 'newuser',
            'email': 'TAKEN@test.com',
            'password': 'Fr0zen-Fish-2024',
            'password_confirm': 'Fr0zen-Fish-2024',
        }
        response = self.client.post('/api/v1/auth/register/', data)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_returns_user(self):
        TestDataFactory.create_user(username='seller', password='testpass123', role='staff')
        response = self.client.post('/api/v1/auth/login/', {'username': 'seller', 'password': 'testpass123'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['role'], 'staff')
        self.assertIn('refresh', response.data)

    def test_me_flags(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user(role='staff'))
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['can_access_crm'])
        self.assertFalse(response.data['can_access_settings'])
        self.assertFalse(response.data['can_access_portal'])

        client.authenticate_user(TestDataFactory.create_user(role='customer'))
        response = client.get('/api/v1/auth/me/')
        self.assertTrue(response.data['can_access_portal'])
        self.assertFalse(response.data['is_staff_member'])


class RoleTests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_role_resolution(self):
        self.assertEqual(get_user_role(TestDataFactory.create_user(role=None)), 'customer')
        self.assertEqual(get_user_role(TestDataFactory.create_user(role=None, is_superuser=True)), 'admin')
        self.assertEqual(get_user_role(TestDataFactory.create_user(role='staff')), 'staff')

    def test_change_role(self):
        user = TestDataFactory.create_user(role='customer')
        response = self.client.post(f'/api/v1/users/{user.id}/role/', {'role': 'staff'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], 'staff')
        self.assertEqual(list(user.groups.values_list('name', flat=True)), ['Staff'])
        log = AuditLog.objects.get(event_type='role_changed')
        self.assertEqual(log.changes, {'before': {'role': 'customer'}, 'after': {'role': 'staff'}})

    def test_cannot_demote_self(self):
        response = self.client.post(f'/api/v1/users/{self.admin.id}/role/', {'role': 'staff'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_manage_users(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='staff'))
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_users_by_role(self):
        staff = TestDataFactory.create_user(role='staff')
        TestDataFactory.create_user(role='customer')
        response = self.client.get('/api/v1/users/?role=staff')
        self.assertEqual([row['id'] for row in response.data], [staff.id])

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AuditLogTests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role='admin')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_create_audit_log_without_request(self):
        log = create_audit_log(
            event_type='quote_created',
            action='create',
            resource_type='Quote',
            resource_id=42,
            resource_reference='QT-20240101-001',
        )
        self.assertEqual(log.resource_id, '42')
        self.assertIsNone(log.user)
        self.assertIsNone(log.ip_address)

    def test_list_and_filter(self):
        create_audit_log(event_type='quote_created', action='create', resource_type='Quote', resource_id=1)
        create_audit_log(event_type='order_created', action='create', resource_type='Order', resource_id=1)
        response = self.client.get('/api/v1/audit-logs/?resource_type=Order')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['event_type'], 'order_created')

    def test_staff_cannot_read_audit_logs(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='staff'))
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_settings_changes_are_audited(self):
        response = self.client.post('/api/v1/settings/', {'key': 'quote_footer', 'value': 'Prices FOB Tema'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(AuditLog.objects.filter(event_type='settings_changed', resource_reference='quote_footer').exists())

    def test_invalid_forwarded_for_stored_as_null(self):
        request = RequestFactory().post('/', HTTP_X_FORWARDED_FOR='unknown')
        log = create_audit_log(
            event_type='quote_created', action='create', resource_type='Quote', resource_id=7, request=request
        )
        self.assertIsNotNone(log)
        self.assertIsNone(log.ip_address)

    def test_failed_insert_leaves_transaction_usable(self):
        def broken_insert(**kwargs):
            transaction.set_rollback(True)
            raise DatabaseError('invalid input syntax for type inet')

        with transaction.atomic():
            customer = TestDataFactory.create_customer()
            with mock.patch.object(AuditLog.objects, 'create', side_effect=broken_insert):
                log = create_audit_log(event_type='quote_created', action='create', resource_type='Quote', resource_id=1)
            self.assertIsNone(log)
            customer.company_name = 'Still Writable Ltd'
            customer.save()
        customer.refresh_from_db()
        self.assertEqual(customer.company_name, 'Still Writable Ltd')


class ClientIPTests(TestCase):

    def setUp(self):
        self.factory = RequestFactory()

    def test_first_forwarded_hop(self):
        request = self.factory.get('/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1')
        self.assertEqual(get_client_ip(request), '203.0.113.7')

    def test_ipv6_accepted(self):
        request = self.factory.get('/', HTTP_X_FORWARDED_FOR='2001:db8::1')
        self.assertEqual(get_client_ip(request), '2001:db8::1')

    def test_non_ip_forwarded_for_ignored(self):
        for value in ('unknown', '_hidden', '203.0.113.7:8443'):
            request = self.factory.get('/', HTTP_X_FORWARDED_FOR=value)
            self.assertIsNone(get_client_ip(request), value)

    def test_remote_addr_fallback(self):
        request = self.factory.get('/')
        self.assertEqual(get_client_ip(request), '127.0.0.1')
        self.assertIsNone(get_client_ip(None))


class GlobalSearchTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role='staff'))

    def test_search_across_records(self):
        customer = TestDataFactory.create_customer(company_name='Tema Seafoods')
        quote = TestDataFactory.create_quote(customer=customer, title='Tema mackerel season')
        TestDataFactory.create_lead(contact_name='Kwame', company_name='Tema Traders')

        response = self.client.get('/api/v1/search/?q=tema')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quotes'][0]['id'], quote.id)
        self.assertEqual(response.data['customers'][0]['company_name'], 'Tema Seafoods')
        self.assertEqual(len(response.data['leads']), 1)

    def test_empty_query(self):
        response = self.client.get('/api/v1/search/?q=')
        self.assertEqual(response.data, {'quotes': [], 'orders': [], 'customers': [], 'leads': []})


class StorageTests(TestCase):

    def test_signed_url_for_empty_path(self):
        self.assertIsNone(signed_url(''))

    def test_signed_url_points_at_download_endpoint(self):
        self.assertTrue(signed_url('quotes/test.pdf').startswith('/api/v1/files/'))

    def test_tampered_token_rejected(self):
        response = APIClient().get('/api/v1/files/not-a-valid-token/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_file(self):
        url = signed_url('quotes/does-not-exist-anywhere.pdf')
        response = APIClient().get(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invalid_base64(self):
        with self.assertRaises(TradePortalError):
            save_base64_document('quotes/bad.pdf', '***not base64***')


@override_settings(FUNCTIONS_BASE_URL='https://functions.test/v1/', FUNCTIONS_API_KEY='secret', FUNCTIONS_TIMEOUT=5)
class FunctionsClientTests(TestCase):
    """Hosted function calls over HTTP"""

    def _response(self, status_code=200, body=b'{"file_path": "quotes/a.pdf"}', json_data=None):
        response = mock.Mock()
        response.status_code = status_code
        response.content = body
        response.text = body.decode('utf-8')
        response.json.return_value = json_data if json_data is not None else {'file_path': 'quotes/a.pdf'}
        return response

    @mock.patch('tradeportal.core.functions.requests.post')
    def test_invoke_posts_json(self, post):
        post.return_value = self._response()
        result = functions.invoke_function(functions.GENERATE_QUOTE_PDF, {'quoteNumber': 'QT-1'})
        self.assertEqual(result, {'file_path': 'quotes/a.pdf'})
        post.assert_called_once_with(
            'https://functions.test/v1/generate-quote-pdf',
            json={'quoteNumber': 'QT-1'},
            headers={'Content-Type': 'application/json', 'Authorization': 'Bearer secret'},
            timeout=5,
        )

    @mock.patch('tradeportal.core.functions.requests.post')
    def test_http_error(self, post):
        post.return_value = self._response(status_code=500, body=b'boom')
        with self.assertRaises(FunctionInvocationError) as ctx:
            functions.invoke_function(functions.SEND_EMAIL, {})
        self.assertEqual(ctx.exception.response_status, 500)
        self.assertTrue(ctx.exception.message.startswith('send-email: '))

    @mock.patch('tradeportal.core.functions.requests.post')
    def test_error_key_in_body(self, post):
        post.return_value = self._response(body=b'{"error": "bad template"}', json_data={'error': 'bad template'})
        with self.assertRaises(FunctionInvocationError):
            functions.invoke_function(functions.SEND_EMAIL, {})

    @mock.patch('tradeportal.core.functions.requests.post')
    def test_timeout(self, post):
        post.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(FunctionInvocationError):
            functions.invoke_function(functions.SEND_EMAIL, {})

    @mock.patch('tradeportal.core.functions.requests.post')
    def test_best_effort_swallows_failure(self, post):
        post.side_effect = requests.exceptions.ConnectionError('refused')
        self.assertIsNone(functions.invoke_function_best_effort(functions.SEND_EMAIL, {}))

    @override_settings(FUNCTIONS_BASE_URL='')
    def test_not_configured(self):
        with self.assertRaises(FunctionInvocationError):
            functions.invoke_function(functions.SEND_EMAIL, {})


class CreateUserGroupsCommandTests(TestCase):

    def test_groups_created_once(self):
        out = StringIO()
        call_command('create_user_groups', stdout=out)
        call_command('create_user_groups', stdout=out)
        self.assertEqual(
            sorted(Group.objects.values_list('name', flat=True)),
            ['Admin', 'Customer', 'Staff'],
        )
        self.assertFalse(Group.objects.get(name='Customer').permissions.exists())
        self.assertTrue(Group.objects.get(name='Staff').permissions.filter(content_type__app_label='quotes').exists())
        self.assertIn('groups already existed', out.getvalue())
