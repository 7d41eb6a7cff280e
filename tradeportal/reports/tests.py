"""
Test suite for Reports module
Tests: Dashboard, Quote Funnel, Revenue, Top Customers, Top Products, Lead Sources
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from tradeportal.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class ReportsTests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        self.customer = TestDataFactory.create_customer(company_name='Harbour Foods', country='Ghana')
        self.other_customer = TestDataFactory.create_customer(company_name='Lagos Cold Store', country='Nigeria')

        TestDataFactory.create_quote(customer=self.customer, status='draft')
        TestDataFactory.create_quote(customer=self.customer, status='sent')
        TestDataFactory.create_quote(customer=self.customer, status='accepted')
        TestDataFactory.create_quote(customer=self.other_customer, status='converted')
        TestDataFactory.create_quote(customer=self.other_customer, status='rejected')

        TestDataFactory.create_order(customer=self.customer, status='payment_received', total_amount=Decimal('400.00'))
        TestDataFactory.create_order(customer=self.other_customer, status='pending_payment', total_amount=Decimal('150.00'))
        TestDataFactory.create_order(customer=self.other_customer, status='cancelled', total_amount=Decimal('999.00'))

        TestDataFactory.create_lead(source='website')
        TestDataFactory.create_lead(source='website', status='closed_won')
        TestDataFactory.create_lead(source='referral')

    def test_dashboard(self):
        """Dashboard summary counts and revenue"""
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data['summary']
        self.assertEqual(summary['quotes_created'], 5)
        self.assertEqual(summary['orders_created'], 3)
        self.assertEqual(summary['new_leads'], 3)
        self.assertEqual(summary['revenue'], 400.0)
        self.assertEqual(summary['outstanding_balance'], 550.0)
        self.assertEqual(response.data['quotes_by_status']['sent'], 1)
        self.assertEqual(response.data['orders_by_status']['cancelled'], 1)

    def test_dashboard_is_cached(self):
        first = self.client.get('/api/v1/reports/dashboard/')
        TestDataFactory.create_quote(customer=self.customer)
        second = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(first.data, second.data)

    def test_dashboard_invalid_date(self):
        response = self.client.get('/api/v1/reports/dashboard/?date_from=01-01-2024')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_quote_funnel(self):
        """Conversion counts quotes that reached the customer"""
        response = self.client.get('/api/v1/reports/quote-funnel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 5)
        self.assertEqual(response.data['counts']['draft'], 1)
        self.assertEqual(response.data['counts']['expired'], 0)
        # 4 quoted: sent, accepted, converted, rejected
        self.assertEqual(response.data['conversion_rate'], 25.0)
        self.assertEqual(response.data['acceptance_rate'], 50.0)

    def test_quote_funnel_empty_period(self):
        response = self.client.get('/api/v1/reports/quote-funnel/?date_from=2020-01-01&date_to=2020-01-31')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 0)
        self.assertEqual(response.data['conversion_rate'], 0.0)

    def test_revenue_report(self):
        response = self.client.get('/api/v1/reports/revenue/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totals_by_currency'], {'USD': 400.0})
        self.assertEqual(len(response.data['monthly']), 1)
        self.assertEqual(response.data['monthly'][0]['order_count'], 1)

    def test_top_customers(self):
        response = self.client.get('/api/v1/reports/top-customers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        customers = response.data['customers']
        self.assertEqual(customers[0]['company_name'], 'Harbour Foods')
        self.assertEqual(customers[0]['total_value'], 400.0)
        self.assertEqual(customers[1]['total_value'], 150.0)

    def test_top_products_limit(self):
        response = self.client.get('/api/v1/reports/top-products/?limit=1')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['products']), 1)
        self.assertEqual(response.data['products'][0]['product_name'], 'Frozen Chicken Wings')
        self.assertEqual(response.data['products'][0]['total_value'], 550.0)
        self.assertEqual(response.data['products'][0]['order_count'], 2)

    def test_lead_sources(self):
        response = self.client.get('/api/v1/reports/lead-sources/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        sources = {row['source']: row for row in response.data['sources']}
        self.assertEqual(sources['website']['lead_count'], 2)
        self.assertEqual(sources['website']['conversion_rate'], 50.0)
        self.assertEqual(sources['referral']['converted'], 0)

    def test_reports_require_staff(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='customer'))
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unauthenticated_access(self):
        self.client.logout()
        response = self.client.get('/api/v1/reports/revenue/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
