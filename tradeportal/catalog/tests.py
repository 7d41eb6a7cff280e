"""
Test suite for the Catalog module
Tests: public listing, staff product management, filters, caching
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from tradeportal.core.models import AuditLog
from tradeportal.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import Product


class PublicCatalogTests(TestCase):
    """Anonymous visitors browsing the catalog"""

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.seafood = TestDataFactory.create_category(name='Seafood')
        self.poultry = TestDataFactory.create_category(name='Poultry')
        self.hake = TestDataFactory.create_product(
            name='Hake Fillets', category=self.seafood, origin_country='Namibia', price=Decimal('4.20')
        )
        self.wings = TestDataFactory.create_product(
            name='Chicken Wings', category=self.poultry, origin_country='Brazil', price=Decimal('2.10')
        )
        self.retired = TestDataFactory.create_product(name='Old Mackerel', category=self.seafood, is_active=False)

    def test_only_active_products_listed(self):
        response = self.client.get('/api/v1/catalog/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = sorted(row['name'] for row in response.data)
        self.assertEqual(names, ['Chicken Wings', 'Hake Fillets'])
        self.assertEqual(response['Cache-Control'], 'public, max-age=60')

    def test_public_cannot_include_inactive(self):
        response = self.client.get('/api/v1/catalog/products/?include_inactive=true')
        self.assertEqual(len(response.data), 2)

    def test_search_matches_every_word(self):
        response = self.client.get('/api/v1/catalog/products/', {'search': 'hake seafood'})
        self.assertEqual([row['id'] for row in response.data], [self.hake.id])

        response = self.client.get('/api/v1/catalog/products/', {'search': 'hake poultry'})
        self.assertEqual(response.data, [])

    def test_filter_by_origin_and_price(self):
        response = self.client.get('/api/v1/catalog/products/?origin_country=namibia')
        self.assertEqual([row['id'] for row in response.data], [self.hake.id])

        response = self.client.get('/api/v1/catalog/products/?min_price=3')
        self.assertEqual([row['id'] for row in response.data], [self.hake.id])

        response = self.client.get(f'/api/v1/catalog/products/?category={self.poultry.id}')
        self.assertEqual([row['id'] for row in response.data], [self.wings.id])

    def test_listing_is_cached(self):
        self.client.get('/api/v1/catalog/products/')
        Product.objects.filter(pk=self.wings.pk).update(name='Renamed Wings')
        response = self.client.get('/api/v1/catalog/products/')
        self.assertIn('Chicken Wings', [row['name'] for row in response.data])

    def test_inactive_product_detail_hidden(self):
        response = self.client.get(f'/api/v1/catalog/products/{self.retired.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.get(f'/api/v1/catalog/products/{self.hake.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['category_name'], 'Seafood')

    def test_categories_count_active_products(self):
        response = self.client.get('/api/v1/catalog/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        counts = {row['name']: row['product_count'] for row in response.data}
        self.assertEqual(counts, {'Poultry': 1, 'Seafood': 1})

    def test_anonymous_cannot_create(self):
        response = self.client.post('/api/v1/catalog/products/', {'name': 'Squid Rings', 'unit': 'kg'})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ProductManagementTests(TestCase):
    """Staff maintaining the product master"""

    def setUp(self):
        cache.clear()
        self.staff = TestDataFactory.create_user(role='staff')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.staff)
        self.category = TestDataFactory.create_category(name='Seafood')

    def test_create_product(self):
        data = {
            'name': 'Squid Rings',
            'sku': 'SQ-001',
            'category': self.category.id,
            'origin_country': 'Peru',
            'unit': 'carton',
            'price': '38.00',
        }
        response = self.client.post('/api/v1/catalog/products/', data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['storage_temperature'], '-18°C')
        self.assertTrue(AuditLog.objects.filter(resource_type='Product', action='create').exists())

    def test_price_is_optional(self):
        response = self.client.post('/api/v1/catalog/products/', {'name': 'Octopus', 'unit': 'kg'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['price'])

    def test_negative_price_rejected(self):
        response = self.client.post('/api/v1/catalog/products/', {'name': 'Squid', 'unit': 'kg', 'price': '-1.00'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('price', response.data)

    def test_unknown_unit_rejected(self):
        response = self.client.post('/api/v1/catalog/products/', {'name': 'Squid', 'unit': 'barrel'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_price_change_is_audited(self):
        product = TestDataFactory.create_product(category=self.category, price=Decimal('10.00'))
        response = self.client.patch(f'/api/v1/catalog/products/{product.id}/', {'price': '11.50'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(resource_type='Product', action='update')
        self.assertEqual(log.changes, {'before': {'price': '10.00'}, 'after': {'price': '11.50'}})

    def test_staff_can_include_inactive(self):
        TestDataFactory.create_product(category=self.category)
        TestDataFactory.create_product(category=self.category, is_active=False)
        response = self.client.get('/api/v1/catalog/products/?include_inactive=true')
        self.assertEqual(len(response.data), 2)
        response = self.client.get('/api/v1/catalog/products/')
        self.assertEqual(len(response.data), 1)

    def test_staff_sees_inactive_detail(self):
        product = TestDataFactory.create_product(category=self.category, is_active=False)
        response = self.client.get(f'/api/v1/catalog/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_delete_product(self):
        product = TestDataFactory.create_product(category=self.category)
        response = self.client.delete(f'/api/v1/catalog/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())

    def test_customer_cannot_write(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='customer'))
        response = self.client.post('/api/v1/catalog/categories/', {'name': 'Vegetables'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
