import hashlib
import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.core.cache import cache
from django.db.models import Count, Q
from django.shortcuts import get_object_or_404

from tradeportal.core.cache_signals import CATALOG_CACHE_PATTERN
from tradeportal.core.permissions import IsStaffRoleOrReadOnly, is_staff_user
from tradeportal.core.utils import create_audit_log
from .filters import ProductFilter
from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer

logger = logging.getLogger(__name__)

PRODUCT_LIST_CACHE_TTL = 300  # 5 minutes


def get_product_list_cache_key(query_string, include_inactive=False):
    digest = hashlib.md5(query_string.encode('utf-8')).hexdigest()
    scope = 'all' if include_inactive else 'public'
    return f"{CATALOG_CACHE_PATTERN}:{scope}:{digest}"


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsStaffRoleOrReadOnly])
def category_list_create(request):
    """List categories (public) or create a new category (staff)"""
    if request.method == 'GET':
        categories = Category.objects.annotate(
            product_count=Count('products', filter=Q(products__is_active=True))
        )
        if not is_staff_user(request.user):
            categories = categories.filter(is_active=True)
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)
    else:
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(
                request=request,
                event_type='data_create',
                action='create',
                resource_type='Category',
                resource_id=category.id,
                resource_reference=category.name,
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsStaffRoleOrReadOnly])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        serializer = CategorySerializer(category)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(
            request=request,
            event_type='data_delete',
            action='delete',
            resource_type='Category',
            resource_id=category.id,
            resource_reference=category.name,
        )
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsStaffRoleOrReadOnly])
def product_list_create(request):
    """
    List catalog products or create a new product.

    Public visitors only see active products. Staff may pass
    include_inactive=true to see the full product master.
    Listings are cached per query string and invalidated on product/category changes.
    """
    if request.method == 'GET':
        include_inactive = (
            request.query_params.get('include_inactive') == 'true' and is_staff_user(request.user)
        )
        cache_key = get_product_list_cache_key(request.META.get('QUERY_STRING', ''), include_inactive)
        cached_data = cache.get(cache_key)
        if cached_data is not None:
            response = Response(cached_data)
            response['Cache-Control'] = 'public, max-age=60'
            return response

        queryset = Product.objects.select_related('category')
        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        filterset = ProductFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)

        serializer = ProductSerializer(filterset.qs, many=True)
        response_data = serializer.data
        cache.set(cache_key, response_data, PRODUCT_LIST_CACHE_TTL)

        response = Response(response_data)
        response['Cache-Control'] = 'public, max-age=60'
        return response
    else:
        serializer = ProductSerializer(data=request.data)
        if serializer.is_valid():
            product = serializer.save()
            create_audit_log(
                request=request,
                event_type='data_create',
                action='create',
                resource_type='Product',
                resource_id=product.id,
                resource_reference=product.sku or product.name,
            )
            logger.info(f"Product {product.name} created by {request.user.username}")
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsStaffRoleOrReadOnly])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    if request.method == 'GET' and not is_staff_user(request.user):
        product = get_object_or_404(Product.objects.select_related('category'), pk=pk, is_active=True)
    else:
        product = get_object_or_404(Product.objects.select_related('category'), pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        old_price = product.price
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            product = serializer.save()
            changes = {}
            if old_price != product.price:
                changes = {
                    'before': {'price': str(old_price) if old_price is not None else None},
                    'after': {'price': str(product.price) if product.price is not None else None},
                }
            create_audit_log(
                request=request,
                event_type='data_update',
                action='update',
                resource_type='Product',
                resource_id=product.id,
                resource_reference=product.sku or product.name,
                changes=changes,
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(
            request=request,
            event_type='data_delete',
            action='delete',
            resource_type='Product',
            resource_id=product.id,
            resource_reference=product.sku or product.name,
        )
        product.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
