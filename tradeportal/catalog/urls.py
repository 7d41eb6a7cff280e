from django.urls import path
from .views import (
    category_list_create, category_detail,
    product_list_create, product_detail,
)

urlpatterns = [
    # Category endpoints
    path('catalog/categories/', category_list_create, name='category-list-create'),
    path('catalog/categories/<int:pk>/', category_detail, name='category-detail'),

    # Product endpoints
    path('catalog/products/', product_list_create, name='product-list-create'),
    path('catalog/products/<int:pk>/', product_detail, name='product-detail'),
]
