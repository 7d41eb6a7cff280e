from django.db import models

from tradeportal.core.models import User
from tradeportal.catalog.models import Product


class Cart(models.Model):
    """Quote request cart, one per portal user"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='portal_cart')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart of {self.user.username}"

    class Meta:
        db_table = 'portal_carts'


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='portal_cart_items')
    product_name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit = models.CharField(max_length=20, default='kg')
    specifications = models.TextField(blank=True)
    preferred_grade = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'portal_cart_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['cart', 'product'], name='idx_portalcartitem_product'),
        ]
