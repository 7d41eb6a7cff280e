from django.db import models


class Category(models.Model):
    """Product categories (seafood, poultry, meat, vegetables...)"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Product(models.Model):
    """Frozen food product offered in the public catalog"""
    UNIT_CHOICES = [
        ('kg', 'Kilogram'),
        ('carton', 'Carton'),
        ('box', 'Box'),
        ('bag', 'Bag'),
        ('piece', 'Piece'),
        ('tonne', 'Tonne'),
    ]

    name = models.CharField(max_length=200, db_index=True)
    sku = models.CharField(max_length=100, unique=True, null=True, blank=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    description = models.TextField(blank=True)
    origin_country = models.CharField(max_length=100, blank=True)
    supplier_name = models.CharField(max_length=200, blank=True)
    pack_size = models.CharField(max_length=100, blank=True, help_text="e.g. 10kg carton, 20 x 1kg")
    unit = models.CharField(max_length=20, choices=UNIT_CHOICES, default='kg')
    storage_temperature = models.CharField(max_length=50, blank=True, default='-18°C')
    price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True, help_text="Indicative price; empty means price on request")
    currency = models.CharField(max_length=3, default='USD')
    image_url = models.URLField(max_length=500, blank=True)
    in_stock = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active', 'in_stock'], name='products_is_acti_4d2a1c_idx'),
            models.Index(fields=['origin_country'], name='products_origin__7b3e9f_idx'),
        ]
