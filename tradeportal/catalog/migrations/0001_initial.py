import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, unique=True)),
                ('description', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'categories',
                'verbose_name_plural': 'categories',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, max_length=200)),
                ('sku', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('description', models.TextField(blank=True)),
                ('origin_country', models.CharField(blank=True, max_length=100)),
                ('supplier_name', models.CharField(blank=True, max_length=200)),
                ('pack_size', models.CharField(blank=True, help_text='e.g. 10kg carton, 20 x 1kg', max_length=100)),
                ('unit', models.CharField(choices=[('kg', 'Kilogram'), ('carton', 'Carton'), ('box', 'Box'), ('bag', 'Bag'), ('piece', 'Piece'), ('tonne', 'Tonne')], default='kg', max_length=20)),
                ('storage_temperature', models.CharField(blank=True, default='-18°C', max_length=50)),
                ('price', models.DecimalField(blank=True, decimal_places=2, help_text='Indicative price; empty means price on request', max_digits=10, null=True)),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('image_url', models.URLField(blank=True, max_length=500)),
                ('in_stock', models.BooleanField(default=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='products', to='catalog.category')),
            ],
            options={
                'db_table': 'products',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['is_active', 'in_stock'], name='products_is_acti_4d2a1c_idx'),
                    models.Index(fields=['origin_country'], name='products_origin__7b3e9f_idx'),
                ],
            },
        ),
    ]
