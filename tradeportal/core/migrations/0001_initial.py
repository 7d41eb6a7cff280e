import django.contrib.auth.models
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('phone', models.CharField(blank=True, max_length=20, null=True)),
                ('company_name', models.CharField(blank=True, max_length=255, null=True)),
                ('country', models.CharField(blank=True, max_length=100, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'db_table': 'users',
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Setting',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=100, unique=True)),
                ('value', models.TextField()),
                ('description', models.TextField(blank=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'settings',
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(choices=[('user_signup', 'User Signup'), ('role_changed', 'Role Changed'), ('settings_changed', 'Settings Changed'), ('data_create', 'Record Created'), ('data_update', 'Record Updated'), ('data_delete', 'Record Deleted'), ('lead_converted', 'Lead Converted'), ('quote_request_submitted', 'Quote Request Submitted'), ('quote_request_converted', 'Quote Request Converted To Lead'), ('quote_created', 'Quote Created'), ('quote_updated', 'Quote Updated'), ('quote_status_changed', 'Quote Status Changed'), ('quote_pdf_generated', 'Quote PDF Generated'), ('quote_sent', 'Quote Sent'), ('quote_customer_response', 'Quote Customer Response'), ('quote_revision_requested', 'Quote Revision Requested'), ('quote_converted_to_order', 'Quote Converted To Order'), ('quote_linked_to_request', 'Quote Linked To Request'), ('quote_trashed', 'Quote Moved To Trash'), ('quote_restored', 'Quote Restored'), ('quote_deleted', 'Quote Permanently Deleted'), ('quote_expiry_reminder_sent', 'Quote Expiry Reminder Sent'), ('order_created', 'Order Created'), ('order_status_changed', 'Order Status Changed'), ('order_delivery_updated', 'Order Delivery Updated'), ('order_tracking_link_sent', 'Order Tracking Link Sent'), ('payment_recorded', 'Payment Recorded'), ('invoice_generated', 'Invoice Generated'), ('invoice_void', 'Invoice Void'),], max_length=50)),
                ('action', models.CharField(max_length=50)),
                ('resource_type', models.CharField(max_length=100)),
                ('resource_id', models.CharField(max_length=100)),
                ('resource_reference', models.CharField(blank=True, help_text='Reference identifier (e.g., quote number, order number)', max_length=255, null=True)),
                ('event_data', models.JSONField(blank=True, default=dict)),
                ('changes', models.JSONField(blank=True, default=dict, help_text="Before/after snapshot: {'before': {...}, 'after': {...}}")),
                ('severity', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High')], default='low', max_length=10)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'audit_logs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['-created_at'], name='audit_logs_created_6f1e2b_idx'),
                    models.Index(fields=['event_type'], name='audit_logs_event_t_9c4d1a_idx'),
                    models.Index(fields=['resource_type', 'resource_id'], name='audit_logs_resourc_3b7e5f_idx'),
                    models.Index(fields=['resource_reference'], name='audit_logs_resourc_8a2c4d_idx'),
                ],
            },
        ),
    ]
