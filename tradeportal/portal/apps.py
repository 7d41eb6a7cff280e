from django.apps import AppConfig


class PortalConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tradeportal.portal'
    verbose_name = 'Customer Portal'
