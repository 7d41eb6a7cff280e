"""
URL configuration for the trade portal backend.

Every app mounts its API under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "Trade Portal Admin Panel"
admin.site.site_title = "Trade Portal Admin"
admin.site.index_title = "Frozen food import & distribution"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('tradeportal.core.urls')),
    path('api/v1/', include('tradeportal.catalog.urls')),
    path('api/v1/', include('tradeportal.crm.urls')),
    path('api/v1/', include('tradeportal.quotes.urls')),
    path('api/v1/', include('tradeportal.orders.urls')),
    path('api/v1/', include('tradeportal.portal.urls')),
    path('api/v1/', include('tradeportal.reports.urls')),
]

if settings.DEBUG:
    urlpatterns += [
        re_path(r'^static/(?P<path>.*)$', serve, {'document_root': settings.STATIC_ROOT}),
    ]
