from django.urls import path
from . import views

urlpatterns = [
    path('reports/dashboard/', views.dashboard, name='reports-dashboard'),
    path('reports/quote-funnel/', views.quote_funnel, name='quote-funnel'),
    path('reports/revenue/', views.revenue_report, name='revenue-report'),
    path('reports/top-customers/', views.top_customers, name='top-customers'),
    path('reports/top-products/', views.top_products, name='top-products'),
    path('reports/lead-sources/', views.lead_sources, name='lead-sources'),
]
