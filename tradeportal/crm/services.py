"""Lead scoring, lead conversion and customer lookup"""
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from tradeportal.core.exceptions import ConflictError
from tradeportal.core.utils import create_audit_log
from .models import Customer, Lead, Activity

logger = logging.getLogger(__name__)

HIGH_VALUE_THRESHOLD = Decimal('10000')

SOURCE_SCORES = {
    'referral': 20,
    'quote_request': 15,
    'trade_show': 10,
    'website': 5,
}


def compute_lead_score(lead):
    score = 0
    if lead.company_name:
        score += 20
    if lead.phone:
        score += 15
    if lead.email:
        score += 10
    if lead.country:
        score += 10
    if lead.value:
        score += 15 if lead.value >= HIGH_VALUE_THRESHOLD else 10
    score += SOURCE_SCORES.get(lead.source, 0)
    return min(score, 100)


def find_or_create_customer(email, company_name, contact_name='', phone='', country='', user=None, created_by=None):
    """
    Customer for a portal account (`user`) or, in staff flows, the oldest customer with `email`.
    Created when missing. Returns (customer, created).

    Portal accounts are matched on their own link only. Account e-mails are not
    verified, so attaching an existing customer record to an account is a staff
    action (the customer's `user` field).
    """
    if user is not None:
        customer = Customer.objects.filter(user=user).first()
    elif email:
        customer = Customer.objects.filter(email__iexact=email).order_by('created_at').first()
    else:
        customer = None

    if customer is not None:
        return customer, False

    customer = Customer.objects.create(
        company_name=company_name or contact_name or email,
        contact_name=contact_name or '',
        email=email,
        phone=phone or '',
        country=country or '',
        customer_status='active',
        user=user,
        created_by=created_by,
    )
    logger.info(f"Created customer {customer.company_name} ({customer.email})")
    return customer, True


def convert_lead(lead, user, industry=None, priority='medium', expected_value=None, notes='', request=None):
    """
    Convert a lead into a customer.

    Reuses the lead's linked customer when there is one, otherwise creates it.
    The lead is closed as won and a conversion activity is recorded.
    """
    with transaction.atomic():
        lead = Lead.objects.select_for_update().get(pk=lead.pk)
        if lead.status == 'closed_won':
            raise ConflictError('Lead has already been converted')

        customer = lead.customer
        if customer is None:
            customer = Customer.objects.create(
                company_name=lead.company_name or lead.contact_name,
                contact_name=lead.contact_name,
                email=lead.email,
                phone=lead.phone,
                country=lead.country,
                industry=industry or 'Food & Beverage',
                customer_status='active',
                priority=priority or 'medium',
                annual_revenue=expected_value,
                notes=notes or lead.notes,
                created_by=user,
            )

        old_status = lead.status
        lead.status = 'closed_won'
        lead.customer = customer
        lead.converted_at = timezone.now()
        if expected_value is not None:
            lead.value = expected_value
        lead.save()

        Activity.objects.create(
            customer=customer,
            lead=lead,
            activity_type='conversion',
            subject=f"Lead converted: {lead.contact_name}",
            description=notes or f"Lead converted to customer {customer.company_name}",
            status='completed',
            created_by=user,
        )

        create_audit_log(
            request=request,
            user=user,
            event_type='lead_converted',
            action='convert',
            resource_type='Lead',
            resource_id=lead.id,
            resource_reference=lead.company_name or lead.contact_name,
            event_data={'customer_id': customer.id},
            changes={'before': {'status': old_status}, 'after': {'status': 'closed_won'}},
        )

    logger.info(f"Lead {lead.id} converted to customer {customer.id}")
    return customer
