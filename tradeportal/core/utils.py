"""Utility functions for audit logging"""
import logging

from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address
from django.db import transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request; None when missing or not an IP (proxies may send 'unknown')"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    if not ip:
        return None
    try:
        validate_ipv46_address(ip)
    except ValidationError:
        logger.warning(f"Ignoring invalid client IP: {ip!r}")
        return None
    return ip


def get_user_agent(request):
    if not request or not hasattr(request, 'META'):
        return None
    return request.META.get('HTTP_USER_AGENT') or None


def create_audit_log(request=None, event_type=None, action=None, resource_type=None,
                     resource_id=None, resource_reference=None, event_data=None,
                     changes=None, severity=None, user=None):
    """
    Create an audit log entry

    Args:
        request: Django/DRF request (for user, IP and user agent) - optional if user is provided
        event_type: Business event (quote_sent, lead_converted, data_update, ...)
        action: Verb for the change (create, update, delete, status_change, ...)
        resource_type: Name of the model being acted upon
        resource_id: ID of the object (as string)
        resource_reference: Human-facing reference (quote number, order number)
        event_data: Free-form context for the event
        changes: {'before': {...}, 'after': {...}}
        severity: low / medium / high (deletes default to medium)
        user: Optional user override (defaults to request.user if request provided)

    Never raises: a failure is logged and the calling operation continues.
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        if not event_type or not action or not resource_type or resource_id is None:
            logger.warning(
                f"Audit log creation skipped: missing required fields "
                f"(event_type={event_type}, action={action}, resource_type={resource_type}, resource_id={resource_id})"
            )
            return None

        if not severity:
            severity = 'medium' if action == 'delete' else 'low'

        # Savepoint keeps the caller's transaction usable if the insert fails
        with transaction.atomic():
            return AuditLog.objects.create(
                user=audit_user if audit_user and audit_user.is_authenticated else None,
                event_type=event_type,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id),
                resource_reference=resource_reference,
                event_data=event_data or {},
                changes=changes or {},
                severity=severity,
                ip_address=get_client_ip(request),
                user_agent=get_user_agent(request),
            )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None
