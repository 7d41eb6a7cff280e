"""
Role handling.

Roles are Django groups: 'Admin', 'Staff' and 'Customer'. Superusers are
always admins; users without any role group are treated as customers.
"""
from django.contrib.auth.models import Group
from rest_framework.permissions import BasePermission

ROLE_ADMIN = 'admin'
ROLE_STAFF = 'staff'
ROLE_CUSTOMER = 'customer'

ROLE_GROUPS = {
    ROLE_ADMIN: 'Admin',
    ROLE_STAFF: 'Staff',
    ROLE_CUSTOMER: 'Customer',
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return ROLE_ADMIN
    group_names = set(user.groups.values_list('name', flat=True))
    if ROLE_GROUPS[ROLE_ADMIN] in group_names:
        return ROLE_ADMIN
    if ROLE_GROUPS[ROLE_STAFF] in group_names:
        return ROLE_STAFF
    return ROLE_CUSTOMER


def set_user_role(user, role):
    """Replace the user's role group with the one for `role`."""
    if role not in ROLE_GROUPS:
        raise ValueError(f"Unknown role: {role}")
    user.groups.remove(*Group.objects.filter(name__in=ROLE_GROUPS.values()))
    group, _ = Group.objects.get_or_create(name=ROLE_GROUPS[role])
    user.groups.add(group)


def is_admin_user(user):
    return get_user_role(user) == ROLE_ADMIN


def is_staff_user(user):
    """Admins and sales staff: everyone with CRM access."""
    return get_user_role(user) in (ROLE_ADMIN, ROLE_STAFF)


def is_customer_user(user):
    return get_user_role(user) == ROLE_CUSTOMER


class IsAdminRole(BasePermission):
    message = 'Admin access required.'

    def has_permission(self, request, view):
        return is_admin_user(request.user)


class IsStaffRole(BasePermission):
    message = 'Staff access required.'

    def has_permission(self, request, view):
        return is_staff_user(request.user)


class IsCustomerRole(BasePermission):
    message = 'Customer account required.'

    def has_permission(self, request, view):
        return is_customer_user(request.user)


class IsStaffRoleOrReadOnly(BasePermission):
    """Anyone may read (public catalog); only staff may write."""

    def has_permission(self, request, view):
        if request.method in ('GET', 'HEAD', 'OPTIONS'):
            return True
        return is_staff_user(request.user)
