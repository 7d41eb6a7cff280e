"""
Quote lifecycle rules.

    draft -> pending_review -> approved -> sent -> accepted / rejected
                                                 -> converted (order)
    pending_review / approved -> draft  (returned for changes)
    sent / rejected / expired -> draft  (reopened as a new revision)
    any open status -> expired          (valid_until passed)

Trash is orthogonal to status: a trashed quote keeps its status but accepts
no transition until restored.
"""
from tradeportal.core.exceptions import WorkflowError

QUOTE_TRANSITIONS = {
    'draft': {'pending_review', 'expired'},
    'pending_review': {'approved', 'draft', 'sent', 'expired'},
    'approved': {'draft', 'sent', 'converted', 'expired'},
    'sent': {'accepted', 'rejected', 'converted', 'expired', 'draft'},
    'accepted': {'converted'},
    'rejected': {'draft'},
    'expired': {'draft'},
    'converted': set(),
}

EDITABLE_STATUSES = ('draft', 'pending_review')
PDF_GENERATION_STATUSES = ('draft', 'pending_review', 'approved')
SENDABLE_STATUSES = ('pending_review', 'approved')
CONVERTIBLE_STATUSES = ('approved', 'sent', 'accepted')
REOPENABLE_STATUSES = ('sent', 'rejected', 'expired')
EXPIRABLE_STATUSES = ('draft', 'pending_review', 'approved', 'sent')
CUSTOMER_VISIBLE_STATUSES = ('sent', 'accepted', 'rejected', 'converted', 'expired')

STATUS_LABELS = {
    'draft': 'Draft',
    'pending_review': 'Pending Review',
    'approved': 'Approved',
    'sent': 'Sent',
    'accepted': 'Accepted',
    'rejected': 'Rejected',
    'converted': 'Converted',
    'expired': 'Expired',
}


def can_transition(from_status, to_status):
    return to_status in QUOTE_TRANSITIONS.get(from_status, set())


def allowed_transitions(quote):
    if quote.is_trashed:
        return []
    return sorted(QUOTE_TRANSITIONS.get(quote.status, set()))


def is_editable(quote):
    return not quote.is_trashed and quote.status in EDITABLE_STATUSES


def assert_not_trashed(quote):
    if quote.is_trashed:
        raise WorkflowError(f"Quote {quote.quote_number} is in the trash. Restore it first.")


def assert_transition(quote, to_status):
    assert_not_trashed(quote)
    if not can_transition(quote.status, to_status):
        raise WorkflowError(
            f"Cannot move quote {quote.quote_number} from "
            f"{STATUS_LABELS.get(quote.status, quote.status)} to {STATUS_LABELS.get(to_status, to_status)}"
        )


def assert_editable(quote):
    assert_not_trashed(quote)
    if quote.status not in EDITABLE_STATUSES:
        raise WorkflowError(
            f"Quote {quote.quote_number} is {STATUS_LABELS.get(quote.status, quote.status)}; "
            f"only draft or pending review quotes can be edited"
        )
