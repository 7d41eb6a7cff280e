"""Order fulfilment status rules"""
from tradeportal.core.exceptions import WorkflowError

ORDER_TRANSITIONS = {
    'order_confirmed': {'pending_payment', 'cancelled', 'on_hold'},
    'pending_payment': {'payment_received', 'cancelled', 'on_hold'},
    'payment_received': {'processing', 'on_hold', 'cancelled'},
    'processing': {'ready_to_ship', 'on_hold', 'cancelled'},
    'ready_to_ship': {'shipped', 'on_hold'},
    'shipped': {'delivered'},
    'on_hold': {'pending_payment', 'processing', 'cancelled'},
    'delivered': set(),
    'cancelled': set(),
}

INITIAL_STATUSES = ('pending_payment', 'payment_received', 'processing')
REVENUE_STATUSES = ('payment_received', 'processing', 'ready_to_ship', 'shipped', 'delivered')
TERMINAL_STATUSES = ('delivered', 'cancelled')


def can_transition(from_status, to_status):
    return to_status in ORDER_TRANSITIONS.get(from_status, set())


def allowed_transitions(order):
    return sorted(ORDER_TRANSITIONS.get(order.status, set()))


def assert_transition(order, to_status):
    if not can_transition(order.status, to_status):
        raise WorkflowError(f"Cannot move order {order.order_number} from {order.status} to {to_status}")
    if to_status == 'shipped' and not (order.carrier and order.tracking_number):
        raise WorkflowError('Carrier and tracking number are required before marking the order shipped')
