"""Prometheus counters for the queue and billing services.

Exposed on ``/metrics`` next to the django-prometheus request metrics.
"""
from prometheus_client import Counter

APPOINTMENTS_CREATED = Counter(
    'opd_appointments_created_total',
    'Appointments registered',
    ['appointment_type'],
)

SEQUENCE_RETRIES = Counter(
    'opd_sequence_retries_total',
    'Allocation transactions retried after a lock or uniqueness conflict',
)

QUEUE_BROADCASTS = Counter(
    'opd_queue_broadcasts_total',
    'Queue snapshots pushed to live viewers',
    ['outcome'],
)

PAYMENTS_RECORDED = Counter(
    'opd_payments_recorded_total',
    'Payment attempts against bills',
    ['outcome'],
)
