"""
URL mappings for the front-desk API.

Trailing slashes are omitted, matching the paths the desk client calls.
The live queue feed is a WebSocket route, see ``opd.realtime.routing``.
"""
from django.urls import include, path

from .views import appointments, billing, health, patients, prescriptions, queue

urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/with-new-patient', appointments.appointment_with_new_patient),
    path('api/appointments/queue/call-next', appointments.call_next),
    path('api/appointments/queue/<int:doctor_id>', queue.doctor_queue),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointments/<int:pk>/status', appointments.appointment_status),
    path('api/appointments/<int:pk>/bills', appointments.appointment_bills),
    path('api/appointments/<int:pk>/timeline', appointments.appointment_timeline),
    path('api/appointments/<int:pk>/prescription', prescriptions.appointment_prescription),
    # Queue
    path('api/queue/connections', queue.queue_connections),
    # Billing
    path('api/payments', billing.payments),
    path('api/bills/<int:pk>', billing.bill_detail),
    path('api/bills/<int:pk>/items', billing.bill_items),
    path('api/bills/<int:pk>/status', billing.bill_status),
    # Prescriptions
    path('api/prescriptions', prescriptions.prescriptions),
    # Patients
    path('api/patients', patients.patients),
]
