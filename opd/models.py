"""
Database models for the outpatient front desk.

The central entity is :class:`Appointment`.  Every appointment carries a
per-doctor, per-day serial number and a live queue position, owns exactly
one :class:`Bill`, and accumulates an append-only trail of
:class:`AppointmentEvent` rows describing the patient's journey.
Reference data (departments, doctors, medicines) is read-mostly from the
point of view of the queue and billing services.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import ImmutableRecordError

MONEY = dict(max_digits=12, decimal_places=2)


class Department(models.Model):
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class Specialization(models.Model):
    name = models.CharField(max_length=255, unique=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='specializations'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class User(AbstractUser):
    """Staff account.  Every mutating call records the acting user."""
    ROLE_RECEPTION = 'reception'
    ROLE_DOCTOR = 'doctor'
    ROLE_ADMIN = 'admin'
    ROLE_SUPER = 'super'
    ROLE_CHOICES = [
        (ROLE_RECEPTION, 'Reception'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_SUPER, 'Super Administrator'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_RECEPTION)
    phone = models.CharField(max_length=20, blank=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='staff'
    )

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Doctor(models.Model):
    """A doctor's employment record and fee schedule."""
    user = models.OneToOneField(User, on_delete=models.PROTECT, related_name='doctor_profile')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )
    specialization = models.ForeignKey(
        Specialization, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )
    designation = models.CharField(max_length=255, blank=True)
    consultation_fee = models.DecimalField(**MONEY, default=0, validators=[MinValueValidator(0)])
    hospital_fee = models.DecimalField(**MONEY, default=0, validators=[MinValueValidator(0)])
    is_available = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(consultation_fee__gte=0) & Q(hospital_fee__gte=0),
                name='doctor_fees_non_negative',
            ),
        ]

    @property
    def name(self) -> str:
        return self.user.get_full_name() or self.user.username

    def __str__(self) -> str:
        return f"Dr. {self.name}"


class Patient(models.Model):
    class Gender(models.TextChoices):
        MALE = 'MALE', 'Male'
        FEMALE = 'FEMALE', 'Female'
        OTHER = 'OTHER', 'Other'

    class BloodGroup(models.TextChoices):
        A_POSITIVE = 'A_POSITIVE', 'A+'
        A_NEGATIVE = 'A_NEGATIVE', 'A-'
        B_POSITIVE = 'B_POSITIVE', 'B+'
        B_NEGATIVE = 'B_NEGATIVE', 'B-'
        AB_POSITIVE = 'AB_POSITIVE', 'AB+'
        AB_NEGATIVE = 'AB_NEGATIVE', 'AB-'
        O_POSITIVE = 'O_POSITIVE', 'O+'
        O_NEGATIVE = 'O_NEGATIVE', 'O-'

    # Human readable id, e.g. PID26-000042
    patient_id = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, unique=True)
    age = models.PositiveIntegerField()
    gender = models.CharField(max_length=10, choices=Gender.choices, blank=True)
    blood_group = models.CharField(max_length=12, choices=BloodGroup.choices, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patients_registered'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.patient_id})"


class SequenceCounter(models.Model):
    """A lockable counter row, one per (name, period).

    Allocation reads the row with ``SELECT ... FOR UPDATE``, increments
    ``value`` and writes it back inside the caller's transaction, so two
    concurrent allocators for the same counter are serialised on this row.
    """
    name = models.CharField(max_length=64)
    period = models.CharField(max_length=16)
    value = models.PositiveBigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['name', 'period'], name='unique_sequence_counter'),
        ]

    def __str__(self) -> str:
        return f"{self.name}@{self.period}={self.value}"


class Appointment(models.Model):
    class Type(models.TextChoices):
        NEW = 'NEW', 'New'
        FOLLOWUP = 'FOLLOWUP', 'Follow-up'

    class Status(models.TextChoices):
        WAITING = 'WAITING', 'Waiting'
        IN_CONSULTATION = 'IN_CONSULTATION', 'In consultation'
        COMPLETED = 'COMPLETED', 'Completed'
        CANCELLED = 'CANCELLED', 'Cancelled'

    ACTIVE_STATUSES = (Status.WAITING, Status.IN_CONSULTATION)
    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED)
    TRANSITIONS = {
        Status.WAITING: (Status.IN_CONSULTATION, Status.CANCELLED),
        Status.IN_CONSULTATION: (Status.COMPLETED, Status.CANCELLED),
        Status.COMPLETED: (),
        Status.CANCELLED: (),
    }

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='appointments')
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='appointments')
    initiated_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments_initiated'
    )
    appointment_type = models.CharField(max_length=10, choices=Type.choices, default=Type.NEW)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.WAITING, db_index=True)
    serial_number = models.PositiveIntegerField()
    queue_position = models.PositiveIntegerField()
    appointment_date = models.DateField(db_index=True)
    appointment_month = models.CharField(max_length=7)
    chief_complaint = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    entry_time = models.DateTimeField(null=True, blank=True)
    exit_time = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'appointment_date', 'serial_number'],
                name='unique_serial_per_doctor_day',
            ),
        ]
        indexes = [
            models.Index(fields=['doctor', 'appointment_date', 'status'], name='opd_appt_doctor_day_status'),
            models.Index(fields=['patient', 'appointment_date'], name='opd_appt_patient_day'),
        ]

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, ())

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError('Appointments are kept for audit and cannot be deleted')

    def __str__(self) -> str:
        return f"#{self.serial_number} {self.appointment_date} ({self.status})"


class Bill(models.Model):
    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        PARTIAL = 'PARTIAL', 'Partially paid'
        PAID = 'PAID', 'Paid'
        REFUNDED = 'REFUNDED', 'Refunded'
        CANCELLED = 'CANCELLED', 'Cancelled'

    bill_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='bills')
    appointment = models.OneToOneField(Appointment, on_delete=models.PROTECT, related_name='bill')
    billable_type = models.CharField(max_length=32, default='appointment')
    total_amount = models.DecimalField(**MONEY)
    paid_amount = models.DecimalField(**MONEY, default=0)
    due_amount = models.DecimalField(**MONEY)
    discount = models.DecimalField(**MONEY, default=0)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True)
    billing_date = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True)
    initiated_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='bills_initiated'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(total_amount=F('paid_amount') + F('due_amount')),
                name='bill_amounts_balance',
            ),
            models.CheckConstraint(
                condition=Q(paid_amount__gte=0) & Q(due_amount__gte=0),
                name='bill_amounts_non_negative',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.bill_number} ({self.status})"


class BillItem(models.Model):
    """Immutable bill line: ``total = quantity * unit_price - discount``."""

    class ItemType(models.TextChoices):
        CONSULTATION = 'consultation', 'Consultation'
        HOSPITAL_FEE = 'hospital_fee', 'Hospital fee'
        SERVICE = 'service', 'Service'
        TEST = 'test', 'Test'

    bill = models.ForeignKey(Bill, on_delete=models.PROTECT, related_name='items')
    item_type = models.CharField(max_length=16, choices=ItemType.choices)
    item_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(**MONEY)
    discount = models.DecimalField(**MONEY, default=0)
    total = models.DecimalField(**MONEY)
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError('Bill items cannot be modified')
        self.total = self.quantity * self.unit_price - self.discount
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError('Bill items cannot be deleted')

    def __str__(self) -> str:
        return f"{self.item_name} x{self.quantity} = {self.total}"


class Payment(models.Model):
    class Method(models.TextChoices):
        CASH = 'CASH', 'Cash'
        CARD = 'CARD', 'Card'
        MOBILE_BANKING = 'MOBILE_BANKING', 'Mobile banking'
        ONLINE = 'ONLINE', 'Online'

    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = ((STATUS_SUCCESS, 'success'), (STATUS_FAILED, 'failed'))

    bill = models.ForeignKey(Bill, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(**MONEY)
    payment_method = models.CharField(max_length=20, choices=Method.choices)
    transaction_id = models.CharField(max_length=128, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_SUCCESS)
    received_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments_received'
    )
    payment_date = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [models.Index(fields=['bill', 'payment_date'], name='opd_payment_bill_date')]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError('Payments are append-only')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError('Payments are append-only')

    def __str__(self) -> str:
        return f"{self.amount} via {self.payment_method} on bill {self.bill_id}"


class EventType(models.TextChoices):
    """Closed set of journey events; the label is the default description."""
    APPOINTMENT_REGISTERED = 'APPOINTMENT_REGISTERED', 'Patient registered for appointment'
    APPOINTMENT_ASSIGNED = 'APPOINTMENT_ASSIGNED', 'Appointment assigned to doctor'
    QUEUE_JOINED = 'QUEUE_JOINED', 'Patient joined the queue'
    QUEUE_CALLED = 'QUEUE_CALLED', 'Patient called from waiting area'
    QUEUE_SKIPPED = 'QUEUE_SKIPPED', 'Patient skipped their turn'
    ENTERED_ROOM = 'ENTERED_ROOM', 'Patient entered consultation room'
    EXITED_ROOM = 'EXITED_ROOM', 'Patient exited consultation room'
    CONSULTATION_COMPLETED = 'CONSULTATION_COMPLETED', 'Consultation completed'
    PRESCRIPTION_GIVEN = 'PRESCRIPTION_GIVEN', 'Prescription provided'
    TESTS_ORDERED = 'TESTS_ORDERED', 'Lab tests ordered'
    REFERRAL_GIVEN = 'REFERRAL_GIVEN', 'Referral given'
    CONSULTATION_BILLED = 'CONSULTATION_BILLED', 'Consultation fee billed'
    TESTS_BILLED = 'TESTS_BILLED', 'Lab tests billed'
    PAYMENT_RECEIVED = 'PAYMENT_RECEIVED', 'Payment received'
    PAYMENT_PARTIAL = 'PAYMENT_PARTIAL', 'Partial payment received'
    PAYMENT_REFUNDED = 'PAYMENT_REFUNDED', 'Payment refunded'
    TEST_SAMPLE_COLLECTED = 'TEST_SAMPLE_COLLECTED', 'Sample collected for testing'
    TEST_IN_PROGRESS = 'TEST_IN_PROGRESS', 'Test processing started'
    TEST_COMPLETED = 'TEST_COMPLETED', 'Test completed'
    TEST_REVIEWED = 'TEST_REVIEWED', 'Test results reviewed'
    TEST_APPROVED = 'TEST_APPROVED', 'Test results approved'
    REPORT_GENERATED = 'REPORT_GENERATED', 'Report generated'
    REPORT_DELIVERED = 'REPORT_DELIVERED', 'Report delivered to patient'
    DOCUMENT_UPLOADED = 'DOCUMENT_UPLOADED', 'Document uploaded'
    DOCUMENT_SHARED = 'DOCUMENT_SHARED', 'Document shared'
    APPOINTMENT_COMPLETED = 'APPOINTMENT_COMPLETED', 'Appointment completed'
    APPOINTMENT_CANCELLED = 'APPOINTMENT_CANCELLED', 'Appointment cancelled'
    APPOINTMENT_RESCHEDULED = 'APPOINTMENT_RESCHEDULED', 'Appointment rescheduled'
    FOLLOWUP_SCHEDULED = 'FOLLOWUP_SCHEDULED', 'Follow-up scheduled'
    FOLLOWUP_REMINDER_SENT = 'FOLLOWUP_REMINDER_SENT', 'Follow-up reminder sent'


class AppendOnlyQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableRecordError('Appointment events are append-only')

    def delete(self):
        raise ImmutableRecordError('Appointment events are append-only')


class AppointmentEvent(models.Model):
    appointment = models.ForeignKey(Appointment, on_delete=models.PROTECT, related_name='events')
    event_type = models.CharField(max_length=40, choices=EventType.choices)
    description = models.TextField(blank=True)
    metadata = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    performed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointment_events'
    )
    performed_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        ordering = ['performed_at', 'id']
        indexes = [
            models.Index(fields=['appointment', 'performed_at'], name='opd_event_appt_time'),
            models.Index(fields=['appointment', 'event_type'], name='opd_event_appt_type'),
            models.Index(fields=['event_type'], name='opd_event_type'),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError('Appointment events are append-only')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError('Appointment events are append-only')

    def __str__(self) -> str:
        return f"{self.event_type} @ {self.performed_at:%F %T} (appointment {self.appointment_id})"


# ---------------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------------

class Medicine(models.Model):
    name = models.CharField(max_length=255)
    generic_name = models.CharField(max_length=255, blank=True)
    strength = models.CharField(max_length=64, blank=True)
    form = models.CharField(max_length=64, blank=True, help_text="Tablet, syrup, injection, ...")
    manufacturer = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return f"{self.name} {self.strength}".strip()


class MedicineInstruction(models.Model):
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)

    def __str__(self) -> str:
        return self.name


class Prescription(models.Model):
    appointment = models.OneToOneField(Appointment, on_delete=models.PROTECT, related_name='prescription')
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='prescriptions')
    notes = models.TextField(blank=True)
    follow_up_date = models.DateField(null=True, blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions_written'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Prescription for appointment {self.appointment_id}"


class PrescriptionItem(models.Model):
    prescription = models.ForeignKey(Prescription, on_delete=models.CASCADE, related_name='items')
    medicine = models.ForeignKey(Medicine, on_delete=models.PROTECT, related_name='+')
    instruction = models.ForeignKey(
        MedicineInstruction, null=True, blank=True, on_delete=models.PROTECT, related_name='+'
    )
    duration = models.CharField(max_length=64, blank=True)
    notes = models.TextField(blank=True)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self) -> str:
        return f"{self.medicine} ({self.duration})"
