"""
Django admin registrations for the outpatient models.

Financial and audit rows (bill items, payments, journey events) are shown
read-only; they are append-only in the database layer as well.
"""

from django.contrib import admin

from .models import (
    Appointment,
    AppointmentEvent,
    Bill,
    BillItem,
    Department,
    Doctor,
    Medicine,
    MedicineInstruction,
    Patient,
    Payment,
    Prescription,
    SequenceCounter,
    Specialization,
    User,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'department', 'is_staff', 'is_superuser')
    list_filter = ('role', 'department')
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'is_active', 'created_at')
    search_fields = ('name',)


@admin.register(Specialization)
class SpecializationAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'department')


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'department', 'consultation_fee', 'hospital_fee', 'is_available')
    list_filter = ('department', 'is_available')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('patient_id', 'name', 'age', 'gender', 'created_at')
    search_fields = ('patient_id', 'name', 'phone')
    readonly_fields = ('patient_id',)


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment_date', 'doctor', 'serial_number', 'queue_position', 'status', 'patient')
    list_filter = ('status', 'appointment_date', 'doctor')
    readonly_fields = ('serial_number', 'queue_position', 'status', 'appointment_date', 'entry_time', 'exit_time')

    def has_delete_permission(self, request, obj=None):
        return False


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0
    can_delete = False
    readonly_fields = ('item_type', 'item_name', 'quantity', 'unit_price', 'discount', 'total')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Bill)
class BillAdmin(ReadOnlyAdmin):
    list_display = ('bill_number', 'patient', 'total_amount', 'paid_amount', 'due_amount', 'status', 'billing_date')
    list_filter = ('status',)
    search_fields = ('bill_number',)
    inlines = [BillItemInline]


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdmin):
    list_display = ('id', 'bill', 'amount', 'payment_method', 'status', 'received_by', 'payment_date')
    list_filter = ('payment_method', 'status')


@admin.register(AppointmentEvent)
class AppointmentEventAdmin(ReadOnlyAdmin):
    list_display = ('id', 'appointment', 'event_type', 'performed_by', 'performed_at')
    list_filter = ('event_type',)


@admin.register(SequenceCounter)
class SequenceCounterAdmin(ReadOnlyAdmin):
    list_display = ('name', 'period', 'value', 'updated_at')


admin.site.register(Medicine)
admin.site.register(MedicineInstruction)
admin.site.register(Prescription)
