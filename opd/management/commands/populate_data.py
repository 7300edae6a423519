"""
Management command to populate the database with demo reference data.

Creates departments, doctors with fee schedules, desk staff and a small
medicine catalog.  Safe to run repeatedly.
"""
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from opd.models import Department, Doctor, Medicine, MedicineInstruction, Specialization, User

DEMO_PASSWORD = 'frontdesk123'


class Command(BaseCommand):
    help = 'Populate database with demo departments, doctors, staff and medicines'

    def add_arguments(self, parser):
        parser.add_argument('--password', default=DEMO_PASSWORD, help='Password for created staff accounts')

    @transaction.atomic
    def handle(self, *args, **options):
        self.password = options['password']
        self.stdout.write('Creating demo data...')

        departments = self.create_departments()
        self.create_staff(departments)
        self.create_doctors(departments)
        self.create_medicines()

        self.stdout.write(self.style.SUCCESS('Demo data ready.'))

    def create_departments(self):
        data = [
            ('Medicine', 'General and internal medicine', ['Internal Medicine', 'Diabetology']),
            ('Surgery', 'General surgery outpatient clinic', ['General Surgery']),
            ('Paediatrics', 'Children up to 16 years', ['Paediatrics']),
            ('Gynaecology', 'Obstetrics and gynaecology', ['Obstetrics']),
        ]
        departments = {}
        for name, description, specializations in data:
            dept, created = Department.objects.get_or_create(name=name, defaults={'description': description})
            departments[name] = dept
            for spec in specializations:
                Specialization.objects.get_or_create(name=spec, defaults={'department': dept})
            self.stdout.write(f'Department: {dept.name}{" (new)" if created else ""}')
        return departments

    def _user(self, username, role, **extra):
        user, created = User.objects.get_or_create(username=username, defaults={'role': role, **extra})
        if created:
            user.set_password(self.password)
            user.save(update_fields=['password'])
        return user

    def create_staff(self, departments):
        self._user('reception1', User.ROLE_RECEPTION, first_name='Front', last_name='Desk')
        self._user('reception2', User.ROLE_RECEPTION, first_name='Evening', last_name='Desk')
        self._user('admin1', User.ROLE_ADMIN, first_name='Clinic', last_name='Manager', is_staff=True)
        self._user('super', User.ROLE_SUPER, is_staff=True, is_superuser=True)
        self.stdout.write('Staff accounts: reception1, reception2, admin1, super')

    def create_doctors(self, departments):
        data = [
            ('dr.rahman', 'Abdur', 'Rahman', 'Medicine', 'Internal Medicine', Decimal('500'), Decimal('100')),
            ('dr.akter', 'Nasrin', 'Akter', 'Medicine', 'Diabetology', Decimal('700'), Decimal('100')),
            ('dr.hossain', 'Kamal', 'Hossain', 'Surgery', 'General Surgery', Decimal('800'), Decimal('150')),
            ('dr.begum', 'Shirin', 'Begum', 'Paediatrics', 'Paediatrics', Decimal('600'), Decimal('0')),
            ('dr.islam', 'Farhana', 'Islam', 'Gynaecology', 'Obstetrics', Decimal('900'), Decimal('200')),
        ]
        for username, first, last, dept, spec, fee, hospital_fee in data:
            user = self._user(username, User.ROLE_DOCTOR, first_name=first, last_name=last,
                              department=departments[dept])
            doctor, created = Doctor.objects.get_or_create(
                user=user,
                defaults={
                    'department': departments[dept],
                    'specialization': Specialization.objects.filter(name=spec).first(),
                    'designation': 'Consultant',
                    'consultation_fee': fee,
                    'hospital_fee': hospital_fee,
                },
            )
            self.stdout.write(f'Doctor: {doctor} fee={doctor.consultation_fee}+{doctor.hospital_fee}')

    def create_medicines(self):
        medicines = [
            ('Napa', 'Paracetamol', '500 mg', 'Tablet'),
            ('Seclo', 'Omeprazole', '20 mg', 'Capsule'),
            ('Amoxil', 'Amoxicillin', '500 mg', 'Capsule'),
            ('Fexo', 'Fexofenadine', '120 mg', 'Tablet'),
            ('Tusca', 'Dextromethorphan', '100 ml', 'Syrup'),
        ]
        for name, generic, strength, form in medicines:
            Medicine.objects.get_or_create(name=name, strength=strength,
                                           defaults={'generic_name': generic, 'form': form})
        for name in ('1+0+1 after meal', '1+1+1 after meal', '0+0+1 before sleep', 'As needed'):
            MedicineInstruction.objects.get_or_create(name=name)
        self.stdout.write(f'Medicines: {Medicine.objects.count()}, instructions: {MedicineInstruction.objects.count()}')
