"""
Domain errors and the REST exception handler.

Every error the queue, billing and payment services raise is an
``APIException`` so that views can let it propagate untouched; the
handler below renders all of them in one envelope::

    {"ok": false, "error": {"code": "...", "message": "..."}}
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class DomainError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'domain_error'
    retryable = False


# -- 404 ---------------------------------------------------------------------

class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class DoctorNotFound(NotFound):
    default_detail = 'Doctor not found'


class PatientNotFound(NotFound):
    default_detail = 'Patient not found'


class AppointmentNotFound(NotFound):
    default_detail = 'Appointment not found'


class BillNotFound(NotFound):
    default_detail = 'Bill not found'


# -- 409 ---------------------------------------------------------------------

class Conflict(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflict.'
    default_code = 'conflict'


class DuplicatePhone(Conflict):
    default_detail = 'A patient with this phone number already exists'
    default_code = 'duplicate_phone'


class InvalidTransition(Conflict):
    default_detail = 'Illegal status transition'
    default_code = 'invalid_transition'


class SequenceContention(Conflict):
    default_detail = 'The queue is busy, please try again'
    default_code = 'sequence_contention'
    retryable = True


class PrescriptionExists(Conflict):
    default_detail = 'Prescription already exists for this appointment'
    default_code = 'prescription_exists'


class ImmutableRecordError(Conflict):
    default_detail = 'This record cannot be modified'
    default_code = 'immutable_record'


# -- 400 ---------------------------------------------------------------------

class DomainValidationError(DomainError):
    default_detail = 'Invalid request.'
    default_code = 'validation_error'


class AlreadyPaid(DomainValidationError):
    default_detail = 'Bill is already paid'
    default_code = 'already_paid'


class AmountExceedsDue(DomainValidationError):
    default_detail = 'Payment amount exceeds due amount'
    default_code = 'amount_exceeds_due'


class BillNotPayable(DomainValidationError):
    default_detail = 'Bill cannot accept payments in its current status'
    default_code = 'bill_not_payable'


class NoPatientsWaiting(DomainValidationError):
    default_detail = 'No patients waiting in queue'
    default_code = 'no_patients_waiting'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('Unhandled error in %s', context.get('view').__class__.__name__, exc_info=exc)
        return Response(
            {'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, DomainError):
        error = {'code': exc.default_code, 'message': str(exc.detail)}
        if exc.retryable:
            error['retryable'] = True
        return Response({'ok': False, 'error': error}, status=resp.status_code, headers=_headers(resp))

    # serializer / auth / throttling errors from DRF itself
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    code = 'validation_error' if resp.status_code == 400 else 'api_error'
    return Response({'ok': False, 'error': {'code': code, 'message': detail}},
                    status=resp.status_code, headers=_headers(resp))


def _headers(resp):
    return {k: v for k, v in resp.items() if k in ('WWW-Authenticate', 'Retry-After')}
