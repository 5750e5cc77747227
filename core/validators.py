"""
Validation utilities and validators.
Centralized validation logic following single responsibility principle.
"""
import re

from core.constants import PaymentMethod
from core.exceptions import ValidationError as AppValidationError, InvalidLeaseScheduleError


class LeaseScheduleValidator:
    """Validates lease billing schedules"""

    @staticmethod
    def validate_payment_day(payment_day_of_month):
        """Validate payment day is a calendar day (clamped to month length at billing time)"""
        if not isinstance(payment_day_of_month, int) or not 1 <= payment_day_of_month <= 31:
            raise InvalidLeaseScheduleError(
                message=f"Payment day of month must be between 1 and 31, got {payment_day_of_month!r}",
                details={"payment_day_of_month": payment_day_of_month}
            )

    @staticmethod
    def validate_period(year, month):
        """Validate a billing period"""
        if not 1 <= month <= 12:
            raise InvalidLeaseScheduleError(
                message=f"Billing month must be between 1 and 12, got {month}",
                details={"year": year, "month": month}
            )
        if year < 1970:
            raise InvalidLeaseScheduleError(
                message=f"Billing year {year} is out of range",
                details={"year": year, "month": month}
            )

    @staticmethod
    def validate_rent_amount(rent_amount):
        """Rent is stored in minor currency units and must be positive"""
        if not isinstance(rent_amount, int) or rent_amount <= 0:
            raise AppValidationError(
                message="Rent amount must be a positive integer of minor currency units",
                code="INVALID_RENT_AMOUNT",
                details={"rent_amount": rent_amount}
            )

    @staticmethod
    def validate_dates(start_date, end_date=None):
        """Validate lease dates"""
        if end_date and end_date < start_date:
            raise AppValidationError(
                message="End date cannot be before start date",
                code="INVALID_END_DATE"
            )


class PaymentValidator:
    """Validates payment-related operations"""

    @staticmethod
    def validate_amount(amount):
        """Recorded payments are positive; reversals are created internally"""
        if not isinstance(amount, int) or amount <= 0:
            raise AppValidationError(
                message="Payment amount must be a positive integer of minor currency units",
                code="INVALID_PAYMENT_AMOUNT",
                details={"amount": amount}
            )

    @staticmethod
    def validate_method(method):
        """Validate payment method"""
        if method not in PaymentMethod.VALUES:
            raise AppValidationError(
                message=f"Unknown payment method: {method}",
                code="INVALID_PAYMENT_METHOD",
                details={"method": method, "allowed": PaymentMethod.VALUES}
            )


class PhoneNumberValidator:
    """Normalizes Kenyan MSISDNs to 2547XXXXXXXX / 2541XXXXXXXX"""

    PATTERN = re.compile(r'^254[17]\d{8}$')

    @classmethod
    def normalize(cls, phone):
        cleaned = re.sub(r'[\s\-+()]', '', str(phone or ''))
        if cleaned.startswith('0'):
            cleaned = '254' + cleaned[1:]
        elif not cleaned.startswith('254'):
            cleaned = '254' + cleaned

        if not cls.PATTERN.match(cleaned):
            raise AppValidationError(
                message=f"Invalid phone number: {phone}",
                code="INVALID_PHONE_NUMBER",
                details={"phone": phone}
            )
        return cleaned
