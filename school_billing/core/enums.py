from enum import Enum


class StudentStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    graduated = "graduated"
    suspended = "suspended"


class EnrollmentStatus(str, Enum):
    active = "active"
    completed = "completed"
    withdrawn = "withdrawn"


class BillStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"


class PaymentMethod(str, Enum):
    cash = "cash"
    transfer = "transfer"
    check = "check"
    card = "card"
    other = "other"


class PaymentStatus(str, Enum):
    completed = "completed"
    pending = "pending"
    failed = "failed"
    refunded = "refunded"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
