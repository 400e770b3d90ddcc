from school_billing.core.models.student import Student
from school_billing.core.models.department import Department
from school_billing.core.models.student_department import StudentDepartment
from school_billing.core.models.bill_item import BillItem
from school_billing.core.models.bill import Bill
from school_billing.core.models.bill_item_relation import BillItemRelation
from school_billing.core.models.payment import Payment

__all__ = [
    "Student",
    "Department",
    "StudentDepartment",
    "BillItem",
    "Bill",
    "BillItemRelation",
    "Payment",
]
