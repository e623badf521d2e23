from enum import Enum


class FeeType(str, Enum):
    """The five fixed fee categories making up a semester's dues."""

    ADMISSION_FEE = "admissionFee"
    EXAM_PERMIT_REG_FEE = "examPermitRegFee"
    SPECIAL_FEE = "specialFee"
    TUITION_FEE = "tuitionFee"
    OTHERS = "others"


# Breakdown key used only by hostel_fee payments.
HOSTEL_FEE_KEY = "hostelFee"

FEE_TYPE_LABELS = {
    FeeType.ADMISSION_FEE.value: "Admission Fee",
    FeeType.EXAM_PERMIT_REG_FEE.value: "Exam Permit/Reg Fee",
    FeeType.SPECIAL_FEE.value: "Special Fee",
    FeeType.TUITION_FEE.value: "Tuition Fee",
    FeeType.OTHERS.value: "Others",
    HOSTEL_FEE_KEY: "Hostel Fee",
}


class FeeStatus(str, Enum):
    unpaid = "unpaid"
    partially_paid = "partially_paid"
    fully_paid = "fully_paid"


class PaymentType(str, Enum):
    full_payment = "full_payment"
    semester_payment = "semester_payment"
    partial_payment = "partial_payment"
    hostel_fee = "hostel_fee"


class PaymentStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"
    partial_refund = "partial_refund"


class PaymentMethod(str, Enum):
    razorpay_online = "razorpay_online"
    cash_office = "cash_office"
    bank_transfer = "bank_transfer"
    dd = "dd"
    cheque = "cheque"


class PaymentSource(str, Enum):
    online_gateway = "online_gateway"
    manual_office = "manual_office"
