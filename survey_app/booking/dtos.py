from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# ============================================================
# Requests
# ============================================================

class CoordinatesIn(BaseModel):
    lat: float
    lng: float


class AddressIn(BaseModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    pincode: str = Field(min_length=1)
    landmark: Optional[str] = None
    coordinates: Optional[CoordinatesIn] = None


class CreateBookingRequest(BaseModel):
    vendor_id: str = Field(min_length=1)
    service_id: str = Field(min_length=1)
    scheduled_date: str        # "2026-11-02"
    scheduled_time: str        # "10:30"
    address: AddressIn
    notes: Optional[str] = None


class ReasonRequest(BaseModel):
    """Body for cancel / reject."""
    reason: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    gateway_order_id: str = Field(min_length=1)
    gateway_payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class PaymentFailureRequest(BaseModel):
    gateway_order_id: Optional[str] = None
    reason: Optional[str] = None


class ReportUploadRequest(BaseModel):
    water_found: bool
    findings: Dict[str, Any] = Field(default_factory=dict)


# ============================================================
# Responses
# ============================================================

class PaymentSummaryDTO(BaseModel):
    currency: str
    base_service_fee: int
    travel_charges: int
    gst: int
    total_amount: int
    advance_amount: int
    remaining_amount: int
    advance_paid: bool
    remaining_paid: bool
    advance_gateway_order_id: Optional[str] = None
    remaining_gateway_order_id: Optional[str] = None
    # derived from status + paid flags, never stored
    payment_state: str


class ReportDTO(BaseModel):
    water_found: bool
    locked: bool                              # True until the remaining payment is in
    findings: Optional[Dict[str, Any]] = None
    uploaded_at: Optional[str] = None


class BookingDTO(BaseModel):
    booking_id: str
    user_id: str
    vendor_id: str
    service_id: str
    status: str
    scheduled_date: str
    scheduled_time: str
    address: Dict[str, Any]
    notes: Optional[str] = None
    payment: PaymentSummaryDTO
    report: Optional[ReportDTO] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    version: int


class PaymentOrderDTO(BaseModel):
    booking_id: str
    phase: str                 # "advance" | "remaining"
    gateway_order_id: str
    amount: int
    currency: str
    key_id: str
    reused: bool = False


class CreateBookingResponse(BaseModel):
    ok: bool = True
    booking: BookingDTO
    advance_order: PaymentOrderDTO


class BookingListResponse(BaseModel):
    ok: bool = True
    total_count: int
    limit: int
    offset: int
    bookings: List[BookingDTO]


class ActiveBookingResponse(BaseModel):
    ok: bool = True
    booking: Optional[BookingDTO] = None


class VerifyPaymentResponse(BaseModel):
    success: bool
    error_code: Optional[str] = None
    already_processed: bool = False
    booking: BookingDTO


class PaymentAttemptDTO(BaseModel):
    attempt_id: int
    phase: str
    outcome: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    amount: Optional[int] = None
    error: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    created_at: str


class StatusHistoryDTO(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    event: str
    actor_role: str
    actor_id: Optional[str] = None
    created_at: str


class RefundCandidateDTO(PaymentAttemptDTO):
    booking_id: str


class RefundDTO(BaseModel):
    attempt_id: int
    booking_id: str
    gateway_payment_id: str
    gateway_refund_id: Optional[str] = None
    amount: int
    already_refunded: bool = False
