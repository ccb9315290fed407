class ListingStatus:
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"
    PAID = "PAID"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"


class PaymentStatus:
    INITIATED = "INITIATED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


class DisputeStatus:
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"


class PayoutStatus:
    PENDING = "PENDING"


class LedgerEntryType:
    BID_PLACED = "bid_placed"
    PAYMENT_SETTLED = "payment_settled"
    FUNDS_RELEASED = "funds_released"
    PAYOUT_REQUESTED = "payout_requested"
    PAYMENT_REFUNDED = "payment_refunded"
