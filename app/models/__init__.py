from app.models.base import Base  # noqa: F401

from app.models.user import User  # noqa: F401
from app.models.api_key import ApiKey  # noqa: F401
from app.models.listing import Listing  # noqa: F401
from app.models.bid import Bid  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.dispute import Dispute  # noqa: F401
from app.models.review import Review  # noqa: F401
from app.models.payout_request import PayoutRequest  # noqa: F401
from app.models.ledger_entry import LedgerEntry  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.conversation import Conversation  # noqa: F401
from app.models.message import Message  # noqa: F401
from app.models.outbox import OutboxEvent  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.idempotency import IdempotencyKey  # noqa: F401
