"""SQLAlchemy model for notification deliveries that exhausted their retries."""

from sqlalchemy import VARCHAR, BigInteger, Integer, SmallInteger, Text
from sqlalchemy.orm import Mapped, mapped_column

from pujo_gallery.db.session import Base

DEAD_LETTER_PENDING = "pending"
DEAD_LETTER_DELIVERED = "delivered"
DEAD_LETTER_ABANDONED = "abandoned"

# Card posts and card references that could not be stored; edits are recorded
# under the outcome they apply ("approved", "rejected").
ACTION_POST = "post"
ACTION_ATTACH = "attach"


class NotificationDeadLetter(Base):
    """A moderation card post or edit that could not be delivered."""

    __tablename__ = "notification_dead_letter"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    submission_id: Mapped[str] = mapped_column(VARCHAR(64), nullable=False, index=True)
    # 'post', 'attach', 'approved' or 'rejected'
    action: Mapped[str] = mapped_column(VARCHAR(16), nullable=False)
    # Card reference; empty for posts that never produced a message.
    message_ref: Mapped[str] = mapped_column(VARCHAR(64), nullable=False, default="")
    # JSON document needed to replay the delivery.
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    last_error: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        VARCHAR(20), nullable=False, default=DEAD_LETTER_PENDING
    )  # 'pending', 'delivered', 'abandoned'
    retry_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
