"""Authorization handle attachment — command and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class AttachAuthorizationHandle:
    order_id = Identifier(required=True)
    authorization_handle = String(required=True, max_length=255)


@checkout.command_handler(part_of=Order)
class AttachAuthorizationHandler:
    @handle(AttachAuthorizationHandle)
    def attach_authorization_handle(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        attached = order.attach_authorization(command.authorization_handle)
        if not attached:
            # A second attach never overwrites; the first authorization stays authoritative
            logger.info(
                "authorization_attach_skipped",
                order_id=str(order.id),
                status=order.status,
                existing_handle=order.authorization_handle,
                offered_handle=command.authorization_handle,
            )
            return False

        repo.add(order)
        return True
