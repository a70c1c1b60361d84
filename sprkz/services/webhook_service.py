"""
Webhook Service

CRUD for webhook definitions. Validation happens here, at write time; the
execution engine only ever reads these rows.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from sprkz.errors import DefinitionError, TemplateError
from sprkz.models.automation import AutomationStep
from sprkz.models.webhook import Webhook, WebhookEvent
from sprkz.schemas import parse_definition
from sprkz.schemas.webhook import WebhookCreate, WebhookUpdate, check_payload_template
from sprkz.services.structured_logging import get_logger

logger = get_logger('sprkz.webhooks')

NULLABLE_FIELDS = ("payload_template",)


class WebhookService:
    """Service for managing webhook definitions"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create_webhook(self, data: Dict[str, Any]) -> Webhook:
        """Create a webhook; raises DefinitionError on bad input"""
        fields = parse_definition(WebhookCreate, data).model_dump()
        try:
            webhook = Webhook(**fields)
            self.db.add(webhook)
            self.db.commit()
            logger.info(f"Created webhook {webhook.id} ({webhook.method} {webhook.url})")
            return webhook
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create webhook: {e}")
            raise

    def get_webhook(self, webhook_id: int) -> Optional[Webhook]:
        return self.db.get(Webhook, webhook_id)

    def list_webhooks(self) -> List[Webhook]:
        return self.db.query(Webhook).order_by(Webhook.created_at.desc(), Webhook.id.desc()).all()

    def update_webhook(self, webhook_id: int, data: Dict[str, Any]) -> Optional[Webhook]:
        """Apply the submitted fields to a webhook; returns None if it does not exist"""
        changes = parse_definition(WebhookUpdate, data).model_dump(exclude_unset=True)
        if "headers" in changes and changes["headers"] is None:
            changes["headers"] = {}
        changes = {k: v for k, v in changes.items() if v is not None or k in NULLABLE_FIELDS}
        try:
            webhook = self.get_webhook(webhook_id)
            if not webhook:
                return None

            if "payload_type" in changes or "payload_template" in changes:
                _check_stored_template(
                    changes.get("payload_type", webhook.payload_type),
                    changes.get("payload_template", webhook.payload_template),
                )

            for key, value in changes.items():
                setattr(webhook, key, value)

            self.db.commit()
            logger.info(f"Updated webhook {webhook_id}", fields=sorted(changes))
            return webhook
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update webhook {webhook_id}: {e}")
            raise

    def delete_webhook(self, webhook_id: int) -> bool:
        """Delete a webhook together with the steps and history that reference it"""
        try:
            webhook = self.get_webhook(webhook_id)
            if not webhook:
                return False

            # SQLite does not enforce ON DELETE CASCADE unless asked to
            for step in self.db.query(AutomationStep).filter_by(webhook_id=webhook_id).all():
                self.db.delete(step)
            self.db.delete(webhook)
            self.db.commit()
            logger.info(f"Deleted webhook {webhook_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete webhook {webhook_id}: {e}")
            raise

    def list_deliveries(self, webhook_id: int, limit: int = 50) -> List[WebhookEvent]:
        """Delivery history for one webhook, newest first"""
        return (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.webhook_id == webhook_id)
            .order_by(WebhookEvent.created_at.desc(), WebhookEvent.id.desc())
            .limit(limit)
            .all()
        )


def _check_stored_template(payload_type: str, payload_template: Optional[str]) -> None:
    # a partial update is checked against the type or template already stored
    try:
        check_payload_template(payload_type, payload_template)
    except TemplateError as e:
        raise DefinitionError(
            f"payload_template: {e}",
            [{'field': 'payload_template', 'message': str(e)}],
        ) from e
