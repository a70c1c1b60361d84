'''
Automation Service

CRUD for automations and their ordered steps, plus the read-only views of
execution history used by the admin UI.
'''

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from sprkz.errors import DefinitionError
from sprkz.models.automation import Automation, AutomationStep
from sprkz.models.automation_execution import AutomationExecution, AutomationStepExecution
from sprkz.models.webhook import Webhook
from sprkz.schemas import parse_definition
from sprkz.schemas.automation import AutomationCreate, AutomationStepIn, AutomationUpdate
from sprkz.services.structured_logging import get_logger

logger = get_logger('sprkz.automations')

DEFAULT_HISTORY_LIMIT = 50


class AutomationService:
    def __init__(self, db: Session):
        self.db = db

    def create_automation(self, data: Dict[str, Any]) -> Automation:
        payload = parse_definition(AutomationCreate, data)
        self._check_webhooks(payload.steps)
        try:
            automation = Automation(
                name=payload.name,
                description=payload.description,
                is_active=payload.is_active,
                trigger_type=payload.trigger_type,
                trigger_config=payload.trigger_config,
            )
            automation.steps = [self._build_step(step) for step in payload.steps]
            self.db.add(automation)
            self.db.commit()
            logger.info(f"Created automation {automation.id} with {len(payload.steps)} steps")
            return automation
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create automation: {e}")
            raise

    def get_automation(self, automation_id: int) -> Optional[Automation]:
        return (
            self.db.query(Automation)
            .options(selectinload(Automation.steps).selectinload(AutomationStep.webhook))
            .filter(Automation.id == automation_id)
            .first()
        )

    def list_automations(self) -> List[Automation]:
        return self.db.query(Automation).order_by(Automation.created_at.desc(), Automation.id.desc()).all()

    def update_automation(self, automation_id: int, data: Dict[str, Any]) -> Optional[Automation]:
        payload = parse_definition(AutomationUpdate, data)
        changes = payload.model_dump(exclude_unset=True, exclude={'steps'})
        if payload.steps is not None:
            self._check_webhooks(payload.steps)

        try:
            automation = self.get_automation(automation_id)
            if not automation:
                return None

            for key, value in changes.items():
                if key == 'trigger_config' and value is None:
                    value = {}
                elif value is None and key != 'description':
                    continue
                setattr(automation, key, value)

            if payload.steps is not None:
                # flush the removals first so re-used step_order values do not collide
                automation.steps.clear()
                self.db.flush()
                automation.steps = [self._build_step(step) for step in payload.steps]

            self.db.commit()
            logger.info(f"Updated automation {automation_id}")
            return automation
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update automation {automation_id}: {e}")
            raise

    def delete_automation(self, automation_id: int) -> bool:
        try:
            automation = self.db.get(Automation, automation_id)
            if not automation:
                return False
            self.db.delete(automation)
            self.db.commit()
            logger.info(f"Deleted automation {automation_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete automation {automation_id}: {e}")
            raise

    # execution rows are written by engine sessions; never serve them from the identity map

    def list_executions(self, automation_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[AutomationExecution]:
        return (
            self.db.query(AutomationExecution)
            .populate_existing()
            .filter(AutomationExecution.automation_id == automation_id)
            .order_by(AutomationExecution.created_at.desc(), AutomationExecution.id.desc())
            .limit(limit)
            .all()
        )

    def list_step_executions(self, automation_id: int,
                             limit: int = DEFAULT_HISTORY_LIMIT) -> List[AutomationStepExecution]:
        return (
            self.db.query(AutomationStepExecution)
            .populate_existing()
            .join(AutomationExecution,
                  AutomationStepExecution.automation_execution_id == AutomationExecution.id)
            .filter(AutomationExecution.automation_id == automation_id)
            .order_by(AutomationStepExecution.created_at.desc(), AutomationStepExecution.id.desc())
            .limit(limit)
            .all()
        )

    def get_execution(self, execution_id: int) -> Optional[AutomationExecution]:
        return (
            self.db.query(AutomationExecution)
            .populate_existing()
            .options(selectinload(AutomationExecution.step_executions))
            .filter(AutomationExecution.id == execution_id)
            .first()
        )

    def _check_webhooks(self, steps: List[AutomationStepIn]) -> None:
        wanted = {step.webhook_id for step in steps}
        if not wanted:
            return
        found = {row.id for row in self.db.query(Webhook.id).filter(Webhook.id.in_(wanted))}
        missing = sorted(wanted - found)
        if missing:
            raise DefinitionError(f"Unknown webhook id(s): {', '.join(map(str, missing))}")

    @staticmethod
    def _build_step(step: AutomationStepIn) -> AutomationStep:
        return AutomationStep(**step.model_dump())
