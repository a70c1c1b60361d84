"""
Execution Store

Persistence handle used by the execution engine. One store wraps one SQLAlchemy
session and is opened per run, so concurrent runs never share a session and
every write targets rows owned by the run that issued it. Each write commits
before returning: a transition is visible once the call comes back.
"""

from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from sprkz.errors import PersistenceError
from sprkz.models.automation import Automation, AutomationStep
from sprkz.models.automation_execution import (
    AutomationExecution, AutomationStepExecution, ExecutionStatus, StepStatus
)
from sprkz.models.webhook import Webhook, utcnow


class ExecutionStore:

    def __init__(self, session: Session):
        self.session = session

    @classmethod
    def open(cls, session_factory: Callable[[], Session]) -> 'ExecutionStore':
        return cls(session_factory())

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> 'ExecutionStore':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- definitions (read-only) --------------------------------------------

    def get_active_automation(self, automation_id: int) -> Optional[Automation]:
        return self.session.query(Automation).filter(
            Automation.id == automation_id,
            Automation.is_active.is_(True),
        ).first()

    def get_active_steps(self, automation_id: int) -> List[AutomationStep]:
        """Steps whose webhook is active, in step_order."""
        return (
            self.session.query(AutomationStep)
            .join(Webhook, AutomationStep.webhook_id == Webhook.id)
            .options(joinedload(AutomationStep.webhook))
            .filter(
                AutomationStep.automation_id == automation_id,
                Webhook.is_active.is_(True),
            )
            .order_by(AutomationStep.step_order.asc())
            .all()
        )

    def get_webhook(self, webhook_id: int) -> Optional[Webhook]:
        return self.session.get(Webhook, webhook_id)

    # -- execution rows -----------------------------------------------------

    def create_execution(self, automation_id: int, trigger_data: Dict[str, Any]) -> int:
        execution = AutomationExecution(
            automation_id=automation_id,
            status=ExecutionStatus.RUNNING.value,
            trigger_data=trigger_data,
            started_at=utcnow(),
        )
        self.session.add(execution)
        self._commit("create execution")
        return execution.id

    def finish_execution(self, execution_id: int, status: ExecutionStatus,
                         error_message: Optional[str] = None) -> None:
        execution = self.session.get(AutomationExecution, execution_id)
        if execution is None:
            raise PersistenceError(f"Execution {execution_id} disappeared")
        execution.status = status.value
        execution.error_message = error_message
        execution.completed_at = utcnow()
        self._commit(f"finalize execution {execution_id}")

    def create_step_execution(self, execution_id: int, step_id: int, webhook_id: int) -> int:
        step_execution = AutomationStepExecution(
            automation_execution_id=execution_id,
            automation_step_id=step_id,
            webhook_id=webhook_id,
            status=StepStatus.RUNNING.value,
            started_at=utcnow(),
        )
        self.session.add(step_execution)
        self._commit(f"create step execution for step {step_id}")
        return step_execution.id

    def finish_step_execution(self, step_execution_id: int, status: StepStatus,
                              response_status: Optional[int] = None,
                              response_body: Optional[str] = None,
                              error_message: Optional[str] = None,
                              retry_count: int = 0) -> None:
        step_execution = self.session.get(AutomationStepExecution, step_execution_id)
        if step_execution is None:
            raise PersistenceError(f"Step execution {step_execution_id} disappeared")
        step_execution.status = status.value
        step_execution.webhook_response_status = response_status
        step_execution.webhook_response_body = response_body
        step_execution.error_message = error_message
        step_execution.retry_count = retry_count
        step_execution.completed_at = utcnow()
        self._commit(f"update step execution {step_execution_id}")

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to {action}: {e}") from e
