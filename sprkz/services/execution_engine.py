'''
Execution Engine

Runs automations: loads the active steps of an automation, drives the webhook
invoker through them one at a time, and persists the outcome of every step and
of the run as a whole.

Runs are independent. ``execute``/``trigger`` run on the caller's thread;
``start`` runs the steps on a daemon thread of its own and returns
immediately. Each run owns its own thread, session and cancellation token, so
a delayed or backing-off run never holds up another.
'''

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, asdict, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sprkz.errors import (
    AutomationError, ConfigurationError, ConditionError, ExecutionAborted, PersistenceError
)
from sprkz.models.automation_execution import ExecutionStatus, StepStatus
from sprkz.services.cancellation import CancellationToken
from sprkz.services.conditions import evaluate_condition
from sprkz.services.event_logger import EventContext, EventLogger, AUTOMATION_ACTIVITY
from sprkz.services.execution_store import ExecutionStore
from sprkz.services.structured_logging import get_logger
from sprkz.services.webhook_invoker import InvocationResult, WebhookInvoker, WebhookTarget

logger = get_logger('sprkz.engine')

AUTOMATION_NOT_FOUND = "Automation not found or inactive"
NO_ACTIVE_STEPS = "No active steps found for automation"
WEBHOOK_NOT_FOUND = "Webhook not found"
CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    success: bool
    execution_id: Optional[int]
    completed_steps: int
    total_steps: int
    error_message: Optional[str]
    execution_time_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExecutionHandle:
    """Returned by :meth:`ExecutionEngine.start` before the steps have run."""
    execution_id: int
    future: Future

    def result(self, timeout: Optional[float] = None) -> ExecutionResult:
        return self.future.result(timeout)


@dataclass(frozen=True)
class StepPlan:
    step_id: int
    step_order: int
    webhook: WebhookTarget
    is_conditional: bool = False
    condition_config: Dict[str, Any] = field(default_factory=dict)
    delay_seconds: int = 0
    retry_on_failure: bool = True
    continue_on_failure: bool = False

    @classmethod
    def from_model(cls, step) -> 'StepPlan':
        return cls(
            step_id=step.id,
            step_order=step.step_order,
            webhook=WebhookTarget.from_model(step.webhook),
            is_conditional=bool(step.is_conditional),
            condition_config=dict(step.condition_config or {}),
            delay_seconds=max(int(step.delay_seconds or 0), 0),
            retry_on_failure=bool(step.retry_on_failure),
            continue_on_failure=bool(step.continue_on_failure),
        )


@dataclass
class StepOutcome:
    status: StepStatus
    status_code: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    cancelled: bool = False

    @classmethod
    def from_invocation(cls, result: InvocationResult) -> 'StepOutcome':
        # a cancelled backoff outranks the last attempt's error
        return cls(
            status=StepStatus.COMPLETED if result.success else StepStatus.FAILED,
            status_code=result.status_code,
            response_body=result.response_body,
            error_message=CANCELLED if result.cancelled else result.error_message,
            retry_count=max(result.attempts - 1, 0),
            cancelled=result.cancelled,
        )

    def as_context(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'status_code': self.status_code,
            'error_message': self.error_message,
        }


@dataclass
class _Run:
    automation_id: int
    automation_name: str
    execution_id: int
    steps: List[StepPlan]
    trigger_data: Dict[str, Any]
    context: EventContext
    token: CancellationToken
    started: float


class ExecutionEngine:
    """Orchestrates automation runs."""

    def __init__(self, session_factory: Callable[[], Session], invoker: WebhookInvoker,
                 event_logger: EventLogger, metrics=None):
        self.session_factory = session_factory
        self.invoker = invoker
        self.event_logger = event_logger
        self.metrics = metrics
        self._tokens: Dict[int, CancellationToken] = {}
        self._threads: Dict[int, threading.Thread] = {}
        self._tokens_lock = threading.Lock()
        self._closed = False

    # -- entry points -------------------------------------------------------

    def execute(self, automation_id: int, trigger_data: Optional[Dict[str, Any]] = None,
                context: Optional[EventContext] = None) -> ExecutionResult:
        """Run an automation to completion and always return a structured result."""
        started = time.monotonic()
        try:
            return self.trigger(automation_id, trigger_data, context)
        except ExecutionAborted as e:
            return ExecutionResult(False, e.execution_id, e.completed_steps, e.total_steps,
                                   str(e), _elapsed_ms(started))
        except AutomationError as e:
            return ExecutionResult(False, None, 0, 0, str(e), _elapsed_ms(started))

    def trigger(self, automation_id: int, trigger_data: Optional[Dict[str, Any]] = None,
                context: Optional[EventContext] = None) -> ExecutionResult:
        """Run an automation on the calling thread.

        Raises ConfigurationError before any row is written and
        PersistenceError when the execution row itself cannot be written.
        Once the run exists, an unexpected step exception or a failed write
        raises ExecutionAborted carrying the execution id.
        """
        run = self._prepare(automation_id, trigger_data, context)
        return self._run(run)

    def start(self, automation_id: int, trigger_data: Optional[Dict[str, Any]] = None,
              context: Optional[EventContext] = None) -> ExecutionHandle:
        """Create the execution row now and run its steps on a thread of its own."""
        if self._closed:
            raise ConfigurationError("Engine unavailable: shut down")
        run = self._prepare(automation_id, trigger_data, context)

        future: Future = Future()
        thread = threading.Thread(
            target=self._run_in_background,
            args=(run, future),
            daemon=True,
            name=f"Automation-{run.automation_id}-{run.execution_id}",
        )
        with self._tokens_lock:
            self._threads[run.execution_id] = thread
        thread.start()
        return ExecutionHandle(run.execution_id, future)

    def cancel(self, execution_id: int) -> bool:
        """Signal a running execution to stop at its next step boundary."""
        with self._tokens_lock:
            token = self._tokens.get(execution_id)
        if token is None:
            return False
        token.cancel()
        logger.info(f"Cancellation requested for execution {execution_id}",
                    execution_id=execution_id)
        return True

    def running_executions(self) -> List[int]:
        with self._tokens_lock:
            return sorted(self._tokens)

    def test_webhook(self, webhook_id: int, payload: Optional[Dict[str, Any]] = None,
                     context: Optional[EventContext] = None) -> InvocationResult:
        """Send a single, unretried request to a webhook.

        Writes no execution rows and never modifies the webhook.
        """
        try:
            with ExecutionStore.open(self.session_factory) as store:
                webhook = store.get_webhook(webhook_id)
                target = WebhookTarget.from_model(webhook) if webhook is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load webhook {webhook_id}: {e}", webhook_id=webhook_id)
            return InvocationResult(False, None, None, f"Failed to load webhook: {e}", 0, attempts=0)

        if target is None:
            return InvocationResult(False, None, None, WEBHOOK_NOT_FOUND, 0, attempts=0)

        return self.invoker.invoke(target, payload or {}, retry=False, context=context,
                                   delivery_type='test')

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Refuse new background runs; with ``wait``, join the ones in flight."""
        self._closed = True
        if not wait:
            return
        with self._tokens_lock:
            threads = list(self._threads.values())
        for thread in threads:
            thread.join(timeout)

    # -- run lifecycle ------------------------------------------------------

    def _prepare(self, automation_id: int, trigger_data: Optional[Dict[str, Any]],
                 context: Optional[EventContext]) -> _Run:
        started = time.monotonic()
        context = context or EventContext()
        trigger_data = trigger_data or {}

        try:
            with ExecutionStore.open(self.session_factory) as store:
                try:
                    automation = store.get_active_automation(automation_id)
                    if automation is None:
                        raise ConfigurationError(AUTOMATION_NOT_FOUND)
                    steps = [StepPlan.from_model(step) for step in store.get_active_steps(automation_id)]
                    if not steps:
                        raise ConfigurationError(NO_ACTIVE_STEPS)
                    automation_name = automation.name
                    trigger_type = automation.trigger_type
                except SQLAlchemyError as e:
                    raise PersistenceError(f"Failed to load automation {automation_id}: {e}") from e

                execution_id = store.create_execution(automation_id, trigger_data)
        except (ConfigurationError, PersistenceError) as e:
            logger.warning(f"Automation {automation_id} not started: {e}", automation_id=automation_id)
            self.event_logger.emit(
                'automation_failed', AUTOMATION_ACTIVITY,
                f"Automation {automation_id} Error",
                f"Automation execution failed: {e}",
                {'automation_id': automation_id, 'error_message': str(e),
                 'execution_time_ms': _elapsed_ms(started), 'success': False},
                context,
            )
            raise

        run = _Run(
            automation_id=automation_id,
            automation_name=automation_name,
            execution_id=execution_id,
            steps=steps,
            trigger_data=trigger_data,
            context=context,
            token=CancellationToken(),
            started=started,
        )
        with self._tokens_lock:
            self._tokens[execution_id] = run.token

        logger.log_execution_event('started', execution_id, automation_id, total_steps=len(steps))
        self.event_logger.emit(
            'automation_started', AUTOMATION_ACTIVITY,
            f"Automation {automation_name} Started",
            f"Automation {automation_name} started execution with {len(steps)} steps",
            {
                'automation_id': automation_id,
                'automation_name': automation_name,
                'execution_id': execution_id,
                'trigger_type': trigger_type,
                'total_steps': len(steps),
                'trigger_data': trigger_data,
            },
            context,
        )
        return run

    def _run_in_background(self, run: _Run, future: Future) -> None:
        if not future.set_running_or_notify_cancel():
            self._release(run.execution_id)
            return
        try:
            result = self._run(run)
        except ExecutionAborted as e:
            result = ExecutionResult(False, e.execution_id, e.completed_steps, e.total_steps,
                                     str(e), _elapsed_ms(run.started))
        except Exception as e:
            logger.exception(f"Background execution {run.execution_id} crashed",
                             execution_id=run.execution_id)
            future.set_exception(e)
            return
        future.set_result(result)

    def _run(self, run: _Run) -> ExecutionResult:
        completed = 0
        first_error: Optional[str] = None
        aborted = False
        outcomes: Dict[int, StepOutcome] = {}

        store: Optional[ExecutionStore] = None
        try:
            store = ExecutionStore.open(self.session_factory)
            for step in run.steps:
                if run.token.cancelled:
                    first_error = CANCELLED
                    aborted = True
                    break

                step_execution_id = store.create_step_execution(
                    run.execution_id, step.step_id, step.webhook.id)

                try:
                    outcome = self._run_step(run, step, outcomes)
                except Exception as e:
                    message = str(e) or e.__class__.__name__
                    logger.exception(
                        f"Step {step.step_order} of execution {run.execution_id} raised: {message}",
                        execution_id=run.execution_id, step_id=step.step_id)
                    store.finish_step_execution(step_execution_id, StepStatus.FAILED,
                                                error_message=message)
                    self._finalize(store, run, ExecutionStatus.FAILED, message, completed)
                    raise ExecutionAborted(message, run.execution_id, completed, len(run.steps)) from e

                store.finish_step_execution(
                    step_execution_id,
                    outcome.status,
                    response_status=outcome.status_code,
                    response_body=outcome.response_body,
                    error_message=outcome.error_message,
                    retry_count=outcome.retry_count,
                )
                outcomes[step.step_order] = outcome

                if outcome.status is StepStatus.COMPLETED:
                    completed += 1
                elif outcome.cancelled:
                    first_error = CANCELLED
                    aborted = True
                    break
                elif outcome.status is StepStatus.FAILED:
                    first_error = first_error or outcome.error_message or f"Step {step.step_order} failed"
                    if not step.continue_on_failure:
                        aborted = True
                        break

            success = not aborted and first_error is None
            return self._finalize(
                store, run,
                ExecutionStatus.COMPLETED if success else ExecutionStatus.FAILED,
                None if success else first_error,
                completed,
            )
        except (PersistenceError, SQLAlchemyError) as e:
            logger.error(f"Execution {run.execution_id} lost persistence: {e}",
                         execution_id=run.execution_id)
            if store is not None:
                self._finalize_quietly(store, run, str(e), completed)
            raise ExecutionAborted(str(e), run.execution_id, completed, len(run.steps)) from e
        finally:
            if store is not None:
                store.close()
            self._release(run.execution_id)

    def _run_step(self, run: _Run, step: StepPlan, outcomes: Dict[int, StepOutcome]) -> StepOutcome:
        if step.is_conditional:
            condition_context = {
                'trigger': run.trigger_data,
                'steps': {order: outcome.as_context() for order, outcome in outcomes.items()},
            }
            try:
                should_run = evaluate_condition(step.condition_config, condition_context)
            except ConditionError as e:
                return StepOutcome(StepStatus.FAILED, error_message=f"Invalid condition: {e}")

            if not should_run:
                self.event_logger.emit(
                    'automation_step_skipped', AUTOMATION_ACTIVITY,
                    f"Automation {run.automation_name} Step {step.step_order} Skipped",
                    f"Step {step.step_order} condition was not met",
                    {'automation_id': run.automation_id, 'execution_id': run.execution_id,
                     'step_id': step.step_id, 'step_order': step.step_order},
                    run.context,
                )
                return StepOutcome(StepStatus.SKIPPED)

        if step.delay_seconds > 0 and run.token.wait(step.delay_seconds):
            return StepOutcome(StepStatus.FAILED, error_message=CANCELLED, cancelled=True)

        result = self.invoker.invoke(
            step.webhook,
            run.trigger_data,
            retry=step.retry_on_failure,
            context=run.context,
            cancel_token=run.token,
            execution_id=run.execution_id,
        )
        return StepOutcome.from_invocation(result)

    def _finalize(self, store: ExecutionStore, run: _Run, status: ExecutionStatus,
                  error_message: Optional[str], completed: int) -> ExecutionResult:
        store.finish_execution(run.execution_id, status, error_message)

        duration_ms = _elapsed_ms(run.started)
        success = status is ExecutionStatus.COMPLETED
        total = len(run.steps)

        if self.metrics is not None:
            self.metrics.record_execution(status.value)
        logger.log_execution_event(status.value, run.execution_id, run.automation_id,
                                   completed_steps=completed, total_steps=total,
                                   duration_ms=duration_ms, error_message=error_message)
        self.event_logger.emit(
            'automation_executed' if success else 'automation_failed',
            AUTOMATION_ACTIVITY,
            f"Automation {run.automation_name} {'Completed' if success else 'Failed'}",
            f"Automation {run.automation_name} completed successfully in {duration_ms}ms"
            if success else f"Automation {run.automation_name} failed: {error_message}",
            {
                'automation_id': run.automation_id,
                'automation_name': run.automation_name,
                'execution_id': run.execution_id,
                'completed_steps': completed,
                'total_steps': total,
                'duration_ms': duration_ms,
                'error_message': error_message,
                'success': success,
            },
            run.context,
        )
        return ExecutionResult(success, run.execution_id, completed, total, error_message, duration_ms)

    def _finalize_quietly(self, store: ExecutionStore, run: _Run, error_message: str,
                          completed: int) -> None:
        """Best attempt at marking a run FAILED after its store already failed once."""
        try:
            self._finalize(store, run, ExecutionStatus.FAILED, error_message, completed)
        except PersistenceError as e:
            logger.error(f"Execution {run.execution_id} left in running state: {e}",
                         execution_id=run.execution_id)

    def _release(self, execution_id: int) -> None:
        with self._tokens_lock:
            self._tokens.pop(execution_id, None)
            self._threads.pop(execution_id, None)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
