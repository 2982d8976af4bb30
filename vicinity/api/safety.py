"""Safety check-in timer API."""

from fastapi import APIRouter, Depends

from vicinity.core.deps import get_current_user, get_engine, http_error
from vicinity.core.errors import EngineError
from vicinity.models.user import User
from vicinity.schemas.safety import SafetyTimerCreate, SafetyTimerOut, SafetyTimerState
from vicinity.services.engine import Engine
from vicinity.services.safety_timer import TimerView

router = APIRouter(prefix="/location/safety-timer", tags=["safety"])


def _timer_out(view: TimerView) -> SafetyTimerOut:
    return SafetyTimerOut(
        checkin_id=view.checkin_id,
        active=view.active,
        duration_minutes=view.duration_minutes,
        deadline=view.deadline,
        remaining_seconds=view.remaining_seconds(),
        outcome=view.outcome,
        incident_id=view.incident_id,
    )


def _state(view: TimerView | None) -> SafetyTimerState:
    if view is None:
        return SafetyTimerState(active=False)
    return SafetyTimerState(active=view.active, timer=_timer_out(view))


@router.post("", response_model=SafetyTimerState)
def start_timer(
    data: SafetyTimerCreate,
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Arm a check-in timer (1 minute to 24 hours). Replaces a running timer."""
    try:
        view = engine.timers.arm(current_user.id, data.duration_minutes)
    except EngineError as e:
        raise http_error(e)
    return _state(view)


@router.post("/check-in", response_model=SafetyTimerState)
def check_in(
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """I'm safe. Stops the running timer; a no-op when none is running."""
    view = engine.timers.check_in(current_user.id)
    return SafetyTimerState(active=False, timer=_timer_out(view) if view else None)


@router.delete("", response_model=SafetyTimerState)
def cancel_timer(
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    view = engine.timers.cancel(current_user.id)
    return SafetyTimerState(active=False, timer=_timer_out(view) if view else None)


@router.get("", response_model=SafetyTimerState)
def get_timer(
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    return _state(engine.timers.status(current_user.id))
