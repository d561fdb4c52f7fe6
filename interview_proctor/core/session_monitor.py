"""
Session Monitor

Owns the explicit map of alert type -> DebounceStateMachine for one session
and turns classified observations into persisted alert events.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Any, List, Mapping, Optional, Sequence, Tuple

from .alerts import AlertSpec, Event, alert_message, build_alert_specs
from .debounce import DebounceStateMachine
from .event_store import EventSink
from .exceptions import SinkError
from .observation_classifier import ConditionSignal, ObservationClassifier
from ..utils.logger import get_logger

logger = get_logger(__name__)

AlertCallback = Callable[[Dict[str, Any]], None]


@dataclass
class TickResult:
    """Outcome of one processed observation."""
    events: List[Event] = field(default_factory=list)
    failed: List[Tuple[Event, SinkError]] = field(default_factory=list)

    @property
    def fired(self) -> bool:
        return bool(self.events)


class SessionMonitor:
    """Per-session debounce state and event emission."""

    def __init__(self, session_id: str, sink: EventSink,
                 classifier: Optional[ObservationClassifier] = None,
                 alert_specs: Optional[Sequence[AlertSpec]] = None,
                 on_alert: Optional[AlertCallback] = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the session monitor.

        Args:
            session_id: Session the events belong to
            sink: Event store that receives fired alerts
            classifier: Observation classifier (a default one is built if omitted)
            alert_specs: Alert type enumeration with timings
            on_alert: Callback invoked once per emitted event
            clock: Wall-clock source in epoch seconds
        """
        self.session_id = session_id
        self.sink = sink
        self.classifier = classifier or ObservationClassifier()
        self.on_alert = on_alert
        self.clock = clock
        self.lock = threading.RLock()

        specs = alert_specs if alert_specs is not None else build_alert_specs(
            target_objects=self.classifier.target_objects
        )
        self.specs: Tuple[AlertSpec, ...] = tuple(specs)
        self.machines: Dict[str, DebounceStateMachine] = {
            spec.alert_type: DebounceStateMachine.from_spec(spec) for spec in self.specs
        }

        self.total_fired = 0
        self.sink_failures = 0

    def process_observation(self, faces: Optional[Sequence[Mapping[str, Any]]],
                            detections: Optional[Sequence[Mapping[str, Any]]],
                            now: Optional[float] = None) -> TickResult:
        """
        Classify one frame's provider output and advance every state machine.

        Args:
            faces: Face landmark results (None when unavailable)
            detections: Object detections (None when unavailable)
            now: Tick time in epoch seconds (defaults to the clock)

        Returns:
            TickResult with the events fired on this tick
        """
        signals = self.classifier.classify(faces, detections)
        return self.process_signals(signals, now)

    def process_signals(self, signals: Mapping[str, ConditionSignal],
                        now: Optional[float] = None) -> TickResult:
        """Advance every state machine with already classified signals."""
        now = self.clock() if now is None else now
        result = TickResult()

        with self.lock:
            for spec in self.specs:
                signal = signals.get(spec.signal)
                value = signal.value if signal is not None else None
                machine = self.machines[spec.alert_type]

                if not machine.update(value, now):
                    continue

                details = dict(signal.details) if signal is not None else {}
                event = Event(
                    session_id=self.session_id,
                    alert_type=spec.alert_type,
                    timestamp=datetime.fromtimestamp(now, tz=timezone.utc),
                    details=details,
                )
                self._emit(event, result)

        return result

    def _emit(self, event: Event, result: TickResult) -> None:
        """Append the event and notify listeners. The FIRED transition stands even if the append fails."""
        self.total_fired += 1
        result.events.append(event)
        logger.log_alert(self.session_id, event.alert_type, dict(event.details))

        try:
            self.sink.append(event)
        except SinkError as e:
            self.sink_failures += 1
            result.failed.append((event, e))
            logger.log_sink_failure(self.session_id, event.alert_type, e)

        if self.on_alert is not None:
            payload = {
                'session_id': self.session_id,
                'alert_type': event.alert_type,
                'timestamp': event.timestamp.isoformat(),
                'message': alert_message(event.alert_type, event.details),
                'details': dict(event.details),
            }
            try:
                self.on_alert(payload)
            except Exception as e:
                logger.log_error_with_context(e, "on_alert callback")

    def states(self) -> Dict[str, str]:
        """Current state of every alert type."""
        with self.lock:
            return {alert_type: machine.state for alert_type, machine in self.machines.items()}

    def reset(self) -> None:
        """Release every pending and cooldown timer."""
        with self.lock:
            for machine in self.machines.values():
                machine.reset()
        logger.debug(f"Debounce timers released for session {self.session_id}")
