"""
Monitoring Loop and Engine

MonitoringLoop drives one session: every tick it pulls the newest frame, asks
the signal providers for face landmarks and object detections (with a
bounded timeout), and feeds the result to the session's SessionMonitor.

ProctoringEngine is the control surface used by the capture and HTTP layers:
start/stop monitoring per session, alert listeners, and report queries.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, Future, TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .alerts import Event, parse_timestamp
from .event_store import EventSink, create_event_sink
from .exceptions import ProviderError
from .integrity_scoring import IntegrityScorer, Report, compute_session_stats
from .observation_classifier import ObservationClassifier
from .session_monitor import SessionMonitor, TickResult, AlertCallback
from .video_capture import FrameSource, PushFrameSource
from ..utils.config import config
from ..utils.identity import IdentityResolver
from ..utils.logger import get_logger, log_function_call

logger = get_logger(__name__)


def provider_failed(provider: Any) -> bool:
    """True for a provider that will never become ready, e.g. its model failed to load."""
    has_failed = getattr(provider, 'has_failed', None)
    return bool(has_failed is not None and has_failed())


class MonitoringLoop:
    """Fixed-cadence tick driver for one session."""

    def __init__(self, monitor: SessionMonitor, frame_source: FrameSource,
                 face_provider: Any = None, object_provider: Any = None,
                 interval: Optional[float] = None,
                 provider_timeout: Optional[float] = None,
                 face_lock: Optional[threading.Lock] = None,
                 object_lock: Optional[threading.Lock] = None,
                 owned_providers: Sequence[Any] = ()):
        """
        Initialize the loop.

        Args:
            monitor: Session monitor that owns the debounce state
            frame_source: Source of the newest frame
            face_provider: Object with is_ready() and detect(frame) -> faces
            object_provider: Object with is_ready() and detect(frame) -> detections
            interval: Seconds between ticks
            provider_timeout: Seconds to wait for provider results per tick
            face_lock: Held around face_provider.detect(); pass the same lock to
                every loop that shares the provider
            object_lock: Held around object_provider.detect()
            owned_providers: Providers created for this session only; closed on stop
        """
        self.monitor = monitor
        self.frame_source = frame_source
        self.face_provider = face_provider
        self.object_provider = object_provider
        self.interval = config.tick_interval if interval is None else interval
        self.provider_timeout = config.provider_timeout if provider_timeout is None else provider_timeout
        self.face_lock = face_lock or threading.Lock()
        self.object_lock = object_lock or threading.Lock()
        self.owned_providers = list(owned_providers)
        self._failed_logged: Set[str] = set()

        self._stop_event = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._inflight: Optional[Future] = None

        self.ticks_processed = 0
        self.ticks_skipped = 0

    @property
    def session_id(self) -> str:
        return self.monitor.session_id

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        """Begin ticking on a background thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(max_workers=1,
                                            thread_name_prefix=f"providers-{self.session_id}")
        self._thread = threading.Thread(target=self._run, name=f"monitor-{self.session_id}", daemon=True)
        self._thread.start()
        logger.log_session_state(self.session_id, "started")

    def stop(self) -> bool:
        """
        Stop ticking and release every debounce timer of the session.

        Idempotent and safe to call from any thread.

        Returns:
            True if the loop was running
        """
        was_running = self.is_running
        self._stop_event.set()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=config.monitoring.stop_join_timeout_sec)
            if thread.is_alive():
                logger.warning(f"Monitoring thread for {self.session_id} did not exit in time")
        self._thread = None

        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        self._inflight = None

        # Timers are reset under the monitor lock, after any in-flight tick
        self.monitor.reset()
        self.frame_source.close()
        self._close_owned_providers()

        if was_running:
            logger.log_session_state(self.session_id, "stopped")
        return was_running

    def _run(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            self.tick()

            next_tick += self.interval
            now = time.monotonic()
            if now > next_tick:
                # Overran the cadence: drop the missed ticks instead of queueing them
                missed = int((now - next_tick) // self.interval) + 1
                self.ticks_skipped += missed
                next_tick += missed * self.interval
                logger.log_tick_skipped(self.session_id, f"overrun ({missed} dropped)")

            self._stop_event.wait(max(0.0, next_tick - time.monotonic()))

    def _close_owned_providers(self) -> None:
        for provider, lock in ((self.face_provider, self.face_lock),
                               (self.object_provider, self.object_lock)):
            if provider is None or provider not in self.owned_providers:
                continue
            close = getattr(provider, 'close', None)
            if close is None:
                continue
            try:
                with lock:
                    close()
            except Exception as e:
                logger.log_error_with_context(e, f"closing provider for session {self.session_id}")

    def _usable(self, provider: Any, kind: str) -> bool:
        if provider is None:
            return False
        if provider_failed(provider):
            if kind not in self._failed_logged:
                self._failed_logged.add(kind)
                logger.warning(f"{kind} provider unavailable for session {self.session_id}, "
                               "its signals are treated as unknown")
            return False
        return True

    def providers_ready(self) -> bool:
        """
        True when every working provider is ready.

        A provider that has failed for good is left out, so the other one keeps
        monitoring. With no working provider at all, nothing is ready.
        """
        providers = [provider for provider, kind in ((self.face_provider, "Face"),
                                                     (self.object_provider, "Object"))
                     if self._usable(provider, kind)]
        return bool(providers) and all(provider.is_ready() for provider in providers)

    def tick(self, now: Optional[float] = None) -> Optional[TickResult]:
        """
        Run one monitoring tick.

        Args:
            now: Tick time in epoch seconds (defaults to the monitor clock)

        Returns:
            TickResult, or None when the tick was a no-op or was skipped
        """
        if not self._tick_lock.acquire(blocking=False):
            self.ticks_skipped += 1
            logger.log_tick_skipped(self.session_id, "previous tick still running")
            return None

        try:
            if self._stop_event.is_set():
                return None

            frame = self.frame_source.latest_frame()
            if frame is None or not self.providers_ready():
                return None

            observation = self._observe(frame)
            if observation is None:
                return None
            faces, detections = observation

            with self.monitor.lock:
                if self._stop_event.is_set():
                    return None
                result = self.monitor.process_observation(faces, detections, now)

            self.ticks_processed += 1
            return result

        except Exception as e:
            logger.log_error_with_context(e, f"monitoring tick for session {self.session_id}")
            return None
        finally:
            self._tick_lock.release()

    def _observe(self, frame: Any) -> Optional[Tuple[Optional[List], Optional[List]]]:
        """Run the providers with a bounded wait. Returns None when the tick must be skipped."""
        if self._executor is None:
            return self._run_providers(frame)

        if self._inflight is not None and not self._inflight.done():
            self.ticks_skipped += 1
            logger.log_tick_skipped(self.session_id, "provider call still in flight")
            return None

        self._inflight = self._executor.submit(self._run_providers, frame)
        try:
            observation = self._inflight.result(timeout=self.provider_timeout)
        except FutureTimeout:
            self.ticks_skipped += 1
            logger.log_tick_skipped(self.session_id, "provider timeout")
            return None

        self._inflight = None
        return observation

    def _run_providers(self, frame: Any) -> Tuple[Optional[List], Optional[List]]:
        """Each provider failure only blanks that provider's signals."""
        faces = self._detect(self.face_provider, self.face_lock, "Face", frame)
        detections = self._detect(self.object_provider, self.object_lock, "Object", frame)
        return faces, detections

    def _detect(self, provider: Any, lock: threading.Lock, kind: str, frame: Any) -> Optional[List]:
        if not self._usable(provider, kind):
            return None
        try:
            with lock:
                return provider.detect(frame)
        except ProviderError as e:
            logger.warning(f"{kind} provider failed for session {self.session_id}: {e}")
            return None


class ProctoringEngine:
    """Start/stop monitoring per session, dispatch alerts, and compute reports."""

    def __init__(self, sink: Optional[EventSink] = None,
                 face_provider: Any = None, object_provider: Any = None,
                 identity_resolver: Optional[IdentityResolver] = None,
                 scorer: Optional[IntegrityScorer] = None,
                 on_alert: Optional[AlertCallback] = None,
                 frame_source_factory: Optional[Callable[[str], FrameSource]] = None,
                 classifier: Optional[ObservationClassifier] = None,
                 clock: Callable[[], float] = time.time,
                 interval: Optional[float] = None,
                 provider_timeout: Optional[float] = None,
                 face_provider_factory: Optional[Callable[[str], Any]] = None,
                 object_provider_factory: Optional[Callable[[str], Any]] = None):
        """
        Initialize the engine.

        Args:
            sink: Event store (defaults to the configured backend)
            face_provider: Face landmark provider shared by all sessions; calls
                into it are serialized across sessions
            object_provider: Object detection provider shared by all sessions
            identity_resolver: Candidate name lookup for reports
            scorer: Integrity scorer
            on_alert: Listener called once per emitted alert
            frame_source_factory: Builds a frame source for a session
                (defaults to a PushFrameSource)
            classifier: Observation classifier shared by all sessions
            clock: Wall-clock source in epoch seconds
            interval: Seconds between ticks
            provider_timeout: Seconds to wait for providers per tick
            face_provider_factory: Builds a face provider for one session;
                takes precedence over face_provider
            object_provider_factory: Builds an object provider for one session;
                takes precedence over object_provider
        """
        self.sink = sink if sink is not None else create_event_sink()
        self.face_provider = face_provider
        self.object_provider = object_provider
        self.face_provider_factory = face_provider_factory
        self.object_provider_factory = object_provider_factory
        self._face_lock = threading.Lock()
        self._object_lock = threading.Lock()
        self.identity = identity_resolver or IdentityResolver()
        self.scorer = scorer or IntegrityScorer()
        self.classifier = classifier or ObservationClassifier()
        self.frame_source_factory = frame_source_factory
        self.clock = clock
        self.interval = interval
        self.provider_timeout = provider_timeout

        self._listeners: List[AlertCallback] = []
        if on_alert is not None:
            self._listeners.append(on_alert)

        self._loops: Dict[str, MonitoringLoop] = {}
        self._lock = threading.Lock()

    # Alert listeners

    def add_alert_listener(self, callback: AlertCallback) -> None:
        with self._lock:
            self._listeners.append(callback)

    def remove_alert_listener(self, callback: AlertCallback) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _dispatch_alert(self, alert: Dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(alert)
            except Exception as e:
                logger.log_error_with_context(e, "alert listener")

    # Monitoring control

    def create_session_monitor(self, session_id: str) -> SessionMonitor:
        return SessionMonitor(
            session_id,
            self.sink,
            classifier=self.classifier,
            on_alert=self._dispatch_alert,
            clock=self.clock,
        )

    @log_function_call
    def start_monitoring(self, session_id: str, frame_source: Optional[FrameSource] = None) -> MonitoringLoop:
        """
        Begin monitoring a session. Returns the running loop if already started.
        """
        if not session_id:
            raise ValueError("session_id is required")

        with self._lock:
            loop = self._loops.get(session_id)
            if loop is not None and loop.is_running:
                return loop

            if frame_source is None:
                frame_source = (self.frame_source_factory(session_id)
                                if self.frame_source_factory else PushFrameSource())

            owned: List[Any] = []
            face_provider, face_lock = self._session_provider(
                session_id, self.face_provider_factory, self.face_provider, self._face_lock, owned)
            object_provider, object_lock = self._session_provider(
                session_id, self.object_provider_factory, self.object_provider, self._object_lock, owned)

            loop = MonitoringLoop(
                self.create_session_monitor(session_id),
                frame_source,
                face_provider=face_provider,
                object_provider=object_provider,
                interval=self.interval,
                provider_timeout=self.provider_timeout,
                face_lock=face_lock,
                object_lock=object_lock,
                owned_providers=owned,
            )
            self._loops[session_id] = loop

        loop.start()
        return loop

    @staticmethod
    def _session_provider(session_id: str, factory: Optional[Callable[[str], Any]], shared: Any,
                          shared_lock: threading.Lock, owned: List[Any]) -> Tuple[Any, Optional[threading.Lock]]:
        if factory is None:
            return shared, shared_lock
        provider = factory(session_id)
        if provider is not None:
            owned.append(provider)
        return provider, None

    def provider_status(self) -> Dict[str, bool]:
        """Whether face and object signals are available to new sessions."""
        return {
            'face': self._provider_available(self.face_provider_factory, self.face_provider),
            'objects': self._provider_available(self.object_provider_factory, self.object_provider),
        }

    @staticmethod
    def _provider_available(factory: Optional[Callable[[str], Any]], shared: Any) -> bool:
        if factory is not None:
            return True
        return shared is not None and shared.is_ready()

    def stop_monitoring(self, session_id: str) -> bool:
        """Stop monitoring a session. Idempotent; returns True if it was being monitored."""
        with self._lock:
            loop = self._loops.pop(session_id, None)
        if loop is None:
            return False
        loop.stop()
        return True

    def stop_all(self) -> None:
        with self._lock:
            session_ids = list(self._loops.keys())
        for session_id in session_ids:
            self.stop_monitoring(session_id)

    def is_monitoring(self, session_id: str) -> bool:
        with self._lock:
            loop = self._loops.get(session_id)
        return loop is not None and loop.is_running

    def active_sessions(self) -> List[str]:
        with self._lock:
            return sorted(sid for sid, loop in self._loops.items() if loop.is_running)

    def get_loop(self, session_id: str) -> Optional[MonitoringLoop]:
        with self._lock:
            return self._loops.get(session_id)

    def push_frame(self, session_id: str, frame: Any) -> bool:
        """Hand a frame to a session fed by a PushFrameSource."""
        loop = self.get_loop(session_id)
        if loop is None or not isinstance(loop.frame_source, PushFrameSource):
            return False
        loop.frame_source.push(frame)
        return True

    # Event log and reports

    def record_event(self, session_id: str, alert_type: str,
                     details: Optional[Mapping[str, Any]] = None,
                     timestamp: Any = None) -> Event:
        """Append an externally detected event to the session log."""
        if not session_id or not alert_type:
            raise ValueError("session_id and alert_type are required")

        event = Event(
            session_id=session_id,
            alert_type=alert_type,
            timestamp=parse_timestamp(timestamp) if timestamp is not None
            else datetime.fromtimestamp(self.clock(), tz=timezone.utc),
            details=details or {},
        )
        self.sink.append(event)
        return event

    def compute_report(self, session_id: str) -> Report:
        """
        Integrity report computed fresh from the full event log.

        Raises:
            SessionNotFoundError: If the session has no events
        """
        events = self.sink.list_by_session(session_id)
        return self.scorer.compute_report(session_id, events, self.identity.name_for(session_id))

    def session_stats(self, session_id: str, now: Any = None) -> Dict[str, Any]:
        """Live statistics for a session."""
        events = self.sink.list_by_session(session_id)
        now = parse_timestamp(now) if now is not None else datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        stats = compute_session_stats(events, now)
        stats['is_monitoring'] = self.is_monitoring(session_id)
        return stats

    def list_sessions(self) -> List[str]:
        return self.sink.list_sessions()
