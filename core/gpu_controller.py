# -*- coding: utf-8 -*-
"""
Discrete GPU lifecycle controller.

A background thread periodically opens a driver session, re-derives the GPU
state from scratch and publishes an immutable GPUStatus via the `refreshed`
signal. Absence of hardware, an unpowered GPU and driver faults all map to a
valid state; only `stop()`/`dispose()` end the loop.
"""
import sys
import threading
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from .qt import QObject, Signal

from .capability_cache import CapabilityCache, GPU_CAPABILITY_CACHE
from .gpu_driver import NvmlDriverSession, GPUDriverError, GPUNotPoweredError
from .models import BoundProcess, GPUState, GPUStatus
from .wmi_probe import has_dedicated_gpu
from tools.device_commands import restart_pnp_device, kill_process_tree
from config.settings import (
    GPU_REFRESH_DELAY_S, GPU_REFRESH_INTERVAL_S, GPU_STOP_TIMEOUT_S, GPU_REFRESH_THREAD_NAME,
    GPU_LABEL_POWERED_ON, GPU_LABEL_POWERED_OFF, GPU_LABEL_UNKNOWN
)


@dataclass(frozen=True)
class _Derived:
    """Everything one refresh learns; installed atomically under the lock."""
    state: GPUState
    performance_state: Optional[str] = None
    processes: Tuple[BoundProcess, ...] = ()
    device_name: Optional[str] = None
    instance_id: Optional[str] = None


class GPUController(QObject):
    """
    Polls the discrete GPU and tracks its lifecycle state.

    Collaborators are injected so the state machine can run without NVIDIA
    hardware:
      driver_factory: returns a new driver session per refresh.
      hybrid_probe: zero-argument callable, True if the machine has a dual-GPU setup.
      device_restarter: callable(instance_id) -> bool.
      process_killer: callable(BoundProcess); raises on failure.
    """

    # Emitted with a GPUStatus after every refresh
    refreshed = Signal(object)

    def __init__(self,
                 driver_factory: Callable[[], Any] = NvmlDriverSession,
                 hybrid_probe: Callable[[], bool] = has_dedicated_gpu,
                 capability_cache: CapabilityCache = GPU_CAPABILITY_CACHE,
                 device_restarter: Callable[[str], bool] = restart_pnp_device,
                 process_killer: Optional[Callable[[BoundProcess], None]] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._driver_factory = driver_factory
        self._hybrid_probe = hybrid_probe
        self._capability_cache = capability_cache
        self._device_restarter = device_restarter
        self._process_killer = process_killer or (lambda process: kill_process_tree(process.pid))

        self._lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._is_disposed = False

        self._state = GPUState.UNKNOWN
        self._performance_state: Optional[str] = None
        self._processes: Tuple[BoundProcess, ...] = ()
        self._device_name: Optional[str] = None
        self._instance_id: Optional[str] = None

    # --- Capability ---
    def is_supported(self) -> bool:
        """Whether this machine has a usable discrete NVIDIA GPU. Cached for a TTL."""
        return self._capability_cache.get_or_probe(self._probe_capability)

    def invalidate_capability_cache(self):
        """Call after any change that can alter GPU capability, e.g. a hybrid-mode toggle."""
        self._capability_cache.invalidate()
        print("GPU capability cache invalidated; next check will re-probe.")

    def _probe_capability(self) -> bool:
        session = self._driver_factory()
        try:
            session.initialize()
            return session.get_device() is not None
        except Exception:
            # A driver that cannot be reached does not prove the GPU is absent
            return self._has_hybrid_graphics()
        finally:
            self._unload(session)

    def _has_hybrid_graphics(self) -> bool:
        try:
            return bool(self._hybrid_probe())
        except Exception as e:
            print(f"Hybrid graphics probe raised: {e}", file=sys.stderr)
            return False

    # --- State ---
    @property
    def is_started(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def get_last_known_state(self) -> GPUState:
        with self._lock:
            return self._state

    def get_last_known_status(self) -> GPUStatus:
        with self._lock:
            return self._status_locked()

    def _status_locked(self) -> GPUStatus:
        return GPUStatus(self._state, self._performance_state, self._processes, self._device_name)

    def refresh_now(self) -> GPUStatus:
        """Runs one synchronous refresh and publishes the result."""
        with self._lock:
            derived = self._derive()
            self._install_locked(derived)
            status = self._status_locked()
        self.refreshed.emit(status)
        return status

    def _install_locked(self, derived: _Derived):
        if derived.state != self._state:
            print(f"GPU state: {self._state.name} -> {derived.state.name}"
                  + (f" ({derived.performance_state})" if derived.performance_state else ""))
        self._state = derived.state
        self._performance_state = derived.performance_state
        self._processes = derived.processes
        self._instance_id = derived.instance_id
        if derived.device_name is not None:
            self._device_name = derived.device_name

    # --- Derivation ---
    def _derive(self) -> _Derived:
        session = self._driver_factory()
        try:
            try:
                session.initialize()
            except Exception:
                return self._degraded()
            try:
                return self._read_state(session)
            except Exception as e:
                print(f"GPU refresh failed: {e}", file=sys.stderr)
                return self._degraded()
        finally:
            self._unload(session)

    def _degraded(self) -> _Derived:
        """Maps an unreachable driver to PoweredOff (dual-GPU machine) or NotFound."""
        if self._has_hybrid_graphics():
            return _Derived(GPUState.POWERED_OFF, GPU_LABEL_POWERED_OFF)
        return _Derived(GPUState.NVIDIA_GPU_NOT_FOUND)

    def _read_state(self, session: Any) -> _Derived:
        device = session.get_device()
        if device is None:
            return _Derived(GPUState.NVIDIA_GPU_NOT_FOUND)

        try:
            device_name = session.get_device_name(device)
        except Exception:
            device_name = None

        try:
            performance_state = f"{GPU_LABEL_POWERED_ON}, P{session.get_performance_state(device)}"
        except GPUNotPoweredError:
            return _Derived(GPUState.POWERED_OFF, GPU_LABEL_POWERED_OFF, device_name=device_name)
        except Exception as e:
            print(f"GPU performance state unavailable: {e}", file=sys.stderr)
            performance_state = GPU_LABEL_UNKNOWN

        instance_id = session.get_platform_id(device)
        if not instance_id:
            raise GPUDriverError("GPU platform instance id is empty")

        processes = tuple(session.get_bound_processes(device))

        if session.is_display_connected(device):
            return _Derived(GPUState.MONITOR_CONNECTED, performance_state, processes, device_name)
        if processes:
            return _Derived(GPUState.ACTIVE, performance_state, processes, device_name, instance_id)
        return _Derived(GPUState.INACTIVE, performance_state, (), device_name, instance_id)

    @staticmethod
    def _unload(session: Any):
        try:
            session.unload()
        except Exception as e:
            print(f"GPU driver unload error (ignored): {e}", file=sys.stderr)

    # --- Periodic loop ---
    def start(self, delay: float = GPU_REFRESH_DELAY_S, interval: float = GPU_REFRESH_INTERVAL_S):
        """Starts the refresh loop. Does nothing if it is already running."""
        with self._lifecycle_lock:
            if self._is_disposed or self.is_started:
                return
            stop_event = threading.Event()
            thread = threading.Thread(target=self._refresh_loop, args=(stop_event, delay, interval),
                                      name=GPU_REFRESH_THREAD_NAME, daemon=True)
            self._stop_event = stop_event
            self._thread = thread
            print(f"Starting GPU refresh loop [delay={delay}s, interval={interval}s].")
            thread.start()

    def stop(self, wait_for_finish: bool = False, timeout: float = GPU_STOP_TIMEOUT_S) -> bool:
        """
        Signals the refresh loop to stop.

        Args:
            wait_for_finish: Block until the in-flight refresh exits, up to `timeout`.

        Returns:
            False if waiting was requested and the loop did not exit in time.
        """
        with self._lifecycle_lock:
            stop_event, thread = self._stop_event, self._thread
            self._stop_event = None
            self._thread = None

        if stop_event is not None:
            stop_event.set()

        finished = True
        if wait_for_finish and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            finished = not thread.is_alive()
            if not finished:
                print(f"GPU refresh loop did not stop within {timeout}s.", file=sys.stderr)
        return finished

    def _refresh_loop(self, stop_event: threading.Event, delay: float, interval: float):
        if stop_event.wait(delay):
            return
        while not stop_event.is_set():
            try:
                self.refresh_now()
            except Exception as e:
                print(f"Error in GPU refresh loop: {e}", file=sys.stderr)
            if interval <= 0 or stop_event.wait(interval):
                break

    # --- Actions ---
    def restart_device(self) -> bool:
        """Restarts the GPU. Valid only while Active or Inactive with a known instance id."""
        with self._lock:
            if self._state not in (GPUState.ACTIVE, GPUState.INACTIVE) or not self._instance_id:
                print(f"GPU restart skipped [state={self._state.name}, instance_id={self._instance_id}].")
                return False
            try:
                return bool(self._device_restarter(self._instance_id))
            except Exception as e:
                print(f"GPU restart failed for {self._instance_id}: {e}", file=sys.stderr)
                return False

    def kill_bound_processes(self) -> int:
        """
        Kills every process bound to the GPU. A failed kill is logged and the
        remaining processes are still attempted.

        Returns:
            Number of processes killed.
        """
        with self._lock:
            if self._state not in (GPUState.ACTIVE, GPUState.INACTIVE) or not self._instance_id:
                print(f"GPU process kill skipped [state={self._state.name}, instance_id={self._instance_id}].")
                return 0
            killed = 0
            for process in self._processes:
                try:
                    self._process_killer(process)
                    killed += 1
                except Exception as e:
                    print(f"Couldn't kill process [pid={process.pid}, name={process.name}]: {e}", file=sys.stderr)
            return killed

    # --- Teardown ---
    def dispose(self):
        """Stops the loop with a bounded wait and drops all subscribers. Safe to call repeatedly."""
        with self._lifecycle_lock:
            if self._is_disposed:
                return
            self._is_disposed = True
        self.stop(wait_for_finish=True)
        # PySide warns instead of raising when there is nothing to disconnect
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            try:
                self.refreshed.disconnect()
            except (RuntimeError, TypeError):
                pass
