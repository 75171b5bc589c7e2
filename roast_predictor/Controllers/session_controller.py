"""
Session Controller - Capture -> Preprocess -> Inference State Machine

Owns the single SessionState record and mediates every call into the
capture source, preprocessor, model loader and inference engine.

Architecture:
    - Phases: IDLE -> CAPTURING -> CAPTURED -> PREDICTING -> RESULTED, plus ERRORED.
    - One capture/predict/load operation in flight at a time; `busy` gates re-entrancy.
    - Suspending operations are split into begin_*() -> run_*() -> complete_*()/fail_*().
      begin_* and complete_* run on the thread that owns the session; run_* may run
      on a worker. Each ticket carries the state token it started under, and a
      completion whose token is stale (session reset or retaken since) is discarded.
    - Drivers raise RoastPredictorError subclasses; this controller is the boundary
      that turns them into ErrorInfo.
"""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Type

from ..Drivers.model_loader import ModelLoader, ModelStatus, RoastModel
from ..Drivers.preprocessing import Preprocessor
from ..Drivers.vision_inference import InferenceEngine, PredictionResult
from ..errors import (
    InferenceFailure,
    InvalidImage,
    ModelLoadFailure,
    NoDeviceAvailable,
    RoastPredictorError,
)
from ..interfaces.capture_interface import CaptureSource, RawImage

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    """Position of the session in the capture/predict flow."""
    IDLE = "idle"
    CAPTURING = "capturing"
    CAPTURED = "captured"
    PREDICTING = "predicting"
    RESULTED = "resulted"
    ERRORED = "errored"


class CaptureStatus(Enum):
    """What the capture UI should show."""
    IDLE = "idle"
    CAMERA_ACTIVE = "camera_active"
    IMAGE_CAPTURED = "image_captured"


@dataclass(frozen=True)
class ErrorInfo:
    """User-facing error."""
    kind: str
    message: str
    detail: str = ""

    @classmethod
    def from_exception(cls, error: RoastPredictorError) -> "ErrorInfo":
        return cls(kind=error.kind, message=error.user_message, detail=str(error))


@dataclass
class SessionState:
    """
    The single mutable record driving the UI.

    Only SessionController mutates it; readers get copies from snapshot().
    """
    phase: SessionPhase = SessionPhase.IDLE
    model_status: ModelStatus = ModelStatus.NOT_LOADED
    capture_status: CaptureStatus = CaptureStatus.IDLE
    busy: bool = False
    image: Optional[RawImage] = None
    prediction: Optional[PredictionResult] = None
    error: Optional[ErrorInfo] = None
    token: int = 0


@dataclass(frozen=True)
class Ticket:
    """Handle for an in-flight operation."""
    operation: str
    token: int
    image: Optional[RawImage] = None


OP_LOAD = "load"
OP_OPEN = "open"
OP_CAPTURE = "capture"
OP_PREDICT = "predict"

_RESETTABLE_OPS = (OP_OPEN, OP_CAPTURE, OP_PREDICT)


def _as_pipeline_error(error: Exception, default: Type[RoastPredictorError]) -> RoastPredictorError:
    if isinstance(error, RoastPredictorError):
        return error
    logger.error(f"Unexpected {type(error).__name__}: {error}", exc_info=error)
    wrapped = default(str(error))
    wrapped.__cause__ = error
    return wrapped


class SessionController:
    """
    Orchestrates model loading, capture, preprocessing and inference for
    one user session.
    """

    def __init__(
        self,
        capture_source: CaptureSource,
        model_loader: Optional[ModelLoader] = None,
        preprocessor: Optional[Preprocessor] = None,
        engine: Optional[InferenceEngine] = None,
        on_change: Optional[Callable[[SessionState], None]] = None,
    ):
        """
        Initialize session controller.

        Args:
            capture_source: Acquisition variant (stream, snapshot, file, mock)
            model_loader: Loader for the roast model. Defaults to ModelLoader().
            preprocessor: RawImage -> Tensor stage. Defaults to Preprocessor().
            engine: Inference engine. Defaults to InferenceEngine().
            on_change: Optional callable(snapshot) invoked after every transition.
        """
        self.capture_source = capture_source
        self.model_loader = model_loader or ModelLoader()
        self.preprocessor = preprocessor or Preprocessor()
        self.engine = engine or InferenceEngine()
        self._listeners: List[Callable[[SessionState], None]] = []
        if on_change is not None:
            self._listeners.append(on_change)

        self._state = SessionState()
        self._model: Optional[RoastModel] = None
        self._inflight: Optional[str] = None
        self._closed = False

    def __repr__(self):
        s = self._state
        return (
            f"SessionController(phase={s.phase.value}, model={s.model_status.value}, "
            f"capture={s.capture_status.value}, busy={s.busy})"
        )

    # -- State access --------------------------------------------------------

    def snapshot(self) -> SessionState:
        """Copy of the current state."""
        return dataclasses.replace(self._state)

    @property
    def state(self) -> SessionState:
        return self.snapshot()

    def add_listener(self, callback: Callable[[SessionState], None]) -> None:
        self._listeners.append(callback)

    def _set_inflight(self, operation: Optional[str]) -> None:
        self._inflight = operation
        self._state.busy = operation is not None

    def _notify(self) -> None:
        snap = self.snapshot()
        for callback in self._listeners:
            try:
                callback(snap)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    def _enter(self, phase: SessionPhase) -> None:
        if phase != self._state.phase:
            logger.info(f"Session: {self._state.phase.value} -> {phase.value}")
        self._state.phase = phase

    def _invalidate(self) -> int:
        self._state.token += 1
        return self._state.token

    def _is_current(self, ticket: Ticket, phase: Optional[SessionPhase] = None) -> bool:
        if self._closed or ticket.token != self._state.token or self._inflight != ticket.operation:
            logger.info(f"Discarding stale {ticket.operation} completion (token {ticket.token})")
            return False
        if phase is not None and self._state.phase != phase:
            logger.info(f"Discarding {ticket.operation} completion in phase {self._state.phase.value}")
            return False
        return True

    def _release_source(self) -> None:
        try:
            self.capture_source.release()
        except Exception as e:
            logger.error(f"Error releasing capture source: {e}", exc_info=True)

    # -- Model lifecycle -----------------------------------------------------

    def begin_load(self) -> Optional[Ticket]:
        """
        Start loading the model.

        Returns:
            Ticket, or None if the model is already ready or another operation is in flight
        """
        if self._closed or self._state.busy or self._state.model_status == ModelStatus.READY:
            return None
        self._state.model_status = ModelStatus.LOADING
        self._set_inflight(OP_LOAD)
        self._notify()
        return Ticket(operation=OP_LOAD, token=self._state.token)

    def run_load(self, ticket: Ticket) -> RoastModel:
        """Load the artifact. Safe to call from a worker thread."""
        return self.model_loader.load()

    def complete_load(self, ticket: Ticket, model: RoastModel) -> bool:
        if self._closed or self._inflight != OP_LOAD:
            logger.info("Discarding model load completion")
            return False
        self._model = model
        self._state.model_status = ModelStatus.READY
        self._set_inflight(None)
        self._notify()
        return True

    def fail_load(self, ticket: Ticket, error: Exception) -> bool:
        if self._closed or self._inflight != OP_LOAD:
            return False
        err = _as_pipeline_error(error, ModelLoadFailure)
        logger.error(f"Model load failed: {err}")
        self._model = None
        self._state.model_status = ModelStatus.FAILED
        self._state.error = ErrorInfo.from_exception(err)
        self._state.prediction = None
        self._set_inflight(None)
        self._notify()
        return True

    def load_model(self) -> bool:
        """
        Load the model synchronously.

        Returns:
            bool: True if the model is ready
        """
        ticket = self.begin_load()
        if ticket is None:
            return self._state.model_status == ModelStatus.READY
        try:
            model = self.run_load(ticket)
        except Exception as e:
            self.fail_load(ticket, e)
            return False
        return self.complete_load(ticket, model)

    # -- Capture -------------------------------------------------------------

    def start_capture(self) -> bool:
        """
        Open the capture source (camera or file selection).

        Allowed from IDLE, CAPTURED, RESULTED and ERRORED; any held image,
        prediction and error are discarded.

        Returns:
            bool: True if the source is active, False if rejected or failed
        """
        if self._closed:
            return False
        if self._state.busy:
            logger.warning("start_capture rejected: operation in flight")
            return False
        if self._state.phase == SessionPhase.CAPTURING and self.capture_source.is_active:
            return True

        self._invalidate()
        self._state.image = None
        self._state.prediction = None
        self._state.error = None
        self._enter(SessionPhase.CAPTURING)
        self._set_inflight(OP_OPEN)

        try:
            if self.capture_source.is_active:
                self._release_source()
            self.capture_source.open()
        except Exception as e:
            err = _as_pipeline_error(e, NoDeviceAvailable)
            logger.error(f"Capture source failed to open: {err}")
            self._release_source()
            self._state.capture_status = CaptureStatus.IDLE
            self._state.error = ErrorInfo.from_exception(err)
            self._enter(SessionPhase.ERRORED)
            self._set_inflight(None)
            self._notify()
            return False

        self._state.capture_status = CaptureStatus.CAMERA_ACTIVE
        self._set_inflight(None)
        self._notify()
        return True

    def begin_capture(self) -> Optional[Ticket]:
        """
        Trigger a still capture.

        Returns:
            Ticket, or None if not CAPTURING or an operation is in flight
        """
        if self._closed or self._state.busy or self._state.phase != SessionPhase.CAPTURING:
            logger.warning(f"capture rejected in phase {self._state.phase.value}")
            return None
        self._set_inflight(OP_CAPTURE)
        self._notify()
        return Ticket(operation=OP_CAPTURE, token=self._state.token)

    def run_capture(self, ticket: Ticket) -> RawImage:
        """Produce the still. Safe to call from a worker thread."""
        return self.capture_source.produce_still_image()

    def complete_capture(self, ticket: Ticket, image: RawImage) -> bool:
        if not self._is_current(ticket, SessionPhase.CAPTURING):
            return False
        self._release_source()
        self._state.image = image
        self._state.prediction = None
        self._state.capture_status = CaptureStatus.IMAGE_CAPTURED
        self._enter(SessionPhase.CAPTURED)
        self._set_inflight(None)
        self._notify()
        return True

    def fail_capture(self, ticket: Ticket, error: Exception) -> bool:
        if not self._is_current(ticket, SessionPhase.CAPTURING):
            return False
        err = _as_pipeline_error(error, InvalidImage)
        logger.error(f"Capture failed: {err}")
        self._release_source()
        self._state.image = None
        self._state.capture_status = CaptureStatus.IDLE
        self._state.error = ErrorInfo.from_exception(err)
        self._enter(SessionPhase.ERRORED)
        self._set_inflight(None)
        self._notify()
        return True

    def capture_image(self) -> bool:
        """
        Capture a still synchronously.

        Returns:
            bool: True if an image is now held
        """
        ticket = self.begin_capture()
        if ticket is None:
            return False
        try:
            image = self.run_capture(ticket)
        except Exception as e:
            self.fail_capture(ticket, e)
            return False
        return self.complete_capture(ticket, image)

    # -- Prediction ----------------------------------------------------------

    def can_predict(self) -> bool:
        s = self._state
        return (
            not self._closed
            and not s.busy
            and s.model_status == ModelStatus.READY
            and self._model is not None
            and s.image is not None
            and s.phase in (SessionPhase.CAPTURED, SessionPhase.RESULTED, SessionPhase.ERRORED)
        )

    def begin_predict(self) -> Optional[Ticket]:
        """
        Start a prediction on the held image.

        Rejected (state untouched, engine not invoked) while busy, when the
        model is not ready, or when no image is held.

        Returns:
            Ticket, or None if rejected
        """
        if not self.can_predict():
            logger.warning(
                f"predict rejected: phase={self._state.phase.value}, busy={self._state.busy}, "
                f"model={self._state.model_status.value}, image={self._state.image is not None}"
            )
            return None

        token = self._invalidate()
        self._state.prediction = None
        self._state.error = None
        self._enter(SessionPhase.PREDICTING)
        self._set_inflight(OP_PREDICT)
        self._notify()
        return Ticket(operation=OP_PREDICT, token=token, image=self._state.image)

    def run_prediction(self, ticket: Ticket) -> PredictionResult:
        """
        Preprocess and classify the ticket's image. Does not touch session
        state, so it is safe to call from a worker thread.

        Raises:
            InvalidImage: If the image cannot be preprocessed
            InferenceFailure: If the forward pass fails
        """
        with self.preprocessor.prepare(ticket.image) as tensor:
            scores = self.engine.predict(self._model, tensor)
        return self.engine.classify(scores)

    def complete_predict(self, ticket: Ticket, result: PredictionResult) -> bool:
        if not self._is_current(ticket, SessionPhase.PREDICTING):
            return False
        self._state.prediction = result
        self._enter(SessionPhase.RESULTED)
        self._set_inflight(None)
        logger.info(
            f"Prediction: {result.label.display_name} ({result.confidence:.2f}) "
            f"scores={[round(c, 3) for c in result.confidences]}"
        )
        self._notify()
        return True

    def fail_predict(self, ticket: Ticket, error: Exception) -> bool:
        if not self._is_current(ticket, SessionPhase.PREDICTING):
            return False
        err = _as_pipeline_error(error, InferenceFailure)
        logger.error(f"Prediction failed: {err}")
        self._state.prediction = None
        self._state.error = ErrorInfo.from_exception(err)
        self._enter(SessionPhase.ERRORED)
        self._set_inflight(None)
        self._notify()
        return True

    def predict(self) -> Optional[PredictionResult]:
        """
        Predict synchronously.

        Returns:
            PredictionResult, or None if rejected or failed
        """
        ticket = self.begin_predict()
        if ticket is None:
            return None
        try:
            result = self.run_prediction(ticket)
        except Exception as e:
            self.fail_predict(ticket, e)
            return None
        if not self.complete_predict(ticket, result):
            return None
        return result

    # -- Reset / teardown ----------------------------------------------------

    def reset(self) -> None:
        """
        Return to IDLE, discarding image, prediction and error, and closing
        an active camera. In-flight capture/predict results become stale.
        Calling reset() on an idle session changes nothing.
        """
        s = self._state
        idle = (
            s.phase == SessionPhase.IDLE
            and s.image is None
            and s.prediction is None
            and s.error is None
            and self._inflight not in _RESETTABLE_OPS
            and not self.capture_source.is_active
        )
        if idle:
            return

        self._release_source()
        self._invalidate()
        s.image = None
        s.prediction = None
        s.error = None
        s.capture_status = CaptureStatus.IDLE
        if self._inflight in _RESETTABLE_OPS:
            self._set_inflight(None)
        self._enter(SessionPhase.IDLE)
        self._notify()

    def use_capture_source(self, source: CaptureSource) -> bool:
        """
        Switch acquisition variant (e.g. camera -> file upload).

        Returns:
            bool: False if an operation is in flight
        """
        if self._state.busy:
            logger.warning("Cannot switch capture source while busy")
            return False
        self._release_source()
        self.capture_source = source
        if self._state.phase == SessionPhase.CAPTURING:
            self._state.capture_status = CaptureStatus.IDLE
            self._invalidate()
            self._enter(SessionPhase.IDLE)
        logger.info(f"Capture source switched to {source!r}")
        self._notify()
        return True

    def teardown(self) -> None:
        """
        Release the camera and dispose the model. Pending completions are
        discarded. Idempotent.
        """
        self._release_source()
        if self._closed:
            return
        self._closed = True
        self._invalidate()
        self._model = None
        try:
            self.model_loader.dispose()
        except Exception as e:
            logger.error(f"Error disposing model: {e}", exc_info=True)
        logger.info("Session torn down")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures teardown."""
        try:
            self.teardown()
        except Exception as e:
            logger.error(f"Error during session teardown: {e}", exc_info=True)
