"""
Pipeline controller: the state machine behind the capture/train/predict UI.

Phases:
    LOADING -> AWAITING_CAMERA -> READY <-> COLLECTING
    READY -> TRAINING -> PREDICTING

All collected samples, model handles and schedulers are owned by one
controller instance. Triggers are plain method calls made by the UI layer
(preview window keys, web routes); a trigger fired in the wrong phase raises
InvalidTransitionError and changes nothing.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Mapping, Optional

import torch

from inference.backend import FeatureExtractor
from inference.head import ClassifierHead
from models.config import Config
from models.status import PipelinePhase, PipelineStatus, Prediction
from observation.base import ObservationSource
from .capture import CaptureScheduler
from .errors import CameraError, InsufficientDataError, InvalidTransitionError, LoadError
from .predict import InferenceScheduler
from .samples import SampleBuffer
from .scheduler import ThreadTicker, Ticker
from .training import TrainingJob, check_trainable

StatusObserver = Callable[[PipelineStatus], None]


class PipelineController:
    """
    Owns the pipeline state and exposes the UI triggers.

    Example:
        controller = PipelineController(config, source, extractor)
        controller.load_extractor()
        controller.enable_camera()
        controller.start_capture(0); ...; controller.stop_capture()
        controller.train_and_predict()
    """

    def __init__(
        self,
        config: Config,
        source: ObservationSource,
        extractor: FeatureExtractor,
        ticker_factory: Optional[Callable[[str], Ticker]] = None,
        background_training: bool = True,
    ):
        self.config = config
        self.categories: List[str] = list(config.categories)
        self.source = source
        self.extractor = extractor
        self.background_training = background_training
        ticker_factory = ticker_factory or ThreadTicker

        self.buffer = SampleBuffer(len(self.categories))
        self.capture = CaptureScheduler(
            source,
            extractor,
            self.buffer,
            period=config.capture.period,
            ticker=ticker_factory("capture"),
            on_sample=self._on_counts,
        )
        self.inference = InferenceScheduler(
            source,
            extractor,
            self.categories,
            period=config.inference.period,
            ticker=ticker_factory("inference"),
            on_prediction=self._on_prediction,
        )
        self.head: Optional[ClassifierHead] = None
        self.training_error: Optional[BaseException] = None

        # Transition lock; tick callbacks only ever take the status lock.
        self._lock = threading.RLock()
        self._status_lock = threading.RLock()
        self._camera_lock = threading.Lock()
        self._phase = PipelinePhase.LOADING
        self._status = PipelineStatus(PipelinePhase.LOADING, "Loading model, please wait")
        self._observers: List[StatusObserver] = []
        self._training_thread: Optional[threading.Thread] = None

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> PipelinePhase:
        return self._phase

    @property
    def status(self) -> PipelineStatus:
        with self._status_lock:
            return self._status

    def add_observer(self, observer: StatusObserver) -> None:
        """Register a status callback. Observers must not fire triggers."""
        self._observers.append(observer)

    def _publish(self, status: PipelineStatus) -> None:
        with self._status_lock:
            self._status = status
            for observer in self._observers:
                try:
                    observer(status)
                except Exception as e:
                    logging.warning(f"Status observer error: {e}")

    def _set_phase(self, phase: PipelinePhase, message: str, **fields) -> None:
        previous = self._phase
        self._phase = phase
        if previous != phase:
            logging.info(f"Pipeline phase: {previous.value} -> {phase.value}")
        self._publish(PipelineStatus(phase, message, **fields))

    def _require(self, action: str, *allowed: PipelinePhase) -> None:
        if self._phase not in allowed:
            raise InvalidTransitionError(action, self._phase)

    def named_counts(self, counts: Optional[Mapping[int, int]] = None) -> Dict[str, int]:
        counts = counts if counts is not None else self.buffer.counts_by_class()
        return {name: counts.get(i, 0) for i, name in enumerate(self.categories)}

    def _counts_message(self, named: Dict[str, int]) -> str:
        return "; ".join(f"{name} samples: {n}" for name, n in named.items())

    def _on_counts(self, counts: Mapping[int, int]) -> None:
        if self._phase != PipelinePhase.COLLECTING:
            return
        named = self.named_counts(counts)
        self._publish(PipelineStatus(PipelinePhase.COLLECTING, self._counts_message(named), counts=named))

    def _on_progress(self, progress: float) -> None:
        self._publish(PipelineStatus(
            PipelinePhase.TRAINING,
            f"Training model, progress {int(round(progress * 100))}%",
            progress=progress,
        ))

    def _on_prediction(self, prediction: Prediction) -> None:
        if self._phase != PipelinePhase.PREDICTING:
            return
        self._publish(PipelineStatus(
            PipelinePhase.PREDICTING,
            f"Prediction: {prediction.category}, {prediction.confidence_pct}% confidence",
            prediction=prediction,
        ))

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def load_extractor(self) -> None:
        """LOADING -> AWAITING_CAMERA. On LoadError stay in LOADING and re-raise."""
        with self._lock:
            self._require("load the model", PipelinePhase.LOADING)
            try:
                self.extractor.load()
            except LoadError as e:
                logging.error(f"Feature extractor load failed: {e}")
                self._set_phase(PipelinePhase.LOADING, f"Model failed to load: {e}", error=str(e))
                raise
            self._set_phase(PipelinePhase.AWAITING_CAMERA, "Model loaded, enable the camera")

    def enable_camera(self) -> None:
        """
        Open the frame source; the first frame moves the pipeline to READY.

        The source is opened outside the transition lock, serialized by its
        own lock.

        Raises:
            CameraError: The source failed to open; the phase stays AWAITING_CAMERA.
        """
        with self._camera_lock:
            with self._lock:
                self._require("enable the camera", PipelinePhase.AWAITING_CAMERA)
            if not self.source.is_open:
                try:
                    self.source.open()
                except Exception as e:
                    logging.error(f"Camera failed to open: {e}")
                    with self._lock:
                        self._set_phase(
                            PipelinePhase.AWAITING_CAMERA, f"Camera failed to open: {e}", error=str(e)
                        )
                    raise CameraError(f"Camera failed to open: {e}") from e
            frame_data = self.source.read()
        if frame_data is not None:
            self.notify_frame_available()
        else:
            logging.info("Camera enabled, waiting for the first frame")

    def notify_frame_available(self) -> None:
        """AWAITING_CAMERA -> READY. Later calls are no-ops."""
        with self._lock:
            if self._phase == PipelinePhase.AWAITING_CAMERA:
                self._set_phase(PipelinePhase.READY, "Collect images", counts=self.named_counts())
            elif self._phase == PipelinePhase.LOADING:
                raise InvalidTransitionError("accept camera frames", self._phase)

    def start_capture(self, class_index: int) -> None:
        """READY/COLLECTING -> COLLECTING for class_index (replaces any active class)."""
        with self._lock:
            self._require("start capture", PipelinePhase.READY, PipelinePhase.COLLECTING)
            self.capture.start(class_index)
            named = self.named_counts()
            self._set_phase(
                PipelinePhase.COLLECTING,
                f"Collecting {self.categories[class_index]}: {self._counts_message(named)}",
                counts=named,
            )

    def stop_capture(self) -> None:
        """COLLECTING -> READY. A no-op in READY."""
        with self._lock:
            if self._phase == PipelinePhase.READY:
                return
            self._require("stop capture", PipelinePhase.COLLECTING)
            self.capture.stop()
            named = self.named_counts()
            self._set_phase(PipelinePhase.READY, self._counts_message(named), counts=named)

    def train_and_predict(self) -> None:
        """
        READY -> TRAINING, then PREDICTING once the job completes.

        Raises:
            InsufficientDataError: Not enough samples; the phase stays READY.
        """
        with self._lock:
            self._require("train", PipelinePhase.READY)
            try:
                check_trainable(self.buffer, self.config.training.require_all_classes)
            except InsufficientDataError as e:
                named = self.named_counts()
                self._set_phase(PipelinePhase.READY, f"Cannot train yet: {e}", counts=named, error=str(e))
                raise

            self.training_error = None
            self._set_phase(PipelinePhase.TRAINING, "Training model, progress 0%", progress=0.0)

            if not self.background_training:
                self._run_training()
                return

            self._training_thread = threading.Thread(
                target=self._run_training, name="training", daemon=True
            )
            self._training_thread.start()

    def _build_head(self) -> ClassifierHead:
        embedding_dim = self.buffer.embedding_dim or self.extractor.embedding_dim
        return ClassifierHead(
            embedding_dim,
            len(self.categories),
            hidden_units=self.config.training.hidden_units,
        )

    def _run_training(self) -> None:
        training_cfg = self.config.training
        job = TrainingJob(
            learning_rate=training_cfg.learning_rate,
            require_all_classes=training_cfg.require_all_classes,
            seed=training_cfg.seed,
        )
        try:
            if training_cfg.seed is not None:
                torch.manual_seed(training_cfg.seed)
            head = job.run(
                self.buffer,
                self._build_head(),
                epochs=training_cfg.epochs,
                batch_size=training_cfg.batch_size,
                on_progress=self._on_progress,
            )
        except Exception as e:
            logging.error(f"Training failed: {e}")
            self.training_error = e
            with self._lock:
                self._set_phase(
                    PipelinePhase.READY,
                    f"Training failed: {e}",
                    counts=self.named_counts(),
                    error=str(e),
                )
            return

        with self._lock:
            self.head = head
            self.inference.head = head
            self._set_phase(PipelinePhase.PREDICTING, "Training complete, predicting")
            self.inference.start()

    def wait_for_training(self, timeout: Optional[float] = None) -> bool:
        """Join the background training job. True once no job is running."""
        thread = self._training_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def shutdown(self) -> None:
        """Stop loops, let a running training job finish, release the camera."""
        self.capture.stop()
        self.inference.stop()
        self.wait_for_training(timeout=30.0)
        if self.source.is_open:
            self.source.close()
        logging.info("Pipeline controller shut down")
