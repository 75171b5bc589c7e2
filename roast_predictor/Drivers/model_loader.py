"""
TFLite Model Loader

Loads the roast classification artifact once per session and exposes a
Loading / Ready / Failed lifecycle. Handles both float32 and quantized
(int8/uint8) models; quantization is hidden behind RoastModel.forward().
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

import numpy as np

from ..config import ModelConfig, DEFAULT_MODEL_CONFIG
from ..errors import ModelLoadFailure

try:
    import tflite_runtime.interpreter as tflite
    TFLITE_AVAILABLE = True
except ImportError:
    try:
        import tensorflow.lite as tflite
        TFLITE_AVAILABLE = True
    except ImportError:
        tflite = None
        TFLITE_AVAILABLE = False

logger = logging.getLogger(__name__)


class ModelStatus(Enum):
    """Model lifecycle."""
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


def _default_interpreter_factory(model_path: str, num_threads: int):
    if not TFLITE_AVAILABLE:
        raise ModelLoadFailure(
            "TFLite runtime not available. Install: pip install tflite-runtime"
        )
    return tflite.Interpreter(model_path=model_path, num_threads=num_threads)


def _quantization(details: dict) -> Tuple[float, int]:
    params = details.get("quantization_parameters", {})
    scales = params.get("scales", [])
    zero_points = params.get("zero_points", [])
    scale = float(scales[0]) if len(scales) else 1.0
    zero_point = int(zero_points[0]) if len(zero_points) else 0
    return scale, zero_point


class RoastModel:
    """
    Loaded classifier. Read-only after construction; shared by all
    predictions in a session.
    """

    def __init__(self, interpreter, input_details: dict, output_details: dict):
        self.interpreter = interpreter
        self._input_index = input_details["index"]
        self._output_index = output_details["index"]
        self.input_shape = tuple(int(d) for d in input_details["shape"])
        self.num_classes = int(output_details["shape"][-1])

        self._input_dtype = np.dtype(input_details["dtype"])
        self._output_dtype = np.dtype(output_details["dtype"])
        self._input_scale, self._input_zero_point = _quantization(input_details)
        self._output_scale, self._output_zero_point = _quantization(output_details)
        self.is_quantized = self._input_dtype in (np.int8, np.uint8)

    def __repr__(self):
        return (
            f"RoastModel(input_shape={self.input_shape}, "
            f"num_classes={self.num_classes}, quantized={self.is_quantized})"
        )

    def _quantize_input(self, batch: np.ndarray) -> np.ndarray:
        info = np.iinfo(self._input_dtype)
        q = np.round(batch / self._input_scale + self._input_zero_point)
        return np.clip(q, info.min, info.max).astype(self._input_dtype)

    def forward(self, batch: np.ndarray) -> np.ndarray:
        """
        Run one forward pass.

        Args:
            batch: float32 array matching input_shape, values in [0, 1]

        Returns:
            numpy.ndarray: float32 score vector for the single batch item
        """
        if self.interpreter is None:
            raise RuntimeError("Model has been disposed")

        if self.is_quantized:
            input_data = self._quantize_input(batch)
        else:
            input_data = batch.astype(self._input_dtype, copy=False)

        self.interpreter.set_tensor(self._input_index, input_data)
        self.interpreter.invoke()
        output = self.interpreter.get_tensor(self._output_index)

        scores = np.asarray(output[0], dtype=np.float32)
        if self._output_dtype in (np.int8, np.uint8):
            scores = (scores - self._output_zero_point) * self._output_scale
        return scores

    def dispose(self) -> None:
        """Drop the interpreter. Idempotent."""
        self.interpreter = None


class ModelLoader:
    """
    Loads the classification artifact exactly once per session.

    No automatic retries: after FAILED the caller may invoke load() again.
    After READY, load() returns the cached model.
    """

    def __init__(
        self,
        model_config: Optional[ModelConfig] = None,
        interpreter_factory: Optional[Callable[..., object]] = None,
    ):
        """
        Initialize model loader.

        Args:
            model_config: Artifact path and interpreter settings. Defaults to DEFAULT_MODEL_CONFIG.
            interpreter_factory: Callable(model_path=, num_threads=) -> TFLite Interpreter.
        """
        self.model_config = model_config if model_config is not None else DEFAULT_MODEL_CONFIG
        self.interpreter_factory = interpreter_factory or _default_interpreter_factory
        self.status = ModelStatus.NOT_LOADED
        self.model: Optional[RoastModel] = None
        self.last_error: Optional[Exception] = None
        # Bumped by dispose(); a load that started earlier drops its result
        self._generation = 0

    def __repr__(self):
        return f"ModelLoader(model_path={self.model_config.model_path!r}, status={self.status.value})"

    def load(self) -> RoastModel:
        """
        Load the model (or return the already loaded one).

        Returns:
            RoastModel: Ready model

        Raises:
            ModelLoadFailure: If the artifact is missing, unreadable, or of the wrong shape
        """
        if self.status == ModelStatus.READY and self.model is not None:
            return self.model

        self.status = ModelStatus.LOADING
        self.last_error = None
        generation = self._generation
        cfg = self.model_config

        try:
            model_file = Path(cfg.model_path)
            if not model_file.is_file():
                raise ModelLoadFailure(f"Model file not found: {cfg.model_path}")

            interpreter = self.interpreter_factory(
                model_path=str(model_file),
                num_threads=cfg.num_threads,
            )
            interpreter.allocate_tensors()

            input_details = interpreter.get_input_details()
            output_details = interpreter.get_output_details()
            if not input_details or not output_details:
                raise ModelLoadFailure("Could not read model input/output details")

            inp = input_details[0]
            shape = tuple(int(d) for d in inp["shape"])
            expected = (1, cfg.input_size, cfg.input_size, 3)
            if len(shape) != 4 or shape[1:] != expected[1:]:
                raise ModelLoadFailure(f"Model input shape {shape} does not match {expected}")
            if shape[0] != 1:
                interpreter.resize_tensor_input(inp["index"], list(expected))
                interpreter.allocate_tensors()
                inp = interpreter.get_input_details()[0]
                output_details = interpreter.get_output_details()

            out = output_details[0]
            if int(out["shape"][-1]) != cfg.num_classes:
                raise ModelLoadFailure(
                    f"Model outputs {int(out['shape'][-1])} classes, expected {cfg.num_classes}"
                )

            model = RoastModel(interpreter, inp, out)

        except ModelLoadFailure as e:
            logger.error(f"Failed to load model: {e}")
            self._fail(e, generation)
            raise
        except Exception as e:
            logger.error(f"Failed to load TFLite model: {e}", exc_info=True)
            self._fail(e, generation)
            raise ModelLoadFailure(f"Failed to load model from {cfg.model_path}: {e}") from e

        if generation != self._generation:
            model.dispose()
            logger.info("Model load finished after dispose, discarding")
            raise ModelLoadFailure("Model was disposed while loading")

        self.model = model
        self.status = ModelStatus.READY
        logger.info(f"TFLite model loaded: {cfg.model_path}, {self.model}")
        return self.model

    def _fail(self, error: Exception, generation: int) -> None:
        if generation != self._generation:
            return
        self.status = ModelStatus.FAILED
        self.model = None
        self.last_error = error

    def dispose(self) -> None:
        """Release the loaded model at session teardown."""
        self._generation += 1
        if self.model is not None:
            self.model.dispose()
            self.model = None
            logger.info("Model disposed")
        self.status = ModelStatus.NOT_LOADED
