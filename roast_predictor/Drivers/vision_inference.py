"""
Roast Inference Engine

Consumes prepared tensors and returns the model's confidence vector, then
maps it onto the roast label table. Intermediate buffers (the input tensor
and the raw output) are released before predict() returns, on success and
on failure, so repeated predictions in one session do not accumulate memory.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..errors import InferenceFailure
from ..labels import CLASS_LABELS, ClassLabel
from .model_loader import RoastModel
from .preprocessing import Tensor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionResult:
    """
    Outcome of one prediction. Never mutated; replaced on each new prediction.

    Attributes:
        label: Winning roast label
        confidences: Score per label, in label-table order
        index: Position of label in the label table
    """
    label: ClassLabel
    confidences: Tuple[float, ...]
    index: int

    @property
    def confidence(self) -> float:
        return self.confidences[self.index]


def classify(
    scores: Sequence[float],
    labels: Sequence[ClassLabel] = CLASS_LABELS,
) -> PredictionResult:
    """
    Map a confidence vector onto the label table.

    argmax picks the label at the same position; ties resolve to the
    lowest index.

    Raises:
        InferenceFailure: If the vector length differs from the label count
    """
    vector = np.asarray(scores, dtype=np.float64).reshape(-1)
    if vector.size != len(labels):
        raise InferenceFailure(
            f"Confidence vector has {vector.size} entries, expected {len(labels)}"
        )
    if np.isnan(vector).any():
        raise InferenceFailure("Confidence vector contains NaN")

    idx = int(np.argmax(vector))  # first occurrence on ties
    return PredictionResult(
        label=labels[idx],
        confidences=tuple(float(v) for v in vector),
        index=idx,
    )


def top_k(
    result: PredictionResult,
    k: int = 3,
    labels: Sequence[ClassLabel] = CLASS_LABELS,
) -> List[dict]:
    """
    Rank labels by confidence for display.

    Returns:
        list: [{'label': str, 'confidence': float}, ...], highest first,
              ties kept in label-table order
    """
    order = sorted(range(len(result.confidences)), key=lambda i: -result.confidences[i])
    return [
        {'label': labels[i].display_name, 'confidence': result.confidences[i]}
        for i in order[:k]
    ]


class InferenceEngine:
    """Runs the roast model on a prepared tensor."""

    def __init__(self, labels: Sequence[ClassLabel] = CLASS_LABELS):
        self.labels = tuple(labels)
        self._prediction_count = 0

    def __repr__(self):
        return f"InferenceEngine(classes={len(self.labels)}, predictions={self._prediction_count})"

    def predict(self, model: Optional[RoastModel], tensor: Tensor) -> np.ndarray:
        """
        Run inference and return the confidence vector.

        The tensor is released before returning, whatever the outcome.

        Args:
            model: Loaded RoastModel
            tensor: Prepared input from Preprocessor.prepare()

        Returns:
            numpy.ndarray: float32 vector of length len(labels)

        Raises:
            InferenceFailure: If the forward pass fails or the output has the wrong length
        """
        output = None
        try:
            if model is None:
                raise InferenceFailure("Model not loaded")
            if tensor.shape != model.input_shape:
                raise InferenceFailure(
                    f"Tensor shape {tensor.shape} does not match model input {model.input_shape}"
                )

            output = model.forward(tensor.data)
            scores = np.array(output, dtype=np.float32).reshape(-1)
            if scores.size != len(self.labels):
                raise InferenceFailure(
                    f"Model returned {scores.size} scores, expected {len(self.labels)}"
                )

            self._prediction_count += 1
            return scores

        except InferenceFailure:
            raise
        except Exception as e:
            logger.error(f"Inference failed: {e}", exc_info=True)
            raise InferenceFailure(f"Forward pass failed: {e}") from e
        finally:
            tensor.release()
            del output

    def classify(self, scores: Sequence[float]) -> PredictionResult:
        """Map scores onto this engine's label table."""
        return classify(scores, self.labels)
