"""Shared fakes for running the pipeline without a camera or model artifact."""

import numpy as np
import pytest

from roast_predictor.config import ModelConfig
from roast_predictor.Controllers.session_controller import SessionController
from roast_predictor.Drivers.mock_camera import MockCapture
from roast_predictor.Drivers.model_loader import ModelLoader


def _details(index, shape, dtype=np.float32, scale=None, zero_point=None):
    return {
        "index": index,
        "shape": np.array(shape, dtype=np.int32),
        "dtype": dtype,
        "quantization_parameters": {
            "scales": np.array([] if scale is None else [scale], dtype=np.float32),
            "zero_points": np.array([] if zero_point is None else [zero_point], dtype=np.int32),
        },
    }


class FakeInterpreter:
    """Stand-in for tflite.Interpreter."""

    def __init__(
        self,
        scores=(0.8, 0.05, 0.05, 0.1),
        input_shape=(1, 256, 256, 3),
        output_classes=4,
        input_dtype=np.float32,
        output_dtype=np.float32,
        input_quant=(None, None),
        output_quant=(None, None),
        invoke_error=None,
    ):
        self.scores = np.array(scores)
        self.input_shape = list(input_shape)
        self.output_classes = output_classes
        self.input_dtype = input_dtype
        self.output_dtype = output_dtype
        self.input_quant = input_quant
        self.output_quant = output_quant
        self.invoke_error = invoke_error
        self.allocated = 0
        self.invocations = 0
        self.last_input = None

    def allocate_tensors(self):
        self.allocated += 1

    def get_input_details(self):
        return [_details(0, self.input_shape, self.input_dtype, *self.input_quant)]

    def get_output_details(self):
        return [_details(1, [1, self.output_classes], self.output_dtype, *self.output_quant)]

    def resize_tensor_input(self, index, shape):
        self.input_shape = list(shape)

    def set_tensor(self, index, value):
        self.last_input = value

    def invoke(self):
        self.invocations += 1
        if self.invoke_error is not None:
            raise self.invoke_error

    def get_tensor(self, index):
        return np.array([self.scores], dtype=self.output_dtype)


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "coffee_roast_classifier.tflite"
    path.write_bytes(b"TFL3")
    return path


def make_loader(model_path, interpreter=None, **kwargs):
    interpreter = interpreter if interpreter is not None else FakeInterpreter(**kwargs)
    loader = ModelLoader(
        model_config=ModelConfig(model_path=str(model_path)),
        interpreter_factory=lambda model_path, num_threads: interpreter,
    )
    return loader, interpreter


@pytest.fixture
def fake_interpreter():
    return FakeInterpreter()


@pytest.fixture
def loader(model_file, fake_interpreter):
    loader, _ = make_loader(model_file, interpreter=fake_interpreter)
    return loader


@pytest.fixture
def camera():
    return MockCapture(resolution=(64, 48))


@pytest.fixture
def session(camera, loader):
    controller = SessionController(capture_source=camera, model_loader=loader)
    yield controller
    controller.teardown()


def rgb_image(width=32, height=24, value=None):
    if value is not None:
        return np.full((height, width, 3), value, dtype=np.uint8)
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
