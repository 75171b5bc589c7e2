"""Tests for the TFLite model loader lifecycle."""

from unittest.mock import patch

import numpy as np
import pytest

from roast_predictor.config import ModelConfig
from roast_predictor.Drivers.model_loader import ModelLoader, ModelStatus, RoastModel
from roast_predictor.errors import ModelLoadFailure

from conftest import FakeInterpreter, make_loader


class TestModelLoader:
    def test_load_success(self, model_file):
        loader, interpreter = make_loader(model_file)
        assert loader.status == ModelStatus.NOT_LOADED

        model = loader.load()

        assert loader.status == ModelStatus.READY
        assert model.input_shape == (1, 256, 256, 3)
        assert model.num_classes == 4
        assert interpreter.allocated == 1

    def test_load_is_cached(self, model_file):
        calls = []

        def factory(model_path, num_threads):
            calls.append((model_path, num_threads))
            return FakeInterpreter()

        loader = ModelLoader(ModelConfig(model_path=str(model_file), num_threads=2), factory)
        first = loader.load()
        second = loader.load()

        assert first is second
        assert calls == [(str(model_file), 2)]

    def test_missing_file_fails(self, tmp_path):
        loader, _ = make_loader(tmp_path / "missing.tflite")
        with pytest.raises(ModelLoadFailure):
            loader.load()
        assert loader.status == ModelStatus.FAILED
        assert loader.model is None

    def test_corrupt_artifact_fails(self, model_file):
        def factory(model_path, num_threads):
            raise ValueError("Model provided has model identifier 'TFL?'")

        loader = ModelLoader(ModelConfig(model_path=str(model_file)), factory)
        with pytest.raises(ModelLoadFailure) as exc_info:
            loader.load()
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert loader.status == ModelStatus.FAILED

    @pytest.mark.parametrize("shape", [(1, 224, 224, 3), (1, 256, 256, 1), (256, 256, 3)])
    def test_input_shape_mismatch_fails(self, model_file, shape):
        loader, _ = make_loader(model_file, input_shape=shape)
        with pytest.raises(ModelLoadFailure):
            loader.load()
        assert loader.status == ModelStatus.FAILED

    def test_output_class_mismatch_fails(self, model_file):
        loader, _ = make_loader(model_file, output_classes=5)
        with pytest.raises(ModelLoadFailure):
            loader.load()

    def test_dynamic_batch_is_resized(self, model_file):
        loader, interpreter = make_loader(model_file, input_shape=(-1, 256, 256, 3))
        model = loader.load()
        assert model.input_shape == (1, 256, 256, 3)
        assert interpreter.allocated == 2

    def test_reload_after_failure(self, model_file, tmp_path):
        interpreter = FakeInterpreter()
        missing = tmp_path / "later.tflite"
        loader = ModelLoader(
            ModelConfig(model_path=str(missing)),
            lambda model_path, num_threads: interpreter,
        )
        with pytest.raises(ModelLoadFailure):
            loader.load()

        missing.write_bytes(b"TFL3")
        loader.load()
        assert loader.status == ModelStatus.READY

    def test_dispose(self, model_file):
        loader, _ = make_loader(model_file)
        model = loader.load()
        loader.dispose()
        assert loader.model is None
        assert model.interpreter is None
        with pytest.raises(RuntimeError):
            model.forward(np.zeros((1, 256, 256, 3), dtype=np.float32))

    def test_dispose_during_load_drops_late_model(self, model_file):
        interpreter = FakeInterpreter()

        def factory(model_path, num_threads):
            # teardown lands while the interpreter is still being built
            loader.dispose()
            return interpreter

        loader = ModelLoader(ModelConfig(model_path=str(model_file)), factory)
        with patch.object(RoastModel, "dispose", autospec=True) as model_dispose:
            with pytest.raises(ModelLoadFailure):
                loader.load()

        model_dispose.assert_called_once()
        assert loader.model is None
        assert loader.status == ModelStatus.NOT_LOADED

    def test_failure_after_dispose_keeps_not_loaded(self, tmp_path):
        def factory(model_path, num_threads):
            loader.dispose()
            raise ValueError("truncated flatbuffer")

        path = tmp_path / "model.tflite"
        path.write_bytes(b"TFL3")
        loader = ModelLoader(ModelConfig(model_path=str(path)), factory)
        with pytest.raises(ModelLoadFailure):
            loader.load()
        assert loader.status == ModelStatus.NOT_LOADED
        assert loader.last_error is None
