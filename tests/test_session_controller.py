"""Tests for the session state machine."""

from unittest.mock import patch

import numpy as np
import pytest

from roast_predictor.config import ModelConfig
from roast_predictor.Controllers.session_controller import (
    CaptureStatus,
    SessionController,
    SessionPhase,
)
from roast_predictor.Drivers.file_capture import FileCapture
from roast_predictor.Drivers.mock_camera import MockCapture
from roast_predictor.Drivers.model_loader import ModelLoader, ModelStatus
from roast_predictor.errors import DevicePermissionDenied, InvalidImage, NoDeviceAvailable
from roast_predictor.interfaces.capture_interface import RawImage
from roast_predictor.labels import RoastLevel

from conftest import FakeInterpreter, make_loader


class DeniedCamera(MockCapture):
    def open(self):
        raise DevicePermissionDenied("user dismissed the permission prompt")


class MissingCamera(MockCapture):
    def open(self):
        raise NoDeviceAvailable("no camera")


class FlakyCamera(MockCapture):
    def produce_still_image(self):
        self.release()
        raise InvalidImage("device closed mid-capture")


class EmptyFrameCamera(MockCapture):
    def produce_still_image(self):
        self.release()
        return RawImage(pixels=np.zeros((0, 0, 3), dtype=np.uint8), source=self.name)


def _captured(session):
    assert session.load_model()
    assert session.start_capture()
    assert session.capture_image()
    return session


class TestModelLifecycle:
    def test_initial_state(self, session):
        state = session.snapshot()
        assert state.phase == SessionPhase.IDLE
        assert state.model_status == ModelStatus.NOT_LOADED
        assert state.capture_status == CaptureStatus.IDLE
        assert not state.busy
        assert state.image is None and state.prediction is None and state.error is None

    def test_load_success(self, session):
        assert session.load_model()
        assert session.state.model_status == ModelStatus.READY
        assert not session.state.busy

    def test_load_marks_loading_while_in_flight(self, session):
        ticket = session.begin_load()
        assert session.state.model_status == ModelStatus.LOADING
        assert session.state.busy
        session.complete_load(ticket, session.run_load(ticket))
        assert session.state.model_status == ModelStatus.READY
        assert not session.state.busy

    def test_scenario_d_load_failure_blocks_predict(self, tmp_path, camera):
        loader, interpreter = make_loader(tmp_path / "missing.tflite")
        session = SessionController(capture_source=camera, model_loader=loader)

        assert not session.load_model()
        state = session.state
        assert state.model_status == ModelStatus.FAILED
        assert state.error.kind == "ModelLoadFailure"

        assert session.start_capture()
        assert session.capture_image()
        with patch.object(session.engine, "predict") as engine_predict:
            assert session.predict() is None
        engine_predict.assert_not_called()
        assert interpreter.invocations == 0
        assert session.state.phase == SessionPhase.CAPTURED


class TestCaptureFlow:
    def test_start_capture_activates_camera(self, session, camera):
        assert session.start_capture()
        state = session.state
        assert state.phase == SessionPhase.CAPTURING
        assert state.capture_status == CaptureStatus.CAMERA_ACTIVE
        assert camera.is_active

    def test_capture_holds_image_and_releases_camera(self, session, camera):
        _captured(session)
        state = session.state
        assert state.phase == SessionPhase.CAPTURED
        assert state.capture_status == CaptureStatus.IMAGE_CAPTURED
        assert state.image.pixels.shape == (48, 64, 3)
        assert not camera.is_active

    def test_scenario_c_permission_denied(self, loader):
        camera = DeniedCamera()
        session = SessionController(capture_source=camera, model_loader=loader)

        assert not session.start_capture()
        state = session.state
        assert state.phase == SessionPhase.ERRORED
        assert state.error.kind == "DevicePermissionDenied"
        assert state.capture_status == CaptureStatus.IDLE
        assert not state.busy
        assert not camera.is_active

    def test_no_device_is_distinct_error(self, loader):
        session = SessionController(capture_source=MissingCamera(), model_loader=loader)
        session.start_capture()
        assert session.state.error.kind == "NoDeviceAvailable"

    def test_capture_failure(self, loader):
        camera = FlakyCamera()
        session = SessionController(capture_source=camera, model_loader=loader)
        session.start_capture()

        assert not session.capture_image()
        state = session.state
        assert state.phase == SessionPhase.ERRORED
        assert state.error.kind == "InvalidImage"
        assert state.capture_status == CaptureStatus.IDLE
        assert state.image is None
        assert not camera.is_active

    def test_errored_allows_new_capture(self, loader):
        session = SessionController(capture_source=DeniedCamera(), model_loader=loader)
        session.start_capture()
        session.use_capture_source(MockCapture(resolution=(8, 8)))

        assert session.start_capture()
        assert session.state.error is None
        assert session.state.phase == SessionPhase.CAPTURING

    def test_capture_rejected_unless_capturing(self, session):
        assert not session.capture_image()
        assert session.state.phase == SessionPhase.IDLE

    def test_start_capture_rejected_while_busy(self, session):
        session.start_capture()
        ticket = session.begin_capture()
        assert ticket is not None
        assert not session.start_capture()
        assert session.state.busy

    def test_file_upload_flow(self, session, tmp_path):
        from PIL import Image

        path = tmp_path / "beans.jpg"
        Image.new("RGB", (50, 40), (90, 60, 30)).save(path)
        source = FileCapture()

        assert session.use_capture_source(source)
        assert session.start_capture()
        source.select(path)
        assert session.capture_image()
        assert session.state.image.source == "file"

    def test_file_decode_failure(self, session, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"\x89PNG broken")
        session.use_capture_source(FileCapture(path))
        session.start_capture()

        assert not session.capture_image()
        assert session.state.error.kind == "ImageDecodeFailure"
        assert session.state.capture_status == CaptureStatus.IDLE


class TestPrediction:
    def test_scenario_a_dark(self, session):
        _captured(session)
        result = session.predict()

        assert result.label.name == RoastLevel.DARK
        state = session.state
        assert state.phase == SessionPhase.RESULTED
        assert state.prediction == result
        assert state.error is None
        assert not state.busy

    def test_scenario_b_all_tied_is_dark(self, model_file, camera):
        loader, _ = make_loader(model_file, scores=(0.25, 0.25, 0.25, 0.25))
        session = _captured(SessionController(capture_source=camera, model_loader=loader))

        assert session.predict().label.name == RoastLevel.DARK

    def test_scenario_e_predict_while_busy_rejected(self, session):
        _captured(session)
        ticket = session.begin_predict()
        assert ticket is not None
        before = session.snapshot()

        with patch.object(session.engine, "predict") as engine_predict:
            assert session.predict() is None
            assert session.begin_predict() is None
        engine_predict.assert_not_called()
        assert session.snapshot() == before

        session.complete_predict(ticket, session.run_prediction(ticket))
        assert session.state.phase == SessionPhase.RESULTED

    def test_predict_without_image_rejected(self, session):
        session.load_model()
        before = session.snapshot()
        assert session.predict() is None
        assert session.snapshot() == before

    def test_inference_failure_keeps_image_and_allows_retry(self, session, fake_interpreter):
        _captured(session)
        fake_interpreter.invoke_error = RuntimeError("shape mismatch in kernel")

        assert session.predict() is None
        state = session.state
        assert state.phase == SessionPhase.ERRORED
        assert state.error.kind == "InferenceFailure"
        assert state.prediction is None
        assert state.image is not None
        assert not state.busy

        fake_interpreter.invoke_error = None
        assert session.predict() is not None
        assert session.state.error is None

    def test_invalid_image_surfaces_as_error(self, loader):
        session = SessionController(capture_source=EmptyFrameCamera(), model_loader=loader)
        _captured(session)

        assert session.predict() is None
        assert session.state.error.kind == "InvalidImage"
        assert session.state.phase == SessionPhase.ERRORED
        assert not session.state.busy

    def test_repredict_replaces_result(self, session, fake_interpreter):
        _captured(session)
        first = session.predict()
        fake_interpreter.scores = np.array([0.1, 0.1, 0.1, 0.7])
        second = session.predict()

        assert first.label.name == RoastLevel.DARK
        assert second.label.name == RoastLevel.MEDIUM
        assert session.state.prediction is second


class TestResetAndStaleness:
    def test_capture_then_reset_round_trip(self, session):
        _captured(session)
        session.reset()

        state = session.state
        assert state.phase == SessionPhase.IDLE
        assert state.capture_status == CaptureStatus.IDLE
        assert state.image is None
        assert state.prediction is None
        assert state.error is None

    def test_reset_is_idempotent(self, session):
        _captured(session)
        session.predict()
        session.reset()
        once = session.snapshot()
        session.reset()
        assert session.snapshot() == once

    def test_reset_closes_active_camera(self, session, camera):
        session.start_capture()
        session.reset()
        assert not camera.is_active
        assert session.state.phase == SessionPhase.IDLE

    def test_reset_clears_error(self, loader):
        session = SessionController(capture_source=DeniedCamera(), model_loader=loader)
        session.start_capture()
        session.reset()
        assert session.state.error is None
        assert session.state.phase == SessionPhase.IDLE

    def test_stale_prediction_after_reset_is_discarded(self, session):
        _captured(session)
        ticket = session.begin_predict()
        result = session.run_prediction(ticket)

        session.reset()
        assert not session.state.busy
        assert not session.complete_predict(ticket, result)

        state = session.state
        assert state.phase == SessionPhase.IDLE
        assert state.prediction is None

    def test_stale_prediction_does_not_overwrite_newer_one(self, session, fake_interpreter):
        _captured(session)
        old_ticket = session.begin_predict()
        old_result = session.run_prediction(old_ticket)

        session.reset()
        session.start_capture()
        session.capture_image()
        fake_interpreter.scores = np.array([0.0, 0.0, 1.0, 0.0])
        newer = session.predict()

        assert not session.complete_predict(old_ticket, old_result)
        assert not session.fail_predict(old_ticket, RuntimeError("late"))
        assert session.state.prediction is newer
        assert newer.label.name == RoastLevel.LIGHT

    def test_stale_capture_after_reset_is_discarded(self, session):
        session.start_capture()
        ticket = session.begin_capture()
        image = session.run_capture(ticket)

        session.reset()
        assert not session.complete_capture(ticket, image)
        assert session.state.image is None

    def test_start_capture_from_resulted_discards_prediction(self, session):
        _captured(session)
        session.predict()
        assert session.start_capture()
        state = session.state
        assert state.phase == SessionPhase.CAPTURING
        assert state.prediction is None and state.image is None


class TestTeardown:
    def test_teardown_releases_camera_and_model(self, session, camera, loader):
        session.load_model()
        session.start_capture()
        session.teardown()

        assert not camera.is_active
        assert loader.model is None
        assert not session.start_capture()

    def test_completion_after_teardown_discarded(self, session):
        _captured(session)
        ticket = session.begin_predict()
        result = session.run_prediction(ticket)
        session.teardown()
        assert not session.complete_predict(ticket, result)

    def test_teardown_during_load_disposes_late_model(self, model_file, camera):
        session = None

        def factory(model_path, num_threads):
            session.teardown()
            return FakeInterpreter()

        loader = ModelLoader(ModelConfig(model_path=str(model_file)), factory)
        session = SessionController(capture_source=camera, model_loader=loader)

        assert not session.load_model()
        assert loader.model is None
        assert loader.status == ModelStatus.NOT_LOADED
        assert session.state.error is None

    def test_context_manager(self, camera, loader):
        with SessionController(capture_source=camera, model_loader=loader) as session:
            session.start_capture()
        assert not camera.is_active


class TestListeners:
    def test_first_notification_on_load_reports_loading(self, session):
        statuses = []
        session.add_listener(lambda state: statuses.append(state.model_status))
        ticket = session.begin_load()
        session.complete_load(ticket, session.run_load(ticket))
        assert statuses == [ModelStatus.LOADING, ModelStatus.READY]

    def test_listener_receives_snapshots(self, session):
        phases = []
        session.add_listener(lambda state: phases.append(state.phase))
        _captured(session)
        session.predict()
        assert phases[-3:] == [SessionPhase.CAPTURED, SessionPhase.PREDICTING, SessionPhase.RESULTED]

    def test_failing_listener_does_not_break_flow(self, session):
        def boom(state):
            raise RuntimeError("render failed")

        session.add_listener(boom)
        _captured(session)
        assert session.predict() is not None
