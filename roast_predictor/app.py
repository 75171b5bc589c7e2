#!/usr/bin/env python3
"""
Desktop GUI: Capture -> Inference -> Result

Thin tkinter front end over SessionController. Renders the live feed or
the captured still, the predicted roast level with its description, and
the current error. Pipeline work runs on a single worker thread; results
are handed back to the tkinter thread with root.after() and applied
through the controller's ticketed completions.

Keyboard Shortcuts:
    SPACE: Start camera / Capture / Predict / Retake, depending on state
    o: Upload an image file
    r: Reset
    q or Esc: Safely close and release camera resources
"""

import atexit
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import numpy as np
from PIL import Image, ImageTk

try:
    import tkinter as tk
    from tkinter import filedialog, ttk
except ImportError:
    tk = None

from .config import (
    DEFAULT_CAPTURE_CONFIG,
    DISPLAY_HEIGHT,
    DISPLAY_WIDTH,
    LIVE_FEED_INTERVAL_MS,
)
from .Controllers.session_controller import (
    SessionController,
    SessionPhase,
    SessionState,
    Ticket,
)
from .Drivers.capture_factory import create_capture_source
from .Drivers.file_capture import FileCapture
from .Drivers.model_loader import ModelStatus
from .Drivers.vision_inference import top_k

logger = logging.getLogger(__name__)

IMAGE_FILETYPES = [
    ("Images", "*.jpg *.jpeg *.png *.bmp *.webp *.tif *.tiff"),
    ("All files", "*"),
]

STATUS_TEXT = {
    SessionPhase.IDLE: "READY - Press SPACE to start the camera or 'o' to upload",
    SessionPhase.CAPTURING: "CAMERA ACTIVE - Press SPACE to capture",
    SessionPhase.CAPTURED: "IMAGE CAPTURED - Press SPACE to predict roast",
    SessionPhase.PREDICTING: "Analyzing coffee beans...",
    SessionPhase.RESULTED: "PREDICTION COMPLETE - Press SPACE to retake",
    SessionPhase.ERRORED: "Press SPACE to try again",
}


def _numpy_to_photoimage(arr: np.ndarray, width: int, height: int):
    """Convert NumPy RGB array to PhotoImage for tkinter, keeping aspect ratio."""
    if arr is None:
        return None
    img = Image.fromarray(arr)
    img.thumbnail((width, height), Image.Resampling.LANCZOS)
    return ImageTk.PhotoImage(img)


class RoastPredictorApp:
    """
    Desktop GUI for the roast predictor.

    All SessionController calls happen on the tkinter thread except the
    run_* steps, which go to the worker.
    """

    def __init__(self, controller: Optional[SessionController] = None):
        self.root = tk.Tk()
        self.root.title("Coffee Roast Predictor")
        self.root.geometry("1000x600")
        self.root.minsize(800, 500)

        self.controller = controller or SessionController(
            capture_source=create_capture_source(DEFAULT_CAPTURE_CONFIG)
        )
        self._camera_source = self.controller.capture_source
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="roast-pipeline")
        self._live_feed_job = None
        self._photo_ref = None  # Keep reference to prevent GC

        self._canvas = None
        self._status_label = None
        self._model_label = None
        self._error_label = None
        self._roast_label = None
        self._description_label = None
        self._result_labels = []

        self._setup_ui()
        self._setup_bindings()
        self._register_cleanup()

        self.controller.add_listener(self._render)
        self._load_model()

    # -- UI ------------------------------------------------------------------

    def _setup_ui(self):
        """Build the UI layout."""
        main = ttk.Frame(self.root, padding=10)
        main.pack(fill=tk.BOTH, expand=True)

        left = ttk.Frame(main)
        left.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)

        self._canvas = tk.Canvas(left, width=DISPLAY_WIDTH, height=DISPLAY_HEIGHT, bg="black")
        self._canvas.pack()

        right = ttk.Frame(main, width=300)
        right.pack(side=tk.RIGHT, fill=tk.Y, padx=(10, 0))

        self._model_label = ttk.Label(right, text="", font=("", 9))
        self._model_label.pack(anchor=tk.W)

        ttk.Label(right, text="Roast Level", font=("", 12, "bold")).pack(anchor=tk.W, pady=(10, 0))
        self._roast_label = ttk.Label(right, text="—", font=("", 16, "bold"))
        self._roast_label.pack(anchor=tk.W)
        self._description_label = ttk.Label(right, text="", wraplength=280, justify=tk.LEFT)
        self._description_label.pack(anchor=tk.W, pady=(5, 10))

        ttk.Label(right, text="Confidence", font=("", 10, "bold")).pack(anchor=tk.W)
        for _ in range(3):
            lbl = ttk.Label(right, text="—", font=("", 10))
            lbl.pack(anchor=tk.W)
            self._result_labels.append(lbl)

        self._error_label = ttk.Label(right, text="", foreground="red", wraplength=280)
        self._error_label.pack(anchor=tk.W, pady=(10, 0))

        self._status_label = ttk.Label(main, text="Initializing...", font=("", 11))
        self._status_label.pack(pady=(10, 0))

        buttons = ttk.Frame(main)
        buttons.pack(pady=(5, 0))
        ttk.Button(buttons, text="Start Camera", command=self.start_camera).pack(side=tk.LEFT)
        ttk.Button(buttons, text="Capture", command=self.capture).pack(side=tk.LEFT)
        ttk.Button(buttons, text="Upload Image", command=self.upload).pack(side=tk.LEFT)
        ttk.Button(buttons, text="Predict Roast", command=self.predict).pack(side=tk.LEFT)
        ttk.Button(buttons, text="Reset", command=self.reset).pack(side=tk.LEFT)

    def _setup_bindings(self):
        """Keyboard shortcuts."""
        self.root.bind("<space>", lambda e: self._on_space())
        self.root.bind("<Return>", lambda e: self._on_space())
        self.root.bind("o", lambda e: self.upload())
        self.root.bind("r", lambda e: self.reset())
        self.root.bind("<Escape>", lambda e: self._on_quit())
        self.root.bind("q", lambda e: self._on_quit())
        self.root.protocol("WM_DELETE_WINDOW", self._on_quit)

    def _register_cleanup(self):
        """Ensure camera is released on exit."""
        atexit.register(self.controller.teardown)

    def _render(self, state: SessionState):
        """Update widgets from a state snapshot."""
        self._status_label.config(text=STATUS_TEXT[state.phase])

        if state.model_status == ModelStatus.LOADING:
            self._model_label.config(text="Loading model...")
        elif state.model_status == ModelStatus.FAILED:
            self._model_label.config(text="Model unavailable - predictions disabled")
        elif state.model_status == ModelStatus.READY:
            self._model_label.config(text="Model ready")

        self._error_label.config(text=state.error.message if state.error else "")

        if state.prediction is not None:
            self._roast_label.config(text=state.prediction.label.display_name)
            self._description_label.config(text=state.prediction.label.description)
            ranked = top_k(state.prediction, k=len(self._result_labels))
            for lbl, r in zip(self._result_labels, ranked):
                lbl.config(text=f"{r['label']}: {r['confidence'] * 100:.1f}%")
        else:
            self._roast_label.config(text="—")
            self._description_label.config(text="")
            for lbl in self._result_labels:
                lbl.config(text="—")

        if state.phase == SessionPhase.CAPTURING:
            self._start_live_feed()
        else:
            self._stop_live_feed()
            if state.image is not None:
                self._show_array(state.image.pixels)
            else:
                self._canvas.delete("all")

    def _show_array(self, arr: np.ndarray):
        photo = _numpy_to_photoimage(arr, DISPLAY_WIDTH, DISPLAY_HEIGHT)
        if photo:
            self._photo_ref = photo
            self._canvas.delete("all")
            self._canvas.create_image(DISPLAY_WIDTH // 2, DISPLAY_HEIGHT // 2, anchor=tk.CENTER, image=photo)

    # -- Live feed -----------------------------------------------------------

    def _start_live_feed(self):
        if self._live_feed_job is None:
            self._tick_live_feed()

    def _stop_live_feed(self):
        if self._live_feed_job:
            self.root.after_cancel(self._live_feed_job)
            self._live_feed_job = None

    def _tick_live_feed(self):
        """Show the latest frame and schedule the next tick."""
        try:
            frame = self.controller.capture_source.latest_frame()
            if frame is not None:
                self._show_array(frame)
        except Exception as e:
            logger.debug(f"Live feed tick: {e}")
        self._live_feed_job = self.root.after(LIVE_FEED_INTERVAL_MS, self._tick_live_feed)

    # -- Pipeline actions ----------------------------------------------------

    def _run_async(
        self,
        ticket: Ticket,
        work: Callable[[Ticket], object],
        complete: Callable[[Ticket, object], bool],
        fail: Callable[[Ticket, Exception], bool],
    ):
        """Run work(ticket) on the worker, then apply the outcome on the tkinter thread."""

        def _job():
            try:
                result = work(ticket)
            except Exception as e:
                self.root.after(0, lambda err=e: fail(ticket, err))
            else:
                self.root.after(0, lambda: complete(ticket, result))

        self._executor.submit(_job)

    def _load_model(self):
        # begin_load notifies, so the first render already shows LOADING
        ticket = self.controller.begin_load()
        if ticket is None:
            self._render(self.controller.snapshot())
            return
        c = self.controller
        self._run_async(ticket, c.run_load, c.complete_load, c.fail_load)

    def start_camera(self):
        if self.controller.capture_source is not self._camera_source:
            self.controller.use_capture_source(self._camera_source)
        self.controller.start_capture()

    def capture(self):
        ticket = self.controller.begin_capture()
        if ticket is not None:
            c = self.controller
            self._run_async(ticket, c.run_capture, c.complete_capture, c.fail_capture)

    def upload(self):
        """Pick a file and capture it through a FileCapture source."""
        if self.controller.state.busy:
            return
        path = filedialog.askopenfilename(title="Select coffee bean image", filetypes=IMAGE_FILETYPES)
        if not path:
            return
        source = FileCapture()
        if not self.controller.use_capture_source(source):
            return
        if self.controller.start_capture():
            source.select(path)
            self.capture()

    def predict(self):
        ticket = self.controller.begin_predict()
        if ticket is not None:
            c = self.controller
            self._run_async(ticket, c.run_prediction, c.complete_predict, c.fail_predict)

    def reset(self):
        self.controller.reset()

    def _on_space(self):
        """Spacebar: advance the flow one step."""
        state = self.controller.state
        if state.busy:
            return
        if state.phase == SessionPhase.CAPTURING:
            self.capture()
        elif state.phase in (SessionPhase.CAPTURED, SessionPhase.ERRORED) and state.image is not None:
            self.predict()
        else:
            self.reset()
            self.start_camera()

    def _on_quit(self):
        """Safely close application and release resources."""
        self._stop_live_feed()
        self.controller.teardown()
        self._executor.shutdown(wait=False)
        self.root.quit()
        self.root.destroy()

    def run(self):
        """Start the application."""
        self.root.mainloop()


def main():
    logging.basicConfig(level=logging.INFO)
    if tk is None:
        print("tkinter not available")
        sys.exit(1)

    app = RoastPredictorApp()
    app.run()


if __name__ == "__main__":
    main()
