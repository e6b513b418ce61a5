import io
import threading
import time

import pytest
from PIL import Image

from conftest import make_image_bytes
from crop_editor.controller import SelectionController
from crop_editor.errors import DecodeError
from crop_editor.models import Corner, CropStatus, EditorOptions, FitMode, Rect, Size
from crop_editor.worker import PixelPipeline

VIEWPORT = Size(400, 800)


class Recorder:
    """Collects every controller notification."""

    def __init__(self):
        self.statuses = []
        self.moves = []
        self.crops = []
        self.errors = []

    def kwargs(self):
        return {
            "on_status_changed": self.statuses.append,
            "on_moved": self.moves.append,
            "on_cropped": self.crops.append,
            "on_error": self.errors.append,
        }


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_controller(recorder, immediate_executor):
    def factory(options=None, executor=None, viewport=VIEWPORT, **kwargs):
        pipeline = PixelPipeline(executor=executor or immediate_executor)
        return SelectionController(
            options=options, pipeline=pipeline, viewport=viewport, **recorder.kwargs(), **kwargs,
        )
    return factory


@pytest.fixture
def ready(make_controller, wide_png):
    """Controller with a decoded 200x100 image in a 400x800 viewport."""
    controller = make_controller()
    controller.set_image(wide_png)
    return controller


# =============================================================================
# Lifecycle
# =============================================================================

def test_starts_idle(make_controller):
    controller = make_controller()
    assert controller.status is CropStatus.IDLE
    assert controller.rect is None


def test_decode_makes_editor_ready_with_initial_selection(ready, recorder):
    assert recorder.statuses == [CropStatus.LOADING, CropStatus.READY]
    assert ready.fit_mode is FitMode.FIT_WIDTH
    assert ready.image_rect == Rect(0, 300, 400, 200)
    # Unconstrained editors open on the largest centered square
    assert ready.rect == Rect(100, 300, 200, 200)
    assert recorder.moves[-1] == ready.rect


def test_initial_selection_honours_aspect_ratio_and_size(make_controller, wide_png):
    controller = make_controller(EditorOptions(aspect_ratio=1.0, initial_size=0.5))
    controller.set_image(wide_png)
    assert controller.rect == Rect(150, 350, 100, 100)


def test_initial_area_is_mapped_from_pixel_space(make_controller, wide_png):
    controller = make_controller(EditorOptions(initial_area=Rect(20, 10, 100, 50)))
    controller.set_image(wide_png)
    # 200px image shown 400 units wide: one pixel is two viewport units
    assert controller.rect == Rect(40, 320, 200, 100)


def test_tall_image_fits_height(make_controller, tall_png):
    controller = make_controller(viewport=Size(800, 400))
    controller.set_image(tall_png)
    assert controller.fit_mode is FitMode.FIT_HEIGHT
    assert controller.image_rect == Rect(300, 0, 200, 400)


def test_image_decoded_before_layout_gets_selection_on_first_resize(make_controller, wide_png):
    controller = make_controller(viewport=None)
    controller.set_image(wide_png)
    assert controller.status is CropStatus.READY
    assert controller.rect is None

    controller.on_viewport_resized(VIEWPORT)
    assert controller.image_rect == Rect(0, 300, 400, 200)
    assert controller.rect == Rect(100, 300, 200, 200)


def test_resize_keeps_selected_pixels(ready):
    ready.set_area(Rect(20, 10, 100, 50))
    before = ready.pixel_rect()
    ready.on_viewport_resized(Size(800, 1600))
    assert ready.image_rect == Rect(0, 600, 800, 400)
    assert ready.pixel_rect().to_tuple() == pytest.approx(before.to_tuple())


# =============================================================================
# Invalid state
# =============================================================================

def test_operations_before_decode_are_ignored(make_controller, recorder):
    controller = make_controller()
    assert controller.set_rect(Rect(0, 0, 10, 10)) is None
    assert controller.set_area(Rect(0, 0, 10, 10)) is None
    assert controller.move_selection(5, 5) is None
    assert controller.move_corner(Corner.TOP_LEFT, 5, 5) is None
    assert controller.request_crop() is None
    assert controller.status is CropStatus.IDLE
    assert recorder.statuses == []
    assert recorder.moves == []


def test_aspect_ratio_set_before_decode_is_used_once_ready(make_controller, wide_png):
    controller = make_controller()
    assert controller.set_aspect_ratio(1.0) is None
    controller.set_image(wide_png)
    assert controller.rect == Rect(100, 300, 200, 200)


def test_non_positive_aspect_ratio_is_rejected(ready):
    with pytest.raises(ValueError):
        ready.set_aspect_ratio(-1)


# =============================================================================
# Selection intents
# =============================================================================

def test_set_aspect_ratio_resets_to_centered_selection(ready):
    ready.move_selection(-50, 0)
    rect = ready.set_aspect_ratio(1.0)
    assert rect == Rect(100, 300, 200, 200)


def test_circle_mode_forces_square_and_restores_caller_ratio(ready):
    ready.set_aspect_ratio(1.5)
    assert ready.aspect_ratio == 1.5

    rect = ready.set_circle_mode(True)
    assert ready.aspect_ratio == 1.0
    assert rect.width == rect.height

    rect = ready.set_circle_mode(False)
    assert ready.aspect_ratio == 1.5
    assert rect.aspect_ratio == pytest.approx(1.5)


def test_circle_mode_from_options(make_controller, wide_png):
    controller = make_controller(EditorOptions(aspect_ratio=2.0, with_circle_ui=True))
    controller.set_image(wide_png)
    assert controller.circle_mode
    assert controller.rect == Rect(100, 300, 200, 200)


def test_set_rect_corrects_and_notifies(ready, recorder):
    rect = ready.set_rect(Rect(-100, 250, 100, 100))
    assert rect == Rect(0, 300, 100, 100)
    assert recorder.moves[-1] == rect


def test_move_selection_clamps(ready):
    ready.set_rect(Rect(10, 310, 100, 100))
    assert ready.move_selection(-20, 0) == Rect(0, 310, 100, 100)


def test_move_corner_keeps_circle_square(ready):
    ready.set_circle_mode(True)
    ready.set_rect(Rect(50, 350, 100, 100))
    rect = ready.move_corner(Corner.BOTTOM_RIGHT, 50, 10)
    assert rect.corner(Corner.TOP_LEFT) == (50, 350)
    assert rect.width == rect.height == 150


def test_fixed_area_blocks_corner_and_area_changes(make_controller, wide_png):
    controller = make_controller(EditorOptions(fixed_area=True, aspect_ratio=1.0))
    controller.set_image(wide_png)
    before = controller.rect
    assert controller.move_corner(Corner.BOTTOM_RIGHT, -30, -30) is None
    assert controller.set_area(Rect(0, 0, 10, 10)) is None
    assert controller.rect == before
    assert controller.move_selection(-10, 0) == before.translate(-10, 0)


def test_pixel_rect_maps_selection_to_source_pixels(ready):
    ready.set_rect(Rect(40, 320, 200, 100))
    assert ready.pixel_rect() == Rect(20, 10, 100, 50)


def test_set_area_past_image_edge_is_pulled_inside(ready):
    rect = ready.set_area(Rect(150, 0, 100, 50))
    assert rect == Rect(200, 300, 200, 100)
    assert ready.image_rect.contains_rect(rect)


def test_initial_area_larger_than_image_is_capped(make_controller, wide_png):
    controller = make_controller(EditorOptions(initial_area=Rect(-20, -10, 400, 300)))
    controller.set_image(wide_png)
    assert controller.rect == controller.image_rect


# =============================================================================
# Cropping
# =============================================================================

def test_request_crop_delivers_png_and_returns_to_ready(ready, recorder):
    ready.set_rect(Rect(40, 320, 200, 100))
    ready.request_crop()
    assert recorder.statuses[-2:] == [CropStatus.CROPPING, CropStatus.READY]
    assert len(recorder.crops) == 1
    result = Image.open(io.BytesIO(recorder.crops[0]))
    assert result.format == "PNG"
    assert result.size == (100, 50)


def test_circular_crop_has_alpha(ready, recorder):
    ready.request_crop(circular=True)
    result = Image.open(io.BytesIO(recorder.crops[0]))
    assert result.mode == "RGBA"
    assert result.size == (100, 100)


def test_crop_follows_circle_mode_by_default(ready, recorder):
    ready.set_circle_mode(True)
    ready.request_crop()
    assert Image.open(io.BytesIO(recorder.crops[0])).mode == "RGBA"


# =============================================================================
# Staleness
# =============================================================================

def test_out_of_order_decodes_apply_only_latest(make_controller, manual_executor, recorder):
    controller = make_controller(executor=manual_executor)
    controller.set_image(make_image_bytes(100, 100))   # slow submission
    controller.set_image(make_image_bytes(300, 100))   # fast submission

    manual_executor.run(1)
    assert controller.source_image.size == Size(300, 100)
    assert controller.status is CropStatus.READY

    manual_executor.run(0)
    assert controller.source_image.size == Size(300, 100)
    assert recorder.statuses == [CropStatus.LOADING, CropStatus.READY]


def test_superseded_decode_finishing_first_is_discarded(make_controller, manual_executor):
    controller = make_controller(executor=manual_executor)
    controller.set_image(make_image_bytes(100, 100))
    controller.set_image(make_image_bytes(300, 100))

    manual_executor.run(0)
    assert controller.source_image is None
    assert controller.status is CropStatus.LOADING

    manual_executor.run(1)
    assert controller.source_image.size == Size(300, 100)


def test_only_latest_crop_is_delivered(make_controller, manual_executor, recorder, wide_png):
    controller = make_controller(executor=manual_executor)
    controller.set_image(wide_png)
    manual_executor.run(0)

    controller.set_rect(Rect(0, 300, 100, 100))
    controller.request_crop()
    controller.set_rect(Rect(0, 300, 200, 100))
    controller.request_crop()

    manual_executor.run(2)
    manual_executor.run(1)
    assert len(recorder.crops) == 1
    assert Image.open(io.BytesIO(recorder.crops[0])).size == (100, 50)
    assert controller.status is CropStatus.READY


def test_new_image_discards_inflight_crop(make_controller, manual_executor, recorder, wide_png):
    controller = make_controller(executor=manual_executor)
    controller.set_image(wide_png)
    manual_executor.run(0)
    controller.request_crop()
    controller.set_image(make_image_bytes(300, 100))

    manual_executor.run(1)
    assert recorder.crops == []
    assert controller.status is CropStatus.LOADING

    manual_executor.run(2)
    assert controller.status is CropStatus.READY


def test_crop_is_refused_while_new_image_loads(make_controller, manual_executor, wide_png):
    controller = make_controller(executor=manual_executor)
    controller.set_image(wide_png)
    manual_executor.run(0)
    controller.set_image(wide_png)
    assert controller.request_crop() is None
    assert len(manual_executor.jobs) == 2


def test_results_are_applied_through_dispatch(make_controller, manual_executor, wide_png):
    queued = []
    controller = make_controller(executor=manual_executor, dispatch=queued.append)
    controller.set_image(wide_png)
    manual_executor.run(0)
    assert controller.status is CropStatus.LOADING

    queued.pop()()
    assert controller.status is CropStatus.READY


# =============================================================================
# Errors
# =============================================================================

def test_decode_error_is_reported_and_status_reverts(make_controller, recorder):
    controller = make_controller()
    controller.set_image(b"not an image")
    assert controller.status is CropStatus.IDLE
    assert recorder.statuses == [CropStatus.LOADING, CropStatus.IDLE]
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], DecodeError)


def test_decode_error_keeps_previous_image(ready, recorder, wide_png):
    rect = ready.rect
    source = ready.source_image
    ready.set_image(b"broken")
    assert ready.status is CropStatus.READY
    assert ready.source_image is source
    assert ready.rect == rect
    assert isinstance(recorder.errors[-1], DecodeError)

    # Later submissions still work
    ready.set_image(make_image_bytes(100, 200))
    assert ready.source_image.size == Size(100, 200)


def test_close_shuts_down_pipeline(wide_png):
    pipeline = PixelPipeline()
    controller = SelectionController(pipeline=pipeline, viewport=VIEWPORT)
    assert controller.set_image(wide_png).result(timeout=10).width == 200
    controller.close()
    with pytest.raises(RuntimeError):
        pipeline.submit_decode(wide_png)


# =============================================================================
# Threads
# =============================================================================

def _drain_until(controller, predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "background result never arrived"
        controller.process_pending()
        time.sleep(0.005)


def test_background_results_are_applied_on_owning_thread(wide_png):
    threads = []
    pipeline = PixelPipeline()
    controller = SelectionController(
        pipeline=pipeline,
        viewport=VIEWPORT,
        on_status_changed=lambda status: threads.append((status, threading.current_thread().name)),
    )
    try:
        controller.set_image(wide_png).result(timeout=10)
        # The pipeline thread never touches controller state
        assert controller.status is CropStatus.LOADING
        assert controller.source_image is None

        _drain_until(controller, lambda: controller.status is CropStatus.READY)
        controller.request_crop().result(timeout=10)
        assert controller.status is CropStatus.CROPPING
        _drain_until(controller, lambda: controller.status is CropStatus.READY)
    finally:
        controller.close()

    main = threading.current_thread().name
    assert [status for status, _ in threads] == [
        CropStatus.LOADING, CropStatus.READY, CropStatus.CROPPING, CropStatus.READY,
    ]
    assert all(name == main for _, name in threads)


def test_latest_image_wins_with_real_pipeline():
    controller = SelectionController(pipeline=PixelPipeline(max_workers=2), viewport=VIEWPORT)
    try:
        first = controller.set_image(make_image_bytes(100, 100))
        second = controller.set_image(make_image_bytes(300, 100))
        first.result(timeout=10)
        second.result(timeout=10)
        _drain_until(controller, lambda: controller.status is CropStatus.READY)
        # Anything still queued is the stale first decode
        controller.process_pending()
        assert controller.source_image.size == Size(300, 100)
    finally:
        controller.close()


def test_results_arriving_after_close_are_dropped(make_controller, manual_executor, recorder, wide_png):
    controller = make_controller(executor=manual_executor)
    controller.set_image(wide_png)
    controller.close()

    manual_executor.run(0)
    assert controller.source_image is None
    assert recorder.statuses == [CropStatus.LOADING]


def test_crop_finishing_after_close_is_not_delivered(make_controller, manual_executor, recorder, wide_png):
    controller = make_controller(executor=manual_executor)
    controller.set_image(wide_png)
    manual_executor.run(0)
    controller.request_crop()
    controller.close()

    manual_executor.run(1)
    assert recorder.crops == []
