"""
Background pixel pipeline (Qt-free).

Decode and crop jobs run on a ``concurrent.futures`` executor so the
interactive thread never blocks on image work.  Each submission returns
its ``Future``; callers use the future itself as the token for deciding
whether a finished result is still wanted.  Jobs only receive immutable
snapshots (source bytes, a decoded ``SourceImage`` and a pixel ``Rect``)
and never touch controller state.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from crop_editor.config import PIPELINE_WORKERS
from crop_editor.image_io import crop_circle, crop_rect, decode_image
from crop_editor.models import Rect, SourceImage

logger = logging.getLogger(__name__)


def crop_worker(image: SourceImage, rect: Rect, circular: bool) -> bytes:
    """Crop job body. Runs on a pipeline thread."""
    logger.debug("Cropping %s (%s)", rect, "circle" if circular else "rect")
    if circular:
        return crop_circle(image, rect)
    return crop_rect(image, rect)


class PixelPipeline:
    """Dispatches decode and crop jobs to a background executor.

    An *executor* may be injected (tests use one that completes futures on
    demand); otherwise a private thread pool is created and owned.
    """

    def __init__(self, executor: Executor | None = None, max_workers: int = PIPELINE_WORKERS):
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="crop-pipeline",
        )

    def submit_decode(self, data: bytes) -> Future:
        """Decode *data* in the background; the future yields a ``SourceImage``."""
        return self._executor.submit(decode_image, data)

    def submit_crop(self, image: SourceImage, rect: Rect, circular: bool = False) -> Future:
        """Crop *image* to the pixel-space *rect*; the future yields PNG bytes."""
        return self._executor.submit(crop_worker, image, rect, circular)

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the executor if this pipeline created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
