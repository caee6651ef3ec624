"""Qt display integration for the render session.

AIDEV-NOTE: Renders are scheduled on the Qt event loop so they line up
with repaints; the surface hands widgets a deep-copied QImage, never a
view into numpy memory that the next frame could overwrite.
"""

from typing import Callable

from PyQt6.QtCore import QObject, QTimer, pyqtSignal
from PyQt6.QtGui import QImage

from halftone_lab.models import RasterBuffer


class QImageSurface(QObject):
    """Target surface converting frames to QImage.

    Signals:
        frame_ready: Emitted with the new QImage after every blit
    """

    frame_ready = pyqtSignal(QImage)

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self.image: QImage | None = None

    def blit(self, frame: RasterBuffer) -> None:
        data = frame.pixels().tobytes()
        image = QImage(
            data,
            frame.width,
            frame.height,
            frame.width * 4,
            QImage.Format.Format_RGBA8888,
        )
        self.image = image.copy()
        self.frame_ready.emit(self.image)


class QtFrameScheduler:
    """Defers renders to the next turn of the Qt event loop."""

    def call_soon(self, callback: Callable[[], None]) -> None:
        QTimer.singleShot(0, callback)
