"""Tests for the Qt surface and scheduler."""

import pytest

pytest.importorskip("PyQt6.QtGui")

from PyQt6.QtCore import QCoreApplication, QEventLoop, QTimer  # noqa: E402

from halftone_lab.image_processing.processor import HalftoneProcessor  # noqa: E402
from halftone_lab.models import Layer, RenderConfig  # noqa: E402
from halftone_lab.qt_surface import QImageSurface, QtFrameScheduler  # noqa: E402

from conftest import make_photo  # noqa: E402


@pytest.fixture(scope="module")
def qt_app():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def run_events(ms=50):
    loop = QEventLoop()
    QTimer.singleShot(ms, loop.quit)
    loop.exec()


def test_blit_copies_pixels():
    frame = make_photo(6, 4)
    surface = QImageSurface()
    received = []
    surface.frame_ready.connect(received.append)

    surface.blit(frame)
    frame.data[:] = 0

    assert surface.image.width() == 6 and surface.image.height() == 4
    expected = make_photo(6, 4).pixels()[2, 3]
    color = surface.image.pixelColor(3, 2)
    assert (color.red(), color.green(), color.blue()) == tuple(int(v) for v in expected[:3])
    assert len(received) == 1


def test_scheduler_runs_on_event_loop(qt_app):
    calls = []
    QtFrameScheduler().call_soon(lambda: calls.append(1))
    assert calls == []
    run_events()
    assert calls == [1]


def test_request_render_through_qt(qt_app, photo_image):
    surface = QImageSurface()
    proc = HalftoneProcessor(RenderConfig(use_worker=False), scheduler=QtFrameScheduler())
    proc.set_layers([Layer(id=1)])
    proc.request_render(photo_image, surface)
    proc.request_render(photo_image, surface)
    run_events()
    assert surface.image is not None
    assert surface.image.width() == photo_image.width
    proc.close()
