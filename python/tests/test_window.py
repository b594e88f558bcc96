import pytest

from msc_bridge import HeadlessWindow, TracerError, WindowGeometry


def test_create_sets_viewport_from_geometry():
    window = HeadlessWindow(WindowGeometry(width=1024, height=768, x=10, y=20))
    window.create()
    assert window.window_id == 1
    assert window.viewport == (0, 0, 1024, 768)
    window.create()
    assert window.window_id == 1


def test_window_ids_are_per_instance():
    first = HeadlessWindow(assigned_id=3)
    second = HeadlessWindow(assigned_id=3)
    first.create()
    second.create()
    assert first.window_id == second.window_id == 3


def test_display_requires_window():
    window = HeadlessWindow()
    with pytest.raises(TracerError):
        window.display()
    window.create()
    window.display()
    window.display()
    assert window.frames == 2


def test_reshape_updates_viewport_and_clamps():
    window = HeadlessWindow()
    window.create()
    window.reshape(640, 480)
    assert window.viewport == (0, 0, 640, 480)
    assert (window.geometry.width, window.geometry.height) == (640, 480)
    window.reshape(0, 0)
    assert window.viewport == (0, 0, 1, 1)
