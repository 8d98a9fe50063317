import pytest

from converter.client.outputs import DiskOutputSink, download_name


def test_store_writes_download_name(tmp_path):
    handle = DiskOutputSink(tmp_path).store(1, "cat.webp", b"DATA")
    assert handle.path == tmp_path / "cat.webp"
    assert handle.read_bytes() == b"DATA"
    assert handle.size == 4


def test_store_never_overwrites_existing_files(tmp_path):
    (tmp_path / "a.webp").write_bytes(b"mine")
    (tmp_path / "a_1.webp").write_bytes(b"also mine")
    sink = DiskOutputSink(tmp_path)

    handle = sink.store(1, "a.webp", b"NEW")
    assert handle.path == tmp_path / "a_1_2.webp"
    handle.release()

    assert (tmp_path / "a.webp").read_bytes() == b"mine"
    assert (tmp_path / "a_1.webp").read_bytes() == b"also mine"
    assert not handle.path.exists()


def test_release_twice_raises(tmp_path):
    handle = DiskOutputSink(tmp_path).store(3, "b.jpg", b"x")
    handle.release()
    with pytest.raises(RuntimeError):
        handle.release()


def test_download_name():
    assert download_name("photo.png", "jpeg") == "photo.jpg"
    assert download_name("archive.tar.png", "webp") == "archive.tar.webp"
    assert download_name(None, "avif") == "image.avif"
