import pytest

from batchvision.decode import ImageDecoder
from batchvision.errors import DecodeError, SourceUnavailable, WriteFailure
from batchvision.source import ImageSource
from batchvision.writer import ArtifactWriter


def test_list_is_sorted_and_skips_hidden_and_dirs(tmp_path, make_image):
    make_image(tmp_path / "b.png")
    make_image(tmp_path / "a.jpg")
    (tmp_path / ".DS_Store").write_bytes(b"x")
    (tmp_path / "sub").mkdir()
    assert ImageSource().list(tmp_path) == ["a.jpg", "b.png"]


def test_extension_filter(tmp_path, make_image):
    make_image(tmp_path / "a.PNG")
    (tmp_path / "notes.txt").write_text("hi")
    assert ImageSource(["png"]).list(tmp_path) == ["a.PNG"]


def test_missing_directory(tmp_path):
    with pytest.raises(SourceUnavailable):
        ImageSource().list(tmp_path / "nope")
    with pytest.raises(SourceUnavailable):
        ImageSource().read(tmp_path, "ghost.png")


def test_read_returns_immutable_item(tmp_path, make_image):
    make_image(tmp_path / "a.img")
    item = ImageSource().read(tmp_path, "a.img")
    assert item.identifier == "a.img"
    assert len(item.payload) > 0
    with pytest.raises(AttributeError):
        item.payload = b""


def test_decode_valid_image(tmp_path, make_image):
    p = make_image(tmp_path / "a.img", size=(32, 20))
    buf = ImageDecoder().decode(p.read_bytes())
    assert (buf.width, buf.height, buf.channels) == (32, 20, 4)


@pytest.mark.parametrize("payload", [b"", b"not an image", b"\x89PNG\r\n\x1a\n\x00\x00"])
def test_decode_rejects_malformed(payload):
    with pytest.raises(DecodeError):
        ImageDecoder().decode(payload)


def test_writer_leaves_no_temporary_files(tmp_path):
    art = ArtifactWriter().write(tmp_path / "a.img.prediction.json", b"[]")
    assert art.size == 2
    assert sorted(p.name for p in tmp_path.iterdir()) == ["a.img.prediction.json"]


def test_writer_failure(tmp_path):
    with pytest.raises(WriteFailure):
        ArtifactWriter().write(tmp_path / "missing" / "x.png", b"data")
