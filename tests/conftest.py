import os
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

ROOT = Path(__file__).resolve().parents[1]

# profiles shipped with the repo
os.environ.setdefault("BATCHVISION_PROFILES_DIR", str(ROOT / "profiles"))


def _make_image(path, size=(64, 48), color="white"):
    im = Image.new("RGB", size, color)
    dr = ImageDraw.Draw(im)
    dr.rectangle([10, 10, 30, 30], fill="black")
    im.save(path, format="PNG")
    return Path(path)


@pytest.fixture
def make_image():
    return _make_image


@pytest.fixture
def image_dir(tmp_path):
    src = tmp_path / "examples"
    src.mkdir()
    _make_image(src / "a.img")
    _make_image(src / "b.img", color="red")
    return src
