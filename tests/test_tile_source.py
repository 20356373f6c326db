"""Tests for tile sources and the Pillow decoder."""

import io
import os
from unittest.mock import Mock

import numpy as np
import pytest
import requests
from PIL import Image

from globetiles.config import GlobeConfig
from globetiles.decode import PillowDecoder
from globetiles.errors import TileDecodeError, TileNotFoundError, TransportError
from globetiles.tile_source import LocalTileSource, RemoteTileSource, make_tile_source
from globetiles.tile_utils import TileId


def png_bytes(color=(10, 20, 30), size=(4, 3), mode="RGB"):
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


class TestLocalTileSource:

    def test_reads_zxy_layout(self, tmp_path):
        path = tmp_path / "3" / "6"
        path.mkdir(parents=True)
        (path / "5.png").write_bytes(b"abc")
        source = LocalTileSource(str(tmp_path))
        assert source.fetch(TileId(3, 5, 6)) == b"abc"

    def test_missing_is_not_found(self, tmp_path):
        source = LocalTileSource(str(tmp_path))
        with pytest.raises(TileNotFoundError) as info:
            source.fetch(TileId(1, 0, 0))
        assert info.value.tile_id == TileId(1, 0, 0)
        assert not info.value.retryable

    def test_unreadable_is_transport_error(self, tmp_path):
        # a directory where the file should be
        os.makedirs(tmp_path / "1" / "0" / "0.png")
        source = LocalTileSource(str(tmp_path))
        with pytest.raises(TransportError) as info:
            source.fetch(TileId(1, 0, 0))
        assert info.value.retryable


def fake_response(status, content=b""):
    response = Mock()
    response.status_code = status
    response.content = content
    return response


class TestRemoteTileSource:

    @pytest.fixture
    def source(self):
        return RemoteTileSource("https://tiles.test/{z}/{x}/{y}.png", timeout=2, user_agent="ua")

    def test_url_for(self, source):
        assert source.url_for(TileId(3, 5, 6)) == "https://tiles.test/3/6/5.png"

    def test_ok(self, source, monkeypatch):
        session = Mock()
        session.get.return_value = fake_response(200, b"png")
        monkeypatch.setattr(source, "_session", lambda: session)
        assert source.fetch(TileId(3, 5, 6)) == b"png"
        session.get.assert_called_once_with("https://tiles.test/3/6/5.png", timeout=2)

    def test_404_is_not_found(self, source, monkeypatch):
        session = Mock()
        session.get.return_value = fake_response(404)
        monkeypatch.setattr(source, "_session", lambda: session)
        with pytest.raises(TileNotFoundError):
            source.fetch(TileId(1, 0, 0))

    def test_server_error_is_transport_error(self, source, monkeypatch):
        session = Mock()
        session.get.return_value = fake_response(503)
        monkeypatch.setattr(source, "_session", lambda: session)
        with pytest.raises(TransportError, match="503"):
            source.fetch(TileId(1, 0, 0))

    def test_timeout_is_transport_error(self, source, monkeypatch):
        session = Mock()
        session.get.side_effect = requests.Timeout("slow")
        monkeypatch.setattr(source, "_session", lambda: session)
        with pytest.raises(TransportError):
            source.fetch(TileId(1, 0, 0))

    def test_session_has_user_agent_and_is_closed(self, source):
        session = source._session()
        assert session is source._session()
        assert session.headers["User-Agent"] == "ua"
        source.close()
        assert source._sessions == []


class TestMakeTileSource:

    def test_remote(self):
        source = make_tile_source(GlobeConfig())
        assert isinstance(source, RemoteTileSource)

    def test_local(self, tmp_path):
        source = make_tile_source(GlobeConfig(source='local', tile_root=str(tmp_path)))
        assert isinstance(source, LocalTileSource)
        assert source.root == str(tmp_path)


class TestPillowDecoder:

    def test_decode_png(self):
        image = PillowDecoder().decode(png_bytes())
        assert image.shape == (3, 4, 3)
        assert image.dtype == np.uint8
        assert image.flags['C_CONTIGUOUS']
        assert tuple(image[0, 0]) == (10, 20, 30)

    def test_rgba_and_grey_become_rgb(self):
        image = PillowDecoder().decode(png_bytes((1, 2, 3, 4), mode="RGBA"))
        assert image.shape == (3, 4, 3)
        image = PillowDecoder().decode(png_bytes(7, mode="L"))
        assert tuple(image[0, 0]) == (7, 7, 7)

    def test_decode_jpeg(self):
        buf = io.BytesIO()
        Image.new("RGB", (8, 8), (200, 0, 0)).save(buf, format="JPEG")
        image = PillowDecoder().decode(buf.getvalue())
        assert image.shape == (8, 8, 3)

    @pytest.mark.parametrize("data", [b"", b"not an image", png_bytes()[:20]])
    def test_bad_data(self, data):
        with pytest.raises(TileDecodeError) as info:
            PillowDecoder().decode(data)
        assert not info.value.retryable
