import io
import sqlite3

import pytest
from PIL import Image

import smlogging


SCHEMA = """
CREATE TABLE map (
    zoom_level INTEGER,
    tile_column INTEGER,
    tile_row INTEGER,
    tile_id TEXT
);
CREATE UNIQUE INDEX map_index ON map (zoom_level, tile_column, tile_row);
CREATE TABLE images (
    tile_data BLOB,
    tile_id TEXT
);
CREATE UNIQUE INDEX images_id ON images (tile_id);
CREATE VIEW tiles AS
    SELECT map.zoom_level AS zoom_level,
           map.tile_column AS tile_column,
           map.tile_row AS tile_row,
           images.tile_data AS tile_data
    FROM map JOIN images ON images.tile_id = map.tile_id;
"""


@pytest.fixture
def make_store(tmp_path):
    """ build a normalized MBTiles file, returns its path as str """
    def make(name, tiles=(), images=None, metadata=None):
        path = tmp_path / name
        conn = sqlite3.connect(str(path))
        conn.executescript(SCHEMA)
        if metadata is not None:
            conn.execute("CREATE TABLE metadata (name TEXT, value TEXT)")
            conn.executemany("INSERT INTO metadata (name, value) VALUES (?, ?)",
                             metadata.items())
        conn.executemany("INSERT INTO map VALUES (?, ?, ?, ?)", tiles)
        conn.executemany("INSERT INTO images (tile_id, tile_data) VALUES (?, ?)",
                         (images or {}).items())
        conn.commit()
        conn.close()
        return str(path)
    return make


@pytest.fixture
def read_store():
    """ (set of map rows, dict tile_id -> tile_data) of an MBTiles file """
    def read(path):
        conn = sqlite3.connect(path)
        try:
            tiles = set(conn.execute(
                "SELECT zoom_level, tile_column, tile_row, tile_id FROM map"))
            images = {k: bytes(v) for k, v in conn.execute(
                "SELECT tile_id, tile_data FROM images")}
            nimages = conn.execute("SELECT COUNT(*) FROM images").fetchone()[0]
        finally:
            conn.close()
        assert nimages == len(images)
        return tiles, images
    return read


@pytest.fixture
def png_bytes():
    f = io.BytesIO()
    Image.new('RGB', (4, 4), 'red').save(f, 'PNG')
    return f.getvalue()


@pytest.fixture(autouse=True)
def reset_loglevel():
    mask = smlogging.loglevel
    yield
    smlogging.setLogLevel(mask)
