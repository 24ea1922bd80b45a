# -*- coding: utf-8 -*-

# python imports
import io
import os
import sqlite3
from collections import namedtuple
from threading import RLock
from urllib.request import pathname2url
# local imports
from smlogging import *
from globalmaptiles import GlobalMercator
from PIL import Image, UnidentifiedImageError

TileRecord = namedtuple("TileRecord",
                        ["zoom_level", "tile_column", "tile_row", "tile_id", "tile_data"])


class StoreError(Exception):
    """ Failure of a query or statement against a tile store """
    pass


class CommitError(StoreError):
    """ A commit failed and was rolled back, records lists the tiles it lost """

    def __init__(self, filename, records, cause):
        StoreError.__init__(self, "%s: commit of %d tiles failed: %s" % (filename, len(records), cause))
        self.records = records


class MBTilesStorage():
    """ Normalized MBTiles file (map + images tables) used as merge source or target """

    mapTable = "map"
    imagesTable = "images"
    commitInterval = 500

    # PIL format name -> MBTiles "format" metadata value
    imageFormats = {"PNG": "png", "JPEG": "jpg", "WEBP": "webp"}

    def __init__(self, readonly=True):
        self.readonly = readonly
        self.filename = None
        self.db = None
        self.pending = []
        self.mutex = RLock()

    def open(self, filename):
        """ Open an existing file, never create one """
        self.filename = filename
        mode = "ro" if self.readonly else "rw"
        uri = "file:%s?mode=%s" % (pathname2url(os.path.abspath(filename)), mode)
        try:
            self.db = sqlite3.connect(uri, uri=True, check_same_thread=False)
        except sqlite3.Error as err:
            raise StoreError("cannot open %s: %s" % (filename, err)) from err
        log(DEBUG, "Opened", filename, "mode", mode)
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _execute(self, sql, params=()):
        if self.db is None:
            raise StoreError("%s is not open" % self.filename)
        try:
            return self.db.execute(sql, params)
        except sqlite3.Error as err:
            raise StoreError("%s: %s" % (self.filename, err)) from err

    def count(self):
        """ number of coordinate rows """
        with self.mutex:
            return self._execute("SELECT COUNT(*) FROM %s" % self.mapTable).fetchone()[0]

    def fetch_page(self, offset, limit):
        """ read up to limit tiles in (zoom_level, tile_column, tile_row) order """
        sql = """
            SELECT m.zoom_level, m.tile_column, m.tile_row, m.tile_id, i.tile_data
            FROM %s AS m JOIN %s AS i ON i.tile_id = m.tile_id
            ORDER BY m.zoom_level, m.tile_column, m.tile_row
            LIMIT ? OFFSET ?
            """ % (self.mapTable, self.imagesTable)
        with self.mutex:
            rows = self._execute(sql, (limit, offset)).fetchall()
        return [TileRecord(*row) for row in rows]

    def upsert_blob(self, tile_id, tile_data):
        """ insert the image unless one with this tile_id already exists """
        with self.mutex:
            self._execute("INSERT OR IGNORE INTO %s (tile_id, tile_data) VALUES (?, ?)" % self.imagesTable,
                          (tile_id, None if tile_data is None else sqlite3.Binary(tile_data)))

    def upsert_coordinate(self, zoom_level, tile_column, tile_row, tile_id):
        """ insert or replace the tile_id stored at a coordinate """
        with self.mutex:
            self._execute("INSERT OR REPLACE INTO %s (zoom_level, tile_column, tile_row, tile_id) VALUES (?, ?, ?, ?)" % self.mapTable,
                          (zoom_level, tile_column, tile_row, tile_id))

    def write_tile(self, record):
        """
        write one tile record, image first so the map row never dangles.
        Returns the records made durable by this call, which is empty until
        a batch of commitInterval tiles is complete.
        """
        with self.mutex:
            self.upsert_blob(record.tile_id, record.tile_data)
            self.upsert_coordinate(record.zoom_level, record.tile_column,
                                   record.tile_row, record.tile_id)
            self.pending.append(record)
            return self.commitData()

    def commitData(self, force=False):
        """
        commit the open transaction once commitInterval tiles are pending
        (or whenever force is set), return the committed records. A failed
        commit is rolled back and raises CommitError with the lost records.
        """
        with self.mutex:
            if self.db is None or self.readonly:
                return []
            if not (len(self.pending) >= self.commitInterval or (force and (self.pending or self.db.in_transaction))):
                return []
            records, self.pending = self.pending, []
            try:
                self.db.commit()
            except sqlite3.Error as err:
                try:
                    self.db.rollback()
                except sqlite3.Error as rberr:
                    raise CommitError(self.filename, records, rberr) from rberr
                raise CommitError(self.filename, records, err) from err
            log(DEBUG, "Committed", len(records), "tiles to", self.filename)
            return records

    def flush(self):
        return self.commitData(force=True)

    def close(self):
        with self.mutex:
            if self.db is None:
                return
            try:
                self.commitData(force=True)
            finally:
                db, self.db = self.db, None
                try:
                    db.close()
                except sqlite3.Error as err:
                    raise StoreError("%s: close failed: %s" % (self.filename, err)) from err
                log(DEBUG, "Closed", self.filename)

    def metadata(self):
        """ metadata table as dict, None if the file has no metadata table """
        with self.mutex:
            if self._execute("SELECT name FROM sqlite_master WHERE type='table' AND name='metadata'").fetchone() is None:
                return None
            return dict(self._execute("SELECT name, value FROM metadata").fetchall())

    def _setMetadata(self, name, value):
        self._execute("DELETE FROM metadata WHERE name = ?", (name,))
        self._execute("INSERT INTO metadata (name, value) VALUES (?, ?)", (name, value))

    def sniffFormat(self):
        """ MBTiles format name of one stored image, None if unknown """
        with self.mutex:
            row = self._execute("SELECT tile_data FROM %s LIMIT 1" % self.imagesTable).fetchone()
        if row is None or row[0] is None:
            return None
        try:
            with Image.open(io.BytesIO(row[0])) as im:
                return self.imageFormats.get(im.format)
        except (UnidentifiedImageError, OSError):
            return None

    def update_metadata(self):
        """ refresh minzoom, maxzoom, bounds (and format if missing) from the map table """
        with self.mutex:
            meta = self.metadata()
            if meta is None:
                log(WARNING, self.filename, "has no metadata table, not updating metadata")
                return None
            minzoom, maxzoom = self._execute(
                "SELECT MIN(zoom_level), MAX(zoom_level) FROM %s" % self.mapTable).fetchone()
            if maxzoom is None:
                log(INFO, self.filename, "has no tiles, metadata unchanged")
                return meta
            minx, miny, maxx, maxy = self._execute(
                "SELECT MIN(tile_column), MIN(tile_row), MAX(tile_column), MAX(tile_row) FROM %s WHERE zoom_level = ?" % self.mapTable,
                (maxzoom,)).fetchone()
            bounds = GlobalMercator().TileRangeLonLatBounds(minx, miny, maxx, maxy, maxzoom)
            update = {
                "minzoom": str(minzoom),
                "maxzoom": str(maxzoom),
                "bounds": ",".join("%.6f" % b for b in bounds),
            }
            if "format" not in meta:
                fmt = self.sniffFormat()
                if fmt is not None:
                    update["format"] = fmt
            for name, value in update.items():
                self._setMetadata(name, value)
            try:
                self.db.commit()
            except sqlite3.Error as err:
                raise StoreError("%s: commit failed: %s" % (self.filename, err)) from err
            self.pending = []
            meta.update(update)
            log(INFO, "Updated metadata of", self.filename, update)
            return meta
