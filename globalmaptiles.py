# -*- coding: utf-8 -*-
#******************************************************************************
# Spherical mercator helpers after globalmaptiles.py (Klokan Petr Pridal,
# GDAL2Tiles, GDAL license), reduced to what is needed for MBTiles metadata.

import math

MAXZOOMLEVEL = 32

class GlobalMercator(object):
    """
    TMS Global Mercator Profile (EPSG:3857)
    ---------------------------------------
    Tile coordinates are in TMS notation, origin [0,0] in the bottom-left
    corner, which is the numbering MBTiles uses for tile_row.

         LatLon      <->       Meters      <->     Pixels    <->       Tile
     WGS84 coordinates   Spherical Mercator  Pixels in pyramid  Tiles in pyramid
    """

    def __init__(self, tileSize=256):
        "Initialize the TMS Global Mercator pyramid"
        self.tileSize = tileSize
        self.initialResolution = 2 * math.pi * 6378137 / self.tileSize
        # 156543.03392804062 for tileSize 256 pixels
        self.originShift = 2 * math.pi * 6378137 / 2.0
        # 20037508.342789244

    def MetersToLatLon(self, mx, my):
        "Converts XY point from Spherical Mercator to lat/lon in WGS84 Datum"
        lon = (mx / self.originShift) * 180.0
        lat = (my / self.originShift) * 180.0
        lat = 180 / math.pi * (2 * math.atan(math.exp(lat * math.pi / 180.0)) - math.pi / 2.0)
        return lat, lon

    def Resolution(self, zoom):
        "Resolution (meters/pixel) for given zoom level (measured at Equator)"
        return self.initialResolution / (2**zoom)

    def TileBounds(self, tx, ty, zoom):
        "Returns bounds of the given TMS tile in EPSG:3857 coordinates"
        res = self.Resolution(zoom)
        minx = tx * self.tileSize * res - self.originShift
        miny = ty * self.tileSize * res - self.originShift
        maxx = (tx + 1) * self.tileSize * res - self.originShift
        maxy = (ty + 1) * self.tileSize * res - self.originShift
        return (minx, miny, maxx, maxy)

    def TileLatLonBounds(self, tx, ty, zoom):
        "Returns bounds of the given tile in latitude/longitude using WGS84 datum"
        bounds = self.TileBounds(tx, ty, zoom)
        minLat, minLon = self.MetersToLatLon(bounds[0], bounds[1])
        maxLat, maxLon = self.MetersToLatLon(bounds[2], bounds[3])
        return (minLat, minLon, maxLat, maxLon)

    def TileRangeLonLatBounds(self, minTx, minTy, maxTx, maxTy, zoom):
        """
        Returns (left, bottom, right, top) in degrees covering every tile of
        the inclusive TMS range at the given zoom. This is the order of the
        MBTiles "bounds" metadata value.
        """
        minLat, minLon, _, _ = self.TileLatLonBounds(minTx, minTy, zoom)
        _, _, maxLat, maxLon = self.TileLatLonBounds(maxTx, maxTy, zoom)
        return (minLon, minLat, maxLon, maxLat)
