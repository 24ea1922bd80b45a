# -*- coding: utf-8 -*-

import logging

INFO = 1
ERROR = 2
DEBUG = 4
WARNING = 8

#loglevel = DEBUG | INFO | ERROR | WARNING
loglevel = ERROR | WARNING

logger = logging.getLogger("mbtiles_merge")

_levels = {
    INFO: logging.INFO,
    ERROR: logging.ERROR,
    DEBUG: logging.DEBUG,
    WARNING: logging.WARNING,
}

def setLogLevel(mask):
    global loglevel
    loglevel = mask

def log(level, *args):
    if (loglevel & level) != 0:
        logger.log(_levels[level], " ".join(map(str, args)))
