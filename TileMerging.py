# -*- coding: utf-8 -*-

# python imports
import os
import queue
import threading
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
# local imports
from smlogging import *
from TileStorage import MBTilesStorage, StoreError, CommitError
from MergeProgress import MergeProgress

MergeResult = namedtuple("MergeResult", ["total", "processed", "skipped", "pages"])


class ConfigError(Exception):
    """ bad option values or missing input files """
    pass


class MergeError(Exception):
    """ a writer worker died from something other than a store error """
    pass


class MergeOptions:

    readBatch = 1
    writeConcurrency = 1
    progressInterval = 1000
    # 0 means queueFactor * writeConcurrency
    queueSize = 0
    queueFactor = 4
    updateMetadata = False

    def __init__(self, **kwargs):
        for name, value in kwargs.items():
            if name.startswith("_") or not hasattr(MergeOptions, name) \
                    or callable(getattr(MergeOptions, name)):
                raise ConfigError("unknown merge option %s" % name)
            setattr(self, name, value)
        self.validate()

    def validate(self):
        for name in ("readBatch", "writeConcurrency", "progressInterval"):
            value = getattr(self, name)
            if type(value) != int or value < 1:
                raise ConfigError("%s must be a positive integer, got %r" % (name, value))
        if type(self.queueSize) != int or self.queueSize < 0:
            raise ConfigError("queueSize must be a non-negative integer, got %r" % (self.queueSize,))

    def maxPending(self):
        return self.queueSize or self.queueFactor * self.writeConcurrency


def pageCount(total, readBatch):
    """ number of pages of readBatch tiles needed to cover total tiles """
    return (total + readBatch - 1) // readBatch


class PageReader:
    """
    Iterates over all tile records of the source, one page fetch at a time.
    The next page is only requested after every record of the current page
    has been handed on, so at most one page of tile data is held here.
    """

    def __init__(self, storage, total, readBatch):
        self.storage = storage
        self.total = total
        self.readBatch = readBatch
        self.fetched = 0

    def pages(self):
        return pageCount(self.total, self.readBatch)

    def __iter__(self):
        for page in range(self.pages()):
            offset = page * self.readBatch
            records = self.storage.fetch_page(offset, self.readBatch)
            self.fetched += 1
            log(DEBUG, "Fetched page", page, "offset", offset, "with", len(records), "tiles")
            for record in records:
                yield record


class MergeWriter:
    """
    Pool of worker threads writing tile records into the target storage.
    Records are handed over through a bounded queue, so put() blocks the
    reader while the workers are behind.
    """

    pollInterval = 0.1

    def __init__(self, storage, progress, workers=1, maxPending=4):
        self.storage = storage
        self.progress = progress
        self.workers = workers
        self.queue = queue.Queue(maxsize=maxPending)
        self.closing = threading.Event()
        self.executor = None
        self.futures = []

    def start(self):
        self.executor = ThreadPoolExecutor(max_workers=self.workers,
                                           thread_name_prefix="merge-writer")
        self.futures = [self.executor.submit(self._work) for _ in range(self.workers)]
        log(DEBUG, "Started", self.workers, "writer workers")

    def _work(self):
        while True:
            try:
                record = self.queue.get(timeout=self.pollInterval)
            except queue.Empty:
                # no puts happen once closing is set
                if self.closing.is_set() and self.queue.empty():
                    return
                continue
            try:
                self.writeRecord(record)
            finally:
                self.queue.task_done()

    def writeRecord(self, record):
        """ write one record, count the tiles its call committed """
        try:
            committed = self.storage.write_tile(record)
        except CommitError as err:
            self._skip(err.records, err)
            return False
        except StoreError as err:
            self._skip([record], err)
            return False
        if committed:
            self.progress.incValue(len(committed))
        return True

    def flush(self):
        """ commit the last partial batch after the workers are done """
        try:
            committed = self.storage.flush()
        except CommitError as err:
            self._skip(err.records, err)
            return False
        if committed:
            self.progress.incValue(len(committed))
        return True

    def _skip(self, records, err):
        for record in records:
            self.progress.recordFailure()
            log(ERROR, "Skipping tile z=%s x=%s y=%s tile_id=%s:" % (
                record.zoom_level, record.tile_column, record.tile_row, record.tile_id), err)

    def _checkWorkers(self):
        for f in self.futures:
            if f.done():
                exc = f.exception()
                raise MergeError("writer worker stopped: %r" % (exc,)) from exc

    def put(self, record):
        while True:
            self._checkWorkers()
            try:
                self.queue.put(record, timeout=self.pollInterval)
                return
            except queue.Full:
                pass

    def finish(self):
        """ wait until every queued record is written, then stop the workers """
        self.closing.set()
        if self.executor is None:
            return
        self.executor.shutdown(wait=True)
        for f in self.futures:
            exc = f.exception()
            if exc is not None:
                raise MergeError("writer worker failed: %r" % (exc,)) from exc
        log(DEBUG, "Writer workers finished")


def checkPaths(sourcePath, targetPath):
    for role, path in (("source", sourcePath), ("target", targetPath)):
        if not os.path.isfile(path):
            raise ConfigError("%s %s does not exist" % (role, path))
    if os.path.samefile(sourcePath, targetPath):
        raise ConfigError("source and target are the same file: %s" % sourcePath)


def merge(sourcePath, targetPath, options=None, progressClass=MergeProgress):
    """
    Copy every tile of sourcePath into targetPath. Images are deduplicated by
    tile_id, tiles at coordinates that already exist in the target are
    replaced. A tile that cannot be written is logged and skipped; fetch
    errors abort the merge with StoreError after the tiles already queued have
    been written. Both files are closed on every exit path.
    """
    if options is None:
        options = MergeOptions()
    options.validate()
    checkPaths(sourcePath, targetPath)

    source = MBTilesStorage(readonly=True)
    target = MBTilesStorage(readonly=False)
    try:
        source.open(sourcePath)
        target.open(targetPath)
        total = source.count()
        log(INFO, "%d tiles in %s" % (total, sourcePath))

        progress = progressClass(total, options.progressInterval)
        reader = PageReader(source, total, options.readBatch)
        writer = MergeWriter(target, progress, options.writeConcurrency, options.maxPending())
        log(INFO, "Merging %d pages of %d tiles with %d writers" % (
            reader.pages(), options.readBatch, options.writeConcurrency))

        writer.start()
        try:
            for record in reader:
                writer.put(record)
        finally:
            writer.finish()
            writer.flush()

        if options.updateMetadata:
            target.update_metadata()
        progress.report(final=True)
        if progress.skipped > 0:
            log(WARNING, "%d of %d tiles could not be merged" % (progress.skipped, total))
        return MergeResult(total, progress.processed, progress.skipped, reader.fetched)
    finally:
        try:
            source.close()
        finally:
            target.close()
