# -*- coding: utf-8 -*-

# python imports
import sys
import datetime
from threading import RLock

def estimate(processed, total, elapsed):
    """
    Returns (percent, remaining) for processed of total tiles after elapsed
    time. percent is rounded to one decimal, remaining is a timedelta or None
    as long as nothing has been processed.
    """
    if total <= 0:
        return 100.0, datetime.timedelta(0)
    percent = round(processed * 100. / total, 1)
    if processed == 0:
        return percent, None
    return percent, elapsed * (total - processed) / processed

def formatDuration(td):
    if td is None:
        return "unknown"
    return str(datetime.timedelta(seconds=int(td.total_seconds())))


class MergeProgress:
    """ completion counter shared by all writer workers """

    def __init__(self, total=0, interval=1000, out=None):
        self.total = total
        self.interval = interval
        self.out = out
        self.processed = 0
        self.skipped = 0
        self.start = datetime.datetime.now()
        self.mutex = RLock()

    def setMaximum(self, total):
        with self.mutex:
            self.total = total

    def incValue(self, n=1):
        """ count n merged tiles, report every interval tiles, return the new count """
        with self.mutex:
            due = False
            for _ in range(n):
                if self.processed >= self.total:
                    break
                self.processed += 1
                if self.processed % self.interval == 0:
                    due = True
            if due:
                self.report()
            return self.processed

    def recordFailure(self):
        with self.mutex:
            self.skipped += 1
            return self.skipped

    def elapsed(self):
        return datetime.datetime.now() - self.start

    def render(self, final=False):
        with self.mutex:
            elapsed = self.elapsed()
            percent, remaining = estimate(self.processed, self.total, elapsed)
            line = "Progress: %s %d/%d %5.1f %% ETA: %s" % (
                formatDuration(elapsed), self.processed, self.total, percent, formatDuration(remaining))
            if final:
                line += " skipped: %d" % self.skipped
            return line

    def report(self, final=False):
        out = self.out if self.out is not None else sys.stdout
        with self.mutex:
            out.write("\r" + self.render(final) + ("\n" if final else ""))
            out.flush()


class NoProgress(MergeProgress):
    """ counts like MergeProgress but never prints """

    def report(self, final=False):
        pass
