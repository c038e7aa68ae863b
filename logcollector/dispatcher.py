"""
Dispatcher Module
Hands each accepted QSO to the outputs

The ADIF file is written inline, before anything else. MQTT and Wavelog
each get their own worker thread and bounded queue, so a slow or dead
broker/server never holds up the UDP receive loop. Delivery to those is
best-effort: no retry, a full queue drops the QSO for that output only.

Every delivery ends in a SinkResult passed to the completion callback.
"""

import queue
import threading
from dataclasses import dataclass
from typing import Optional

from .errors import SinkError


@dataclass
class SinkResult:
    sink: str
    ok: bool
    detail: str = ''
    status: Optional[int] = None


class SinkWorker:
    """Background thread feeding one output from its own queue"""

    def __init__(self, sink, on_result, queue_size=100):
        self.sink = sink
        self.on_result = on_result
        self.queue = queue.Queue(maxsize=queue_size)
        self.running = False
        self.thread = None

    @property
    def name(self):
        return self.sink.name

    def start(self):
        self.running = True
        self.thread = threading.Thread(target=self._worker_loop, name=f"sink-{self.name}", daemon=True)
        self.thread.start()

    def submit(self, record):
        """Queue a record without blocking; False if the queue is full"""
        try:
            self.queue.put_nowait(record)
            return True
        except queue.Full:
            return False

    def _worker_loop(self):
        while self.running:
            try:
                record = self.queue.get(timeout=1.0)
            except queue.Empty:
                continue

            try:
                self.on_result(deliver(self.sink, record))
            finally:
                self.queue.task_done()

    def stop(self):
        self.running = False
        if self.thread:
            self.thread.join(timeout=2)
            self.thread = None


def deliver(sink, record):
    """Run one delivery and turn its outcome into a SinkResult"""
    try:
        detail = sink.send(record)
    except SinkError as e:
        return SinkResult(sink.name, False, str(e), e.status)
    except Exception as e:
        return SinkResult(sink.name, False, f"{type(e).__name__}: {e}")
    return SinkResult(sink.name, True, '' if detail is None else str(detail))


class Dispatcher:
    def __init__(self, diagnostics, file_sink=None, sinks=(), queue_size=100, on_result=None):
        """
        Initialize dispatcher

        Args:
            diagnostics: Diagnostics sink
            file_sink: ADIFFileSink or None
            sinks: Non-durable outputs (objects with .name and .send(record))
            queue_size: Max QSOs waiting per output
            on_result: Optional callback(SinkResult), called after logging
        """
        self.log = diagnostics.module('Dispatcher')
        self.file_sink = file_sink
        self.sinks = list(sinks)
        self.on_result = on_result
        self.workers = [SinkWorker(sink, self._handle_result, queue_size) for sink in self.sinks]

    def start(self):
        if self.file_sink:
            self.file_sink.start()
        for sink in self.sinks:
            start = getattr(sink, 'start', None)
            if start:
                start()
        for worker in self.workers:
            worker.start()
            self.log.debug(f"Started {worker.name} worker thread")

    def _handle_result(self, result):
        if result.ok:
            detail = f" ({result.detail})" if result.detail else ''
            self.log.info(f"{result.sink}: QSO delivered{detail}")
        else:
            status = f" [HTTP {result.status}]" if result.status is not None else ''
            self.log.error(f"{result.sink}: delivery failed{status}: {result.detail}")

        if self.on_result:
            try:
                self.on_result(result)
            except Exception as e:
                self.log.error(f"Error in result callback: {e}")

    def dispatch(self, record):
        """
        Send a validated QSO to every configured output

        Returns immediately after the ADIF write; network outputs are
        only queued.
        """
        if self.file_sink and self.file_sink.enabled:
            try:
                path = self.file_sink.append(record)
                self._handle_result(SinkResult(self.file_sink.name, True, path))
            except SinkError as e:
                self._handle_result(SinkResult(self.file_sink.name, False, str(e), e.status))

        for worker in self.workers:
            if worker.submit(record):
                self.log.trace(f"{worker.name}: queued ({worker.queue.qsize()} waiting)")
            else:
                self._handle_result(SinkResult(worker.name, False, "queue full, QSO dropped"))

    def stop(self):
        for worker in self.workers:
            worker.stop()
        for sink in self.sinks:
            stop = getattr(sink, 'stop', None)
            if stop:
                try:
                    stop()
                except Exception as e:
                    self.log.error(f"Error stopping {sink.name}: {e}")
