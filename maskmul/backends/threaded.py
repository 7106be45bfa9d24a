import os
import logging
from concurrent.futures import ThreadPoolExecutor

from maskmul.backends.np import NumpyBackend

log = logging.getLogger(__name__)

class ThreadedBackend(NumpyBackend):
    """
    Host backend that splits the dot-product range into chunks and
    runs them on a pool of worker threads. numpy releases the GIL inside
    the per-chunk arithmetic.

    Parameters
    ----------
    nthreads : int
        Worker count. Defaults to $MASKMUL_NUM_THREADS, else the CPU count.
    chunk : int
        Items per work unit. Defaults to an even split across workers.
    """
    def __init__(self, device_id=0, nthreads=None, chunk=None):
        super(ThreadedBackend, self).__init__(device_id)
        nthreads = nthreads or int(os.environ.get("MASKMUL_NUM_THREADS", 0))
        self._nthreads = nthreads or os.cpu_count() or 1
        if chunk is not None and chunk < 1:
            raise ValueError("chunk must be positive, got %s" % chunk)
        self._chunk = chunk
        self._pool = ThreadPoolExecutor(max_workers=self._nthreads,
            thread_name_prefix='maskmul')
        log.info("using %d worker threads", self._nthreads)

    def get_max_threads(self):
        return self._nthreads

    def parallel_for(self, n, kernel, *args):
        if n == 0:
            return
        chunk = self._chunk or -(-n // self._nthreads)
        futures = [ self._pool.submit(kernel, lo, min(lo+chunk, n), *args)
                    for lo in range(0, n, chunk) ]
        log.debug("dispatched %d items in %d chunks", n, len(futures))
        for fut in futures:
            fut.result()

    def close(self):
        self._pool.shutdown(wait=True)

    def __del__(self):
        if hasattr(self, '_pool'):
            self._pool.shutdown(wait=False)
