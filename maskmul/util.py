import time
import logging
import numpy as np
import scipy.sparse as spp

from maskmul.errors import DimensionMismatch
from maskmul.matrices import as_matrix

log = logging.getLogger(__name__)

def rand32f(rows, cols, low=-100, high=100):
    """
    Constructs a `np.ndarray` of the requested shape and
    populates it with random integer-valued np.float32 values
    drawn from [low, high).
    """
    arr = np.random.randint(low, high, size=(rows, cols))
    return np.ascontiguousarray(arr, dtype=np.float32)


def randM(M, N, density):
    """
    Constructs a `scipy.sparse.spmatrix' of the requested shape and
    density and populates it with random np.float32 values.
    """
    return spp.random(M, N, density=density, format='csr', dtype=np.float32)


def sequential(rows, cols):
    """ Matrix filled row by row with 0, 1, 2, ... """
    return np.arange(rows * cols, dtype=np.float32).reshape(rows, cols)


def banded_sequential(rows, cols, band_width):
    """
    Matrix whose entries within `band_width` of the diagonal are filled
    row by row with 0, 1, 2, ... and are zero elsewhere.
    """
    i, j = np.indices((rows, cols))
    band = np.abs(i - j) < band_width
    arr = np.zeros((rows, cols), dtype=np.float32)
    arr[band] = np.arange(np.count_nonzero(band), dtype=np.float32)
    return arr


def identity(rows, cols):
    return np.eye(rows, cols, dtype=np.float32)


def transpose(a):
    return np.ascontiguousarray(np.asarray(a).T)


def mask(a, P):
    """ Returns a copy of `a` with every cell where P == 0 set to zero. """
    a, P = np.asarray(a), np.asarray(P)
    if a.shape != P.shape:
        raise DimensionMismatch("Matrix dimensions do not match: {} vs {}".format(
            a.shape, P.shape), a.shape, P.shape)
    return np.where(P != 0, a, 0).astype(a.dtype)


def naive_masked_product(A, B, P):
    """
    Dense reference for C = P && A * B', computed in double precision
    and rounded to single precision.
    """
    A, B = np.asarray(A, dtype=np.float64), np.asarray(B, dtype=np.float64)
    if A.shape[1] != B.shape[1]:
        raise DimensionMismatch("Cannot multiply {} matrix by transpose of {} matrix".format(
            A.shape, B.shape), A.shape, B.shape)
    return mask(A @ B.T, P).astype(np.float32)


def _g4(x, digits):
    # adding 0.0 folds -0.0 into 0.0
    return "{:.{}g}".format(float(x) + 0.0, digits)


def matrix_equal(a, e, digits=4):
    """
    True if `a` (actual) and `e` (expected) have the same shape and agree
    at every cell to `digits` significant digits. Accepts numpy arrays or
    anything implementing the `Matrix` interface.
    """
    a, e = as_matrix(a), as_matrix(e)
    if a.shape != e.shape:
        log.info("Matrix dimensions do not match: [%dx%d] vs [%dx%d]",
            a.shape[0], a.shape[1], e.shape[0], e.shape[1])
        return False
    for i in range(a.row_count):
        for j in range(a.col_count):
            actual, expected = _g4(a.element_at(i,j), digits), _g4(e.element_at(i,j), digits)
            if actual != expected:
                log.info("Error at element location [%d, %d]: %s found, %s expected",
                    i, j, actual, expected)
                return False
    return True


def format_matrix(a):
    """ Renders a matrix as a tab-separated grid, one line per row. """
    a = as_matrix(a)
    lines = []
    for i in range(a.row_count):
        lines.append("\t".join(str(a.element_at(i,j)) for j in range(a.col_count)))
    return "\n".join(lines) + "\n"


class profile(object):
    _backend = None

    def __init__(self, event, **kwargs):
        self._event = event
        self._kwargs = kwargs

    def __enter__(self):
        if not log.isEnabledFor(logging.DEBUG):
            return self

        if self._backend is not None:
            self._backend.barrier()
        self._start = time.time()

        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if not log.isEnabledFor(logging.DEBUG) or exc_type is not None:
            return

        if self._backend is not None:
            self._backend.barrier()
        data = dict(
            duration = time.time() - self._start,
            event    = self._event,
        )
        data.update(self._kwargs)

        if 'nflops' in data:
            data['gflop_rate'] = data['nflops'] / max(data['duration'], 1e-12) * 1e-9
            del data['nflops']

        if 'nbytes' in data:
            data['membw_rate'] = data['nbytes'] / max(data['duration'], 1e-12) * 1e-9
            del data['nbytes']

        kvs = sorted(data.items(), key=lambda kv: kv[0])

        def fmt(k, v):
            if isinstance(v, float):
                return k, "%2.5g" % v
            else:
                return k, repr(v)

        msg = "PROFILE(%s)" % ", ".join("%s=%s" % fmt(*kv) for kv in kvs)
        log.debug(msg)

        self.duration = data['duration']


class Timer(object):
    def __init__(self):
        self._times = []

    def __enter__(self):
        self._start = time.time()

    def __exit__(self, exc_type, exc_value, traceback):
        self._times.append( time.time() - self._start )

    @property
    def median(self):
        return np.median( self._times )

    @property
    def mean(self):
        return np.mean( self._times )

    @property
    def max(self):
        return np.amax( self._times )

    @property
    def min(self):
        return np.amin( self._times )
