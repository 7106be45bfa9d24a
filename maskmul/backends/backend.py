import abc
import logging
import numpy as np
import scipy.sparse as spp

import maskmul.operators as op
from maskmul.matrices import SparseRowStore as _SparseRowStore, Transposed, DTYPE
from maskmul.util import profile

log = logging.getLogger(__name__)


def dotsum_kernel(lo, hi, col_idx, rows, cols, dotsum, row_len):
    """
    dotsum[i] = rows[i,:] . cols[col_idx[i],:]  for i in [lo, hi)

    Each term is accumulated left to right in single precision, so every
    i gets the same result no matter how [0, m) is split up.
    """
    r = rows[lo:hi]
    c = cols[col_idx[lo:hi]]
    acc = np.zeros(hi - lo, dtype=dotsum.dtype)
    for j in range(row_len):
        acc += r[:,j] * c[:,j]
    dotsum[lo:hi] = acc


class Backend(object, metaclass=abc.ABCMeta):
    """
    Provides the routines and data structures necessary to evaluate
    masked sparse products on different platforms.
    """
    def __init__(self, device_id=0):
        profile._backend = self

    class dndarray(object, metaclass=abc.ABCMeta):
        """
        N-dimensional row-major array in device memory.

        Parameters
        ----------
        backend : maskmul.backends.Backend
            Backend instance.
        shape : tuple
            Array shape, a la numpy.
        dtype : numpy.dtype
            Datatype.
        """
        _memory = dict()

        def __init__(self, backend, shape, dtype, name=''):
            assert isinstance(shape, (tuple,list))
            assert isinstance(backend, Backend), type(backend)
            self.dtype = np.dtype(dtype)
            self.shape = tuple(shape)
            self._backend = backend
            self._arr = self._malloc(self.shape, self.dtype)
            self._memory[ id(self._arr) ] = (name, self.shape, self.dtype)

        @property
        def size(self):
            return int(np.prod(self.shape))

        @property
        def itemsize(self):
            return self.dtype.itemsize

        @property
        def nbytes(self):
            return self.size * self.dtype.itemsize

        @property
        def ndim(self):
            return len(self.shape)

        def copy_from(self, arr):
            ''' copy to device when both arrays exist '''
            assert isinstance(arr, np.ndarray)
            if self.size != arr.size:
                raise ValueError("size mismatch, expected {} got {}" \
                    .format(self.shape, arr.shape))
            if self.dtype != arr.dtype:
                raise TypeError("dtype mismatch, expected {} got {}" \
                    .format(self.dtype, arr.dtype))
            if not arr.flags['C_CONTIGUOUS']:
                raise TypeError("order mismatch, expected 'C' got 'F'")
            self._copy_from(arr)

        def copy_to(self, arr):
            ''' copy from device when both arrays exist '''
            assert isinstance(arr, np.ndarray)
            if self.size != arr.size:
                raise ValueError("size mismatch, expected {} got {}" \
                    .format(self.shape, arr.shape))
            if self.dtype != arr.dtype:
                raise TypeError("dtype mismatch, expected {} got {}" \
                    .format(self.dtype, arr.dtype))
            self._copy_to(arr)

        def to_host(self):
            ''' copy from device when host array doesnt exist '''
            arr = np.ndarray(self.shape, self.dtype, order='C')
            self.copy_to(arr)
            return arr

        @classmethod
        def to_device(cls, backend, arr, name=''):
            ''' copy to device when device array doesnt exist '''
            arr_c = np.require(arr, requirements='C')
            d_arr = cls(backend, arr_c.shape, arr_c.dtype, name=name)
            d_arr.copy_from(arr_c)
            return d_arr

        def __del__(self):
            """ destructor """
            if hasattr(self, '_arr'):
                self._memory.pop( id(self._arr), None )
                self._free()

        @abc.abstractmethod
        def _copy_from(self, arr):
            """ copy HtoD implementation """
            raise NotImplementedError()

        @abc.abstractmethod
        def _copy_to(self, arr):
            """ copy DtoH implementation """
            raise NotImplementedError()

        @abc.abstractmethod
        def _malloc(self, shape, dtype):
            """ malloc implementation """
            raise NotImplementedError()

        @abc.abstractmethod
        def _free(self):
            """ free implementation """
            raise NotImplementedError()

        @abc.abstractmethod
        def _zero(self):
            """ set to zero """
            raise NotImplementedError()

    def copy_array(self, arr, name=''):
        return self.dndarray.to_device(self, arr, name=name)

    def zero_array(self, shape, dtype, name=''):
        d_arr = self.empty_array(shape, dtype, name=name)
        d_arr._zero()
        return d_arr

    def empty_array(self, shape, dtype, name=''):
        d_arr = self.dndarray(self, shape, dtype, name=name)
        return d_arr

    def get_max_threads(self):
        return 1

    def barrier(self):
        pass

    def close(self):
        """ Releases resources held by the backend. """
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def mem_usage(self):
        nbytes = 0
        log.info("Memory report:")
        table = []
        for name, shape, dtype in self.dndarray._memory.values():
            n = int(np.prod(shape)) * dtype.itemsize
            table.append( (name, n, shape, dtype) )
            nbytes += n
        for name, n, shape, dtype in sorted(table, key=lambda tup: tup[1]):
            if n > 1e6:
                log.info("  %40s: % 3.0f MB, %20s, %15s", name, n/1e6, shape, dtype)
        return nbytes

    # -----------------------------------------------------------------------
    # Operator Building Interface
    # -----------------------------------------------------------------------

    def SparseRowStore(self, M, name=''):
        """ B := M, in padded sparse row storage """
        if isinstance(M, _SparseRowStore):
            return M
        elif isinstance(M, Transposed):
            return M.materialize()
        elif spp.issparse(M):
            return _SparseRowStore.from_scipy(M, name=name)
        elif isinstance(M, np.ndarray):
            return _SparseRowStore.from_dense(M, name=name)
        else:
            raise TypeError("cannot build a sparse matrix from %s" % type(M).__name__)

    def MaskedProduct(self, P, B, **kwargs):
        """ C := P && A * B' """
        return op.MaskedProduct(self, P, self.SparseRowStore(B), **kwargs)

    # -----------------------------------------------------------------------
    # Execution Routines
    # -----------------------------------------------------------------------

    def parallel_for(self, n, kernel, *args):
        """
        Runs kernel(lo, hi, *args) over disjoint chunks that together
        cover [0, n). Chunks may run in any order or concurrently.
        """
        if n > 0:
            kernel(0, n, *args)

    def _check_dot_args(self, dotsum, col_idx, rows, cols, row_len):
        for arr in (dotsum, col_idx, rows, cols):
            assert isinstance(arr, self.dndarray), type(arr)
        m = dotsum.size
        if col_idx.shape != (m,) or rows.shape[0] != m:
            raise ValueError("size mismatch, {} sums for {} indices and {} rows" \
                .format(m, col_idx.shape, rows.shape))
        if rows.shape[1] != row_len or cols.shape[1] != row_len:
            raise ValueError("row length mismatch, expected {} got {} and {}" \
                .format(row_len, rows.shape[1], cols.shape[1]))

    def batched_dot(self, dotsum, col_idx, rows, cols, row_len):
        """
        dotsum[i] = rows[i,:] . cols[col_idx[i],:] for every i.

        The default runs `dotsum_kernel` through `parallel_for`, which
        suits backends whose arrays live in host memory.
        """
        self._check_dot_args(dotsum, col_idx, rows, cols, row_len)
        self.parallel_for(dotsum.size, dotsum_kernel,
            col_idx._arr, rows._arr, cols._arr, dotsum._arr, row_len)

    @abc.abstractmethod
    def scatter(self, y, row_idx, col_idx, dotsum, alpha=1, beta=0):
        """
        y = beta * y;  y[row_idx[i], col_idx[i]] += alpha * dotsum[i]

        Target cells must be pairwise distinct.
        """
        raise NotImplementedError()

    class ell_matrix(object):
        """
        Device-resident edge weights of a `SparseRowStore`.
        """
        def __init__(self, backend, A, name='mat'):
            assert isinstance(A, _SparseRowStore), type(A)
            self._backend = backend
            self.edge_weights = backend.copy_array(
                np.ascontiguousarray(A.edge_weights), name=name+".edgeWeights")
            self.shape = A.shape
            self.row_len = A.max_neighbors
            self.version = A._version
            nonempty = np.count_nonzero(A.neighbor_count) / max(A.shape[0], 1)
            log.debug("matrix %s has %2d%% non-empty rows and row length %d",
                name, 100*nonempty, self.row_len)

        @property
        def nbytes(self):
            return self.edge_weights.nbytes
