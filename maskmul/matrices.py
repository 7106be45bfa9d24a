import abc
import logging
import numpy as np
import scipy.sparse as spp

from maskmul.errors import DimensionMismatch, DegenerateMatrix, MissingEntry

log = logging.getLogger(__name__)

DTYPE = np.dtype('float32')
INDEX = np.dtype('int32')


class Matrix(object, metaclass=abc.ABCMeta):
    """
    Anything with a row count, a column count and an element at (row, col).
    Printing and comparison utilities depend only on this interface.
    """
    def __init__(self, name=''):
        self._name = name

    @property
    @abc.abstractmethod
    def shape(self):
        raise NotImplementedError()

    @property
    def dtype(self):
        return DTYPE

    @property
    def row_count(self):
        return self.shape[0]

    @property
    def col_count(self):
        return self.shape[1]

    @abc.abstractmethod
    def element_at(self, row, col):
        raise NotImplementedError()

    def __getitem__(self, idx):
        row, col = idx
        return self.element_at(row, col)

    def todense(self):
        out = np.zeros(self.shape, dtype=self.dtype)
        for i in range(self.row_count):
            for j in range(self.col_count):
                out[i,j] = self.element_at(i, j)
        return out

    def dump(self):
        """
        Returns a one-line description of the matrix.
        """
        return '{name}, {type}, {shape}, {dtype}'.format(
            name=self._name or 'noname', type=type(self).__name__,
            shape=self.shape, dtype=self.dtype)

    def _check_bounds(self, row, col):
        nrow, ncol = self.shape
        if not (0 <= row < nrow and 0 <= col < ncol):
            raise IndexError("index ({}, {}) out of bounds for {}x{} matrix".format(
                row, col, nrow, ncol))


class DenseMatrix(Matrix):
    def __init__(self, M, name=''):
        super().__init__(name=name)
        M = np.require(M, dtype=DTYPE, requirements='C')
        if M.ndim != 2:
            raise DimensionMismatch("expected a 2-D matrix, got shape {}".format(M.shape), M.shape)
        self._matrix = M

    @property
    def shape(self):
        return self._matrix.shape

    @property
    def array(self):
        return self._matrix

    def element_at(self, row, col):
        self._check_bounds(row, col)
        return float(self._matrix[row, col])

    def todense(self):
        return self._matrix


def as_matrix(obj, name=''):
    """ Wraps numpy arrays as `DenseMatrix`; passes `Matrix` objects through. """
    if isinstance(obj, Matrix):
        return obj
    return DenseMatrix(np.asarray(obj), name=name)


def as_array(obj):
    """ Returns the dense contents of `obj` as a row-major float32 array. """
    if isinstance(obj, Matrix):
        obj = obj.todense()
    arr = np.require(obj, dtype=DTYPE, requirements='C')
    if arr.ndim != 2:
        raise DimensionMismatch("expected a 2-D matrix, got shape {}".format(arr.shape), arr.shape)
    return arr


class SparseRowStore(Matrix):
    """
    Square-or-rectangular sparse matrix stored as padded rows (ELLPACK).

    Row `i` holds `num_neighbors[i]` non-zero entries whose columns
    `neighbors[i, :num_neighbors[i]]` are strictly increasing, with the
    matching values in `edge_weights[i, :num_neighbors[i]]`. Both arrays are
    `max_neighbors` wide; the padding past each row's valid prefix is zero.

    The sparsity pattern is fixed once built. Values at existing
    non-zero positions may be updated.

    Parameters
    ----------
    shape : tuple
        (rows, cols) of the dense matrix this represents.
    neighbors : np.ndarray
        rows x f column indices.
    num_neighbors : np.ndarray
        Number of valid entries in each row.
    edge_weights : np.ndarray
        rows x f values.
    """
    def __init__(self, shape, neighbors, num_neighbors, edge_weights, name=''):
        super().__init__(name=name)
        self._shape = tuple(int(s) for s in shape)
        self._neighbors = np.require(neighbors, dtype=INDEX, requirements='C')
        self._num_neighbors = np.require(num_neighbors, dtype=INDEX, requirements='C')
        self._edge_weights = np.require(edge_weights, dtype=DTYPE, requirements=['C', 'W'])
        nrow, f = self._neighbors.shape
        assert nrow == self._shape[0], "neighbors has {} rows, expected {}".format(nrow, self._shape[0])
        assert self._edge_weights.shape == (nrow, f)
        assert self._num_neighbors.shape == (nrow,)
        assert np.all(self._num_neighbors <= f)
        self._neighbors.flags.writeable = False
        self._num_neighbors.flags.writeable = False
        self._version = 0

    @classmethod
    def from_dense(cls, a, name=''):
        """
        Construct a sparse matrix of a dense matrix.
        """
        a = np.require(a, dtype=DTYPE, requirements='C')
        if a.ndim != 2:
            raise DimensionMismatch("expected a 2-D matrix, got shape {}".format(a.shape), a.shape)

        # count the entries each row needs
        nonzero = np.abs(a) > 0
        num_neighbors = np.count_nonzero(nonzero, axis=1)

        # np.nonzero walks rows in order and each row's columns ascending
        rows, cols = np.nonzero(nonzero)
        return cls._pack(a.shape, rows, cols, a[rows, cols], num_neighbors, name)

    @classmethod
    def from_scipy(cls, M, name=''):
        """
        Construct a sparse matrix from any `scipy.sparse.spmatrix`.
        Explicitly stored zeros are dropped.
        """
        M = spp.csr_matrix(M, dtype=DTYPE, copy=True)
        M.sum_duplicates()
        M.eliminate_zeros()
        M.sort_indices()
        num_neighbors = np.diff(M.indptr)
        rows = np.repeat(np.arange(M.shape[0]), num_neighbors)
        return cls._pack(M.shape, rows, M.indices, M.data, num_neighbors, name)

    @classmethod
    def _pack(cls, shape, rows, cols, vals, num_neighbors, name):
        nrow, ncol = shape
        f = int(num_neighbors.max()) if nrow else 0
        if f == 0:
            raise DegenerateMatrix("cannot build a sparse matrix from a {}x{} matrix "
                "with no non-zero entries".format(nrow, ncol))

        starts = np.zeros(nrow, dtype=np.intp)
        np.cumsum(num_neighbors[:-1], out=starts[1:])
        slots = np.arange(len(rows)) - starts[rows]

        neighbors = np.zeros((nrow, f), dtype=INDEX)
        edge_weights = np.zeros((nrow, f), dtype=DTYPE)
        neighbors[rows, slots] = cols
        edge_weights[rows, slots] = vals
        log.debug("sparse matrix %s: %dx%d, %d nonzeros, max %d per row",
            name or 'noname', nrow, ncol, len(rows), f)
        return cls(shape, neighbors, num_neighbors, edge_weights, name=name)

    @property
    def shape(self):
        return self._shape

    @property
    def max_neighbors(self):
        return self._neighbors.shape[1]

    @property
    def neighbor_columns(self):
        return self._neighbors

    @property
    def neighbor_count(self):
        return self._num_neighbors

    @property
    def edge_weights(self):
        w = self._edge_weights.view()
        w.flags.writeable = False
        return w

    @property
    def nnz(self):
        return int(self._num_neighbors.sum())

    @property
    def nbytes(self):
        return self._neighbors.nbytes + self._num_neighbors.nbytes + self._edge_weights.nbytes

    @property
    def T(self):
        return Transposed(self)

    def find_column(self, row, col):
        """
        Position of `col` in the valid prefix of `row`, or -1 if the
        entry is not stored.
        """
        self._check_bounds(row, col)
        n = self._num_neighbors[row]
        cols = self._neighbors[row, :n]
        idx = int(np.searchsorted(cols, col))
        if idx < n and cols[idx] == col:
            return idx
        return -1

    def lookup(self, row, col, transposed=False):
        if transposed:
            row, col = col, row
        idx = self.find_column(row, col)
        if idx < 0:
            return 0.0
        return float(self._edge_weights[row, idx])

    def update(self, row, col, value, transposed=False):
        """
        Overwrite the value at an existing non-zero position. Raises
        `MissingEntry` if (row, col) is not part of the sparsity pattern.
        """
        r, c = (col, row) if transposed else (row, col)
        idx = self.find_column(r, c)
        if idx < 0:
            raise MissingEntry(row, col)
        self._edge_weights[r, idx] = value
        self._version += 1

    def element_at(self, row, col):
        return self.lookup(row, col)

    def __setitem__(self, idx, value):
        row, col = idx
        self.update(row, col, value)

    def _valid(self):
        f = self.max_neighbors
        return np.arange(f)[None,:] < self._num_neighbors[:,None]

    def todense(self):
        valid = self._valid()
        rows = np.nonzero(valid)[0]
        out = np.zeros(self.shape, dtype=DTYPE)
        out[rows, self._neighbors[valid]] = self._edge_weights[valid]
        return out

    def to_scipy(self):
        """ Returns a `scipy.sparse.csr_matrix` copy. """
        valid = self._valid()
        indptr = np.zeros(self.shape[0] + 1, dtype=INDEX)
        np.cumsum(self._num_neighbors, out=indptr[1:])
        return spp.csr_matrix(
            (self._edge_weights[valid], self._neighbors[valid], indptr),
            shape=self.shape)


class Transposed(Matrix):
    """
    Transposed view of a `SparseRowStore`. Shares storage with the store,
    swapping (row, col) on every access.
    """
    def __init__(self, store):
        super().__init__(name=store._name + '.T' if store._name else '')
        assert isinstance(store, SparseRowStore), type(store)
        self._store = store

    @property
    def shape(self):
        return tuple(reversed(self._store.shape))

    @property
    def T(self):
        return self._store

    def element_at(self, row, col):
        return self._store.lookup(row, col, transposed=True)

    def update(self, row, col, value):
        self._store.update(row, col, value, transposed=True)

    def __setitem__(self, idx, value):
        row, col = idx
        self.update(row, col, value)

    def todense(self):
        return np.ascontiguousarray(self._store.todense().T)

    def materialize(self):
        """ Builds a new `SparseRowStore` holding the transposed matrix. """
        return SparseRowStore.from_scipy(self._store.to_scipy().T, name=self._name)
