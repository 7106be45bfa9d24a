import io
import logging
import numpy as np

from maskmul.condense import condense
from maskmul.errors import DimensionMismatch
from maskmul.matrices import SparseRowStore, as_array, DTYPE
from maskmul.util import profile

log = logging.getLogger(__name__)

class Operator(object):
    def __init__(self, backend, name=''):
        self._backend = backend
        self._name = name

    def eval(self, y, x, alpha=1, beta=0):
        """
        y = alpha * Op(x) + beta * y
        """
        M, N = self.shape
        if x.shape[0] != M:
            raise DimensionMismatch("Dimension mismatch: {} applied to {} rows, expected {}".format(
                self._name or type(self).__name__, x.shape[0], M), x.shape, self.shape)
        if tuple(y.shape) != (M, N):
            raise DimensionMismatch("Dimension mismatch: output has shape {}, expected {}".format(
                tuple(y.shape), (M, N)), y.shape, self.shape)
        self._eval(y, x, alpha=alpha, beta=beta)

    @property
    def shape(self):
        raise NotImplementedError()

    @property
    def dtype(self):
        return DTYPE

    def __mul__(self, other):
        if isinstance(other, np.ndarray):
            x = np.require(other, dtype=DTYPE, requirements='C')
            x_d = self._backend.copy_array(x, name='x')
            y_d = self._backend.zero_array(self.shape, dtype=self.dtype, name='y')
            self.eval(y_d, x_d)
            return y_d.to_host()
        else:
            raise ValueError("Cannot multiply Operator by %s" % type(other))

    def dump(self):
        """
        Returns a textual representation of the operator.
        """
        with io.StringIO() as f:
            self._dump(file=f, indent=0)
            s = f.getvalue()
        return s

    def _dump(self, file, indent=0):
        name = self._name or 'noname'
        size = self.memusage() / 1e6
        print('{name}, {type}, {shape}, {size} MB, {dtype}'.format(
            name='|   ' * indent + name, type=type(self).__name__,
            size=size, shape=self.shape, dtype=self.dtype), file=file)

    def memusage(self):
        return 0


class MaskedProduct(Operator):
    """
    C := P && A * B'

    Evaluates the product of a dense n x k matrix A with the transpose of
    a sparse k x k matrix B, computing only the cells selected by the
    n x k mask P. Cells outside the mask are zero.
    """
    def __init__(self, backend, P, B, **kwargs):
        super().__init__(backend, **kwargs)
        assert isinstance(B, SparseRowStore), type(B)
        P = as_array(P)
        if P.shape[1] != B.shape[0]:
            raise DimensionMismatch("Mismatched shapes in MaskedProduct: mask {} against sparse {} ({})".format(
                P.shape, B.shape, self._name), P.shape, B.shape)
        self._mask = P
        self._sparse = B
        self._matrix_d = None

    @property
    def shape(self):
        return self._mask.shape

    @property
    def mask(self):
        return self._mask

    @property
    def sparse(self):
        return self._sparse

    @property
    def nrows(self):
        """ Number of dot products one evaluation computes. """
        nonempty = self._sparse.neighbor_count > 0
        return int(np.count_nonzero((self._mask != 0) & nonempty[None,:]))

    def memusage(self):
        m, f = self.nrows, self._sparse.max_neighbors
        condensed = m * (f * DTYPE.itemsize + 2 * np.dtype('int32').itemsize)
        dotsum = m * DTYPE.itemsize
        weights = self._sparse.edge_weights.nbytes
        return condensed + dotsum + weights

    def _get_or_create_device_matrix(self):
        B = self._sparse
        if self._matrix_d is None or self._matrix_d.version != B._version:
            log.debug("storing %s edge weights on device", self._name or 'noname')
            self._matrix_d = self._backend.ell_matrix(self._backend, B, self._name or 'mat')
        return self._matrix_d

    def condense(self, A):
        return condense(self._mask, self._sparse, A)

    def _eval(self, y, x, alpha=1, beta=0):
        b = self._backend
        if isinstance(x, b.dndarray):
            x = x.to_host()
        PA = self.condense(x)
        B_d = self._get_or_create_device_matrix()
        m, f = PA.data.shape

        rows    = b.copy_array(PA.data,    name='condensed.rows')
        col_idx = b.copy_array(PA.col_idx, name='condensed.col_idx')
        row_idx = b.copy_array(PA.row_idx, name='condensed.row_idx')
        dotsum  = b.zero_array((m,), DTYPE, name='dotsum')

        nflops = 2 * m * f
        nbytes = 2 * rows.nbytes + col_idx.nbytes + dotsum.nbytes
        with profile("dotsum", nflops=nflops, nbytes=nbytes, shape=(m, f)):
            b.batched_dot(dotsum, col_idx, rows, B_d.edge_weights, f)

        nbytes = dotsum.nbytes + col_idx.nbytes + row_idx.nbytes + \
                 (0 if beta == 0 else y.nbytes)
        with profile("scatter", nbytes=nbytes):
            b.scatter(y, row_idx, col_idx, dotsum, alpha=alpha, beta=beta)
