"""
Condensation of a dense matrix against a mask and a sparse matrix.

To form C = P && A * B', only the cells selected by the mask P are
needed, and each of those is a dot product of a row of A with a row of
B restricted to B's non-zero columns. `condense` gathers exactly those
restricted rows of A, one per selected cell, so the product reduces to
a batch of fixed-width dot products.
"""
import logging
import numpy as np

from maskmul.errors import DimensionMismatch
from maskmul.matrices import SparseRowStore, Transposed, as_array, INDEX
from maskmul.util import profile

log = logging.getLogger(__name__)


class CondensedRowSet(object):
    """
    Rows of A condensed to the column layout of B.

    Parameters
    ----------
    data : np.ndarray
        m x f values; row i holds A[row_idx[i], neighbors[col_idx[i], j]]
        for each valid j and zeros past the valid prefix.
    row_idx : np.ndarray
        Target row in C of each condensed row.
    col_idx : np.ndarray
        Target column in C of each condensed row. Also the row of B
        whose edge weights the condensed row is dotted with.
    """
    def __init__(self, data, row_idx, col_idx):
        assert data.ndim == 2
        assert row_idx.shape == col_idx.shape == (data.shape[0],)
        self.data = data
        self.row_idx = row_idx
        self.col_idx = col_idx

    @property
    def nrows(self):
        return self.data.shape[0]

    @property
    def row_len(self):
        return self.data.shape[1]

    @property
    def nbytes(self):
        return self.data.nbytes + self.row_idx.nbytes + self.col_idx.nbytes

    def __len__(self):
        return self.nrows

    def targets(self):
        """ Iterates the (row, col) output cells, in condensed order. """
        return zip(self.row_idx.tolist(), self.col_idx.tolist())


def _check_shapes(P, B, A):
    n, k = P.shape
    if A.shape[0] != n:
        raise DimensionMismatch("mask has {} rows but dense matrix has {}".format(
            n, A.shape[0]), P.shape, A.shape)
    if B.shape[0] != k:
        raise DimensionMismatch("mask has {} columns but sparse matrix has {} rows".format(
            k, B.shape[0]), P.shape, B.shape)
    if A.shape[1] != B.shape[1]:
        raise DimensionMismatch("cannot multiply {} matrix by transpose of {} matrix".format(
            A.shape, B.shape), A.shape, B.shape)


def condense(P, B, A):
    """
    Extract the condensed rows of A needed to form C = P && A * B'.

    Since B is used transposed, row `col` of B produces column `col` of C.
    Cells are visited with B's rows outer and A's rows inner; a cell is
    kept when the mask selects it and row `col` of B has at least one
    non-zero entry.

    Parameters
    ----------
    P : n x k mask, any non-zero value selects a cell.
    B : k x k `SparseRowStore`, or a `Transposed` view of one.
    A : n x k dense matrix.

    Returns
    -------
    CondensedRowSet
    """
    if isinstance(B, Transposed):
        log.info("materializing transposed sparse matrix %s", B._name or 'noname')
        B = B.materialize()
    if not isinstance(B, SparseRowStore):
        raise TypeError("expected a SparseRowStore, got {}".format(type(B).__name__))
    P, A = as_array(P), as_array(A)
    _check_shapes(P, B, A)

    f = B.max_neighbors
    num_neighbors = B.neighbor_count

    with profile("condense", shape=A.shape, row_len=f):
        # count the cells selected by the mask whose sparse row is non-empty
        selected = (P != 0) & (num_neighbors > 0)[None,:]
        nrow = int(np.count_nonzero(selected))
        log.debug("condensing %d of %d masked cells into %dx%d rows",
            nrow, int(np.count_nonzero(P)), nrow, f)

        # walk B's rows (C's columns) outer and A's rows inner
        col_idx, row_idx = np.nonzero(selected.T)
        col_idx = col_idx.astype(INDEX)
        row_idx = row_idx.astype(INDEX)

        # padding columns are 0, so one gather covers every slot; the
        # slots that came from padding are cleared in place
        data = A[row_idx[:,None], B.neighbor_columns[col_idx]]
        data[np.arange(f)[None,:] >= num_neighbors[col_idx][:,None]] = 0

    return CondensedRowSet(np.ascontiguousarray(data), row_idx, col_idx)
