import pytest
import numpy as np
import numpy.testing as npt
from itertools import product

import maskmul.util
from maskmul.condense import condense, CondensedRowSet
from maskmul.errors import DimensionMismatch
from maskmul.matrices import SparseRowStore

def rand_problem(n, k, density, mask_density):
    A = maskmul.util.rand32f(n, k)
    Bh = maskmul.util.rand32f(k, k)
    Bh[np.random.rand(k, k) >= density] = 0
    Bh[0, 0] = 1
    P = (np.random.rand(n, k) < mask_density).astype(np.float32)
    return A, SparseRowStore.from_dense(Bh), P


@pytest.mark.parametrize("n,k,density,mask_density",
    product( [1,3,8], [2,9,20], [0.05,0.3,1.0], [0.1,0.5,1.0] ))
def test_condense(n, k, density, mask_density):
    A, B, P = rand_problem(n, k, density, mask_density)
    PA = condense(P, B, A)
    assert isinstance(PA, CondensedRowSet)

    # one condensed row per masked cell with a non-empty sparse row
    expected = {(r, c) for r, c in zip(*np.nonzero(P))
                if B.neighbor_count[c] > 0}
    targets = list(PA.targets())
    assert len(PA) == len(expected)
    assert len(set(targets)) == len(targets)
    assert set(targets) == expected

    assert PA.row_len == B.max_neighbors
    for i, (r, c) in enumerate(targets):
        nnb = B.neighbor_count[c]
        cols = B.neighbor_columns[c, :nnb]
        npt.assert_equal(PA.data[i, :nnb], A[r, cols])
        npt.assert_equal(PA.data[i, nnb:], 0)


def test_condense_order():
    A, B, P = rand_problem(6, 10, 0.5, 0.5)
    PA = condense(P, B, A)
    # sparse rows (output columns) outer, dense rows inner
    keys = list(zip(PA.col_idx.tolist(), PA.row_idx.tolist()))
    assert keys == sorted(keys)


def test_condense_skips_empty_sparse_rows():
    Bh = np.array([[1, 2, 0],
                   [0, 0, 0],
                   [0, 3, 4]], dtype=np.float32)
    B = SparseRowStore.from_dense(Bh)
    A = maskmul.util.sequential(2, 3)
    P = np.ones((2, 3), dtype=np.float32)
    PA = condense(P, B, A)
    assert len(PA) == 4
    assert 1 not in PA.col_idx
    npt.assert_equal(PA.col_idx, [0, 0, 2, 2])
    npt.assert_equal(PA.row_idx, [0, 1, 0, 1])
    npt.assert_equal(PA.data, [[0, 1], [3, 4], [1, 2], [4, 5]])


def test_condense_empty_mask():
    A, B, P = rand_problem(4, 5, 0.5, 0.5)
    PA = condense(np.zeros_like(P), B, A)
    assert len(PA) == 0
    assert PA.data.shape == (0, B.max_neighbors)
    assert PA.nbytes == 0


def test_condense_nonbinary_mask():
    A, B, P = rand_problem(4, 5, 1.0, 1.0)
    PA = condense(P * -2.5, B, A)
    assert len(PA) == 20


def test_condense_transposed():
    A, B, P = rand_problem(5, 7, 0.4, 0.6)
    PA = condense(P, B.T, A)
    PB = condense(P, B.T.materialize(), A)
    npt.assert_equal(PA.data, PB.data)
    npt.assert_equal(PA.row_idx, PB.row_idx)
    npt.assert_equal(PA.col_idx, PB.col_idx)


@pytest.mark.parametrize("P_shape,A_shape", [
    ((4,5), (3,5)), # row counts differ
    ((4,6), (4,5)), # mask columns != sparse rows
    ((4,5), (4,6)), # dense columns != sparse columns
])
def test_condense_dimension_mismatch(P_shape, A_shape):
    B = SparseRowStore.from_dense(np.eye(5, dtype=np.float32))
    P = np.ones(P_shape, dtype=np.float32)
    A = np.ones(A_shape, dtype=np.float32)
    with pytest.raises(DimensionMismatch):
        condense(P, B, A)


def test_condense_requires_sparse():
    with pytest.raises(TypeError):
        condense(np.ones((2,2)), np.eye(2), np.ones((2,2)))


def test_condense_clears_padding():
    # row 2 is shorter than f = 3, its padding slots point at column 0
    Bh = np.array([[1, 2, 3, 0],
                   [0, 4, 5, 6],
                   [0, 0, 7, 0],
                   [8, 0, 0, 9]], dtype=np.float32)
    B = SparseRowStore.from_dense(Bh)
    A = maskmul.util.sequential(2, 4) + 1
    P = np.ones((2, 4), dtype=np.float32)
    PA = condense(P, B, A)
    assert PA.data.dtype == np.float32
    assert PA.data.flags['C_CONTIGUOUS']
    rows = {t: row for t, row in zip(PA.targets(), PA.data.tolist())}
    assert rows[(0, 2)] == [3, 0, 0]
    assert rows[(1, 2)] == [7, 0, 0]
    assert rows[(1, 3)] == [5, 8, 0]
    assert rows[(0, 0)] == [1, 2, 3]
