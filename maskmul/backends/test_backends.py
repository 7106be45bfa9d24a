import pytest
import logging
import threading
import numpy as np
import numpy.testing as npt
from itertools import product

log = logging.getLogger(__name__)

import maskmul.util
from maskmul.matrices import SparseRowStore
from maskmul.backends import available_backends, get_backend
from maskmul.backends.np import NumpyBackend
from maskmul.backends.threaded import ThreadedBackend
BACKENDS = available_backends()

@pytest.mark.parametrize("backend,n", product( BACKENDS, [4,8,129] ))
def test_array_init(backend, n):
    b = backend()
    arr = maskmul.util.rand32f(n, 3)
    d_arr = b.copy_array(arr)
    arr2 = d_arr.to_host()
    np.testing.assert_equal(arr, arr2)


@pytest.mark.parametrize("backend,n", product( BACKENDS, [4,8,129] ))
def test_array_copy_from(backend, n):
    b = backend()
    arr = maskmul.util.rand32f(n, 3)
    d_arr = b.zero_array(arr.shape, arr.dtype)
    d_arr.copy_from(arr)
    arr2 = d_arr.to_host()
    np.testing.assert_equal(arr, arr2)


@pytest.mark.parametrize("backend,n", product( BACKENDS, [4,8,129] ))
def test_array_copy_to(backend, n):
    b = backend()
    arr = np.random.rand(n).astype(np.float32)
    d_arr = b.copy_array(arr)
    arr2 = np.zeros_like(arr)
    d_arr.copy_to(arr2)
    np.testing.assert_equal(arr, arr2)


@pytest.mark.parametrize("backend,n", product( BACKENDS, [4,8,129] ))
def test_array_copy_from_size_mismatch(backend, n):
    b = backend()
    arr = np.random.rand(n).astype(np.float32)
    d_arr = b.zero_array((n+1,), arr.dtype)
    with pytest.raises(ValueError):
        d_arr.copy_from(arr)


@pytest.mark.parametrize("backend,n", product( BACKENDS, [4,8,129] ))
def test_array_copy_from_dtype_mismatch(backend, n):
    b = backend()
    arr = np.random.rand(n).astype(np.float32)
    d_arr = b.zero_array(arr.shape, np.float64)
    with pytest.raises(TypeError):
        d_arr.copy_from(arr)


@pytest.mark.parametrize("backend", BACKENDS)
def test_array_copy_from_order_mismatch(backend):
    b = backend()
    arr = np.asfortranarray(maskmul.util.rand32f(4, 5))
    d_arr = b.zero_array(arr.shape, arr.dtype)
    with pytest.raises(TypeError):
        d_arr.copy_from(arr)


@pytest.mark.parametrize("backend", BACKENDS)
def test_mem_usage(backend):
    b = backend()
    d_arr = b.zero_array((1000, 1000), np.float32, name='big')
    assert b.mem_usage() >= d_arr.nbytes


def dotsum_reference(col_idx, rows, cols):
    return np.einsum('ij,ij->i', rows.astype(np.float64),
        cols[col_idx].astype(np.float64))


@pytest.mark.parametrize("backend,m,k,f",
    product( BACKENDS, [0,1,7,100,1031], [1,5,64], [1,3,17] ))
def test_batched_dot(backend, m, k, f):
    b = backend()
    rows = np.random.rand(m, f).astype(np.float32)
    cols = np.random.rand(k, f).astype(np.float32)
    col_idx = np.random.randint(0, k, m).astype(np.int32)

    dotsum = b.zero_array((m,), np.float32)
    b.batched_dot(dotsum, b.copy_array(col_idx), b.copy_array(rows),
        b.copy_array(cols), f)
    npt.assert_allclose(dotsum.to_host(), dotsum_reference(col_idx, rows, cols),
        rtol=1e-5)


@pytest.mark.parametrize("backend,f", product( BACKENDS, [1,7,64,513] ))
def test_batched_dot_matches_numpy(backend, f):
    m, k = 2000, 50
    rows = np.random.randn(m, f).astype(np.float32)
    cols = np.random.randn(k, f).astype(np.float32)
    col_idx = np.random.randint(0, k, m).astype(np.int32)

    results = []
    for b in (NumpyBackend(), backend()):
        dotsum = b.zero_array((m,), np.float32)
        b.batched_dot(dotsum, b.copy_array(col_idx), b.copy_array(rows),
            b.copy_array(cols), f)
        results.append(dotsum.to_host())
    npt.assert_array_equal(results[0], results[1])


@pytest.mark.parametrize("backend", BACKENDS)
def test_batched_dot_row_len_mismatch(backend):
    b = backend()
    rows = b.zero_array((4, 3), np.float32)
    cols = b.zero_array((2, 3), np.float32)
    col_idx = b.zero_array((4,), np.int32)
    dotsum = b.zero_array((4,), np.float32)
    with pytest.raises(ValueError):
        b.batched_dot(dotsum, col_idx, rows, cols, 4)
    with pytest.raises(ValueError):
        b.batched_dot(b.zero_array((5,), np.float32), col_idx, rows, cols, 3)


@pytest.mark.parametrize("backend,alpha,beta",
    product( BACKENDS, [0.0,1.0,1.5], [0.0,0.5,1.0] ))
def test_scatter(backend, alpha, beta):
    b = backend()
    Y = maskmul.util.rand32f(4, 5)
    row_idx = np.array([0, 3, 1, 3], dtype=np.int32)
    col_idx = np.array([0, 0, 4, 2], dtype=np.int32)
    d = np.array([1, 2, 3, 4], dtype=np.float32)

    exp = beta * Y
    exp[row_idx, col_idx] += alpha * d

    y = b.copy_array(Y)
    b.scatter(y, b.copy_array(row_idx), b.copy_array(col_idx), b.copy_array(d),
        alpha=alpha, beta=beta)
    npt.assert_allclose(y.to_host(), exp)


@pytest.mark.parametrize("backend", BACKENDS)
def test_ell_matrix(backend):
    b = backend()
    B = SparseRowStore.from_dense(maskmul.util.banded_sequential(10, 10, 2))
    B_d = b.ell_matrix(b, B, name='B')
    assert B_d.shape == (10, 10)
    assert B_d.row_len == 3
    assert B_d.version == 0
    npt.assert_equal(B_d.edge_weights.to_host(), B.edge_weights)
    assert B_d.nbytes == B.edge_weights.nbytes


@pytest.mark.parametrize("nthreads,chunk,n",
    product( [1,2,5], [None,1,3,64], [0,1,10,100] ))
def test_threaded_parallel_for(nthreads, chunk, n):
    hits = np.zeros(n, dtype=np.int32)
    lock = threading.Lock()
    spans = []

    def kernel(lo, hi, out):
        out[lo:hi] += 1
        with lock:
            spans.append((lo, hi))

    with ThreadedBackend(nthreads=nthreads, chunk=chunk) as b:
        assert b.get_max_threads() == nthreads
        b.parallel_for(n, kernel, hits)
    npt.assert_equal(hits, 1)
    if chunk is not None:
        assert all(hi - lo <= chunk for lo, hi in spans)


def test_threaded_parallel_for_raises():
    def kernel(lo, hi):
        if lo <= 5 < hi:
            raise RuntimeError("bad chunk")

    with ThreadedBackend(nthreads=3, chunk=2) as b:
        with pytest.raises(RuntimeError):
            b.parallel_for(10, kernel)


def test_threaded_bad_chunk():
    with pytest.raises(ValueError):
        ThreadedBackend(chunk=0)


def test_threaded_num_threads_env(monkeypatch):
    monkeypatch.setenv("MASKMUL_NUM_THREADS", "3")
    with ThreadedBackend() as b:
        assert b.get_max_threads() == 3


def test_threaded_close():
    b = ThreadedBackend(nthreads=2)
    spans = []
    with b:
        b.parallel_for(4, lambda lo, hi: spans.append((lo, hi)))
    assert sorted(spans) == [(0, 2), (2, 4)]
    # the pool is shut down on exit
    with pytest.raises(RuntimeError):
        b.parallel_for(4, lambda lo, hi: None)


@pytest.mark.parametrize("backend", BACKENDS)
def test_backend_context_manager(backend):
    with backend() as b:
        d_arr = b.copy_array(np.ones(3, dtype=np.float32))
        npt.assert_equal(d_arr.to_host(), 1)


@pytest.mark.parametrize("chunk", [1,2,7,100])
def test_threaded_batched_dot_is_chunking_independent(chunk):
    m, k, f = 300, 20, 11
    rows = np.random.randn(m, f).astype(np.float32)
    cols = np.random.randn(k, f).astype(np.float32)
    col_idx = np.random.randint(0, k, m).astype(np.int32)

    results = []
    with ThreadedBackend(nthreads=4, chunk=chunk) as threaded:
        for b in (NumpyBackend(), threaded):
            dotsum = b.zero_array((m,), np.float32)
            b.batched_dot(dotsum, b.copy_array(col_idx), b.copy_array(rows),
                b.copy_array(cols), f)
            results.append(dotsum.to_host())
    npt.assert_array_equal(results[0], results[1])


def test_numpy_parallel_for_single_chunk():
    spans = []
    NumpyBackend().parallel_for(17, lambda lo, hi: spans.append((lo, hi)))
    assert spans == [(0, 17)]


def test_get_backend():
    assert isinstance(get_backend('numpy'), NumpyBackend)
    assert isinstance(get_backend('threaded', nthreads=2), ThreadedBackend)
    with pytest.raises(ValueError):
        get_backend('fortran')


def test_available_backends_env(monkeypatch):
    monkeypatch.setenv("MASKMUL_TEST_BACKENDS", "threaded")
    assert available_backends() == [ThreadedBackend]
