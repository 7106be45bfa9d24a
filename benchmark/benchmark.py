import sys
import logging
import argparse
import numpy as np

from maskmul.backends import get_backend
from maskmul.util import rand32f, banded_sequential, identity, \
    naive_masked_product, matrix_equal, Timer

log = logging.getLogger("benchmark")

def benchmark_build(backend, B, args):
    timer = Timer()
    for trial in range(args.trials):
        with timer:
            sB = backend.SparseRowStore(B, name='B')
    print("build, %d x %d, row length %d, %d nnz, best %2.2f ms, worst %2.2f ms" % \
        (sB.shape[0], sB.shape[1], sB.max_neighbors, sB.nnz,
         timer.min * 1000, timer.max * 1000), flush=True)
    return sB


def benchmark_masked(backend, A, sB, P, args):
    op = backend.MaskedProduct(P, sB, name='PBt')
    x_d = backend.copy_array(A, name='A')
    y_d = backend.zero_array(op.shape, op.dtype, name='C')

    # warmup, compiles kernels
    op.eval(y_d, x_d)

    timer = Timer()
    for trial in range(args.trials):
        backend.barrier()
        with timer:
            op.eval(y_d, x_d)
            backend.barrier()

    m, f = op.nrows, sB.max_neighbors
    nsec = timer.median
    nthreads = backend.get_max_threads()
    name = backend.__class__.__name__
    print("masked, %s, %d threads, %d dots, row length %d, %2.0f MB, best %2.2f ms, median %2.2f ms, %2.2f GFlops/s" % \
        (name, nthreads, m, f, op.memusage()/1e6, timer.min * 1000,
         nsec * 1000, 2*m*f / nsec * 1e-9), flush=True)
    print("device memory, %2.0f MB" % (backend.mem_usage()/1e6), flush=True)
    return y_d.to_host()


def benchmark_naive(A, B, P, args):
    timer = Timer()
    for trial in range(args.trials):
        with timer:
            C = naive_masked_product(A, B, P)
    n, k = A.shape
    print("naive, %d x %d, best %2.2f ms, median %2.2f ms" % \
        (n, k, timer.min * 1000, timer.median * 1000), flush=True)
    return C


def main():
    parser = argparse.ArgumentParser(description='benchmark maskmul')
    parser.add_argument('--backend', type=str, default='numpy',
        choices=['numpy', 'threaded', 'customcpu', 'cuda'])
    parser.add_argument('-n', type=int, default=2000, help='rows of A and P')
    parser.add_argument('-k', type=int, default=1500, help='columns of A, size of B')
    parser.add_argument('--band', type=int, default=100, help='band width of B')
    parser.add_argument('--trials', type=int, default=10)
    parser.add_argument('--check', action='store_true',
        help='time the dense product too and compare results')
    parser.add_argument('--debug', type=int, default=logging.INFO, help='logging level')
    args = parser.parse_args()

    logging.basicConfig(level=args.debug)

    A = rand32f(args.n, args.k)
    B = banded_sequential(args.k, args.k, args.band)
    P = identity(args.n, args.k)

    with get_backend(args.backend) as backend:
        sB = benchmark_build(backend, B, args)
        C = benchmark_masked(backend, A, sB, P, args)

    if args.check:
        C_exp = benchmark_naive(A, B, P, args)
        if not matrix_equal(C, C_exp):
            log.error("masked product does not match dense product")
            sys.exit(1)
        print('ok')


if __name__ == '__main__':
    main()
