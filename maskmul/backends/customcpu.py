import numba as nb
import numpy as np

from maskmul.backends.np import NumpyBackend

@nb.jit(nopython=True, parallel=True, cache=True)
def _dotsum(col_idx, rows, cols, dotsum, row_len):
    # no fastmath: keep the left-to-right summation order
    for i in nb.prange(dotsum.shape[0]):
        c = col_idx[i]
        s = np.float32(0.0)
        for j in range(row_len):
            s += rows[i, j] * cols[c, j]
        dotsum[i] = s


class CustomCpuBackend(NumpyBackend):

    def get_max_threads(self):
        return nb.get_num_threads()

    def batched_dot(self, dotsum, col_idx, rows, cols, row_len):
        self._check_dot_args(dotsum, col_idx, rows, cols, row_len)
        _dotsum(col_idx._arr, rows._arr, cols._arr, dotsum._arr, row_len)
