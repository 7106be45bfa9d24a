import numpy as np

from maskmul.backends.backend import Backend

class NumpyBackend(Backend):

    def __init__(self, device_id=0):
        super(NumpyBackend, self).__init__()

    # -----------------------------------------------------------------------
    # Arrays
    # -----------------------------------------------------------------------
    class dndarray(Backend.dndarray):
        def _copy_from(self, arr):
            self._arr[...] = arr.reshape(self.shape)

        def _copy_to(self, arr):
            arr[...] = self._arr.reshape(arr.shape)

        def _malloc(self, shape, dtype):
            return np.ndarray(shape, dtype, order='C')

        def _free(self):
            del self._arr

        def _zero(self):
            self._arr[...] = 0

    # -----------------------------------------------------------------------
    # Scatter Routine
    # -----------------------------------------------------------------------
    def scatter(self, y, row_idx, col_idx, dotsum, alpha=1, beta=0):
        assert isinstance(y, self.dndarray)
        Y, d = y._arr, dotsum._arr
        if alpha != 1:
            d = alpha * d
        if beta == 0:
            Y[...] = 0
            Y[row_idx._arr, col_idx._arr] = d
        else:
            Y *= beta
            Y[row_idx._arr, col_idx._arr] += d
