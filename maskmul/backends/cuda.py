import logging

import cupy as cp
import numpy as np

from maskmul.backends.backend import Backend

log = logging.getLogger(__name__)

# fails here, and so at import time, on hosts without a usable device
_ndevices = cp.cuda.runtime.getDeviceCount()

# ROW_LEN is fixed per compiled kernel so the inner loop can be unrolled.
_DOTSUM_SOURCE = r'''
extern "C" __global__
void dotsum(const int* col_idx, const float* rows, const float* cols,
            float* dotsum, const int m)
{
    const int i = blockDim.x * blockIdx.x + threadIdx.x;
    if (i >= m)
        return;

    const float* r = rows + (size_t) i * ROW_LEN;
    const float* c = cols + (size_t) col_idx[i] * ROW_LEN;

    float sum = 0.0f;
    #pragma unroll 8
    for (int j = 0; j < ROW_LEN; ++j)
        sum += r[j] * c[j];

    dotsum[i] = sum;
}
'''

class CudaBackend(Backend):

    _threads_per_block = 256

    def __init__(self, device_id=0):
        super(CudaBackend, self).__init__()
        if not 0 <= device_id < _ndevices:
            raise ValueError("no CUDA device #%d, found %d" % (device_id, _ndevices))
        self._device = cp.cuda.Device(device_id)
        self._device.use()
        log.info("using CUDA device #%d", self._device.id)
        self._kernels = dict()

    def barrier(self):
        self._device.synchronize()

    # -----------------------------------------------------------------------
    # Arrays
    # -----------------------------------------------------------------------
    class dndarray(Backend.dndarray):
        def _copy_from(self, arr):
            self._arr.set(arr.reshape(self.shape))

        def _copy_to(self, arr):
            arr[...] = self._arr.get().reshape(arr.shape)

        def _malloc(self, shape, dtype):
            return cp.empty(shape, dtype=dtype)

        def _free(self):
            del self._arr

        def _zero(self):
            self._arr.fill(0)

    # -----------------------------------------------------------------------
    # Kernels
    # -----------------------------------------------------------------------
    def _get_kernel(self, row_len):
        kernel = self._kernels.get(row_len)
        if kernel is None:
            log.debug("compiling dotsum kernel for row length %d", row_len)
            # no FMA contraction, so sums match the host backends
            kernel = cp.RawKernel(_DOTSUM_SOURCE, 'dotsum',
                options=('-DROW_LEN=%d' % row_len, '--fmad=false'))
            self._kernels[row_len] = kernel
        return kernel

    def batched_dot(self, dotsum, col_idx, rows, cols, row_len):
        self._check_dot_args(dotsum, col_idx, rows, cols, row_len)
        m = dotsum.size
        if m == 0:
            return
        kernel = self._get_kernel(row_len)
        threads = self._threads_per_block
        blocks = (m + threads - 1) // threads
        kernel((blocks,), (threads,),
            (col_idx._arr, rows._arr, cols._arr, dotsum._arr, np.int32(m)))

    def scatter(self, y, row_idx, col_idx, dotsum, alpha=1, beta=0):
        assert isinstance(y, self.dndarray)
        Y, d = y._arr, dotsum._arr
        if alpha != 1:
            d = alpha * d
        if beta == 0:
            Y.fill(0)
            Y[row_idx._arr, col_idx._arr] = d
        else:
            Y *= beta
            Y[row_idx._arr, col_idx._arr] += d
