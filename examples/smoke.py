"""
smoke.py

This script walks a small masked product C = P && A * B' through each
stage: the dense reference, the sparse row store, the condensed rows and
the backend evaluation, printing every intermediate matrix.
"""

import sys
import numpy as np

import maskmul
from maskmul.condense import condense
from maskmul.util import sequential, identity, transpose, mask, \
    format_matrix, matrix_equal

# problem dimensions
n, k = 3, 2
BACKEND = sys.argv[1] if len(sys.argv) > 1 else 'numpy'

def show(title, M):
    print("%s:" % title)
    print(format_matrix(M))

# create data
A = sequential(n, k)
B = sequential(k, k)
P = identity(n, k)

Bt = transpose(B)
ABt = A @ Bt
P_and_ABt = mask(ABt, P)

print("*" * 63)
show("A", A)
show("B", B)
show("P", P)
show("Bt", Bt)
show("ABt", ABt)
show("P && ABt", P_and_ABt)
print("basic tests done")

backend = maskmul.init(BACKEND)
print("using %s backend" % BACKEND)

print("*" * 63)
sB = backend.SparseRowStore(B, name='B')
show("sB", sB)
show("sB.T", sB.T)
print("sparse tests done")

print("*" * 63)
PA = condense(P, sB, A)
show("condensed row data", PA.data)
for (r, c), row in zip(PA.targets(), PA.data):
    print("C[%d, %d] = %s" % (r, c, float(np.dot(row, sB.edge_weights[c]))))
print("condensed row tests done")

print("*" * 63)
op = backend.MaskedProduct(P, sB, name='PBt')
print(op.dump())
C = op * A
show("C", C)

# check answer
assert matrix_equal(C, P_and_ABt)
print('ok')
