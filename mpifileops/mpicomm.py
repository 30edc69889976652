#!/usr/bin/env python3

from mpi4py import MPI
import numpy as np



################################################################################
class MPIComm:
    """
    The handful of collective and point-to-point primitives the tools need,
    on top of an mpi4py communicator (MPI.COMM_WORLD by default).

    source/tag of None in recv() mean any source / any tag.
    """

    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def __init__(self, comm=None):
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def bcast(self, value, root=0):
        return self.comm.bcast(value, root=root)



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def barrier(self):
        self.comm.Barrier()
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def exscan(self, value):
        my_val = np.full(1, value, dtype=np.int64)
        prefix = np.zeros(1, dtype=np.int64)
        self.comm.Exscan(my_val, prefix, op=MPI.SUM)
        # MPI leaves the receive buffer on rank 0 undefined
        if 0 == self.rank:
            return 0
        return int(prefix[0])



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def allreduce_sum(self, value):
        my_val = np.full(1, value, dtype=np.int64)
        global_val = np.zeros(1, dtype=np.int64)
        self.comm.Allreduce(my_val, global_val, op=MPI.SUM)
        return int(global_val[0])



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def send(self, obj, dest, tag):
        self.comm.send(obj, dest=dest, tag=tag)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def recv(self, source=None, tag=None):
        status = MPI.Status()
        obj = self.comm.recv(source=MPI.ANY_SOURCE if source is None else source,
                             tag=MPI.ANY_TAG if tag is None else tag,
                             status=status)
        return obj, status.Get_source(), status.Get_tag()



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def wtime(self):
        return MPI.Wtime()
