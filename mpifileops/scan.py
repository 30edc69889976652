#!/usr/bin/env python3

import os



################################################################################
def compute_offset(comm, local_size):
    """
    Collective: every rank passes the number of bytes it produced and gets
    back where those bytes start in the shared output, i.e. the sum of the
    sizes of all lower ranks. Rank 0 always writes at 0.
    """
    if local_size < 0:
        raise ValueError('negative local size {}'.format(local_size))
    return comm.exscan(local_size)



################################################################################
def write_at(dest, offset, src_path, bufsize=8*1024*1024):
    # copy all of 'src_path' into 'dest' starting at 'offset', leaving the
    # rest of 'dest' untouched
    nbytes = 0
    fd = os.open(dest, os.O_WRONLY)
    try:
        with open(src_path, 'rb') as src:
            while True:
                buf = src.read(bufsize)
                if not buf: break
                view = memoryview(buf)
                while view:
                    n = os.pwrite(fd, view, offset + nbytes)
                    view = view[n:]
                    nbytes += n
    finally:
        os.close(fd)
    return nbytes

