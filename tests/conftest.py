"""
In-process stand-in for an MPI communicator: every rank is a thread and
messages are deep-copied between them, so multi-rank runs of the tools can
be tested without an MPI launcher.
"""

import copy
import threading
import time

import pytest

TIMEOUT = 60



class ThreadGroup:

    def __init__(self, size):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=TIMEOUT)
        self.slots = [None] * size
        self.cond = threading.Condition()
        self.mailbox = [[] for _ in range(size)]
        self.aborted = False

    def abort(self):
        self.barrier.abort()
        with self.cond:
            self.aborted = True
            self.cond.notify_all()



class ThreadComm:
    """Implements the MPIComm interface for one rank of a ThreadGroup."""

    def __init__(self, group, rank):
        self.group = group
        self.rank = rank
        self.size = group.size

    def _exchange(self, value):
        g = self.group
        g.slots[self.rank] = copy.deepcopy(value)
        g.barrier.wait()
        values = list(g.slots)
        g.barrier.wait()
        return values

    def bcast(self, value, root=0):
        return copy.deepcopy(self._exchange(value)[root])

    def barrier(self):
        self.group.barrier.wait()

    def exscan(self, value):
        return sum(self._exchange(value)[:self.rank])

    def allreduce_sum(self, value):
        return sum(self._exchange(value))

    def send(self, obj, dest, tag):
        g = self.group
        with g.cond:
            g.mailbox[dest].append((self.rank, tag, copy.deepcopy(obj)))
            g.cond.notify_all()

    def recv(self, source=None, tag=None):
        g = self.group
        deadline = time.monotonic() + TIMEOUT
        with g.cond:
            while True:
                if g.aborted:
                    raise threading.BrokenBarrierError()
                box = g.mailbox[self.rank]
                for idx, (src, msgtag, obj) in enumerate(box):
                    if (source is None or src == source) and (tag is None or msgtag == tag):
                        del box[idx]
                        return obj, src, msgtag
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError('rank {} timed out in recv'.format(self.rank))
                g.cond.wait(remaining)

    def wtime(self):
        return time.monotonic()



def _run_ranks(size, target):
    """Run target(comm) on 'size' thread-ranks, return the per-rank results."""
    group = ThreadGroup(size)
    results = [None] * size
    errors = []

    def runner(rank):
        try:
            results[rank] = target(ThreadComm(group, rank))
        except BaseException as error:
            errors.append(error)
            group.abort()

    threads = [threading.Thread(target=runner, args=(rank,), daemon=True) for rank in range(size)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(TIMEOUT * 2)

    if any(t.is_alive() for t in threads):
        group.abort()
        raise TimeoutError('ranks did not finish')

    if errors:
        real = [e for e in errors if not isinstance(e, threading.BrokenBarrierError)]
        raise (real or errors)[0]

    return results



@pytest.fixture
def run_ranks():
    return _run_ranks



@pytest.fixture
def scratch(tmp_path):
    path = tmp_path / 'scratch'
    path.mkdir()
    return path
