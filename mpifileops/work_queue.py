#!/usr/bin/env python3

import sys
from collections import deque
from datetime import datetime
from mpifileops.mpiclass import MPIClass, format_number, format_timespan



################################################################################
class DistributedWorkQueue:
    """
    Work queue shared by all ranks of a communicator.

    With more than one rank, rank 0 holds the pending items and hands them out
    one at a time to whichever rank reports 'ready'; ranks >= 1 process them.
    Items enqueued while processing are buffered and piggy-backed on the next
    'ready' message, so the manager always knows about a rank's new work
    before it counts that rank as idle. The run is over once nothing is
    pending and every worker is idle.

    A single rank simply drains its own queue.
    """

    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def __init__(self, comm, progress=float('inf'), verbose=False, tags=None):
        self.comm = comm
        self.rank = comm.rank
        self.nranks = comm.size
        self.i_am_root = False if self.rank else True
        self.tags = tags if tags else MPIClass.tags
        self.progress = progress
        self.verbose = verbose

        self.pending  = deque()  # rank 0 / single rank: items not yet handed out
        self.outgoing = []       # ranks >= 1: items enqueued since our last 'ready'

        self.num_enqueued   = 0
        self.num_processed  = 0
        self.num_failed     = 0
        self.num_dispatched = 0
        self.maxpending     = 0
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def enqueue(self, item):
        assert item is not None
        self.num_enqueued += 1
        if self.i_am_root:
            self.pending.append(item)
            self.maxpending = max(self.maxpending, len(self.pending))
        else:
            self.outgoing.append(item)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def dequeue(self):
        if self.pending:
            return self.pending.popleft()
        return None



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def drain(self, process_fn):
        # collective: returns on every rank once the global queue is exhausted
        self.start_time = self.progress_time = self.comm.wtime()

        if 1 == self.nranks:
            self.drain_local(process_fn)
        elif self.i_am_root:
            self.manage()
        else:
            self.work(process_fn)

        return self.num_processed



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def execute(self, process_fn, item):
        try:
            process_fn(item)
        except Exception as error:
            # per-item failure, never fatal to the run
            self.num_failed += 1
            print('[{:3d}] {}'.format(self.rank, error), file=sys.stderr)
        self.num_processed += 1
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def drain_local(self, process_fn):
        while True:
            item = self.dequeue()
            if item is None: break
            self.execute(process_fn, item)
            self.report_progress()
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def manage(self):
        # every worker is either busy, idle (parked on us), or has not reported
        # yet. we are done once all of them are parked and nothing is pending.
        nworkers = self.nranks - 1
        idle = []

        while self.pending or len(idle) < nworkers:

            more_items, ready_rank, tag = self.comm.recv(tag=self.tags['ready'])
            if more_items:
                self.pending.extend(more_items)
                self.maxpending = max(self.maxpending, len(self.pending))
            idle.append(ready_rank)

            # hand out work to as many parked ranks as we can
            while idle and self.pending:
                dest = idle.pop()
                self.comm.send(self.pending.popleft(), dest, self.tags['execute'])
                self.num_dispatched += 1

            self.report_progress(busy=nworkers-len(idle))

        if self.verbose:
            print('  --> Finished dispatch of {} items (max {} pending), terminating ranks'.format(format_number(self.num_dispatched),
                                                                                                format_number(self.maxpending)))
            sys.stdout.flush()

        for dest in idle:
            self.comm.send(None, dest, self.tags['terminate'])

        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def work(self, process_fn):
        while True:

            # signal manager we are ready, handing over anything we discovered
            outgoing, self.outgoing = self.outgoing, []
            self.comm.send(outgoing, 0, self.tags['ready'])

            item, source, tag = self.comm.recv(source=0)

            if tag == self.tags['terminate']:
                assert item is None
                break

            assert tag == self.tags['execute']
            self.execute(process_fn, item)

        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def report_progress(self, busy=0, forceprint=False):
        curtime = self.comm.wtime()

        if not forceprint:
            if (curtime - self.progress_time) < self.progress: return

        self.progress_time = curtime
        elapsed = curtime - self.start_time
        done = self.num_dispatched if self.nranks > 1 else self.num_processed

        print('[{}] {} items handed out in {}, {} pending, {} busy ranks'.format(datetime.now().isoformat(sep=' ', timespec='seconds'),
                                                                                   format_number(done),
                                                                                   format_timespan(elapsed),
                                                                                   format_number(len(self.pending)),
                                                                                   busy))
        sys.stdout.flush()
        return
