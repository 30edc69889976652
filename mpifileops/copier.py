#!/usr/bin/env python3

import sys
from mpifileops.mpiclass import MPIClass
from mpifileops.items import CopyPolicy
from mpifileops.segment import SegmentProcessor
from mpifileops.targets import resolve_targets, ValidationError
from mpifileops.work_queue import DistributedWorkQueue



################################################################################
class Copier(MPIClass):

    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def __init__(self,options=None,comm=None):
        MPIClass.__init__(self,options,comm,initdirs=False)

        self.policy = CopyPolicy.from_options(self.options)
        self.processor = SegmentProcessor(self.rank, self.policy, self.options.chunk_size)
        self.queue = DistributedWorkQueue(self.comm,
                                          progress=self.options.progress,
                                          verbose=self.verbose,
                                          tags=self.tags)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def seed(self):
        # root only: validate the whole request, then enqueue the top-level objects
        try:
            pairs = resolve_targets(self.options.sources,
                                    self.options.target,
                                    recursive=self.policy.recursive,
                                    dereference=self.policy.dereference)
        except ValidationError as error:
            self.report_error(error)
            return False

        for src, dst in pairs:
            self.processor.enqueue_object(src, dst, self.queue)

        if self.verbose:
            print('Copying {} source(s) to \'{}\' on {} ranks'.format(len(pairs), self.options.target, self.nranks))
            sys.stdout.flush()
        return True



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def process(self, item):
        self.processor.process(item, self.queue)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def collect(self):
        p = self.processor
        self.num_files   += p.num_files
        self.num_dirs    += p.num_dirs
        self.num_links   += p.num_links
        self.num_bytes   += p.num_bytes
        self.num_skipped += p.num_skipped
        self.num_errors  += p.num_errors + self.queue.num_failed
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def run(self):
        """
        Copy the sources to the target with every rank pulling work from the
        shared queue. Returns the exit status, identical on all ranks.
        """
        valid = self.seed() if self.i_am_root else None

        # a bad request aborts before anything is enqueued anywhere
        if not self.comm.bcast(valid):
            return 1

        self.comm.barrier()
        self.queue.drain(self.process)

        # every segment is written, attributes can't be disturbed anymore
        self.comm.barrier()
        self.processor.apply_attributes()

        self.collect()
        nerrors = self.global_errors()
        return 1 if nerrors else 0
