#!/usr/bin/env python3

import os
import sys
import tempfile
import shutil
import platform
import humanfriendly



################################################################################
def format_size(val):
    return humanfriendly.format_size(val)

def format_number(val):
    return humanfriendly.format_number(val)

def format_timespan(val):
    return humanfriendly.format_timespan(val)



################################################################################
class MPIClass:

    tags ={ 'ready'         : 10,
            'execute'       : 11,
            'terminate'     : 1000 }

    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def __init__(self,options=None,comm=None,initdirs=True):
        # initialization, get 'options' data structure from rank 0
        if comm is None:
            from mpifileops.mpicomm import MPIComm
            comm = MPIComm()
        self.comm = comm
        self.rank   = self.comm.rank
        self.nranks = self.comm.size
        self.i_am_root = False if self.rank else True
        self.options = self.comm.bcast(options)
        self.verbose = bool(getattr(self.options, 'verbose', False))

        self.num_files   = 0
        self.num_dirs    = 0
        self.num_links   = 0
        self.num_bytes   = 0
        self.num_skipped = 0
        self.num_errors  = 0

        self.local_rankdir = None
        if initdirs:
            self.init_local_dirs()

        self.start_time = self.comm.wtime()
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def __del__(self):
        self.cleanup()
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def init_local_dirs(self):

        # get specified local temporary directory, if exists.
        # SLURM_JOB_TMPFS_TMPDIR, tmpfs ramdisk shared shared by all ranks on node
        # SLURM_JOB_LOCAL_TMPDIR, /local/.XXXX-user shared by all ranks on node
        local_topdir = getattr(self.options, 'tmpdir', None)
        if not local_topdir: local_topdir = os.getenv('SLURM_JOB_TMPFS_TMPDIR')
        if not local_topdir: local_topdir = os.getenv('SLURM_JOB_LOCAL_TMPDIR')

        # local_topdir from slurm is job specific, let's create a subdirectory
        # for this specific MPI rank
        self.local_rankdir = tempfile.mkdtemp(prefix='rank{}_'.format(self.rank),
                                              dir=local_topdir)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def cleanup(self):
        # clean up any temporary leftovers
        if getattr(self, 'local_rankdir', None):
            shutil.rmtree(self.local_rankdir,ignore_errors=True)
            self.local_rankdir = None
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def report_error(self, msg):
        self.num_errors += 1
        print('[{:3d}] ERROR: {}'.format(self.rank, msg), file=sys.stderr)
        sys.stderr.flush()
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def report(self, msg):
        if self.verbose:
            print('[{:3d}] {}'.format(self.rank, msg))
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def global_errors(self):
        return self.comm.allreduce_sum(self.num_errors)



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def summary(self, verbose=None):

        if verbose is None: verbose = self.verbose

        self.comm.barrier()
        sys.stdout.flush()

        sep='-'*80

        if verbose:
            for p in range(0,self.nranks):
                self.comm.barrier()
                sys.stdout.flush()
                if p == self.rank:
                    print('rank {} / {}, {:,} files, {:,} dirs, {:,} links, {} ({:,} skipped, {:,} errors)'.format(
                        self.rank, platform.node(),
                        self.num_files, self.num_dirs, self.num_links,
                        format_size(self.num_bytes),
                        self.num_skipped, self.num_errors))
                    sys.stdout.flush()

        totals = {}
        for key in ['files', 'dirs', 'links', 'bytes', 'skipped', 'errors']:
            totals[key] = self.comm.allreduce_sum(getattr(self, 'num_' + key))

        elapsed = self.comm.wtime() - self.start_time

        if self.i_am_root:
            print(sep)
            print('Total: {} files, {} dirs, {} links on {} ranks'.format(format_number(totals['files']),
                                                                          format_number(totals['dirs']),
                                                                          format_number(totals['links']),
                                                                          self.nranks))
            print('Total Size: {} in {} ({}/sec)'.format(format_size(totals['bytes']),
                                                         format_timespan(elapsed),
                                                         format_size(totals['bytes']/elapsed if elapsed > 0 else 0)))
            if totals['skipped']:
                print('Skipped: {}'.format(format_number(totals['skipped'])))
            if totals['errors']:
                print('Errors: {}'.format(format_number(totals['errors'])))
            print(sep)
            sys.stdout.flush()

        return totals
