#!/usr/bin/env python3

import os, sys, stat
import shutil
import subprocess
from mpifileops.mpiclass import MPIClass, format_size
from mpifileops.partition import partition
from mpifileops.scan import compute_offset, write_at

SKIP = -1



################################################################################
class Compressor(MPIClass):
    """
    Compresses each input file with all ranks at once: every rank compresses
    its own byte range with an external tool, an exclusive scan over the
    compressed sizes tells each rank where its piece goes, and the pieces are
    written side by side into one output that any multi-stream aware
    decompressor reads back as the original file.
    """

    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def __init__(self,options=None,comm=None):
        MPIClass.__init__(self,options,comm)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def output_name(self, filename):
        return filename + self.options.suffix



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def check_input(self, filename):
        # root only. returns the file size, or SKIP
        try:
            statinfo = os.stat(filename)
        except OSError as error:
            self.report_error('cannot stat \'{}\': {}'.format(filename, error.strerror))
            return SKIP

        if not stat.S_ISREG(statinfo.st_mode):
            self.report_error('\'{}\' is not a regular file, skipping'.format(filename))
            return SKIP

        if filename.endswith(self.options.suffix) and not self.options.force:
            self.report_error('\'{}\' already has {} suffix, skipping'.format(filename, self.options.suffix))
            return SKIP

        outname = self.output_name(filename)
        if outname == filename:
            self.report_error('output file \'{}\' would replace its input, skipping'.format(outname))
            return SKIP

        if os.path.isdir(outname) and not os.path.islink(outname):
            self.report_error('output file \'{}\' is a directory, skipping'.format(outname))
            return SKIP

        if os.path.lexists(outname) and not self.options.force:
            self.report_error('output file \'{}\' already exists, skipping'.format(outname))
            return SKIP

        return statinfo.st_size



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def compress_range(self, filename, start, length, segname, outname):
        # stage our byte range in a private file, then run the tool on it
        with open(filename, 'rb') as fin, open(segname, 'wb') as fout:
            fin.seek(start)
            remaining = length
            while remaining:
                buf = fin.read(min(remaining, 8*1024*1024))
                if not buf:
                    raise OSError('\'{}\' shrank while reading'.format(filename))
                fout.write(buf)
                remaining -= len(buf)

        # fed on stdin, so no temporary name ends up in the stream header
        cmd = [self.options.compressor, '-c', '-{}'.format(self.options.level)]
        with open(segname, 'rb') as fin, open(outname, 'wb') as fout:
            subprocess.run(cmd,
                           stdin=fin,
                           stdout=fout,
                           stderr=subprocess.PIPE,
                           check=True)

        return os.path.getsize(outname)



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def remove(self, *paths):
        for path in paths:
            if path and os.path.exists(path):
                os.unlink(path)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def compress_file(self, filename, index):
        """
        Collective over all ranks. Returns True when the output was written.
        """
        size = self.check_input(filename) if self.i_am_root else None
        size = self.comm.bcast(size)

        if size == SKIP:
            return False

        # empty files are one segment, so an (empty) compressed stream still exists
        nsegments = self.nranks if size else 1
        segname = outname = None
        local_size = 0
        failed = 0

        if self.rank < nsegments:
            rng = partition(size, nsegments, self.rank)
            if rng.length or not size:
                segname = os.path.join(self.local_rankdir, 'seg{:06d}'.format(index))
                outname = segname + self.options.suffix
                try:
                    local_size = self.compress_range(filename, rng.start, rng.length, segname, outname)
                except subprocess.CalledProcessError as error:
                    failed = 1
                    self.report_error('{} failed on \'{}\' [{},{}): {}'.format(self.options.compressor, filename,
                                                                               rng.start, rng.start+rng.length,
                                                                               error.stderr.decode(errors='replace').strip()))
                except OSError as error:
                    failed = 1
                    self.report_error('cannot compress \'{}\' [{},{}): {}'.format(filename, rng.start, rng.start+rng.length,
                                                                                  error.strerror or error))

        # a failed segment fails the whole file, on every rank
        if self.comm.allreduce_sum(failed):
            self.remove(segname, outname)
            if self.i_am_root:
                print('[{:3d}] \'{}\' not compressed, source left in place'.format(self.rank, filename), file=sys.stderr)
            return False

        offset = compute_offset(self.comm, local_size)

        dest = self.output_name(filename)
        created = 0
        if self.i_am_root:
            try:
                # replace the entry itself, never write through a link
                if os.path.lexists(dest):
                    os.unlink(dest)
                open(dest, 'xb').close()
                created = 1
            except OSError as error:
                self.report_error('cannot create \'{}\': {}'.format(dest, error.strerror))

        # nobody writes before the output exists and is empty
        self.comm.barrier()

        if not self.comm.bcast(created):
            self.remove(segname, outname)
            return False

        failed = 0
        if outname:
            try:
                nbytes = write_at(dest, offset, outname)
                assert nbytes == local_size
                self.num_bytes += rng.length
                self.report('\'{}\' segment {} of {}: {} at offset {}'.format(filename, self.rank+1, nsegments,
                                                                             format_size(local_size), offset))
            except OSError as error:
                failed = 1
                self.report_error('cannot write \'{}\' at offset {}: {}'.format(dest, offset, error.strerror))
        self.remove(segname, outname)

        # all writes complete before the source can go away
        self.comm.barrier()

        if self.comm.allreduce_sum(failed):
            if self.i_am_root:
                self.remove(dest)
            return False

        if self.i_am_root:
            self.num_files += 1
            try:
                shutil.copystat(filename, dest)
                if not self.options.keep:
                    os.unlink(filename)
            except OSError as error:
                self.report_error('cannot finish \'{}\': {}'.format(filename, error.strerror))

        return True



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def run(self):
        """
        Compress every input file in turn. Returns the exit status, identical
        on all ranks.
        """
        self.comm.barrier()

        for index, filename in enumerate(self.options.files):
            self.compress_file(filename, index)

        self.comm.barrier()
        sys.stdout.flush()

        nerrors = self.global_errors()
        return 1 if nerrors else 0
