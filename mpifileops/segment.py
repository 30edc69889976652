#!/usr/bin/env python3

import os, sys, stat
import shutil
from mpifileops.items import WorkItem, CopyPolicy, KIND_FILE, KIND_DIR, KIND_LINK
from mpifileops.partition import partition, segment_count

#                b       k      M
DEFAULT_SEGMENT_SIZE = 64 * 1024 * 1024
BUFSIZE              =  8 * 1024 * 1024



################################################################################
def file_kind(statinfo):
    fmode = statinfo.st_mode
    if   stat.S_ISREG(fmode): return KIND_FILE
    elif stat.S_ISDIR(fmode): return KIND_DIR
    elif stat.S_ISLNK(fmode): return KIND_LINK
    return None



KIND_NAMES = { KIND_FILE : 'regular file',
               KIND_DIR  : 'directory',
               KIND_LINK : 'symbolic link' }



################################################################################
class SegmentProcessor:
    """
    Executes copy work items on one rank, and decides which items an object
    turns into when it is first discovered.
    """

    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def __init__(self, rank=0, policy=None, segment_size=DEFAULT_SEGMENT_SIZE):
        self.rank = rank
        self.policy = policy if policy else CopyPolicy()
        self.segment_size = segment_size

        # (src, dst) pairs whose attributes get copied once everything is written
        self.deferred = []

        self.num_files   = 0
        self.num_dirs    = 0
        self.num_links   = 0
        self.num_bytes   = 0
        self.num_skipped = 0
        self.num_errors  = 0
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def report_error(self, msg):
        self.num_errors += 1
        print('[{:3d}] ERROR: {}'.format(self.rank, msg), file=sys.stderr)
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def report(self, msg):
        if self.policy.verbose:
            print('[{:3d}] {}'.format(self.rank, msg))
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def enqueue_object(self, src, dst, queue):
        """
        Inspect source and destination once and enqueue the items needed to
        copy 'src' to 'dst'. Type conflicts and no-clobber skips are decided
        here, before any segment of the object can exist. Returns the number
        of items enqueued.
        """
        try:
            src_stat = os.stat(src) if self.policy.dereference else os.lstat(src)
        except OSError as error:
            self.report_error('cannot stat \'{}\': {}'.format(src, error.strerror))
            return 0

        kind = file_kind(src_stat)
        if kind is None:
            self.report_error('skipping \'{}\': unsupported file type'.format(src))
            return 0

        try:
            dst_stat = os.lstat(dst)
        except FileNotFoundError:
            dst_stat = None
        except OSError as error:
            self.report_error('cannot stat \'{}\': {}'.format(dst, error.strerror))
            return 0

        if dst_stat is not None:
            dst_kind = file_kind(dst_stat)
            if dst_kind != kind:
                self.report_error('cannot overwrite {} \'{}\' with {} \'{}\''.format(KIND_NAMES.get(dst_kind, 'special file'), dst,
                                                                                     KIND_NAMES[kind], src))
                return 0

            # existing directories are merged into, everything else is policy
            if kind != KIND_DIR and not self.policy.clobber:
                self.num_skipped += 1
                return 0

            # stale file of a different size: start from scratch
            if kind == KIND_FILE and dst_stat.st_size != src_stat.st_size:
                try:
                    os.unlink(dst)
                except OSError as error:
                    self.report_error('cannot remove \'{}\': {}'.format(dst, error.strerror))
                    return 0

        if kind != KIND_FILE:
            queue.enqueue(WorkItem(0, 1, src_stat.st_size, src, dst, kind))
            return 1

        size = src_stat.st_size
        nsegments = segment_count(size, self.segment_size)
        for offset in range(0, nsegments):
            queue.enqueue(WorkItem(offset, nsegments, size, src, dst, kind))
        return nsegments



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def process(self, item, queue):
        if   item.kind == KIND_DIR:  self.process_directory(item, queue)
        elif item.kind == KIND_LINK: self.process_link(item)
        elif item.kind == KIND_FILE: self.process_segment(item)
        else:
            self.report_error('unknown work item kind \'{}\' for \'{}\''.format(item.kind, item.src))
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def process_directory(self, item, queue):

        try:
            os.mkdir(item.dst)
        except FileExistsError:
            # last-minute check for a race with another object of the same name
            if os.path.islink(item.dst) or not os.path.isdir(item.dst):
                self.report_error('cannot overwrite non-directory \'{}\' with directory \'{}\''.format(item.dst, item.src))
                return
        except OSError as error:
            self.report_error('cannot create directory \'{}\': {}'.format(item.dst, error.strerror))
            return

        self.num_dirs += 1
        self.report('(d) {}'.format(item.src))

        if self.policy.preserve:
            self.deferred.append((item.src, item.dst))

        try:
            entries = sorted(os.scandir(item.src), key=lambda di: di.name)
        except OSError as error:
            self.report_error('cannot scan \'{}\': {}'.format(item.src, error.strerror))
            return

        # children become work items of their own, for any rank to pick up
        for di in entries:
            self.enqueue_object(di.path, os.path.join(item.dst, di.name), queue)

        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def process_link(self, item):
        try:
            target = os.readlink(item.src)
            if os.path.lexists(item.dst):
                os.unlink(item.dst)
            os.symlink(target, item.dst)
        except OSError as error:
            self.report_error('cannot copy symlink \'{}\': {}'.format(item.src, error.strerror))
            return

        self.num_links += 1
        self.report('(l) {} -> {}'.format(item.src, target))

        if self.policy.preserve:
            self.deferred.append((item.src, item.dst))
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def process_segment(self, item):
        rng = partition(item.size, item.nsegments, item.offset)

        try:
            nbytes = self.copy_range(item.src, item.dst, rng.start, rng.length, item.size)
        except OSError as error:
            self.report_error('cannot copy \'{}\' segment {} of {}: {}'.format(item.src, item.offset+1, item.nsegments,
                                                                              error.strerror or error))
            return

        self.num_bytes += nbytes
        self.report('(f) {}'.format(item.label()))

        if 0 == item.offset:
            self.num_files += 1
            if self.policy.preserve:
                self.deferred.append((item.src, item.dst))
        return



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def copy_range(self, src, dst, start, length, size):
        # every segment opens without truncating and sizes the file to its
        # final length, so concurrent writers of disjoint ranges never
        # destroy each other's bytes
        fd_out = os.open(dst, os.O_WRONLY | os.O_CREAT, 0o666)
        try:
            os.ftruncate(fd_out, size)
            fd_in = os.open(src, os.O_RDONLY)
            try:
                pos = start
                end = start + length
                while pos < end:
                    buf = os.pread(fd_in, min(BUFSIZE, end - pos), pos)
                    if not buf:
                        raise OSError('\'{}\' shrank below {} bytes while copying'.format(src, end))
                    view = memoryview(buf)
                    while view:
                        n = os.pwrite(fd_out, view, pos)
                        view = view[n:]
                        pos += n
            finally:
                os.close(fd_in)
        finally:
            os.close(fd_out)
        return length



    #~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    def apply_attributes(self):
        # deepest first, so a parent's timestamps are set after its contents
        follow = self.policy.dereference
        napplied = 0
        for src, dst in sorted(self.deferred, key=lambda p: p[1].count(os.sep), reverse=True):
            try:
                is_link = os.path.islink(dst)
                shutil.copystat(src, dst, follow_symlinks=follow or not is_link)
                if 0 == os.geteuid():
                    statinfo = os.stat(src, follow_symlinks=follow or not is_link)
                    os.chown(dst, statinfo.st_uid, statinfo.st_gid, follow_symlinks=not is_link)
                napplied += 1
            except OSError as error:
                self.report_error('cannot preserve attributes of \'{}\': {}'.format(dst, error.strerror))
        self.deferred = []
        return napplied
