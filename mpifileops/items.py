#!/usr/bin/env python3

from typing import NamedTuple



KIND_FILE = 'file'
KIND_DIR  = 'dir'
KIND_LINK = 'link'



################################################################################
class WorkItem(NamedTuple):
    offset    : int   # segment index, 0 <= offset < nsegments
    nsegments : int
    size      : int   # size of the whole object in bytes
    src       : str
    dst       : str
    kind      : str

    def label(self):
        if self.kind == KIND_FILE:
            return '{} (segment {} of {})'.format(self.src, self.offset+1, self.nsegments)
        return self.src



################################################################################
class CopyPolicy(NamedTuple):
    recursive   : bool = False
    clobber     : bool = True
    dereference : bool = False
    preserve    : bool = False
    verbose     : bool = False

    @classmethod
    def from_options(cls, options):
        return cls(recursive   = bool(options.recursive),
                   clobber     = not options.no_clobber,
                   dereference = bool(options.dereference),
                   preserve    = bool(options.preserve),
                   verbose     = bool(options.verbose))
