#!/usr/bin/env python3

from typing import NamedTuple



################################################################################
class Range(NamedTuple):
    start  : int
    length : int



################################################################################
def partition(object_size, nworkers, index):
    """
    Byte range of worker 'index' when an object of 'object_size' bytes is split
    into 'nworkers' contiguous pieces. Every worker computes this locally from
    the same three integers; the last worker absorbs the remainder.
    """
    if nworkers < 1:
        raise ValueError('nworkers must be >= 1, got {}'.format(nworkers))
    if index < 0 or index >= nworkers:
        raise ValueError('index {} out of range [0,{})'.format(index, nworkers))
    if object_size < 0:
        raise ValueError('negative object size {}'.format(object_size))

    block = object_size // nworkers
    start = index * block

    if index == nworkers - 1:
        return Range(start, object_size - start)

    return Range(start, block)



################################################################################
def segment_count(object_size, segment_size):
    # empty objects are still one unit of work
    if segment_size < 1:
        raise ValueError('segment size must be >= 1, got {}'.format(segment_size))
    if object_size <= 0:
        return 1
    return (object_size + segment_size - 1) // segment_size
