"""
Parallel file tools on MPI: mpicp (copy trees) and mpibz2 (compress files),
with the work of every file and directory tree spread over all ranks.
"""

__version__ = '0.1.0'
