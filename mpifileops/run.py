#!/usr/bin/env python3

import os, sys
from mpifileops.mpicomm import MPIComm
from mpifileops.parse_args import parse_options, COMPRESS_TOOLS, COPY_TOOLS



################################################################################
def tool_factory(appname, options, comm):

    if appname in COMPRESS_TOOLS:
        from mpifileops.compressor import Compressor
        return Compressor(options, comm)
    elif appname in COPY_TOOLS:
        from mpifileops.copier import Copier
        return Copier(options, comm)

    raise NotImplementedError('Unrecognized tool type: {}'.format(appname))



################################################################################
def main(appname=None, argv=None):

    comm = MPIComm()

    # infer the requested action from the calling executable name
    if appname is None:
        appname = os.path.basename(sys.argv[0])

    args = None
    if 0 == comm.rank:
        try:
            args = parse_options(appname, argv)
        except SystemExit as error:
            # usage errors end every rank, not just the one that parsed
            args = error
        except NotImplementedError as error:
            print('ERROR: {}'.format(error), file=sys.stderr)
            args = SystemExit(2)

    args = comm.bcast(args)
    if isinstance(args, SystemExit):
        return args.code

    if 0 == comm.rank and args.verbose:
        print('Running {} on {} MPI ranks'.format(appname, comm.size))
        sys.stdout.flush()

    tool = tool_factory(appname, args, comm)
    status = tool.run()
    tool.summary()
    tool.cleanup()

    return status



def mpibz2():
    sys.exit(main('mpibz2'))



def mpicp():
    sys.exit(main('mpicp'))



if __name__ == '__main__':
    sys.exit(main())
