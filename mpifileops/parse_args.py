#!/usr/bin/env python3

import argparse
from humanfriendly import parse_size, InvalidSize

COMPRESS_TOOLS = ['mpibz2']
COPY_TOOLS     = ['mpicp']



def parse_options(appname=None, argv=None):

    if appname in COMPRESS_TOOLS:
        description = 'Compress files in parallel, each rank compressing one piece of every file'
    elif appname in COPY_TOOLS:
        description = 'Copy files and directory trees in parallel'
    else:
        raise NotImplementedError('Unrecognized tool: {}'.format(appname))

    parser = argparse.ArgumentParser(prog=appname, description=description)

    # common arguments first
    parser.add_argument('-v', '--verbose', action='store_true', help='Print detailed information')
    parser.add_argument('--progress', type=int, default=5, help='Frequency to report progress (default:5 seconds, <=0 disables)')
    parser.add_argument('--tmpdir', default=None, type=str, required=False, help='Directory for per-rank temporary files')

    # tool-specific arguments follow
    if appname in COMPRESS_TOOLS:
        parser.add_argument('files', nargs='+', help='Files to compress')
        parser.add_argument('-k', '--keep', action='store_true', help='Keep (don\'t delete) input files')
        parser.add_argument('-f', '--force', action='store_true', help='Overwrite existing output files')
        parser.add_argument('-s', '--suffix', default='.bz2', type=str, help='Suffix of compressed files (default: .bz2)')
        parser.add_argument('--compressor', default='bzip2', type=str, help='Compression tool, must support -c and -1..-9 (default: bzip2)')
        parser.add_argument('-l', '--level', default=9, type=int, choices=range(1,10), help='Compression level (default: 9)')

    else:
        parser.add_argument('paths', nargs='+', metavar='PATH', help='One or more sources followed by the destination')
        parser.add_argument('-r', '--recursive', action='store_true', help='Copy directories recursively')
        parser.add_argument('-n', '--no-clobber', action='store_true', help='Do not overwrite existing files')
        parser.add_argument('-L', '--dereference', dest='dereference', action='store_true', default=False, help='Follow symbolic links in sources')
        parser.add_argument('-P', '--no-dereference', dest='dereference', action='store_false', help='Copy symbolic links as links (default)')
        parser.add_argument('-p', '--preserve', action='store_true', help='Preserve permissions, ownership and timestamps')
        parser.add_argument('-a', '--archive', action='store_true', help='Same as -r -P -p')
        parser.add_argument('-c', '--chunk-size', default='64MiB', type=str, help='Split files larger than this into segments (default: 64MiB)')

    args = parser.parse_args(argv)

    # consistency checks
    if 0 >= args.progress:
        args.progress = float('inf')

    if appname in COMPRESS_TOOLS:
        if not args.suffix:
            parser.error('suffix must not be empty')

    if appname in COPY_TOOLS:
        if len(args.paths) < 2:
            parser.error('missing destination file operand after \'{}\''.format(args.paths[0]))
        args.sources = args.paths[:-1]
        args.target  = args.paths[-1]

        if args.archive:
            args.recursive   = True
            args.dereference = False
            args.preserve    = True

        try:
            args.chunk_size = parse_size(args.chunk_size, binary=True)
        except InvalidSize as error:
            parser.error(str(error))
        if args.chunk_size < 1:
            parser.error('chunk size must be positive')

    # report options
    if args.verbose:
        print('All Options: {}'.format(args))

    return args



if __name__ == '__main__':
    opts = parse_options('mpicp')

    print('\n\n',opts)
