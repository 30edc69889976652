#!/usr/bin/env python3

import os



################################################################################
class ValidationError(ValueError):
    pass



################################################################################
def resolve_targets(sources, target, recursive=False, dereference=False):
    """
    Map the requested sources onto destination paths, cp-style:

      one file   -> target file, or target/<name> if target is a directory
      one dir    -> target (created), or target/<name> if target is a directory
      many       -> target/<name> for each, target must be an existing directory

    Raises ValidationError for any combination that cannot work, before
    anything has been touched.
    """
    if not sources:
        raise ValidationError('no source paths given')

    exists = os.path.exists if dereference else os.path.lexists
    isdir  = os.path.isdir

    for src in sources:
        if not exists(src):
            raise ValidationError('cannot stat \'{}\': No such file or directory'.format(src))
        if not recursive and _is_dir(src, dereference):
            raise ValidationError('-r not specified; omitting directory \'{}\''.format(src))

    target_is_dir = isdir(target)

    if len(sources) > 1 and not target_is_dir:
        raise ValidationError('target \'{}\' is not a directory'.format(target))

    parent = os.path.dirname(os.path.abspath(target))
    if not target_is_dir and not isdir(parent):
        raise ValidationError('cannot create \'{}\': parent directory does not exist'.format(target))

    pairs = []
    for src in sources:
        if target_is_dir:
            name = os.path.basename(os.path.normpath(src))
            dst = os.path.join(target, name)
        else:
            dst = target

        if _is_dir(src, dereference):
            if not os.path.isdir(dst) and os.path.lexists(dst):
                raise ValidationError('cannot overwrite non-directory \'{}\' with directory \'{}\''.format(dst, src))
            src_real = os.path.realpath(src)
            dst_real = os.path.realpath(dst)
            if dst_real == src_real or dst_real.startswith(src_real + os.sep):
                raise ValidationError('cannot copy a directory, \'{}\', into itself, \'{}\''.format(src, dst))

        pairs.append((src, dst))

    return pairs



################################################################################
def _is_dir(path, dereference):
    if dereference:
        return os.path.isdir(path)
    return os.path.isdir(path) and not os.path.islink(path)
