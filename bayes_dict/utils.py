import os
import glob

import torch


def resolve_path(path, unique=True):
    """
    Resolve a path that may contain variables and user home directory references and globs.
    if "unique" is True, and there are many matches, panic.
    Otherwise return the first/only match.
    """
    path = os.path.expandvars(os.path.expanduser(os.fspath(path)))
    matches = sorted(glob.glob(path))
    if len(matches) == 0:
        raise FileNotFoundError(f"Data file not found: {path}")
    if unique and len(matches) > 1:
        raise ValueError("Too many matches for glob: {}".format(path))
    return matches[0]


def as_matrix(m, name="matrix", dtype=torch.float64):
    """
    Coerce nested lists, numpy arrays or tensors to a 2d tensor.
    """
    from .vmp._base import InvalidDimension

    m = torch.as_tensor(m, dtype=dtype)
    if m.dim() != 2:
        raise InvalidDimension(
            name, tuple(m.shape),
            f"{name} must be a 2d matrix, got shape {tuple(m.shape)}")
    return m


def first_index(mask):
    """
    Row-major index of the first True entry of `mask`, or None.
    """
    hits = torch.nonzero(mask)
    if hits.shape[0] == 0:
        return None
    return tuple(int(i) for i in hits[0])
