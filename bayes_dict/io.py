"""
Plain-text matrix files: one row per line, comma separated, no header.
"""
import os

import numpy as np
import torch
from einops import asnumpy

from .utils import resolve_path


def _invalid_number(rows):
    """
    Locate the first field numpy refused, for a readable error.
    """
    for i, fields in enumerate(rows):
        for j, v in enumerate(fields):
            try:
                np.float64(v)
            except ValueError:
                return f"Invalid number '{v}' at row {i + 1}, column {j + 1}"
    return "Invalid number in data file"


def load_matrix_csv(path):
    """
    Load a CSV of equal-width numeric rows as a float64 tensor.
    Errors name the 1-based row (and column) at fault.
    """
    path = resolve_path(path)
    with open(path, "r") as f:
        lines = f.read().splitlines()
    if len(lines) == 0:
        raise ValueError("Data file is empty")

    # np.loadtxt skips blank lines and chokes on trailing commas, so the
    # row structure is checked here and the numbers parsed by numpy
    rows = []
    for i, line in enumerate(lines):
        if not line.strip():
            raise ValueError(f"Empty line found at row {i + 1}")
        fields = [v.strip() for v in line.split(",") if v.strip()]
        if len(fields) == 0:
            raise ValueError(f"No values found in row {i + 1}")
        rows.append(fields)

    width = len(rows[0])
    for i, fields in enumerate(rows[1:], start=2):
        if len(fields) != width:
            raise ValueError(
                f"Inconsistent signal width: row 1 has {width} values, "
                f"but row {i} has {len(fields)} values")

    try:
        Y = np.loadtxt(
            [",".join(fields) for fields in rows],
            delimiter=",", ndmin=2, dtype=np.float64)
    except ValueError:
        raise ValueError(_invalid_number(rows)) from None
    return torch.as_tensor(Y, dtype=torch.float64)


def save_matrix_csv(matrix, path, precision=6, verbose=True):
    """
    Write with a fixed number of decimals; creates parent directories.
    """
    matrix = asnumpy(torch.as_tensor(matrix))
    if matrix.ndim != 2:
        raise ValueError(f"expected a 2d matrix, got shape {matrix.shape}")
    parent = os.path.dirname(os.fspath(path))
    if parent:
        os.makedirs(parent, exist_ok=True)
    np.savetxt(path, matrix, fmt=f"%.{precision}f", delimiter=",")
    if verbose:
        print(f"Saved matrix ({matrix.shape[0]} x {matrix.shape[1]}) to {path}")
    return path


def output_path(name, prefix="", output_dir=None):
    """
    `output_dir/prefix + name`, with output_dir defaulting to $OUTPUT_DIR.
    """
    if output_dir is None:
        output_dir = os.getenv("OUTPUT_DIR", "outputs")
    return os.path.join(output_dir, f"{prefix}{name}")
