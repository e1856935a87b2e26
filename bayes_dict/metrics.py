import math

import torch


def reconstruction_metrics(original, reconstructed):
    """
    Error summaries of a reconstruction, as python floats.
    relative_error is ||Y - Yhat|| / ||Y||; snr_db is 10 log10 of the
    signal to error energy ratio.
    """
    original = torch.as_tensor(original, dtype=torch.float64)
    reconstructed = torch.as_tensor(reconstructed, dtype=torch.float64)
    if original.shape != reconstructed.shape:
        raise ValueError(
            f"shape mismatch: original {tuple(original.shape)}, "
            f"reconstructed {tuple(reconstructed.shape)}")
    if original.numel() == 0:
        raise ValueError("cannot compute metrics of empty matrices")
    err = original - reconstructed
    sse = float((err ** 2).sum())
    ss_orig = float((original ** 2).sum())
    mse = sse / original.numel()
    return dict(
        mse=mse,
        rmse=math.sqrt(mse),
        mae=float(err.abs().mean()),
        relative_error=math.sqrt(sse / ss_orig) if ss_orig > 0 else math.inf,
        snr_db=10 * math.log10(ss_orig / sse) if sse > 0 else math.inf,
    )


def sparsity_fraction(coefficients, threshold=0.05):
    """
    Fraction of coefficients with magnitude below `threshold`.
    """
    coefficients = torch.as_tensor(coefficients, dtype=torch.float64)
    return float((coefficients.abs() < threshold).double().mean())


def atom_recovery(true_dictionary, learned_dictionary, eps=1e-12):
    """
    For each true atom (row), the best absolute cosine similarity to any
    learned atom. Sign and order of learned atoms are unidentifiable, hence
    absolute value and max.
    """
    true_dictionary = torch.as_tensor(true_dictionary, dtype=torch.float64)
    learned_dictionary = torch.as_tensor(learned_dictionary, dtype=torch.float64)
    if true_dictionary.shape[1] != learned_dictionary.shape[1]:
        raise ValueError(
            f"atom width mismatch: {true_dictionary.shape[1]} "
            f"vs {learned_dictionary.shape[1]}")
    t = true_dictionary / true_dictionary.norm(dim=1, keepdim=True).clamp_min(eps)
    l = learned_dictionary / learned_dictionary.norm(dim=1, keepdim=True).clamp_min(eps)
    return (t @ l.T).abs().max(dim=1).values
