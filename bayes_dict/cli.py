"""
Command line entry point: learn a dictionary from a CSV of signals, or from
a synthetic sine-atom problem when no data file is given.

    bayes-dict --bases 8
    bayes-dict --data signals.csv --bases 16 --no-sparse -o run1_
"""
import argparse
import sys

from dotenv import load_dotenv

from .io import load_matrix_csv, save_matrix_csv, output_path
from .metrics import reconstruction_metrics, sparsity_fraction
from .synthetic import make_synthetic
from .vmp import (
    BayesDictError, DimensionMismatch, Hyperparameters,
    InferenceController, build, initialize, extract)
from .vmp._base import _check_dim
from .vmp.extraction import reconstruct_signals
from .vmp.updates import SCHEDULES


def make_parser():
    parser = argparse.ArgumentParser(
        prog="bayes-dict",
        description="Bayesian sparse dictionary learning by variational message passing.")
    parser.add_argument('-d', '--data', default=None,
                        help="CSV of signals, one per row. Synthetic data if omitted.")
    parser.add_argument('-s', '--signals', type=int, default=200,
                        help="number of synthetic signals")
    parser.add_argument('-b', '--bases', type=int, required=True,
                        help="number of dictionary atoms to learn")
    parser.add_argument('-w', '--width', type=int, default=None,
                        help="signal width; read from the data file if omitted, else 64")
    parser.add_argument('--sparse', action=argparse.BooleanOptionalAction, default=True,
                        help="sparsity-promoting coefficient precision prior")
    parser.add_argument('-a', '--prior-shape', type=float, default=None,
                        help="shape a of the Gamma(a, b) coefficient precision prior")
    parser.add_argument('--prior-rate', type=float, default=None,
                        help="rate b of the Gamma(a, b) coefficient precision prior")
    parser.add_argument('-i', '--iterations', type=int, default=100,
                        help="maximum number of VMP sweeps")
    parser.add_argument('--tol', type=float, default=None,
                        help="stop once the relative ELBO change stays below this")
    parser.add_argument('--schedule', choices=SCHEDULES, default="parallel")
    parser.add_argument('--update-dictionary-precisions', action='store_true',
                        help="infer the dictionary precisions instead of fixing them")
    parser.add_argument('--seed', type=int, default=42)
    parser.add_argument('--noise', type=float, default=0.1,
                        help="noise standard deviation of synthetic data")
    parser.add_argument('-o', '--output-prefix', default="")
    parser.add_argument('--output-dir', default=None,
                        help="defaults to $OUTPUT_DIR, else ./outputs")
    parser.add_argument('-v', '--verbose', action='store_true')
    parser.add_argument('--init-dictionary', default=None,
                        help="CSV of initial dictionary means (bases x width)")
    parser.add_argument('--init-coefficients', default=None,
                        help="CSV of initial coefficients (signals x bases)")
    return parser


def run(args):
    _check_dim("numBases", args.bases)
    truth = None
    if args.data is not None:
        print(f"Loading signals from {args.data}")
        signals = load_matrix_csv(args.data)
        S, W = signals.shape
        if args.width is not None and args.width != W:
            raise DimensionMismatch("signals", (S, args.width), (S, W))
    else:
        S = args.signals
        W = args.width if args.width is not None else 64
        _check_dim("numSignals", S)
        _check_dim("signalWidth", W)
        print(f"Generating {S} synthetic signals of width {W}")
        truth = make_synthetic(S, args.bases, W, noise_std=args.noise, seed=args.seed)
        signals = truth.signals

    hp = Hyperparameters(
        sparse=args.sparse, a=args.prior_shape, b=args.prior_rate,
        update_dictionary_precisions=args.update_dictionary_precisions)
    print(f"Signals: {S}  Bases: {args.bases}  Width: {W}  {hp}")

    state = build(S, args.bases, W, hyperparameters=hp)
    initialize(
        state, seed=args.seed,
        custom_dictionary_means=(
            None if args.init_dictionary is None
            else load_matrix_csv(args.init_dictionary)),
        custom_coefficients=(
            None if args.init_coefficients is None
            else load_matrix_csv(args.init_coefficients)))
    state.set_observed(signals)

    controller = InferenceController(
        state,
        max_iterations=args.iterations,
        cvg_tol=args.tol,
        schedule=args.schedule,
        track_elbo=args.verbose,
        verbose=2 if args.verbose else 1)
    controller.solve()
    posterior = extract(controller)

    reconstructed = reconstruct_signals(posterior.coefficients, posterior.dictionary)
    metrics = reconstruction_metrics(signals, reconstructed)
    print("=== Reconstruction Error Metrics ===")
    print(f"Mean Squared Error (MSE):       {metrics['mse']:.6f}")
    print(f"Root Mean Squared Error (RMSE): {metrics['rmse']:.6f}")
    print(f"Mean Absolute Error (MAE):      {metrics['mae']:.6f}")
    print(f"Relative Error:                 {metrics['relative_error']:.6f}")
    print(f"Signal-to-Noise Ratio (dB):     {metrics['snr_db']:.2f}")
    print(f"Coefficient sparsity:           {sparsity_fraction(posterior.coefficients):.3f}")
    print(f"Noise precision:                {posterior.noise_precision:.6g}")

    def out(name):
        return output_path(name, args.output_prefix, args.output_dir)

    paths = [
        save_matrix_csv(posterior.dictionary, out("learned_dictionary.csv")),
        save_matrix_csv(posterior.coefficients, out("learned_coefficients.csv")),
        save_matrix_csv(reconstructed, out("reconstructed_signals.csv")),
    ]
    if truth is not None:
        paths.append(save_matrix_csv(truth.dictionary, out("true_dictionary.csv")))
        paths.append(save_matrix_csv(truth.coefficients, out("true_coefficients.csv")))
    return posterior, metrics, paths


def main(argv=None):
    load_dotenv()
    args = make_parser().parse_args(argv)
    try:
        run(args)
    except (BayesDictError, FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
