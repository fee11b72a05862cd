#!/usr/bin/env python3
"""
Command-line interface for the tensor codecs
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
from colorama import init as colorama_init

from .config import load_config
from .errors import CodecError, TensorFileError
from .metrics import bits_per_weight, measure_metrics
from .quantization import QUANTIZATION_TYPES, dequantize, get_quantized_array_size, quantize
from .random_arrays import RandomArrayGenerator
from .sparsity import compress, decompress, get_sparse_array_size
from .tensor_file import read_tensor_file, write_tensor_file
from .theme import paint


def _report_line(label, size_bytes, num_elements, metrics, extra=""):
    return (f"   {paint('codec', label)}: {extra}size={size_bytes / 1024.0:.3f} KB, "
            f"B/W={bits_per_weight(size_bytes, num_elements):.5f}, "
            f"MAE={metrics.mae:.6f}, MSE={metrics.mse:.6f}, MaxAbs={metrics.max_abs:.6f}")


def _run_quantization(values, quantized_type):
    """Quantize and dequantize, returning (record, reconstruction)"""
    quantized_array = quantize(values, quantized_type=quantized_type)
    recovered = np.empty(values.size, dtype=np.float32)
    dequantize(quantized_array, recovered)
    return quantized_array, recovered


def _run_sparsity(values, num_tokens, num_features, ratio, config):
    """Compress and decompress, returning (record, reconstruction)"""
    sparse_array = compress(
        values, num_tokens, num_features, ratio,
        parallel=config["parallel"],
        num_workers=config["num_workers"],
        verbose=config["verbose"],
    )
    recovered = np.empty(num_tokens * num_features, dtype=np.float32)
    decompress(sparse_array, recovered)
    return sparse_array, recovered


def cmd_quantize_bench(config) -> int:
    generator = RandomArrayGenerator(config["seed"])
    n = config["array_length"]
    inputs = generator.generate(config["num_arrays"], n, config["min_value"], config["max_value"])

    for k, values in enumerate(inputs):
        lines = []
        num_blocks = None
        for qtype in config["quantization_types"]:
            quantized_array, recovered = _run_quantization(values, qtype)
            num_blocks = quantized_array.num_blocks
            metrics = measure_metrics(values, recovered)
            lines.append(_report_line(qtype.upper(), get_quantized_array_size(quantized_array), n, metrics))
            quantized_array.release()

        print(paint("highlight", f"[array {k}]") +
              f" N={n}, blocks={num_blocks}, original_size={n * 4 / 1024.0:.3f} KB")
        for line in lines:
            print(line)
    return 0


def cmd_sparsity_bench(config) -> int:
    generator = RandomArrayGenerator(config["seed"])
    num_tokens = config["num_tokens"]
    num_features = config["num_features"]
    n = num_tokens * num_features
    inputs = generator.generate(config["num_arrays"], n, config["min_value"], config["max_value"])

    for k, values in enumerate(inputs):
        print(paint("highlight", f"[array {k}]") +
              f" N={n} (tokens={num_tokens}, features={num_features}), "
              f"original_size={n * 4 / 1024.0:.3f} KB")

        for ratio in config["sparse_ratios"]:
            sparse_array, recovered = _run_sparsity(values, num_tokens, num_features, ratio, config)
            metrics = measure_metrics(values, recovered)
            print(_report_line(f"Sparse{ratio:.2f}", get_sparse_array_size(sparse_array), n, metrics,
                               extra=f"sparsity={sparse_array.sparsity:.3f}, "))
            sparse_array.release()
        print()
    return 0


def cmd_evaluate(config, input_path: Path, output_dir: Optional[Path]) -> int:
    tensor = read_tensor_file(input_path)
    n = tensor.num_elements
    values = tensor.data.reshape(-1)

    print(paint("success", "Loaded") +
          f" {input_path}: tokens={tensor.n_tokens}, embed={tensor.n_embed}, N={n}")

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)

    def _write(name, recovered):
        if output_dir is None:
            return
        out_path = write_tensor_file(output_dir / f"{name}.bin", recovered, tensor.n_embed, tensor.n_tokens)
        if config["verbose"]:
            print(paint("metadata", f"   wrote {out_path}"), flush=True)

    for qtype in config["quantization_types"]:
        quantized_array, recovered = _run_quantization(values, qtype)
        metrics = measure_metrics(values, recovered)
        _write(qtype.lower(), recovered)
        print(_report_line(qtype.lower(), get_quantized_array_size(quantized_array), n, metrics))
        quantized_array.release()

    for ratio in config["evaluate_sparse_ratios"]:
        name = f"sparse{ratio:g}"
        sparse_array, recovered = _run_sparsity(values, tensor.n_tokens, tensor.n_embed, ratio, config)
        metrics = measure_metrics(values, recovered)
        _write(name, recovered)
        print(_report_line(name, get_sparse_array_size(sparse_array), n, metrics,
                           extra=f"sparsity={sparse_array.sparsity:.3f}, "))
        sparse_array.release()
    return 0


def cmd_list_types() -> int:
    print("Available quantization types:")
    print()
    for name, tag in QUANTIZATION_TYPES.items():
        print(f"  {name}  (tag {tag})")
    print()
    print("Q8_0 - 8-bit codes, one FP32 scale per 32 elements")
    print("Q4_0 - 4-bit codes packed two per byte, one FP32 scale per 32 elements")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tensor-codecs",
        description="Quantization and top-k sparsity codecs for float32 tensors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Error metrics for Q8_0 and Q4_0 on random arrays
  tensor-codecs quantize-bench --arrays 4 --length 1048576

  # Top-k sparsity at two ratios on random [512, 8192] arrays
  tensor-codecs sparsity-bench --tokens 512 --features 8192 --ratios 0.15 0.05

  # Run every codec on a tensor file and write the reconstructions
  tensor-codecs evaluate example/example.bin --output-dir recovered/
        """
    )
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON config file (default: ~/.tensor_codecs_config.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--seed", type=int, default=None, help="Seed for random inputs")
    parser.add_argument("--serial", action="store_true",
                        help="Disable the top-k worker pool")
    parser.add_argument("--workers", type=int, default=None,
                        help="Worker threads for top-k compression (default: CPU cores - 1)")

    subparsers = parser.add_subparsers(dest="command")

    qbench = subparsers.add_parser("quantize-bench", help="Quantize random arrays and report errors")
    qbench.add_argument("--arrays", type=int, default=None, help="Number of random arrays")
    qbench.add_argument("--length", type=int, default=None, help="Elements per array")
    qbench.add_argument("-q", "--types", nargs="+", default=None,
                        help="Quantization types (default: Q8_0 Q4_0)")

    sbench = subparsers.add_parser("sparsity-bench", help="Sparsify random 2D arrays and report errors")
    sbench.add_argument("--arrays", type=int, default=None, help="Number of random arrays")
    sbench.add_argument("--tokens", type=int, default=None, help="Rows per array")
    sbench.add_argument("--features", type=int, default=None, help="Columns per array")
    sbench.add_argument("--ratios", type=float, nargs="+", default=None,
                        help="Fractions of features kept per token")

    evaluate = subparsers.add_parser("evaluate", help="Run every codec on a tensor file")
    evaluate.add_argument("input", type=Path, help="Tensor file (type byte + 3 x u64 header + FP32 data)")
    evaluate.add_argument("-o", "--output-dir", type=Path, default=None,
                          help="Write each reconstruction as <codec>.bin into this directory")
    evaluate.add_argument("--ratios", type=float, nargs="+", default=None,
                          help="Sparse ratios to evaluate (default: 0.25 0.125)")

    subparsers.add_parser("list-types", help="List quantization types and exit")
    return parser


def _apply_overrides(config, args):
    overrides = {
        "verbose": args.verbose or None,
        "seed": args.seed,
        "num_workers": args.workers,
        "num_arrays": getattr(args, "arrays", None),
        "array_length": getattr(args, "length", None),
        "quantization_types": getattr(args, "types", None),
        "num_tokens": getattr(args, "tokens", None),
        "num_features": getattr(args, "features", None),
    }
    if args.serial:
        overrides["parallel"] = False
    if args.command == "evaluate":
        overrides["evaluate_sparse_ratios"] = args.ratios
    else:
        overrides["sparse_ratios"] = getattr(args, "ratios", None)

    for key, value in overrides.items():
        if value is not None:
            config[key] = value
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    colorama_init(autoreset=True)
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "list-types":
        return cmd_list_types()

    config = _apply_overrides(load_config(args.config), args)

    try:
        if args.command == "quantize-bench":
            return cmd_quantize_bench(config)
        if args.command == "sparsity-bench":
            return cmd_sparsity_bench(config)
        return cmd_evaluate(config, args.input, args.output_dir)

    except (CodecError, TensorFileError, OSError) as e:
        print(paint("error", f"\nError: {e}"), file=sys.stderr, flush=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
