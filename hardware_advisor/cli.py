"""Command-line interface for hardware recommendation."""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .constants import GB, TERA
from .errors import HardwareAdvisorError
from .estimator import ResourceEstimator
from .hardware_library import get_hardware_profiles, list_available_hardware, load_catalog
from .hub import fetch_model_spec
from .model_config import load_model_config
from .models import HardwareCatalog, ModelSpec, OptimizerKind, Precision, WorkloadIntent, WorkloadMode
from .recommender import RecommendationEngine, RecommendationResult
from .report import recommendations_frame, summary_frame, to_csv
from .scan import SystemInfo, detected_hardware_profiles, scan_system

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_INPUT = 1
EXIT_NO_RECOMMENDATION = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def load_models_from_json(filepath: str) -> List[ModelSpec]:
    """Load model descriptions from a JSON file (one object or a list)."""
    with open(filepath, "r") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = [data]
    return [ModelSpec.from_dict(model_data) for model_data in data]


def load_catalog_from_json(filepath: str) -> HardwareCatalog:
    """Load a hardware catalog from a JSON file."""
    return load_catalog(filepath)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hardware-advisor",
        description="Hardware recommendation engine for ML inference and training",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Recommend from the preloaded library
  hardware-advisor --model examples/models.json --hardware-library H100 A100-80GB L40

  # List available hardware in the library
  hardware-advisor --list-hardware

  # Describe this machine, then size a model for its own GPUs
  hardware-advisor --scan
  hardware-advisor --model examples/models.json --scan --max-devices 8

  # Training on up to 8 devices, fp16 or int8, with a custom catalog
  hardware-advisor --model examples/models.json --catalog examples/hardware.json \\
      --mode training --batch-size 16 --max-devices 8 --precision fp16 --precision int8

  # Straight from a Hugging Face config.json, with a throughput target
  hardware-advisor --model-config examples/llama2_7b_config.json --hardware-library \\
      --target-throughput 500 --format table
        """,
    )

    model_group = parser.add_argument_group("model input")
    model_group.add_argument("--model", help="Path to JSON file with one or more model descriptions")
    model_group.add_argument(
        "--model-config",
        nargs="+",
        metavar="PATH",
        help="Path(s) to Hugging Face config.json files",
    )
    model_group.add_argument(
        "--hf-model",
        nargs="+",
        metavar="MODEL_ID",
        help="Hugging Face model id(s) to fetch (requires the 'hub' extra; token from HF_TOKEN)",
    )

    hardware_group = parser.add_mutually_exclusive_group()
    hardware_group.add_argument("--catalog", help="Path to JSON file containing hardware profiles")
    hardware_group.add_argument(
        "--hardware-library",
        nargs="*",
        metavar="KEY",
        help="Select hardware from the preloaded library (all entries when no key is given)",
    )
    hardware_group.add_argument(
        "--list-hardware",
        action="store_true",
        help="List all hardware in the preloaded library and exit",
    )
    hardware_group.add_argument(
        "--scan",
        action="store_true",
        help="Detect local CPUs and NVIDIA GPUs; with a model, recommend from the detected GPUs only",
    )
    parser.add_argument(
        "--extend-hardware",
        help="Path to JSON file with additional hardware profiles to add to the selection",
    )

    workload_group = parser.add_argument_group("workload")
    workload_group.add_argument(
        "--mode", choices=[m.value for m in WorkloadMode], default=WorkloadMode.INFERENCE.value
    )
    workload_group.add_argument("--batch-size", type=int, default=1, help="Global batch size (default: 1)")
    workload_group.add_argument(
        "--sequence-length", type=int, default=2048, help="Tokens per sequence (default: 2048)"
    )
    workload_group.add_argument(
        "--max-devices", type=int, default=1, help="Largest device count to consider (default: 1)"
    )
    workload_group.add_argument(
        "--precision",
        action="append",
        choices=[p.value for p in Precision],
        help="Allowed precision; repeat for several (default: the model's native precision)",
    )
    workload_group.add_argument(
        "--prefer-precision",
        choices=[p.value for p in Precision],
        help="Rank this precision first (explicit quantization request)",
    )
    workload_group.add_argument(
        "--optimizer",
        choices=[o.value for o in OptimizerKind],
        default=OptimizerKind.ADAM.value,
        help="Optimizer whose state is accounted for in training (default: adam)",
    )
    workload_group.add_argument(
        "--target-throughput",
        type=float,
        help="Minimum throughput in tokens/s (samples/s for non-transformer models)",
    )
    workload_group.add_argument(
        "--no-autoregressive",
        action="store_true",
        help="Inference processes whole sequences at once (no KV-cache)",
    )

    estimator_group = parser.add_argument_group("estimator")
    estimator_group.add_argument(
        "--memory-overhead",
        type=float,
        default=0.0,
        help="Extra memory reserved as a fraction of the estimate (default: 0.0)",
    )
    estimator_group.add_argument(
        "--compute-efficiency",
        type=float,
        default=1.0,
        help="Fraction of peak compute achieved, in (0, 1] (default: 1.0)",
    )

    output_group = parser.add_argument_group("output")
    output_group.add_argument("--format", choices=["json", "table", "csv"], default="json")
    output_group.add_argument("--output", help="Path to output file (default: stdout)")
    output_group.add_argument("--top", type=int, help="Keep only the best N recommendations per model")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging verbosity (default: WARNING)",
    )
    return parser


def _load_models(args) -> List[ModelSpec]:
    models = []
    if args.model:
        models.extend(load_models_from_json(args.model))
    for path in args.model_config or []:
        models.append(load_model_config(path))
    for model_id in args.hf_model or []:
        models.append(fetch_model_spec(model_id))
    return models


def _load_catalog(args, system: Optional[SystemInfo] = None) -> HardwareCatalog:
    if system is not None:
        catalog = HardwareCatalog(detected_hardware_profiles(system))
    elif args.hardware_library is not None:
        catalog = HardwareCatalog(get_hardware_profiles(args.hardware_library or None))
    elif args.catalog:
        catalog = load_catalog_from_json(args.catalog)
    else:
        catalog = HardwareCatalog()

    if args.extend_hardware:
        extra = load_catalog_from_json(args.extend_hardware)
        catalog = catalog.extend(extra)
        print(f"Extended hardware selection with {len(extra)} custom profile(s)", file=sys.stderr)
    return catalog


def _render(results: List[RecommendationResult], args, parameters: Dict[str, Any]) -> str:
    if args.format == "csv":
        return to_csv(recommendations_frame(results, top=args.top))
    if args.format == "table":
        sections = [summary_frame(results).to_string(index=False)]
        frame = recommendations_frame(results, top=args.top)
        if not frame.empty:
            sections.append(frame.to_string(index=False))
        return "\n\n".join(sections)

    output = []
    for result in results:
        data = result.to_dict()
        if args.top:
            data["recommendations"] = data["recommendations"][: args.top]
        output.append(data)
    return json.dumps({"recommendations": output, "parameters": parameters}, indent=2)


def _print_summary(results: List[RecommendationResult], catalog: HardwareCatalog) -> None:
    print("\n=== Summary ===", file=sys.stderr)
    print(
        f"Evaluated {len(results)} model(s) against {len(catalog)} hardware type(s)",
        file=sys.stderr,
    )
    for result in results:
        best = result.recommended
        if best is None:
            print(f"  {result.model_name}: no recommendation ({result.error})", file=sys.stderr)
            print(f"    {result.reasoning}", file=sys.stderr)
            continue
        config = best.configuration
        cost_info = f" (${best.total_cost_per_hour:.2f}/hr)" if best.total_cost_per_hour is not None else ""
        if config.device_count > 1:
            print(
                f"  {result.model_name}: {config.device_count}x{best.hardware_id} "
                f"({config.parallelism_strategy.value}, {config.precision.value}){cost_info}",
                file=sys.stderr,
            )
        else:
            print(
                f"  {result.model_name}: {best.hardware_id} ({config.precision.value}){cost_info}",
                file=sys.stderr,
            )


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT, stream=sys.stderr)

    try:
        if args.list_hardware:
            print("Available hardware in the library:")
            for key, profile in zip(list_available_hardware(), get_hardware_profiles()):
                print(
                    f"  {key}: {profile.display_name} "
                    f"({profile.memory_capacity_bytes / GB:g}GB, "
                    f"{profile.compute_throughput / TERA:g} TFLOPS FP16)"
                )
            sys.exit(EXIT_OK)

        system = None
        if args.scan:
            system = scan_system()
            if not (args.model or args.model_config or args.hf_model):
                print(json.dumps(system.to_dict(), indent=2))
                sys.exit(EXIT_OK)

        if not (args.model or args.model_config or args.hf_model):
            print("Error: one of --model, --model-config or --hf-model is required", file=sys.stderr)
            parser.print_help()
            sys.exit(EXIT_INVALID_INPUT)

        models = _load_models(args)
        if not models:
            print("Error: No models found in input file", file=sys.stderr)
            sys.exit(EXIT_INVALID_INPUT)

        catalog = _load_catalog(args, system)
        if len(catalog) == 0:
            if system is not None:
                print("Error: --scan found no GPU with a library entry", file=sys.stderr)
            else:
                print(
                    "Error: Either --catalog or --hardware-library must be specified",
                    file=sys.stderr,
                )
            sys.exit(EXIT_INVALID_INPUT)

        max_devices = args.max_devices
        if system is not None and system.gpu_count < max_devices:
            logger.info("Capping --max-devices at the %d detected GPU(s)", system.gpu_count)
            max_devices = system.gpu_count
        logger.info("Loaded %d model(s) and %d hardware profile(s)", len(models), len(catalog))

        intent = WorkloadIntent(
            mode=args.mode,
            batch_size=args.batch_size,
            sequence_length=args.sequence_length,
            target_throughput=args.target_throughput,
            max_device_count=max_devices,
            allowed_precisions=args.precision,
            optimizer_kind=args.optimizer,
            autoregressive=not args.no_autoregressive,
            preferred_precision=args.prefer_precision,
        )
        estimator = ResourceEstimator(
            memory_overhead_fraction=args.memory_overhead,
            compute_efficiency=args.compute_efficiency,
        )
        engine = RecommendationEngine(estimator=estimator)

        results = engine.recommend_for_models(models, intent, catalog)

        parameters = {
            "workload": intent.to_dict(),
            "memory_overhead_fraction": args.memory_overhead,
            "compute_efficiency": args.compute_efficiency,
            "hardware": catalog.ids,
        }
        if system is not None:
            parameters["system"] = system.to_dict()
        rendered = _render(results, args, parameters)

        if args.output:
            with open(args.output, "w") as f:
                f.write(rendered)
            print(f"Recommendations written to {args.output}")
        else:
            print(rendered)

        _print_summary(results, catalog)

        if any(result.error for result in results):
            sys.exit(EXIT_NO_RECOMMENDATION)

    except FileNotFoundError as e:
        print(f"Error: File not found - {e}", file=sys.stderr)
        sys.exit(EXIT_INVALID_INPUT)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON - {e}", file=sys.stderr)
        sys.exit(EXIT_INVALID_INPUT)
    except (HardwareAdvisorError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_INVALID_INPUT)


if __name__ == "__main__":
    main()
