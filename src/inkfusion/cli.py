"""
Command-line interface for ink fusion.

Provides commands for analyzing request files and creating a config.
"""

import argparse
import sys

from inkfusion.config import load_config, save_default_config
from inkfusion.tracer import configure_tracer, get_tracer


def build_parser():
    parser = argparse.ArgumentParser(
        description="Ink Fusion: fuse freehand strokes with object detections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze a request file")
    analyze_parser.add_argument(
        "--request", "-r",
        required=True,
        help="Path to the request JSON (canvas, strokes, detections)",
    )
    analyze_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output directory",
    )
    analyze_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    analyze_parser.add_argument(
        "--debug",
        action="store_true",
        help="Write debug artifacts",
    )
    analyze_parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable runtime tracing",
    )
    analyze_parser.add_argument(
        "--trace-level",
        default="INFO",
        choices=["ERROR", "WARN", "INFO", "DEBUG"],
        help="Trace log level",
    )
    analyze_parser.add_argument(
        "--trace-file",
        default=None,
        help="Path to write trace logs",
    )
    analyze_parser.add_argument(
        "--trace-json",
        action="store_true",
        help="Enable JSON trace output",
    )

    init_parser = subparsers.add_parser("init-config", help="Create default config file")
    init_parser.add_argument(
        "--out", "-o",
        default="inkfusion_config.yaml",
        help="Output path for config file",
    )

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "analyze":
        return handle_analyze(args)
    if args.command == "init-config":
        return handle_init_config(args)

    return 0


def handle_analyze(args):
    """Handle the analyze command."""
    config = load_config(args.config)

    tracing = config.tracing
    configure_tracer(
        enabled=args.trace or tracing.enabled,
        level=args.trace_level if args.trace else tracing.level,
        file_path=args.trace_file or tracing.file_path,
        json_output=args.trace_json or tracing.json_output,
        history_size=1000 if args.debug else 0,
    )

    tracer = get_tracer()

    try:
        from inkfusion.pipeline import analyze_request

        with tracer.span("cli_analyze", module="cli"):
            result = analyze_request(
                request_path=args.request,
                out_dir=args.out,
                config=config,
                debug=args.debug,
            )
    except (OSError, ValueError) as e:
        tracer.event(f"Analysis failed: {e}", level="ERROR")
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    finally:
        tracer.config.close()

    print("\nAnalysis completed.")
    print(f"  Elements: {len(result.elements)}")
    print(f"  Content type: {result.content_type.value}")
    print(f"  Validation errors: {result.validation.error_count}")
    print(f"  Validation warnings: {result.validation.warning_count}")
    print(f"\nOutputs saved to: {args.out}/")
    print("  - result.json")
    print("  - validation_report.json")

    if result.validation.has_errors:
        print("\n[!] Validation errors detected. Review validation_report.json")
        return 1

    return 0


def handle_init_config(args):
    """Handle the init-config command."""
    save_default_config(args.out)
    print(f"Default configuration saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
