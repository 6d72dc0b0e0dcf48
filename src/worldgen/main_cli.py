"""
worldgen Command-Line Interface entry point.

Provides the main() function behind the ``worldgen`` console script. It
parses the command line, dispatches to the selected command handler and
turns uncaught failures into exit codes.
"""


def main(argv=None):
    """
    Main entry point for the worldgen CLI.

    Args:
        argv: Argument list (for testing). If None, uses sys.argv.
    """
    import sys

    from worldgen.cli.argument_parser import CLIParser
    from worldgen.cli.exit_codes import ExitCode
    from worldgen.exceptions import WorldGenError

    try:
        parser = CLIParser()
        args = parser.parse_args(argv)

        if hasattr(args, 'func'):
            return int(args.func(args))
        else:
            # No command specified - should not happen due to required=True on subparsers
            parser.parser.print_help()
            return ExitCode.USAGE_ERROR

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return ExitCode.INTERRUPTED
    except (WorldGenError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return ExitCode.ERROR
    except Exception as e:  # noqa: BLE001  top-level fallback
        print(f"Unexpected error: {e}", file=sys.stderr)
        return ExitCode.ERROR


if __name__ == "__main__":
    import sys
    sys.exit(main())
