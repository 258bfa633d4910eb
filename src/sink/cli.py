"""Command line interface.

Usage:
    sink config --list dependencies
    sink install --lang py --group dev
    sink add github/owner/repo/*.tar.gz@latest --destination vendor
    sink remove python/requests
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import tomlkit

from sink.config.editor import parse_value, set_field
from sink.errors import ConfigError, ConstraintError, LockfileError, SinkError, ValidationError
from sink.models import OptionValue
from sink.observability import StructuredLogger, configure_logging
from sink.project import InstallResult, Project
from sink.settings import DEFAULT_CONFIG_FILENAME, Settings

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_PARTIAL = 2
EXIT_ALL_FAILED = 3
EXIT_CONFIG = 4
EXIT_INTERRUPTED = 130


def exit_code_for(result: InstallResult | None) -> int:
    if result is None:
        return EXIT_OK
    report = result.report
    if report.interrupted:
        return EXIT_INTERRUPTED
    if not report.failed:
        return EXIT_OK
    if not report.succeeded:
        return EXIT_ALL_FAILED
    return EXIT_PARTIAL


def cmd_config(project: Project, args: argparse.Namespace) -> int:
    if args.update:
        for assignment in args.update:
            field, sep, value = assignment.partition("=")
            if not sep or not field.strip():
                raise ValidationError(
                    "Updates must look like FIELD=VALUE.",
                    context={"update": assignment},
                )
            set_field(project.config_path, field.strip(), value.strip())
            print(f"Updated {field.strip()}")
        return EXIT_OK

    document = project.load()
    if args.field:
        try:
            value = document.get_field(args.field)
        except KeyError as exc:
            raise ValidationError("No such config field.", context={"field": args.field}) from exc
        print(_render(value))
    elif args.list == "languages":
        for name in document.languages():
            print(name)
    elif args.list == "groups":
        for name in document.groups():
            print(name)
    elif args.list == "dependencies":
        for section, group, spec in document.dependencies():
            print(f"{section}.{group}: {spec.name} = {spec.version or 'latest'}")
    elif args.toml:
        print(tomlkit.dumps(document.to_dict()), end="")
    elif args.all:
        print(json.dumps(document.to_dict(), indent=2))
    else:
        print(f"config: {document.root}")
        for path in document.files[1:]:
            print(f"  includes: {path}")
        print(f"languages: {', '.join(document.languages()) or '-'}")
        print(f"groups: {', '.join(document.groups()) or '-'}")
    return EXIT_OK


def cmd_install(project: Project, args: argparse.Namespace) -> int:
    cancel = threading.Event()
    result = project.install(
        lang=args.lang,
        group=args.group,
        all_groups=args.all,
        frozen=args.sink,
        cancel=cancel,
    )
    print(result.summary())
    return exit_code_for(result)


def cmd_add(project: Project, args: argparse.Namespace) -> int:
    options: dict[str, OptionValue] = {}
    for assignment in args.option or ():
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            raise ValidationError("Options must look like KEY=VALUE.", context={"option": assignment})
        options[key.strip()] = parse_value(value.strip())
    if args.repository:
        options["repository"] = args.repository
    if args.destination:
        options["destination"] = args.destination
    result = project.add(
        args.dependency,
        group=args.group,
        options=options or None,
        install=not args.no_install,
    )
    if result is not None:
        print(result.summary())
    return exit_code_for(result)


def cmd_remove(project: Project, args: argparse.Namespace) -> int:
    result = project.remove(args.dependency)
    print(result.summary())
    return exit_code_for(result)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sink", description="Project-level dependency manager")
    parser.add_argument(
        "-c", "--config", type=Path, default=Path(DEFAULT_CONFIG_FILENAME), help="Root sink TOML"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-j", "--jobs", type=int, help="Maximum concurrent installs")
    parser.add_argument("--timeout", type=float, help="Network/plugin timeout in seconds")
    parser.add_argument("--offline", action="store_true", help="Refuse network operations")
    parser.add_argument("--report", type=Path, help="Write structured log records as JSON lines")
    sub = parser.add_subparsers(dest="command", required=True)

    config_p = sub.add_parser("config", help="Inspect or update the merged configuration")
    config_p.add_argument("--all", action="store_true", help="Print the merged config as JSON")
    config_p.add_argument("--toml", action="store_true", help="Print the merged config as TOML")
    config_p.add_argument("--list", choices=("groups", "languages", "dependencies"))
    config_p.add_argument("--field", help="Print one `.`-separated field")
    config_p.add_argument("--update", action="append", metavar="FIELD=VALUE", help="Set a field")
    config_p.set_defaults(handler=cmd_config)

    install_p = sub.add_parser("install", help="Install dependencies and update the lock")
    install_p.add_argument("--all", action="store_true", help="Every group; prunes undeclared entries")
    install_p.add_argument("-l", "--lang", help="Only this language (py, rs, gh aliases accepted)")
    install_p.add_argument("-g", "--group", help="Only this group (case-insensitive)")
    install_p.add_argument("--sink", action="store_true", help="Install exactly what the lock records")
    install_p.set_defaults(handler=cmd_install)

    add_p = sub.add_parser("add", help="Declare and install a dependency")
    add_p.add_argument("dependency", help="source/name[@version]")
    add_p.add_argument("-g", "--group", help="Group to declare the dependency in")
    add_p.add_argument("--repository", help="GitHub repository as owner/repo")
    add_p.add_argument("--destination", "--dest", dest="destination", help="GitHub asset destination")
    add_p.add_argument("--option", action="append", metavar="KEY=VALUE", help="Extra dependency option")
    add_p.add_argument("--no-install", action="store_true", help="Only edit the config")
    add_p.set_defaults(handler=cmd_add)

    remove_p = sub.add_parser("remove", help="Uninstall and undeclare a dependency")
    remove_p.add_argument("dependency", help="source/name")
    remove_p.set_defaults(handler=cmd_remove)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    logger = StructuredLogger()
    try:
        settings = Settings.from_env().with_overrides(
            jobs=args.jobs,
            timeout=args.timeout,
            network_mode="offline" if args.offline else None,
        )
        project = Project(config_path=args.config, settings=settings, logger=logger)
        return args.handler(project, args)
    except (ConfigError, ConstraintError, LockfileError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except SinkError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        if args.report:
            logger.to_json_lines(args.report)


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2)
    return str(value)


if __name__ == "__main__":
    sys.exit(main())
