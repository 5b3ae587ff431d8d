import argparse
import json
import sys

from layersync import settings, sync_flow
from layersync.errors import LayerSyncError, ManifestReadError, StateCorruptionError
from layersync.integrations import known_tools
from layersync.report import InstallationReport, render_report


def _print_report(report: InstallationReport, args) -> int:
    if getattr(args, "json", False):
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=True))
    else:
        print(render_report(report, verbose=getattr(args, "verbose", False)))
    return sync_flow.exit_code(report)


def _tools(args):
    return args.tool if args.tool else settings.default_tools()


def install_base_command(args):
    report = sync_flow.install_base(root=args.root, source=args.source, tools=_tools(args), force=args.force)
    code = _print_report(report, args)
    if code == sync_flow.EXIT_OK and not args.json:
        print("Next: agent-os install project (from inside your project)")
    return code


def install_project_command(args):
    report = sync_flow.install_project(
        project_root=args.root,
        force=args.force,
        tools=_tools(args),
        team_source=args.team_source,
        project_source=args.project_source,
    )
    return _print_report(report, args)


def sync_command(args):
    return _print_report(sync_flow.sync(root=args.root, force=args.force), args)


def status_command(args):
    return _print_report(sync_flow.status(root=args.root), args)


def reset_command(args):
    if sync_flow.reset(root=args.root):
        print("Install state removed. The next sync treats existing files as unverified.")
    else:
        print("No install state found.")
    return sync_flow.EXIT_OK


def uninstall_command(args):
    return _print_report(sync_flow.uninstall(root=args.root), args)


def _add_tool_option(parser):
    parser.add_argument(
        "--tool",
        action="append",
        choices=known_tools(),
        help="Also install commands for this tool (repeatable). Defaults to AGENT_OS_TOOLS.",
    )


def _add_output_options(parser):
    parser.add_argument("--verbose", action="store_true", help="List every planned action.")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agent-os", description="Install and sync layered Agent OS standards.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    install_parser = subparsers.add_parser("install", help="Install the base layer or a project.")
    install_sub = install_parser.add_subparsers(dest="scope", required=True)

    base_parser = install_sub.add_parser("base", help="Install the base layer into the user-level root.")
    base_parser.add_argument("--root", help="Destination root. Defaults to AGENT_OS_HOME or ~/.agent-os.")
    base_parser.add_argument("--source", help="Base layer source. Defaults to AGENT_OS_BASE_SOURCE or the bundled files.")
    base_parser.add_argument("--force", action="store_true", help="Back up and overwrite customized files.")
    _add_tool_option(base_parser)
    _add_output_options(base_parser)
    base_parser.set_defaults(func=install_base_command)

    project_parser = install_sub.add_parser("project", help="Install base, team and project layers into a project.")
    project_parser.add_argument("--root", help="Project directory. Defaults to the current directory.")
    project_parser.add_argument("--team-source", help="Team layer directory. Defaults to AGENT_OS_TEAM_SOURCE.")
    project_parser.add_argument("--project-source", help=f"Project layer directory. Defaults to <project>/{settings.PROJECT_LOCAL_DIR}.")
    project_parser.add_argument("--force", action="store_true", help="Back up and overwrite customized files.")
    _add_tool_option(project_parser)
    _add_output_options(project_parser)
    project_parser.set_defaults(func=install_project_command)

    sync_parser = subparsers.add_parser("sync", help="Refresh an existing installation with its recorded layers.")
    sync_parser.add_argument("--root", help="Install root. Defaults to the current directory.")
    sync_parser.add_argument("--force", action="store_true", help="Back up and overwrite customized files.")
    _add_output_options(sync_parser)
    sync_parser.set_defaults(func=sync_command)

    status_parser = subparsers.add_parser("status", help="Show what a sync would do without writing anything.")
    status_parser.add_argument("--root", help="Install root. Defaults to the current directory.")
    _add_output_options(status_parser)
    status_parser.set_defaults(func=status_command)

    reset_parser = subparsers.add_parser("reset", help="Remove the install state file.")
    reset_parser.add_argument("--root", help="Install root. Defaults to the current directory.")
    reset_parser.set_defaults(func=reset_command)

    uninstall_parser = subparsers.add_parser("uninstall", help="Delete installed files that were not customized.")
    uninstall_parser.add_argument("--root", help="Install root. Defaults to the current directory.")
    _add_output_options(uninstall_parser)
    uninstall_parser.set_defaults(func=uninstall_command)
    return parser


def main(argv=None):
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        return args.func(args)
    except ManifestReadError as exc:
        print(f"ERROR: {exc.message}", file=sys.stderr)
        return sync_flow.EXIT_LAYER_MISSING
    except StateCorruptionError as exc:
        print(f"ERROR: {exc.message}. Run 'agent-os reset' to start over.", file=sys.stderr)
        return sync_flow.EXIT_LAYER_MISSING
    except LayerSyncError as exc:
        print(f"ERROR: {exc.message}", file=sys.stderr)
        return sync_flow.EXIT_LAYER_MISSING
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return sync_flow.EXIT_LAYER_MISSING
    except OSError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return sync_flow.EXIT_WRITE_ERRORS


if __name__ == "__main__":
    sys.exit(main())
